"""
Diagnosis pipeline: classify -> assemble prompt -> complete -> (render + upload).

Shared by the chat webhook and the form intake endpoint.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional

from shirokuma.agents.schemas import (
    BirthDate,
    ClassificationResult,
    DiagnosisRequest,
    DiagnosisResult,
    DiagnosisType,
    PromptTemplate,
)
from shirokuma.logging_config import bot_logger as logger
from shirokuma.services.assets import Assets
from shirokuma.services.classifier import ClassificationError, classify
from shirokuma.services.completion import CompletionClient
from shirokuma.services.prompt_builder import (
    build_environment,
    build_prompt,
    build_system_prompt,
    render_closing,
    render_summary,
)
from shirokuma.services.report import render_report_pdf
from shirokuma.services.storage import ReportUploader, UploadError


class TemplateNotFoundError(Exception):
    """No prompt template is registered for the requested diagnosis type."""


@dataclass
class PreparedDiagnosis:
    template: PromptTemplate
    system: str
    prompt: str
    env: dict[str, Any]


class DiagnosisService:
    def __init__(
        self,
        assets: Assets,
        completion: CompletionClient,
        uploader: Optional[ReportUploader] = None,
        cycle_epoch: Optional[date] = None,
        stem_epoch: Optional[date] = None,
    ):
        self.assets = assets
        self.completion = completion
        self.uploader = uploader
        self.cycle_epoch = cycle_epoch
        self.stem_epoch = stem_epoch

    def label_types(self) -> dict[str, DiagnosisType]:
        return self.assets.label_types()

    def template_for(self, diagnosis_type: DiagnosisType) -> PromptTemplate:
        template = self.assets.template_for(diagnosis_type)
        if template is None:
            raise TemplateNotFoundError(f"No template for diagnosis type {diagnosis_type.value}")
        return template

    def classify(self, birth_date: BirthDate) -> ClassificationResult:
        """
        Classify a birth date.

        Raises:
            ClassificationError: if no attribute could be resolved for the date
        """
        result = classify(birth_date.to_date(), self.assets, self.cycle_epoch, self.stem_epoch)
        if not result.is_resolved:
            raise ClassificationError(f"No calendrical attributes for {birth_date.isoformat()}")
        return result

    def classify_request(
        self, request: DiagnosisRequest
    ) -> tuple[ClassificationResult, Optional[ClassificationResult]]:
        classification = self.classify(request.birth_date)
        partner_classification = None
        if request.partner is not None:
            partner_classification = self.classify(request.partner.birth_date)
        return classification, partner_classification

    def prepare(
        self,
        request: DiagnosisRequest,
        display_name: Optional[str] = None,
        template: Optional[PromptTemplate] = None,
    ) -> PreparedDiagnosis:
        """Classify and assemble prompts without calling the model."""
        template = template or self.template_for(request.diagnosis_type)
        classification, partner_classification = self.classify_request(request)
        env = build_environment(request, classification, partner_classification, display_name)
        return PreparedDiagnosis(
            template=template,
            system=build_system_prompt(template, env),
            prompt=build_prompt(template, env),
            env=env,
        )

    async def generate(
        self,
        request: DiagnosisRequest,
        display_name: Optional[str] = None,
        template: Optional[PromptTemplate] = None,
    ) -> DiagnosisResult:
        """
        Run the full text pipeline for one request.

        Raises:
            TemplateNotFoundError, ClassificationError, CompletionError, RefusalError
        """
        prepared = self.prepare(request, display_name, template)
        logger.info(
            f"Requesting {prepared.template.name} diagnosis "
            f"(cycle={prepared.env['classification']['cycle_index']}, "
            f"stem={prepared.env['classification']['stem']})"
        )

        text = await self.completion.complete_with_fallback(prepared.system, prepared.prompt)

        closing = render_closing(prepared.template, prepared.env)
        if closing:
            text = f"{text.rstrip()}\n\n{closing}"

        return DiagnosisResult(
            text=text,
            summary=render_summary(prepared.template, prepared.env),
            prompt=prepared.prompt,
        )

    async def publish_report(self, result: DiagnosisResult, template: PromptTemplate, user_id: str) -> str:
        """
        Render the result to PDF and upload it.

        Returns:
            Public URL of the report

        Raises:
            ReportError, UploadError
        """
        pdf_bytes = render_report_pdf(template.title, result.text, result.summary)
        if self.uploader is None:
            raise UploadError("Report storage is not configured")

        file_name = f"{user_id}_{template.name}_{datetime.now():%Y%m%d%H%M%S}.pdf"
        return await self.uploader.upload_pdf(pdf_bytes, file_name)
