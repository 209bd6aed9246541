"""
Webhook event handling.

Per event:
    received -> forwarded (best-effort) -> parsed -> validated -> deduplicated
    -> acknowledged (reply) -> processed in background -> delivered | failed (push)

The reply happens inside the webhook request; completion, rendering and
upload run afterwards and are delivered with a push message. Jobs for the
same user run strictly one after another.
"""

import asyncio
from datetime import date
from typing import Any, Dict, Optional

from shirokuma.agents.prompts import (
    ACKNOWLEDGMENT_MESSAGE,
    COMPATIBILITY_GUIDANCE_MESSAGE,
    DELIVERY_FAILURE_MESSAGE,
    GUIDANCE_MESSAGE,
    REFUSAL_MESSAGE,
    REPORT_LINK_MESSAGE,
    TRY_ANOTHER_DATE_MESSAGE,
    UNKNOWN_TYPE_MESSAGE,
    UPSTREAM_FAILURE_MESSAGE,
)
from shirokuma.agents.schemas import BirthDate, DiagnosisRequest, DiagnosisType, FormIntakeRequest
from shirokuma.logging_config import bot_logger as logger
from shirokuma.services.classifier import ClassificationError
from shirokuma.services.completion import CompletionError, RefusalError
from shirokuma.services.diagnosis import DiagnosisService, TemplateNotFoundError
from shirokuma.services.extraction import (
    MBTI_PATTERN,
    extract_diagnosis_label,
    extract_request,
    resolve_diagnosis_type,
)
from shirokuma.services.job_guard import RecentJobStore, UserLockRegistry, make_job_key
from shirokuma.services.report import ReportError
from shirokuma.services.storage import UploadError
from shirokuma.line_bot.forwarder import EventForwarder
from shirokuma.line_bot.line_api import LineMessagingClient


class FormValidationError(Exception):
    """Form submission cannot be processed (unknown form or invalid fields)."""


def failure_message(error: Exception) -> str:
    """User-facing message for a failed job."""
    if isinstance(error, RefusalError):
        return REFUSAL_MESSAGE
    if isinstance(error, CompletionError):
        return UPSTREAM_FAILURE_MESSAGE
    if isinstance(error, (ReportError, UploadError)):
        return DELIVERY_FAILURE_MESSAGE
    if isinstance(error, ClassificationError):
        return TRY_ANOTHER_DATE_MESSAGE
    if isinstance(error, TemplateNotFoundError):
        return UNKNOWN_TYPE_MESSAGE
    return UPSTREAM_FAILURE_MESSAGE


class DiagnosisDispatcher:
    """Routes LINE events through the diagnosis pipeline."""

    def __init__(
        self,
        diagnosis: DiagnosisService,
        line: LineMessagingClient,
        job_store: RecentJobStore,
        locks: UserLockRegistry,
        forwarder: Optional[EventForwarder] = None,
    ):
        self.diagnosis = diagnosis
        self.line = line
        self.job_store = job_store
        self.locks = locks
        self.forwarder = forwarder
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Chat webhook
    # ------------------------------------------------------------------

    async def handle_event(self, event: Dict[str, Any]) -> None:
        """Handle one webhook event. Failures become a push message to the user."""
        user_id = (event.get("source") or {}).get("userId")
        try:
            await self._handle_event(event)
        except Exception as e:
            logger.error(f"Failed to handle event for user={user_id}: {e}", exc_info=True)
            if user_id:
                await self._push_safely(user_id, failure_message(e))

    async def _handle_event(self, event: Dict[str, Any]) -> None:
        if self.forwarder is not None:
            await self.forwarder.forward(event)

        message = event.get("message") or {}
        if event.get("type") != "message" or message.get("type") != "text":
            logger.debug(f"Ignoring event type={event.get('type')}")
            return

        user_id = (event.get("source") or {}).get("userId")
        reply_token = event.get("replyToken")
        if not user_id or not reply_token:
            logger.warning("Text message event without userId or replyToken")
            return

        text = message.get("text", "")
        label_types = self.diagnosis.label_types()

        # Parse
        diagnosis_type = resolve_diagnosis_type(extract_diagnosis_label(text), label_types)
        if diagnosis_type is None:
            await self.line.reply_text(reply_token, UNKNOWN_TYPE_MESSAGE)
            return

        request = extract_request(text, label_types)
        if request is None:
            guidance = (
                COMPATIBILITY_GUIDANCE_MESSAGE
                if diagnosis_type == DiagnosisType.COMPATIBILITY
                else GUIDANCE_MESSAGE
            )
            await self.line.reply_text(reply_token, guidance)
            return

        # Validate
        try:
            self.diagnosis.classify_request(request)
        except ClassificationError as e:
            logger.info(f"Unresolved classification for user={user_id}: {e}")
            await self.line.reply_text(reply_token, TRY_ANOTHER_DATE_MESSAGE)
            return

        # Deduplicate
        job_key = make_job_key(user_id, request)
        if self.job_store.seen_recently(job_key):
            logger.info(f"Dropping duplicate request {job_key}")
            return

        # Acknowledge, then process after the webhook returns
        try:
            await self.line.reply_text(reply_token, ACKNOWLEDGMENT_MESSAGE)
        except Exception:
            # Nothing was scheduled, so a resend must not count as a duplicate
            self.job_store.forget(job_key)
            raise
        self._schedule(user_id, request)

    def _schedule(self, user_id: str, request: DiagnosisRequest) -> None:
        task = asyncio.create_task(self.locks.run(user_id, lambda: self._process(user_id, request)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _process(self, user_id: str, request: DiagnosisRequest) -> None:
        try:
            display_name = await self._display_name(user_id)
            template = self.diagnosis.template_for(request.diagnosis_type)
            result = await self.diagnosis.generate(request, display_name, template)

            if template.deliver_pdf:
                url = await self.diagnosis.publish_report(result, template, user_id)
                await self.line.push_text(user_id, REPORT_LINK_MESSAGE.format(url=url))
            else:
                await self.line.push_text(user_id, result.text)

            logger.info(f"Delivered {template.name} diagnosis to user={user_id}")

        except Exception as e:
            logger.error(f"Diagnosis job failed for user={user_id}: {e}", exc_info=True)
            await self._push_safely(user_id, failure_message(e))

    async def _display_name(self, user_id: str) -> Optional[str]:
        try:
            profile = await self.line.get_profile(user_id)
        except Exception as e:
            logger.warning(f"Profile fetch failed for user={user_id}: {e}")
            return None
        return profile.get("displayName")

    async def _push_safely(self, user_id: str, text: str) -> None:
        try:
            await self.line.push_text(user_id, text)
        except Exception as e:
            logger.error(f"Failed to push message to user={user_id}: {e}")

    async def drain(self) -> None:
        """Wait for all background jobs (including ones queued while waiting)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Form intake
    # ------------------------------------------------------------------

    def build_form_request(self, form: FormIntakeRequest) -> DiagnosisRequest:
        """
        Validate a form submission into a DiagnosisRequest.

        Raises:
            FormValidationError: unknown form_id, bad birthdate or MBTI,
                a form bound to a two-person template, or an unresolvable date
        """
        template = self.diagnosis.assets.template_for_form(form.form_id)
        if template is None:
            raise FormValidationError(f"Unknown form_id: {form.form_id}")
        if template.diagnosis_type == DiagnosisType.COMPATIBILITY:
            raise FormValidationError(f"Form {form.form_id} needs partner data")

        try:
            birth = date.fromisoformat(form.birthdate.strip())
        except ValueError:
            raise FormValidationError(f"Invalid birthdate: {form.birthdate}")

        mbti = form.mbti.strip().upper()
        if not MBTI_PATTERN.match(mbti):
            raise FormValidationError(f"Invalid MBTI: {form.mbti}")

        request = DiagnosisRequest(
            diagnosis_type=template.diagnosis_type,
            birth_date=BirthDate(year=birth.year, month=birth.month, day=birth.day),
            mbti=mbti,
        )
        try:
            self.diagnosis.classify_request(request)
        except ClassificationError as e:
            raise FormValidationError(str(e))
        return request

    async def handle_form(self, form: FormIntakeRequest) -> str:
        """
        Run classify -> prompt -> complete -> render -> upload -> push for a form submission.

        Returns:
            Report URL

        Raises:
            FormValidationError: for invalid submissions (nothing is sent)
            Exception: pipeline failures, after the user was notified
        """
        request = self.build_form_request(form)
        template = self.diagnosis.assets.template_for_form(form.form_id)
        user_id = form.line_user_id

        async def job() -> str:
            try:
                display_name = await self._display_name(user_id)
                result = await self.diagnosis.generate(request, display_name, template)
                url = await self.diagnosis.publish_report(result, template, user_id)
                await self.line.push_text(user_id, REPORT_LINK_MESSAGE.format(url=url))
            except Exception as e:
                logger.error(f"Form diagnosis failed for user={user_id}: {e}", exc_info=True)
                await self._push_safely(user_id, failure_message(e))
                raise
            logger.info(f"Delivered form {form.form_id} report to user={user_id}")
            return url

        return await self.locks.run(user_id, job)
