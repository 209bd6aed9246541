"""
Prompt assembly from per-diagnosis-type templates.

Placeholders use ${a.b.c} dotted paths into a nested environment dict.
Unresolved placeholders are left verbatim so missing data stays visible.
"""

import re
from datetime import date
from typing import Any, Optional

from shirokuma.agents.prompts import DIAGNOSIS_SYSTEM_PROMPT, TONE_INSTRUCTION
from shirokuma.agents.schemas import ClassificationResult, DiagnosisRequest, PromptTemplate

PLACEHOLDER_PATTERN = re.compile(r'\$\{([A-Za-z0-9_]+(?:\.[A-Za-z0-9_]+)*)\}')

NOT_PROVIDED = "特になし"
GENDER_NOT_PROVIDED = "未回答"

_MISSING = object()


def lookup_path(env: dict[str, Any], path: str) -> Any:
    """Resolve a dotted path in a nested dict; returns _MISSING on any miss."""
    value: Any = env
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    if value is None or isinstance(value, dict):
        return _MISSING
    return value


def render_placeholders(text: str, env: dict[str, Any]) -> str:
    """Substitute ${a.b.c} placeholders, leaving unresolved ones untouched."""
    if not text:
        return text

    def replace(match: re.Match) -> str:
        value = lookup_path(env, match.group(1))
        if value is _MISSING:
            return match.group(0)
        return str(value)

    return PLACEHOLDER_PATTERN.sub(replace, text)


def build_prompt(template: PromptTemplate, env: dict[str, Any]) -> str:
    """Preamble, extra instructions, structure guide - in that order."""
    sections = [render_placeholders(template.preamble, env)]

    if template.extra_instructions:
        sections.append(render_placeholders(template.extra_instructions, env))

    if template.structure_guide:
        guide = "\n".join(render_placeholders(line, env) for line in template.structure_guide)
        sections.append("以下の構成で書いてください:\n" + guide)

    return "\n\n".join(sections)


def build_system_prompt(template: PromptTemplate, env: dict[str, Any], base: str = DIAGNOSIS_SYSTEM_PROMPT) -> str:
    if not template.tone:
        return base
    tone = render_placeholders(template.tone, env)
    return base + "\n\n" + TONE_INSTRUCTION.format(tone=tone)


def render_closing(template: PromptTemplate, env: dict[str, Any]) -> str:
    return render_placeholders(template.closing, env)


def render_summary(template: PromptTemplate, env: dict[str, Any]) -> Optional[str]:
    if not template.summary_block:
        return None
    return render_placeholders(template.summary_block, env)


def _classification_env(classification: ClassificationResult) -> dict[str, Any]:
    return {
        "cycle_index": classification.cycle_index,
        "animal": classification.animal,
        "stem": classification.stem_symbol,
        "stem_index": classification.stem_index,
        "element": classification.element,
        "guardian": classification.guardian,
    }


def build_environment(
    request: DiagnosisRequest,
    classification: ClassificationResult,
    partner_classification: Optional[ClassificationResult] = None,
    display_name: Optional[str] = None,
    today: Optional[date] = None,
) -> dict[str, Any]:
    """
    Build the nested variable environment for template rendering.

    Keys: user.*, classification.*, partner.* (compatibility only),
    question, topic, today.
    """
    env: dict[str, Any] = {
        "user": {
            "name": display_name or "あなた",
            "birthdate": request.birth_date.display(),
            "year": request.birth_date.year,
            "month": request.birth_date.month,
            "day": request.birth_date.day,
            "mbti": request.mbti,
            "gender": request.gender or GENDER_NOT_PROVIDED,
        },
        "classification": _classification_env(classification),
        "question": request.question or NOT_PROVIDED,
        "topic": request.topic or NOT_PROVIDED,
        "today": (today or date.today()).isoformat(),
    }

    if request.partner is not None:
        partner = {
            "birthdate": request.partner.birth_date.display(),
            "mbti": request.partner.mbti,
            "gender": request.partner.gender or GENDER_NOT_PROVIDED,
        }
        if partner_classification is not None:
            partner.update(_classification_env(partner_classification))
        env["partner"] = partner

    return env
