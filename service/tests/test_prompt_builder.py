"""
Tests for placeholder rendering and prompt assembly.
"""

from datetime import date

from shirokuma.agents.schemas import (
    BirthDate,
    DiagnosisRequest,
    DiagnosisType,
    PartnerInfo,
    PromptTemplate,
)
from shirokuma.services.classifier import classify
from shirokuma.services.prompt_builder import (
    NOT_PROVIDED,
    build_environment,
    build_prompt,
    build_system_prompt,
    render_placeholders,
    render_summary,
)


def make_template(**overrides) -> PromptTemplate:
    fields = {
        "name": "test",
        "diagnosis_type": DiagnosisType.FREE_TOTAL,
        "preamble": "PRE ${user.mbti}",
        "extra_instructions": "EXTRA ${classification.animal}",
        "structure_guide": ["1. ${classification.stem}", "2. done"],
        "tone": "やさしく",
        "closing": "またね",
    }
    fields.update(overrides)
    return PromptTemplate(**fields)


class TestRenderPlaceholders:

    def test_dotted_lookup(self):
        env = {"user": {"profile": {"name": "花子"}}}
        assert render_placeholders("こんにちは${user.profile.name}さん", env) == "こんにちは花子さん"

    def test_top_level_key(self):
        assert render_placeholders("Q: ${question}", {"question": "恋愛"}) == "Q: 恋愛"

    def test_non_string_values(self):
        assert render_placeholders("No.${c.i}", {"c": {"i": 28}}) == "No.28"

    def test_missing_key_left_verbatim(self):
        assert render_placeholders("A ${user.missing} B", {"user": {}}) == "A ${user.missing} B"

    def test_missing_branch_left_verbatim(self):
        assert render_placeholders("${partner.mbti}", {"user": {"mbti": "ENFP"}}) == "${partner.mbti}"

    def test_none_value_left_verbatim(self):
        assert render_placeholders("${topic}", {"topic": None}) == "${topic}"

    def test_dict_value_left_verbatim(self):
        assert render_placeholders("${user}", {"user": {"mbti": "ENFP"}}) == "${user}"

    def test_text_without_placeholders(self):
        assert render_placeholders("そのまま $ {x} ${", {}) == "そのまま $ {x} ${"


class TestBuildPrompt:

    def test_fixed_section_order(self):
        env = {"user": {"mbti": "ENFP"}, "classification": {"animal": "ペガサス", "stem": "辛"}}
        prompt = build_prompt(make_template(), env)
        assert prompt.index("PRE ENFP") < prompt.index("EXTRA ペガサス") < prompt.index("1. 辛")
        assert "2. done" in prompt

    def test_tone_goes_to_system_prompt(self):
        env = {}
        template = make_template()
        assert "やさしく" not in build_prompt(template, env)
        assert "やさしく" in build_system_prompt(template, env, base="BASE")
        assert build_system_prompt(make_template(tone=""), env, base="BASE") == "BASE"

    def test_optional_sections_skipped(self):
        prompt = build_prompt(make_template(extra_instructions="", structure_guide=()), {"user": {"mbti": "INTJ"}})
        assert prompt == "PRE INTJ"

    def test_summary_block(self):
        assert render_summary(make_template(), {}) is None
        assert render_summary(make_template(summary_block="MBTI ${user.mbti}"), {"user": {"mbti": "INTP"}}) == "MBTI INTP"


class TestBuildEnvironment:

    def test_single_person(self, assets):
        request = DiagnosisRequest(
            diagnosis_type=DiagnosisType.FREE_TOTAL,
            birth_date=BirthDate(year=1996, month=4, day=24),
            mbti="ENFP",
        )
        classification = classify(date(1996, 4, 24), assets)
        env = build_environment(request, classification, display_name="花子", today=date(2026, 1, 1))

        assert env["user"]["name"] == "花子"
        assert env["user"]["birthdate"] == "1996年4月24日"
        assert env["classification"]["animal"] == classification.animal
        assert env["classification"]["stem"] == "辛"
        assert env["question"] == NOT_PROVIDED
        assert env["today"] == "2026-01-01"
        assert "partner" not in env

    def test_partner(self, assets):
        request = DiagnosisRequest(
            diagnosis_type=DiagnosisType.COMPATIBILITY,
            birth_date=BirthDate(year=1996, month=4, day=24),
            mbti="ENFP",
            partner=PartnerInfo(birth_date=BirthDate(year=1995, month=1, day=3), mbti="ISTJ"),
        )
        mine = classify(date(1996, 4, 24), assets)
        theirs = classify(date(1995, 1, 3), assets)
        env = build_environment(request, mine, theirs)

        assert env["partner"]["mbti"] == "ISTJ"
        assert env["partner"]["animal"] == theirs.animal
        assert env["partner"]["gender"] == "未回答"

    def test_bundled_templates_fully_resolve(self, assets):
        """Every placeholder in the shipped templates is covered by the environment."""
        request = DiagnosisRequest(
            diagnosis_type=DiagnosisType.COMPATIBILITY,
            birth_date=BirthDate(year=1996, month=4, day=24),
            mbti="ENFP",
            question="仕事",
            partner=PartnerInfo(birth_date=BirthDate(year=1995, month=1, day=3), mbti="ISTJ"),
        )
        env = build_environment(
            request, classify(date(1996, 4, 24), assets), classify(date(1995, 1, 3), assets)
        )
        for template in assets.templates.values():
            assert "${" not in build_prompt(template, env), template.name
            assert "${" not in (render_summary(template, env) or ""), template.name
