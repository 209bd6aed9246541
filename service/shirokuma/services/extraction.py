"""
Text extraction for diagnosis requests.

Recovers the diagnosis label, birth date, MBTI code and optional free-text
fields from a chat message. Absence (None) is the only failure signal.
"""

import re
import unicodedata
from datetime import date
from typing import Callable, Optional

from shirokuma.agents.schemas import BirthDate, DiagnosisRequest, DiagnosisType, PartnerInfo

DEFAULT_LABEL_TYPES: dict[str, DiagnosisType] = {
    "無料トータル診断": DiagnosisType.FREE_TOTAL,
    "トータル診断": DiagnosisType.FREE_TOTAL,
    "自分専用プレミアム診断": DiagnosisType.SELF_PREMIUM,
    "プレミアム診断": DiagnosisType.SELF_PREMIUM,
    "相性診断": DiagnosisType.COMPATIBILITY,
}

LABEL_PATTERN = re.compile(r'《{1,3}\s*([^《》\n]+?)\s*》{1,3}')

MBTI_PATTERN = re.compile(r'^[EI][NS][TF][JP]$')

_DATE = r'(?<!\d)(\d{4})\s*(?:年|[/.\-])\s*(\d{1,2})\s*(?:月|[/.\-])\s*(\d{1,2})\s*日?'

LABELED_DATE_PATTERN = re.compile(r'(?:生年月日|誕生日)\s*:?\s*' + _DATE)
LABELED_MBTI_PATTERN = re.compile(r'MBTI\s*(?:タイプ)?\s*:?\s*([A-Za-z]{4})(?![A-Za-z])', re.IGNORECASE)
BARE_PATTERN = re.compile(
    r'(?<!\d)(\d{4})年(\d{1,2})月(\d{1,2})日\s*[、,/]?\s*(?:MBTI\s*:?\s*)?([A-Za-z]{4})(?![A-Za-z])',
    re.IGNORECASE,
)
ISO_BARE_PATTERN = re.compile(r'(?<!\d)(\d{4})-(\d{1,2})-(\d{1,2})\s+([A-Za-z]{4})(?![A-Za-z])')

GENDER_PATTERN = re.compile(r'性別\s*:\s*([^\n]+)')
QUESTION_PATTERN = re.compile(r'(?:質問|相談内容|ご相談)\s*:\s*([^\n]+)')
TOPIC_PATTERN = re.compile(r'(?:テーマ|お悩み)\s*:\s*([^\n]+)')

SELF_BLOCK_PATTERN = re.compile(r'【(?:あなた|自分|本人)】(.*?)(?=【|\Z)', re.DOTALL)
PARTNER_BLOCK_PATTERN = re.compile(r'【(?:お相手|相手|パートナー)】(.*?)(?=【|\Z)', re.DOTALL)


def normalize_text(text: str) -> str:
    """Fold full-width digits, letters and colons to ASCII."""
    return unicodedata.normalize("NFKC", text)


def _birth_date(year: str, month: str, day: str) -> Optional[BirthDate]:
    try:
        value = date(int(year), int(month), int(day))
    except ValueError:
        return None
    return BirthDate(year=value.year, month=value.month, day=value.day)


def _mbti(code: str) -> Optional[str]:
    code = code.upper()
    return code if MBTI_PATTERN.match(code) else None


def _match_labeled(text: str) -> Optional[tuple[BirthDate, str]]:
    date_match = LABELED_DATE_PATTERN.search(text)
    mbti_match = LABELED_MBTI_PATTERN.search(text)
    if not date_match or not mbti_match:
        return None
    birth = _birth_date(*date_match.groups())
    mbti = _mbti(mbti_match.group(1))
    if birth is None or mbti is None:
        return None
    return birth, mbti


def _match_bare(pattern: re.Pattern) -> Callable[[str], Optional[tuple[BirthDate, str]]]:
    def matcher(text: str) -> Optional[tuple[BirthDate, str]]:
        for match in pattern.finditer(text):
            year, month, day, code = match.groups()
            birth = _birth_date(year, month, day)
            mbti = _mbti(code)
            if birth is not None and mbti is not None:
                return birth, mbti
        return None
    return matcher


# Priority order: first successful match wins
DATE_CODE_MATCHERS: list[Callable[[str], Optional[tuple[BirthDate, str]]]] = [
    _match_labeled,
    _match_bare(BARE_PATTERN),
    _match_bare(ISO_BARE_PATTERN),
]


def extract_birth_and_mbti(text: str) -> Optional[tuple[BirthDate, str]]:
    """Return (birth date, MBTI) from the first matching pattern, or None."""
    if not text or not isinstance(text, str):
        return None
    normalized = normalize_text(text)
    for matcher in DATE_CODE_MATCHERS:
        result = matcher(normalized)
        if result is not None:
            return result
    return None


def extract_diagnosis_label(text: str) -> Optional[str]:
    """Return the text inside 《《《…》》》, or None."""
    if not text or not isinstance(text, str):
        return None
    match = LABEL_PATTERN.search(normalize_text(text))
    return match.group(1).strip() if match else None


def resolve_diagnosis_type(
    label: Optional[str],
    label_types: Optional[dict[str, DiagnosisType]] = None,
) -> Optional[DiagnosisType]:
    """
    Map a label to a diagnosis type.

    Unlabelled messages are free total diagnoses; unknown labels return None.
    """
    if label is None:
        return DiagnosisType.FREE_TOTAL

    label_types = label_types or DEFAULT_LABEL_TYPES
    if label in label_types:
        return label_types[label]

    # Longest alias first so "無料トータル診断" wins over "トータル診断"
    for alias in sorted(label_types, key=len, reverse=True):
        if alias in label:
            return label_types[alias]
    return None


def _optional_field(pattern: re.Pattern, text: str) -> Optional[str]:
    match = pattern.search(text)
    if not match:
        return None
    value = match.group(1).strip()
    return value or None


def _split_parties(text: str) -> tuple[Optional[str], Optional[str]]:
    """Return (self block, partner block) for compatibility messages."""
    self_match = SELF_BLOCK_PATTERN.search(text)
    partner_match = PARTNER_BLOCK_PATTERN.search(text)
    if self_match and partner_match:
        return self_match.group(1), partner_match.group(1)

    # Unmarked: the first labelled birth date belongs to the sender, the second to the partner
    starts = [m.start() for m in LABELED_DATE_PATTERN.finditer(text)]
    if len(starts) >= 2:
        return text[:starts[1]], text[starts[1]:]
    return None, None


def extract_partner(text: str) -> Optional[PartnerInfo]:
    """Extract the partner record from a compatibility message."""
    if not text or not isinstance(text, str):
        return None
    _, partner_block = _split_parties(normalize_text(text))
    if partner_block is None:
        return None
    found = extract_birth_and_mbti(partner_block)
    if found is None:
        return None
    birth, mbti = found
    return PartnerInfo(
        birth_date=birth,
        mbti=mbti,
        gender=_optional_field(GENDER_PATTERN, partner_block),
    )


def extract_request(
    text: str,
    label_types: Optional[dict[str, DiagnosisType]] = None,
) -> Optional[DiagnosisRequest]:
    """
    Parse a chat message into a DiagnosisRequest.

    Args:
        text: Raw message text
        label_types: Label -> diagnosis type mapping (defaults to built-in labels)

    Returns:
        Fully populated DiagnosisRequest, or None when anything required is missing
    """
    if not text or not isinstance(text, str):
        return None

    normalized = normalize_text(text)
    label = extract_diagnosis_label(normalized)
    diagnosis_type = resolve_diagnosis_type(label, label_types)
    if diagnosis_type is None:
        return None

    question = _optional_field(QUESTION_PATTERN, normalized)
    topic = _optional_field(TOPIC_PATTERN, normalized)

    if diagnosis_type == DiagnosisType.COMPATIBILITY:
        self_block, _ = _split_parties(normalized)
        if self_block is None:
            return None
        found = extract_birth_and_mbti(self_block)
        partner = extract_partner(normalized)
        if found is None or partner is None:
            return None
        birth, mbti = found
        return DiagnosisRequest(
            diagnosis_type=diagnosis_type,
            label=label,
            birth_date=birth,
            mbti=mbti,
            gender=_optional_field(GENDER_PATTERN, self_block),
            question=question,
            topic=topic or question,
            partner=partner,
        )

    found = extract_birth_and_mbti(normalized)
    if found is None:
        return None
    birth, mbti = found
    return DiagnosisRequest(
        diagnosis_type=diagnosis_type,
        label=label,
        birth_date=birth,
        mbti=mbti,
        gender=_optional_field(GENDER_PATTERN, normalized),
        question=question,
        topic=topic,
    )
