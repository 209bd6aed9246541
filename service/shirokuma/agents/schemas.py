from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# Sentinel for lookup misses in the calendrical tables
UNKNOWN = "不明"


class DiagnosisType(str, Enum):
    FREE_TOTAL = "free_total"
    SELF_PREMIUM = "self_premium"
    COMPATIBILITY = "compatibility"


class BirthDate(BaseModel):
    model_config = ConfigDict(frozen=True)

    year: int
    month: int
    day: int

    def to_date(self) -> date:
        return date(self.year, self.month, self.day)

    def isoformat(self) -> str:
        return self.to_date().isoformat()

    def display(self) -> str:
        return f"{self.year}年{self.month}月{self.day}日"


class PartnerInfo(BaseModel):
    birth_date: BirthDate
    mbti: str
    gender: Optional[str] = None


class DiagnosisRequest(BaseModel):
    """One parsed diagnosis request. Required fields are always populated."""
    diagnosis_type: DiagnosisType
    label: Optional[str] = None  # raw 《《《label》》》 text
    birth_date: BirthDate
    mbti: str
    gender: Optional[str] = None
    question: Optional[str] = None
    topic: Optional[str] = None
    partner: Optional[PartnerInfo] = None


class ClassificationResult(BaseModel):
    cycle_index: int = Field(..., ge=1, le=60)
    stem_index: int = Field(..., ge=0, le=9)
    stem_symbol: str
    animal: str
    element: str
    guardian: str

    @property
    def is_resolved(self) -> bool:
        """False when every derived attribute fell back to the unknown sentinel."""
        return not (
            self.animal == UNKNOWN
            and self.element == UNKNOWN
            and self.guardian == UNKNOWN
        )


class PromptTemplate(BaseModel):
    """Per-diagnosis-type prompt template, loaded from JSON."""
    model_config = ConfigDict(frozen=True)

    name: str
    diagnosis_type: DiagnosisType
    labels: tuple[str, ...] = ()
    form_ids: tuple[str, ...] = ()
    title: str = "しろくま診断結果"
    preamble: str
    extra_instructions: str = ""
    structure_guide: tuple[str, ...] = ()
    tone: str = ""
    closing: str = ""
    summary_block: Optional[str] = None
    deliver_pdf: bool = False


class DiagnosisResult(BaseModel):
    text: str
    summary: Optional[str] = None
    prompt: str


# API Request/Response models

class FormIntakeRequest(BaseModel):
    line_user_id: str = Field(..., description="LINE user ID to push the result to")
    birthdate: str = Field(..., description="Birth date as YYYY-MM-DD")
    mbti: str = Field(..., description="Four-letter MBTI code")
    form_id: str = Field(..., description="Form identifier used to pick the template")


class FormIntakeResponse(BaseModel):
    status: str = "ok"
    url: Optional[str] = None
