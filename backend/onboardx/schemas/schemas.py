"""
Pydantic Schemas — Domain records and request/response models.

Wire names are camelCase (``monthlyIncome``, ``overallVerdict``) so the
chat UI and the RPC endpoint share one vocabulary; Python code uses the
snake_case attribute names.
"""
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenCamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ──────────────── Risk ────────────────

RiskLevel = Literal["Low", "Medium", "High"]


class RiskInputs(FrozenCamelModel):
    monthly_income: float = Field(0, ge=0, description="Monthly income in INR")
    employment_type: str = Field("", description="freelancer | salaried | business | student")
    documents_verified: bool = False
    face_verified: bool = False


class RiskResult(FrozenCamelModel):
    probability: float = Field(..., ge=0, le=1)
    level: RiskLevel
    dti: float
    explanation: str


# ──────────────── Verification ────────────────

Verdict = Literal["GENUINE", "SUSPICIOUS", "LIKELY_FAKE"]


class SecurityFeatures(CamelModel):
    detected: List[str] = []
    missing: List[str] = []


class ExtractedData(CamelModel):
    name: Optional[str] = None
    id_number: Optional[str] = None
    dob: Optional[str] = None
    gender: Optional[str] = None


class DocumentVerificationResult(CamelModel):
    document_type: str = "Unknown"
    is_authentic: bool = False
    confidence_score: int = Field(0, ge=0, le=100)
    tampered_areas: List[str] = []
    format_valid: bool = False
    security_features: SecurityFeatures = Field(default_factory=SecurityFeatures)
    extracted_data: ExtractedData = Field(default_factory=ExtractedData)
    qr_consistent: Optional[bool] = None
    risk_flags: List[str] = []
    overall_verdict: Verdict = "SUSPICIOUS"
    reason: str = ""

    @field_validator("confidence_score", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> int:
        try:
            score = round(float(value))
        except (TypeError, ValueError, OverflowError):
            # non-numeric, NaN or infinite
            return 0
        return max(0, min(100, score))

    @field_validator("overall_verdict", mode="before")
    @classmethod
    def _normalize_verdict(cls, value: Any) -> str:
        verdict = str(value or "").strip().upper().replace(" ", "_")
        return verdict if verdict in ("GENUINE", "SUSPICIOUS", "LIKELY_FAKE") else "SUSPICIOUS"

    @field_validator("tampered_areas", "risk_flags", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class FaceVerificationResult(CamelModel):
    liveness: bool
    match: Optional[bool] = None
    reason: str = ""

    @property
    def passed(self) -> bool:
        """Only an explicit false on either check blocks progress."""
        return self.liveness and self.match is not False


# ──────────────── Deliverability ────────────────

class EmailValidationResult(CamelModel):
    valid: bool
    reason: str


class PhoneValidationResult(CamelModel):
    valid: bool
    is_indian: Optional[bool] = None
    reason: str


# ──────────────── Onboarding session ────────────────

class Step(str, Enum):
    CHAT = "chat"
    AWAITING_INCOME = "awaitingIncome"
    AWAITING_FACE = "awaitingFace"
    AWAITING_EMAIL = "awaitingEmail"
    DONE = "done"


class OnboardingState(CamelModel):
    employment_type: str = ""
    monthly_income: Optional[float] = None
    email: str = ""
    documents_verified: bool = False
    face_verified: bool = False
    risk_result: Optional[RiskResult] = None
    account_number: str = ""
    ifsc: str = ""
    account_type: str = ""
    step: Step = Step.CHAT
    progress: int = 5


class BotMessage(CamelModel):
    role: Literal["user", "bot"] = "bot"
    content: str
    kind: str = "text"  # text | risk | account_details | warning | file


class AccountDetails(CamelModel):
    account_number: str
    ifsc: str
    account_type: str
    branch: str = "OnboardX Digital Bank"
    employment_type: str = ""
    monthly_income: Optional[float] = None
    risk_level: Optional[RiskLevel] = None
    risk_probability: Optional[float] = None


class TurnResponse(CamelModel):
    messages: List[BotMessage] = []
    state: OnboardingState
    open_face_capture: bool = False


class SessionStartResponse(TurnResponse):
    session_id: str


class MessageRequest(BaseModel):
    text: str = Field(..., min_length=1)


# ──────────────── Multiplexed RPC ────────────────

class FileData(CamelModel):
    base64: str
    mime_type: str = "image/jpeg"


class SendEmailPayload(CamelModel):
    to: str
    account: AccountDetails


class OnboardRequest(CamelModel):
    """Body of the single RPC endpoint; the populated key selects the handler."""
    messages: List[Dict[str, Any]] = []
    file_data: Optional[FileData] = None
    reference_data: Optional[FileData] = None
    qr_data: Optional[str] = None
    pan_number: Optional[str] = None
    risk_data: Optional[RiskInputs] = None
    document_verify_mode: bool = False
    face_verify_mode: bool = False
    send_email: Optional[SendEmailPayload] = None
    validate_email_req: Optional[str] = None
    validate_phone_req: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
