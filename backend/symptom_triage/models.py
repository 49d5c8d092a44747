from typing import Optional, Literal
from datetime import datetime
from dataclasses import dataclass
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


Sender = Literal["user", "assistant"]
Phase = Literal["gathering", "confirmed"]
Severity = Literal["Mild", "Moderate", "Severe", "Emergency"]
RiskLevel = Literal["low", "medium", "high"]
Gender = Literal["male", "female", "other", ""]

SEVERITIES: tuple[str, ...] = ("Mild", "Moderate", "Severe", "Emergency")
RISK_LEVELS: tuple[str, ...] = ("low", "medium", "high")
DEFAULT_RISK_LEVEL: RiskLevel = "medium"


# Conversation State Models
@dataclass(frozen=True)
class ConversationTurn:
    """One message in a conversation; never mutated after creation"""

    id: str
    content: str
    sender: Sender
    created_at: datetime


@dataclass(frozen=True)
class ConversationContext:
    """Digest of a conversation sent to the reasoning backend"""

    prior_user: tuple[str, ...]
    prior_assistant: tuple[str, ...]
    current_message: str

    def render(self) -> str:
        user_block = "\n".join(self.prior_user)
        bot_block = "\n".join(self.prior_assistant)
        return (
            f"Previous conversation:\n"
            f"User: {user_block}\n"
            f"Bot: {bot_block}\n\n"
            f"Current message: {self.current_message}"
        )

    def __str__(self) -> str:
        return self.render()


class CamelModel(BaseModel):
    """Base for models that travel over the wire with camelCase keys"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Analysis Models
class TriageAssessment(CamelModel):
    """Validated triage result handed to callers of the Analysis Client"""

    content: str = Field(default="", description="Patient-facing text from the backend")
    condition: Optional[str] = None
    severity: Optional[Severity] = None
    risk_level: RiskLevel = DEFAULT_RISK_LEVEL
    recommendations: list[str] = Field(default_factory=list)
    confidence_met: bool = False



class TriageReply(BaseModel):
    """Response shape requested from the reasoning backend in strict mode"""

    reply: str = Field(
        description="Message to show the patient: follow-up questions or the assessment, "
        "always ending with an invitation to add more details"
    )
    follow_up_questions: list[str] = Field(
        default_factory=list,
        description="2-3 targeted questions still needed before concluding",
    )
    condition: Optional[str] = Field(
        default=None,
        description="Most likely condition, only when at least 95% confident, else null",
    )
    severity: Optional[str] = Field(
        default=None,
        description="One of Mild, Moderate, Severe, Emergency; null unless confident",
    )
    risk_level: str = Field(default=DEFAULT_RISK_LEVEL, description="One of low, medium, high")
    recommendations: list[str] = Field(
        default_factory=list,
        description="Simple plain-language recommendations",
    )
    confidence_met: bool = Field(
        default=False,
        description="True only when the condition is reported with at least 95% confidence",
    )


# Submission Models
class IntakeForm(CamelModel):
    """Intake fields entered alongside the symptom description"""

    symptoms: str
    age: str = ""
    gender: Gender = ""
    temperature: str = ""
    blood_pressure: str = ""


class SubmissionRecord(CamelModel):
    """Persisted snapshot of one completed intake and its assessment"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    owner_id: str
    symptoms: str
    age: str = ""
    gender: Gender = ""
    temperature: str = ""
    blood_pressure: str = ""
    image_ref: str = ""
    assessment: TriageAssessment
    created_at: datetime


# API Request/Response Models
class AnalyzeRequest(BaseModel):
    """Body of the analysis endpoint"""

    symptoms: str


class ErrorResponse(BaseModel):
    error: str


class TurnOut(CamelModel):
    id: str
    content: str
    sender: Sender
    created_at: datetime

    @classmethod
    def from_turn(cls, turn: ConversationTurn) -> "TurnOut":
        return cls(
            id=turn.id,
            content=turn.content,
            sender=turn.sender,
            created_at=turn.created_at,
        )


class SessionStateResponse(CamelModel):
    """Current state of a chat session"""

    session_id: str
    phase: Phase
    turns: list[TurnOut]


class ChatMessageRequest(BaseModel):
    content: str


class ChatReplyResponse(CamelModel):
    """Assistant reply for one user turn"""

    session_id: str
    phase: Phase
    reply: TurnOut
    assessment: Optional[TriageAssessment] = None
    error: Optional[str] = None


class SubmissionResponse(CamelModel):
    """Outcome of a form submission; the assessment survives a failed save"""

    assessment: TriageAssessment
    record: Optional[SubmissionRecord] = None
    error: Optional[str] = None
