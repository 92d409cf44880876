import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

AlertType = Literal["misinformation", "outdated-info", "missing-context", "bias-detected"]
Severity = Literal["low", "medium", "high", "critical"]
SessionStatus = Literal["recording", "processing", "completed", "error"]
Quality = Literal["excellent", "good", "fair", "poor"]
AccessibilityMode = Literal["standard", "visual-impaired", "hearing-impaired"]

ALERT_TYPES: tuple[str, ...] = ("misinformation", "outdated-info", "missing-context", "bias-detected")
TERMINAL_STATUSES = frozenset({"completed", "error"})


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# ------------------------------------------------------------------
# Live lecture session
# ------------------------------------------------------------------


@dataclass
class Alert:
    id: str
    timestamp: datetime
    type: AlertType
    severity: Severity
    content: str
    suggested_correction: str
    confidence: float  # 0.0 - 1.0
    notified: bool = False  # only field mutated after creation

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Alert confidence must be within [0, 1], got {self.confidence}")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "type": self.type,
            "severity": self.severity,
            "content": self.content,
            "suggestedCorrection": self.suggested_correction,
            "confidence": self.confidence,
            "notified": self.notified,
        }


@dataclass
class CorrectionReport:
    id: str
    session_id: str
    total_issues: int
    issues_by_type: dict[str, int]
    recommendations: list[str]
    overall_quality: Quality
    generated_at: datetime
    corrections: list[dict] = field(default_factory=list)

    def is_consistent(self) -> bool:
        return self.total_issues == sum(self.issues_by_type.values())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "totalIssues": self.total_issues,
            "issuesByType": dict(self.issues_by_type),
            "corrections": list(self.corrections),
            "recommendations": list(self.recommendations),
            "overallQuality": self.overall_quality,
            "generatedAt": self.generated_at.isoformat(),
        }


@dataclass
class LectureSession:
    id: str
    title: str
    subject: str
    language: str
    start_time: datetime
    status: SessionStatus = "recording"
    instructor: str | None = None
    dialect: str | None = None
    real_time_monitoring: bool = True
    end_time: datetime | None = None
    alerts: list[Alert] = field(default_factory=list)
    report: CorrectionReport | None = None
    error: str | None = None  # plain-language message, set only in "error"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "subject": self.subject,
            "instructor": self.instructor,
            "language": self.language,
            "dialect": self.dialect,
            "realTimeMonitoring": self.real_time_monitoring,
            "status": self.status,
            "startTime": _iso(self.start_time),
            "endTime": _iso(self.end_time),
            "alerts": [a.to_dict() for a in self.alerts],
            "report": self.report.to_dict() if self.report else None,
            "error": self.error,
        }


class SessionConfig(BaseModel):
    """Metadata chosen before recording starts."""

    title: str = ""
    subject: str = ""
    instructor: str | None = None
    language: str = "en"
    dialect: str | None = None
    real_time_monitoring: bool = True

    def new_session(self) -> LectureSession:
        return LectureSession(
            id=new_id(),
            title=self.title.strip() or "Untitled Lecture",
            subject=self.subject.strip() or "General",
            instructor=self.instructor or None,
            language=self.language or "en",
            dialect=self.dialect or None,
            real_time_monitoring=self.real_time_monitoring,
            start_time=utcnow(),
        )


# ------------------------------------------------------------------
# Content analysis (quiz + fact-check)
# ------------------------------------------------------------------


class ContentUpload(BaseModel):
    content: str
    type: Literal["text", "url", "file"] = "text"
    title: str | None = None
    subject: str | None = None
    language: str = "en"
    accessibility_mode: AccessibilityMode = "standard"


class QuizQuestion(BaseModel):
    id: str
    question: str
    options: list[str]
    correct_answer: int = Field(serialization_alias="correctAnswer")
    explanation: str
    difficulty: Literal["easy", "medium", "hard"]


class Quiz(BaseModel):
    id: str
    title: str
    description: str
    questions: list[QuizQuestion]
    source_content: str = Field(serialization_alias="sourceContent")
    created_at: datetime = Field(serialization_alias="createdAt")


class FactCheckResult(BaseModel):
    id: str
    original_text: str = Field(serialization_alias="originalText")
    status: Literal["verified", "questionable", "false"]
    correction: str | None = None
    sources: list[str] = []
    confidence: float = Field(ge=0.0, le=1.0)


class Preferences(BaseModel):
    accessibility_mode: AccessibilityMode = "standard"
    preferred_language: str = "en"
    preferred_dialect: str = ""
