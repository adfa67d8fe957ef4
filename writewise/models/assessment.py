from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from writewise.models.session import CamelModel


class Feedback(BaseModel):
    strength: str = "You put real effort into this piece!"
    growth: str = "Keep practicing and try adding more details next time."
    encouragement: str = "Every time you write, you get a little stronger. Keep going!"


class Evaluation(BaseModel):
    scores: dict[str, float]
    overall_score: float
    feedback: Feedback


class QualityCheck(BaseModel):
    valid: bool
    error: Optional[str] = None
    message: Optional[str] = None
    word_count: int
    min_words: int


class Rejection(BaseModel):
    """A structured, expected refusal that the UI can explain to the child."""

    error: str
    message: str
    status_code: int = 400
    details: dict[str, Any] = {}


class SubmitRequest(CamelModel):
    """Body of submit and revise; sessionId / session_id both accepted."""

    session_id: int
    text: str
    time_spent_sec: Optional[int] = Field(default=None, ge=0)

    @field_validator("text")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()


class AssessmentResult(CamelModel):
    """Sent as camelCase: model_dump(by_alias=True)."""

    assessment_id: int
    submission_id: int
    scores: dict[str, float]
    overall_score: float
    feedback: Feedback
    word_count: int
    lesson_status: str
    new_badges: list[str] = []
    revision_number: int = 0
    previous_scores: Optional[dict[str, float]] = None
    revisions_remaining: Optional[int] = None
