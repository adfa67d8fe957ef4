from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Phase(str, Enum):
    INSTRUCTION = "instruction"
    GUIDED = "guided"
    ASSESSMENT = "assessment"
    FEEDBACK = "feedback"


PHASE_ORDER = [Phase.INSTRUCTION, Phase.GUIDED, Phase.ASSESSMENT, Phase.FEEDBACK]


class CamelModel(BaseModel):
    """Python-side snake_case, persisted/API-side camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PhaseState(CamelModel):
    instruction_completed: bool = False
    comprehension_check_passed: bool = False
    guided_attempts: int = 0
    hints_given: int = 0
    guided_complete: bool = False
    writing_started_at: Optional[str] = None
    revisions_used: int = 0


class Message(CamelModel):
    role: Literal["coach", "student"]
    content: str
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class Session(CamelModel):
    id: int
    child_id: int
    lesson_id: str
    phase: Phase = Phase.INSTRUCTION
    phase_state: PhaseState = Field(default_factory=PhaseState)
    conversation_history: list[Message] = []
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CoachSignals(BaseModel):
    """Control signals extracted from one coach reply."""

    display_text: str
    transition_request: Optional[Phase] = None
    comprehension_passed: bool = False
    hint_given: bool = False
    writing_prompt: Optional[str] = None
    expects_response: bool = False


class StartLessonRequest(CamelModel):
    child_id: int
    lesson_id: str


class MessageRequest(CamelModel):
    session_id: int
    message: str
