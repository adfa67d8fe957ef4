from typing import Literal

from pydantic import BaseModel, Field

WritingType = Literal["narrative", "persuasive", "expository", "descriptive"]


class WeekPlan(BaseModel):
    """One week as returned by the planner model (camelCase on the wire)."""

    week_number: int = Field(alias="weekNumber", ge=1)
    theme: str = ""
    lesson_ids: list[str] = Field(alias="lessonIds", default_factory=list)

    model_config = {"populate_by_name": True}


class GenerateCurriculumRequest(BaseModel):
    week_count: int = Field(default=8, ge=1, le=52)
    lessons_per_week: int = Field(default=3, ge=1, le=7)
    focus_areas: list[WritingType] = []


class ReviseCurriculumRequest(BaseModel):
    reason: str = Field(min_length=1)
    description: str = Field(min_length=1)
