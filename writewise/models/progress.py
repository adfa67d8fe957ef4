from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field


class SkillLevel(str, Enum):
    EMERGING = "EMERGING"
    DEVELOPING = "DEVELOPING"
    PROFICIENT = "PROFICIENT"
    ADVANCED = "ADVANCED"


class ChildCreate(BaseModel):
    name: str = Field(min_length=1, max_length=80)
    age: int = Field(ge=5, le=18)
    tier: Optional[int] = Field(default=None, ge=1, le=3)


class PreferenceCreate(BaseModel):
    category: str = Field(min_length=1, max_length=40)
    value: str = Field(min_length=1, max_length=120)


class WeeklyGoalUpdate(BaseModel):
    weekly_goal: int = Field(ge=1, le=14)


class PlacementRequest(BaseModel):
    prompts: list[str] = Field(min_length=3, max_length=3)
    responses: list[str] = Field(min_length=3, max_length=3)


class PlacementAnalysis(BaseModel):
    recommended_tier: int = Field(alias="recommendedTier", ge=1, le=3)
    confidence: float = Field(ge=0, le=1)
    strengths: list[str] = []
    gaps: list[str] = []
    reasoning: str = ""

    model_config = {"populate_by_name": True}


class CriterionAverage(BaseModel):
    criterion: str
    avg_score: float


class WritingSampleRecord(BaseModel):
    type: str
    criterion: Optional[str] = None
    excerpt: str
    lesson_id: str
    created_at: str


class PreferenceRecord(BaseModel):
    category: str
    value: str
    source: str = "parent"
    created_at: Optional[str] = None


class LearnerProfile(BaseModel):
    child_id: int
    total_lessons: int
    strengths: list[CriterionAverage] = []
    growth_areas: list[CriterionAverage] = []
    score_trajectory: Literal["improving", "stable", "declining"] = "stable"
    scaffolding_trend: Literal["increasing", "stable", "decreasing"] = "stable"
    engagement_level: Literal["high", "medium", "low"] = "medium"
    writing_length_trend: Literal["improving", "stable", "declining"] = "stable"
    recent_samples: list[WritingSampleRecord] = []
    preferences: list[PreferenceRecord] = []


class LearnerContext(BaseModel):
    summary: str
    strengths: list[str] = []
    growth_areas: list[str] = []
    recent_samples: list[dict] = []
    preferences: list[dict] = []
    connection_points: list[str] = []
