"""
catalog.py - Lesson catalog and rubric lookup

Lessons and rubrics are static content shipped in content/*.yaml.
Lesson ids look like ``N1.2.3``: writing-type letter, tier, unit, lesson.
"""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel

CONTENT_DIR = Path(__file__).parent.parent.parent / "content"

TYPE_BY_LETTER = {
    "N": "narrative",
    "P": "persuasive",
    "E": "expository",
    "D": "descriptive",
}


class Lesson(BaseModel):
    id: str
    title: str
    unit: str
    type: str
    tier: int
    learning_objectives: list[str] = []
    rubric_id: Optional[str] = None


class RubricCriterion(BaseModel):
    name: str
    display_name: str
    weight: float
    levels: dict[str, str] = {}


class Rubric(BaseModel):
    id: str
    description: str
    word_range: tuple[int, int]
    criteria: list[RubricCriterion]


_lessons: dict[str, Lesson] | None = None
_rubrics: dict[str, Rubric] | None = None


def _load_lessons() -> dict[str, Lesson]:
    global _lessons
    if _lessons is None:
        with open(CONTENT_DIR / "lessons.yaml", "r") as f:
            raw = yaml.safe_load(f)
        _lessons = {item["id"]: Lesson(**item) for item in raw["lessons"]}
    return _lessons


def _load_rubrics() -> dict[str, Rubric]:
    global _rubrics
    if _rubrics is None:
        with open(CONTENT_DIR / "rubrics.yaml", "r") as f:
            raw = yaml.safe_load(f)
        _rubrics = {item["id"]: Rubric(**item) for item in raw["rubrics"]}
    return _rubrics


def unit_number(lesson_id: str) -> int:
    """``N1.2.3`` -> 2. Returns 0 when the id has no unit segment."""
    parts = lesson_id.split(".")
    if len(parts) < 2:
        return 0
    try:
        return int(parts[1])
    except ValueError:
        return 0


def writing_type_of(lesson_id: str) -> Optional[str]:
    return TYPE_BY_LETTER.get(lesson_id[:1].upper()) if lesson_id else None


def get_lesson(lesson_id: str) -> Optional[Lesson]:
    return _load_lessons().get(lesson_id)


def get_lessons_by_tier(tier: int) -> list[Lesson]:
    """Lessons of one tier in catalog order."""
    return [lesson for lesson in _load_lessons().values() if lesson.tier == tier]


def get_rubric(rubric_id: Optional[str]) -> Optional[Rubric]:
    if not rubric_id:
        return None
    return _load_rubrics().get(rubric_id)


def tier_for_age(age: int) -> int:
    """Default tier before placement: 7-9 -> 1, 10-12 -> 2, 13+ -> 3."""
    if age <= 9:
        return 1
    if age <= 12:
        return 2
    return 3
