"""
writing_evaluator.py - Score a piece of writing with the assessment model

Two prompt shapes share one parser:
- rubric evaluation (capstone lessons): one score per rubric criterion
- general evaluation (practice lessons): creativity, effort, skill_practice

The reply must be JSON. Anything that does not parse raises LLMResponseError
and nothing is scored; callers surface a "try again" message.
"""

import math
import logging
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field

from writewise.models.assessment import Evaluation, Feedback
from writewise.services.ai_client import ai_chat, parse_json_reply
from writewise.services.catalog import Lesson, Rubric
from writewise.services.prompts import load_prompt, render

logger = logging.getLogger(__name__)

GENERAL_CRITERIA = ("creativity", "effort", "skill_practice")
MISSING_CRITERION_SCORE = 2


class _RawFeedback(BaseModel):
    strength: Optional[str] = None
    growth: Optional[str] = None
    encouragement: Optional[str] = None


class _RawEvaluation(BaseModel):
    scores: dict[str, Any]
    overall_score: Any = Field(
        default=None, validation_alias=AliasChoices("overallScore", "overall_score")
    )
    feedback: Optional[_RawFeedback] = None


def tier_guidance(tier: int) -> str:
    return load_prompt("tiers.yaml")["tiers"].get(tier, "")


def format_rubric(rubric: Rubric) -> str:
    lines = [
        f"Rubric: {rubric.description}",
        f"Expected length: {rubric.word_range[0]}-{rubric.word_range[1]} words",
        "",
    ]
    for criterion in rubric.criteria:
        lines.append(
            f"CRITERION: {criterion.display_name} [{criterion.name}] "
            f"(weight: {round(criterion.weight * 100)}%)"
        )
        for level in ("4", "3", "2", "1"):
            lines.append(f"  {level}: {criterion.levels.get(level, '')}")
        lines.append("")
    return "\n".join(lines)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _clamp_score(value) -> int:
    if not _is_number(value):
        return MISSING_CRITERION_SCORE
    # half-up rounding, not banker's rounding
    return int(min(4, max(1, math.floor(value + 0.5))))


def _valid_overall(value) -> bool:
    return _is_number(value) and 1 <= value <= 4


def _build_feedback(raw: Optional[_RawFeedback]) -> Feedback:
    defaults = Feedback()
    if raw is None:
        return defaults
    return Feedback(
        strength=raw.strength or defaults.strength,
        growth=raw.growth or defaults.growth,
        encouragement=raw.encouragement or defaults.encouragement,
    )


def parse_rubric_evaluation(reply: str, rubric: Rubric) -> Evaluation:
    raw = parse_json_reply(reply, _RawEvaluation)
    scores = {c.name: float(_clamp_score(raw.scores.get(c.name))) for c in rubric.criteria}

    if _valid_overall(raw.overall_score):
        overall = round(float(raw.overall_score), 1)
    else:
        total_weight = sum(c.weight for c in rubric.criteria) or 1.0
        weighted = sum(scores[c.name] * c.weight for c in rubric.criteria) / total_weight
        overall = round(weighted, 1)

    return Evaluation(scores=scores, overall_score=overall, feedback=_build_feedback(raw.feedback))


def parse_general_evaluation(reply: str) -> Evaluation:
    raw = parse_json_reply(reply, _RawEvaluation)
    scores = {name: float(_clamp_score(raw.scores.get(name))) for name in GENERAL_CRITERIA}

    if _valid_overall(raw.overall_score):
        overall = round(float(raw.overall_score), 1)
    else:
        overall = round(sum(scores.values()) / len(scores), 1)

    return Evaluation(scores=scores, overall_score=overall, feedback=_build_feedback(raw.feedback))


async def evaluate_writing(
    text: str,
    lesson: Lesson,
    rubric: Optional[Rubric],
    tier: int,
) -> Evaluation:
    """Score ``text`` against the rubric when there is one, else generally."""
    if rubric is not None:
        messages = render(
            "evaluator_rubric.yaml",
            tier_guidance=tier_guidance(tier),
            rubric_text=format_rubric(rubric),
            text=text,
        )
    else:
        messages = render(
            "evaluator_general.yaml",
            tier_guidance=tier_guidance(tier),
            lesson_title=lesson.title,
            text=text,
        )

    reply = await ai_chat(messages, use_case="assessment", temperature=0.3, json_mode=True)

    if rubric is not None:
        evaluation = parse_rubric_evaluation(reply, rubric)
    else:
        evaluation = parse_general_evaluation(reply)

    logger.info(
        "Scored lesson %s (%s): overall %.1f",
        lesson.id, rubric.id if rubric else "general", evaluation.overall_score,
    )
    return evaluation
