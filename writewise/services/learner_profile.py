"""
learner_profile.py - What the coach knows about a child

Provides:
- build_learner_profile(): aggregate the last 20 completions into a profile
  and store it as the child's snapshot
- build_learner_context(): turn a profile into prompt-ready statements
- format_learner_context_for_prompt(): render the context as markdown
"""

import logging
from typing import Optional, List

from writewise.db import lesson_store, progress_store
from writewise.models.progress import (
    CriterionAverage,
    LearnerContext,
    LearnerProfile,
    PreferenceRecord,
    WritingSampleRecord,
)

logger = logging.getLogger(__name__)

COMPLETION_WINDOW = 20
SAMPLE_WINDOW = 5
TREND_WINDOW = 3
TREND_DEADBAND = 0.3
STRENGTH_MIN = 3.0
GROWTH_BELOW = 2.5
MAX_STRENGTHS = 3
MAX_GROWTH_AREAS = 2
MAX_CONNECTION_POINTS = 3


def _avg(values: List[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def compute_trend(recent: float, previous: float, threshold: float = TREND_DEADBAND) -> str:
    """improving / declining / stable; no prior data reads as stable."""
    if previous == 0:
        return "stable"
    diff = recent - previous
    if diff > threshold:
        return "improving"
    if diff < -threshold:
        return "declining"
    return "stable"


def compute_scaffolding_trend(recent_hints: float, previous_hints: float, threshold: float = TREND_DEADBAND) -> str:
    """More hints lately is "increasing" (the child needs more support)."""
    if previous_hints == 0:
        return "stable"
    diff = recent_hints - previous_hints
    if diff > threshold:
        return "increasing"
    if diff < -threshold:
        return "decreasing"
    return "stable"


def engagement_for(recent_avg: float) -> str:
    if recent_avg >= 3.0:
        return "high"
    if recent_avg >= 2.0:
        return "medium"
    return "low"


def summarize_completions(child_id: int, completions: list, samples: list, preferences: list) -> LearnerProfile:
    """Pure part of the profile build; ``completions`` are newest first."""
    totals: dict[str, list[float]] = {}
    for comp in completions:
        for s in comp["scores"]:
            totals.setdefault(s["criterion"], []).append(s["score"])

    averages = [
        CriterionAverage(criterion=criterion, avg_score=round(_avg(scores), 2))
        for criterion, scores in totals.items()
    ]
    strengths = sorted(
        (c for c in averages if c.avg_score >= STRENGTH_MIN), key=lambda c: -c.avg_score
    )[:MAX_STRENGTHS]
    growth_areas = sorted(
        (c for c in averages if c.avg_score < GROWTH_BELOW), key=lambda c: c.avg_score
    )[:MAX_GROWTH_AREAS]

    last = completions[:TREND_WINDOW]
    prev = completions[TREND_WINDOW:TREND_WINDOW * 2]

    recent_avg = _avg([c["overall_score"] for c in last])
    last_time = [c["time_spent_sec"] for c in last if c["time_spent_sec"] is not None]
    prev_time = [c["time_spent_sec"] for c in prev if c["time_spent_sec"] is not None]

    return LearnerProfile(
        child_id=child_id,
        total_lessons=len(completions),
        strengths=strengths,
        growth_areas=growth_areas,
        score_trajectory=compute_trend(recent_avg, _avg([c["overall_score"] for c in prev])),
        scaffolding_trend=compute_scaffolding_trend(
            _avg([c["hints_used"] for c in last]),
            _avg([c["hints_used"] for c in prev]),
        ),
        engagement_level=engagement_for(recent_avg),
        # time on task stands in for length
        writing_length_trend=compute_trend(_avg(last_time), _avg(prev_time)),
        recent_samples=[
            WritingSampleRecord(
                type=s["writing_type"],
                criterion=s["criterion"],
                excerpt=s["excerpt"],
                lesson_id=s["lesson_id"],
                created_at=s["created_at"],
            )
            for s in samples
        ],
        preferences=[PreferenceRecord(**p) for p in preferences],
    )


async def build_learner_profile(db, child_id: int) -> Optional[LearnerProfile]:
    """Recompute and store the child's profile. None when nothing is completed yet."""
    completions = await lesson_store.get_recent_completions(db, child_id, limit=COMPLETION_WINDOW)
    if not completions:
        return None

    samples = await lesson_store.get_recent_writing_samples(db, child_id, limit=SAMPLE_WINDOW)
    preferences = await progress_store.list_preferences(db, child_id)

    profile = summarize_completions(child_id, completions, samples, preferences)
    await progress_store.upsert_profile_snapshot(db, child_id, profile.model_dump())
    logger.info(
        "Learner profile for child %s: %d lessons, trajectory %s",
        child_id, profile.total_lessons, profile.score_trajectory,
    )
    return profile


async def load_learner_profile(db, child_id: int) -> Optional[LearnerProfile]:
    """Last stored snapshot, without recomputing."""
    snapshot = await progress_store.get_profile_snapshot(db, child_id)
    if not snapshot:
        return None
    return LearnerProfile.model_validate(snapshot["profile"])


# ══════════════════════════════════════════════════════════════════════════════
# PROMPT CONTEXT
# ══════════════════════════════════════════════════════════════════════════════

def _connection_points(profile: LearnerProfile) -> List[str]:
    points = []

    if profile.strengths:
        top = profile.strengths[0].criterion
        points.append(
            f"Build on their strength in {top} to boost confidence when introducing new concepts."
        )

    if profile.growth_areas:
        growth = profile.growth_areas[0].criterion
        if profile.scaffolding_trend == "increasing":
            points.append(
                f"They need extra scaffolding for {growth}. Break tasks into smaller steps "
                "and provide concrete examples before asking them to try."
            )
        else:
            points.append(
                f"Gently encourage growth in {growth} with targeted examples and positive reinforcement."
            )

    if profile.score_trajectory == "declining" and profile.engagement_level != "high":
        points.append(
            "Scores have been dipping. Prioritize encouragement and celebrate small wins to rebuild momentum."
        )
    elif profile.score_trajectory == "improving":
        points.append(
            "They are on an upward trend. Acknowledge their progress explicitly to reinforce a growth mindset."
        )

    return points[:MAX_CONNECTION_POINTS]


_TRAJECTORY_LABELS = {
    "improving": "Scores are trending upward.",
    "declining": "Scores have been trending downward recently.",
    "stable": "Scores have been steady.",
}


def build_learner_context(profile: LearnerProfile, student_name: str) -> LearnerContext:
    plural = "" if profile.total_lessons == 1 else "s"
    summary = (
        f"{student_name} has completed {profile.total_lessons} lesson{plural}. "
        f"{_TRAJECTORY_LABELS[profile.score_trajectory]} "
        f"Engagement level: {profile.engagement_level}."
    )
    return LearnerContext(
        summary=summary,
        strengths=[f"Strong in {s.criterion} (avg {s.avg_score:.1f})" for s in profile.strengths],
        growth_areas=[f"Needs support in {g.criterion} (avg {g.avg_score:.1f})" for g in profile.growth_areas],
        recent_samples=[{"type": s.type, "excerpt": s.excerpt} for s in profile.recent_samples],
        preferences=[{"category": p.category, "value": p.value} for p in profile.preferences],
        connection_points=_connection_points(profile),
    )


def format_learner_context_for_prompt(context: LearnerContext) -> str:
    sections = ["## What You Know About This Student", "", context.summary]

    def add(title: str, lines: List[str]):
        if lines:
            sections.extend(["", f"### {title}"])
            sections.extend(f"- {line}" for line in lines)

    add("Strengths", context.strengths)
    add("Growth Areas", context.growth_areas)
    add("Recent Writing Samples", [f'**{s["type"]}**: "{s["excerpt"]}"' for s in context.recent_samples])
    add("Student Preferences", [f'{p["category"]}: {p["value"]}' for p in context.preferences])
    add("Teaching Connection Points", context.connection_points)

    sections.extend([
        "",
        "Use this context to personalize your teaching. "
        "Reference strengths as confidence anchors. "
        "Address growth areas encouragingly.",
    ])
    return "\n".join(sections)
