"""
curriculum_adapter.py - Automatic curriculum adjustment from assessment history

Runs after each assessment write. Looks at up to the 10 most recent
assessments (newest first) and fires at most one trigger, in priority order:

1. struggling      - the 3 most recent scores are all below 2.0
2. excelling       - the 5 most recent scores are all above 3.5
3. type weakness   - some writing type averages below 2.0 over 3+ assessments

Only the first two pending weeks of the active curriculum are touched. For
each week that actually changes, an immutable revision snapshot is written
before the week's lesson list is replaced, in one transaction.
"""

import logging
from typing import Optional, List, Dict, Any

from writewise.db import curriculum_store, lesson_store
from writewise.db.database import atomic
from writewise.services import catalog
from writewise.services.event_log import log_lesson_event

logger = logging.getLogger(__name__)

MIN_ASSESSMENTS = 3
HISTORY_WINDOW = 10
STRUGGLING_WINDOW = 3
STRUGGLING_BELOW = 2.0
EXCELLING_WINDOW = 5
EXCELLING_ABOVE = 3.5
WEAK_TYPE_MIN_COUNT = 3
WEAK_TYPE_BELOW = 2.0
WEEKS_TO_ADAPT = 2

FOUNDATIONAL_UNIT = 1
ADVANCED_MIN_UNIT = 3

STRUGGLING = "auto_struggling"
EXCELLING = "auto_excelling"


class _WeekNoLongerPending(Exception):
    pass


# ══════════════════════════════════════════════════════════════════════════════
# TRIGGER DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def detect_trigger(recent: List[Dict[str, Any]]) -> Optional[tuple[str, Optional[str]]]:
    """Return (trigger, weak_type) for newest-first assessments, or None."""
    if len(recent) < MIN_ASSESSMENTS:
        return None

    scores = [a["overall_score"] for a in recent]

    if all(s < STRUGGLING_BELOW for s in scores[:STRUGGLING_WINDOW]):
        return "struggling", None

    if len(scores) >= EXCELLING_WINDOW and all(s > EXCELLING_ABOVE for s in scores[:EXCELLING_WINDOW]):
        return "excelling", None

    by_type: Dict[str, List[float]] = {}
    for a in recent:
        writing_type = catalog.writing_type_of(a["lesson_id"])
        if writing_type:
            by_type.setdefault(writing_type, []).append(a["overall_score"])
    for writing_type, type_scores in by_type.items():
        if len(type_scores) >= WEAK_TYPE_MIN_COUNT and sum(type_scores) / len(type_scores) < WEAK_TYPE_BELOW:
            return "type_weakness", writing_type

    return None


# ══════════════════════════════════════════════════════════════════════════════
# WEEK REWRITES (pure)
# ══════════════════════════════════════════════════════════════════════════════

def _pick(candidates: List[str], exclude: set, scheduled: set) -> Optional[str]:
    """First candidate not in this week, preferring ones not scheduled anywhere."""
    for lesson_id in candidates:
        if lesson_id not in exclude and lesson_id not in scheduled:
            return lesson_id
    for lesson_id in candidates:
        if lesson_id not in exclude:
            return lesson_id
    return None


def rewrite_for_struggling(lesson_ids: List[str], tier_lessons: List[catalog.Lesson], scheduled: set) -> List[str]:
    """Swap about half the week, from the front, for unit-1 lessons.

    Foundational lessons of the writing types already in the week are
    preferred; any unit-1 lesson of the tier is the fallback.
    """
    foundational = [l for l in tier_lessons if catalog.unit_number(l.id) == FOUNDATIONAL_UNIT]
    week_types = {catalog.writing_type_of(i) for i in lesson_ids}
    same_type = [l.id for l in foundational if l.type in week_types]
    candidates = same_type + [l.id for l in foundational if l.id not in same_type]

    new_ids = list(lesson_ids)
    replace_count = max(1, len(new_ids) // 2)
    for i in range(min(replace_count, len(new_ids))):
        choice = _pick(candidates, set(new_ids), scheduled)
        if choice is None:
            break
        new_ids[i] = choice
    return new_ids


def rewrite_for_excelling(lesson_ids: List[str], tier_lessons: List[catalog.Lesson], scheduled: set) -> List[str]:
    """Swap about half the week, from the end backward, for unit 3+ lessons."""
    candidates = [l.id for l in tier_lessons if catalog.unit_number(l.id) >= ADVANCED_MIN_UNIT]

    new_ids = list(lesson_ids)
    replace_count = max(1, len(new_ids) // 2)
    for i in range(min(replace_count, len(new_ids))):
        choice = _pick(candidates, set(new_ids), scheduled)
        if choice is None:
            break
        new_ids[len(new_ids) - 1 - i] = choice
    return new_ids


def rewrite_for_weak_type(
    lesson_ids: List[str],
    tier_lessons: List[catalog.Lesson],
    scheduled: set,
    weak_type: str,
) -> List[str]:
    """Replace the first lesson of another type with one of the weak type."""
    candidates = [l.id for l in tier_lessons if l.type == weak_type]
    choice = _pick(candidates, set(lesson_ids), scheduled)
    if choice is None:
        return list(lesson_ids)

    new_ids = list(lesson_ids)
    for i, lesson_id in enumerate(new_ids):
        if catalog.writing_type_of(lesson_id) != weak_type:
            new_ids[i] = choice
            break
    return new_ids


# ══════════════════════════════════════════════════════════════════════════════
# ENTRY POINT
# ══════════════════════════════════════════════════════════════════════════════

_DESCRIPTIONS = {
    "struggling": "Automatically added more foundational lessons due to low scores on recent assessments.",
    "excelling": "Automatically advanced to more challenging lessons due to consistently high scores.",
    "type_weakness": "Automatically added extra {weak_type} writing practice due to low scores in that area.",
}

_REASONS = {
    "struggling": STRUGGLING,
    "excelling": EXCELLING,
    "type_weakness": STRUGGLING,
}


async def check_curriculum_adaptation(db, child_id: int) -> Optional[str]:
    """Adapt the child's active curriculum if a trigger fires.

    Returns the trigger name when at least one week changed, otherwise None.
    """
    curriculum = await curriculum_store.get_active_curriculum(db, child_id)
    if not curriculum:
        return None

    if await lesson_store.count_child_assessments(db, child_id) < MIN_ASSESSMENTS:
        return None

    recent = await lesson_store.get_recent_assessments(db, child_id, limit=HISTORY_WINDOW)
    detected = detect_trigger(recent)
    if detected is None:
        return None
    trigger, weak_type = detected

    child = await curriculum_store.get_child(db, child_id)
    if not child:
        return None
    tier_lessons = catalog.get_lessons_by_tier(child["tier"])

    all_weeks = await curriculum_store.list_weeks(db, curriculum["id"])
    scheduled = {lesson_id for w in all_weeks for lesson_id in w["lesson_ids"]}
    pending = [w for w in all_weeks if w["status"] == "pending"][:WEEKS_TO_ADAPT]

    changed = 0
    for week in pending:
        current = week["lesson_ids"]
        if trigger == "struggling":
            new_ids = rewrite_for_struggling(current, tier_lessons, scheduled)
        elif trigger == "excelling":
            new_ids = rewrite_for_excelling(current, tier_lessons, scheduled)
        else:
            new_ids = rewrite_for_weak_type(current, tier_lessons, scheduled, weak_type)

        if new_ids == current:
            continue

        try:
            async with atomic(db):
                await curriculum_store.insert_revision(
                    db,
                    curriculum["id"],
                    reason=_REASONS[trigger],
                    description=_DESCRIPTIONS[trigger].format(weak_type=weak_type),
                    previous_plan={"weekNumber": week["week_number"], "lessonIds": current},
                    new_plan={"weekNumber": week["week_number"], "lessonIds": new_ids},
                )
                updated = await curriculum_store.update_pending_week(db, week["id"], new_ids)
                if not updated:
                    # rolls the snapshot back with it
                    raise _WeekNoLongerPending(week["id"])
        except _WeekNoLongerPending:
            logger.info("Week %s of curriculum %s started before adaptation, skipped", week["id"], curriculum["id"])
            continue
        scheduled.update(new_ids)
        changed += 1

    if not changed:
        return None

    log_lesson_event(
        "curriculum_adapted",
        child_id=child_id,
        trigger=trigger,
        weak_type=weak_type,
        weeks=changed,
    )
    return trigger

