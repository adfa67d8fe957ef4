"""
curriculum_planner.py - Curriculum generation and parent-requested revision

Provides:
- generate_curriculum(): LLM week plan, with a sequential fallback planner
- revise_curriculum(): LLM re-plan of pending weeks only, fail closed
- get_curriculum_view(): active curriculum with lesson details per week
- sync_week_statuses(): weeks follow lesson progress (pending -> in_progress -> completed)

Lesson ids coming back from the model are checked against the child's tier
catalog; unknown ids are dropped, never stored.
"""

import logging
from datetime import date, timedelta
from typing import Optional, List, Dict, Any, Union

from writewise.db import curriculum_store, lesson_store
from writewise.db.database import atomic
from writewise.models.assessment import Rejection
from writewise.models.curriculum import WeekPlan
from writewise.services import catalog
from writewise.services.ai_client import ai_chat, parse_json_reply, LLMResponseError
from writewise.services.prompts import render

logger = logging.getLogger(__name__)

WEEK_PLANS = List[WeekPlan]


class CurriculumChanged(Exception):
    """A pending week started while a revision was being written."""


# ── Helpers ───────────────────────────────────────────────────────────

def next_monday(today: Optional[date] = None) -> date:
    """Following Monday; a Monday maps to the Monday after."""
    today = today or date.today()
    return today + timedelta(days=7 - today.weekday())


def format_catalog(lessons: List[catalog.Lesson]) -> str:
    return "\n".join(f"{l.id} | {l.type} | {l.unit} | {l.title}" for l in lessons)


def clean_lesson_ids(lesson_ids: List[str], valid_ids: set) -> List[str]:
    """Keep known ids in order, without duplicates."""
    seen = set()
    cleaned = []
    for lesson_id in lesson_ids:
        if lesson_id in valid_ids and lesson_id not in seen:
            seen.add(lesson_id)
            cleaned.append(lesson_id)
    return cleaned


def fallback_plan(
    lessons: List[catalog.Lesson],
    week_count: int,
    lessons_per_week: int,
    focus_areas: Optional[List[str]] = None,
) -> WEEK_PLANS:
    """Slice the (focus-filtered) catalog sequentially into weeks.

    Stops early when the catalog runs out. Each week is themed after the unit
    of its first lesson.
    """
    pool = [l for l in lessons if l.type in focus_areas] if focus_areas else list(lessons)
    plans = []
    for w in range(week_count):
        week_lessons = pool[w * lessons_per_week:(w + 1) * lessons_per_week]
        if not week_lessons:
            break
        plans.append(WeekPlan(
            week_number=w + 1,
            theme=week_lessons[0].unit or f"Week {w + 1}",
            lesson_ids=[l.id for l in week_lessons],
        ))
    return plans


def _normalize_generated(plans: WEEK_PLANS, week_count: int, valid_ids: set) -> WEEK_PLANS:
    """Order by week number, cap at week_count and renumber from 1."""
    ordered = sorted(plans, key=lambda p: p.week_number)[:week_count]
    return [
        WeekPlan(
            week_number=i + 1,
            theme=plan.theme or f"Week {i + 1}",
            lesson_ids=clean_lesson_ids(plan.lesson_ids, valid_ids),
        )
        for i, plan in enumerate(ordered)
    ]


def _placement_notes(placement: Optional[Dict[str, Any]]) -> str:
    if not placement or not placement.get("analysis"):
        return ""
    analysis = placement["analysis"]
    notes = []
    if analysis.get("strengths"):
        notes.append(f"Student strengths: {', '.join(analysis['strengths'])}")
    if analysis.get("gaps"):
        notes.append(f"Student gaps: {', '.join(analysis['gaps'])}")
    return "\n".join(notes)


def _week_snapshot(week: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "weekNumber": week["week_number"],
        "theme": week["theme"],
        "lessonIds": week["lesson_ids"],
        "status": week["status"],
    }


def _describe_weeks(weeks: List[Dict[str, Any]]) -> str:
    if not weeks:
        return "None."
    lines = []
    for w in weeks:
        titles = []
        for lesson_id in w["lesson_ids"]:
            lesson = catalog.get_lesson(lesson_id)
            titles.append(f'{lesson_id} "{lesson.title}"' if lesson else lesson_id)
        lines.append(f"Week {w['week_number']} ({w['status']}): {w['theme']}: {', '.join(titles)}")
    return "\n".join(lines)


# ══════════════════════════════════════════════════════════════════════════════
# GENERATE
# ══════════════════════════════════════════════════════════════════════════════

async def generate_curriculum(
    db,
    child: Dict[str, Any],
    week_count: int = 8,
    lessons_per_week: int = 3,
    focus_areas: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Create a new ACTIVE curriculum for ``child``; always yields a plan.

    Any earlier active curriculum is archived in the same transaction.
    """
    focus_areas = focus_areas or []
    lessons = catalog.get_lessons_by_tier(child["tier"])
    valid_ids = {l.id for l in lessons}
    placement = await curriculum_store.get_placement(db, child["id"])

    messages = render(
        "curriculum_generate.yaml",
        child_name=child["name"],
        child_age=child["age"],
        tier=child["tier"],
        week_count=week_count,
        lessons_per_week=lessons_per_week,
        focus_areas=", ".join(focus_areas) if focus_areas else "balance all writing types",
        placement_notes=_placement_notes(placement),
        catalog=format_catalog(lessons),
    )

    plans: WEEK_PLANS = []
    try:
        reply = await ai_chat(messages, use_case="cheap", temperature=0.4, max_tokens=2048)
        plans = _normalize_generated(parse_json_reply(reply, WEEK_PLANS), week_count, valid_ids)
    except LLMResponseError as e:
        logger.warning("Curriculum plan for child %s unparseable, using fallback: %s", child["id"], e)
    except Exception as e:
        logger.warning("Curriculum planner call failed for child %s, using fallback: %s", child["id"], e)

    if not any(p.lesson_ids for p in plans):
        plans = fallback_plan(lessons, week_count, lessons_per_week, focus_areas)

    async with atomic(db):
        curriculum_id = await curriculum_store.create_curriculum(
            db,
            child["id"],
            week_count=week_count,
            lessons_per_week=lessons_per_week,
            focus_areas=focus_areas,
            start_date=next_monday().isoformat(),
        )
        for plan in plans:
            await curriculum_store.insert_week(
                db, curriculum_id, plan.week_number, plan.theme, plan.lesson_ids
            )

    logger.info("Curriculum %s created for child %s: %d weeks", curriculum_id, child["id"], len(plans))
    return await get_curriculum_view(db, child["id"])


# ══════════════════════════════════════════════════════════════════════════════
# REVISE
# ══════════════════════════════════════════════════════════════════════════════

async def revise_curriculum(
    db,
    child: Dict[str, Any],
    reason: str,
    description: str,
) -> Union[Dict[str, Any], Rejection]:
    """Re-plan the pending weeks of the active curriculum.

    Raises LLMResponseError when the model reply cannot be used; nothing is
    written in that case.
    """
    curriculum = await curriculum_store.get_active_curriculum(db, child["id"])
    if not curriculum:
        return Rejection(error="not_found", message="No curriculum found", status_code=404)

    weeks = await curriculum_store.list_weeks(db, curriculum["id"])
    pending = [w for w in weeks if w["status"] == "pending"]
    locked = [w for w in weeks if w["status"] != "pending"]
    if not pending:
        return Rejection(
            error="no_pending_weeks",
            message="No pending weeks to revise. This curriculum is already finished.",
        )

    lessons = catalog.get_lessons_by_tier(child["tier"])
    valid_ids = {l.id for l in lessons}
    focus_areas = curriculum.get("focus_areas") or []

    messages = render(
        "curriculum_revise.yaml",
        child_name=child["name"],
        child_age=child["age"],
        tier=child["tier"],
        lessons_per_week=curriculum["lessons_per_week"],
        focus_areas=", ".join(focus_areas) if focus_areas else "balance all writing types",
        reason=reason,
        description=description,
        locked_weeks=_describe_weeks(locked),
        pending_weeks=_describe_weeks(pending),
        first_week=pending[0]["week_number"],
        last_week=pending[-1]["week_number"],
        catalog=format_catalog(lessons),
    )
    reply = await ai_chat(messages, use_case="cheap", temperature=0.4, max_tokens=2048)
    revised = parse_json_reply(reply, WEEK_PLANS)

    pending_by_number = {w["week_number"]: w for w in pending}
    updates = []
    for plan in revised:
        week = pending_by_number.get(plan.week_number)
        if week is None:
            logger.info("Revision for child %s names non-pending week %s, ignored", child["id"], plan.week_number)
            continue
        updates.append((week, clean_lesson_ids(plan.lesson_ids, valid_ids), plan.theme or week["theme"]))

    previous_plan = [_week_snapshot(w) for w in weeks]
    changed = {week["id"]: (ids, theme) for week, ids, theme in updates}
    new_plan = []
    for w in weeks:
        if w["id"] in changed:
            ids, theme = changed[w["id"]]
            new_plan.append({**_week_snapshot(w), "lessonIds": ids, "theme": theme})
        else:
            new_plan.append(_week_snapshot(w))

    try:
        async with atomic(db):
            await curriculum_store.insert_revision(
                db, curriculum["id"], reason, description, previous_plan, new_plan
            )
            for week, ids, theme in updates:
                if not await curriculum_store.update_pending_week(db, week["id"], ids, theme):
                    raise CurriculumChanged(week["id"])
            await curriculum_store.touch_curriculum(db, curriculum["id"])
    except CurriculumChanged:
        return Rejection(
            error="curriculum_changed",
            message="This curriculum changed while it was being revised. Please try again.",
            status_code=409,
        )

    logger.info(
        "Curriculum %s revised for child %s (%s): %d weeks updated",
        curriculum["id"], child["id"], reason, len(updates),
    )
    view = await get_curriculum_view(db, child["id"])
    view["revision"] = {
        "reason": reason,
        "description": description,
        "previous_plan": previous_plan,
        "new_plan": new_plan,
    }
    return view


# ══════════════════════════════════════════════════════════════════════════════
# READ
# ══════════════════════════════════════════════════════════════════════════════

def _lesson_summary(lesson_id: str) -> Dict[str, Any]:
    lesson = catalog.get_lesson(lesson_id)
    if lesson is None:
        return {"id": lesson_id, "title": "Unknown lesson", "type": "unknown", "unit": "unknown"}
    return {"id": lesson.id, "title": lesson.title, "type": lesson.type, "unit": lesson.unit}


async def get_curriculum_view(db, child_id: int) -> Optional[Dict[str, Any]]:
    curriculum = await curriculum_store.get_active_curriculum(db, child_id)
    if not curriculum:
        return None
    weeks = await curriculum_store.list_weeks(db, curriculum["id"])
    return {
        "curriculum": {
            "id": curriculum["id"],
            "status": curriculum["status"],
            "week_count": curriculum["week_count"],
            "lessons_per_week": curriculum["lessons_per_week"],
            "focus_areas": curriculum["focus_areas"],
            "start_date": curriculum["start_date"],
        },
        "weeks": [
            {
                "id": w["id"],
                "week_number": w["week_number"],
                "theme": w["theme"],
                "status": w["status"],
                "lesson_ids": w["lesson_ids"],
                "lessons": [_lesson_summary(i) for i in w["lesson_ids"]],
            }
            for w in weeks
        ],
    }


# ══════════════════════════════════════════════════════════════════════════════
# WEEK PROGRESS
# ══════════════════════════════════════════════════════════════════════════════

WEEK_STATUS_ORDER = {"pending": 0, "in_progress": 1, "completed": 2}


def week_status_for(lesson_ids: List[str], lesson_statuses: Dict[str, str]) -> str:
    """completed once every lesson is completed; in_progress once any is started."""
    if lesson_ids and all(lesson_statuses.get(i) == "completed" for i in lesson_ids):
        return "completed"
    if any(i in lesson_statuses for i in lesson_ids):
        return "in_progress"
    return "pending"


async def sync_week_statuses(db, child_id: int) -> List[Dict[str, Any]]:
    """Move active-curriculum weeks forward to match lesson progress.

    Statuses never move back, so a started week stays out of reach of
    adaptation and revision. Returns the weeks that changed.
    """
    curriculum = await curriculum_store.get_active_curriculum(db, child_id)
    if not curriculum:
        return []
    lesson_statuses = await lesson_store.list_lesson_statuses(db, child_id)

    changed = []
    for week in await curriculum_store.list_weeks(db, curriculum["id"]):
        target = week_status_for(week["lesson_ids"], lesson_statuses)
        if WEEK_STATUS_ORDER[target] > WEEK_STATUS_ORDER.get(week["status"], 0):
            await curriculum_store.set_week_status(db, week["id"], target)
            changed.append({"week_number": week["week_number"], "status": target})
    if changed:
        logger.info("Child %s curriculum weeks advanced: %s", child_id, changed)
    return changed
