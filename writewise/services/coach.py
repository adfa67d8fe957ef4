"""
coach.py - Conversational lesson flow

Provides:
- start_lesson(): resume the newest unfinished session or open a new one
- retake_lesson(): always open a new session
- handle_message(): one student turn through the coach and the phase machine

Coach replies carry control markers; they are interpreted here, folded into
phaseState by the phase machine, and stripped before anything is stored or
shown to the child.
"""

import logging
from typing import Any, Dict, Optional

from writewise.db import curriculum_store, lesson_store
from writewise.db.database import atomic
from writewise.models.session import Message, Phase, Session
from writewise.services import catalog
from writewise.services.ai_client import ai_chat
from writewise.services.curriculum_planner import sync_week_statuses
from writewise.services.event_log import log_lesson_event
from writewise.services.learner_profile import (
    build_learner_context,
    format_learner_context_for_prompt,
    load_learner_profile,
)
from writewise.services.markers import interpret, strip_markers
from writewise.services.phase_machine import apply_coach_turn
from writewise.services.prompts import load_prompt

logger = logging.getLogger(__name__)

# Older turns are dropped from the prompt, not from the session
PROMPT_HISTORY_LIMIT = 30

_SPEAKERS = {"coach": "Coach", "student": "Student"}


class LessonNotFound(Exception):
    pass


class ChildNotFound(Exception):
    pass


class SessionNotFound(Exception):
    pass


# ── Prompt building ──────────────────────────────────────────────────

def format_conversation(session: Session) -> str:
    turns = session.conversation_history[-PROMPT_HISTORY_LIMIT:]
    return "\n".join(f"{_SPEAKERS[m.role]}: {m.content}" for m in turns)


async def learner_context_block(db, child: Dict[str, Any]) -> str:
    profile = await load_learner_profile(db, child["id"])
    if profile is None:
        return ""
    return format_learner_context_for_prompt(build_learner_context(profile, child["name"]))


def build_system_prompt(
    session: Session,
    child: Dict[str, Any],
    lesson: catalog.Lesson,
    learner_context: str,
) -> str:
    guidance = load_prompt("tiers.yaml")
    state = session.phase_state
    return load_prompt("coach.yaml")["system_prompt"].format(
        child_name=child["name"],
        tier_guidance=guidance["tiers"].get(child["tier"], ""),
        phase_guidance=guidance["phases"][session.phase.value],
        lesson_id=lesson.id,
        lesson_title=lesson.title,
        writing_type=lesson.type,
        phase=session.phase.value,
        objectives="\n".join(f"- {o}" for o in lesson.learning_objectives) or "- (none listed)",
        comprehension_passed=state.comprehension_check_passed,
        guided_attempts=state.guided_attempts,
        hints_given=state.hints_given,
        learner_context=learner_context,
    )


def _lesson_summary(lesson: catalog.Lesson) -> Dict[str, Any]:
    return {
        "id": lesson.id,
        "title": lesson.title,
        "unit": lesson.unit,
        "type": lesson.type,
        "learning_objectives": lesson.learning_objectives,
        "rubric_id": lesson.rubric_id,
    }


def session_payload(session: Session) -> Dict[str, Any]:
    return {
        "session_id": session.id,
        "child_id": session.child_id,
        "lesson_id": session.lesson_id,
        "phase": session.phase.value,
        "phase_state": session.phase_state.model_dump(by_alias=True),
        "conversation_history": [m.model_dump() for m in session.conversation_history],
    }


# ══════════════════════════════════════════════════════════════════════════════
# START / RETAKE
# ══════════════════════════════════════════════════════════════════════════════

async def _load_child_and_lesson(db, child_id: int, lesson_id: str):
    child = await curriculum_store.get_child(db, child_id)
    if not child:
        raise ChildNotFound(child_id)
    lesson = catalog.get_lesson(lesson_id)
    if not lesson:
        raise LessonNotFound(lesson_id)
    return child, lesson


async def _opening_message(db, child: Dict[str, Any], lesson: catalog.Lesson) -> Message:
    draft = Session(id=0, child_id=child["id"], lesson_id=lesson.id)
    system = build_system_prompt(draft, child, lesson, await learner_context_block(db, child))
    opening = load_prompt("coach.yaml")["opening_template"].format(child_name=child["name"])
    reply = await ai_chat(
        [{"role": "system", "content": system}, {"role": "user", "content": opening}],
        use_case="coach",
        temperature=0.7,
    )
    # the opening never moves the phase; markers are just removed
    return Message(role="coach", content=strip_markers(reply))


async def _open_session(db, child: Dict[str, Any], lesson: catalog.Lesson) -> Session:
    message = await _opening_message(db, child, lesson)
    async with atomic(db):
        session_id = await lesson_store.create_session(db, child["id"], lesson.id, [message])
        await lesson_store.start_lesson_progress(db, child["id"], lesson.id)
        await sync_week_statuses(db, child["id"])
    session = await lesson_store.get_session(db, session_id)
    log_lesson_event("lesson_started", session_id=session_id, child_id=child["id"], lesson_id=lesson.id)
    return session


async def start_lesson(db, child_id: int, lesson_id: str) -> Dict[str, Any]:
    child, lesson = await _load_child_and_lesson(db, child_id, lesson_id)

    existing = await lesson_store.find_resumable_session(db, child_id, lesson_id)
    if existing:
        log_lesson_event("lesson_resumed", session_id=existing.id, phase=existing.phase.value)
        return {**session_payload(existing), "resumed": True, "lesson": _lesson_summary(lesson)}

    session = await _open_session(db, child, lesson)
    return {**session_payload(session), "resumed": False, "lesson": _lesson_summary(lesson)}


async def retake_lesson(db, child_id: int, lesson_id: str) -> Dict[str, Any]:
    """New session for a lesson; earlier sessions and their assessments stay as they are."""
    child, lesson = await _load_child_and_lesson(db, child_id, lesson_id)
    session = await _open_session(db, child, lesson)
    return {**session_payload(session), "resumed": False, "lesson": _lesson_summary(lesson)}


# ══════════════════════════════════════════════════════════════════════════════
# MESSAGE TURN
# ══════════════════════════════════════════════════════════════════════════════

async def handle_message(db, session_id: int, text: str) -> Dict[str, Any]:
    session = await lesson_store.get_session(db, session_id)
    if not session:
        raise SessionNotFound(session_id)
    child, lesson = await _load_child_and_lesson(db, session.child_id, session.lesson_id)

    session.conversation_history.append(Message(role="student", content=text))
    log_lesson_event("message_sent", session_id=session.id, phase=session.phase.value, chars=len(text))

    system = build_system_prompt(session, child, lesson, await learner_context_block(db, child))
    user = load_prompt("coach.yaml")["user_template"].format(conversation=format_conversation(session))
    reply = await ai_chat(
        [{"role": "system", "content": system}, {"role": "user", "content": user}],
        use_case="coach",
        temperature=0.7,
    )

    signals = interpret(reply)
    previous_phase = session.phase
    new_phase: Optional[Phase] = apply_coach_turn(session, signals)

    coach_message = Message(role="coach", content=signals.display_text)
    session.conversation_history.append(coach_message)

    async with atomic(db):
        await lesson_store.save_session(db, session)
        if new_phase is not None:
            await lesson_store.set_current_phase(db, session.child_id, session.lesson_id, new_phase)

    log_lesson_event("message_received", session_id=session.id, phase=session.phase.value)
    if signals.comprehension_passed and previous_phase == Phase.INSTRUCTION:
        log_lesson_event("comprehension_check", session_id=session.id, passed=True)
    if signals.hint_given and previous_phase == Phase.GUIDED:
        log_lesson_event("hint_given", session_id=session.id, hints=session.phase_state.hints_given)
    if new_phase is not None:
        log_lesson_event(
            "phase_transition", session_id=session.id, from_phase=previous_phase.value, to_phase=new_phase.value
        )
        if new_phase == Phase.ASSESSMENT:
            log_lesson_event("assessment_started", session_id=session.id)

    return {
        "session_id": session.id,
        "message": coach_message.model_dump(),
        "phase": session.phase.value,
        "phase_update": new_phase.value if new_phase else None,
        "writing_prompt": signals.writing_prompt,
        "expects_response": signals.expects_response,
        "phase_state": session.phase_state.model_dump(by_alias=True),
    }
