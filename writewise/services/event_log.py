"""Structured lesson events, written to the standard log."""

import logging

logger = logging.getLogger("writewise.events")

LESSON_EVENTS = {
    "lesson_started",
    "lesson_resumed",
    "message_sent",
    "message_received",
    "comprehension_check",
    "hint_given",
    "phase_transition",
    "assessment_started",
    "assessment_submitted",
    "revision_submitted",
    "badge_unlocked",
    "curriculum_adapted",
}


def log_lesson_event(event: str, session_id=None, **fields) -> None:
    if event not in LESSON_EVENTS:
        logger.warning("Unknown lesson event %r", event)
    details = " ".join(f"{k}={v}" for k, v in sorted(fields.items()))
    logger.info("event=%s session=%s %s", event, session_id, details)
