"""Lesson phase state machine.

instruction -> guided -> assessment -> feedback, forward only. The first two
steps are requested by the coach through markers; feedback is entered when
writing is submitted. A retake never rewinds a session, it starts a new one.
"""

import logging
from datetime import datetime
from typing import Optional

from writewise.models.session import Phase, PHASE_ORDER, CoachSignals, Session

logger = logging.getLogger(__name__)

# Transitions the coach may request
_COACH_STEPS = {
    Phase.INSTRUCTION: Phase.GUIDED,
    Phase.GUIDED: Phase.ASSESSMENT,
}

SUBMITTABLE_PHASES = {Phase.ASSESSMENT, Phase.GUIDED}


def phase_rank(phase: Phase) -> int:
    return PHASE_ORDER.index(phase)


def apply_coach_turn(
    session: Session,
    signals: CoachSignals,
    now: Optional[str] = None,
) -> Optional[Phase]:
    """Fold one student turn + coach reply into the session.

    Mutates ``session.phase_state`` (and ``session.phase`` on a transition).
    Returns the new phase when the session advanced, otherwise None.
    Requests that are not the next forward step, or a move to guided before
    the comprehension gate is passed, are dropped without error.
    """
    state = session.phase_state
    current = session.phase

    if current == Phase.INSTRUCTION and signals.comprehension_passed:
        state.comprehension_check_passed = True

    if current == Phase.GUIDED:
        state.guided_attempts += 1
        if signals.hint_given:
            state.hints_given += 1

    target = signals.transition_request
    if target is None:
        return None

    if _COACH_STEPS.get(current) != target:
        logger.debug(
            "Session %s: ignoring %s -> %s (not the next step)",
            session.id, current.value, target.value,
        )
        return None

    if target == Phase.GUIDED:
        if not state.comprehension_check_passed:
            logger.info("Session %s: guided practice held back until comprehension check passes", session.id)
            return None
        state.instruction_completed = True

    if target == Phase.ASSESSMENT:
        state.guided_complete = True
        state.writing_started_at = now or datetime.now().astimezone().isoformat()

    session.phase = target
    return target


def can_submit(session: Session) -> bool:
    # guided is accepted too: the client can submit before the coach's
    # assessment transition has been saved
    return session.phase in SUBMITTABLE_PHASES


def enter_feedback(session: Session) -> None:
    if session.phase not in SUBMITTABLE_PHASES:
        raise ValueError(f"cannot enter feedback from {session.phase.value}")
    session.phase = Phase.FEEDBACK
