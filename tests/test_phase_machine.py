"""
test_phase_machine.py - Tests for lesson phase transitions

Tests:
- instruction -> guided is held back until comprehension passes
- phases only move forward, one step at a time
- guided turns count attempts and hints
- entering assessment timestamps the writing start
- submit is accepted in assessment and guided only
"""

import pytest

from writewise.models.session import CoachSignals, Phase, Session
from writewise.services.markers import interpret
from writewise.services.phase_machine import (
    apply_coach_turn,
    can_submit,
    enter_feedback,
    phase_rank,
)


def _session(phase=Phase.INSTRUCTION) -> Session:
    return Session(id=1, child_id=1, lesson_id="N1.1.1", phase=phase)


def _signals(**kwargs) -> CoachSignals:
    return CoachSignals(display_text="ok", **kwargs)


class TestComprehensionGate:

    def test_guided_blocked_without_comprehension(self):
        session = _session()
        result = apply_coach_turn(session, _signals(transition_request=Phase.GUIDED))
        assert result is None
        assert session.phase == Phase.INSTRUCTION
        assert session.phase_state.instruction_completed is False

    def test_comprehension_and_transition_in_same_reply(self):
        session = _session()
        signals = interpret("You got it! [COMPREHENSION_CHECK: passed] [PHASE_TRANSITION: guided]")
        assert apply_coach_turn(session, signals) == Phase.GUIDED
        assert session.phase == Phase.GUIDED
        assert session.phase_state.comprehension_check_passed is True
        assert session.phase_state.instruction_completed is True

    def test_comprehension_remembered_across_turns(self):
        session = _session()
        apply_coach_turn(session, _signals(comprehension_passed=True))
        assert session.phase == Phase.INSTRUCTION
        assert apply_coach_turn(session, _signals(transition_request=Phase.GUIDED)) == Phase.GUIDED


class TestForwardOnly:

    @pytest.mark.parametrize("current,requested", [
        (Phase.INSTRUCTION, Phase.ASSESSMENT),
        (Phase.GUIDED, Phase.GUIDED),
        (Phase.ASSESSMENT, Phase.GUIDED),
        (Phase.FEEDBACK, Phase.GUIDED),
        (Phase.FEEDBACK, Phase.ASSESSMENT),
    ])
    def test_illegal_steps_ignored(self, current, requested):
        session = _session(current)
        session.phase_state.comprehension_check_passed = True
        assert apply_coach_turn(session, _signals(transition_request=requested)) is None
        assert session.phase == current

    def test_phase_never_decreases_over_a_lesson(self):
        session = _session()
        replies = [
            "[PHASE_TRANSITION: guided]",
            "[COMPREHENSION_CHECK: passed]",
            "[PHASE_TRANSITION: assessment]",
            "[PHASE_TRANSITION: guided]",
            "[PHASE_TRANSITION: guided]",
            "[PHASE_TRANSITION: assessment]",
            "[PHASE_TRANSITION: guided]",
        ]
        rank = phase_rank(session.phase)
        for reply in replies:
            apply_coach_turn(session, interpret(reply))
            assert phase_rank(session.phase) >= rank
            rank = phase_rank(session.phase)
        assert session.phase == Phase.ASSESSMENT


class TestGuidedCounters:

    def test_attempts_and_hints(self):
        session = _session(Phase.GUIDED)
        apply_coach_turn(session, _signals())
        apply_coach_turn(session, _signals(hint_given=True))
        apply_coach_turn(session, _signals(hint_given=True))
        assert session.phase_state.guided_attempts == 3
        assert session.phase_state.hints_given == 2

    def test_hints_outside_guided_not_counted(self):
        session = _session()
        apply_coach_turn(session, _signals(hint_given=True))
        assert session.phase_state.hints_given == 0
        assert session.phase_state.guided_attempts == 0

    def test_assessment_marks_guided_complete(self):
        session = _session(Phase.GUIDED)
        now = "2026-03-02T10:00:00+00:00"
        assert apply_coach_turn(session, _signals(transition_request=Phase.ASSESSMENT), now=now) == Phase.ASSESSMENT
        assert session.phase_state.guided_complete is True
        assert session.phase_state.writing_started_at == now
        # the turn that requested the move still counts as a guided attempt
        assert session.phase_state.guided_attempts == 1


class TestSubmitPhases:

    def test_can_submit(self):
        assert can_submit(_session(Phase.ASSESSMENT))
        assert can_submit(_session(Phase.GUIDED))
        assert not can_submit(_session(Phase.INSTRUCTION))
        assert not can_submit(_session(Phase.FEEDBACK))

    def test_enter_feedback(self):
        session = _session(Phase.ASSESSMENT)
        enter_feedback(session)
        assert session.phase == Phase.FEEDBACK

    def test_enter_feedback_from_instruction_raises(self):
        with pytest.raises(ValueError):
            enter_feedback(_session())
