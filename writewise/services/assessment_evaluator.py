"""
assessment_evaluator.py - Turn a writing submission into a stored assessment

Provides:
- submit_assessment(): first submission of a session (assessment or guided phase)
- revise_assessment(): rewrite after feedback, capped at MAX_REVISIONS per session

Order of work for both:
1. quality gate (no model call is spent on text that fails it)
2. evaluation by the assessment model (LLMResponseError propagates, nothing stored)
3. one transaction: assessment + writing submission + completion record +
   writing sample + session moved to feedback + lesson status
4. inline best-effort updates whose results are part of the response
   (skills, streak, curriculum week status, badges)
5. deferred best-effort updates returned to the caller to schedule
   (curriculum adaptation, learner profile)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Union

from writewise.config import settings
from writewise.db import curriculum_store, lesson_store
from writewise.db.database import atomic
from writewise.models.assessment import AssessmentResult, Evaluation, Rejection
from writewise.models.session import Message, Phase, Session
from writewise.services import catalog
from writewise.services.badges import check_and_unlock_badges
from writewise.services.curriculum_adapter import check_curriculum_adaptation
from writewise.services.curriculum_planner import sync_week_statuses
from writewise.services.event_log import log_lesson_event
from writewise.services.learner_profile import build_learner_profile
from writewise.services.phase_machine import can_submit, enter_feedback
from writewise.services.quality_gate import check_submission
from writewise.services.side_effects import BestEffort, run_all
from writewise.services.skill_progress import update_skill_progress
from writewise.services.streak_tracker import record_activity
from writewise.services.writing_evaluator import evaluate_writing

logger = logging.getLogger(__name__)

COMPLETION_THRESHOLD = 1.5
EXCERPT_CHARS = 200

COMPLETED = "completed"
NEEDS_IMPROVEMENT = "needs_improvement"


@dataclass
class AssessmentOutcome:
    result: AssessmentResult
    deferred: List[BestEffort] = field(default_factory=list)


def lesson_status_for(overall_score: float) -> str:
    return COMPLETED if overall_score >= COMPLETION_THRESHOLD else NEEDS_IMPROVEMENT


def improved_status(current: Optional[str], overall_score: float) -> str:
    """A revision can move needs_improvement to completed, never back."""
    if current == COMPLETED:
        return COMPLETED
    return lesson_status_for(overall_score)


def make_excerpt(text: str, limit: int = EXCERPT_CHARS) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[:limit].rsplit(" ", 1)[0] + "..."


def _elapsed_seconds(started_at: Optional[str]) -> Optional[int]:
    if not started_at:
        return None
    started = datetime.fromisoformat(started_at)
    return max(0, int((datetime.now(started.tzinfo) - started).total_seconds()))


def _feedback_message(evaluation: Evaluation) -> Message:
    fb = evaluation.feedback
    return Message(role="coach", content=f"{fb.strength} {fb.growth} {fb.encouragement}")


def _session_not_found(session_id: int) -> Rejection:
    return Rejection(error="not_found", message=f"Session {session_id} not found", status_code=404)


# ══════════════════════════════════════════════════════════════════════════════
# SHARED PIPELINE
# ══════════════════════════════════════════════════════════════════════════════

async def _evaluate(db, session: Session, text: str) -> Union[tuple, Rejection]:
    lesson = catalog.get_lesson(session.lesson_id)
    if not lesson:
        return Rejection(error="not_found", message="Lesson data not found", status_code=404)
    child = await curriculum_store.get_child(db, session.child_id)
    if not child:
        return Rejection(error="not_found", message="Child not found", status_code=404)
    rubric = catalog.get_rubric(lesson.rubric_id)

    check = check_submission(text, rubric)
    if not check.valid:
        log_lesson_event(
            "assessment_submitted", session_id=session.id, accepted=False, reason=check.error,
            word_count=check.word_count,
        )
        return Rejection(
            error=check.error,
            message=check.message,
            status_code=422,
            details={"word_count": check.word_count, "min_words": check.min_words},
        )

    evaluation = await evaluate_writing(text, lesson, rubric, child["tier"])
    return lesson, rubric, evaluation, check.word_count


async def _store(
    db,
    session: Session,
    lesson: catalog.Lesson,
    rubric,
    evaluation: Evaluation,
    text: str,
    word_count: int,
    time_spent_sec: Optional[int],
    revision_number: int,
    revision_of: Optional[int],
    lesson_status: str,
) -> tuple[int, int]:
    rubric_id = rubric.id if rubric else None
    best_criterion = max(evaluation.scores, key=evaluation.scores.get) if evaluation.scores else None

    async with atomic(db):
        assessment_id = await lesson_store.insert_assessment(
            db, session, rubric_id, text, evaluation.scores, evaluation.overall_score,
            evaluation.feedback.model_dump(),
        )
        submission_id = await lesson_store.insert_writing_submission(
            db, session, assessment_id, rubric_id, text, word_count,
            time_spent_sec=time_spent_sec,
            revision_number=revision_number,
            revision_of=revision_of,
        )
        completion_id = await lesson_store.record_completion(
            db, session, assessment_id, evaluation.overall_score, evaluation.scores,
            time_spent_sec, word_count,
        )
        await lesson_store.insert_writing_sample(
            db, session.child_id, session.lesson_id, completion_id,
            writing_type=lesson.type,
            criterion=best_criterion,
            excerpt=make_excerpt(text),
            word_count=word_count,
            overall_score=evaluation.overall_score,
        )
        session.conversation_history.append(_feedback_message(evaluation))
        await lesson_store.save_session(db, session)
        await lesson_store.set_lesson_status(db, session.child_id, session.lesson_id, lesson_status)

    return assessment_id, submission_id


async def _after_write(db, child_id: int, lesson_id: str, overall_score: float, count_streak: bool):
    """Run the inline updates; return (new badge ids, deferred updates)."""
    inline = [BestEffort("skill_progress", update_skill_progress, child_id, lesson_id, overall_score)]
    if count_streak:
        inline.append(BestEffort("streak", record_activity, child_id))
    inline.append(BestEffort("curriculum_weeks", sync_week_statuses, child_id))
    badges = BestEffort("badges", check_and_unlock_badges, child_id)
    inline.append(badges)
    await run_all(inline, db)

    deferred = [
        BestEffort("curriculum_adaptation", check_curriculum_adaptation, child_id),
        BestEffort("learner_profile", build_learner_profile, child_id),
    ]
    return badges.result or [], deferred


# ══════════════════════════════════════════════════════════════════════════════
# SUBMIT
# ══════════════════════════════════════════════════════════════════════════════

async def submit_assessment(
    db,
    session_id: int,
    text: str,
    time_spent_sec: Optional[int] = None,
) -> Union[AssessmentOutcome, Rejection]:
    session = await lesson_store.get_session(db, session_id)
    if not session:
        return _session_not_found(session_id)

    if not can_submit(session):
        message = "Submissions are only allowed during the assessment phase"
        if session.phase == Phase.FEEDBACK:
            message = "This piece was already scored. Use revise to submit a new version."
        return Rejection(error="wrong_phase", message=message)

    evaluated = await _evaluate(db, session, text)
    if isinstance(evaluated, Rejection):
        return evaluated
    lesson, rubric, evaluation, word_count = evaluated

    if time_spent_sec is None:
        time_spent_sec = _elapsed_seconds(session.phase_state.writing_started_at)

    status = lesson_status_for(evaluation.overall_score)
    enter_feedback(session)
    assessment_id, submission_id = await _store(
        db, session, lesson, rubric, evaluation, text, word_count, time_spent_sec,
        revision_number=0, revision_of=None, lesson_status=status,
    )
    log_lesson_event(
        "assessment_submitted", session_id=session.id, accepted=True,
        overall=evaluation.overall_score, status=status,
    )
    log_lesson_event("phase_transition", session_id=session.id, to_phase=Phase.FEEDBACK.value)

    new_badges, deferred = await _after_write(
        db, session.child_id, session.lesson_id, evaluation.overall_score, count_streak=True
    )
    result = AssessmentResult(
        assessment_id=assessment_id,
        submission_id=submission_id,
        scores=evaluation.scores,
        overall_score=evaluation.overall_score,
        feedback=evaluation.feedback,
        word_count=word_count,
        lesson_status=status,
        new_badges=new_badges,
        revision_number=0,
        revisions_remaining=settings.max_revisions,
    )
    return AssessmentOutcome(result=result, deferred=deferred)


# ══════════════════════════════════════════════════════════════════════════════
# REVISE
# ══════════════════════════════════════════════════════════════════════════════

async def revise_assessment(
    db,
    session_id: int,
    text: str,
    time_spent_sec: Optional[int] = None,
) -> Union[AssessmentOutcome, Rejection]:
    session = await lesson_store.get_session(db, session_id)
    if not session:
        return _session_not_found(session_id)

    if session.phase != Phase.FEEDBACK:
        return Rejection(error="wrong_phase", message="Revisions are only allowed after feedback")

    # the original submission counts as one assessment
    assessment_count = await lesson_store.count_session_assessments(db, session.id)
    revisions_used = max(session.phase_state.revisions_used, assessment_count - 1)
    if revisions_used >= settings.max_revisions:
        return Rejection(
            error="revision_limit",
            message=f"You've used all {settings.max_revisions} revisions for this lesson. Great persistence!",
            details={"revisions_used": revisions_used, "max_revisions": settings.max_revisions},
        )

    evaluated = await _evaluate(db, session, text)
    if isinstance(evaluated, Rejection):
        return evaluated
    lesson, rubric, evaluation, word_count = evaluated

    previous = await lesson_store.get_latest_session_assessment(db, session.id)
    previous_submission = await lesson_store.get_latest_session_submission(db, session.id)
    progress = await lesson_store.get_lesson_progress(db, session.child_id, session.lesson_id)

    revision_number = revisions_used + 1
    status = improved_status(progress["status"] if progress else None, evaluation.overall_score)
    session.phase_state.revisions_used = revision_number

    assessment_id, submission_id = await _store(
        db, session, lesson, rubric, evaluation, text, word_count, time_spent_sec,
        revision_number=revision_number,
        revision_of=previous_submission["id"] if previous_submission else None,
        lesson_status=status,
    )
    log_lesson_event(
        "revision_submitted", session_id=session.id, revision=revision_number,
        overall=evaluation.overall_score, previous=previous["overall_score"] if previous else None,
    )

    new_badges, deferred = await _after_write(
        db, session.child_id, session.lesson_id, evaluation.overall_score, count_streak=False
    )
    result = AssessmentResult(
        assessment_id=assessment_id,
        submission_id=submission_id,
        scores=evaluation.scores,
        overall_score=evaluation.overall_score,
        feedback=evaluation.feedback,
        word_count=word_count,
        lesson_status=status,
        new_badges=new_badges,
        revision_number=revision_number,
        previous_scores=previous["scores"] if previous else None,
        revisions_remaining=settings.max_revisions - revision_number,
    )
    return AssessmentOutcome(result=result, deferred=deferred)
