"""
lesson_store.py - Database helper queries for lesson attempts

Provides insert/fetch functions for:
- sessions (phase, phaseState, conversation history)
- lesson_progress
- assessments + writing_submissions
- lesson_completions + completion_scores + writing_samples

Helpers never commit; callers own the transaction.
"""

import json
from typing import Optional, List, Dict, Any

from writewise.db.database import now_iso, row_to_dict
from writewise.models.session import Phase, PhaseState, Session


# ══════════════════════════════════════════════════════════════════════════════
# SESSIONS
# ══════════════════════════════════════════════════════════════════════════════

def _row_to_session(row) -> Session:
    data = row_to_dict(row, parse_json_fields=["phase_state", "conversation_history"])
    return Session(
        id=data["id"],
        child_id=data["child_id"],
        lesson_id=data["lesson_id"],
        phase=Phase(data["phase"]),
        phase_state=PhaseState.model_validate(data["phase_state"]),
        conversation_history=data["conversation_history"],
        created_at=data["created_at"],
        updated_at=data["updated_at"],
    )


async def create_session(db, child_id: int, lesson_id: str, opening_messages: list) -> int:
    """Create a new Session in the instruction phase. Returns the new session ID."""
    now = now_iso()
    history = [m.model_dump(by_alias=True) for m in opening_messages]
    cursor = await db.execute(
        """INSERT INTO sessions
           (child_id, lesson_id, phase, phase_state, conversation_history, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (
            child_id,
            lesson_id,
            Phase.INSTRUCTION.value,
            PhaseState().model_dump_json(by_alias=True),
            json.dumps(history),
            now,
            now,
        ),
    )
    return cursor.lastrowid


async def get_session(db, session_id: int) -> Optional[Session]:
    cursor = await db.execute("SELECT * FROM sessions WHERE id = ?", (session_id,))
    row = await cursor.fetchone()
    if not row:
        return None
    return _row_to_session(row)


async def find_resumable_session(db, child_id: int, lesson_id: str) -> Optional[Session]:
    """Newest session for this lesson that has not reached feedback."""
    cursor = await db.execute(
        """SELECT * FROM sessions
           WHERE child_id = ? AND lesson_id = ? AND phase != ?
           ORDER BY id DESC
           LIMIT 1""",
        (child_id, lesson_id, Phase.FEEDBACK.value),
    )
    row = await cursor.fetchone()
    if not row:
        return None
    return _row_to_session(row)


async def save_session(db, session: Session) -> None:
    """Persist phase, phaseState and history for an existing session."""
    session.updated_at = now_iso()
    history = [m.model_dump(by_alias=True) for m in session.conversation_history]
    await db.execute(
        """UPDATE sessions
           SET phase = ?, phase_state = ?, conversation_history = ?, updated_at = ?
           WHERE id = ?""",
        (
            session.phase.value,
            session.phase_state.model_dump_json(by_alias=True),
            json.dumps(history),
            session.updated_at,
            session.id,
        ),
    )


# ══════════════════════════════════════════════════════════════════════════════
# LESSON PROGRESS
# ══════════════════════════════════════════════════════════════════════════════

async def get_lesson_progress(db, child_id: int, lesson_id: str) -> Optional[Dict[str, Any]]:
    cursor = await db.execute(
        "SELECT * FROM lesson_progress WHERE child_id = ? AND lesson_id = ?",
        (child_id, lesson_id),
    )
    return row_to_dict(await cursor.fetchone())


async def list_lesson_statuses(db, child_id: int) -> Dict[str, str]:
    """lesson_id -> status for every lesson the child has started."""
    cursor = await db.execute(
        "SELECT lesson_id, status FROM lesson_progress WHERE child_id = ?", (child_id,)
    )
    return {row["lesson_id"]: row["status"] for row in await cursor.fetchall()}


async def start_lesson_progress(db, child_id: int, lesson_id: str) -> None:
    """Insert an in_progress record, or reset the phase of an existing one.

    A retake of a completed lesson keeps its status; only the phase mirror moves.
    """
    await db.execute(
        """INSERT INTO lesson_progress (child_id, lesson_id, status, current_phase, started_at)
           VALUES (?, ?, 'in_progress', ?, ?)
           ON CONFLICT (child_id, lesson_id)
           DO UPDATE SET current_phase = excluded.current_phase""",
        (child_id, lesson_id, Phase.INSTRUCTION.value, now_iso()),
    )


async def set_current_phase(db, child_id: int, lesson_id: str, phase: Phase) -> None:
    await db.execute(
        "UPDATE lesson_progress SET current_phase = ? WHERE child_id = ? AND lesson_id = ?",
        (phase.value, child_id, lesson_id),
    )


async def set_lesson_status(db, child_id: int, lesson_id: str, status: str) -> None:
    completed_at = now_iso() if status == "completed" else None
    await db.execute(
        """INSERT INTO lesson_progress
           (child_id, lesson_id, status, current_phase, started_at, completed_at)
           VALUES (?, ?, ?, ?, ?, ?)
           ON CONFLICT (child_id, lesson_id)
           DO UPDATE SET status = excluded.status,
                         current_phase = excluded.current_phase,
                         completed_at = COALESCE(excluded.completed_at, lesson_progress.completed_at)""",
        (child_id, lesson_id, status, Phase.FEEDBACK.value, now_iso(), completed_at),
    )


# ══════════════════════════════════════════════════════════════════════════════
# ASSESSMENTS + SUBMISSIONS
# ══════════════════════════════════════════════════════════════════════════════

async def insert_assessment(
    db,
    session: Session,
    rubric_id: Optional[str],
    text: str,
    scores: Dict[str, float],
    overall_score: float,
    feedback: Dict[str, str],
) -> int:
    cursor = await db.execute(
        """INSERT INTO assessments
           (session_id, child_id, lesson_id, rubric_id, submission_text,
            scores, overall_score, feedback, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            session.id,
            session.child_id,
            session.lesson_id,
            rubric_id,
            text,
            json.dumps(scores),
            overall_score,
            json.dumps(feedback),
            now_iso(),
        ),
    )
    return cursor.lastrowid


async def insert_writing_submission(
    db,
    session: Session,
    assessment_id: int,
    rubric_id: Optional[str],
    text: str,
    word_count: int,
    time_spent_sec: Optional[int] = None,
    revision_number: int = 0,
    revision_of: Optional[int] = None,
) -> int:
    cursor = await db.execute(
        """INSERT INTO writing_submissions
           (session_id, child_id, lesson_id, rubric_id, assessment_id, submission_text,
            word_count, time_spent_sec, revision_number, revision_of, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            session.id,
            session.child_id,
            session.lesson_id,
            rubric_id,
            assessment_id,
            text,
            word_count,
            time_spent_sec,
            revision_number,
            revision_of,
            now_iso(),
        ),
    )
    return cursor.lastrowid


async def count_session_assessments(db, session_id: int) -> int:
    cursor = await db.execute(
        "SELECT COUNT(*) AS n FROM assessments WHERE session_id = ?", (session_id,)
    )
    row = await cursor.fetchone()
    return row["n"] if row else 0


async def get_latest_session_assessment(db, session_id: int) -> Optional[Dict[str, Any]]:
    cursor = await db.execute(
        """SELECT * FROM assessments WHERE session_id = ?
           ORDER BY id DESC LIMIT 1""",
        (session_id,),
    )
    return row_to_dict(await cursor.fetchone(), parse_json_fields=["scores", "feedback"])


async def get_latest_session_submission(db, session_id: int) -> Optional[Dict[str, Any]]:
    cursor = await db.execute(
        """SELECT * FROM writing_submissions WHERE session_id = ?
           ORDER BY id DESC LIMIT 1""",
        (session_id,),
    )
    return row_to_dict(await cursor.fetchone())


async def get_recent_assessments(db, child_id: int, limit: int = 10) -> List[Dict[str, Any]]:
    """Most recent assessments for a child, newest first."""
    cursor = await db.execute(
        """SELECT id, session_id, lesson_id, overall_score, created_at
           FROM assessments WHERE child_id = ?
           ORDER BY created_at DESC, id DESC
           LIMIT ?""",
        (child_id, limit),
    )
    return [row_to_dict(r) for r in await cursor.fetchall()]


async def count_child_assessments(db, child_id: int) -> int:
    cursor = await db.execute(
        "SELECT COUNT(*) AS n FROM assessments WHERE child_id = ?", (child_id,)
    )
    row = await cursor.fetchone()
    return row["n"] if row else 0


# ══════════════════════════════════════════════════════════════════════════════
# COMPLETIONS + WRITING SAMPLES
# ══════════════════════════════════════════════════════════════════════════════

async def record_completion(
    db,
    session: Session,
    assessment_id: int,
    overall_score: float,
    scores: Dict[str, float],
    time_spent_sec: Optional[int],
    word_count: int,
) -> int:
    """Record one finished attempt with its per-criterion scores."""
    cursor = await db.execute(
        """INSERT INTO lesson_completions
           (child_id, lesson_id, session_id, assessment_id, overall_score,
            hints_used, time_spent_sec, word_count, completed_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            session.child_id,
            session.lesson_id,
            session.id,
            assessment_id,
            overall_score,
            session.phase_state.hints_given,
            time_spent_sec,
            word_count,
            now_iso(),
        ),
    )
    completion_id = cursor.lastrowid
    for criterion, score in scores.items():
        await db.execute(
            "INSERT INTO completion_scores (completion_id, criterion, score) VALUES (?, ?, ?)",
            (completion_id, criterion, score),
        )
    return completion_id


async def get_recent_completions(db, child_id: int, limit: int = 20) -> List[Dict[str, Any]]:
    """Most recent completions, newest first, each with a ``scores`` list."""
    cursor = await db.execute(
        """SELECT * FROM lesson_completions WHERE child_id = ?
           ORDER BY completed_at DESC, id DESC
           LIMIT ?""",
        (child_id, limit),
    )
    completions = [row_to_dict(r) for r in await cursor.fetchall()]
    for comp in completions:
        cursor = await db.execute(
            "SELECT criterion, score FROM completion_scores WHERE completion_id = ?",
            (comp["id"],),
        )
        comp["scores"] = [row_to_dict(r) for r in await cursor.fetchall()]
    return completions


async def insert_writing_sample(
    db,
    child_id: int,
    lesson_id: str,
    completion_id: Optional[int],
    writing_type: str,
    criterion: Optional[str],
    excerpt: str,
    word_count: int,
    overall_score: Optional[float],
) -> int:
    cursor = await db.execute(
        """INSERT INTO writing_samples
           (child_id, lesson_id, completion_id, writing_type, criterion,
            excerpt, word_count, overall_score, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            child_id,
            lesson_id,
            completion_id,
            writing_type,
            criterion,
            excerpt,
            word_count,
            overall_score,
            now_iso(),
        ),
    )
    return cursor.lastrowid


async def get_recent_writing_samples(db, child_id: int, limit: int = 5) -> List[Dict[str, Any]]:
    cursor = await db.execute(
        """SELECT * FROM writing_samples WHERE child_id = ?
           ORDER BY created_at DESC, id DESC
           LIMIT ?""",
        (child_id, limit),
    )
    return [row_to_dict(r) for r in await cursor.fetchall()]
