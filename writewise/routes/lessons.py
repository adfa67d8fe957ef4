import asyncio
import logging
import weakref

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from writewise.db import lesson_store
from writewise.db.database import get_db
from writewise.models.assessment import Rejection, SubmitRequest
from writewise.models.session import MessageRequest, StartLessonRequest
from writewise.routes.children import llm_error_response, rejection_response
from writewise.services.ai_client import LLMResponseError
from writewise.services.assessment_evaluator import revise_assessment, submit_assessment
from writewise.services.coach import (
    ChildNotFound,
    LessonNotFound,
    SessionNotFound,
    handle_message,
    retake_lesson,
    session_payload,
    start_lesson,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/lessons", tags=["lessons"])

# One lock per session id: message/submit/revise for a session run one at a time.
# An entry lives only while some request holds a reference to its lock.
_session_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()


def _lock_for(session_id: int) -> asyncio.Lock:
    lock = _session_locks.get(session_id)
    if lock is None:
        lock = _session_locks[session_id] = asyncio.Lock()
    return lock


def _not_found(e: Exception) -> HTTPException:
    labels = {ChildNotFound: "Child", LessonNotFound: "Lesson", SessionNotFound: "Session"}
    return HTTPException(status_code=404, detail=f"{labels[type(e)]} not found")


@router.post("/start")
async def start(body: StartLessonRequest, db=Depends(get_db)):
    """Resume the newest unfinished session for this lesson, or open a new one."""
    try:
        return await start_lesson(db, body.child_id, body.lesson_id)
    except (ChildNotFound, LessonNotFound) as e:
        raise _not_found(e)


@router.post("/retake")
async def retake(body: StartLessonRequest, db=Depends(get_db)):
    try:
        return await retake_lesson(db, body.child_id, body.lesson_id)
    except (ChildNotFound, LessonNotFound) as e:
        raise _not_found(e)


@router.get("/sessions/{session_id}")
async def get_session(session_id: int, db=Depends(get_db)):
    session = await lesson_store.get_session(db, session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session_payload(session)


@router.post("/message")
async def message(body: MessageRequest, db=Depends(get_db)):
    text = body.message.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    async with _lock_for(body.session_id):
        try:
            return await handle_message(db, body.session_id, text)
        except (ChildNotFound, LessonNotFound, SessionNotFound) as e:
            raise _not_found(e)


async def _run_assessment(operation, body: SubmitRequest, background_tasks: BackgroundTasks, db):
    async with _lock_for(body.session_id):
        try:
            outcome = await operation(db, body.session_id, body.text, body.time_spent_sec)
        except LLMResponseError as e:
            logger.warning("Scoring failed for session %s: %s", body.session_id, e)
            return llm_error_response("We couldn't score your writing just now. Please try again.")

    if isinstance(outcome, Rejection):
        return rejection_response(outcome)

    for effect in outcome.deferred:
        background_tasks.add_task(effect.run)
    return outcome.result.model_dump(by_alias=True)


@router.post("/submit")
async def submit(body: SubmitRequest, background_tasks: BackgroundTasks, db=Depends(get_db)):
    return await _run_assessment(submit_assessment, body, background_tasks, db)


@router.post("/revise")
async def revise(body: SubmitRequest, background_tasks: BackgroundTasks, db=Depends(get_db)):
    return await _run_assessment(revise_assessment, body, background_tasks, db)
