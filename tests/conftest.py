"""Shared fixtures: a schema-initialized SQLite file per test, plus seed helpers."""

import json

import aiosqlite
import pytest

from writewise.config import settings
from writewise.db.database import SCHEMA_PATH


def fake_evaluation(scores: dict, overall: float) -> str:
    """A well-formed evaluator reply."""
    return json.dumps({
        "scores": scores,
        "overallScore": overall,
        "feedback": {
            "strength": "Your opening line grabs attention.",
            "growth": "Tell us more about where the story happens.",
            "encouragement": "Keep writing, you're getting stronger!",
        },
    })


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    """Point every connect() at a fresh file; background work opens its own."""
    path = tmp_path / "test.db"
    monkeypatch.setattr(settings, "database_path", str(path))
    monkeypatch.setattr(settings, "database_url", "")
    return path


@pytest.fixture
async def db(db_path):
    conn = await aiosqlite.connect(str(db_path))
    conn.row_factory = aiosqlite.Row
    await conn.execute("PRAGMA foreign_keys = ON")
    await conn.executescript(SCHEMA_PATH.read_text())
    await conn.commit()
    yield conn
    await conn.close()


@pytest.fixture
async def child(db):
    from writewise.db import curriculum_store

    child_id = await curriculum_store.create_child(db, "Maya", 8, 1)
    await db.commit()
    return await curriculum_store.get_child(db, child_id)


async def make_session(db, child_id: int, lesson_id: str, phase=None, **state):
    """Create a session row and move it straight to ``phase``."""
    from writewise.db import lesson_store
    from writewise.models.session import Message

    session_id = await lesson_store.create_session(
        db, child_id, lesson_id, [Message(role="coach", content="Let's write!")]
    )
    await lesson_store.start_lesson_progress(db, child_id, lesson_id)
    session = await lesson_store.get_session(db, session_id)
    if phase is not None:
        session.phase = phase
    for key, value in state.items():
        setattr(session.phase_state, key, value)
    await lesson_store.save_session(db, session)
    await db.commit()
    return session
