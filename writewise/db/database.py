"""Database connections for SQLite (aiosqlite) and PostgreSQL (asyncpg).

A postgresql:// ``settings.database_url`` selects PostgreSQL; otherwise the
SQLite file at ``settings.database_path`` is used. The store modules are
written once in SQLite dialect (``?`` placeholders, ``cursor.lastrowid``,
``cursor.rowcount``) and PgConnection translates them for asyncpg.

Store helpers never commit. Routes commit at the end of a unit of work, and
writes that must land together go through ``atomic(db)``.
"""

import re
import json
import logging
import itertools
from collections import deque
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import date, datetime
from pathlib import Path

from alembic import command
from alembic.config import Config

from writewise.config import settings

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"


def using_postgres() -> bool:
    return settings.database_url.startswith("postgresql://")


# ── PostgreSQL adapter ────────────────────────────────────────────────

_pg_pool = None

# a quoted literal (left alone) or a bare ? placeholder
_QMARK_RE = re.compile(r"'(?:[^']|'')*'|\?")


def to_pg_placeholders(sql: str) -> str:
    """``WHERE a = ? AND b = '?'`` -> ``WHERE a = $1 AND b = '?'``"""
    numbers = itertools.count(1)
    return _QMARK_RE.sub(lambda m: f"${next(numbers)}" if m.group(0) == "?" else m.group(0), sql)


def _as_sqlite_value(value):
    # SQLite hands timestamps back as ISO strings; keep callers on one type
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _affected_rows(status: str) -> int:
    """asyncpg returns a command tag such as ``UPDATE 3``."""
    tail = status.rsplit(" ", 1)[-1] if status else ""
    return int(tail) if tail.isdigit() else 0


class PgCursor:
    """The slice of the aiosqlite cursor API the stores use."""

    def __init__(self, rows=(), lastrowid=None, rowcount=None):
        self._rows = deque(rows)
        self.lastrowid = lastrowid
        self.rowcount = len(self._rows) if rowcount is None else rowcount

    async def fetchone(self):
        return self._rows.popleft() if self._rows else None

    async def fetchall(self):
        rows = list(self._rows)
        self._rows.clear()
        return rows


class PgConnection:
    """asyncpg connection with an aiosqlite-shaped interface.

    Rows come back as plain dicts. Outside ``atomic()`` every statement
    autocommits, so commit() and rollback() have nothing to do.
    """

    def __init__(self, conn):
        self.raw = conn

    async def execute(self, sql: str, params=None):
        query = to_pg_placeholders(sql)
        args = tuple(params or ())
        verb = query.lstrip().split(None, 1)[0].upper()

        if verb == "INSERT" and "RETURNING" not in query.upper():
            query = query.rstrip().rstrip(";") + " RETURNING id"

        if verb == "SELECT" or "RETURNING" in query.upper():
            rows = [
                {key: _as_sqlite_value(value) for key, value in record.items()}
                for record in await self.raw.fetch(query, *args)
            ]
            lastrowid = rows[0].get("id") if verb == "INSERT" and rows else None
            return PgCursor(rows, lastrowid=lastrowid)

        return PgCursor(rowcount=_affected_rows(await self.raw.execute(query, *args)))

    async def commit(self):
        pass

    async def rollback(self):
        pass


async def _pg_pool_instance():
    global _pg_pool
    if _pg_pool is None:
        import asyncpg
        _pg_pool = await asyncpg.create_pool(settings.database_url, min_size=2, max_size=10)
    return _pg_pool


# ── Connections ───────────────────────────────────────────────────────

@asynccontextmanager
async def connect():
    """A connection for one unit of work: a request, or a background effect."""
    if using_postgres():
        pool = await _pg_pool_instance()
        async with pool.acquire() as conn:
            yield PgConnection(conn)
        return

    import aiosqlite
    db = await aiosqlite.connect(settings.database_path)
    db.row_factory = aiosqlite.Row
    try:
        await db.execute("PRAGMA foreign_keys = ON")
        yield db
    finally:
        await db.close()


async def get_db() -> AsyncGenerator:
    """FastAPI dependency: one connection per request."""
    async with connect() as db:
        yield db


@asynccontextmanager
async def atomic(db):
    """Commit everything written inside the block together, or none of it."""
    if isinstance(db, PgConnection):
        async with db.raw.transaction():
            yield db
        return

    try:
        yield db
    except BaseException:
        await db.rollback()
        raise
    await db.commit()


# ── Startup / shutdown ────────────────────────────────────────────────

def _migrate_to_head():
    cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))
    cfg.attributes["url_from_settings"] = True
    url = settings.database_url if using_postgres() else f"sqlite:///{settings.database_path}"
    cfg.set_main_option("sqlalchemy.url", url)
    command.upgrade(cfg, "head")


async def init_db():
    if using_postgres():
        logger.info("Database: PostgreSQL at %s", settings.database_url.split("@")[-1])
    else:
        Path(settings.database_path).parent.mkdir(parents=True, exist_ok=True)
        logger.info("Database: SQLite file %s", settings.database_path)
    _migrate_to_head()


async def close_db():
    global _pg_pool
    if _pg_pool is not None:
        await _pg_pool.close()
        _pg_pool = None


# ── Row helpers ───────────────────────────────────────────────────────

def now_iso() -> str:
    """Current server-local time as an offset-aware ISO-8601 string."""
    return datetime.now().astimezone().isoformat()


def row_to_dict(row, parse_json_fields: list[str] | None = None) -> dict | None:
    """Copy a row into a dict, decoding the named JSON text columns."""
    if row is None:
        return None
    result = {key: row[key] for key in row.keys()}
    for field in parse_json_fields or ():
        if isinstance(result.get(field), str):
            result[field] = json.loads(result[field])
    return result
