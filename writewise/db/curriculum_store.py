"""
curriculum_store.py - Database helper queries for children, curricula and placement

Provides insert/fetch functions for:
- children
- curricula + curriculum_weeks
- curriculum_revisions (immutable audit snapshots)
- placement_results
"""

import json
from typing import Optional, List, Dict, Any

from writewise.db.database import now_iso, row_to_dict


# ══════════════════════════════════════════════════════════════════════════════
# CHILDREN
# ══════════════════════════════════════════════════════════════════════════════

async def create_child(db, name: str, age: int, tier: int) -> int:
    cursor = await db.execute(
        "INSERT INTO children (name, age, tier, created_at) VALUES (?, ?, ?, ?)",
        (name, age, tier, now_iso()),
    )
    return cursor.lastrowid


async def get_child(db, child_id: int) -> Optional[Dict[str, Any]]:
    cursor = await db.execute("SELECT * FROM children WHERE id = ?", (child_id,))
    return row_to_dict(await cursor.fetchone())


async def set_child_tier(db, child_id: int, tier: int) -> None:
    await db.execute("UPDATE children SET tier = ? WHERE id = ?", (tier, child_id))


# ══════════════════════════════════════════════════════════════════════════════
# CURRICULA + WEEKS
# ══════════════════════════════════════════════════════════════════════════════

async def create_curriculum(
    db,
    child_id: int,
    week_count: int,
    lessons_per_week: int,
    focus_areas: List[str],
    start_date: str,
) -> int:
    """Create an ACTIVE curriculum. Any earlier active plan is archived first."""
    now = now_iso()
    await db.execute(
        "UPDATE curricula SET status = 'ARCHIVED', updated_at = ? WHERE child_id = ? AND status = 'ACTIVE'",
        (now, child_id),
    )
    cursor = await db.execute(
        """INSERT INTO curricula
           (child_id, status, week_count, lessons_per_week, focus_areas, start_date, created_at, updated_at)
           VALUES (?, 'ACTIVE', ?, ?, ?, ?, ?, ?)""",
        (child_id, week_count, lessons_per_week, json.dumps(focus_areas), start_date, now, now),
    )
    return cursor.lastrowid


async def get_active_curriculum(db, child_id: int) -> Optional[Dict[str, Any]]:
    cursor = await db.execute(
        """SELECT * FROM curricula WHERE child_id = ? AND status = 'ACTIVE'
           ORDER BY id DESC LIMIT 1""",
        (child_id,),
    )
    return row_to_dict(await cursor.fetchone(), parse_json_fields=["focus_areas"])


async def insert_week(
    db,
    curriculum_id: int,
    week_number: int,
    theme: str,
    lesson_ids: List[str],
    status: str = "pending",
) -> int:
    cursor = await db.execute(
        """INSERT INTO curriculum_weeks (curriculum_id, week_number, theme, lesson_ids, status)
           VALUES (?, ?, ?, ?, ?)""",
        (curriculum_id, week_number, theme, json.dumps(lesson_ids), status),
    )
    return cursor.lastrowid


async def list_weeks(db, curriculum_id: int, status: Optional[str] = None) -> List[Dict[str, Any]]:
    """Weeks in week_number order, optionally filtered by status."""
    if status:
        cursor = await db.execute(
            """SELECT * FROM curriculum_weeks WHERE curriculum_id = ? AND status = ?
               ORDER BY week_number""",
            (curriculum_id, status),
        )
    else:
        cursor = await db.execute(
            "SELECT * FROM curriculum_weeks WHERE curriculum_id = ? ORDER BY week_number",
            (curriculum_id,),
        )
    return [row_to_dict(r, parse_json_fields=["lesson_ids"]) for r in await cursor.fetchall()]


async def update_pending_week(
    db,
    week_id: int,
    lesson_ids: List[str],
    theme: Optional[str] = None,
) -> bool:
    """Replace a week's lessons, but only while the week is still pending.

    The status guard lives in the WHERE clause so a week that started in the
    meantime is never touched. Returns False when nothing was updated.
    """
    cursor = await db.execute(
        """UPDATE curriculum_weeks
           SET lesson_ids = ?, theme = COALESCE(?, theme)
           WHERE id = ? AND status = 'pending'
           RETURNING id""",
        (json.dumps(lesson_ids), theme, week_id),
    )
    # drain the cursor so the statement finishes before commit
    return len(await cursor.fetchall()) > 0


async def set_week_status(db, week_id: int, status: str) -> None:
    await db.execute(
        "UPDATE curriculum_weeks SET status = ? WHERE id = ?", (status, week_id)
    )


async def touch_curriculum(db, curriculum_id: int) -> None:
    await db.execute(
        "UPDATE curricula SET updated_at = ? WHERE id = ?", (now_iso(), curriculum_id)
    )


# ══════════════════════════════════════════════════════════════════════════════
# REVISIONS
# ══════════════════════════════════════════════════════════════════════════════

async def insert_revision(
    db,
    curriculum_id: int,
    reason: str,
    description: str,
    previous_plan: Any,
    new_plan: Any,
) -> int:
    cursor = await db.execute(
        """INSERT INTO curriculum_revisions
           (curriculum_id, reason, description, previous_plan, new_plan, created_at)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (curriculum_id, reason, description, json.dumps(previous_plan), json.dumps(new_plan), now_iso()),
    )
    return cursor.lastrowid


async def list_revisions(db, curriculum_id: int) -> List[Dict[str, Any]]:
    cursor = await db.execute(
        "SELECT * FROM curriculum_revisions WHERE curriculum_id = ? ORDER BY id",
        (curriculum_id,),
    )
    return [
        row_to_dict(r, parse_json_fields=["previous_plan", "new_plan"])
        for r in await cursor.fetchall()
    ]


# ══════════════════════════════════════════════════════════════════════════════
# PLACEMENT
# ══════════════════════════════════════════════════════════════════════════════

async def get_placement(db, child_id: int) -> Optional[Dict[str, Any]]:
    cursor = await db.execute("SELECT * FROM placement_results WHERE child_id = ?", (child_id,))
    return row_to_dict(
        await cursor.fetchone(), parse_json_fields=["prompts", "responses", "analysis"]
    )


async def insert_placement(
    db,
    child_id: int,
    prompts: List[str],
    responses: List[str],
    recommended_tier: int,
    assigned_tier: int,
    confidence: float,
    analysis: Dict[str, Any],
) -> int:
    cursor = await db.execute(
        """INSERT INTO placement_results
           (child_id, prompts, responses, recommended_tier, assigned_tier, confidence, analysis, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            child_id,
            json.dumps(prompts),
            json.dumps(responses),
            recommended_tier,
            assigned_tier,
            confidence,
            json.dumps(analysis),
            now_iso(),
        ),
    )
    return cursor.lastrowid
