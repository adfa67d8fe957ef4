"""
progress_store.py - Database helper queries for child progress

Provides insert/fetch functions for:
- skill_progress
- achievements
- streaks
- badge fact aggregation
- learner_profile_snapshots
- student_preferences
"""

import json
from typing import Optional, List, Dict, Any

from writewise.db.database import now_iso, row_to_dict


# ══════════════════════════════════════════════════════════════════════════════
# SKILL PROGRESS
# ══════════════════════════════════════════════════════════════════════════════

async def get_skill(db, child_id: int, category: str, skill_name: str) -> Optional[Dict[str, Any]]:
    cursor = await db.execute(
        """SELECT * FROM skill_progress
           WHERE child_id = ? AND skill_category = ? AND skill_name = ?""",
        (child_id, category, skill_name),
    )
    return row_to_dict(await cursor.fetchone())


async def upsert_skill(
    db,
    child_id: int,
    category: str,
    skill_name: str,
    score: float,
    level: str,
) -> None:
    """Write the new rolling score and bump total_attempts by one."""
    await db.execute(
        """INSERT INTO skill_progress
           (child_id, skill_category, skill_name, score, level, total_attempts, last_assessed_at)
           VALUES (?, ?, ?, ?, ?, 1, ?)
           ON CONFLICT (child_id, skill_category, skill_name)
           DO UPDATE SET score = excluded.score,
                         level = excluded.level,
                         total_attempts = skill_progress.total_attempts + 1,
                         last_assessed_at = excluded.last_assessed_at""",
        (child_id, category, skill_name, score, level, now_iso()),
    )


async def list_skills(db, child_id: int) -> List[Dict[str, Any]]:
    cursor = await db.execute(
        """SELECT * FROM skill_progress WHERE child_id = ?
           ORDER BY skill_category, skill_name""",
        (child_id,),
    )
    return [row_to_dict(r) for r in await cursor.fetchall()]


# ══════════════════════════════════════════════════════════════════════════════
# ACHIEVEMENTS
# ══════════════════════════════════════════════════════════════════════════════

async def list_achievements(db, child_id: int) -> List[Dict[str, Any]]:
    cursor = await db.execute(
        "SELECT * FROM achievements WHERE child_id = ? ORDER BY unlocked_at, id",
        (child_id,),
    )
    return [row_to_dict(r) for r in await cursor.fetchall()]


async def insert_achievement(db, child_id: int, badge_id: str) -> bool:
    """Insert once; returns False when the child already holds the badge."""
    cursor = await db.execute(
        """INSERT INTO achievements (child_id, badge_id, unlocked_at, seen)
           VALUES (?, ?, ?, 0)
           ON CONFLICT (child_id, badge_id) DO NOTHING""",
        (child_id, badge_id, now_iso()),
    )
    return bool(cursor.rowcount)


async def mark_achievements_seen(db, child_id: int, badge_ids: List[str]) -> None:
    for badge_id in badge_ids:
        await db.execute(
            "UPDATE achievements SET seen = 1 WHERE child_id = ? AND badge_id = ?",
            (child_id, badge_id),
        )


# ══════════════════════════════════════════════════════════════════════════════
# STREAKS
# ══════════════════════════════════════════════════════════════════════════════

async def get_streak(db, child_id: int) -> Optional[Dict[str, Any]]:
    cursor = await db.execute("SELECT * FROM streaks WHERE child_id = ?", (child_id,))
    return row_to_dict(await cursor.fetchone())


async def save_streak(
    db,
    child_id: int,
    current_streak: int,
    longest_streak: int,
    last_active_date: str,
    weekly_completed: int,
    week_start_date: str,
    weekly_goal: int,
) -> None:
    await db.execute(
        """INSERT INTO streaks
           (child_id, current_streak, longest_streak, last_active_date,
            weekly_goal, weekly_completed, week_start_date)
           VALUES (?, ?, ?, ?, ?, ?, ?)
           ON CONFLICT (child_id)
           DO UPDATE SET current_streak = excluded.current_streak,
                         longest_streak = excluded.longest_streak,
                         last_active_date = excluded.last_active_date,
                         weekly_completed = excluded.weekly_completed,
                         week_start_date = excluded.week_start_date""",
        (
            child_id,
            current_streak,
            longest_streak,
            last_active_date,
            weekly_goal,
            weekly_completed,
            week_start_date,
        ),
    )


async def set_weekly_goal(db, child_id: int, weekly_goal: int) -> None:
    await db.execute(
        """INSERT INTO streaks (child_id, weekly_goal) VALUES (?, ?)
           ON CONFLICT (child_id) DO UPDATE SET weekly_goal = excluded.weekly_goal""",
        (child_id, weekly_goal),
    )


# ══════════════════════════════════════════════════════════════════════════════
# BADGE FACTS
# ══════════════════════════════════════════════════════════════════════════════

async def fetch_badge_inputs(db, child_id: int) -> Dict[str, Any]:
    """Everything the badge predicates look at, in one batch of reads."""
    cursor = await db.execute(
        """SELECT lesson_id, completed_at FROM lesson_progress
           WHERE child_id = ? AND status = 'completed'""",
        (child_id,),
    )
    completed = [row_to_dict(r) for r in await cursor.fetchall()]

    cursor = await db.execute(
        """SELECT COALESCE(MAX(word_count), 0) AS max_words,
                  COALESCE(MAX(revision_number), 0) AS max_revision
           FROM writing_submissions WHERE child_id = ?""",
        (child_id,),
    )
    submissions = row_to_dict(await cursor.fetchone())

    cursor = await db.execute(
        "SELECT overall_score FROM assessments WHERE child_id = ?", (child_id,)
    )
    scores = [r["overall_score"] for r in await cursor.fetchall()]

    return {
        "completed": completed,
        "max_word_count": submissions["max_words"],
        "has_revision": submissions["max_revision"] > 0,
        "scores": scores,
        "skills": await list_skills(db, child_id),
        "streak": await get_streak(db, child_id),
    }


# ══════════════════════════════════════════════════════════════════════════════
# LEARNER PROFILE + PREFERENCES
# ══════════════════════════════════════════════════════════════════════════════

async def upsert_profile_snapshot(db, child_id: int, profile: Dict[str, Any]) -> None:
    await db.execute(
        """INSERT INTO learner_profile_snapshots (child_id, profile, updated_at)
           VALUES (?, ?, ?)
           ON CONFLICT (child_id)
           DO UPDATE SET profile = excluded.profile, updated_at = excluded.updated_at""",
        (child_id, json.dumps(profile), now_iso()),
    )


async def get_profile_snapshot(db, child_id: int) -> Optional[Dict[str, Any]]:
    cursor = await db.execute(
        "SELECT * FROM learner_profile_snapshots WHERE child_id = ?", (child_id,)
    )
    return row_to_dict(await cursor.fetchone(), parse_json_fields=["profile"])


async def add_preference(db, child_id: int, category: str, value: str, source: str = "parent") -> None:
    await db.execute(
        """INSERT INTO student_preferences (child_id, category, value, source, created_at)
           VALUES (?, ?, ?, ?, ?)
           ON CONFLICT (child_id, category, value) DO NOTHING""",
        (child_id, category, value, source, now_iso()),
    )


async def list_preferences(db, child_id: int) -> List[Dict[str, Any]]:
    cursor = await db.execute(
        """SELECT category, value, source, created_at FROM student_preferences
           WHERE child_id = ? ORDER BY created_at DESC, id DESC""",
        (child_id,),
    )
    return [row_to_dict(r) for r in await cursor.fetchall()]
