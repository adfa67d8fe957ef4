"""Daily writing streaks and the weekly lesson goal."""

import logging
from datetime import date, timedelta
from typing import Optional

from writewise.config import settings
from writewise.db import progress_store

logger = logging.getLogger(__name__)


def week_start(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


def next_streak(current: int, last_active: Optional[date], today: date) -> int:
    if last_active is None:
        return 1
    if last_active == today:
        return max(current, 1)
    if last_active == today - timedelta(days=1):
        return current + 1
    return 1


async def record_activity(db, child_id: int, today: Optional[date] = None) -> dict:
    """Count one completed lesson toward the streak and this week's goal.

    Several lessons on the same day extend the streak once but each counts
    toward the weekly total.
    """
    today = today or date.today()
    streak = await progress_store.get_streak(db, child_id)

    if streak is None:
        current, longest, weekly = 1, 1, 1
        goal = settings.default_weekly_goal
    else:
        last_active = date.fromisoformat(streak["last_active_date"]) if streak["last_active_date"] else None
        current = next_streak(streak["current_streak"], last_active, today)
        longest = max(current, streak["longest_streak"])
        goal = streak["weekly_goal"]

        stored_week = streak["week_start_date"]
        if stored_week and date.fromisoformat(stored_week) == week_start(today):
            weekly = streak["weekly_completed"] + 1
        else:
            weekly = 1

    await progress_store.save_streak(
        db,
        child_id,
        current_streak=current,
        longest_streak=longest,
        last_active_date=today.isoformat(),
        weekly_completed=weekly,
        week_start_date=week_start(today).isoformat(),
        weekly_goal=goal,
    )
    logger.info("Child %s streak=%d longest=%d weekly=%d/%d", child_id, current, longest, weekly, goal)
    return {
        "current_streak": current,
        "longest_streak": longest,
        "weekly_completed": weekly,
        "weekly_goal": goal,
    }


async def get_streak_summary(db, child_id: int, today: Optional[date] = None) -> dict:
    """Streak as the child sees it today: a lapsed streak reads as 0."""
    today = today or date.today()
    streak = await progress_store.get_streak(db, child_id)
    if streak is None:
        return {
            "current_streak": 0,
            "longest_streak": 0,
            "weekly_completed": 0,
            "weekly_goal": settings.default_weekly_goal,
            "last_active_date": None,
        }

    current = streak["current_streak"]
    last_active = streak["last_active_date"]
    if last_active and date.fromisoformat(last_active) < today - timedelta(days=1):
        current = 0

    weekly = streak["weekly_completed"]
    if not streak["week_start_date"] or date.fromisoformat(streak["week_start_date"]) != week_start(today):
        weekly = 0

    return {
        "current_streak": current,
        "longest_streak": streak["longest_streak"],
        "weekly_completed": weekly,
        "weekly_goal": streak["weekly_goal"],
        "last_active_date": last_active,
    }
