from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from writewise.db import progress_store
from writewise.db.database import get_db
from writewise.models.progress import WeeklyGoalUpdate
from writewise.routes.children import require_child
from writewise.services.badges import BADGES_BY_ID, list_child_badges
from writewise.services.skill_progress import describe_skills
from writewise.services.streak_tracker import get_streak_summary

router = APIRouter(prefix="/api/children", tags=["progress"])


class BadgesSeen(BaseModel):
    badge_ids: List[str]


@router.get("/{child_id}/skills")
async def get_skills(child_id: int, db=Depends(get_db)):
    await require_child(db, child_id)
    rows = await progress_store.list_skills(db, child_id)
    return {"child_id": child_id, "categories": describe_skills(rows)}


@router.get("/{child_id}/badges")
async def get_badges(child_id: int, db=Depends(get_db)):
    await require_child(db, child_id)
    return await list_child_badges(db, child_id)


@router.post("/{child_id}/badges/seen")
async def mark_badges_seen(child_id: int, body: BadgesSeen, db=Depends(get_db)):
    await require_child(db, child_id)
    known = [b for b in body.badge_ids if b in BADGES_BY_ID]
    await progress_store.mark_achievements_seen(db, child_id, known)
    await db.commit()
    return {"marked": known}


@router.get("/{child_id}/streak")
async def get_streak(child_id: int, db=Depends(get_db)):
    await require_child(db, child_id)
    return await get_streak_summary(db, child_id)


@router.put("/{child_id}/streak/goal")
async def update_weekly_goal(child_id: int, body: WeeklyGoalUpdate, db=Depends(get_db)):
    await require_child(db, child_id)
    await progress_store.set_weekly_goal(db, child_id, body.weekly_goal)
    await db.commit()
    return await get_streak_summary(db, child_id)
