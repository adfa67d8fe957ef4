"""Badge catalog and unlock evaluation.

All facts the predicates need are fetched in one batch up front; each
predicate is then a pure function of those facts. Predicates run inside
their own failure boundary so one bad predicate never blocks the others,
and inserts are duplicate-safe so re-running never awards a badge twice.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from writewise.db import progress_store
from writewise.models.progress import SkillLevel
from writewise.services.event_log import log_lesson_event

logger = logging.getLogger(__name__)

CATEGORIES = ("narrative", "persuasive", "expository", "descriptive")


@dataclass(frozen=True)
class Badge:
    id: str
    name: str
    emoji: str
    description: str
    category: str


BADGE_CATALOG = [
    # Writing
    Badge("first_lesson", "Story Starter", "\U0001F4DD", "Complete your first lesson", "writing"),
    Badge("five_lessons", "Bookworm", "\U0001F4DA", "Complete 5 lessons", "writing"),
    Badge("ten_lessons", "Writing Champion", "\U0001F3C6", "Complete 10 lessons", "writing"),
    Badge("twenty_lessons", "Master Writer", "✍️", "Complete 20 lessons", "writing"),
    Badge("first_revision", "Editor in Chief", "✏️", "Revise a piece of writing", "writing"),
    Badge("wordsmith_100", "Wordsmith", "\U0001F4AC", "Write 100+ words in one submission", "writing"),
    Badge("wordsmith_250", "Word Wizard", "\U0001FA84", "Write 250+ words in one submission", "writing"),
    Badge("wordsmith_500", "Novel Author", "\U0001F4D6", "Write 500+ words in one submission", "writing"),
    # Progress
    Badge("perfect_score", "Perfect Score", "⭐", "Score 4/4 on an assessment", "progress"),
    Badge("high_achiever", "High Achiever", "\U0001F31F", "Score 3.5+ three times", "progress"),
    Badge("all_narrative", "Story Teller", "\U0001F4D5", "Complete a narrative lesson", "progress"),
    Badge("all_persuasive", "Debate Star", "\U0001F5E3️", "Complete a persuasive lesson", "progress"),
    Badge("all_expository", "Knowledge Sharer", "\U0001F4A1", "Complete an expository lesson", "progress"),
    Badge("all_descriptive", "Word Painter", "\U0001F3A8", "Complete a descriptive lesson", "progress"),
    # Streak
    Badge("streak_3", "On a Roll", "\U0001F525", "3-day writing streak", "streak"),
    Badge("streak_7", "Week Warrior", "⚡", "7-day writing streak", "streak"),
    Badge("streak_14", "Unstoppable", "\U0001F680", "14-day writing streak", "streak"),
    Badge("weekly_goal", "Goal Getter", "\U0001F3AF", "Meet weekly lesson goal", "streak"),
    # Skill
    Badge("first_proficient", "Skill Master", "\U0001F393", "Reach PROFICIENT in any skill", "skill"),
    Badge("first_advanced", "Writing Genius", "\U0001F9E0", "Reach ADVANCED in any skill", "skill"),
    Badge("well_rounded", "Well Rounded", "\U0001F308", "Score 2.0+ in all 4 writing categories", "skill"),
    # Special
    Badge("early_bird", "Early Bird", "\U0001F305", "Complete a lesson before 9 AM", "special"),
    Badge("night_owl", "Night Owl", "\U0001F989", "Complete a lesson after 8 PM", "special"),
]

BADGES_BY_ID = {b.id: b for b in BADGE_CATALOG}


@dataclass
class BadgeFacts:
    completed_count: int = 0
    completed_lesson_ids: list[str] = field(default_factory=list)
    completion_hours: list[int] = field(default_factory=list)
    max_word_count: int = 0
    has_revision: bool = False
    high_score_count: int = 0
    has_perfect_score: bool = False
    has_proficient: bool = False
    has_advanced: bool = False
    best_category_scores: dict[str, float] = field(default_factory=dict)
    best_streak: int = 0
    weekly_goal_met: bool = False


def _hour_of(timestamp: Optional[str]) -> Optional[int]:
    if not timestamp:
        return None
    return datetime.fromisoformat(timestamp).hour


def build_facts(inputs: dict) -> BadgeFacts:
    """Derive predicate inputs from the raw rows fetched for one child."""
    completed = inputs["completed"]
    skills = inputs["skills"]
    scores = inputs["scores"]
    streak = inputs["streak"]

    best_by_category: dict[str, float] = {}
    for s in skills:
        cat = s["skill_category"]
        if cat not in best_by_category or s["score"] > best_by_category[cat]:
            best_by_category[cat] = s["score"]

    hours = [h for h in (_hour_of(c["completed_at"]) for c in completed) if h is not None]

    best_streak = 0
    weekly_met = False
    if streak:
        best_streak = max(streak["current_streak"], streak["longest_streak"])
        weekly_met = streak["weekly_completed"] >= streak["weekly_goal"]

    return BadgeFacts(
        completed_count=len(completed),
        completed_lesson_ids=[c["lesson_id"] for c in completed],
        completion_hours=hours,
        max_word_count=inputs["max_word_count"],
        has_revision=inputs["has_revision"],
        high_score_count=sum(1 for s in scores if s >= 3.5),
        has_perfect_score=any(s >= 4.0 for s in scores),
        has_proficient=any(
            s["level"] in (SkillLevel.PROFICIENT.value, SkillLevel.ADVANCED.value) for s in skills
        ),
        has_advanced=any(s["level"] == SkillLevel.ADVANCED.value for s in skills),
        best_category_scores=best_by_category,
        best_streak=best_streak,
        weekly_goal_met=weekly_met,
    )


def _completed_type(letter: str) -> Callable[[BadgeFacts], bool]:
    return lambda f: any(lesson_id.startswith(letter) for lesson_id in f.completed_lesson_ids)


CONDITIONS: dict[str, Callable[[BadgeFacts], bool]] = {
    "first_lesson": lambda f: f.completed_count >= 1,
    "five_lessons": lambda f: f.completed_count >= 5,
    "ten_lessons": lambda f: f.completed_count >= 10,
    "twenty_lessons": lambda f: f.completed_count >= 20,
    "first_revision": lambda f: f.has_revision,
    "wordsmith_100": lambda f: f.max_word_count >= 100,
    "wordsmith_250": lambda f: f.max_word_count >= 250,
    "wordsmith_500": lambda f: f.max_word_count >= 500,
    "perfect_score": lambda f: f.has_perfect_score,
    "high_achiever": lambda f: f.high_score_count >= 3,
    "all_narrative": _completed_type("N"),
    "all_persuasive": _completed_type("P"),
    "all_expository": _completed_type("E"),
    "all_descriptive": _completed_type("D"),
    "streak_3": lambda f: f.best_streak >= 3,
    "streak_7": lambda f: f.best_streak >= 7,
    "streak_14": lambda f: f.best_streak >= 14,
    "weekly_goal": lambda f: f.weekly_goal_met,
    "first_proficient": lambda f: f.has_proficient,
    "first_advanced": lambda f: f.has_advanced,
    "well_rounded": lambda f: all(f.best_category_scores.get(c, 0) >= 2.0 for c in CATEGORIES),
    "early_bird": lambda f: any(h < 9 for h in f.completion_hours),
    "night_owl": lambda f: any(h >= 20 for h in f.completion_hours),
}


def evaluate_conditions(facts: BadgeFacts, earned: set[str]) -> list[str]:
    """Badge ids whose predicate holds and that are not yet earned."""
    newly_true = []
    for badge in BADGE_CATALOG:
        if badge.id in earned:
            continue
        condition = CONDITIONS.get(badge.id)
        if condition is None:
            continue
        try:
            if condition(facts):
                newly_true.append(badge.id)
        except Exception:
            logger.exception("Badge condition %s failed", badge.id)
    return newly_true


async def check_and_unlock_badges(db, child_id: int) -> list[str]:
    """Unlock every newly earned badge. Returns the ids actually inserted."""
    earned = {a["badge_id"] for a in await progress_store.list_achievements(db, child_id)}
    facts = build_facts(await progress_store.fetch_badge_inputs(db, child_id))

    unlocked = []
    for badge_id in evaluate_conditions(facts, earned):
        if await progress_store.insert_achievement(db, child_id, badge_id):
            unlocked.append(badge_id)
            log_lesson_event("badge_unlocked", child_id=child_id, badge=badge_id)

    return unlocked


async def list_child_badges(db, child_id: int) -> dict:
    """Catalog view: earned badges with unlock time/seen flag, plus the rest."""
    achievements = {a["badge_id"]: a for a in await progress_store.list_achievements(db, child_id)}
    badges = []
    for badge in BADGE_CATALOG:
        row = achievements.get(badge.id)
        badges.append({
            "id": badge.id,
            "name": badge.name,
            "emoji": badge.emoji,
            "description": badge.description,
            "category": badge.category,
            "earned": row is not None,
            "unlocked_at": row["unlocked_at"] if row else None,
            "seen": bool(row["seen"]) if row else False,
        })
    return {
        "badges": badges,
        "earned_count": len(achievements),
        "total": len(BADGE_CATALOG),
        "unseen": [b["id"] for b in badges if b["earned"] and not b["seen"]],
    }
