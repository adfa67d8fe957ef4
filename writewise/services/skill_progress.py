"""Rolling skill scores per child.

A lesson touches one or two skills, picked from a static table keyed by the
lesson's writing type and unit number. Each assessment folds into the stored
score as 0.7 * latest + 0.3 * previous, then the score is bucketed into a level.
"""

import logging

from writewise.db import progress_store
from writewise.models.progress import SkillLevel
from writewise.services.catalog import TYPE_BY_LETTER, unit_number

logger = logging.getLogger(__name__)

LATEST_WEIGHT = 0.7
PREVIOUS_WEIGHT = 0.3

# (lower bound, level), checked top-down
LEVEL_THRESHOLDS = [
    (3.7, SkillLevel.ADVANCED),
    (2.8, SkillLevel.PROFICIENT),
    (1.8, SkillLevel.DEVELOPING),
]

SKILL_DEFINITIONS = {
    "narrative": {
        "display_name": "Narrative Writing",
        "skills": {
            "story_structure": "Story Structure",
            "character_development": "Character Development",
            "setting_description": "Setting & Description",
            "voice_style": "Voice & Style",
            "plot_pacing": "Plot & Pacing",
        },
    },
    "persuasive": {
        "display_name": "Persuasive Writing",
        "skills": {
            "argument_structure": "Argument Structure",
            "evidence_support": "Evidence & Support",
            "counterarguments": "Counterarguments",
            "persuasive_language": "Persuasive Language",
            "conclusion_impact": "Conclusion & Impact",
        },
    },
    "expository": {
        "display_name": "Expository Writing",
        "skills": {
            "topic_clarity": "Topic Clarity",
            "organization": "Organization",
            "information_depth": "Information Depth",
            "transitions": "Transitions",
            "conclusion": "Conclusion",
        },
    },
    "descriptive": {
        "display_name": "Descriptive Writing",
        "skills": {
            "sensory_detail": "Sensory Detail",
            "figurative_language": "Figurative Language",
            "word_choice": "Word Choice",
            "imagery": "Imagery",
            "mood_atmosphere": "Mood & Atmosphere",
        },
    },
}

SKILLS_BY_UNIT = {
    "narrative": {
        1: ["story_structure", "setting_description"],
        2: ["plot_pacing", "character_development"],
        3: ["voice_style", "story_structure"],
        4: ["character_development", "plot_pacing"],
    },
    "persuasive": {
        1: ["argument_structure", "persuasive_language"],
        2: ["evidence_support", "counterarguments"],
        3: ["conclusion_impact", "persuasive_language"],
        4: ["argument_structure", "evidence_support"],
    },
    "expository": {
        1: ["topic_clarity", "organization"],
        2: ["information_depth", "transitions"],
        3: ["conclusion", "organization"],
        4: ["topic_clarity", "information_depth"],
    },
    "descriptive": {
        1: ["sensory_detail", "imagery"],
        2: ["figurative_language", "word_choice"],
        3: ["mood_atmosphere", "sensory_detail"],
        4: ["word_choice", "imagery"],
    },
}


def lesson_skills(lesson_id: str) -> tuple[str, list[str]]:
    """(category, skill names) developed by a lesson.

    Units without an entry fall back to the category's first skill.
    """
    category = TYPE_BY_LETTER.get(lesson_id[:1].upper(), "narrative")
    by_unit = SKILLS_BY_UNIT[category]
    skills = by_unit.get(unit_number(lesson_id))
    if not skills:
        skills = [next(iter(SKILL_DEFINITIONS[category]["skills"]))]
    return category, skills


def rolling_score(latest: float, previous: float | None) -> float:
    if previous is None:
        return latest
    return LATEST_WEIGHT * latest + PREVIOUS_WEIGHT * previous


def level_for(score: float) -> SkillLevel:
    for bound, level in LEVEL_THRESHOLDS:
        if score >= bound:
            return level
    return SkillLevel.EMERGING


async def update_skill_progress(db, child_id: int, lesson_id: str, overall_score: float) -> list[dict]:
    """Fold one assessment into every skill the lesson touches."""
    category, skills = lesson_skills(lesson_id)
    updated = []
    for skill_name in skills:
        existing = await progress_store.get_skill(db, child_id, category, skill_name)
        previous = existing["score"] if existing else None
        score = rolling_score(overall_score, previous)
        level = level_for(score)
        await progress_store.upsert_skill(db, child_id, category, skill_name, score, level.value)
        updated.append({"skill_category": category, "skill_name": skill_name, "score": score, "level": level.value})

    logger.info("Child %s skills updated from %s: %s", child_id, lesson_id, updated)
    return updated


def describe_skills(rows: list[dict]) -> dict:
    """Group stored skill rows under their category with display names."""
    grouped = {}
    for category, definition in SKILL_DEFINITIONS.items():
        grouped[category] = {
            "display_name": definition["display_name"],
            "skills": [],
        }
    for row in rows:
        definition = SKILL_DEFINITIONS.get(row["skill_category"])
        if definition is None:
            continue
        grouped[row["skill_category"]]["skills"].append({
            "name": row["skill_name"],
            "display_name": definition["skills"].get(row["skill_name"], row["skill_name"]),
            "score": row["score"],
            "level": row["level"],
            "total_attempts": row["total_attempts"],
        })
    return grouped
