"""Placement: three short writing samples decide a child's starting tier."""

import logging
from typing import Any, Dict, List, Union

from writewise.db import curriculum_store
from writewise.db.database import atomic
from writewise.models.assessment import Rejection
from writewise.models.progress import PlacementAnalysis
from writewise.services.ai_client import ai_chat, parse_json_reply
from writewise.services.prompts import render

logger = logging.getLogger(__name__)


def format_samples(prompts: List[str], responses: List[str]) -> str:
    return "\n\n".join(
        f"Prompt {i + 1}: {prompt}\nResponse {i + 1}: {response}"
        for i, (prompt, response) in enumerate(zip(prompts, responses))
    )


async def place_child(
    db,
    child: Dict[str, Any],
    prompts: List[str],
    responses: List[str],
) -> Union[Dict[str, Any], Rejection]:
    """Ask the model for a tier, then store the result and the new tier together.

    Raises LLMResponseError when the reply is not a valid analysis.
    """
    if await curriculum_store.get_placement(db, child["id"]):
        return Rejection(
            error="already_placed",
            message="Placement assessment already completed for this child",
            status_code=409,
        )

    messages = render(
        "placement.yaml",
        child_name=child["name"],
        child_age=child["age"],
        samples=format_samples(prompts, responses),
    )
    reply = await ai_chat(messages, use_case="assessment", temperature=0.3, json_mode=True, max_tokens=1024)
    analysis = parse_json_reply(reply, PlacementAnalysis)

    details = {
        "strengths": analysis.strengths,
        "gaps": analysis.gaps,
        "reasoning": analysis.reasoning,
    }
    async with atomic(db):
        placement_id = await curriculum_store.insert_placement(
            db,
            child["id"],
            prompts,
            responses,
            recommended_tier=analysis.recommended_tier,
            assigned_tier=analysis.recommended_tier,
            confidence=analysis.confidence,
            analysis=details,
        )
        await curriculum_store.set_child_tier(db, child["id"], analysis.recommended_tier)

    logger.info(
        "Child %s placed in tier %d (confidence %.2f)",
        child["id"], analysis.recommended_tier, analysis.confidence,
    )
    return {
        "placement_id": placement_id,
        "recommended_tier": analysis.recommended_tier,
        "confidence": analysis.confidence,
        "analysis": details,
    }
