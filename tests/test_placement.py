"""
test_placement.py - Tests for the placement assessment

Tests:
- the model's tier is stored and becomes the child's tier
- a child can only be placed once
- an unusable reply raises and stores nothing
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from writewise.db import curriculum_store
from writewise.models.assessment import Rejection
from writewise.services.ai_client import LLMResponseError
from writewise.services.placement import format_samples, place_child

PLACEMENT = "writewise.services.placement.ai_chat"
PROMPTS = ["Describe your favourite place", "Should kids have homework?", "How do you make a sandwich?"]
RESPONSES = [
    "My treehouse is green and smells like pine.",
    "No, because we need time to play outside.",
    "First you get bread. Then you add cheese.",
]


def _reply(tier=2, confidence=0.75):
    return json.dumps({
        "recommendedTier": tier,
        "confidence": confidence,
        "strengths": ["clear ideas"],
        "gaps": ["paragraphing"],
        "reasoning": "Solid sentences for the age.",
    })


class TestFormatSamples:

    def test_numbered_pairs(self):
        text = format_samples(PROMPTS, RESPONSES)
        assert text.startswith("Prompt 1: Describe your favourite place\nResponse 1: My treehouse")
        assert "Prompt 3: How do you make a sandwich?" in text


class TestPlaceChild:

    async def test_stores_tier(self, db, child):
        with patch(PLACEMENT, new=AsyncMock(return_value=_reply(tier=2))) as chat:
            result = await place_child(db, child, PROMPTS, RESPONSES)

        assert chat.await_args.kwargs["json_mode"] is True
        assert result["recommended_tier"] == 2
        assert result["analysis"]["gaps"] == ["paragraphing"]

        updated = await curriculum_store.get_child(db, child["id"])
        assert updated["tier"] == 2
        placement = await curriculum_store.get_placement(db, child["id"])
        assert placement is not None

    async def test_only_once(self, db, child):
        with patch(PLACEMENT, new=AsyncMock(return_value=_reply())):
            await place_child(db, child, PROMPTS, RESPONSES)
        with patch(PLACEMENT, new=AsyncMock()) as chat:
            result = await place_child(db, child, PROMPTS, RESPONSES)

        chat.assert_not_awaited()
        assert isinstance(result, Rejection)
        assert result.error == "already_placed"
        assert result.status_code == 409

    @pytest.mark.parametrize("reply", ["Tier 2 I think", json.dumps({"recommendedTier": 5, "confidence": 0.5})])
    async def test_bad_reply_stores_nothing(self, db, child, reply):
        with patch(PLACEMENT, new=AsyncMock(return_value=reply)):
            with pytest.raises(LLMResponseError):
                await place_child(db, child, PROMPTS, RESPONSES)

        assert await curriculum_store.get_placement(db, child["id"]) is None
        assert (await curriculum_store.get_child(db, child["id"]))["tier"] == 1
