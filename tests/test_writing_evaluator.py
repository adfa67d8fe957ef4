"""
test_writing_evaluator.py - Tests for scoring replies from the assessment model

Tests:
- rubric replies are clamped to 1-4 per criterion, missing criteria score 2
- overall falls back to the weighted mean when the model's value is unusable
- general evaluation uses creativity / effort / skill_practice
- fenced JSON is accepted, anything unparseable raises LLMResponseError
- evaluate_writing() picks the prompt shape from the lesson's rubric
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from writewise.services import catalog
from writewise.services.ai_client import LLMResponseError
from writewise.services.writing_evaluator import (
    evaluate_writing,
    parse_general_evaluation,
    parse_rubric_evaluation,
)


@pytest.fixture
def rubric():
    return catalog.get_rubric("N1_story_beginning")


class TestRubricEvaluation:

    def test_scores_clamped_and_defaulted(self, rubric):
        reply = json.dumps({
            "scores": {"hook_opening": 4.6, "character_intro": 0, "setting": "three", "voice": True},
            "overallScore": 2.5,
        })
        evaluation = parse_rubric_evaluation(reply, rubric)
        assert evaluation.scores == {
            "hook_opening": 4.0,
            "character_intro": 1.0,
            "setting": 2.0,
            "voice": 2.0,
        }
        assert evaluation.overall_score == 2.5

    def test_half_rounds_up(self, rubric):
        reply = json.dumps({"scores": {"hook_opening": 2.5, "character_intro": 3.5, "setting": 1.4, "voice": 3}})
        evaluation = parse_rubric_evaluation(reply, rubric)
        assert evaluation.scores["hook_opening"] == 3.0
        assert evaluation.scores["character_intro"] == 4.0
        assert evaluation.scores["setting"] == 1.0

    def test_weighted_overall_when_missing(self, rubric):
        reply = json.dumps({"scores": {"hook_opening": 4, "character_intro": 4, "setting": 2, "voice": 2}})
        evaluation = parse_rubric_evaluation(reply, rubric)
        assert evaluation.overall_score == pytest.approx(3.1)

    def test_weighted_overall_when_out_of_range(self, rubric):
        reply = json.dumps({
            "scores": {"hook_opening": 4, "character_intro": 4, "setting": 2, "voice": 2},
            "overall_score": 9,
        })
        assert parse_rubric_evaluation(reply, rubric).overall_score == pytest.approx(3.1)

    def test_extra_criteria_ignored(self, rubric):
        reply = json.dumps({"scores": {"hook_opening": 3, "spelling": 1}, "overallScore": 3})
        assert set(parse_rubric_evaluation(reply, rubric).scores) == {
            "hook_opening", "character_intro", "setting", "voice",
        }

    def test_feedback_defaults_fill_gaps(self, rubric):
        reply = json.dumps({
            "scores": {"hook_opening": 3},
            "overallScore": 3,
            "feedback": {"strength": "Great hook!"},
        })
        feedback = parse_rubric_evaluation(reply, rubric).feedback
        assert feedback.strength == "Great hook!"
        assert feedback.growth
        assert feedback.encouragement

    def test_fenced_reply(self, rubric):
        reply = '```json\n{"scores": {"hook_opening": 3}, "overallScore": 3.2}\n```'
        assert parse_rubric_evaluation(reply, rubric).overall_score == 3.2


class TestGeneralEvaluation:

    def test_mean_of_three_criteria(self):
        reply = json.dumps({"scores": {"creativity": 3, "effort": 4, "skill_practice": 2}})
        evaluation = parse_general_evaluation(reply)
        assert evaluation.scores == {"creativity": 3.0, "effort": 4.0, "skill_practice": 2.0}
        assert evaluation.overall_score == 3.0


class TestMalformedReplies:

    @pytest.mark.parametrize("reply", [
        "",
        "I think this deserves a 3!",
        '{"scores": ',
        '{"overallScore": 3}',
        '[1, 2, 3]',
    ])
    def test_raises(self, reply):
        with pytest.raises(LLMResponseError):
            parse_general_evaluation(reply)


class TestEvaluateWriting:

    async def test_rubric_prompt_for_capstone(self, rubric):
        lesson = catalog.get_lesson("N1.1.5")
        reply = json.dumps({"scores": {"hook_opening": 3, "character_intro": 3, "setting": 3, "voice": 3}, "overallScore": 3})
        with patch("writewise.services.writing_evaluator.ai_chat", new=AsyncMock(return_value=reply)) as chat:
            evaluation = await evaluate_writing("Once upon a time...", lesson, rubric, tier=1)

        assert evaluation.overall_score == 3.0
        messages = chat.await_args.args[0]
        assert "hook_opening" in messages[0]["content"]
        assert chat.await_args.kwargs["use_case"] == "assessment"
        assert chat.await_args.kwargs["json_mode"] is True

    async def test_general_prompt_without_rubric(self):
        lesson = catalog.get_lesson("N1.1.1")
        reply = json.dumps({"scores": {"creativity": 2, "effort": 2, "skill_practice": 2}, "overallScore": 2})
        with patch("writewise.services.writing_evaluator.ai_chat", new=AsyncMock(return_value=reply)) as chat:
            evaluation = await evaluate_writing("Once upon a time...", lesson, None, tier=1)

        assert set(evaluation.scores) == {"creativity", "effort", "skill_practice"}
        assert lesson.title in chat.await_args.args[0][0]["content"]

    async def test_garbage_reply_raises(self, rubric):
        lesson = catalog.get_lesson("N1.1.5")
        with patch("writewise.services.writing_evaluator.ai_chat", new=AsyncMock(return_value="not json")):
            with pytest.raises(LLMResponseError):
                await evaluate_writing("Once upon a time...", lesson, rubric, tier=1)
