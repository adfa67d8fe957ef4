"""
test_ai_client.py - Tests for model routing and JSON reply parsing

Tests:
- use cases resolve to their configured model, falling back to model_name
- claude-* models go to Anthropic regardless of the default provider
- system messages are folded into one Anthropic system prompt
- parse_json_reply() accepts fenced JSON and raises LLMResponseError otherwise
"""

import pytest
from pydantic import BaseModel

from writewise.config import settings
from writewise.services.ai_client import (
    JSON_ONLY_INSTRUCTION,
    AIProvider,
    LLMResponseError,
    model_for,
    parse_json_reply,
    provider_for,
    split_system,
)


class Reply(BaseModel):
    tier: int


class TestRouting:

    def test_use_case_override(self, monkeypatch):
        monkeypatch.setattr(settings, "model_name", "gpt-4o")
        monkeypatch.setattr(settings, "cheap_model", "gpt-4o-mini")
        monkeypatch.setattr(settings, "coach_model", "")
        assert model_for("cheap") == "gpt-4o-mini"
        assert model_for("coach") == "gpt-4o"
        assert model_for(None) == "gpt-4o"

    def test_unknown_use_case(self):
        with pytest.raises(ValueError):
            model_for("lesson")

    def test_provider_detection(self, monkeypatch):
        monkeypatch.setattr(settings, "ai_provider", "openai")
        assert provider_for("claude-sonnet-4-5") == AIProvider.ANTHROPIC
        assert provider_for("gpt-4o") == AIProvider.OPENAI
        monkeypatch.setattr(settings, "ai_provider", "Anthropic")
        assert provider_for("my-finetune") == AIProvider.ANTHROPIC


class TestSplitSystem:

    def test_system_messages_joined(self):
        system, turns = split_system([
            {"role": "system", "content": "Be kind."},
            {"role": "user", "content": "Hi"},
            {"role": "system", "content": "Be brief."},
        ])
        assert system == "Be kind.\n\nBe brief."
        assert turns == [{"role": "user", "content": "Hi"}]

    def test_json_instruction_appended(self):
        system, _ = split_system([{"role": "user", "content": "Score this"}], json_mode=True)
        assert system == JSON_ONLY_INSTRUCTION


class TestParseJsonReply:

    def test_fenced(self):
        assert parse_json_reply('Sure!\n```json\n{"tier": 2}\n```', Reply).tier == 2

    def test_list_schema(self):
        assert parse_json_reply("[1, 2]", list[int]) == [1, 2]

    @pytest.mark.parametrize("text", ["", "   ", "tier two", '{"tier": "high"}', "[1, 2]"])
    def test_rejects(self, text):
        with pytest.raises(LLMResponseError):
            parse_json_reply(text, Reply)
