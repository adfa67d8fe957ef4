"""Model access for the coach, the evaluators and the planners.

Every caller goes through ai_chat() with a use case:

    reply = await ai_chat(messages, use_case="assessment", json_mode=True)

  coach       lesson conversation (warm, longer replies)
  assessment  scoring writing and placement
  cheap       curriculum planning

The use case picks the model (settings.coach_model, ...); a model name
starting with "claude-" is sent to Anthropic, anything else to the provider
named by settings.ai_provider. Replies that must be JSON are checked with
parse_json_reply(), which raises LLMResponseError instead of guessing.
"""

import re
import json
import logging
from enum import Enum
from typing import Any, Optional

from pydantic import TypeAdapter, ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from writewise.config import settings

logger = logging.getLogger(__name__)

USE_CASES = ("coach", "assessment", "cheap")

JSON_ONLY_INSTRUCTION = "Reply with a single valid JSON value and nothing else."

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


class AIProvider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class LLMResponseError(Exception):
    """The model answered, but not with the JSON shape we asked for."""


def model_for(use_case: Optional[str]) -> str:
    if use_case is not None and use_case not in USE_CASES:
        raise ValueError(f"Unknown use case: {use_case}")
    override = getattr(settings, f"{use_case}_model", "") if use_case else ""
    return override or settings.model_name


def provider_for(model: str) -> AIProvider:
    if model.lower().startswith("claude-"):
        return AIProvider.ANTHROPIC
    if settings.ai_provider.lower() == AIProvider.ANTHROPIC.value:
        return AIProvider.ANTHROPIC
    return AIProvider.OPENAI


def _log_retry(retry_state):
    logger.warning(
        "Model call %s failed (attempt %d), retrying: %s",
        retry_state.fn.__name__,
        retry_state.attempt_number,
        retry_state.outcome.exception(),
    )


# Transport errors and rate limits are retried; parsing happens after the call.
_retrying = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=30),
    retry=retry_if_exception_type(Exception),
    before_sleep=_log_retry,
    reraise=True,
)


async def ai_chat(
    messages: list[dict],
    *,
    use_case: Optional[str] = None,
    temperature: float = 0.7,
    json_mode: bool = False,
    max_tokens: int = 2048,
) -> str:
    """Send ``messages`` to the model for ``use_case`` and return its text."""
    model = model_for(use_case)
    provider = provider_for(model)
    send = _openai_chat if provider == AIProvider.OPENAI else _anthropic_chat
    reply = await send(messages, model, temperature, json_mode, max_tokens)
    logger.debug("%s reply from %s (%d chars)", use_case or "default", model, len(reply or ""))
    return reply or ""


def parse_json_reply(text: str, schema: Any) -> Any:
    """Parse a model reply as JSON and validate it against ``schema``.

    Accepts replies wrapped in a markdown code fence. ``schema`` is any type
    pydantic can validate (a BaseModel subclass, ``list[WeekPlan]``, ...).
    """
    if not text or not text.strip():
        raise LLMResponseError("empty reply")
    cleaned = text.strip()
    fenced = _FENCE_RE.search(cleaned)
    if fenced:
        cleaned = fenced.group(1).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise LLMResponseError(f"reply is not JSON: {e}") from e
    try:
        return TypeAdapter(schema).validate_python(data)
    except ValidationError as e:
        raise LLMResponseError(f"reply does not match schema: {e.error_count()} errors") from e


def split_system(messages: list[dict], json_mode: bool = False) -> tuple[str, list[dict]]:
    """Anthropic takes the system prompt as its own parameter."""
    system_parts = [m["content"] for m in messages if m["role"] == "system"]
    if json_mode:
        system_parts.append(JSON_ONLY_INSTRUCTION)
    turns = [{"role": m["role"], "content": m["content"]} for m in messages if m["role"] != "system"]
    return "\n\n".join(system_parts).strip(), turns


@_retrying
async def _openai_chat(messages, model, temperature, json_mode, max_tokens) -> str:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=settings.api_key)
    extra = {"response_format": {"type": "json_object"}} if json_mode else {}
    response = await client.chat.completions.create(
        model=model,
        messages=messages,
        temperature=temperature,
        max_tokens=max_tokens,
        **extra,
    )
    return response.choices[0].message.content


@_retrying
async def _anthropic_chat(messages, model, temperature, json_mode, max_tokens) -> str:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
    system_text, turns = split_system(messages, json_mode)
    extra = {"system": system_text} if system_text else {}
    response = await client.messages.create(
        model=model,
        messages=turns,
        temperature=temperature,
        max_tokens=max_tokens,
        **extra,
    )
    return "".join(block.text for block in response.content if getattr(block, "type", "text") == "text")
