"""Anthropic Messages API provider (streaming)."""

import logging
from typing import Any, AsyncIterator

import anthropic

from app.core.config import settings
from app.services.llm.base import BaseLLMProvider, CompletionRequest, LLMProviderError
from app.services.llm.events import (
    BlockStop,
    InputJsonDelta,
    MessageDelta,
    MessageStart,
    StopReason,
    StreamEvent,
    TextBlockStart,
    TextDelta,
    ToolUseBlockStart,
)

logger = logging.getLogger(__name__)


def _stop_reason(raw: str | None) -> StopReason | None:
    if raw is None:
        return None
    try:
        return StopReason(raw)
    except ValueError:
        logger.warning(f"Unrecognized stop reason {raw!r}, treating as end_turn")
        return StopReason.END_TURN


def translate_event(raw: Any) -> StreamEvent | None:
    """Map one raw SDK stream event onto a StreamEvent. Returns None for events we don't use."""
    kind = getattr(raw, "type", None)

    if kind == "message_start":
        usage = getattr(raw.message, "usage", None)
        return MessageStart(input_tokens=getattr(usage, "input_tokens", 0) or 0)

    if kind == "content_block_start":
        block = raw.content_block
        if block.type == "text":
            return TextBlockStart(index=raw.index)
        if block.type == "tool_use":
            return ToolUseBlockStart(index=raw.index, id=block.id, name=block.name)
        logger.debug(f"Ignoring content block of type {block.type}")
        return None

    if kind == "content_block_delta":
        delta = raw.delta
        if delta.type == "text_delta":
            return TextDelta(index=raw.index, text=delta.text)
        if delta.type == "input_json_delta":
            return InputJsonDelta(index=raw.index, partial_json=delta.partial_json)
        return None

    if kind == "content_block_stop":
        return BlockStop(index=raw.index)

    if kind == "message_delta":
        usage = getattr(raw, "usage", None)
        return MessageDelta(
            stop_reason=_stop_reason(raw.delta.stop_reason),
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
        )

    # message_stop, ping
    return None


class AnthropicProvider(BaseLLMProvider):
    def __init__(self, api_key: str | None = None, client: anthropic.AsyncAnthropic | None = None):
        self.client = client or anthropic.AsyncAnthropic(
            api_key=api_key or settings.anthropic_api_key
        )

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        try:
            raw_stream = await self.client.messages.create(
                model=request.model,
                max_tokens=request.max_tokens,
                system=request.system,
                messages=[m.model_dump() for m in request.messages],
                tools=request.tools,
                stream=True,
            )
        except anthropic.APIError as e:
            raise LLMProviderError(f"Anthropic request failed: {e}") from e

        try:
            async for raw in raw_stream:
                event = translate_event(raw)
                if event is not None:
                    yield event
        except anthropic.APIError as e:
            raise LLMProviderError(f"Anthropic stream failed: {e}") from e
        finally:
            await raw_stream.close()
