"""Agent orchestration - drives the streaming model through multi-step tool use."""

import logging
import time
from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, AsyncIterator

from app.core.config import settings
from app.services.llm import get_llm_provider
from app.services.llm.base import (
    BaseLLMProvider,
    ChatMessage,
    CompletionRequest,
    ToolResultBlock,
    ToolUseBlock,
)
from app.services.llm.events import StopReason
from app.services.prompts import build_system_prompt
from app.services.rate_limiter import RateLimiter
from app.services.stream_aggregator import StreamAggregator
from app.services.tools.registry import ToolRegistry, create_default_registry

logger = logging.getLogger(__name__)

MISSING_API_KEY_MESSAGE = (
    "Anthropic API key is not configured. Set NUTRIR_ANTHROPIC_API_KEY in the environment or .env file."
)
ITERATION_LIMIT_MESSAGE = "Maximum tool call iterations reached. Please try a simpler question."


class AgentEventType(str, Enum):
    TEXT = "text"
    TOOL = "tool"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class AgentEvent:
    type: AgentEventType
    text: str | None = None
    tool_name: str | None = None
    error: str | None = None

    @classmethod
    def text_delta(cls, text: str) -> "AgentEvent":
        return cls(AgentEventType.TEXT, text=text)

    @classmethod
    def tool(cls, name: str) -> "AgentEvent":
        return cls(AgentEventType.TOOL, tool_name=name)

    @classmethod
    def complete(cls) -> "AgentEvent":
        return cls(AgentEventType.COMPLETE)

    @classmethod
    def failed(cls, message: str) -> "AgentEvent":
        return cls(AgentEventType.ERROR, error=message)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type.value}
        if self.text is not None:
            out["text"] = self.text
        if self.tool_name is not None:
            out["tool_name"] = self.tool_name
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass
class TurnRecord:
    """Everything one send_message() appended to history, for persistence and usage logging."""

    messages: list[ChatMessage] = field(default_factory=list)
    display_texts: list[str | None] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    tool_calls: int = 0
    duration_ms: int = 0


class Agent:
    """One assistant session.

    The instance owns its conversation history; calls to send_message() on the
    same instance must not overlap. Loading and saving durable history is left
    to the caller (see load_history() and last_turn).
    """

    def __init__(
        self,
        registry: ToolRegistry | None = None,
        provider: BaseLLMProvider | None = None,
        rate_limiter: RateLimiter | None = None,
        *,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        max_iterations: int | None = None,
    ):
        self.registry = registry or create_default_registry()
        self.rate_limiter = rate_limiter
        self.api_key = api_key if api_key is not None else settings.anthropic_api_key
        self.model = model or settings.anthropic_model
        self.max_tokens = max_tokens if max_tokens is not None else settings.anthropic_max_tokens
        self.max_iterations = max_iterations if max_iterations is not None else settings.max_tool_iterations
        self._provider = provider

        self.user_id: str | None = None
        self.user_name = "User"
        self.user_role = "Unknown"
        self.page_entity_type: str | None = None
        self.page_entity_id: str | None = None

        self._history: list[ChatMessage] = []
        self.last_turn = TurnRecord()

    # --- Context ---

    def set_user_id(self, user_id: str) -> None:
        self.user_id = user_id

    def set_user_context(self, user_name: str, user_role: str) -> None:
        self.user_name = user_name
        self.user_role = user_role

    def set_page_context(self, entity_type: str | None, entity_id: str | None) -> None:
        self.page_entity_type = entity_type
        self.page_entity_id = entity_id

    # --- History ---

    @property
    def history(self) -> list[ChatMessage]:
        return list(self._history)

    def load_history(self, messages: list[ChatMessage]) -> None:
        self._history = list(messages)

    def clear_history(self) -> None:
        """Forget the in-memory conversation. Durable history is the caller's concern."""
        self._history.clear()

    def _commit(self, message: ChatMessage, display_text: str | None) -> None:
        self._history.append(message)
        self.last_turn.messages.append(message)
        self.last_turn.display_texts.append(display_text)

    # --- Loop ---

    def _get_provider(self) -> BaseLLMProvider:
        if self._provider is None:
            self._provider = get_llm_provider(api_key=self.api_key)
        return self._provider

    def _build_system_prompt(self) -> str:
        return build_system_prompt(
            self.user_name,
            self.user_role,
            date.today(),
            self.page_entity_type,
            self.page_entity_id,
        )

    async def send_message(self, text: str) -> AsyncIterator[AgentEvent]:
        """Run one user exchange, yielding events as they happen.

        Ends with exactly one COMPLETE or ERROR event. Cancelling the consuming
        task aborts the in-flight provider call or tool and propagates; history
        keeps only messages that were fully appended.
        """
        self.last_turn = TurnRecord()

        if not self.api_key:
            yield AgentEvent.failed(MISSING_API_KEY_MESSAGE)
            return

        if self.user_id is not None and self.rate_limiter is not None:
            allowed, message = self.rate_limiter.check_and_record(self.user_id)
            if not allowed:
                yield AgentEvent.failed(message or "Rate limit exceeded.")
                return

        turn = self.last_turn
        started = time.monotonic()
        provider = self._get_provider()
        system_prompt = self._build_system_prompt()
        tools = self.registry.anthropic_tools()

        self._commit(ChatMessage(role="user", content=text), text)

        try:
            for iteration in range(self.max_iterations):
                request = CompletionRequest(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    system=system_prompt,
                    messages=list(self._history),
                    tools=tools,
                )
                logger.info(
                    f"=== LLM API Call (iteration {iteration + 1}/{self.max_iterations}) ===\n"
                    f"  Model: {self.model}\n"
                    f"  Tools: {len(tools)}\n"
                    f"  Messages: {len(request.messages)}"
                )
                if logger.isEnabledFor(logging.DEBUG):
                    for i, m in enumerate(request.messages):
                        logger.debug(f"  messages[{i}]: role={m.role}, content=[{m.content_kinds()}]")

                aggregator = StreamAggregator()
                try:
                    async with aclosing(provider.stream(request)) as events:
                        async for event in events:
                            fragment = aggregator.feed(event)
                            if fragment:
                                yield AgentEvent.text_delta(fragment)
                    blocks = aggregator.finish()
                except Exception as e:
                    logger.error("Error calling completion provider", exc_info=True)
                    yield AgentEvent.failed(f"Error communicating with AI service: {e}")
                    return
                finally:
                    turn.input_tokens += aggregator.input_tokens
                    turn.output_tokens += aggregator.output_tokens

                logger.info(
                    f"=== LLM Response ===\n"
                    f"  Stop reason: {aggregator.stop_reason}\n"
                    f"  Blocks: {len(blocks)}\n"
                    f"  Input tokens: {aggregator.input_tokens}\n"
                    f"  Output tokens: {aggregator.output_tokens}"
                )

                self._commit(ChatMessage(role="assistant", content=blocks), aggregator.text or None)

                tool_uses = [b for b in blocks if isinstance(b, ToolUseBlock)]
                if aggregator.stop_reason != StopReason.TOOL_USE or not tool_uses:
                    # end_turn, max_tokens or stop_sequence - done
                    yield AgentEvent.complete()
                    return

                results: list[ToolResultBlock] = []
                for tool_use in tool_uses:
                    turn.tool_calls += 1
                    yield AgentEvent.tool(tool_use.name)

                    logger.info(f"Tool call: {tool_use.name}({tool_use.input})")
                    result = await self.registry.dispatch(tool_use.name, tool_use.input)
                    results.append(ToolResultBlock(tool_use_id=tool_use.id, content=result))

                # Tool results have no display text
                self._commit(ChatMessage(role="user", content=results), None)

            logger.warning(f"Agent reached maximum iterations ({self.max_iterations})")
            yield AgentEvent.failed(ITERATION_LIMIT_MESSAGE)
        finally:
            turn.duration_ms = int((time.monotonic() - started) * 1000)
