"""Abstract completion provider interface and the message content model it speaks."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Annotated, Any, AsyncIterator, Literal, Union

from pydantic import BaseModel, Field

from app.services.llm.events import StreamEvent


class LLMProviderError(Exception):
    """Raised by provider adapters when the completion service fails."""


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str


ContentBlock = Annotated[
    Union[TextBlock, ToolUseBlock, ToolResultBlock], Field(discriminator="type")
]

# A message payload is either plain text or an ordered list of blocks
MessageContent = Union[str, list[ContentBlock]]


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: MessageContent

    def content_kinds(self) -> str:
        """Short description of the payload shape, used in debug logging."""
        if isinstance(self.content, str):
            return "string"
        return "+".join(block.type for block in self.content) or "empty"


@dataclass
class CompletionRequest:
    model: str
    max_tokens: int
    system: str
    messages: list[ChatMessage]
    tools: list[dict] = field(default_factory=list)


class BaseLLMProvider(ABC):
    @abstractmethod
    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        """Issue one streaming completion call and yield its protocol events in order.

        Implementations raise LLMProviderError for transport or service failures.
        Cancellation of the consuming task must abort the underlying call.
        """
        ...
