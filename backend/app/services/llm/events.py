"""Streaming protocol events emitted by completion providers.

Each provider adapter translates its wire format into exactly these variants;
consumers match on them exhaustively.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union


class StopReason(str, Enum):
    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"


@dataclass(frozen=True)
class MessageStart:
    input_tokens: int = 0


@dataclass(frozen=True)
class TextBlockStart:
    index: int


@dataclass(frozen=True)
class ToolUseBlockStart:
    index: int
    id: str
    name: str


@dataclass(frozen=True)
class TextDelta:
    index: int
    text: str


@dataclass(frozen=True)
class InputJsonDelta:
    index: int
    partial_json: str


@dataclass(frozen=True)
class BlockStop:
    index: int


@dataclass(frozen=True)
class MessageDelta:
    stop_reason: StopReason | None = None
    output_tokens: int = 0


StreamEvent = Union[
    MessageStart,
    TextBlockStart,
    ToolUseBlockStart,
    TextDelta,
    InputJsonDelta,
    BlockStop,
    MessageDelta,
]
