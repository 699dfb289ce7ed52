"""Reduces a provider event stream into content blocks while surfacing live text."""

import json
import logging
from dataclasses import dataclass, field

from app.services.llm.base import ContentBlock, TextBlock, ToolUseBlock
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


class StreamProtocolError(Exception):
    """The provider stream violated the event protocol (e.g. malformed tool input JSON)."""


@dataclass
class _OpenText:
    parts: list[str] = field(default_factory=list)


@dataclass
class _OpenToolUse:
    id: str
    name: str
    json_parts: list[str] = field(default_factory=list)


class StreamAggregator:
    """Accumulates one provider call.

    Feed events in order with feed(); each text fragment that lands in a text
    block is returned for immediate forwarding. Call finish() at end of stream
    to close any open block and get the final block list.
    """

    def __init__(self) -> None:
        self.blocks: list[ContentBlock] = []
        self.stop_reason: StopReason | None = None
        self.input_tokens = 0
        self.output_tokens = 0
        self._open: _OpenText | _OpenToolUse | None = None

    def feed(self, event: StreamEvent) -> str | None:
        if isinstance(event, TextBlockStart):
            self._flush()
            self._open = _OpenText()
        elif isinstance(event, ToolUseBlockStart):
            self._flush()
            self._open = _OpenToolUse(id=event.id, name=event.name)
        elif isinstance(event, TextDelta):
            if isinstance(self._open, _OpenText):
                self._open.parts.append(event.text)
                return event.text
            logger.debug(f"Ignoring text delta for block {event.index}: no open text block")
        elif isinstance(event, InputJsonDelta):
            if isinstance(self._open, _OpenToolUse):
                self._open.json_parts.append(event.partial_json)
            else:
                logger.debug(f"Ignoring input JSON delta for block {event.index}: no open tool block")
        elif isinstance(event, BlockStop):
            self._flush()
        elif isinstance(event, MessageStart):
            self.input_tokens = event.input_tokens
        elif isinstance(event, MessageDelta):
            if event.stop_reason is not None:
                self.stop_reason = event.stop_reason
            if event.output_tokens:
                self.output_tokens = event.output_tokens
        else:
            raise StreamProtocolError(f"Unhandled stream event: {event!r}")
        return None

    def finish(self) -> list[ContentBlock]:
        self._flush()
        return self.blocks

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.blocks if isinstance(b, TextBlock))

    def _flush(self) -> None:
        current, self._open = self._open, None
        if current is None:
            return

        if isinstance(current, _OpenText):
            text = "".join(current.parts)
            if text:
                self.blocks.append(TextBlock(text=text))
            return

        raw = "".join(current.json_parts)
        if not raw:
            tool_input: dict = {}
        else:
            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError as e:
                raise StreamProtocolError(
                    f"Malformed input JSON for tool {current.name} ({current.id}): {e}"
                ) from e
            if parsed is None:
                parsed = {}
            if not isinstance(parsed, dict):
                raise StreamProtocolError(
                    f"Input for tool {current.name} ({current.id}) is not a JSON object"
                )
            tool_input = parsed
        self.blocks.append(ToolUseBlock(id=current.id, name=current.name, input=tool_input))
