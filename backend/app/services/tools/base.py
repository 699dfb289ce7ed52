"""Tool interface for the assistant. Every tool is read-only and returns a JSON string."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar


@dataclass
class ToolParameter:
    name: str
    type: str  # "string" | "integer" | "boolean" | "number"
    description: str
    required: bool = True
    enum: list[str] | None = None
    format: str | None = None  # e.g. "date-time"

    def to_property(self) -> dict[str, Any]:
        prop: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum:
            prop["enum"] = self.enum
        if self.format:
            prop["format"] = self.format
        return prop


@dataclass
class ToolDefinition:
    name: str
    description: str
    parameters: list[ToolParameter] = field(default_factory=list)

    def input_schema(self) -> dict:
        """JSON Schema object describing the tool's arguments."""
        return {
            "type": "object",
            "properties": {p.name: p.to_property() for p in self.parameters},
            "required": [p.name for p in self.parameters if p.required],
        }

    def to_anthropic_schema(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema(),
        }


class BaseTool(ABC):
    """Subclasses either set the class attributes below or override definition()."""

    name: ClassVar[str] = ""
    description: ClassVar[str] = ""
    parameters: ClassVar[list[ToolParameter]] = []

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=list(self.parameters),
        )

    @abstractmethod
    async def execute(self, **kwargs: Any) -> str:
        """Run the tool with the model-supplied arguments."""
        ...
