"""Tool registry - central place to register, describe and dispatch assistant tools."""

import json
import logging
from typing import Any

from app.services.integrations.practice_api import PracticeApiClient
from app.services.tools.base import BaseTool, ToolDefinition
from app.services.tools.practice_tools import (
    GetAppointmentTool,
    GetClientTool,
    GetDashboardTool,
    GetGoalTool,
    GetMealPlanTool,
    GetProgressEntryTool,
    GetUserTool,
    ListAppointmentsTool,
    ListClientsTool,
    ListGoalsTool,
    ListMealPlansTool,
    ListProgressTool,
    ListUsersTool,
    SearchTool,
)

logger = logging.getLogger(__name__)


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        defn = tool.definition()
        self._tools[defn.name] = tool

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def definitions(self) -> list[ToolDefinition]:
        return [tool.definition() for tool in self._tools.values()]

    def anthropic_tools(self) -> list[dict]:
        return [defn.to_anthropic_schema() for defn in self.definitions()]

    async def dispatch(self, name: str, tool_input: dict[str, Any]) -> str:
        """Run a tool by name. Never raises: failures come back as a JSON error payload
        so the model can decide how to recover."""
        tool = self.get(name)
        if tool is None:
            return json.dumps({"error": f"Unknown tool: {name}"})

        try:
            return await tool.execute(**tool_input)
        except Exception as e:
            logger.error(f"Error executing tool {name}", exc_info=True)
            return json.dumps({"error": f"Error executing {name}: {e}"})


def create_default_registry(api: PracticeApiClient | None = None) -> ToolRegistry:
    """Create a registry with all practice data tools."""
    api = api or PracticeApiClient()
    registry = ToolRegistry()

    # Clients
    registry.register(ListClientsTool(api))
    registry.register(GetClientTool(api))

    # Appointments
    registry.register(ListAppointmentsTool(api))
    registry.register(GetAppointmentTool(api))

    # Meal plans
    registry.register(ListMealPlansTool(api))
    registry.register(GetMealPlanTool(api))

    # Progress
    registry.register(ListGoalsTool(api))
    registry.register(GetGoalTool(api))
    registry.register(ListProgressTool(api))
    registry.register(GetProgressEntryTool(api))

    # Users
    registry.register(ListUsersTool(api))
    registry.register(GetUserTool(api))

    # Cross-cutting
    registry.register(SearchTool(api))
    registry.register(GetDashboardTool(api))

    return registry
