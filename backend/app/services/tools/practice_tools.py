"""Read-only practice data tools: clients, appointments, meal plans, progress, users."""

import json
from typing import Any

from app.services.integrations.practice_api import PracticeApiClient
from app.services.tools.base import BaseTool, ToolParameter


class PracticeReadTool(BaseTool):
    """A tool that maps its arguments onto one GET against the practice API.

    `path` may contain `{placeholders}` filled from same-named arguments; every
    other argument is sent as a query parameter.
    """

    path: str = ""
    # Used in the not-found message, e.g. "Client with ID 3 not found"
    entity: str | None = None

    def __init__(self, api: PracticeApiClient):
        self.api = api

    async def execute(self, **kwargs: Any) -> str:
        path_args = {k: v for k, v in kwargs.items() if "{" + k + "}" in self.path}
        query = {k: v for k, v in kwargs.items() if k not in path_args}
        path = self.path.format(**path_args)

        data = await self.api.get(path, params=query)
        if data is None:
            if self.entity and path_args:
                ident = next(iter(path_args.values()))
                return json.dumps({"error": f"{self.entity} with ID {ident} not found"})
            return json.dumps({"error": "Not found"})
        return json.dumps(data, default=str)


# --- Clients ---

class ListClientsTool(PracticeReadTool):
    name = "list_clients"
    description = "List all clients in the practice. Optionally filter by search term."
    path = "clients"
    parameters = [
        ToolParameter(
            name="search_term", type="string",
            description="Optional search term to filter clients by name or email",
            required=False,
        ),
    ]


class GetClientTool(PracticeReadTool):
    name = "get_client"
    description = "Get detailed information about a specific client by ID."
    path = "clients/{id}"
    entity = "Client"
    parameters = [ToolParameter(name="id", type="integer", description="The client ID")]


# --- Appointments ---

class ListAppointmentsTool(PracticeReadTool):
    name = "list_appointments"
    description = (
        "List appointments, optionally filtered by date range, client, or status. "
        "Dates are full UTC timestamps (e.g. 2025-06-15T00:00:00Z)."
    )
    path = "appointments"
    parameters = [
        ToolParameter(
            name="from_date", type="string", description="Start of range (UTC timestamp)",
            required=False, format="date-time",
        ),
        ToolParameter(
            name="to_date", type="string", description="End of range (UTC timestamp)",
            required=False, format="date-time",
        ),
        ToolParameter(name="client_id", type="integer", description="Only this client's appointments", required=False),
        ToolParameter(
            name="status", type="string", description="Filter by status", required=False,
            enum=["Scheduled", "Confirmed", "Completed", "NoShow", "LateCancellation", "Cancelled"],
        ),
    ]


class GetAppointmentTool(PracticeReadTool):
    name = "get_appointment"
    description = "Get detailed information about a specific appointment by ID."
    path = "appointments/{id}"
    entity = "Appointment"
    parameters = [ToolParameter(name="id", type="integer", description="The appointment ID")]


# --- Meal plans ---

class ListMealPlansTool(PracticeReadTool):
    name = "list_meal_plans"
    description = "List meal plans, optionally filtered by client or status."
    path = "meal-plans"
    parameters = [
        ToolParameter(name="client_id", type="integer", description="Only this client's meal plans", required=False),
        ToolParameter(
            name="status", type="string", description="Filter by status", required=False,
            enum=["Draft", "Active", "Archived"],
        ),
    ]


class GetMealPlanTool(PracticeReadTool):
    name = "get_meal_plan"
    description = "Get a meal plan by ID, including its days, meal slots, items and macros."
    path = "meal-plans/{id}"
    entity = "Meal plan"
    parameters = [ToolParameter(name="id", type="integer", description="The meal plan ID")]


# --- Progress ---

class ListGoalsTool(PracticeReadTool):
    name = "list_goals"
    description = "List progress goals for a client."
    path = "progress/goals"
    parameters = [ToolParameter(name="client_id", type="integer", description="The client ID")]


class GetGoalTool(PracticeReadTool):
    name = "get_goal"
    description = "Get a specific progress goal by ID."
    path = "progress/goals/{id}"
    entity = "Goal"
    parameters = [ToolParameter(name="id", type="integer", description="The goal ID")]


class ListProgressTool(PracticeReadTool):
    name = "list_progress"
    description = "List progress measurement entries for a client (weight, body fat, waist, BMI, ...)."
    path = "progress/entries"
    parameters = [ToolParameter(name="client_id", type="integer", description="The client ID")]


class GetProgressEntryTool(PracticeReadTool):
    name = "get_progress_entry"
    description = "Get a specific progress entry by ID."
    path = "progress/entries/{id}"
    entity = "Progress entry"
    parameters = [ToolParameter(name="id", type="integer", description="The progress entry ID")]


# --- Users ---

class ListUsersTool(PracticeReadTool):
    name = "list_users"
    description = "List system users (practitioners and admins)."
    path = "users"
    parameters = [
        ToolParameter(name="search", type="string", description="Search term to filter by name or email", required=False),
        ToolParameter(name="role", type="string", description="Filter by role", required=False, enum=["Admin", "Nutritionist"]),
        ToolParameter(name="is_active", type="boolean", description="Filter by active status", required=False),
    ]


class GetUserTool(PracticeReadTool):
    name = "get_user"
    description = "Get detailed information about a specific user by ID."
    path = "users/{user_id}"
    entity = "User"
    parameters = [ToolParameter(name="user_id", type="string", description="The user ID (GUID string)")]


# --- Cross-cutting ---

class SearchTool(PracticeReadTool):
    name = "search"
    description = "Search across all entities (clients, appointments, meal plans) by keyword."
    path = "search"
    parameters = [ToolParameter(name="query", type="string", description="The search query")]


class GetDashboardTool(PracticeReadTool):
    name = "get_dashboard"
    description = "Get today's overview: today's appointments and key practice metrics. No parameters needed."
    path = "dashboard"
