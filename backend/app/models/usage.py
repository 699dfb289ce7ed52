"""Per-exchange assistant usage log."""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class AiUsageLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    requested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
    input_tokens: int = 0
    output_tokens: int = 0
    tool_call_count: int = 0
    duration_ms: int = 0
    model: Optional[str] = None
