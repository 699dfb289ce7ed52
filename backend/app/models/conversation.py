"""Assistant conversation and message models for chat session persistence."""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, Relationship, SQLModel


class AiConversation(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_message_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), index=True
    )

    messages: list["AiConversationMessage"] = Relationship(back_populates="conversation")


class AiConversationMessage(SQLModel, table=True):
    # Autoincrement id doubles as the message sequence within a conversation
    id: Optional[int] = Field(default=None, primary_key=True)
    conversation_id: int = Field(foreign_key="aiconversation.id", index=True)
    role: str  # "user" | "assistant"
    content_json: str
    display_text: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    conversation: Optional[AiConversation] = Relationship(back_populates="messages")
