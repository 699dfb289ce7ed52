"""Durable assistant sessions: load, save and clear a user's active conversation.

A conversation stays active while its last message is younger than the session
TTL; after that the next save starts a new one. Each conversation keeps at most
`max_messages` messages, oldest deleted first.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from app.core.config import settings
from app.models.conversation import AiConversation, AiConversationMessage
from app.services.llm.base import ChatMessage, MessageContent, ToolResultBlock

logger = logging.getLogger(__name__)

_content_adapter: TypeAdapter[MessageContent] = TypeAdapter(MessageContent)


def serialize_content(content: MessageContent) -> str:
    return _content_adapter.dump_json(content).decode()


def deserialize_content(raw: str) -> MessageContent:
    return _content_adapter.validate_json(raw)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _starts_exchange(message: ChatMessage) -> bool:
    """True for a user message that is not a tool-result reply."""
    if message.role != "user":
        return False
    if isinstance(message.content, str):
        return True
    return not any(isinstance(b, ToolResultBlock) for b in message.content)


@dataclass
class DisplayMessage:
    role: str
    text: str


@dataclass
class ConversationSnapshot:
    conversation_id: int
    history: list[ChatMessage]
    display_messages: list[DisplayMessage]


class ConversationStore:
    def __init__(
        self,
        engine: Engine,
        ttl: timedelta | None = None,
        max_messages: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.engine = engine
        self.ttl = ttl if ttl is not None else timedelta(hours=settings.session_ttl_hours)
        self.max_messages = (
            max_messages if max_messages is not None else settings.max_conversation_messages
        )
        self._clock = clock

    async def load_active(self, user_id: str) -> ConversationSnapshot | None:
        """Return the user's active session, or None to start fresh."""
        return await asyncio.to_thread(self._load_active, user_id)

    async def save_messages(
        self,
        user_id: str,
        messages: list[ChatMessage],
        display_texts: list[str | None],
    ) -> None:
        """Append messages to the user's active conversation, creating one if needed."""
        await asyncio.to_thread(self._save_messages, user_id, messages, display_texts)

    async def clear_history(self, user_id: str) -> None:
        """Delete every conversation the user owns, active or not."""
        await asyncio.to_thread(self._clear_history, user_id)

    # --- Blocking implementations (run in a worker thread) ---

    def _find_active(self, session: Session, user_id: str, now: datetime) -> AiConversation | None:
        cutoff = now - self.ttl
        return session.exec(
            select(AiConversation)
            .where(AiConversation.user_id == user_id)
            .where(AiConversation.last_message_at > cutoff)
            .order_by(AiConversation.last_message_at.desc())  # type: ignore
        ).first()

    def _load_active(self, user_id: str) -> ConversationSnapshot | None:
        with Session(self.engine) as session:
            conversation = self._find_active(session, user_id, self._clock())
            if conversation is None:
                return None

            rows = session.exec(
                select(AiConversationMessage)
                .where(AiConversationMessage.conversation_id == conversation.id)
                .order_by(AiConversationMessage.id)  # type: ignore
            ).all()
            if not rows:
                return None

            history: list[ChatMessage] = []
            display: list[DisplayMessage] = []
            # Trimming or a skipped row can cut a tool exchange in half; resume
            # at the next user message that opens a fresh exchange
            resync = True
            for row in rows:
                try:
                    message = ChatMessage(role=row.role, content=deserialize_content(row.content_json))
                except ValidationError as e:
                    logger.warning(f"Failed to deserialize conversation message {row.id}: {e}")
                    resync = True
                else:
                    if resync and _starts_exchange(message):
                        resync = False
                    if not resync:
                        history.append(message)

                if row.role in ("user", "assistant") and row.display_text is not None:
                    display.append(DisplayMessage(role=row.role, text=row.display_text))

            logger.info(
                f"Loaded active session with {len(history)} messages for user {user_id}"
            )
            return ConversationSnapshot(
                conversation_id=conversation.id,  # type: ignore
                history=history,
                display_messages=display,
            )

    def _save_messages(
        self,
        user_id: str,
        messages: list[ChatMessage],
        display_texts: list[str | None],
    ) -> None:
        if not messages:
            return

        now = self._clock()
        with Session(self.engine) as session:
            conversation = self._find_active(session, user_id, now)
            if conversation is None:
                conversation = AiConversation(user_id=user_id, created_at=now, last_message_at=now)
                session.add(conversation)
                session.commit()
                session.refresh(conversation)
                logger.info(f"Started conversation {conversation.id} for user {user_id}")

            conversation.last_message_at = now
            session.add(conversation)

            for i, message in enumerate(messages):
                display_text = display_texts[i] if i < len(display_texts) else None
                session.add(AiConversationMessage(
                    conversation_id=conversation.id,  # type: ignore
                    role=message.role,
                    content_json=serialize_content(message.content),
                    display_text=display_text,
                    created_at=now,
                ))
            session.commit()

            self._trim_messages(session, conversation.id)  # type: ignore

    def _trim_messages(self, session: Session, conversation_id: int) -> None:
        total = session.exec(
            select(func.count())
            .select_from(AiConversationMessage)
            .where(AiConversationMessage.conversation_id == conversation_id)
        ).one()
        if total <= self.max_messages:
            return

        excess = total - self.max_messages
        oldest = session.exec(
            select(AiConversationMessage)
            .where(AiConversationMessage.conversation_id == conversation_id)
            .order_by(AiConversationMessage.id)  # type: ignore
            .limit(excess)
        ).all()
        for row in oldest:
            session.delete(row)
        session.commit()
        logger.debug(f"Trimmed {excess} messages from conversation {conversation_id}")

    def _clear_history(self, user_id: str) -> None:
        with Session(self.engine) as session:
            conversations = session.exec(
                select(AiConversation).where(AiConversation.user_id == user_id)
            ).all()
            if not conversations:
                return

            ids = [c.id for c in conversations]
            messages = session.exec(
                select(AiConversationMessage).where(
                    AiConversationMessage.conversation_id.in_(ids)  # type: ignore
                )
            ).all()
            for msg in messages:
                session.delete(msg)
            for conv in conversations:
                session.delete(conv)
            session.commit()
            logger.info(f"Cleared {len(conversations)} conversations for user {user_id}")
