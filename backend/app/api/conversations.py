"""REST API for the assistant's durable session history and usage."""

import logging
from dataclasses import asdict
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, HTTPException, Query

from app.core.database import engine
from app.services.conversation_store import ConversationStore
from app.services.usage_tracker import UsageTracker

router = APIRouter()
logger = logging.getLogger(__name__)


def _require_user(user_id: str) -> None:
    if not user_id.strip():
        raise HTTPException(status_code=400, detail="user_id must not be blank")


@router.get("/active")
async def get_active_conversation(user_id: str = Query(...)):
    _require_user(user_id)
    snapshot = await ConversationStore(engine).load_active(user_id)
    if snapshot is None:
        return {"conversation_id": None, "messages": []}
    return {
        "conversation_id": snapshot.conversation_id,
        "messages": [{"role": m.role, "text": m.text} for m in snapshot.display_messages],
    }


@router.delete("/")
async def clear_conversations(user_id: str = Query(...)):
    _require_user(user_id)
    await ConversationStore(engine).clear_history(user_id)
    logger.debug(f"Cleared assistant history for {user_id}")
    return {"status": "cleared"}


@router.get("/usage")
async def usage_summary(days: int = Query(30, ge=1, le=365)):
    end = datetime.now(timezone.utc)
    summaries = await UsageTracker(engine).summary(end - timedelta(days=days), end)
    return [
        {
            **asdict(s),
            "last_active": s.last_active.isoformat() if s.last_active else None,
        }
        for s in summaries
    ]


@router.get("/usage/{user_id}/daily")
async def usage_daily(user_id: str, days: int = Query(30, ge=1, le=365)):
    end = datetime.now(timezone.utc)
    daily = await UsageTracker(engine).daily_usage(user_id, end - timedelta(days=days), end)
    return [{**asdict(d), "day": d.day.isoformat()} for d in daily]
