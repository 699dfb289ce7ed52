import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.core.database import engine
from app.services.agent import Agent
from app.services.conversation_store import ConversationStore
from app.services.rate_limiter import rate_limiter
from app.services.usage_tracker import UsageTracker

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/ws")
async def chat_websocket(websocket: WebSocket):
    await websocket.accept()
    params = websocket.query_params
    user_id = params.get("user_id", "local")

    store = ConversationStore(engine)
    usage = UsageTracker(engine)

    agent = Agent(rate_limiter=rate_limiter)
    agent.set_user_id(user_id)
    agent.set_user_context(params.get("user_name", "User"), params.get("user_role", "Unknown"))

    # Resume the active session, if any, and replay it to the client
    snapshot = await store.load_active(user_id)
    if snapshot is not None:
        agent.load_history(snapshot.history)
        await websocket.send_json({
            "type": "history",
            "conversation_id": snapshot.conversation_id,
            "messages": [{"role": m.role, "text": m.text} for m in snapshot.display_messages],
        })

    try:
        while True:
            raw = await websocket.receive_text()

            # Check if the client is sending JSON with metadata
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                data = None
            if not isinstance(data, dict):
                data = {"content": raw}

            kind = data.get("type", "message")
            if kind == "clear":
                agent.clear_history()
                await store.clear_history(user_id)
                await websocket.send_json({"type": "cleared"})
                continue
            if kind == "page_context":
                agent.set_page_context(data.get("entity_type"), data.get("entity_id"))
                continue

            user_text = str(data.get("content", "")).strip()
            if not user_text:
                continue

            async for event in agent.send_message(user_text):
                await websocket.send_json(event.to_dict())

            await _persist_turn(agent, user_id, store, usage)

    except WebSocketDisconnect:
        pass


async def _persist_turn(agent: Agent, user_id: str, store: ConversationStore, usage: UsageTracker) -> None:
    turn = agent.last_turn
    if not turn.messages:
        return
    try:
        await store.save_messages(user_id, turn.messages, turn.display_texts)
        await usage.log(
            user_id,
            turn.input_tokens,
            turn.output_tokens,
            turn.tool_calls,
            turn.duration_ms,
            agent.model,
        )
    except Exception:
        logger.error("Failed to save conversation/usage data", exc_info=True)
