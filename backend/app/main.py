import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.database import init_db
from app.api import chat, conversations


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configure logging based on debug setting
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s" if settings.debug
        else "%(levelname)-8s %(name)s: %(message)s",
    )

    init_db()
    if not settings.anthropic_api_key:
        logging.getLogger(__name__).warning(
            "NUTRIR_ANTHROPIC_API_KEY is not set; the assistant will reply with a configuration error"
        )

    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat.router, prefix="/api/chat", tags=["chat"])
app.include_router(conversations.router, prefix="/api/conversations", tags=["conversations"])


@app.get("/api/health")
async def health():
    return {
        "status": "ok",
        "app": settings.app_name,
        "model": settings.anthropic_model,
        "assistant_configured": bool(settings.anthropic_api_key),
    }
