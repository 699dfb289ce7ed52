from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Nutrir Assistant"
    debug: bool = False

    # Paths
    db_path: Path = Path(__file__).resolve().parent.parent.parent / "nutrir.db"

    # LLM
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5"
    anthropic_max_tokens: int = 4096
    max_tool_iterations: int = 10

    # Conversation sessions
    session_ttl_hours: float = 8
    max_conversation_messages: int = 100

    # Rate limits (per user)
    rate_limit_per_minute: int = 30
    rate_limit_per_day: int = 500

    # Practice data API (read-only)
    practice_api_url: str = "http://localhost:5000/api"
    practice_api_token: str = ""

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["*"]

    model_config = {
        "env_file": str(Path(__file__).resolve().parent.parent.parent / ".env"),
        "env_prefix": "NUTRIR_",
    }


settings = Settings()
