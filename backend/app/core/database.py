from sqlmodel import SQLModel, create_engine

from app.core.config import settings

engine = create_engine(
    f"sqlite:///{settings.db_path}",
    echo=settings.debug,
    connect_args={"check_same_thread": False},
)


def init_db() -> None:
    import app.models.conversation  # noqa: F401 - ensure models are registered
    import app.models.usage  # noqa: F401
    SQLModel.metadata.create_all(engine)
