"""Database connection and initialization."""

from sqlmodel import SQLModel, Session, create_engine

from fieldsync.config import settings

# Import all models so SQLModel registers them
import fieldsync.models  # noqa: F401

_is_sqlite = settings.db_url.startswith("sqlite")

engine = create_engine(
    settings.db_url,
    echo=settings.debug,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
)


def init_db() -> None:
    """Create all tables and enable WAL mode on SQLite."""
    SQLModel.metadata.create_all(engine)

    if not _is_sqlite:
        return

    # Enable WAL mode for better concurrent read performance
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA journal_mode=WAL")
        conn.exec_driver_sql("PRAGMA synchronous=NORMAL")
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")
        conn.commit()


def get_session():
    """FastAPI dependency: yields a database session."""
    with Session(engine) as session:
        yield session
