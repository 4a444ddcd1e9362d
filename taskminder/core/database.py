from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from .config import settings


def _normalized_database_url(raw_url: str) -> str:
    """
    DATABASE_URL normalisation:
    - postgres:// or postgresql:// without a driver -> psycopg3 dialect.
    - Everything else (SQLite etc.) is left untouched.
    """
    if not raw_url:
        return "sqlite:///./taskminder.db"
    raw_url = raw_url.strip()
    if raw_url.startswith("postgres://"):
        return "postgresql+psycopg://" + raw_url[len("postgres://") :]
    if raw_url.startswith("postgresql://") and "+psycopg" not in raw_url.split("://", 1)[0]:
        return "postgresql+psycopg://" + raw_url[len("postgresql://") :]
    return raw_url


def make_engine(url: str) -> Engine:
    url = _normalized_database_url(url)
    # Scheduler threads share the engine; SQLite must allow cross-thread use
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    # In-memory SQLite: a single connection so every session sees the same tables
    use_static_pool = url.startswith("sqlite") and ":memory:" in url
    return create_engine(
        url,
        connect_args=connect_args,
        poolclass=StaticPool if use_static_pool else None,
    )


DATABASE_URL = _normalized_database_url(settings.database_url)
engine = make_engine(DATABASE_URL)


def get_db():
    with Session(engine) as session:
        yield session


def init_db(bind: Engine | None = None):
    bind = bind or engine
    # Table classes must be imported before create_all
    from taskminder import models  # noqa: F401

    SQLModel.metadata.create_all(bind)


def ping_db(bind: Engine | None = None) -> bool:
    try:
        with (bind or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
