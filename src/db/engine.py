"""Database engine and session factories."""

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from src.settings import get_settings

_sync_engine = None


def build_engine(url: str, echo: bool = False):
    """Create an engine for ``url``.

    SQLite engines enforce foreign keys so they behave like PostgreSQL.
    """
    if url.startswith("sqlite"):
        engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False})

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine
    return create_engine(url, echo=echo, pool_pre_ping=True)


def get_sync_engine():
    """Get or create the database engine configured in settings."""
    global _sync_engine
    if _sync_engine is None:
        settings = get_settings()
        _sync_engine = build_engine(settings.database_url, echo=settings.database_echo)
    return _sync_engine


def get_sync_session_factory(engine=None):
    return sessionmaker(bind=engine or get_sync_engine(), expire_on_commit=False)


# Convenience alias
SyncSessionLocal = get_sync_session_factory
