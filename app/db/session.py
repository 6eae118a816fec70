from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from app.core.config import Settings
from app.core.errors import ConfigurationError


def build_engine(settings: Settings) -> Engine:
    """Create the Postgres engine for the profile store.

    Pool sizing matches the rest of the backend; the engine is created once
    per process and shared through app.state.
    """
    return create_engine(
        settings.require_database_url(),
        poolclass=QueuePool,
        pool_size=10,  # Number of connections to maintain persistently
        max_overflow=20,  # Maximum number of connections to create beyond pool_size
        pool_timeout=30,  # Seconds to wait before giving up on getting a connection
        pool_pre_ping=True,  # Verify connections before using them (handles stale connections)
        pool_recycle=3600,  # Recycle connections after 1 hour to prevent stale connections
        echo=False,
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(request: Request):
    session_factory = getattr(request.app.state, "session_factory", None)
    if session_factory is None:
        raise ConfigurationError("Server misconfigured: missing DATABASE_URL")
    db = session_factory()
    try:
        yield db
    finally:
        db.close()
