"""Engine and session lifecycle shared by the indexer and the read API."""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from homeshare_indexer.config import Config

# Process-wide engine and session factory
_engine: Engine | None = None
_SessionLocal: sessionmaker[Session] | None = None


def init_db(config: Config) -> None:
    """Create the process-wide engine from ``config.db_url``; a second call is a no-op."""
    if _engine is not None:
        return  # Already initialized

    engine = create_engine(
        config.db_url,
        pool_size=5,
        max_overflow=5,
        pool_pre_ping=True,
    )
    bind_engine(engine)


def bind_engine(engine: Engine) -> None:
    """Use an existing engine (tests, scripts) as the global engine."""
    global _engine, _SessionLocal

    _engine = engine
    _SessionLocal = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


def dispose_db() -> None:
    """Dispose of the global engine and forget the session factory."""
    global _engine, _SessionLocal

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_engine() -> Engine:
    """Engine bound by init_db() or bind_engine().

    Raises:
        RuntimeError: If no engine has been bound yet
    """
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _engine


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get a database session that commits on success and rolls back on error.

    Yields:
        SQLAlchemy Session

    Example:
        with get_session() as session:
            # Use session
            pass
    """
    if _SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    session = _SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
