from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import Engine, create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from support_chat.core.errors import StoreFailure
from support_chat.db.models import Base


def _is_postgresql(database_url: str) -> bool:
    return "postgresql" in database_url.lower() or "postgres" in database_url.lower()


def _validate_postgresql_driver() -> None:
    """Validate PostgreSQL driver is installed when using PostgreSQL.

    Must actually import psycopg2 (not just look it up) because SQLAlchemy
    will try to import it when creating the engine.
    """
    try:
        import psycopg2  # noqa: F401

        logger.info("PostgreSQL driver (psycopg2) is available")
    except ImportError as e:
        logger.error("PostgreSQL driver (psycopg2) is not installed. Install with: pip install 'support-chat[postgres]'")
        raise ImportError("PostgreSQL driver required. Install with: pip install psycopg2-binary") from e


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create the SQLAlchemy engine for the given URL."""
    logger.info(f"Initializing database engine: {database_url.split('@')[-1]}")

    connect_args = {}
    engine_kwargs = {}
    if _is_postgresql(database_url):
        _validate_postgresql_driver()
        engine_kwargs = {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}
        logger.info("Using PostgreSQL database (production-ready)")
    elif "sqlite" in database_url.lower():
        connect_args = {"check_same_thread": False}
        logger.warning("Using SQLite database (local development only)")

    return create_engine(database_url, connect_args=connect_args, echo=echo, **engine_kwargs)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create tables and check the connection on startup."""
    Base.metadata.create_all(bind=engine)
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    logger.info("Database tables ready")


@contextmanager
def session_scope(factory: sessionmaker[Session], operation: str) -> Generator[Session, None, None]:
    """Transactional session; driver errors surface as StoreFailure.

    Args:
        factory: Session factory bound to an engine
        operation: Store operation name, carried on StoreFailure
    """
    session = factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        logger.error(f"Database session error during {operation}, rolling back: {e}")
        session.rollback()
        raise StoreFailure(operation, original_error=e) from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
