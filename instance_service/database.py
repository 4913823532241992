"""
Engine and per-request connections for the instance store.
The engine (and its pool) is process-wide; each request checks out one connection and returns it.
"""
import logging
import threading

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from instance_service.config import build_database_url
from instance_service.errors import ErrorKind, RequestError

logger = logging.getLogger(__name__)

_engine: Engine | None = None
_lock = threading.Lock()


def get_engine() -> Engine:
    global _engine
    with _lock:
        if _engine is None:
            url = build_database_url()
            # SQLite: in-memory needs StaticPool so all connections share the same DB (for tests)
            if url.get_backend_name() == "sqlite":
                _engine = create_engine(
                    url,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                )
            else:
                _engine = create_engine(url, pool_pre_ping=True)
            logger.info("Database engine created for %s", url.render_as_string(hide_password=True))
        return _engine


def dispose_engine() -> None:
    """Close pooled connections (app shutdown)."""
    global _engine
    with _lock:
        if _engine is not None:
            _engine.dispose()
            _engine = None


def get_connection():
    """Dependency: yield a connection, always returned to the pool."""
    try:
        conn = get_engine().connect()
    except SQLAlchemyError:
        logger.exception("Unable to open a connection to the instance store")
        raise RequestError(ErrorKind.DATABASE_QUERY_ERROR)
    try:
        yield conn
    finally:
        conn.close()
