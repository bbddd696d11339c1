from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import URL, Engine, make_url

from .config import Settings, get_settings


logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None


def timeout_connect_args(url: URL, seconds: float) -> dict:
    """connect_args del driver para acotar conexión y sentencias.

    pool_timeout solo acota la espera por una conexión del pool; un INSERT
    contra un servidor colgado necesita el límite del propio driver.
    """
    backend = url.get_backend_name()
    driver = url.get_driver_name()
    whole = max(1, int(seconds))

    if backend == "postgresql":
        if driver == "pg8000":
            return {"timeout": whole}
        # psycopg2 / psycopg
        return {"connect_timeout": whole, "options": f"-c statement_timeout={int(seconds * 1000)}"}
    if backend in ("mysql", "mariadb"):
        return {"connect_timeout": whole, "read_timeout": whole, "write_timeout": whole}
    if backend == "mssql":
        # pyodbc: timeout de login; el de sentencia se fija al conectar
        return {"timeout": whole}
    return {}


def build_engine(settings: Settings) -> Engine:
    url = make_url(settings.database_url)

    # Log básico de parámetros de conexión (sin contraseña)
    logger.info(
        "[DB] Creating engine backend=%s host=%s db=%s",
        url.get_backend_name(),
        url.host,
        url.database,
    )

    if url.get_backend_name() == "sqlite":
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": settings.db_pool_timeout_seconds},
            future=True,
        )
    else:
        engine = create_engine(
            url,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_recycle=300,
            pool_timeout=settings.db_pool_timeout_seconds,
            connect_args=timeout_connect_args(url, settings.db_statement_timeout_seconds),
            future=True,
        )
        if url.get_backend_name() == "mssql":
            _set_pyodbc_query_timeout(engine, max(1, int(settings.db_statement_timeout_seconds)))

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("[DB] Connection test OK")
    except Exception:
        logger.exception("[DB] Connection test FAILED")

    return engine


def _set_pyodbc_query_timeout(engine: Engine, seconds: int) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.timeout = seconds


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings())
    return _engine


def reset_engine() -> None:
    """Dispose the cached engine (tests and shutdown)."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None
