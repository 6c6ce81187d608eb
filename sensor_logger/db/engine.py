from __future__ import annotations

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from sensor_logger.core.config import Settings
from sensor_logger.db.tables import Base

logger = logging.getLogger(__name__)


def create_db_engine(settings: Settings) -> Engine:
    url = settings.database_url
    is_sqlite = url.startswith("sqlite")
    connect_args: dict[str, object] = {}
    if is_sqlite:
        # The MQTT network thread and request threads share one pool.
        connect_args = {
            "check_same_thread": False,
            "timeout": settings.database_busy_timeout_seconds,
        }

    engine = create_engine(
        url,
        echo=settings.database_echo,
        pool_pre_ping=True,
        connect_args=connect_args,
    )

    if is_sqlite:
        event.listen(engine, "connect", _sqlite_on_connect)

    logger.info("[DB] Engine created dialect=%s", engine.dialect.name)
    return engine


def _sqlite_on_connect(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
    finally:
        cursor.close()


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_schema(engine: Engine) -> None:
    Base.metadata.create_all(engine)
    logger.info("[DB] Table \"sensor_readings\" and index ready")
