"""
Database engine and session factory.

Pool parameters:
- pool_size / max_overflow: sized for a few Celery workers plus the ops API
- pool_recycle: avoid PostgreSQL idle connections being dropped
- pool_pre_ping: check the connection before use
"""

import logging
import time
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from app.config import settings

logger = logging.getLogger("bizdomains.db")

POOL_SIZE = 5
MAX_OVERFLOW = 10
POOL_RECYCLE = 1800  # 30 minutes

SLOW_QUERY_THRESHOLD_MS = 500

engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    pool_size=POOL_SIZE,
    max_overflow=MAX_OVERFLOW,
    pool_recycle=POOL_RECYCLE,
    echo=settings.DB_ECHO,
)


@event.listens_for(engine, "before_cursor_execute")
def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    conn.info.setdefault("query_start_time", []).append(time.perf_counter())


@event.listens_for(engine, "after_cursor_execute")
def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    total_ms = (time.perf_counter() - conn.info["query_start_time"].pop()) * 1000

    if total_ms >= SLOW_QUERY_THRESHOLD_MS:
        stmt_preview = statement[:500] + "..." if len(statement) > 500 else statement
        logger.warning(
            "Slow query detected (%.1fms): %s", total_ms, stmt_preview,
        )


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
