"""
SQLAlchemy table definitions for the persistent stores.

Tables are created on demand with ``create_tables`` (idempotent).
"""

from sqlalchemy import Column, Engine, Float, Integer, LargeBinary, MetaData, String, Table, Text

# Import logger
from utils.logger import get_logger

logger = get_logger(__name__)

# Metadata container for all store tables
metadata = MetaData()

cache_entries = Table(
    "cache_entries",
    metadata,
    Column("key", String(255), primary_key=True),
    Column("value", LargeBinary, nullable=False),
    Column("expires_at", Float, nullable=False),
)

search_history = Table(
    "search_history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("query", Text, nullable=False),
    Column("timestamp", String(40), nullable=False),
)

credentials = Table(
    "credentials",
    metadata,
    Column("key", String(255), primary_key=True),
    Column("value", Text, nullable=False),
)


def create_tables(engine: Engine) -> None:
    """Create any missing store tables."""
    metadata.create_all(engine)
    logger.info(
        "Store tables ready",
        extra={"extra_fields": {"tables": sorted(metadata.tables), "dialect": engine.dialect.name}},
    )
