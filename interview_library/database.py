"""Engine and session setup for the entity tables and the domain event table."""

import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .config import LibraryConfig, get_config
from .domain_events.storage import Base as DomainEventBase
from .entities import Base

logger = logging.getLogger(__name__)


def create_db_engine(config: Optional[LibraryConfig] = None) -> Engine:
    """
    Create an engine for the configured database.

    Args:
        config: Configuration, the global one when omitted

    Returns:
        SQLAlchemy engine
    """
    config = config or get_config()
    url = config.database_url

    if url.startswith("sqlite"):
        # SQLite doesn't support pool_size and max_overflow
        return create_engine(url, echo=config.sql_echo, pool_pre_ping=True)

    return create_engine(
        url,
        echo=config.sql_echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def create_session_factory(engine: Engine) -> sessionmaker:  # type: ignore[type-arg]
    """Session factory whose entities stay readable after commit."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create the entity and domain event tables if they do not exist."""
    Base.metadata.create_all(bind=engine)
    DomainEventBase.metadata.create_all(bind=engine)
    logger.info(f"Initialized database tables on {engine.url!r}")
