"""Database session configuration."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from bridge_hub.core.settings import settings


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


# Ensure model modules are imported so that metadata is populated when create_all runs.
import bridge_hub.models  # noqa: E402,F401

_connect_args = (
    {"check_same_thread": False}
    if settings.effective_database_url.startswith("sqlite")
    else {}
)

engine = create_engine(
    settings.effective_database_url,
    pool_pre_ping=True,
    echo=settings.sql_debug,
    connect_args=_connect_args,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables() -> None:
    """Create all database tables."""
    Base.metadata.create_all(bind=engine)
