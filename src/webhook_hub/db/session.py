"""Engine and session factory shared by the catalog and the delivery queue."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from webhook_hub.core.settings import settings


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


# Model modules register their tables on Base.metadata when imported.
import webhook_hub.models  # noqa: E402,F401


def build_engine(url: str | None = None, **kwargs: object) -> Engine:
    """Create an engine for ``url``, defaulting to the configured database."""
    kwargs.setdefault("pool_pre_ping", True)
    kwargs.setdefault("echo", settings.sql_debug)
    return create_engine(url or settings.effective_database_url, **kwargs)


engine = build_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables(bind: Engine | None = None) -> None:
    """Create any missing catalog and queue tables on ``bind`` (default engine)."""
    Base.metadata.create_all(bind=bind or engine)
