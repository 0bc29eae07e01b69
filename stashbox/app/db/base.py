# stashbox/app/db/base.py
"""
SQLAlchemy declarative base.

Also re-exports the engine and session helpers so models and scripts can
import everything database related from one place.
"""
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


from stashbox.app.db.session import (  # noqa: E402
    engine,
    AsyncSessionLocal,
    get_db,
)

__all__ = [
    "Base",
    "engine",
    "AsyncSessionLocal",
    "get_db",
]
