"""Persistence layer: models, repositories and the unit of work."""

from fintrack.db.base import Base, create_engine, create_session_factory
from fintrack.db.unit_of_work import UnitOfWork

__all__ = ["Base", "create_engine", "create_session_factory", "UnitOfWork"]
