"""Database package."""

from tasksearch.db.base import Base
from tasksearch.db.session import async_session_factory, get_db_session

__all__ = ["Base", "async_session_factory", "get_db_session"]
