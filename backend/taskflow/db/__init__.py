"""Database package."""

from taskflow.db.base import Base, BaseModel
from taskflow.db.session import DBSession, get_db_session

__all__ = ["Base", "BaseModel", "DBSession", "get_db_session"]
