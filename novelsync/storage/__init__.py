"""SQLite-backed bookkeeping store."""

from novelsync.storage.database import get_connection, initialize_database
from novelsync.storage.repository import Repository

__all__ = ["Repository", "get_connection", "initialize_database"]
