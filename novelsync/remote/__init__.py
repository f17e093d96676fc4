"""Remote note store clients."""

from novelsync.remote.base import NoteStore
from novelsync.remote.joplin import JoplinClient

__all__ = ["JoplinClient", "NoteStore"]
