"""Abstract interface of a remote note store."""

from abc import ABC, abstractmethod


class NoteStore(ABC):
    """Notes grouped in nested containers, addressed by opaque string ids.

    Implementations raise ``novelsync.errors.RemoteError`` subclasses.
    """

    @abstractmethod
    def ping(self) -> bool:
        """Return True if the service is reachable and the token is accepted."""

    @abstractmethod
    def ensure_container_path(self, names: list[str]) -> str:
        """Find or create nested containers and return the innermost id."""

    @abstractmethod
    def ensure_recycle_container(self) -> str:
        """Find or create the container that retired notes are moved to."""

    @abstractmethod
    def create_note(
        self, title: str, body: str, container_id: str, tags: list[str] | None = None
    ) -> str:
        """Create a note and return its id."""

    @abstractmethod
    def update_note(
        self,
        note_id: str,
        title: str | None = None,
        body: str | None = None,
        container_id: str | None = None,
    ) -> None:
        """Update a note in place.

        Raises:
            RemoteNotFound: If the note no longer exists.
        """

    @abstractmethod
    def move_note(self, note_id: str, container_id: str) -> None:
        """Move a note to another container."""
