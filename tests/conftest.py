"""Shared fixtures and fakes for the test suite."""

import itertools
from collections.abc import Callable
from concurrent.futures import Executor, Future
from pathlib import Path

import pytest

from novelsync.config import AppConfig
from novelsync.errors import RemoteAuthError, RemoteError, RemoteNotFound
from novelsync.jobs.clock import Clock
from novelsync.models.book import Book
from novelsync.remote.base import NoteStore
from novelsync.storage.database import initialize_database
from novelsync.storage.repository import Repository


class InlineExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def __init__(self) -> None:
        self.submitted = 0

    def submit(self, fn: Callable, /, *args, **kwargs) -> Future:
        self.submitted += 1
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


class DeferredExecutor(Executor):
    """Queues submitted work until ``run_all`` is called."""

    def __init__(self) -> None:
        self.pending: list[tuple[Future, Callable, tuple]] = []

    def submit(self, fn: Callable, /, *args, **kwargs) -> Future:
        future: Future = Future()
        self.pending.append((future, fn, args))
        return future

    def run_all(self) -> None:
        pending, self.pending = self.pending, []
        for future, fn, args in pending:
            try:
                future.set_result(fn(*args))
            except Exception as exc:
                future.set_exception(exc)


class FakeClock(Clock):
    """Clock that advances only when slept on."""

    def __init__(self, on_sleep: Callable[[], None] | None = None) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []
        self.on_sleep = on_sleep

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        if self.on_sleep is not None:
            self.on_sleep()


class StaticTextProvider:
    """Serves book text from a dict keyed by book id."""

    def __init__(self, texts: dict[int, str] | None = None) -> None:
        self.texts = texts or {}
        self.calls = 0

    def get_text(self, book: Book) -> str:
        self.calls += 1
        if book.id not in self.texts:
            raise FileNotFoundError(f"No source text for book {book.id}")
        return self.texts[book.id]


class FakeNoteStore(NoteStore):
    """In-memory note store that records every mutating call."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.folders: dict[tuple[str | None, str], str] = {}
        self.notes: dict[str, dict] = {}
        self.creates = 0
        self.updates = 0
        self.moves: list[tuple[str, str]] = []
        self.deleted: list[str] = []
        self.fail_titles: set[str] = set()
        self.auth_failure = False
        self.container_lookups = 0

    def _check_auth(self) -> None:
        if self.auth_failure:
            raise RemoteAuthError("HTTP 403", status_code=403)

    def ping(self) -> bool:
        self._check_auth()
        return True

    def _folder(self, name: str, parent: str | None) -> str:
        key = (parent, name)
        if key not in self.folders:
            self.folders[key] = f"folder-{next(self._ids)}"
        return self.folders[key]

    def ensure_container_path(self, names: list[str]) -> str:
        self._check_auth()
        self.container_lookups += 1
        parent = None
        for name in names:
            parent = self._folder(name, parent)
        return parent

    def ensure_recycle_container(self) -> str:
        self._check_auth()
        return self._folder("Recycle Bin", None)

    def create_note(
        self, title: str, body: str, container_id: str, tags: list[str] | None = None
    ) -> str:
        self._check_auth()
        if title in self.fail_titles:
            raise RemoteError(f"create failed for {title}", status_code=500)
        self.creates += 1
        note_id = f"note-{next(self._ids)}"
        self.notes[note_id] = {
            "title": title,
            "body": body,
            "container_id": container_id,
            "tags": list(tags or []),
        }
        return note_id

    def update_note(
        self,
        note_id: str,
        title: str | None = None,
        body: str | None = None,
        container_id: str | None = None,
    ) -> None:
        self._check_auth()
        if note_id not in self.notes:
            raise RemoteNotFound(f"note {note_id} not found", status_code=404)
        if title in self.fail_titles:
            raise RemoteError(f"update failed for {title}", status_code=500)
        self.updates += 1
        note = self.notes[note_id]
        if title is not None:
            note["title"] = title
        if body is not None:
            note["body"] = body
        if container_id is not None:
            note["container_id"] = container_id

    def move_note(self, note_id: str, container_id: str) -> None:
        self._check_auth()
        if note_id not in self.notes:
            raise RemoteNotFound(f"note {note_id} not found", status_code=404)
        self.notes[note_id]["container_id"] = container_id
        self.moves.append((note_id, container_id))

    def delete_out_of_band(self, note_id: str) -> None:
        del self.notes[note_id]
        self.deleted.append(note_id)

    def notes_in(self, container_id: str) -> list[dict]:
        return [n for n in self.notes.values() if n["container_id"] == container_id]


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    path = tmp_path / "db" / "test.db"
    initialize_database(path)
    return path


@pytest.fixture
def repo(db_path: Path) -> Repository:
    return Repository(db_path)


@pytest.fixture
def config() -> AppConfig:
    config = AppConfig()
    config.chunking.chunk_size = 1000
    config.jobs.poll_interval_seconds = 2.0
    config.jobs.build_timeout_seconds = 10.0
    return config


@pytest.fixture
def note_store() -> FakeNoteStore:
    return FakeNoteStore()


@pytest.fixture
def add_book(repo: Repository) -> Callable[..., Book]:
    """Insert a book and return it with its id filled in."""

    def _add(title: str = "測試小說", author: str = "某作者", **fields) -> Book:
        book = Book(title=title, author=author, source_path=f"/books/{title}.txt", **fields)
        book.id = repo.add_book(book)
        return book

    return _add


def _novel_text(chapter_count: int, body_lines: int = 3, body: str = "內容") -> str:
    lines: list[str] = []
    for number in range(1, chapter_count + 1):
        lines.append(f"第{number}章 標題{number}")
        lines.extend(f"{body}{number}-{i}" for i in range(body_lines))
    return "\n".join(lines)


@pytest.fixture
def make_novel() -> Callable[..., str]:
    """Build a novel text with numbered chapter headings."""
    return _novel_text


@pytest.fixture
def inline_executor() -> InlineExecutor:
    return InlineExecutor()


@pytest.fixture
def deferred_executor() -> DeferredExecutor:
    return DeferredExecutor()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def text_provider() -> StaticTextProvider:
    return StaticTextProvider()
