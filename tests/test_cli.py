"""Tests for the command-line interface."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import yaml

from novelsync import cli
from novelsync.models.job import JobStatus
from novelsync.storage.repository import Repository

NOVEL = "作者：金庸\n\n第一章 青衫磊落\n段譽初入江湖。\n第二章 玉壁月華明\n無量山中。"


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch("novelsync.cli.setup_logging") as setup:
        yield setup


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("JOPLIN_API_TOKEN", raising=False)
    monkeypatch.delenv("JOPLIN_API_URL", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    return tmp_path


@pytest.fixture
def config_file(workspace: Path) -> Path:
    path = workspace / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "storage": {
                    "sqlite_path": str(workspace / "db" / "app.db"),
                    "books_dir": str(workspace / "books"),
                },
                "jobs": {"poll_interval_seconds": 0.01, "build_timeout_seconds": 30},
                "logging": {"log_dir": str(workspace / "logs")},
            },
            allow_unicode=True,
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def run(config_file: Path):
    def _run(*argv: str) -> int:
        return cli.main(["--config", str(config_file), *argv])

    return _run


@pytest.fixture
def repo(workspace: Path) -> Repository:
    return Repository(workspace / "db" / "app.db")


@pytest.fixture
def ingested(run, workspace: Path) -> int:
    source = workspace / "天龍八部.txt"
    source.write_text(NOVEL, encoding="utf-8")
    assert run("ingest", str(source)) == 0
    return 1


class TestParser:
    def test_subcommand_required(self) -> None:
        assert cli.main([]) == 2

    def test_unknown_option(self) -> None:
        assert cli.main(["build", "--bogus"]) == 2

    def test_verbose_sets_debug(self, run, quiet_logging: MagicMock) -> None:
        run("-v", "status", "1")
        assert quiet_logging.call_args.args[0].level == "DEBUG"


class TestCommands:
    def test_init(self, run, workspace: Path) -> None:
        assert run("init") == 0
        assert (workspace / "db" / "app.db").exists()
        assert (workspace / "books").is_dir()

    def test_ingest(self, run, workspace: Path, repo: Repository, capsys) -> None:
        source = workspace / "天龍八部.txt"
        source.write_text(NOVEL, encoding="utf-8")

        assert run("ingest", str(source)) == 0
        book = repo.get_book(1)
        assert book.title == "天龍八部"
        assert book.author == "金庸"
        assert book.sync_enabled is True
        assert "天龍八部" in capsys.readouterr().out

    def test_ingest_overrides(self, run, workspace: Path, repo: Repository) -> None:
        source = workspace / "book.txt"
        source.write_text(NOVEL, encoding="utf-8")

        assert run("ingest", str(source), "--title", "新書", "--author", "某人", "--no-sync") == 0
        book = repo.get_book(1)
        assert (book.title, book.author, book.sync_enabled) == ("新書", "某人", False)

    def test_ingest_missing_file(self, run, workspace: Path) -> None:
        assert run("ingest", str(workspace / "missing.txt")) == 1

    def test_build_and_status(self, run, ingested: int, repo: Repository, capsys) -> None:
        assert run("build", str(ingested)) == 0
        assert "#1/1" in capsys.readouterr().out
        assert repo.latest_job(ingested).status is JobStatus.READY

        assert run("status", str(ingested)) == 0
        assert "ready" in capsys.readouterr().out

    def test_build_no_wait_prints_job_id(
        self, run, ingested: int, repo: Repository, capsys
    ) -> None:
        capsys.readouterr()
        assert run("build", str(ingested), "--no-wait") == 0

        job = repo.latest_job(ingested)
        assert f"Chunk job {job.id} started" in capsys.readouterr().out

    def test_no_wait_help_states_exit_behavior(self, capsys) -> None:
        assert cli.main(["build", "--help"]) == 0
        help_text = " ".join(capsys.readouterr().out.split())
        assert "exits only after the build finishes" in help_text

    def test_build_resumes_interrupted_job(self, run, ingested: int, repo: Repository) -> None:
        job, created = repo.claim_chunk_job(ingested, 40000)
        assert created
        assert repo.begin_processing(job.id)

        assert run("build", str(ingested)) == 0

        latest = repo.latest_job(ingested)
        assert latest.id == job.id
        assert latest.status is JobStatus.READY
        assert len(repo.current_chunks(ingested)) == 1

    def test_sync_resumes_interrupted_job(
        self, run, ingested: int, note_store, repo: Repository
    ) -> None:
        job, _ = repo.claim_chunk_job(ingested, 40000)
        repo.begin_processing(job.id)
        note_store.api_url = "http://localhost:41184"

        with patch("novelsync.cli._joplin", return_value=note_store):
            assert run("sync") == 0

        assert repo.get_job(job.id).status is JobStatus.READY
        assert note_store.creates == 1

    def test_build_missing_book(self, run) -> None:
        assert run("build", "42") == 1

    def test_status_without_jobs(self, run, ingested: int, capsys) -> None:
        capsys.readouterr()
        assert run("status", str(ingested)) == 0
        assert "No chunk jobs" in capsys.readouterr().out

    def test_rebuild(self, run, ingested: int, repo: Repository) -> None:
        assert run("rebuild", str(ingested)) == 0
        assert repo.get_book(ingested).rebuild_chunks is True

    def test_sync_without_token(self, run, ingested: int) -> None:
        assert run("sync") == 1

    def test_sync(self, run, ingested: int, note_store, repo: Repository, capsys) -> None:
        note_store.api_url = "http://localhost:41184"
        with patch("novelsync.cli._joplin", return_value=note_store):
            assert run("sync") == 0

        assert "completed" in capsys.readouterr().out
        assert note_store.creates == 1
        assert repo.get_book(ingested).last_synced_at is not None

    def test_ping(self, run) -> None:
        client = MagicMock()
        client.ping.return_value = False
        with patch("novelsync.cli._joplin", return_value=client):
            assert run("ping") == 1
        client.ping.return_value = True
        with patch("novelsync.cli._joplin", return_value=client):
            assert run("ping") == 0
