"""Tests for CLI commands"""

import asyncio

import pytest
from typer.testing import CliRunner

from api.v1.contacts.service import ContactService
from api.v1.infra.email_queue.models import EmailJobStatus
from api.v1.infra.email_queue.service import EmailQueueService
from api.v1.infra.email_queue.store import SqlAlchemyJobStore
from cli import __version__
from cli.commands import queue, worker
from cli.main import app


# Test fixtures
@pytest.fixture
def runner():
    """CLI test runner"""
    return CliRunner()


@pytest.fixture
def cli_settings(api_settings, api_database, monkeypatch):
    """Point every command at the SQLite test database."""
    monkeypatch.setattr(queue, "get_settings", lambda: api_settings)
    monkeypatch.setattr(worker, "get_settings", lambda: api_settings)
    return api_settings


@pytest.fixture
def enqueued(cli_settings, api_database):
    """One contact message with both email variants queued."""

    async def _enqueue():
        contact = await ContactService(api_database.SessionLocal).create(
            "Jane", "jane@example.com", "Hello"
        )
        service = EmailQueueService(
            cli_settings, SqlAlchemyJobStore(api_database.SessionLocal)
        )
        return await service.enqueue_for_contact(contact.id)

    return asyncio.run(_enqueue())


def load_jobs(database, job_ids):
    async def _load():
        store = SqlAlchemyJobStore(database.SessionLocal)
        return [await store.get_by_id(job_id) for job_id in job_ids]

    return asyncio.run(_load())


class TestMainCommands:
    """Test main CLI commands"""

    def test_version_command(self, runner):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "Mail Queue CLI" in result.stdout
        assert __version__ in result.stdout

    def test_version_flag(self, runner):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"Mail Queue CLI v{__version__}" in result.stdout


class TestQueueCommands:
    """Test queue inspection commands"""

    def test_stats(self, runner, enqueued):
        result = runner.invoke(app, ["queue", "stats"])

        assert result.exit_code == 0
        assert "Email Queue" in result.stdout
        assert "PENDING" in result.stdout
        assert "Queue depth" in result.stdout

    def test_list_shows_jobs(self, runner, enqueued):
        result = runner.invoke(app, ["queue", "list"])

        assert result.exit_code == 0
        for job_id in enqueued:
            assert job_id[:8] in result.stdout

    def test_list_filtered_by_status_empty(self, runner, enqueued):
        result = runner.invoke(app, ["queue", "list", "--status", "FAILED"])

        assert result.exit_code == 0
        assert "No email jobs found" in result.stdout

    def test_list_rejects_unknown_status(self, runner, cli_settings):
        result = runner.invoke(app, ["queue", "list", "--status", "BOGUS"])
        assert result.exit_code != 0

    def test_stats_database_error(self, runner, monkeypatch, tmp_path):
        from api.config.settings import Settings

        broken = Settings(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'q.db'}"
        )
        monkeypatch.setattr(queue, "get_settings", lambda: broken)

        result = runner.invoke(app, ["queue", "stats"])

        assert result.exit_code == 1
        assert "Failed to read queue stats" in result.stdout


class TestWorkerCommands:
    """Test worker commands"""

    def test_run_once_without_transport_schedules_retries(
        self, runner, enqueued, api_database, cli_settings
    ):
        """Test undeliverable jobs are retried, not lost, when no transport is set."""
        assert cli_settings.resend_api_key == ""
        assert cli_settings.smtp_host == ""

        result = runner.invoke(app, ["worker", "run", "--once"])

        assert result.exit_code == 0
        assert "Tick complete" in result.stdout
        jobs = load_jobs(api_database, enqueued)
        for job in jobs:
            assert job.status == EmailJobStatus.PENDING.value
            assert job.attempts == 1
            assert job.last_error == "Send returned false"
            assert job.locked_at_ms is None

    def test_run_rejects_zero_workers(self, runner, cli_settings):
        result = runner.invoke(app, ["worker", "run", "--count", "0"])
        assert result.exit_code != 0
