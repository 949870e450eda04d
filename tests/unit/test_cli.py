import asyncio
from datetime import datetime, timezone

import pytest
from typer.testing import CliRunner

import novaflow.backend as backend_module
from novaflow.backend import InMemoryBackendRepository
from novaflow.cli import app


@pytest.fixture
def repo(monkeypatch):
    repo = InMemoryBackendRepository()
    monkeypatch.setattr(backend_module, "_backend_instance", repo)
    return repo


def test_session_show_missing(repo):
    runner = CliRunner()
    result = runner.invoke(app, ["session", "show", "user-1"])
    assert result.exit_code == 1, f"Unexpected exit code. Output: {result.stdout}"
    assert "No session found" in result.stdout


def test_session_set_then_show(repo):
    runner = CliRunner()
    result = runner.invoke(
        app,
        ["session", "set", "user-1", "--workflow-type", "roadmap", "--tab", "chat"],
    )
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"

    result = runner.invoke(app, ["session", "set", "user-1", "--squad", "sq2"])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"

    result = runner.invoke(app, ["session", "show", "user-1"])
    assert result.exit_code == 0
    output = result.stdout
    assert "workflow: roadmap" in output
    assert "squad: sq2" in output
    assert "tab: chat" in output


def test_session_set_requires_fields(repo):
    runner = CliRunner()
    result = runner.invoke(app, ["session", "set", "user-1"])
    assert result.exit_code == 1
    assert "Nothing to update" in result.stdout


def test_session_set_rejects_bad_payload(repo):
    runner = CliRunner()
    result = runner.invoke(app, ["session", "set", "user-1", "--payload", "{nope"])
    assert result.exit_code == 1
    assert "Invalid payload" in result.stdout


def test_session_resume(repo):
    runner = CliRunner()
    result = runner.invoke(app, ["session", "resume", "user-1"])
    assert "nothing to resume" in result.stdout

    asyncio.run(
        repo.upsert_session_record(
            "user-1",
            {"last_workflow_type": "feature_discovery", "last_squad_id": "sq1"},
            datetime.now(timezone.utc),
        )
    )
    result = runner.invoke(app, ["session", "resume", "user-1"])
    assert result.exit_code == 0
    assert "Feature Discovery" in result.stdout
    assert "Continue in tab dashboard (squad sq1)" in result.stdout


def test_pending_badge(repo):
    for i in range(120):
        asyncio.run(repo.create_review_item("user-1", "run-1", f"item {i}"))

    runner = CliRunner()
    result = runner.invoke(app, ["pending", "user-1"])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert result.stdout.strip() == "99+"


def test_artifact_and_review_add(repo):
    runner = CliRunner()
    result = runner.invoke(app, ["artifact", "add", "user-1", "Checkout epic", "--type", "epic"])
    assert result.exit_code == 0
    artifact_id = result.stdout.strip()
    recent = asyncio.run(repo.list_recent_artifacts("user-1", 1))
    assert recent[0].id == artifact_id
    assert recent[0].artifact_type == "epic"

    result = runner.invoke(app, ["review", "add", "user-1", "run-1", "Pricing page"])
    assert result.exit_code == 0
    assert asyncio.run(repo.count_pending_review_items("user-1", 100)) == 1


def test_notify_publishes(repo, monkeypatch):
    monkeypatch.delenv("NOVAFLOW_TRANSPORT", raising=False)
    runner = CliRunner()
    result = runner.invoke(app, ["notify", "user-1", "artefact-1", "--run", "run-1"])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert "Published completed for artefact-1" in result.stdout


def test_watch_runs_for_lifespan(repo, monkeypatch):
    monkeypatch.delenv("NOVAFLOW_TRANSPORT", raising=False)
    runner = CliRunner()
    result = runner.invoke(app, ["watch", "user-1", "sprint", "--lifespan", "0.1"])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert "Watching sprint for user-1; 0 pending" in result.stdout

    record = asyncio.run(repo.get_session_record("user-1"))
    assert record.last_workflow_type == "sprint"
