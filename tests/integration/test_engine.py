"""End-to-end tests of the continuity engine with in-process backends."""

import asyncio

import pytest

from novaflow import ContinuityEngine
from novaflow.backend import InMemoryBackendRepository, SQLiteBackendRepository
from novaflow.config import NovaflowConfig, WorkflowConfig
from novaflow.contracts import Artifact, ChangeEvent, QueueStatus, WorkflowState
from novaflow.transports import InMemoryTransport


async def _wait_for(predicate, attempts=200):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


def _engine(backend, transport, alerts):
    config = NovaflowConfig(workflow=WorkflowConfig(poll_interval=0.02))
    return ContinuityEngine(
        "user-1",
        backend=backend,
        transport=transport,
        config=config,
        on_alert=alerts.append,
    )


@pytest.mark.asyncio
async def test_workflow_session_and_badge_together(tmp_path):
    backend = SQLiteBackendRepository(tmp_path / "engine.db")
    transport = InMemoryTransport()
    alerts = []
    steps = []

    # an artifact from an earlier session must not advance the new workflow
    await backend.create_artifact(Artifact(actor_id="user-1", title="old canvas"))
    for i in range(3):
        await backend.create_review_item("user-1", "run-0", f"item {i}")

    engine = _engine(backend, transport, alerts)
    engine.on_step_complete(lambda step, ctx: steps.append((step, ctx)))
    await engine.mount()

    assert engine.mounted
    assert engine.session is None
    assert engine.pending_count == 3
    await _wait_for(lambda: transport.subscriber_count("user-1") == 1)

    await engine.start_workflow(WorkflowState(type="feature_discovery"))
    assert engine.session.last_workflow_type == "feature_discovery"
    await asyncio.sleep(0.05)
    assert steps == []

    epic = await backend.create_artifact(Artifact(actor_id="user-1", title="epic"))
    await _wait_for(lambda: len(steps) == 1)
    assert steps[0][0] == 1
    assert steps[0][1]["lastArtifact"]["id"] == epic.id
    assert engine.workflow.current_step == 1

    await engine.update_session({"last_tab": "workflows", "freeform_payload": {"step": 1}})
    await backend.create_review_item("user-1", "run-1", "new impact")
    event = ChangeEvent(
        subject_id=epic.id,
        actor_id="user-1",
        new_status=QueueStatus.COMPLETED,
        linked_run_id="run-1",
    )
    await transport.publish("user-1", event)
    await transport.publish("user-1", event)
    await _wait_for(lambda: len(alerts) == 1)
    await asyncio.sleep(0.05)
    assert len(alerts) == 1
    assert engine.pending_count == 4

    engine.unmount()
    assert not engine.mounted
    assert engine.workflow is None
    await backend.create_artifact(Artifact(actor_id="user-1", title="after unmount"))
    await asyncio.sleep(0.05)
    assert len(steps) == 1

    # a fresh view, as after a reload, offers to continue
    reloaded = _engine(backend, transport, [])
    await reloaded.mount()
    target = reloaded.resume_target()
    assert target.tab == "workflows"
    assert target.label == "Feature Discovery"
    assert reloaded.session.freeform_payload == {"step": 1}
    reloaded.unmount()


@pytest.mark.asyncio
async def test_ending_workflow_stops_advancing():
    backend = InMemoryBackendRepository()
    steps = []
    engine = _engine(backend, InMemoryTransport(), [])
    engine.on_step_complete(lambda step, ctx: steps.append(step))
    await engine.mount()

    await engine.start_workflow(WorkflowState(type="sprint", current_step=2))
    await asyncio.sleep(0.05)
    await backend.create_artifact(Artifact(actor_id="user-1"))
    await _wait_for(lambda: steps == [3])

    engine.end_workflow()
    assert engine.workflow_context == {}
    await backend.create_artifact(Artifact(actor_id="user-1"))
    await asyncio.sleep(0.05)
    assert steps == [3]
    engine.unmount()


@pytest.mark.asyncio
async def test_engine_uses_its_configured_database(tmp_path, monkeypatch):
    import novaflow.backend as backend_module

    monkeypatch.delenv("NOVAFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(backend_module, "_backend_instance", InMemoryBackendRepository())
    path = tmp_path / "configured.db"
    config = NovaflowConfig(database_url=f"sqlite://{path}")

    engine = ContinuityEngine("user-1", transport=InMemoryTransport(), config=config)
    await engine.mount()
    await engine.update_session({"last_tab": "insights"})
    engine.unmount()

    record = await SQLiteBackendRepository(path).get_session_record("user-1")
    assert record.last_tab == "insights"
