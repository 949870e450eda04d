"""Command line interface for inspecting and driving the continuity engine."""

from __future__ import annotations

import asyncio
import json
from typing import Optional

import typer
from pydantic import ValidationError

from novaflow import ContinuityEngine, get_backend, get_transport
from novaflow.contracts import (
    Alert,
    Artifact,
    ChangeEvent,
    QueueStatus,
    SessionUpdate,
    WorkflowState,
)
from novaflow.session import SessionContinuityStore, SessionMemory

app = typer.Typer(help="CLI for Novaflow session and workflow continuity")

# Command groups
session_app = typer.Typer(help="Commands for managing session records")
artifact_app = typer.Typer(help="Commands for managing artifacts")
review_app = typer.Typer(help="Commands for managing review items")

app.add_typer(session_app, name="session")
app.add_typer(artifact_app, name="artifact")
app.add_typer(review_app, name="review")


@app.callback()
def main() -> None:
    """Novaflow CLI entry point."""
    pass


@session_app.command("show")
def session_show(actor_id: str) -> None:
    """
    Show the session record stored for an actor.

    Example:
        novaflow session show user-123
        # Output: Session user-123 (last active 2024-01-01 10:00:00+00:00)
        #         workflow: feature_discovery
        #         tab: chat
    """
    store = SessionContinuityStore(get_backend())
    record = asyncio.run(store.read(actor_id))
    if record is None:
        typer.echo("No session found")
        raise typer.Exit(code=1)
    typer.echo(f"Session {record.actor_id} (last active {record.last_active_at})")
    typer.echo(f"  workflow: {record.last_workflow_type or '-'}")
    typer.echo(f"  squad: {record.last_squad_id or '-'}")
    typer.echo(f"  context: {record.last_context_id or '-'}")
    typer.echo(f"  tab: {record.last_tab or '-'}")
    if record.freeform_payload:
        typer.echo(f"  payload: {json.dumps(record.freeform_payload)}")


@session_app.command("set")
def session_set(
    actor_id: str,
    workflow_type: Optional[str] = typer.Option(None, "--workflow-type"),
    squad: Optional[str] = typer.Option(None, "--squad"),
    context: Optional[str] = typer.Option(None, "--context"),
    tab: Optional[str] = typer.Option(None, "--tab"),
    payload: Optional[str] = typer.Option(None, "--payload", help="JSON object"),
) -> None:
    """
    Upsert the given fields of an actor's session record.

    Fields that are not passed keep their stored value.

    Example:
        novaflow session set user-123 --tab workflows --squad sq2
    """
    fields = {
        "last_workflow_type": workflow_type,
        "last_squad_id": squad,
        "last_context_id": context,
        "last_tab": tab,
    }
    fields = {k: v for k, v in fields.items() if v is not None}
    if payload is not None:
        try:
            fields["freeform_payload"] = json.loads(payload)
        except json.JSONDecodeError as exc:
            typer.secho(f"Invalid payload: {exc}", fg=typer.colors.RED)
            raise typer.Exit(code=1)
    if not fields:
        typer.secho("Nothing to update", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    try:
        update = SessionUpdate(**fields)
    except ValidationError as exc:
        typer.secho(f"Invalid session update: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    store = SessionContinuityStore(get_backend())
    record = asyncio.run(store.write(actor_id, update))
    typer.echo(f"Session {record.actor_id} updated at {record.last_active_at}")


@session_app.command("resume")
def session_resume(actor_id: str) -> None:
    """
    Show where "continue where you left off" would lead.

    Example:
        novaflow session resume user-123
        # Output: Last time you were working on Feature Discovery
        #         Continue in tab chat (squad sq1)
    """
    memory = SessionMemory(SessionContinuityStore(get_backend()), actor_id)
    asyncio.run(memory.load())
    target = memory.resume_target()
    if target is None:
        typer.echo("No previous session; nothing to resume")
        return
    typer.echo(f"Last time you were working on {target.label}")
    squad = f" (squad {target.squad_id})" if target.squad_id else ""
    typer.echo(f"Continue in tab {target.tab}{squad}")


@app.command("pending")
def pending(actor_id: str) -> None:
    """
    Print the review-pending badge value for an actor.

    Example:
        novaflow pending user-123
        # Output: 99+
    """
    engine = ContinuityEngine(actor_id, backend=get_backend())
    value = asyncio.run(engine.refresh_pending())
    typer.echo(value.display)


@artifact_app.command("add")
def artifact_add(
    actor_id: str,
    title: str,
    artifact_type: str = typer.Option("document", "--type"),
) -> None:
    """Record a new artifact for an actor, as a content generator would."""
    artifact = Artifact(actor_id=actor_id, title=title, artifact_type=artifact_type)
    asyncio.run(get_backend().create_artifact(artifact))
    typer.echo(artifact.id)


@review_app.command("add")
def review_add(actor_id: str, run_id: str, item_name: str) -> None:
    """Record a review-pending item produced by an analysis run."""
    item_id = asyncio.run(get_backend().create_review_item(actor_id, run_id, item_name))
    typer.echo(item_id)


@app.command("notify")
def notify(
    actor_id: str,
    subject_id: str,
    run_id: Optional[str] = typer.Option(None, "--run"),
    status: QueueStatus = typer.Option(QueueStatus.COMPLETED, "--status"),
) -> None:
    """
    Publish a queue status change on the configured transport.

    Example:
        novaflow notify user-123 artefact-9 --run run-4
    """
    event = ChangeEvent(
        subject_id=subject_id,
        actor_id=actor_id,
        new_status=status,
        linked_run_id=run_id,
    )

    async def _publish() -> None:
        transport = get_transport()
        await transport.connect()
        try:
            await transport.publish(actor_id, event)
        finally:
            await transport.disconnect()

    asyncio.run(_publish())
    typer.echo(f"Published {status.value} for {subject_id}")


@app.command("watch")
def watch(
    actor_id: str,
    workflow_type: str,
    step: int = typer.Option(0, "--step", min=0),
    lifespan: Optional[float] = typer.Option(None, "--lifespan"),
) -> None:
    """
    Track a workflow and report step advances and alerts as they happen.

    Runs until interrupted or until ``--lifespan`` seconds have passed.

    Example:
        novaflow watch user-123 feature_discovery --lifespan 60
    """

    def _on_step(next_step: int, context: dict) -> None:
        last = context.get("lastArtifact") or {}
        typer.echo(f"Step {next_step} reached ({last.get('title', '?')})")

    def _on_alert(alert: Alert) -> None:
        typer.echo(f"{alert.title}: {alert.description}")

    async def _watch() -> None:
        engine = ContinuityEngine(actor_id, backend=get_backend(), on_alert=_on_alert)
        engine.on_step_complete(_on_step)
        await engine.mount()
        try:
            await engine.start_workflow(WorkflowState(type=workflow_type, current_step=step))
            typer.echo(f"Watching {workflow_type} for {actor_id}; {engine.pending.display} pending")
            if lifespan:
                await asyncio.sleep(lifespan)
            else:
                await asyncio.Event().wait()
        finally:
            engine.unmount()

    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        typer.echo("Stopped")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
