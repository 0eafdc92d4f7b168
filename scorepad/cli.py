"""
ScorePad Cloud CLI

Thin wrapper around the CloudSync façade.

Usage:
    scorepad-cloud status [--json]
    scorepad-cloud list <kind> [--trash] [--json]
    scorepad-cloud backup-template <file>
    scorepad-cloud restore <kind> <id> [--out FILE]
    scorepad-cloud trash <kind> <id>
    scorepad-cloud untrash <kind> <id>
    scorepad-cloud delete <id> [--force]
    scorepad-cloud empty-trash [kind] [--force]
    scorepad-cloud backup-settings <file>
"""

from __future__ import annotations

import asyncio
import json as json_module
import logging
import os
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from pydantic import ValidationError

from .cloud.api import CloudSync, Notifier, create_cloud_sync
from .cloud.models import (
    CloudResourceType,
    GameTemplate,
    ListMode,
    Notification,
    NotificationLevel,
    SettingsSnapshot,
)

T = TypeVar("T")

app = typer.Typer(
    name="scorepad-cloud",
    help="ScorePad Cloud - Google Drive backup for score sheets",
    no_args_is_help=True,
)


@app.callback()
def main() -> None:
    """Configure logging for every command."""
    # Use SCOREPAD_LOG_LEVEL=DEBUG for request-level output
    logging.basicConfig(
        level=getattr(logging, os.environ.get("SCOREPAD_LOG_LEVEL", "INFO").upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def get_cloud(notifier: Optional[Notifier] = None) -> CloudSync:
    """Create a CloudSync instance from the global configuration."""
    return create_cloud_sync(notifier=notifier)


def output_json(data: Any) -> None:
    """Output data as JSON."""
    typer.echo(json_module.dumps(data, indent=2, default=str))


def output_error(message: str) -> None:
    """Output error message."""
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)


def output_success(message: str) -> None:
    """Output success message."""
    typer.secho(message, fg=typer.colors.GREEN)


def output_warning(message: str) -> None:
    """Output warning message."""
    typer.secho(f"Warning: {message}", fg=typer.colors.YELLOW)


def cli_notifier(notification: Notification) -> None:
    if notification.level == NotificationLevel.ERROR:
        output_error(notification.message)
    elif notification.level == NotificationLevel.SUCCESS:
        output_success(notification.message)
    else:
        typer.echo(notification.message)


def run_with_cloud(action: Callable[[CloudSync], Awaitable[T]], notifier: Optional[Notifier] = cli_notifier) -> T:
    """Run one async action against a fresh façade, closing it afterwards."""
    async def runner() -> T:
        cloud = get_cloud(notifier=notifier)
        try:
            return await action(cloud)
        finally:
            await cloud.aclose()

    return asyncio.run(runner())


def _load_json_file(path: Path) -> Any:
    try:
        return json_module.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        output_error(f"Cannot read {path}: {e}")
        raise typer.Exit(1)
    except ValueError as e:
        output_error(f"{path} is not valid JSON: {e}")
        raise typer.Exit(1)


# =============================================================================
# Status & Listing
# =============================================================================

@app.command("status")
def status_command(
    json: bool = typer.Option(False, "--json", help="Output as JSON"),
    connect: bool = typer.Option(False, "--connect", help="Sign in before reporting"),
):
    """Show connection status."""
    async def action(cloud: CloudSync):
        if connect:
            await cloud.connect()
        return cloud.get_status()

    status = run_with_cloud(action, notifier=None if json else cli_notifier)

    if json:
        output_json(status.model_dump())
    else:
        typer.echo(f"Authorized: {'yes' if status.authorized else 'no'}")
        typer.echo(f"Connected:  {'yes' if status.connected else 'no'}")
        typer.echo(f"Syncing:    {'yes' if status.syncing else 'no'}")


@app.command("list")
def list_command(
    kind: CloudResourceType = typer.Argument(..., help="Resource kind"),
    trash: bool = typer.Option(False, "--trash", help="List the trash folder instead"),
    json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List backups of one kind."""
    mode = ListMode.TRASH if trash else ListMode.ACTIVE
    files = run_with_cloud(
        lambda cloud: cloud.fetch_file_list(mode, kind),
        notifier=None if json else cli_notifier,
    )

    if files is None:
        if json:
            output_error("Listing failed")
        raise typer.Exit(1)

    if json:
        output_json({"files": [f.model_dump(by_alias=True) for f in files]})
    elif not files:
        typer.echo("No backups found.")
    else:
        for f in files:
            typer.echo(f"  - {f.name}  [{f.id}]  {f.created_time or ''}")


# =============================================================================
# Backup & Restore
# =============================================================================

@app.command("backup-template")
def backup_template_command(
    file: Path = typer.Argument(..., help="Template JSON file"),
):
    """Back up a template from a JSON file."""
    try:
        template = GameTemplate.model_validate(_load_json_file(file))
    except ValidationError as e:
        output_error(f"Invalid template: {e}")
        raise typer.Exit(1)

    synced = run_with_cloud(lambda cloud: cloud.backup_template(template))
    if synced is None:
        raise typer.Exit(1)
    typer.echo(f"Last synced at: {synced.last_synced_at}")


@app.command("restore")
def restore_command(
    kind: CloudResourceType = typer.Argument(..., help="Resource kind"),
    resource_id: str = typer.Argument(..., help="File id (template) or folder id (session/history)"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write the payload to a file"),
):
    """Download and print a backup payload."""
    async def action(cloud: CloudSync):
        if kind == CloudResourceType.TEMPLATE:
            return await cloud.restore_template(resource_id)
        if kind == CloudResourceType.ACTIVE:
            return await cloud.restore_session(resource_id)
        return await cloud.restore_history(resource_id)

    restored = run_with_cloud(action, notifier=cli_notifier if out else None)
    if restored is None:
        if not out:
            output_error(f"Could not restore {kind.value} {resource_id}")
        raise typer.Exit(1)

    payload = restored.to_payload()
    if out:
        out.write_text(json_module.dumps(payload, indent=2), encoding="utf-8")
        output_success(f"Wrote {out}")
    else:
        output_json(payload)


@app.command("backup-settings")
def backup_settings_command(
    file: Path = typer.Argument(..., help="Settings snapshot JSON file"),
):
    """Merge local settings with the cloud copy and upload the result."""
    try:
        local = SettingsSnapshot.model_validate(_load_json_file(file))
    except ValidationError as e:
        output_error(f"Invalid settings: {e}")
        raise typer.Exit(1)

    merged = run_with_cloud(lambda cloud: cloud.backup_settings(local))
    if merged is None:
        raise typer.Exit(1)
    typer.echo(
        f"Players: {len(merged.library.saved_players)}, "
        f"locations: {len(merged.library.saved_locations)}"
    )


# =============================================================================
# Trash
# =============================================================================

@app.command("trash")
def trash_command(
    kind: CloudResourceType = typer.Argument(..., help="Resource kind"),
    resource_id: str = typer.Argument(..., help="Resource id"),
):
    """Move a backup to its trash folder."""
    if not run_with_cloud(lambda cloud: cloud.move_to_trash(resource_id, kind)):
        raise typer.Exit(1)


@app.command("untrash")
def untrash_command(
    kind: CloudResourceType = typer.Argument(..., help="Resource kind"),
    resource_id: str = typer.Argument(..., help="Resource id"),
):
    """Restore a backup from its trash folder."""
    if not run_with_cloud(lambda cloud: cloud.restore_from_trash(resource_id, kind)):
        raise typer.Exit(1)


@app.command("delete")
def delete_command(
    resource_id: str = typer.Argument(..., help="Resource id"),
    force: bool = typer.Option(False, "--force", "-f", help="Delete without confirmation"),
):
    """Permanently delete a backup."""
    if not force:
        if not typer.confirm(f"Permanently delete '{resource_id}'?"):
            raise typer.Abort()

    if not run_with_cloud(lambda cloud: cloud.delete_file(resource_id)):
        raise typer.Exit(1)


@app.command("empty-trash")
def empty_trash_command(
    kind: Optional[CloudResourceType] = typer.Argument(None, help="Resource kind (all if not specified)"),
    force: bool = typer.Option(False, "--force", "-f", help="Empty without confirmation"),
):
    """Permanently delete everything in the trash folders."""
    if not force:
        target = f"{kind.value} trash" if kind else "all trash folders"
        if not typer.confirm(f"Permanently delete everything in {target}?"):
            raise typer.Abort()

    result = run_with_cloud(lambda cloud: cloud.empty_trash(kind))
    if result is None:
        raise typer.Exit(1)
    for resource_id, error in result.failed.items():
        output_warning(f"{resource_id}: {error}")
    if not result.success:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
