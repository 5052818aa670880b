"""Command line interface for the chatkeeper application."""

from __future__ import annotations

import json
from contextlib import contextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Dict, Iterator, Optional

import typer

from . import __version__
from . import config as config_mod
from .config import ConfigError
from .keeper import Keeper
from .logging_config import setup_logging
from .models import CustodyAction, ExportFormat, PublicationService, Record, StorageType
from .publisher import Credentials, PublicationError
from .storage import StorageError

app = typer.Typer(add_completion=False, help="Preserve AI chat transcripts with a verifiable chain of custody.")
locations_app = typer.Typer(add_completion=False, help="Manage backup storage locations.")
app.add_typer(locations_app, name="locations")

SERVICES: Dict[str, PublicationService] = {
    "gist": PublicationService.GITHUB_GIST,
    "timestamps": PublicationService.OPEN_TIMESTAMPS,
    "webhook": PublicationService.CUSTOM_WEBHOOK,
}

LOCATION_TYPES: Dict[str, StorageType] = {
    "local": StorageType.LOCAL,
    "icloud": StorageType.ICLOUD_DRIVE,
    "dropbox": StorageType.DROPBOX,
    "gdrive": StorageType.GOOGLE_DRIVE,
    "external": StorageType.EXTERNAL_DRIVE,
    "optical": StorageType.OPTICAL_DISC,
}


def _error(message: str, code: int = 1) -> typer.Exit:
    typer.secho(message, fg=typer.colors.RED, err=True)
    return typer.Exit(code=code)


def _load_config() -> config_mod.Config:
    try:
        return config_mod.load_config()
    except ConfigError as exc:
        raise _error(str(exc)) from exc


@contextmanager
def _keeper() -> Iterator[Keeper]:
    cfg = _load_config()
    try:
        keeper = Keeper.from_config(cfg)
    except StorageError as exc:
        # Nothing works without the record store.
        raise _error(f"Cannot initialise the record store: {exc}", code=2) from exc
    try:
        yield keeper
    finally:
        keeper.close()


def _get_record(keeper: Keeper, record_id: str) -> Record:
    try:
        return keeper.get_record(record_id)
    except StorageError as exc:
        raise _error(str(exc)) from exc


def _short(value: str, width: int = 8) -> str:
    return value[:width] if value else "-"


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Log debug output to stderr."),
    version: bool = typer.Option(False, "--version", "-v", help="Show version and exit"),
) -> None:
    if version:
        typer.echo(f"chatkeeper v{__version__}")
        raise typer.Exit()

    if verbose:
        setup_logging("DEBUG")
    else:
        try:
            setup_logging(config_mod.load_config().log_level)
        except ConfigError:
            setup_logging()

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("import")
def import_command(
    source: Optional[Path] = typer.Argument(
        None, exists=True, dir_okay=False, readable=True, help="Transcript text file. Reads stdin when omitted."
    ),
    title: Optional[str] = typer.Option(None, "--title", help="Display title (defaults to the file name)."),
    platform: Optional[str] = typer.Option(None, "--platform", help="Source platform label, e.g. ChatGPT."),
    url: Optional[str] = typer.Option(None, "--url", help="Link to the original conversation."),
    export_format: Optional[ExportFormat] = typer.Option(None, "--format", help="File format for the saved copy."),
) -> None:
    """Import a transcript, save it, hash it and start its custody trail."""

    try:
        if source is not None:
            content = source.read_text(encoding="utf-8")
        else:
            content = typer.get_text_stream("stdin").read()
    except UnicodeDecodeError as exc:
        raise _error(f"Transcript is not valid UTF-8 text: {exc}") from exc
    if not content.strip():
        raise _error("Transcript is empty; nothing to import.")

    with _keeper() as keeper:
        try:
            record = keeper.import_transcript(
                title=title or (source.stem if source else "Untitled transcript"),
                content=content,
                source_platform=platform,
                source_url=url,
                export_format=export_format,
            )
        except (OSError, StorageError) as exc:
            raise _error(f"Failed to import transcript: {exc}") from exc

    typer.secho(f"Imported transcript {record.id}", fg=typer.colors.BLUE)
    typer.echo(f"File: {record.local_file_path}")
    typer.echo(f"SHA-256: {record.current_hash}")


@app.command("list")
def list_command(
    sort_by: str = typer.Option("imported_at", "--sort", help="imported_at, created_at or title."),
    ascending: bool = typer.Option(False, "--ascending", help="Oldest (or A-Z) first."),
) -> None:
    """List stored transcripts."""

    with _keeper() as keeper:
        try:
            rows = keeper.list_records(sort_by=sort_by, descending=not ascending)
        except (StorageError, ValueError) as exc:
            raise _error(str(exc)) from exc

    if not rows:
        typer.echo("No transcripts found. Use `chatkeeper import` to add one.")
        return
    header = f"{'ID':<8}  {'Title':<30}  {'Platform':<12}  {'Imported':<16}  {'Hash':<12}"
    typer.echo(header)
    typer.echo("-" * len(header))
    for record in rows:
        imported = record.imported_at.strftime("%Y-%m-%d %H:%M")
        typer.echo(
            f"{_short(record.id):<8}  {record.title[:30]:<30}  {record.source_platform[:12]:<12}  "
            f"{imported:<16}  {_short(record.current_hash, 12):<12}"
        )


@app.command()
def show(
    record_id: str = typer.Argument(..., help="Record id or a unique prefix of it."),
    content: bool = typer.Option(True, "--content/--no-content", help="Print the transcript text."),
) -> None:
    """Show a stored transcript."""

    with _keeper() as keeper:
        record = _get_record(keeper, record_id)

    typer.secho(f"Title: {record.title}", fg=typer.colors.BLUE)
    typer.echo(f"ID: {record.id}")
    typer.echo(f"Platform: {record.source_platform}")
    if record.source_url:
        typer.echo(f"Source URL: {record.source_url}")
    typer.echo(f"Created: {record.created_at:%Y-%m-%d %H:%M}")
    typer.echo(f"Imported: {record.imported_at:%Y-%m-%d %H:%M}")
    typer.echo(f"Format: {record.export_format.value}")
    typer.echo(f"SHA-256: {record.current_hash or '-'}")
    for label, path in (
        ("Local file", record.local_file_path),
        ("Mirror copy", record.cloud_storage_path),
        ("Offline backup", record.offline_backup_path),
    ):
        if path:
            typer.echo(f"{label}: {path}")
    typer.echo(f"Custody entries: {len(record.entries)}  Publications: {len(record.publications)}")
    if content:
        typer.echo("\nTranscript:\n" + record.content)


@app.command()
def history(record_id: str = typer.Argument(..., help="Record id or a unique prefix of it.")) -> None:
    """Print the chain-of-custody entries of a transcript."""

    with _keeper() as keeper:
        record = _get_record(keeper, record_id)
        entries = keeper.custody.list_for(record.id)

    for index, entry in enumerate(entries, start=1):
        line = (
            f"[{index}] {entry.timestamp:%Y-%m-%d %H:%M:%S}  {entry.action.value:<10}  "
            f"{_short(entry.file_hash, 12)}  {entry.details}"
        )
        colour = typer.colors.RED if entry.action is CustodyAction.MODIFIED else None
        typer.secho(line, fg=colour)


@app.command()
def delete(record_id: str = typer.Argument(..., help="Record id or a unique prefix of it.")) -> None:
    """Delete a transcript with its custody entries and publications."""

    with _keeper() as keeper:
        record = _get_record(keeper, record_id)
        try:
            keeper.delete(record)
        except StorageError as exc:
            raise _error(str(exc)) from exc
    typer.secho(f"Transcript {record.id} deleted.", fg=typer.colors.BLUE)


@app.command()
def export(
    record_id: str = typer.Argument(..., help="Record id or a unique prefix of it."),
    directory: Path = typer.Argument(..., file_okay=False, help="Destination directory."),
) -> None:
    """Write a copy of the transcript into another directory."""

    with _keeper() as keeper:
        record = _get_record(keeper, record_id)
        try:
            path = keeper.export_transcript(record, directory)
        except (OSError, StorageError) as exc:
            raise _error(f"Failed to export transcript: {exc}") from exc
    typer.secho(f"Exported to {path}", fg=typer.colors.BLUE)


@app.command()
def backup(
    record_id: str = typer.Argument(..., help="Record id or a unique prefix of it."),
    mirror: bool = typer.Option(False, "--mirror", help="Copy into the configured mirror directory."),
    locations: bool = typer.Option(False, "--locations", help="Copy into every enabled storage location."),
) -> None:
    """Back up a transcript file."""

    if not (mirror or locations):
        raise _error("Choose at least one of --mirror or --locations.")

    with _keeper() as keeper:
        record = _get_record(keeper, record_id)
        try:
            if mirror:
                path = keeper.backup_to_mirror(record)
                typer.secho(f"Backed up to {path}", fg=typer.colors.BLUE)
            if locations:
                paths = keeper.backup_to_locations(record)
                if not paths:
                    typer.echo("No enabled storage locations. Add one with `chatkeeper locations add`.")
                for path in paths:
                    typer.secho(f"Backed up to {path}", fg=typer.colors.BLUE)
        except (ConfigError, OSError, StorageError) as exc:
            raise _error(f"Backup failed: {exc}") from exc


@app.command()
def rehash(record_id: str = typer.Argument(..., help="Record id or a unique prefix of it.")) -> None:
    """Recompute and store the hash of the local transcript file."""

    with _keeper() as keeper:
        record = _get_record(keeper, record_id)
        try:
            record = keeper.rehash(record)
        except (OSError, StorageError) as exc:
            raise _error(f"Failed to hash transcript: {exc}") from exc
    typer.echo(f"SHA-256: {record.current_hash}")


@app.command()
def publish(
    record_id: str = typer.Argument(..., help="Record id or a unique prefix of it."),
    service: str = typer.Option("timestamps", "--service", help="gist, timestamps or webhook."),
    token: Optional[str] = typer.Option(None, "--token", help="GitHub token (defaults to the configured one)."),
    url: Optional[str] = typer.Option(None, "--url", help="Webhook URL (defaults to the configured one)."),
) -> None:
    """Publish the transcript hash to a notarization service."""

    if service not in SERVICES:
        raise _error(f"Unknown service {service!r}; expected one of {', '.join(SERVICES)}.")

    with _keeper() as keeper:
        record = _get_record(keeper, record_id)
        try:
            publication = keeper.publish(record, SERVICES[service], Credentials(token=token, url=url))
        except (PublicationError, StorageError) as exc:
            raise _error(f"Failed to publish hash: {exc}") from exc

    typer.secho(
        f"Hash published to {publication.service.value} ({publication.status.value}).", fg=typer.colors.BLUE
    )
    if publication.public_url:
        typer.echo(f"URL: {publication.public_url}")
    if publication.transaction_id:
        typer.echo(f"Transaction ID: {publication.transaction_id}")


@app.command()
def verify(record_id: str = typer.Argument(..., help="Record id or a unique prefix of it.")) -> None:
    """Re-hash the local file and compare it with the stored hash."""

    with _keeper() as keeper:
        record = _get_record(keeper, record_id)
        try:
            result = keeper.verify(record)
        except (OSError, StorageError) as exc:
            raise _error(f"Verification failed: {exc}") from exc

    typer.echo(f"Stored:   {result.stored_hash}")
    typer.echo(f"Computed: {result.computed_hash}")
    if result.is_valid:
        typer.secho(result.status_message, fg=typer.colors.GREEN)
        return
    typer.secho(result.status_message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


@app.command()
def report(
    record_id: str = typer.Argument(..., help="Record id or a unique prefix of it."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", dir_okay=False, help="Write the report to a file."),
) -> None:
    """Render the chain-of-custody report."""

    with _keeper() as keeper:
        record = _get_record(keeper, record_id)
        text = keeper.report(record)

    if output is None:
        typer.echo(text, nl=False)
        return
    try:
        output.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise _error(f"Failed to write report: {exc}") from exc
    typer.secho(f"Report written to {output}", fg=typer.colors.BLUE)


@locations_app.command("add")
def locations_add(
    name: str = typer.Argument(..., help="Display name."),
    path: Path = typer.Argument(..., file_okay=False, help="Destination directory."),
    type_: str = typer.Option("local", "--type", help=", ".join(LOCATION_TYPES)),
) -> None:
    """Register a backup destination."""

    if type_ not in LOCATION_TYPES:
        raise _error(f"Unknown location type {type_!r}; expected one of {', '.join(LOCATION_TYPES)}.")
    with _keeper() as keeper:
        try:
            location = keeper.add_location(name, LOCATION_TYPES[type_], str(path.expanduser()))
        except StorageError as exc:
            raise _error(str(exc)) from exc
    typer.secho(f"Added storage location {location.id}.", fg=typer.colors.BLUE)


@locations_app.command("list")
def locations_list() -> None:
    """List backup destinations."""

    with _keeper() as keeper:
        rows = keeper.list_locations()
    if not rows:
        typer.echo("No storage locations configured.")
        return
    header = f"{'ID':<8}  {'Name':<16}  {'Type':<14}  {'On':<3}  {'Status':<7}  Path"
    typer.echo(header)
    typer.echo("-" * len(header))
    for location in rows:
        enabled = "yes" if location.enabled else "no"
        typer.echo(
            f"{_short(location.id):<8}  {location.name[:16]:<16}  {location.type.value:<14}  "
            f"{enabled:<3}  {location.sync_status.value:<7}  {location.path}"
        )


def _set_enabled(location_id: str, enabled: bool) -> None:
    with _keeper() as keeper:
        try:
            keeper.set_location_enabled(location_id, enabled)
        except StorageError as exc:
            raise _error(str(exc)) from exc
    typer.secho(f"Storage location {location_id} {'enabled' if enabled else 'disabled'}.", fg=typer.colors.BLUE)


@locations_app.command("enable")
def locations_enable(location_id: str = typer.Argument(...)) -> None:
    """Enable a backup destination."""

    _set_enabled(location_id, True)


@locations_app.command("disable")
def locations_disable(location_id: str = typer.Argument(...)) -> None:
    """Disable a backup destination."""

    _set_enabled(location_id, False)


@locations_app.command("remove")
def locations_remove(location_id: str = typer.Argument(...)) -> None:
    """Remove a backup destination."""

    with _keeper() as keeper:
        try:
            keeper.remove_location(location_id)
        except StorageError as exc:
            raise _error(str(exc)) from exc
    typer.secho(f"Storage location {location_id} removed.", fg=typer.colors.BLUE)


@app.command()
def config(
    library_dir: Optional[str] = typer.Option(None, help="Directory for saved transcript files."),
    mirror_dir: Optional[str] = typer.Option(None, help="Cloud-sync directory for mirror backups."),
    export_format: Optional[str] = typer.Option(None, help="Default format: plaintext, markdown or pdf."),
    source_platform: Optional[str] = typer.Option(None, help="Default source platform label."),
    github_token: Optional[str] = typer.Option(None, help="Token used to publish hashes as GitHub gists."),
    webhook_url: Optional[str] = typer.Option(None, help="Default webhook for hash publication."),
    log_level: Optional[str] = typer.Option(None, help="DEBUG, INFO, WARNING or ERROR."),
    show: bool = typer.Option(False, "--show", help="Display the active configuration."),
) -> None:
    """Update or inspect configuration settings."""

    updates: Dict[str, object] = {
        key: value
        for key, value in {
            "library_dir": library_dir,
            "mirror_dir": mirror_dir,
            "export_format": export_format,
            "source_platform": source_platform,
            "github_token": github_token,
            "webhook_url": webhook_url,
            "log_level": log_level,
        }.items()
        if value is not None
    }

    if show or not updates:
        cfg = _load_config()
        typer.echo(json.dumps(asdict(cfg), indent=2, default=str))
        return

    try:
        config_mod.update_config(**updates)
    except ConfigError as exc:
        raise _error(str(exc)) from exc
    typer.secho("Configuration updated.", fg=typer.colors.BLUE)


@app.command()
def setup() -> None:
    """Run the interactive setup wizard."""

    from .onboarding import run_onboarding

    try:
        run_onboarding()
    except (ConfigError, OSError) as exc:
        raise _error(f"Setup failed: {exc}") from exc


@app.command()
def settings() -> None:
    """Open the interactive settings form."""

    try:
        from .settings_ui import show_settings_ui
    except ImportError as exc:
        raise _error(
            "Missing dependencies for the settings form. Install with `pip install "
            '"chatkeeper[ui]"` or `pip install \'.[ui]\'` if you are using a local checkout.'
        ) from exc

    show_settings_ui()


if __name__ == "__main__":  # pragma: no cover
    app()
