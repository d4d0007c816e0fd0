from __future__ import annotations

import sys
from typing import Optional

import typer

from har_ingest.archive.syncer import ArchiveSyncer
from har_ingest.config import ArchiveConfig, get_settings, load_archive_config
from har_ingest.domain.models import DEFAULT_CATEGORIES, Category, LedgerRange, Network
from har_ingest.errors import ConfigError, HarIngestError, InvalidRange, SyncToolError
from har_ingest.infrastructure.db_factory import build_dsn
from har_ingest.infrastructure.record_store import PostgresRecordStore
from har_ingest.ingest import run_ingestion
from har_ingest.reporter import print_report
from har_ingest.utils.logging import configure_logging, get_logger

app = typer.Typer(help="Stellar history archive ingestion CLI.")

log = get_logger(__name__)

CONFIG_HELP = "Configuration - see the example in har_ingest.config for a template."


def _setup_logging() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


def _load_config(path: Optional[str]) -> ArchiveConfig:
    if not path:
        typer.echo("Provide a configuration file with --config.", err=True)
        raise typer.Exit(code=1)
    try:
        return load_archive_config(path)
    except ConfigError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc


def _resolve_range(single: Optional[int], ledger_range: Optional[str]) -> LedgerRange:
    if single is not None and ledger_range is not None:
        raise typer.BadParameter(
            "Specify either a single ledger (--single) OR a range (--range) but not both."
        )
    if single is None and ledger_range is None:
        raise typer.BadParameter("Specify a single ledger (--single) or a range (--range).")
    try:
        if single is not None:
            return LedgerRange.single(single)
        return LedgerRange.parse(ledger_range)
    except InvalidRange as exc:
        raise typer.BadParameter(str(exc)) from exc


def _syncer(archive_config: ArchiveConfig, network: Network) -> ArchiveSyncer:
    settings = get_settings()
    try:
        archive = archive_config.network(network)
    except ConfigError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    return ArchiveSyncer(
        local_path=archive.local_path,
        remote_path=archive.remote_path,
        tool_path=archive_config.archivist_tool_path or settings.archivist_tool_path,
    )


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"ledgers_per_batch={settings.ledgers_per_batch} "
        f"(checkpoints={settings.checkpoints_per_batch}) workers={settings.decode_workers} | "
        f"archivist={settings.archivist_tool_path} sync_every={settings.sync_interval_minutes}m"
    )


@app.command()
def ingest(
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_HELP),
    network: Network = typer.Option(..., "--network", "-n", help="Network to ingest."),
    single: Optional[int] = typer.Option(None, "--single", "-s", help="Import a single ledger."),
    ledger_range: Optional[str] = typer.Option(
        None, "--range", "-r", help='Import a range of ledgers in the form "from:to" (eg. "1:99999").'
    ),
    category: Optional[Category] = typer.Option(
        None,
        "--type",
        "-t",
        help="Ingest only the given type. By default ingest ledger, transactions and results.",
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", "--dryrun", "-d", help="Read files but don't insert into the database."
    ),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", min=1, help="Processes used to decode the files of a batch."
    ),
) -> None:
    """
    Load archive files for a ledger or ledger range into the database.
    """
    _setup_logging()
    requested = _resolve_range(single, ledger_range)
    archive_config = _load_config(config)
    try:
        archive = archive_config.network(network)
    except ConfigError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc

    categories = [category] if category else list(DEFAULT_CATEGORIES)
    store = None if dry_run else PostgresRecordStore(dsn=build_dsn(override=archive_config.db))
    try:
        report = run_ingestion(
            requested,
            root_dir=archive.local_path,
            categories=categories,
            store=store,
            dry_run=dry_run,
            decode_workers=workers,
        )
    except HarIngestError as exc:
        log.error(f"Failure ingesting: {exc}")
        raise typer.Exit(code=1) from exc
    finally:
        if store is not None:
            store.close()

    print_report(report)
    if not report.ok:
        raise typer.Exit(code=1)


@app.command()
def sync(
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_HELP),
    network: Network = typer.Option(..., "--network", "-n", help="Network to sync."),
    exit_after: bool = typer.Option(
        False,
        "--exit",
        "-e",
        help="Exit after syncing the latest files. By default syncing continues indefinitely.",
    ),
) -> None:
    """
    Mirror the remote archive into the local archive directory.
    """
    _setup_logging()
    syncer = _syncer(_load_config(config), network)

    if exit_after:
        try:
            exit_code = syncer.sync_once()
        except SyncToolError as exc:
            log.error(f"Sync failed: {exc}")
            raise typer.Exit(code=exc.exit_code or 1) from exc
        raise typer.Exit(code=exit_code or 0)

    settings = get_settings()
    syncer.run_forever(interval_seconds=settings.sync_interval_minutes * 60)


@app.command()
def status(
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_HELP),
    network: Network = typer.Option(..., "--network", "-n", help="Network to inspect."),
) -> None:
    """
    Show the latest checkpoint of the local and the remote archive.
    """
    _setup_logging()
    syncer = _syncer(_load_config(config), network)
    try:
        local = syncer.status_local()
        remote = syncer.status_remote()
    except SyncToolError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=exc.exit_code or 1) from exc
    typer.echo(f"local={local} remote={remote} behind={max(remote - local, 0)}")


@app.command("init-db")
def init_db(
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_HELP),
) -> None:
    """
    Create the per-category tables if they do not exist.
    """
    _setup_logging()
    override = _load_config(config).db if config else None
    store = PostgresRecordStore(dsn=build_dsn(override=override))
    try:
        store.create_schema()
    except HarIngestError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    finally:
        store.close()
    typer.echo("Tables ready: " + ", ".join(c.value for c in Category))


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
