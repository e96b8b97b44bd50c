# Overview: Flask CLI command groups for store bootstrap, sync and stock maintenance.

# backend/offline_pos/cli.py
# Commands Legend:
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP=offline_pos (PowerShell: $env:FLASK_APP="offline_pos").
# - Use: python -m flask <group> <command> [options]
#
# Local store:
# - python -m flask store init
#   Idempotent: create the local tables if missing.
# - python -m flask store stats
#   Record and pending-sync counts per collection.
#
# Sync:
# - python -m flask sync run
#   Run one sync cycle now (no-op success when REMOTE_STORE_URL is unset).
# - python -m flask sync status
#   Print online/pending/last-sync status.
# - python -m flask sync watch
#   Foreground: probe connectivity and sync periodically until Ctrl+C.
#
# Sales:
# - python -m flask sales reconcile
#   Apply stock for sales left pending by an interrupted checkout.

import asyncio
import time

import click
from flask import current_app
from flask.cli import with_appcontext

from .services.background_sync import BackgroundSync
from .services.container import get_services
from .services.local_store import collection_stats
from .services.sales_repository import SaleError


@click.group('store')
def store_group():
    """Local store commands."""


@store_group.command('init')
@with_appcontext
def init_store():
    """Create the local store tables (safe to repeat)."""
    services = get_services()
    services.store.init()
    click.echo("PASS Local store initialized")


@store_group.command('stats')
@with_appcontext
def store_stats():
    """Show record counts per collection."""
    for name, stats in collection_stats(get_services().store).items():
        click.echo(f"{name:<20} records={stats['records']:<6} pending={stats['pending']}")


@click.group('sync')
def sync_group():
    """Remote synchronization commands."""


@sync_group.command('run')
@with_appcontext
def run_sync():
    """Run one sync cycle now."""
    services = get_services()

    async def _cycle():
        try:
            if services.remote is not None:
                await services.connectivity.probe()
            return await services.sync.sync_all()
        finally:
            await services.sync.release_remote()

    result = asyncio.run(_cycle())
    if not result.started:
        click.echo(f"WARN  {result.message}")
        return
    if not result.success:
        click.echo(f"FAIL {result.message}")
        raise SystemExit(1)

    click.echo(f"PASS {result.message}")
    click.echo(
        f"   products  up={result.products_uploaded} down={result.products_downloaded}"
        f" skipped={result.skipped_remote_records}"
    )
    click.echo(f"   sales     up={result.sales_uploaded}")
    click.echo(f"   changes   up={result.inventory_changes_uploaded}")


@sync_group.command('status')
@with_appcontext
def sync_status():
    """Print the current sync status."""
    engine = get_services().sync
    status = engine.get_sync_status()
    click.echo(f"Status:        {engine.status_text()}")
    click.echo(f"Remote:        {'configured' if engine.remote_configured else 'local-only'}")
    click.echo(f"Auto sync:     {'on' if status.auto_sync else 'off'}")
    click.echo(f"Unsynced:      {engine.unsynced_text() or 'none'}")
    if status.last_sync_error:
        click.echo(f"Last error:    {status.last_sync_error}")


@sync_group.command('watch')
@with_appcontext
def watch_sync():
    """Probe connectivity and sync periodically until interrupted."""
    services = get_services()
    if services.remote is None:
        click.echo("WARN  REMOTE_STORE_URL is not set; nothing to watch")
        return

    app = current_app._get_current_object()
    worker = BackgroundSync(
        app,
        services.sync,
        services.connectivity,
        interval_minutes=app.config["BACKGROUND_SYNC_INTERVAL_MINUTES"],
        probe_seconds=app.config["CONNECTIVITY_PROBE_SECONDS"],
    )
    worker.start()
    click.echo("START Background sync running (Ctrl+C to stop)")
    try:
        while worker.running:
            time.sleep(1)
    except KeyboardInterrupt:
        click.echo("\nSTOP Shutting down background sync")
    finally:
        worker.stop(timeout=5)


@click.group('sales')
def sales_group():
    """Sales maintenance commands."""


@sales_group.command('reconcile')
@with_appcontext
def reconcile_sales():
    """Apply stock for sales left pending by an interrupted checkout."""
    try:
        reconciled = get_services().sales.reconcile_pending_sales()
    except SaleError as e:
        click.echo(f"FAIL Sale {e.sale_id}: {e}")
        raise SystemExit(1)
    if not reconciled:
        click.echo("PASS No pending sales")
        return
    for sale_id in reconciled:
        click.echo(f"PASS Reconciled sale {sale_id}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(store_group)
    app.cli.add_command(sync_group)
    app.cli.add_command(sales_group)
