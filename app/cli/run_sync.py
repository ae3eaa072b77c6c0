# app/cli/run_sync.py
"""
Run one sync pass from the command line, outside the API process.

    python -m app.cli.run_sync inventory --channel AMAZON --auto-correct
    python -m app.cli.run_sync orders --since 2024-01-01T00:00:00
"""

import asyncio
import logging
from datetime import datetime

import click

from app.core.config import get_settings
from app.core.enums import ChannelName
from app.core.exceptions import CatalogReadError
from app.core.logging_config import configure_logging
from app.integrations.setup import build_channel_adapters
from app.main import build_coordinator

logger = logging.getLogger(__name__)

CHANNEL_CHOICES = click.Choice([c.value for c in ChannelName.external()], case_sensitive=False)


def _coordinator():
    from app.database import async_session

    settings = get_settings()
    return build_coordinator(settings, async_session, build_channel_adapters(settings))


def _channels(values):
    return [ChannelName(v.upper()) for v in values] or None


@click.group()
@click.option('--log-level', default=None, help='Override LOG_LEVEL')
def cli(log_level):
    """Channel inventory sync commands"""
    configure_logging(log_level)


@cli.command()
@click.option('--channel', 'channels', multiple=True, type=CHANNEL_CHOICES, help='Channel to check (repeatable)')
@click.option('--auto-correct', is_flag=True, help='Push local quantities for every discrepancy')
def inventory(channels, auto_correct):
    """Reconcile local stock against the marketplaces"""
    start_time = datetime.now()
    logger.info(f"Starting inventory sync at {start_time}")

    try:
        run = asyncio.run(_coordinator().trigger_sync(_channels(channels), auto_correct=auto_correct))
    except CatalogReadError as e:
        logger.exception("Error during inventory sync")
        raise click.ClickException(str(e))

    click.echo(f"\nSync {run.sync_id} completed in {run.duration_seconds:.1f}s")
    click.echo(f"Products checked: {run.total_products}")
    for channel, result in run.channels.items():
        click.echo(
            f"  {channel.value}: synced={result.synced} skipped={result.skipped} "
            f"errors={result.errors} discrepancies={len(result.discrepancies)}"
        )
    for error in run.errors:
        click.echo(f"  ! {error.channel.value} {error.sku or ''} {error.message}")
    if run.audit_failures:
        click.echo(f"  ! {len(run.audit_failures)} correction(s) applied without an audit row")


@cli.command()
@click.option('--channel', 'channels', multiple=True, type=CHANNEL_CHOICES, help='Channel to pull (repeatable)')
@click.option('--since', type=click.DateTime(), default=None, help='Pull orders created after this time')
def orders(channels, since):
    """Pull recent marketplace orders"""
    result = asyncio.run(_coordinator().trigger_order_sync(_channels(channels), since=since))

    click.echo("\nOrder sync completed!")
    click.echo(f"New orders: {result.synced}")
    click.echo(f"Already recorded: {result.skipped}")
    click.echo(f"Errors: {result.errors}")
    for error in result.error_entries:
        click.echo(f"  ! {error.channel.value} {error.message}")


if __name__ == "__main__":
    cli()
