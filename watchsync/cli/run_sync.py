# watchsync/cli/run_sync.py
import asyncio
import sys

import click

from watchsync.core.config import get_settings
from watchsync.core.enums import CycleOutcome
from watchsync.core.logging_config import configure_logging
from watchsync.database import dispose_engine
from watchsync.integrations.setup import build_orchestrator, close_orchestrator, configured_channels


def _print_summary(summary):
    click.echo(summary.describe())
    for failure in summary.failed:
        click.echo(f"  FAILED {failure.kind.value} {failure.sku}: {failure.error}")
    if summary.abort_reason:
        click.echo(f"  Reason: {summary.abort_reason}")


def _exit_code(summary) -> int:
    if summary.outcome in (CycleOutcome.ABORTED, CycleOutcome.FEED_DOWN):
        return 2
    return 1 if summary.failed else 0


async def _run(channel, sku=None):
    orchestrator = build_orchestrator(channels=[channel])
    try:
        if sku:
            return await orchestrator.run_single_sku(channel, sku)
        return await orchestrator.run_cycle(channel)
    finally:
        await close_orchestrator(orchestrator)
        await dispose_engine()


@click.group()
@click.option('--log-level', default=None, help='Override LOG_LEVEL')
def cli(log_level):
    """Reconcile the inventory feed with sales channels"""
    configure_logging(log_level)


@cli.command()
@click.argument('channel')
def cycle(channel):
    """Run one full reconciliation cycle for CHANNEL"""
    summary = asyncio.run(_run(channel))
    _print_summary(summary)
    sys.exit(_exit_code(summary))


@cli.command()
@click.argument('channel')
@click.argument('sku')
def sku(channel, sku):
    """Reconcile a single SKU on CHANNEL (no safety guard)"""
    summary = asyncio.run(_run(channel, sku))
    _print_summary(summary)
    sys.exit(_exit_code(summary))


@cli.command()
def channels():
    """List the channels this deployment is configured for"""
    for name in configured_channels(get_settings()):
        click.echo(name)


if __name__ == "__main__":
    cli()
