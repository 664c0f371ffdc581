"""
tradeescrow status / fees: report ledger state rebuilt from a journal.
"""

import sys

import click

from tradeescrow.cli.common import load_snapshot
from tradeescrow.core.time import format_unix
from tradeescrow.transfer.memory import format_units

_units_options = [
    click.option("--decimals", type=int, default=6, show_default=True,
                 help="Asset decimals used to format amounts."),
    click.option("--symbol", type=str, default="USDC", show_default=True,
                 help="Asset symbol used to format amounts."),
]


def _with_units(func):
    for option in reversed(_units_options):
        func = option(func)
    return func


@click.command(name="status")
@click.argument("journal", type=click.Path(exists=False))
@click.argument("trade_id", type=int)
@_with_units
def status_command(journal: str, trade_id: int, decimals: int, symbol: str) -> None:
    """
    Show trade TRADE_ID as recorded in JOURNAL.

    Exit code 1 if the trade is not in the journal.
    """
    snapshot = load_snapshot(journal)
    trade    = snapshot.trades.get(trade_id)
    if trade is None:
        click.echo(f"Trade #{trade_id} not found", err=True)
        sys.exit(1)

    click.echo(f"Trade #{trade.trade_id}")
    click.echo(f"- Seller:     {trade.seller}")
    click.echo(f"- Buyer:      {trade.buyer or 'Not set'}")
    click.echo(f"- Amount:     {format_units(trade.amount, decimals)} {symbol}")
    click.echo(f"- Created At: {format_unix(trade.created_at)}")
    click.echo(f"- Paid At:    {format_unix(trade.paid_at) if trade.paid_at is not None else 'Not paid'}")
    click.echo(f"- Sent At:    {format_unix(trade.sent_at) if trade.sent_at is not None else 'Not sent'}")
    click.echo(f"- Status:     {trade.status.label}")


@click.command(name="fees")
@click.argument("journal", type=click.Path(exists=False))
@_with_units
def fees_command(journal: str, decimals: int, symbol: str) -> None:
    """Show the fee balance accumulated in JOURNAL and not yet withdrawn."""
    snapshot = load_snapshot(journal)
    click.echo(f"Fee balance: {format_units(snapshot.fee_balance, decimals)} {symbol}")
    click.echo(f"Collected:   {format_units(snapshot.fees_collected, decimals)} {symbol}")
    click.echo(f"Withdrawn:   {format_units(snapshot.fees_withdrawn, decimals)} {symbol}")
