"""
tradeescrow/cli/__init__.py

tradeescrow CLI: root Click command group.

Registered in pyproject.toml as:

    [project.scripts]
    tradeescrow = "tradeescrow.cli:cli"

Adding a new command:
    1. Create tradeescrow/cli/your_command.py with a @click.command()
    2. Import it here
    3. cli.add_command(your_command)
"""

import logging

import click

from tradeescrow.cli.keygen import keygen_command
from tradeescrow.cli.status import fees_command, status_command
from tradeescrow.cli.verify import verify_command


@click.group()
@click.version_option(package_name="tradeescrow")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def cli(log_level: str) -> None:
    """
    tradeescrow: inspect escrow journals and manage party keys.

    \b
    Commands:
      verify    Verify a journal chain and signatures.
      status    Show one trade as rebuilt from a journal.
      fees      Show the accumulated fee balance.
      keygen    Create a party key and print its identity.
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


cli.add_command(verify_command)
cli.add_command(status_command)
cli.add_command(fees_command)
cli.add_command(keygen_command)
