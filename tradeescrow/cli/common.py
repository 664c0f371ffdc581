"""
Helpers shared by CLI commands.
"""

import sys
from pathlib import Path

import click

from tradeescrow.core.journal import JOURNAL_FILENAME
from tradeescrow.core.replay import JournalReplay, LedgerSnapshot


def resolve_journal(path: str) -> Path:
    """Accept either the journal file or the journal directory."""
    journal = Path(path)
    if journal.is_dir():
        return journal / JOURNAL_FILENAME
    return journal


def load_snapshot(path: str) -> LedgerSnapshot:
    """Load and rebuild a journal, exiting with code 2 on any load error."""
    replay = JournalReplay()
    try:
        replay.load(resolve_journal(path))
        return replay.rebuild()
    except (FileNotFoundError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)
