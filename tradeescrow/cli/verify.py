"""
tradeescrow/cli/verify.py

tradeescrow verify: journal verification.

Usage:
    tradeescrow verify <journal>                       Human output (default)
    tradeescrow verify <journal> --format json         Machine-readable JSON
    tradeescrow verify <journal> --export report.json  Export full audit report
    tradeescrow verify <journal> --quiet               Exit code only

Exit codes:
    0  Journal fully valid  (chain + signatures + schema)
    1  Journal has violations
    2  Error  (file missing, malformed JSON, parse failure)
"""

import json
import sys
from pathlib import Path
from typing import Optional

import click

from tradeescrow.cli.common import resolve_journal
from tradeescrow.core.replay import JournalReplay, ReplaySummary


@click.command(name="verify")
@click.argument("journal", type=click.Path(exists=False))
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
    help="Output format.",
)
@click.option(
    "--export", "export_path",
    type=click.Path(),
    default=None,
    metavar="PATH",
    help="Export full audit report to a JSON file.",
)
@click.option(
    "--quiet",
    is_flag=True,
    default=False,
    help="Suppress all output. Use exit code only (0=valid, 1=invalid, 2=error).",
)
def verify_command(journal: str, fmt: str, export_path: Optional[str], quiet: bool) -> None:
    """
    Verify an escrow journal (sequence, hash chain, nonces, signatures).

    JOURNAL is a journal.jsonl file or the directory holding it.
    """
    replay = JournalReplay()
    try:
        replay.load(resolve_journal(journal))
        summary = replay.verify()
    except (FileNotFoundError, ValueError) as e:
        _emit_error(str(e), fmt, quiet)
        sys.exit(2)

    if export_path:
        replay.export_json(Path(export_path))

    if quiet:
        sys.exit(0 if summary.valid else 1)

    if fmt == "json":
        click.echo(json.dumps(_summary_dict(summary, replay.source), indent=2))
    else:
        _output_human(summary, replay.source)

    sys.exit(0 if summary.valid else 1)


def _summary_dict(summary: ReplaySummary, source: str) -> dict:
    return {
        "journal":            source,
        "valid":              summary.valid,
        "total_records":      summary.total_records,
        "valid_signatures":   summary.valid_signatures,
        "invalid_signatures": summary.invalid_signatures,
        "signer":             summary.signer,
        "record_type_counts": summary.record_type_counts,
        "violations": [
            {
                "at_sequence":    v.at_sequence,
                "violation_type": v.violation_type,
                "detail":         v.detail,
            }
            for v in summary.violations
        ],
    }


def _output_human(summary: ReplaySummary, source: str) -> None:
    click.echo(f"Journal     : {source}")
    click.echo(f"Records     : {summary.total_records}")
    click.echo(f"Signer      : {summary.signer or '-'}")
    click.echo(f"Signatures  : {summary.valid_signatures} valid, {summary.invalid_signatures} invalid")
    for record_type, count in sorted(summary.record_type_counts.items()):
        click.echo(f"  {record_type:<16} {count}")

    if summary.valid:
        click.echo("Result      : VALID")
        return

    click.echo(f"Result      : {len(summary.violations)} VIOLATION(S)")
    for v in summary.violations:
        click.echo(f"  [seq {v.at_sequence:04d}] {v.violation_type.upper():<18} {v.detail}")


def _emit_error(message: str, fmt: str, quiet: bool) -> None:
    if quiet:
        return
    if fmt == "json":
        click.echo(json.dumps({"error": message}))
    else:
        click.echo(f"Error: {message}", err=True)
