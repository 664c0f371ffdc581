"""
tradeescrow keygen: create a party key.
"""

import sys
from pathlib import Path

import click

from tradeescrow.core.crypto import PartyKey


@click.command(name="keygen")
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing key file.")
def keygen_command(path: str, force: bool) -> None:
    """
    Write a new Ed25519 private key to PATH (PEM) and print its identity.

    The identity is what the escrow uses as seller, buyer or owner.
    """
    key_path = Path(path)
    if key_path.exists() and not force:
        click.echo(f"Refusing to overwrite {key_path} (use --force)", err=True)
        sys.exit(2)

    key = PartyKey.generate()
    key.save(key_path)
    click.echo(key.identity)
