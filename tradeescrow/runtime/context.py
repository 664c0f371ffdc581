"""
Runtime context: one fully wired escrow deployment.

A file-backed deployment resumes where it stopped: the journal is verified
and folded back into the ledger, and the gateway reloads the request nonces
it accepted inside the freshness window.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from tradeescrow.core.clock import Clock
from tradeescrow.core.crypto import PartyKey
from tradeescrow.core.exceptions import JournalError
from tradeescrow.core.journal import EventJournal
from tradeescrow.core.replay import JournalReplay
from tradeescrow.escrow.engine import EscrowLedger
from tradeescrow.runtime.config import EscrowConfig
from tradeescrow.runtime.gateway import NONCE_LOG_FILENAME, EscrowGateway
from tradeescrow.transfer.service import AssetTransferService

logger = logging.getLogger(__name__)


@dataclass
class RuntimeContext:
    """Ledger, journal, gateway and custodian key for one deployment."""

    config:        EscrowConfig
    custodian_key: PartyKey
    journal:       EventJournal
    ledger:        EscrowLedger
    gateway:       EscrowGateway

    @classmethod
    def from_config(
        cls,
        config_path:   Path,
        asset_factory: Callable[[str, EscrowConfig], AssetTransferService],
        clock:         Optional[Clock] = None,
    ) -> "RuntimeContext":
        """
        Build a deployment from a YAML config file.

        asset_factory receives the custodian identity and the config and
        returns the asset transfer service holding that custody account.
        The custodian key is loaded, or generated and saved on first run.
        """
        config = EscrowConfig.from_yaml(config_path)
        return cls.from_settings(config, asset_factory, clock)

    @classmethod
    def from_settings(
        cls,
        config:        EscrowConfig,
        asset_factory: Callable[[str, EscrowConfig], AssetTransferService],
        clock:         Optional[Clock] = None,
    ) -> "RuntimeContext":
        """
        Raises JournalError if an existing journal fails verification or
        cannot be folded back into ledger state.
        """
        logging.getLogger("tradeescrow").setLevel(config.log_level)

        if config.custodian_key.exists():
            key = PartyKey.from_file(config.custodian_key)
        else:
            key = PartyKey.generate()
            key.save(config.custodian_key)
            logger.info("Generated custodian key at %s", config.custodian_key)

        journal = EventJournal(
            key,
            str(config.journal_dir) if config.journal_dir else None,
        )
        asset  = asset_factory(key.identity, config)
        ledger = EscrowLedger(owner=config.owner, asset=asset, clock=clock, journal=journal)

        nonce_log = None
        if journal.path is not None:
            if journal.path.exists():
                _resume_ledger(ledger, journal.path)
            nonce_log = config.journal_dir / NONCE_LOG_FILENAME

        return cls(
            config=        config,
            custodian_key= key,
            journal=       journal,
            ledger=        ledger,
            gateway=       EscrowGateway(ledger, nonce_log=nonce_log),
        )

    def __repr__(self) -> str:
        return (
            f"RuntimeContext("
            f"custodian={self.custodian_key.identity[:16]}..., "
            f"trades={self.ledger.next_trade_id - 1})"
        )


def _resume_ledger(ledger: EscrowLedger, journal_path: Path) -> None:
    replay = JournalReplay()
    try:
        replay.load(journal_path)
        summary = replay.verify()
        if not summary.valid:
            raise JournalError(
                f"Journal {journal_path} failed verification; refusing to resume",
                {"violations": len(summary.violations), "first": summary.violations[0].violation_type},
            )
        snapshot = replay.rebuild()
    except ValueError as exc:
        raise JournalError(
            f"Cannot rebuild ledger from {journal_path}", {"error": exc},
        ) from exc

    ledger.restore(snapshot.trades.values(), snapshot.fee_balance)
    if not ledger.check_conservation():
        logger.warning(
            "Resumed ledger expects %d in custody but the asset service holds %d",
            ledger.custody_obligations(), ledger.asset.custody_balance(),
        )
