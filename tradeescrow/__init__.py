"""
tradeescrow: two-party escrow settlement engine

A seller and a buyer trade a fungible asset balance through a neutral
custodian that holds funds until delivery is confirmed, a dispute is
resolved, or a 12-hour deadline lapses.
"""

__version__ = "0.1.0"

from tradeescrow.core.clock import Clock, ManualClock, SystemClock
from tradeescrow.core.crypto import PartyKey
from tradeescrow.core.exceptions import (
    AuthorizationError,
    EscrowError,
    PreconditionError,
    TransferError,
    ValidationError,
)
from tradeescrow.core.journal import EventJournal
from tradeescrow.core.models import Trade, TradeStatus
from tradeescrow.core.records import EventRecord, RecordType
from tradeescrow.escrow import EscrowLedger
from tradeescrow.transfer import AssetTransferService, InMemoryAsset

__all__ = [
    # Ledger
    "EscrowLedger",
    "Trade",
    "TradeStatus",
    # Collaborators
    "AssetTransferService",
    "InMemoryAsset",
    "Clock",
    "SystemClock",
    "ManualClock",
    "PartyKey",
    # Records
    "EventJournal",
    "EventRecord",
    "RecordType",
    # Errors
    "EscrowError",
    "ValidationError",
    "AuthorizationError",
    "PreconditionError",
    "TransferError",
]
