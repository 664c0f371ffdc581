"""
Asset transfer capability consumed by the escrow ledger.
"""

from tradeescrow.transfer.memory import InMemoryAsset, format_units
from tradeescrow.transfer.service import AssetTransferService

__all__ = ["AssetTransferService", "InMemoryAsset", "format_units"]
