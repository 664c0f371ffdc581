"""
tradeescrow Escrow Ledger

The per-trade escrow protocol:
- Trades move Created → Paid → Sent → Completed, or out via dispute/timeout
- Custody always equals in-flight buyer payments plus uncollected fees
- Every transition is all-or-nothing across its status change and transfer
"""

from tradeescrow.escrow.engine import EscrowLedger, TIMEOUT_SECONDS
from tradeescrow.escrow.fees import (
    FEE_BPS,
    buyer_obligation,
    fee_amount,
    seller_payout,
    settlement_fee,
)

__all__ = [
    "EscrowLedger",
    "TIMEOUT_SECONDS",
    "FEE_BPS",
    "fee_amount",
    "buyer_obligation",
    "seller_payout",
    "settlement_fee",
]
