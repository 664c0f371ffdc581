"""
tradeescrow/core/models.py

Trade data model.

A Trade is created once and never removed: it is a permanent audit record
that only moves forward through the lifecycle below.

    Created ──pay──▶ Paid ──mark sent──▶ Sent ──dispute──▶ Dispute
       │               │                  │                   │
     expire          expire          confirm/expire     confirm/resolve/expire
       ▼               ▼                  ▼                   ▼
    Expired         Refunded          Completed     Completed | Refunded
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional


class TradeStatus(IntEnum):
    """Lifecycle states. Integer values are stable and appear in reports."""

    CREATED   = 0
    PAID      = 1
    SENT      = 2
    COMPLETED = 3
    EXPIRED   = 4
    REFUNDED  = 5
    DISPUTE   = 6

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def holds_custody(self) -> bool:
        """True while the buyer's payment sits in custody."""
        return self in CUSTODY_STATUSES


TERMINAL_STATUSES = frozenset({
    TradeStatus.COMPLETED,
    TradeStatus.EXPIRED,
    TradeStatus.REFUNDED,
})

CUSTODY_STATUSES = frozenset({
    TradeStatus.PAID,
    TradeStatus.SENT,
    TradeStatus.DISPUTE,
})


@dataclass
class Trade:
    """
    One escrow agreement between a seller and a buyer.

    amount is the principal in the smallest asset unit.
    buyer, paid_at and sent_at are None until the matching transition.
    Timestamps are Unix seconds.
    """

    trade_id:   int
    seller:     str
    amount:     int
    status:     TradeStatus
    created_at: int
    buyer:      Optional[str] = None
    paid_at:    Optional[int] = None
    sent_at:    Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trade_id":   self.trade_id,
            "seller":     self.seller,
            "buyer":      self.buyer,
            "amount":     self.amount,
            "status":     self.status.name,
            "created_at": self.created_at,
            "paid_at":    self.paid_at,
            "sent_at":    self.sent_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Trade":
        return cls(
            trade_id=   data["trade_id"],
            seller=     data["seller"],
            amount=     data["amount"],
            status=     TradeStatus[data["status"]],
            created_at= data["created_at"],
            buyer=      data.get("buyer"),
            paid_at=    data.get("paid_at"),
            sent_at=    data.get("sent_at"),
        )
