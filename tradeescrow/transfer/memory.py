"""
In-memory fungible asset.

Behaves like a token contract with mint/approve/allowance, which is what the
escrow expects from a real asset ledger: a buyer must approve the custodian
before the custodian can pull payment. Used for tests, simulations and demos.
"""

import logging
import threading
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Tuple

from tradeescrow.core.exceptions import TransferError, ValidationError
from tradeescrow.transfer.service import AssetTransferService

logger = logging.getLogger(__name__)


class InMemoryAsset(AssetTransferService):

    def __init__(self, custodian: str, symbol: str = "USDC", decimals: int = 6):
        self.custodian = custodian
        self.symbol    = symbol
        self.decimals  = decimals

        self._lock:        threading.Lock               = threading.Lock()
        self._balances:    Dict[str, int]               = defaultdict(int)
        self._allowances:  Dict[Tuple[str, str], int]   = defaultdict(int)
        self.total_supply: int                          = 0

    # ── Units ─────────────────────────────────────────────────

    def parse_units(self, value) -> int:
        """'100' or 100 → 100 * 10**decimals smallest units."""
        scaled = Decimal(str(value)).scaleb(self.decimals)
        if scaled != scaled.to_integral_value():
            raise ValidationError(
                f"{value} has more than {self.decimals} decimal places"
            )
        return int(scaled)

    def format_units(self, amount: int) -> str:
        return format_units(amount, self.decimals)

    # ── Token surface ─────────────────────────────────────────

    def mint(self, party: str, amount: int) -> None:
        _require_positive(amount)
        with self._lock:
            self._balances[party] += amount
            self.total_supply     += amount

    def approve(self, owner: str, spender: str, amount: int) -> None:
        if amount < 0:
            raise ValidationError("allowance cannot be negative", {"amount": amount})
        with self._lock:
            self._allowances[(owner, spender)] = amount

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances[(owner, spender)]

    def balance_of(self, party: str) -> int:
        return self._balances[party]

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        _require_positive(amount)
        with self._lock:
            self._move(sender, recipient, amount)

    # ── AssetTransferService ──────────────────────────────────

    def debit(self, party: str, amount: int) -> None:
        _require_positive(amount)
        with self._lock:
            allowed = self._allowances[(party, self.custodian)]
            if allowed < amount:
                logger.warning(
                    "Debit of %d from %s rejected: allowance %d", amount, party[:16], allowed,
                )
                raise TransferError(
                    "Insufficient allowance",
                    {"party": party[:16], "needed": amount, "allowance": allowed},
                )
            self._move(party, self.custodian, amount)
            self._allowances[(party, self.custodian)] = allowed - amount

    def credit(self, party: str, amount: int) -> None:
        _require_positive(amount)
        with self._lock:
            self._move(self.custodian, party, amount)

    # ── Internal ──────────────────────────────────────────────

    def _move(self, sender: str, recipient: str, amount: int) -> None:
        available = self._balances[sender]
        if available < amount:
            logger.warning(
                "Transfer of %d from %s rejected: balance %d", amount, sender[:16], available,
            )
            raise TransferError(
                "Insufficient balance",
                {"party": sender[:16], "needed": amount, "balance": available},
            )
        self._balances[sender]    -= amount
        self._balances[recipient] += amount


def format_units(amount: int, decimals: int) -> str:
    """100_000000 with 6 decimals → '100.0'."""
    value = Decimal(amount).scaleb(-decimals)
    text  = f"{value:f}"
    if "." not in text:
        return text + ".0"
    text = text.rstrip("0")
    return text + "0" if text.endswith(".") else text


def _require_positive(amount) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise ValidationError("amount must be a positive integer", {"amount": amount})
