"""
Escrow Ledger.

Owns the trade table and the accumulated fee balance, and is the only code
allowed to move custodied value. Each mutating operation runs under one
ledger-wide lock, checks everything it needs, performs at most one external
transfer, and only then commits its state change and emits its records.
A rejected check or a failed transfer therefore leaves nothing behind.

Conservation law, after every operation:

    asset.custody_balance() ==
        fee_balance + Σ buyer_obligation(t.amount) for t in Paid/Sent/Dispute
"""

import dataclasses
import logging
import threading
from typing import Dict, Iterable, List, Optional

from tradeescrow.core.clock import Clock, SystemClock
from tradeescrow.core.crypto import PartyKey, is_identity
from tradeescrow.core.exceptions import (
    AuthorizationError,
    DeadlineNotReachedError,
    PreconditionError,
    TradeNotFoundError,
    ValidationError,
)
from tradeescrow.core.journal import EventJournal
from tradeescrow.core.models import Trade, TradeStatus
from tradeescrow.core.records import RecordType
from tradeescrow.escrow.fees import (
    buyer_obligation,
    seller_payout,
    settlement_fee,
)
from tradeescrow.transfer.service import AssetTransferService

logger = logging.getLogger(__name__)

TIMEOUT_SECONDS = 12 * 60 * 60

REASON_CONFIRMED   = "confirmed"
REASON_ARBITRATION = "arbitration"
REASON_TIMEOUT     = "timeout"


class EscrowLedger:
    """
    Two-party escrow between a seller and a buyer, with the owner acting as
    arbiter and fee recipient.

    Every mutating call names its caller identity explicitly. Whoever pays a
    trade becomes its buyer, once.
    """

    MUTATING_OPERATIONS = frozenset({
        "create_trade",
        "pay_trade",
        "mark_as_sent",
        "dispute_trade",
        "confirm_reception",
        "resolve_dispute",
        "expire_trade",
        "withdraw_fees",
    })

    def __init__(
        self,
        owner:   str,
        asset:   AssetTransferService,
        clock:   Optional[Clock] = None,
        journal: Optional[EventJournal] = None,
    ):
        _require_identity(owner, "owner")
        _require_identity(asset.custodian, "custodian")

        self.owner   = owner
        self.asset   = asset
        self.clock   = clock or SystemClock()
        self.journal = journal or EventJournal(PartyKey.generate())

        self._lock:          threading.Lock  = threading.Lock()
        self._trades:        Dict[int, Trade] = {}
        self._next_trade_id: int             = 1
        self._fee_balance:   int             = 0

    @property
    def custodian(self) -> str:
        return self.asset.custodian

    # ── Queries ───────────────────────────────────────────────

    @property
    def fee_balance(self) -> int:
        return self._fee_balance

    @property
    def next_trade_id(self) -> int:
        return self._next_trade_id

    def get_trade(self, trade_id: int) -> Trade:
        """Return a copy of the trade. Raises TradeNotFoundError."""
        return dataclasses.replace(self._get(trade_id))

    def trades(self, status: Optional[TradeStatus] = None) -> List[Trade]:
        return [
            dataclasses.replace(t)
            for t in self._trades.values()
            if status is None or t.status == status
        ]

    def custody_obligations(self) -> int:
        """What custody must hold: every in-flight buyer payment plus fees."""
        return self._fee_balance + sum(
            buyer_obligation(t.amount)
            for t in self._trades.values()
            if t.status.holds_custody
        )

    def check_conservation(self) -> bool:
        return self.asset.custody_balance() == self.custody_obligations()

    # ── Restore ───────────────────────────────────────────────

    def restore(self, trades: Iterable[Trade], fee_balance: int) -> None:
        """
        Seed a fresh ledger with state rebuilt from its journal, so trade ids
        keep increasing and collected fees stay withdrawable across restarts.
        Raises PreconditionError if this ledger has already recorded trades.
        """
        with self._lock:
            if self._trades or self._fee_balance:
                raise PreconditionError("Ledger already holds state; restore needs a fresh ledger")
            if fee_balance < 0:
                raise ValidationError("fee balance cannot be negative", {"fee_balance": fee_balance})

            for trade in trades:
                self._trades[trade.trade_id] = dataclasses.replace(trade)
            self._next_trade_id = max(self._trades, default=0) + 1
            self._fee_balance   = fee_balance

            logger.info(
                "Restored %d trade(s), next id %d, fee balance %d",
                len(self._trades), self._next_trade_id, fee_balance,
            )

    # ── Lifecycle ─────────────────────────────────────────────

    def create_trade(self, caller: str, amount: int) -> Trade:
        """Open a trade for amount. The caller becomes the seller."""
        _require_identity(caller, "caller")
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise ValidationError("Trade amount must be a positive integer", {"amount": amount})

        with self._lock:
            trade = Trade(
                trade_id=   self._next_trade_id,
                seller=     caller,
                amount=     amount,
                status=     TradeStatus.CREATED,
                created_at= self.clock.now(),
            )
            self._trades[trade.trade_id] = trade
            self._next_trade_id += 1

            logger.info("Trade %d created by %s for %d", trade.trade_id, caller[:16], amount)
            self.journal.emit(RecordType.TRADE_CREATED, {
                "trade_id":   trade.trade_id,
                "seller":     trade.seller,
                "amount":     trade.amount,
                "created_at": trade.created_at,
            })
            return dataclasses.replace(trade)

    def pay_trade(self, caller: str, trade_id: int) -> Trade:
        """
        Pull amount + fee from the caller into custody. The caller becomes
        the buyer. Fails with TransferError, and leaves the trade Created,
        if the caller has not funded or approved enough.
        """
        with self._lock:
            trade = self._get(trade_id)
            _require_identity(caller, "caller")
            _require_status(trade, "pay_trade", TradeStatus.CREATED)
            if trade.buyer is not None:
                raise PreconditionError("Buyer already assigned", {"trade_id": trade_id})

            total = buyer_obligation(trade.amount)
            self.asset.debit(caller, total)

            trade.buyer   = caller
            trade.paid_at = self.clock.now()
            trade.status  = TradeStatus.PAID

            logger.info("Trade %d paid by %s (%d into custody)", trade_id, caller[:16], total)
            self._emit_status(trade, RecordType.TRADE_PAID, buyer=caller, paid_at=trade.paid_at)
            self._emit_transfer(trade_id, caller, self.custodian, total)
            return dataclasses.replace(trade)

    def mark_as_sent(self, caller: str, trade_id: int) -> Trade:
        with self._lock:
            trade = self._get(trade_id)
            _require_party(caller, trade.seller, "seller", trade_id)
            _require_status(trade, "mark_as_sent", TradeStatus.PAID)

            trade.sent_at = self.clock.now()
            trade.status  = TradeStatus.SENT

            logger.info("Trade %d marked as sent", trade_id)
            self._emit_status(trade, RecordType.TRADE_SENT, sent_at=trade.sent_at)
            return dataclasses.replace(trade)

    def dispute_trade(self, caller: str, trade_id: int) -> Trade:
        """Buyer flags a delivered trade. Single shot; the Sent clock keeps running."""
        with self._lock:
            trade = self._get(trade_id)
            _require_party(caller, trade.buyer, "buyer", trade_id)
            _require_status(trade, "dispute_trade", TradeStatus.SENT)

            trade.status = TradeStatus.DISPUTE

            logger.info("Trade %d disputed by buyer", trade_id)
            self._emit_status(trade, RecordType.TRADE_DISPUTED)
            return dataclasses.replace(trade)

    def confirm_reception(self, caller: str, trade_id: int) -> Trade:
        """Buyer accepts delivery, even after disputing. Settles to the seller."""
        with self._lock:
            trade = self._get(trade_id)
            _require_party(caller, trade.buyer, "buyer", trade_id)
            _require_status(
                trade, "confirm_reception", TradeStatus.SENT, TradeStatus.DISPUTE,
            )
            self._settle(trade, REASON_CONFIRMED)
            return dataclasses.replace(trade)

    def resolve_dispute(self, caller: str, trade_id: int, favor_buyer: bool) -> Trade:
        """
        Owner arbitration. favor_buyer refunds everything the buyer paid
        and takes no fee; otherwise the trade settles as if confirmed.
        """
        if not isinstance(favor_buyer, bool):
            raise ValidationError("favor_buyer must be a boolean", {"favor_buyer": favor_buyer})

        with self._lock:
            trade = self._get(trade_id)
            _require_party(caller, self.owner, "owner", trade_id)
            _require_status(trade, "resolve_dispute", TradeStatus.DISPUTE)

            if favor_buyer:
                self._refund(trade, REASON_ARBITRATION)
            else:
                self._settle(trade, REASON_ARBITRATION)
            return dataclasses.replace(trade)

    def expire_trade(self, caller: str, trade_id: int) -> Trade:
        """
        Apply whatever the 12h timeout says should have happened by now,
        measured from the timestamp at which the trade entered its stage:

            Created         → Expired    (nothing ever moved)
            Paid            → Refunded   (seller never delivered)
            Sent / Dispute  → Completed  (buyer never confirmed)

        Anyone may call. Raises DeadlineNotReachedError before the window
        has elapsed, PreconditionError for any other status.
        """
        with self._lock:
            trade = self._get(trade_id)
            _require_identity(caller, "caller")
            _require_status(
                trade, "expire_trade",
                TradeStatus.CREATED, TradeStatus.PAID, TradeStatus.SENT, TradeStatus.DISPUTE,
            )

            if trade.status == TradeStatus.CREATED:
                started = trade.created_at
            elif trade.status == TradeStatus.PAID:
                started = trade.paid_at
            else:
                started = trade.sent_at

            now     = self.clock.now()
            elapsed = now - started
            if elapsed < TIMEOUT_SECONDS:
                logger.debug(
                    "expire_trade on %d rejected: %ds of %ds elapsed",
                    trade_id, elapsed, TIMEOUT_SECONDS,
                )
                raise DeadlineNotReachedError(
                    "Trade cannot be expired yet",
                    {
                        "trade_id":  trade_id,
                        "status":    trade.status.name,
                        "remaining": TIMEOUT_SECONDS - elapsed,
                    },
                )

            if trade.status == TradeStatus.CREATED:
                trade.status = TradeStatus.EXPIRED
                logger.info("Trade %d expired unpaid", trade_id)
                self._emit_status(trade, RecordType.TRADE_EXPIRED)
            elif trade.status == TradeStatus.PAID:
                self._refund(trade, REASON_TIMEOUT)
            else:
                self._settle(trade, REASON_TIMEOUT)

            return dataclasses.replace(trade)

    # ── Fees ──────────────────────────────────────────────────

    def withdraw_fees(self, caller: str, to: str) -> int:
        """
        Owner moves the entire fee balance to `to`. Returns the amount moved;
        0 (and nothing emitted) when there is nothing to withdraw.
        """
        with self._lock:
            if caller != self.owner:
                raise AuthorizationError("Only the owner may withdraw fees")
            _require_identity(to, "recipient")

            amount = self._fee_balance
            if amount == 0:
                logger.debug("withdraw_fees: nothing to withdraw")
                return 0

            self.asset.credit(to, amount)
            self._fee_balance = 0

            logger.info("Withdrew %d in fees to %s", amount, to[:16])
            self.journal.emit(RecordType.FEES_WITHDRAWN, {"to": to, "amount": amount})
            self._emit_transfer(None, self.custodian, to, amount)
            return amount

    # ── Internal ──────────────────────────────────────────────

    def _get(self, trade_id: int) -> Trade:
        trade = self._trades.get(trade_id)
        if trade is None:
            raise TradeNotFoundError("Trade does not exist", {"trade_id": trade_id})
        return trade

    def _settle(self, trade: Trade, reason: str) -> None:
        """Pay the seller amount - fee and book both fee legs."""
        payout = seller_payout(trade.amount)
        fee    = settlement_fee(trade.amount)

        self.asset.credit(trade.seller, payout)

        trade.status       = TradeStatus.COMPLETED
        self._fee_balance += fee

        logger.info(
            "Trade %d completed (%s): seller +%d, fees +%d",
            trade.trade_id, reason, payout, fee,
        )
        self._emit_status(
            trade, RecordType.TRADE_COMPLETED, fee_collected=fee, reason=reason,
        )
        self._emit_transfer(trade.trade_id, self.custodian, trade.seller, payout)

    def _refund(self, trade: Trade, reason: str) -> None:
        """Return the buyer's whole payment. No fee is taken."""
        refund = buyer_obligation(trade.amount)

        self.asset.credit(trade.buyer, refund)

        trade.status = TradeStatus.REFUNDED

        logger.info("Trade %d refunded (%s): buyer +%d", trade.trade_id, reason, refund)
        self._emit_status(trade, RecordType.TRADE_REFUNDED, reason=reason)
        self._emit_transfer(trade.trade_id, self.custodian, trade.buyer, refund)

    def _emit_status(self, trade: Trade, record_type: str, **extra) -> None:
        payload = {"trade_id": trade.trade_id, "new_status": trade.status.name}
        payload.update(extra)
        self.journal.emit(record_type, payload)

    def _emit_transfer(self, trade_id: Optional[int], sender: str, recipient: str, amount: int) -> None:
        self.journal.emit(RecordType.TRANSFER, {
            "trade_id": trade_id,
            "from":     sender,
            "to":       recipient,
            "amount":   amount,
        })


def _require_identity(value, role: str) -> None:
    if not is_identity(value):
        raise ValidationError(
            f"{role} must be a 64-char lowercase hex identity", {role: value},
        )


def _require_party(caller: str, expected: Optional[str], role: str, trade_id: int) -> None:
    if expected is None or caller != expected:
        logger.debug("Trade %d: caller %s is not the %s", trade_id, str(caller)[:16], role)
        raise AuthorizationError(f"Only the {role} may do this", {"trade_id": trade_id})


def _require_status(trade: Trade, operation: str, *allowed: TradeStatus) -> None:
    if trade.status not in allowed:
        logger.debug(
            "%s on trade %d rejected in status %s", operation, trade.trade_id, trade.status.name,
        )
        raise PreconditionError(
            f"{operation} not allowed in status {trade.status.label}",
            {"trade_id": trade.trade_id, "expected": _labels(allowed)},
        )


def _labels(statuses: Iterable[TradeStatus]) -> str:
    return "|".join(s.label for s in statuses)
