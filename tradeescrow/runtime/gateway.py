"""
Signed call gateway.

Remote callers do not get to simply claim an identity. They sign a
CallRequest with their PartyKey; the gateway checks the signature against
the claimed caller identity, refuses requests issued outside its time
window, refuses nonces it has already seen, and only then invokes the
ledger operation with that identity as the caller.

    request = CallRequest.create("pay_trade", {"trade_id": 1}, buyer_key)
    trade   = gateway.submit(request)

A request older than max_age can never be accepted again, so only nonces
inside the window need remembering. With a nonce log they are appended to
disk before dispatch and reloaded on restart.
"""

import json
import logging
import os
import secrets
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from tradeescrow.core.canonical import canonicalize
from tradeescrow.core.clock import Clock, SystemClock
from tradeescrow.core.crypto import PartyKey, is_identity
from tradeescrow.core.exceptions import (
    JournalError,
    RequestReplayError,
    SignatureError,
    StaleRequestError,
    ValidationError,
)
from tradeescrow.core.time import journal_timestamp, parse_journal_timestamp
from tradeescrow.escrow.engine import EscrowLedger

logger = logging.getLogger(__name__)

REQUEST_MAX_AGE    = 300   # seconds, either side of the gateway clock
NONCE_LOG_FILENAME = "nonces.jsonl"

# Parameters each operation takes besides the caller.
OPERATION_PARAMS: Dict[str, tuple] = {
    "create_trade":      ("amount",),
    "pay_trade":         ("trade_id",),
    "mark_as_sent":      ("trade_id",),
    "dispute_trade":     ("trade_id",),
    "confirm_reception": ("trade_id",),
    "resolve_dispute":   ("trade_id", "favor_buyer"),
    "expire_trade":      ("trade_id",),
    "withdraw_fees":     ("to",),
}


@dataclass
class CallRequest:
    operation: str
    params:    Dict[str, Any]
    caller:    str
    nonce:     str
    issued_at: str
    signature: Optional[str] = None

    @classmethod
    def create(cls, operation: str, params: Dict[str, Any], key: PartyKey) -> "CallRequest":
        """Build and sign a request as the holder of key."""
        request = cls(
            operation= operation,
            params=    dict(params),
            caller=    key.identity,
            nonce=     secrets.token_hex(16),
            issued_at= journal_timestamp(),
        )
        request.signature = key.sign(request.canonical_bytes())
        return request

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CallRequest":
        try:
            return cls(
                operation= data["operation"],
                params=    data.get("params", {}),
                caller=    data["caller"],
                nonce=     data["nonce"],
                issued_at= data["issued_at"],
                signature= data.get("signature"),
            )
        except KeyError as exc:
            raise ValidationError(f"Call request missing field {exc}") from exc

    def to_signing_dict(self) -> Dict[str, Any]:
        return {
            "caller":    self.caller,
            "issued_at": self.issued_at,
            "nonce":     self.nonce,
            "operation": self.operation,
            "params":    self.params,
        }

    def to_dict(self) -> Dict[str, Any]:
        d = self.to_signing_dict()
        d["signature"] = self.signature
        return d

    def canonical_bytes(self) -> bytes:
        return canonicalize(self.to_signing_dict())

    def verify_signature(self) -> bool:
        if not self.signature:
            return False
        return PartyKey.verify_detached(self.canonical_bytes(), self.signature, self.caller)


class EscrowGateway:
    """Authenticates signed requests and dispatches them to one ledger."""

    def __init__(
        self,
        ledger:    EscrowLedger,
        clock:     Optional[Clock] = None,
        max_age:   int = REQUEST_MAX_AGE,
        nonce_log: Optional[Path] = None,
    ):
        # The request window runs on wall time even when the ledger clock is simulated.
        self.ledger    = ledger
        self.clock     = clock or SystemClock()
        self.max_age   = max_age
        self.nonce_log = Path(nonce_log) if nonce_log is not None else None

        self._lock:        threading.Lock   = threading.Lock()
        self._seen_nonces: Dict[str, float] = {}

        if self.nonce_log is not None:
            self._load_nonces()

    @property
    def tracked_nonces(self) -> int:
        return len(self._seen_nonces)

    def submit(self, request: CallRequest):
        """
        Verify and execute a signed request. Returns whatever the ledger
        operation returns. Ledger errors propagate unchanged.

        Raises:
            ValidationError   : unknown operation, bad params, malformed caller
            SignatureError    : signature does not verify for caller
            StaleRequestError : issued_at outside the accepted window
            RequestReplayError: nonce already used
            JournalError      : nonce log not writable, nothing dispatched
        """
        params    = self._check_shape(request)
        issued_at = _parse_issued_at(request)

        if not request.verify_signature():
            logger.warning(
                "Rejected %s: bad signature for %s", request.operation, request.caller[:16],
            )
            raise SignatureError(
                "Call request signature does not verify",
                {"operation": request.operation},
            )

        now = self.clock.now()
        if abs(now - issued_at) > self.max_age:
            logger.warning(
                "Rejected %s: issued at %s, outside %ds window",
                request.operation, request.issued_at, self.max_age,
            )
            raise StaleRequestError(
                "Call request is too old or dated in the future",
                {"issued_at": request.issued_at, "max_age": self.max_age},
            )

        with self._lock:
            self._forget_expired(now)
            if request.nonce in self._seen_nonces:
                logger.warning("Rejected %s: replayed nonce %s", request.operation, request.nonce)
                raise RequestReplayError(
                    "Call request nonce already used", {"nonce": request.nonce},
                )
            if self.nonce_log is not None:
                self._log_nonce(request.nonce, issued_at)
            self._seen_nonces[request.nonce] = issued_at

        operation = getattr(self.ledger, request.operation)
        logger.debug("Dispatching %s for %s", request.operation, request.caller[:16])
        return operation(request.caller, **params)

    # ── Reads need no signature ───────────────────────────────

    def get_trade(self, trade_id: int):
        return self.ledger.get_trade(trade_id)

    def fee_balance(self) -> int:
        return self.ledger.fee_balance

    # ── Internal ──────────────────────────────────────────────

    def _check_shape(self, request: CallRequest) -> Dict[str, Any]:
        expected = OPERATION_PARAMS.get(request.operation)
        if expected is None or request.operation not in EscrowLedger.MUTATING_OPERATIONS:
            raise ValidationError(f"Unknown operation '{request.operation}'")
        if not is_identity(request.caller):
            raise ValidationError("caller must be a 64-char lowercase hex identity")
        if not isinstance(request.params, dict) or set(request.params) != set(expected):
            raise ValidationError(
                f"{request.operation} takes parameters {list(expected)}",
                {"got": sorted(request.params) if isinstance(request.params, dict) else request.params},
            )
        if "favor_buyer" in request.params and not isinstance(request.params["favor_buyer"], bool):
            raise ValidationError("favor_buyer must be a boolean")
        return dict(request.params)

    def _forget_expired(self, now: int) -> None:
        expired = [n for n, issued_at in self._seen_nonces.items() if now - issued_at > self.max_age]
        for nonce in expired:
            del self._seen_nonces[nonce]

    def _log_nonce(self, nonce: str, issued_at: float) -> None:
        try:
            with open(self.nonce_log, "a", encoding="utf-8") as f:
                f.write(json.dumps({"nonce": nonce, "issued_at": issued_at}) + "\n")
        except OSError as exc:
            raise JournalError(
                f"Nonce log write failed for {self.nonce_log}", {"error": exc},
            ) from exc

    def _load_nonces(self) -> None:
        """Reload nonces still inside the window, then compact the log to them."""
        self.nonce_log.parent.mkdir(parents=True, exist_ok=True)
        if not self.nonce_log.exists():
            return

        now = self.clock.now()
        with open(self.nonce_log, "r", encoding="utf-8") as f:
            for line_num, raw in enumerate(f, 1):
                raw = raw.strip()
                if not raw:
                    continue
                try:
                    entry     = json.loads(raw)
                    nonce     = entry["nonce"]
                    issued_at = float(entry["issued_at"])
                except (ValueError, KeyError, TypeError) as exc:
                    raise JournalError(
                        f"Malformed nonce log line {line_num} in {self.nonce_log}",
                        {"error": exc},
                    ) from exc
                if now - issued_at <= self.max_age:
                    self._seen_nonces[nonce] = issued_at

        compacted = self.nonce_log.with_suffix(".tmp")
        try:
            with open(compacted, "w", encoding="utf-8") as f:
                for nonce, issued_at in self._seen_nonces.items():
                    f.write(json.dumps({"nonce": nonce, "issued_at": issued_at}) + "\n")
            os.replace(compacted, self.nonce_log)
        except OSError as exc:
            raise JournalError(
                f"Cannot compact nonce log {self.nonce_log}", {"error": exc},
            ) from exc

        logger.info("Reloaded %d live nonce(s) from %s", len(self._seen_nonces), self.nonce_log)


def _parse_issued_at(request: CallRequest) -> float:
    try:
        return parse_journal_timestamp(request.issued_at)
    except ValueError as exc:
        raise ValidationError(
            "issued_at must be a YYYY-MM-DDTHH:MM:SS.mmmZ timestamp",
            {"issued_at": request.issued_at},
        ) from exc
