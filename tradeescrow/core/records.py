"""
tradeescrow/core/records.py

Event records emitted by the escrow ledger.

Every committed operation is observable as one or more EventRecords.
Records are signed by the custodian and hash-chained so an auditor holding
only the journal file can tell whether anything was altered or dropped.

CONTRACT 1: Signing
    bytes_signed = canonicalize(record.to_signing_dict())
    algorithm    = Ed25519, base64url without padding

CONTRACT 2: Chain
    causal_hash  = SHA-256(canonicalize(prev.to_signing_dict()))
    first record = GENESIS_HASH ("0" * 64)

CONTRACT 3: Vocabulary
    record_type must be a RecordType constant; enforced by create().
"""

import re
import secrets
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from tradeescrow.core.canonical import canonical_hash, canonicalize
from tradeescrow.core.crypto import PartyKey, is_identity
from tradeescrow.core.time import journal_timestamp


GENESIS_HASH = "0" * 64

_NONCE_HEX_LENGTH = 32

_TIMESTAMP_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$"
)


class RecordType:
    """record_type string constants. The only valid values."""
    TRADE_CREATED   = "trade_created"
    TRADE_PAID      = "trade_paid"
    TRADE_SENT      = "trade_sent"
    TRADE_DISPUTED  = "trade_disputed"
    TRADE_COMPLETED = "trade_completed"
    TRADE_REFUNDED  = "trade_refunded"
    TRADE_EXPIRED   = "trade_expired"
    TRANSFER        = "transfer"
    FEES_WITHDRAWN  = "fees_withdrawn"


VALID_RECORD_TYPES = frozenset({
    RecordType.TRADE_CREATED,
    RecordType.TRADE_PAID,
    RecordType.TRADE_SENT,
    RecordType.TRADE_DISPUTED,
    RecordType.TRADE_COMPLETED,
    RecordType.TRADE_REFUNDED,
    RecordType.TRADE_EXPIRED,
    RecordType.TRANSFER,
    RecordType.FEES_WITHDRAWN,
})


@dataclass
class SchemaValidationResult:
    """
    Result of EventRecord.validate_schema().

    Returned, not raised, so callers can choose hard fail vs report.
    bool(result) is True iff valid.
    """
    valid:  bool
    errors: List[str]

    def __bool__(self) -> bool:
        return self.valid


@dataclass
class EventRecord:
    """A single signed, chained journal entry."""

    record_id:   str
    record_type: str
    sequence:    int
    timestamp:   str
    signer:      str
    nonce:       str
    causal_hash: str
    payload:     Dict[str, Any]
    signature:   Optional[str] = None

    @classmethod
    def create(
        cls,
        record_type: str,
        signer:      str,
        sequence:    int,
        payload:     Dict[str, Any],
        prev:        Optional["EventRecord"] = None,
    ) -> "EventRecord":
        """
        Create an unsigned record with the correct causal_hash.

        Call .sign(key) immediately after:
            record = EventRecord.create(...).sign(key)
        """
        if record_type not in VALID_RECORD_TYPES:
            raise ValueError(
                f"Invalid record_type '{record_type}'. "
                f"Valid: {sorted(VALID_RECORD_TYPES)}"
            )
        if not isinstance(payload, dict):
            raise TypeError(f"payload must be dict, got {type(payload).__name__}")
        if not isinstance(sequence, int) or sequence < 0:
            raise ValueError(f"sequence must be non-negative int, got {sequence!r}")
        if not is_identity(signer):
            raise ValueError(f"signer must be a 64-char hex identity, got {signer!r}")

        return cls(
            record_id=   f"evt-{uuid.uuid4()}",
            record_type= record_type,
            sequence=    sequence,
            timestamp=   journal_timestamp(),
            signer=      signer,
            nonce=       secrets.token_hex(_NONCE_HEX_LENGTH // 2),
            causal_hash= cls.expected_causal_hash(prev),
            payload=     payload,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EventRecord":
        """
        Deserialize a journal line. Trusts persisted data; callers must
        run validate_schema() before relying on it.
        """
        return cls(
            record_id=   data["record_id"],
            record_type= data["record_type"],
            sequence=    data["sequence"],
            timestamp=   data["timestamp"],
            signer=      data["signer"],
            nonce=       data["nonce"],
            causal_hash= data["causal_hash"],
            payload=     data.get("payload", {}),
            signature=   data.get("signature"),
        )

    def validate_schema(self) -> SchemaValidationResult:
        errors: List[str] = []

        if self.record_type not in VALID_RECORD_TYPES:
            errors.append(f"record_type '{self.record_type}' not in valid set")
        if not isinstance(self.record_id, str) or not self.record_id.startswith("evt-"):
            errors.append(f"record_id must start with 'evt-', got {self.record_id!r}")
        if not isinstance(self.sequence, int) or self.sequence < 0:
            errors.append(f"sequence must be non-negative int, got {self.sequence!r}")
        if not isinstance(self.timestamp, str) or not _TIMESTAMP_RE.match(self.timestamp):
            errors.append(f"timestamp {self.timestamp!r} is not YYYY-MM-DDTHH:MM:SS.mmmZ")
        if not is_identity(self.signer):
            errors.append("signer must be a 64-char lowercase hex identity")
        if (
            not isinstance(self.nonce, str)
            or len(self.nonce) != _NONCE_HEX_LENGTH
            or not all(c in "0123456789abcdef" for c in self.nonce)
        ):
            errors.append(f"nonce must be {_NONCE_HEX_LENGTH} lowercase hex chars")
        if (
            not isinstance(self.causal_hash, str)
            or len(self.causal_hash) != 64
            or not all(c in "0123456789abcdef" for c in self.causal_hash)
        ):
            errors.append("causal_hash must be 64 lowercase hex chars")
        if not isinstance(self.payload, dict):
            errors.append(f"payload must be dict, got {type(self.payload).__name__}")

        return SchemaValidationResult(valid=not errors, errors=errors)

    # ── Canonical surfaces ────────────────────────────────────

    def to_signing_dict(self) -> Dict[str, Any]:
        """Every field except signature. Signed, and hashed by the next record."""
        return {
            "causal_hash": self.causal_hash,
            "nonce":       self.nonce,
            "payload":     self.payload,
            "record_id":   self.record_id,
            "record_type": self.record_type,
            "sequence":    self.sequence,
            "signer":      self.signer,
            "timestamp":   self.timestamp,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Full serialization including signature. JSONL persistence only."""
        d = self.to_signing_dict()
        d["signature"] = self.signature
        return d

    @staticmethod
    def expected_causal_hash(prev: Optional["EventRecord"]) -> str:
        if prev is None:
            return GENESIS_HASH
        return canonical_hash(prev.to_signing_dict())

    # ── Signing / verification ────────────────────────────────

    def sign(self, key: PartyKey) -> "EventRecord":
        """Sign in place and return self."""
        self.signature = key.sign(canonicalize(self.to_signing_dict()))
        return self

    def verify_signature(self) -> bool:
        if not self.signature:
            return False
        return PartyKey.verify_detached(
            canonicalize(self.to_signing_dict()), self.signature, self.signer,
        )

    def verify_chain(self, prev: Optional["EventRecord"]) -> bool:
        return self.causal_hash == self.expected_causal_hash(prev)
