"""
tradeescrow/core/replay.py

Journal Replay.

Loads a journal file, verifies it, and rebuilds ledger state from it.

Verification per record:
    1. Schema   → record.validate_schema()   (fail fast at load)
    2. Sequence → strictly 0, 1, 2, ...
    3. Chain    → record.verify_chain(prev)
    4. Nonce    → unique across the journal
    5. Sig      → record.verify_signature()
    6. Signer   → one custodian signs the whole journal

Rebuild folds trade records into Trade snapshots and the fee balance, so
status reporting never needs access to a live ledger.
"""

import json
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set

from tradeescrow.core.models import Trade, TradeStatus
from tradeescrow.core.records import EventRecord, RecordType

logger = logging.getLogger(__name__)


@dataclass
class ChainViolation:
    """A single detected violation in the journal."""
    at_sequence:    int
    record_id:      str
    violation_type: str   # "sequence_gap" | "chain_break" | "duplicate_nonce" | "invalid_signature" | "foreign_signer"
    detail:         str


@dataclass
class ReplaySummary:
    """Aggregate result of a full journal verification pass."""
    total_records:      int
    violations:         List[ChainViolation]
    valid_signatures:   int
    invalid_signatures: int
    record_type_counts: Dict[str, int]
    signer:             Optional[str]
    first_timestamp:    Optional[str]
    last_timestamp:     Optional[str]

    @property
    def valid(self) -> bool:
        return not self.violations


@dataclass
class LedgerSnapshot:
    """Ledger state as reconstructed from a journal."""
    trades:      Dict[int, Trade] = field(default_factory=dict)
    fee_balance: int = 0
    fees_collected: int = 0
    fees_withdrawn: int = 0

    def custody_obligations(self, fee_amount) -> int:
        return self.fee_balance + sum(
            t.amount + fee_amount(t.amount)
            for t in self.trades.values()
            if t.status.holds_custody
        )


class JournalReplay:
    """
    Usage:
        replay = JournalReplay()
        replay.load(Path(".tradeescrow/journal/journal.jsonl"))
        summary  = replay.verify()
        snapshot = replay.rebuild()
    """

    def __init__(self, records: Optional[List[EventRecord]] = None):
        self.records:      List[EventRecord] = list(records or [])
        self._source:      Optional[Path]    = None

    @property
    def source(self) -> str:
        return str(self._source) if self._source else "in-memory"

    # ── Load ──────────────────────────────────────────────────

    def load(self, journal_path: Path) -> None:
        """
        Raises:
            FileNotFoundError: journal file does not exist
            ValueError       : malformed JSON, missing field or schema violation
        """
        journal_path  = Path(journal_path)
        self._source  = journal_path
        self.records  = []

        if not journal_path.exists():
            raise FileNotFoundError(f"Journal not found: {journal_path}")

        with open(journal_path, "r", encoding="utf-8") as f:
            for line_num, raw in enumerate(f, 1):
                raw = raw.strip()
                if not raw:
                    continue
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError as e:
                    raise ValueError(
                        f"Malformed JSON at journal line {line_num}: {e}"
                    ) from e
                try:
                    record = EventRecord.from_dict(data)
                except KeyError as e:
                    raise ValueError(
                        f"Missing required field at journal line {line_num}: {e}"
                    ) from e

                schema = record.validate_schema()
                if not schema:
                    raise ValueError(
                        f"Schema violation at journal line {line_num} "
                        f"(record_id={data.get('record_id', '?')}): {schema.errors}"
                    )
                self.records.append(record)

        self.records.sort(key=lambda r: r.sequence)
        logger.info("Loaded %d records from %s", len(self.records), journal_path)

    # ── Verify ────────────────────────────────────────────────

    def verify(self) -> ReplaySummary:
        violations:  List[ChainViolation] = []
        seen_nonces: Set[str]             = set()
        valid_sigs   = 0
        invalid_sigs = 0

        if not self.records:
            return ReplaySummary(0, [], 0, 0, {}, None, None, None)

        signer = self.records[0].signer

        for i, record in enumerate(self.records):
            prev = self.records[i - 1] if i > 0 else None

            if record.sequence != i:
                violations.append(ChainViolation(
                    i, record.record_id, "sequence_gap",
                    f"Expected sequence {i}, got {record.sequence}",
                ))

            if not record.verify_chain(prev):
                expected = EventRecord.expected_causal_hash(prev)
                violations.append(ChainViolation(
                    record.sequence, record.record_id, "chain_break",
                    f"causal_hash mismatch: expected ...{expected[-12:]}, "
                    f"got ...{record.causal_hash[-12:]}",
                ))

            if record.nonce in seen_nonces:
                violations.append(ChainViolation(
                    record.sequence, record.record_id, "duplicate_nonce",
                    f"Duplicate nonce '{record.nonce}'",
                ))
            seen_nonces.add(record.nonce)

            if record.signer != signer:
                violations.append(ChainViolation(
                    record.sequence, record.record_id, "foreign_signer",
                    f"Signed by {record.signer[:16]}..., journal signer is {signer[:16]}...",
                ))

            if record.verify_signature():
                valid_sigs += 1
            else:
                invalid_sigs += 1
                violations.append(ChainViolation(
                    record.sequence, record.record_id, "invalid_signature",
                    f"Signature invalid (signer: {record.signer[:16]}...)",
                ))

        counts: Dict[str, int] = defaultdict(int)
        for record in self.records:
            counts[record.record_type] += 1

        return ReplaySummary(
            total_records=      len(self.records),
            violations=         violations,
            valid_signatures=   valid_sigs,
            invalid_signatures= invalid_sigs,
            record_type_counts= dict(counts),
            signer=             signer,
            first_timestamp=    self.records[0].timestamp,
            last_timestamp=     self.records[-1].timestamp,
        )

    # ── Rebuild ───────────────────────────────────────────────

    def rebuild(self) -> LedgerSnapshot:
        """
        Fold the journal into trades and fee balance.
        Raises ValueError if a record refers to a trade never created, or
        creates a trade id twice.
        """
        snapshot = LedgerSnapshot()

        for record in self.records:
            p = record.payload

            if record.record_type == RecordType.TRADE_CREATED:
                if p["trade_id"] in snapshot.trades:
                    raise ValueError(
                        f"Record {record.record_id} re-creates existing trade {p['trade_id']}"
                    )
                snapshot.trades[p["trade_id"]] = Trade(
                    trade_id=   p["trade_id"],
                    seller=     p["seller"],
                    amount=     p["amount"],
                    status=     TradeStatus.CREATED,
                    created_at= p["created_at"],
                )
                continue

            if record.record_type == RecordType.FEES_WITHDRAWN:
                snapshot.fee_balance    -= p["amount"]
                snapshot.fees_withdrawn += p["amount"]
                continue

            if record.record_type == RecordType.TRANSFER:
                continue

            trade = snapshot.trades.get(p["trade_id"])
            if trade is None:
                raise ValueError(
                    f"Record {record.record_id} refers to unknown trade {p['trade_id']}"
                )

            trade.status = TradeStatus[p["new_status"]]
            if record.record_type == RecordType.TRADE_PAID:
                trade.buyer   = p["buyer"]
                trade.paid_at = p["paid_at"]
            elif record.record_type == RecordType.TRADE_SENT:
                trade.sent_at = p["sent_at"]
            elif record.record_type == RecordType.TRADE_COMPLETED:
                snapshot.fee_balance    += p["fee_collected"]
                snapshot.fees_collected += p["fee_collected"]

        return snapshot

    # ── Export ────────────────────────────────────────────────

    def export_json(self, output_path: Path) -> None:
        """Write the verification summary as a JSON audit report."""
        summary     = self.verify()
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        report = {
            "journal":            self.source,
            "total_records":      summary.total_records,
            "valid":              summary.valid,
            "valid_signatures":   summary.valid_signatures,
            "invalid_signatures": summary.invalid_signatures,
            "signer":             summary.signer,
            "first_timestamp":    summary.first_timestamp,
            "last_timestamp":     summary.last_timestamp,
            "record_type_counts": summary.record_type_counts,
            "violations": [
                {
                    "at_sequence":    v.at_sequence,
                    "record_id":      v.record_id,
                    "violation_type": v.violation_type,
                    "detail":         v.detail,
                }
                for v in summary.violations
            ],
        }

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2)
