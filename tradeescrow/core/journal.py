"""
tradeescrow/core/journal.py

Event Journal.

emit() runs after the ledger has committed a transition, so it never
reports that transition as failed. Under the journal lock it:
  1. Creates the record with EventRecord.create(...) and signs it
  2. Advances the in-memory chain (sequence, last record, records)
  3. Queues the record for the file and flushes the queue in order

When a file write fails the record stays queued, the journal is marked
degraded and the failure is logged at ERROR. The next emit() or an
explicit flush() retries the backlog in sequence order, so the file
never skips a record.

Without a directory the journal lives in memory only. With one, records
are appended to <dir>/journal.jsonl and chain state is restored from the
last line on reopen.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from tradeescrow.core.crypto import PartyKey
from tradeescrow.core.exceptions import JournalError
from tradeescrow.core.records import EventRecord, GENESIS_HASH

logger = logging.getLogger(__name__)

JOURNAL_FILENAME = "journal.jsonl"


class EventJournal:
    """
    Signed, hash-chained, append-only record of everything the ledger did.

    Maintains chain state:
        _sequence    : next sequence number (0, 1, 2, ...)
        _last_record : the last EventRecord emitted (or None)
        records      : every record emitted by this instance
        _pending     : emitted records not yet written to the file
    """

    def __init__(self, key: PartyKey, journal_dir: Optional[str] = None) -> None:
        self.key = key

        self._lock:        threading.Lock        = threading.Lock()
        self._sequence:    int                   = 0
        self._last_record: Optional[EventRecord] = None
        self._pending:     List[EventRecord]     = []
        self.records:      List[EventRecord]     = []

        self._journal_file: Optional[Path] = None
        if journal_dir is not None:
            journal_path = Path(journal_dir)
            journal_path.mkdir(parents=True, exist_ok=True)
            self._journal_file = journal_path / JOURNAL_FILENAME
            self._restore_state()

    @property
    def path(self) -> Optional[Path]:
        return self._journal_file

    @property
    def signer(self) -> str:
        return self.key.identity

    @property
    def pending(self) -> int:
        """Records emitted but not yet on disk."""
        return len(self._pending)

    @property
    def degraded(self) -> bool:
        return bool(self._pending)

    # ── Public API ────────────────────────────────────────────

    def emit(self, record_type: str, payload: Dict[str, Any]) -> EventRecord:
        """
        Emit one signed record. A failed file write does not raise: the
        record stays queued and is retried before the next one is written.
        """
        with self._lock:
            record = EventRecord.create(
                record_type= record_type,
                signer=      self.key.identity,
                sequence=    self._sequence,
                payload=     payload,
                prev=        self._last_record,
            ).sign(self.key)

            self._sequence    += 1
            self._last_record  = record
            self.records.append(record)

            logger.debug("journal %s #%d %s", record.record_type, record.sequence, payload)

            if self._journal_file is not None:
                self._pending.append(record)
                self._flush_pending()
            return record

    def flush(self) -> None:
        """Write any queued records. Raises JournalError if the file is still unwritable."""
        with self._lock:
            if not self._flush_pending():
                raise JournalError(
                    f"Journal {self._journal_file} is still not writable",
                    {"pending": len(self._pending)},
                )

    def of_type(self, record_type: str) -> List[EventRecord]:
        return [r for r in self.records if r.record_type == record_type]

    def get_stats(self) -> Dict[str, Any]:
        return {
            "signer":           self.key.identity,
            "next_sequence":    self._sequence,
            "last_causal_hash": (
                EventRecord.expected_causal_hash(self._last_record)
                if self._last_record else GENESIS_HASH
            ),
            "journal_file":     str(self._journal_file) if self._journal_file else None,
            "pending":          len(self._pending),
        }

    # ── Internal ──────────────────────────────────────────────

    def _flush_pending(self) -> bool:
        """Write queued records oldest first. False if a write failed."""
        while self._pending:
            record = self._pending[0]
            try:
                self._append(record)
            except JournalError as exc:
                logger.error(
                    "Journal degraded: %s; %d record(s) pending from sequence %d",
                    exc, len(self._pending), record.sequence,
                )
                return False
            self._pending.pop(0)
        return True

    def _restore_state(self) -> None:
        """
        Restore sequence and last record from an existing journal file.
        A journal written by a different custodian key, or with an
        unreadable last line, cannot be continued.
        """
        if not self._journal_file.exists():
            return

        last_line = None
        with open(self._journal_file, "r", encoding="utf-8") as f:
            for line in f:
                stripped = line.strip()
                if stripped:
                    last_line = stripped

        if not last_line:
            return

        try:
            record = EventRecord.from_dict(json.loads(last_line))
        except (ValueError, KeyError) as exc:
            raise JournalError(
                f"Cannot restore journal state from {self._journal_file}",
                {"error": exc},
            ) from exc

        schema = record.validate_schema()
        if not schema:
            raise JournalError(
                f"Schema violation in last journal line of {self._journal_file}",
                {"errors": schema.errors},
            )
        if record.signer != self.key.identity:
            raise JournalError(
                "Journal was written by a different custodian key",
                {"expected": self.key.identity[:16], "found": record.signer[:16]},
            )

        self._sequence    = record.sequence + 1
        self._last_record = record
        logger.info(
            "Restored journal %s at sequence %d", self._journal_file, self._sequence,
        )

    def _append(self, record: EventRecord) -> None:
        try:
            with open(self._journal_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(record.to_dict()) + "\n")
        except OSError as exc:
            raise JournalError(
                f"Journal write failed for {self._journal_file}",
                {"error": exc},
            ) from exc
