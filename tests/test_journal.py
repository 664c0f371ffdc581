"""
tests/test_journal.py

Signed journal: what each operation emits, chain and signature integrity,
tamper detection, file persistence and rebuild from disk.
"""

import json
import logging

import pytest

from tradeescrow.core.crypto import PartyKey
from tradeescrow.core.exceptions import JournalError, PreconditionError
from tradeescrow.core.journal import JOURNAL_FILENAME, EventJournal
from tradeescrow.core.models import TradeStatus
from tradeescrow.core.records import GENESIS_HASH, EventRecord, RecordType
from tradeescrow.core.replay import JournalReplay
from tradeescrow.escrow.engine import EscrowLedger
from tradeescrow.escrow.fees import fee_amount

from tests.helpers.parties import UNIT, open_trade


def _types(journal):
    return [r.record_type for r in journal.records]


@pytest.fixture
def file_ledger(tmp_path, parties, asset, clock):
    journal = EventJournal(parties.custodian, str(tmp_path / "journal"))
    return EscrowLedger(parties.owner.identity, asset, clock, journal)


class TestEmittedRecords:

    def test_happy_path_sequence(self, ledger, parties):
        trade_id = open_trade(ledger, parties, until="sent")
        ledger.confirm_reception(parties.buyer.identity, trade_id)
        ledger.withdraw_fees(parties.owner.identity, parties.owner.identity)

        assert _types(ledger.journal) == [
            RecordType.TRADE_CREATED,
            RecordType.TRADE_PAID,
            RecordType.TRANSFER,
            RecordType.TRADE_SENT,
            RecordType.TRADE_COMPLETED,
            RecordType.TRANSFER,
            RecordType.FEES_WITHDRAWN,
            RecordType.TRANSFER,
        ]
        assert [r.sequence for r in ledger.journal.records] == list(range(8))

    def test_created_payload(self, ledger, parties, clock):
        ledger.create_trade(parties.seller.identity, 100 * UNIT)
        record = ledger.journal.records[0]
        assert record.payload == {
            "trade_id":   1,
            "seller":     parties.seller.identity,
            "amount":     100 * UNIT,
            "created_at": clock.now(),
        }

    def test_completed_payload_carries_fee_and_reason(self, ledger, parties):
        trade_id = open_trade(ledger, parties, until="dispute")
        ledger.resolve_dispute(parties.owner.identity, trade_id, False)

        completed = ledger.journal.of_type(RecordType.TRADE_COMPLETED)[0]
        assert completed.payload == {
            "trade_id":      trade_id,
            "new_status":    "COMPLETED",
            "fee_collected": 10 * UNIT,
            "reason":        "arbitration",
        }

    def test_transfer_payloads(self, ledger, parties):
        trade_id = open_trade(ledger, parties, until="paid")
        transfer = ledger.journal.of_type(RecordType.TRANSFER)[0]
        assert transfer.payload == {
            "trade_id": trade_id,
            "from":     parties.buyer.identity,
            "to":       parties.custodian.identity,
            "amount":   105 * UNIT,
        }

    def test_timeout_refund_reason(self, ledger, parties, clock):
        trade_id = open_trade(ledger, parties, until="paid")
        clock.advance(12 * 60 * 60)
        ledger.expire_trade(parties.stranger.identity, trade_id)

        refunded = ledger.journal.of_type(RecordType.TRADE_REFUNDED)[0]
        assert refunded.payload["reason"] == "timeout"
        assert refunded.payload["new_status"] == "REFUNDED"

    def test_unpaid_expiry_moves_nothing(self, ledger, parties, clock):
        trade_id = open_trade(ledger, parties)
        clock.advance(12 * 60 * 60)
        ledger.expire_trade(parties.stranger.identity, trade_id)

        assert _types(ledger.journal) == [RecordType.TRADE_CREATED, RecordType.TRADE_EXPIRED]

    def test_rejected_call_emits_nothing(self, ledger, parties):
        trade_id = open_trade(ledger, parties)
        with pytest.raises(PreconditionError):
            ledger.mark_as_sent(parties.seller.identity, trade_id)
        assert len(ledger.journal.records) == 1


class TestIntegrity:

    def test_chain_and_signatures_verify(self, ledger, parties):
        trade_id = open_trade(ledger, parties, until="sent")
        ledger.confirm_reception(parties.buyer.identity, trade_id)

        records = ledger.journal.records
        assert records[0].causal_hash == GENESIS_HASH
        for prev, record in zip(records, records[1:]):
            assert record.verify_chain(prev)
        assert all(r.verify_signature() for r in records)
        assert all(r.signer == parties.custodian.identity for r in records)

        summary = JournalReplay(records).verify()
        assert summary.valid
        assert summary.total_records == len(records)
        assert summary.record_type_counts[RecordType.TRANSFER] == 2

    def test_tampered_payload_breaks_signature_and_chain(self, ledger, parties):
        open_trade(ledger, parties, until="sent")
        ledger.journal.records[1].payload["buyer"] = parties.stranger.identity

        summary = JournalReplay(ledger.journal.records).verify()
        kinds   = {v.violation_type for v in summary.violations}

        assert not summary.valid
        assert "invalid_signature" in kinds
        assert "chain_break" in kinds

    def test_dropped_record_detected(self, ledger, parties):
        open_trade(ledger, parties, until="sent")
        records = list(ledger.journal.records)
        del records[2]

        kinds = {v.violation_type for v in JournalReplay(records).verify().violations}
        assert {"sequence_gap", "chain_break"} <= kinds

    def test_foreign_signer_detected(self, ledger, parties):
        open_trade(ledger, parties)
        forged = EventRecord.create(
            RecordType.TRADE_EXPIRED,
            parties.stranger.identity,
            1,
            {"trade_id": 1, "new_status": "EXPIRED"},
            prev=ledger.journal.records[0],
        ).sign(parties.stranger)

        summary = JournalReplay(ledger.journal.records + [forged]).verify()
        assert [v.violation_type for v in summary.violations] == ["foreign_signer"]

    def test_empty_journal_is_valid(self):
        summary = JournalReplay([]).verify()
        assert summary.valid
        assert summary.total_records == 0
        assert summary.signer is None


class TestRecordCreation:

    def test_unknown_record_type_rejected(self, parties):
        with pytest.raises(ValueError):
            EventRecord.create("trade_teleported", parties.custodian.identity, 0, {})

    def test_non_dict_payload_rejected(self, parties):
        with pytest.raises(TypeError):
            EventRecord.create(RecordType.TRANSFER, parties.custodian.identity, 0, [])

    def test_schema_of_emitted_record(self, journal):
        record = journal.emit(RecordType.FEES_WITHDRAWN, {"to": "x", "amount": 1})
        assert record.validate_schema()
        assert record.record_id.startswith("evt-")
        assert len(record.nonce) == 32


class TestPersistence:

    def test_journal_file_written(self, file_ledger, parties):
        open_trade(file_ledger, parties, until="paid")
        path = file_ledger.journal.path

        assert path.name == JOURNAL_FILENAME
        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 3
        assert json.loads(lines[0])["record_type"] == RecordType.TRADE_CREATED

    def test_replay_from_disk_matches_ledger(self, file_ledger, parties, clock):
        first = open_trade(file_ledger, parties, until="sent")
        file_ledger.confirm_reception(parties.buyer.identity, first)
        second = open_trade(file_ledger, parties, until="dispute")
        file_ledger.resolve_dispute(parties.owner.identity, second, True)
        third = open_trade(file_ledger, parties, amount=7 * UNIT, until="paid")
        file_ledger.withdraw_fees(parties.owner.identity, parties.owner.identity)
        fourth = open_trade(file_ledger, parties, amount=40, until="sent")
        clock.advance(12 * 60 * 60)
        file_ledger.expire_trade(parties.stranger.identity, fourth)

        replay = JournalReplay()
        replay.load(file_ledger.journal.path)
        assert replay.verify().valid

        snapshot = replay.rebuild()
        assert snapshot.fee_balance == file_ledger.fee_balance
        assert snapshot.fees_withdrawn == 10 * UNIT
        assert snapshot.fees_collected == 10 * UNIT + 4
        assert {
            tid: t.to_dict() for tid, t in snapshot.trades.items()
        } == {
            t.trade_id: t.to_dict() for t in file_ledger.trades()
        }
        assert snapshot.custody_obligations(fee_amount) == file_ledger.custody_obligations()
        assert third in snapshot.trades

    def test_reopen_continues_chain(self, tmp_path, parties):
        directory = str(tmp_path / "journal")
        first = EventJournal(parties.custodian, directory)
        first.emit(RecordType.FEES_WITHDRAWN, {"to": parties.owner.identity, "amount": 1})
        first.emit(RecordType.FEES_WITHDRAWN, {"to": parties.owner.identity, "amount": 2})

        reopened = EventJournal(parties.custodian, directory)
        record   = reopened.emit(RecordType.FEES_WITHDRAWN, {"to": parties.owner.identity, "amount": 3})

        assert record.sequence == 2
        assert record.verify_chain(first.records[-1])

        replay = JournalReplay()
        replay.load(reopened.path)
        assert replay.verify().valid

    def test_reopen_with_other_key_refused(self, tmp_path, parties):
        directory = str(tmp_path / "journal")
        EventJournal(parties.custodian, directory).emit(
            RecordType.FEES_WITHDRAWN, {"to": parties.owner.identity, "amount": 1},
        )
        with pytest.raises(JournalError):
            EventJournal(PartyKey.from_seed(b"\x09" * 32), directory)

    def test_corrupt_last_line_refused(self, tmp_path, parties):
        directory = tmp_path / "journal"
        directory.mkdir()
        (directory / JOURNAL_FILENAME).write_text("{not json\n", encoding="utf-8")
        with pytest.raises(JournalError):
            EventJournal(parties.custodian, str(directory))

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            JournalReplay().load(tmp_path / "absent.jsonl")

    def test_load_malformed_line(self, tmp_path):
        path = tmp_path / JOURNAL_FILENAME
        path.write_text('{"record_id": "evt-1"\n', encoding="utf-8")
        with pytest.raises(ValueError):
            JournalReplay().load(path)

    def test_export_report(self, file_ledger, parties, tmp_path):
        open_trade(file_ledger, parties, until="paid")
        replay = JournalReplay()
        replay.load(file_ledger.journal.path)

        out = tmp_path / "reports" / "audit.json"
        replay.export_json(out)

        report = json.loads(out.read_text(encoding="utf-8"))
        assert report["valid"] is True
        assert report["total_records"] == 3
        assert report["signer"] == parties.custodian.identity

    def test_rebuild_refuses_recreated_trade(self, parties):
        journal = EventJournal(parties.custodian)
        created = {
            "trade_id":   1,
            "seller":     parties.seller.identity,
            "amount":     UNIT,
            "created_at": 1_700_000_000,
        }
        journal.emit(RecordType.TRADE_CREATED, created)
        journal.emit(RecordType.TRADE_CREATED, created)

        with pytest.raises(ValueError):
            JournalReplay(journal.records).rebuild()

    def test_restore_into_fresh_ledger(self, file_ledger, parties, asset, clock):
        settled = open_trade(file_ledger, parties, until="sent")
        file_ledger.confirm_reception(parties.buyer.identity, settled)
        open_trade(file_ledger, parties, until="paid")

        replay = JournalReplay()
        replay.load(file_ledger.journal.path)
        snapshot = replay.rebuild()

        journal = EventJournal(parties.custodian, str(file_ledger.journal.path.parent))
        resumed = EscrowLedger(parties.owner.identity, asset, clock, journal)
        resumed.restore(snapshot.trades.values(), snapshot.fee_balance)

        assert resumed.next_trade_id == 3
        assert resumed.fee_balance == 10 * UNIT
        assert resumed.get_trade(settled).status == TradeStatus.COMPLETED
        assert resumed.check_conservation()

        with pytest.raises(PreconditionError):
            resumed.restore(snapshot.trades.values(), snapshot.fee_balance)


class TestWriteFailures:

    def test_failed_append_keeps_committed_transition(
        self, file_ledger, parties, monkeypatch, caplog,
    ):
        journal  = file_ledger.journal
        trade_id = open_trade(file_ledger, parties)

        def refuse(record):
            raise JournalError("disk full")

        monkeypatch.setattr(journal, "_append", refuse)
        with caplog.at_level(logging.ERROR, logger="tradeescrow.core.journal"):
            paid = file_ledger.pay_trade(parties.buyer.identity, trade_id)

        assert paid.status == TradeStatus.PAID
        assert file_ledger.get_trade(trade_id).status == TradeStatus.PAID
        assert file_ledger.check_conservation()
        assert journal.degraded
        assert journal.pending == 2
        assert "Journal degraded" in caplog.text
        assert len(journal.path.read_text(encoding="utf-8").splitlines()) == 1

        with pytest.raises(JournalError):
            journal.flush()

        monkeypatch.undo()
        journal.flush()

        assert not journal.degraded
        replay = JournalReplay()
        replay.load(journal.path)
        assert replay.verify().valid
        assert [r.sequence for r in replay.records] == [0, 1, 2]
        assert replay.rebuild().trades[trade_id].status == TradeStatus.PAID

    def test_backlog_written_before_next_record(self, file_ledger, parties, monkeypatch):
        journal  = file_ledger.journal
        original = journal._append
        attempts = []

        def fail_once(record):
            attempts.append(record.sequence)
            if len(attempts) == 1:
                raise JournalError("transient")
            original(record)

        monkeypatch.setattr(journal, "_append", fail_once)
        trade_id = open_trade(file_ledger, parties)
        assert journal.pending == 1

        file_ledger.pay_trade(parties.buyer.identity, trade_id)

        assert journal.pending == 0
        assert attempts == [0, 0, 1, 2]
        lines = journal.path.read_text(encoding="utf-8").splitlines()
        assert [json.loads(line)["sequence"] for line in lines] == [0, 1, 2]

    def test_in_memory_journal_never_degrades(self, ledger, parties):
        open_trade(ledger, parties, until="paid")
        assert ledger.journal.pending == 0
        assert not ledger.journal.degraded
        ledger.journal.flush()
