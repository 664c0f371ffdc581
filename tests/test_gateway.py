"""
tests/test_gateway.py

Signed call gateway: caller identity comes from a verified signature,
never from a bare claim.
"""

import json
import time

import pytest

from tradeescrow.core.exceptions import (
    AuthorizationError,
    PreconditionError,
    JournalError,
    RequestReplayError,
    SignatureError,
    StaleRequestError,
    ValidationError,
)
from tradeescrow.core.clock import ManualClock
from tradeescrow.core.models import TradeStatus
from tradeescrow.runtime.gateway import REQUEST_MAX_AGE, CallRequest, EscrowGateway

from tests.helpers.parties import UNIT


@pytest.fixture
def gateway(ledger) -> EscrowGateway:
    return EscrowGateway(ledger)


def _call(gateway, key, operation, **params):
    return gateway.submit(CallRequest.create(operation, params, key))


class TestSignedCalls:

    def test_full_flow_through_gateway(self, gateway, parties):
        trade = _call(gateway, parties.seller, "create_trade", amount=100 * UNIT)
        assert trade.seller == parties.seller.identity

        paid = _call(gateway, parties.buyer, "pay_trade", trade_id=trade.trade_id)
        assert paid.buyer == parties.buyer.identity

        _call(gateway, parties.seller, "mark_as_sent", trade_id=trade.trade_id)
        _call(gateway, parties.buyer, "dispute_trade", trade_id=trade.trade_id)
        resolved = _call(
            gateway, parties.owner, "resolve_dispute",
            trade_id=trade.trade_id, favor_buyer=False,
        )
        assert resolved.status == TradeStatus.COMPLETED

        withdrawn = _call(gateway, parties.owner, "withdraw_fees", to=parties.owner.identity)
        assert withdrawn == 10 * UNIT
        assert gateway.fee_balance() == 0
        assert gateway.get_trade(trade.trade_id).status == TradeStatus.COMPLETED

    def test_request_survives_json_transport(self, gateway, parties):
        request = CallRequest.create("create_trade", {"amount": 5 * UNIT}, parties.seller)
        wire    = json.dumps(request.to_dict())

        trade = gateway.submit(CallRequest.from_dict(json.loads(wire)))
        assert trade.amount == 5 * UNIT

    def test_ledger_errors_propagate(self, gateway, parties):
        trade = _call(gateway, parties.seller, "create_trade", amount=UNIT)
        with pytest.raises(AuthorizationError):
            _call(gateway, parties.buyer, "mark_as_sent", trade_id=trade.trade_id)
        with pytest.raises(PreconditionError):
            _call(gateway, parties.seller, "mark_as_sent", trade_id=trade.trade_id)


class TestRejectedRequests:

    def test_replayed_request(self, gateway, parties):
        request = CallRequest.create("create_trade", {"amount": UNIT}, parties.seller)
        gateway.submit(request)

        with pytest.raises(RequestReplayError):
            gateway.submit(request)
        assert gateway.ledger.next_trade_id == 2

    def test_tampered_params(self, gateway, parties):
        request = CallRequest.create("create_trade", {"amount": UNIT}, parties.seller)
        request.params["amount"] = 1000 * UNIT

        with pytest.raises(SignatureError):
            gateway.submit(request)
        assert gateway.ledger.trades() == []

    def test_claimed_identity_without_key(self, gateway, parties):
        """Signing as the stranger while claiming to be the owner."""
        request = CallRequest.create(
            "withdraw_fees", {"to": parties.stranger.identity}, parties.stranger,
        )
        request.caller = parties.owner.identity

        with pytest.raises(SignatureError):
            gateway.submit(request)

    def test_unsigned_request(self, gateway, parties):
        request = CallRequest.create("create_trade", {"amount": UNIT}, parties.seller)
        request.signature = None
        with pytest.raises(SignatureError):
            gateway.submit(request)

    def test_rejected_signature_does_not_burn_nonce(self, gateway, parties):
        request = CallRequest.create("create_trade", {"amount": UNIT}, parties.seller)
        good    = request.signature
        request.signature = good[:-4] + "AAAA"
        with pytest.raises(SignatureError):
            gateway.submit(request)

        request.signature = good
        assert gateway.submit(request).trade_id == 1

    @pytest.mark.parametrize("operation,params", [
        ("steal_funds", {}),
        ("_settle", {"trade_id": 1}),
        ("get_trade", {"trade_id": 1}),
        ("pay_trade", {}),
        ("pay_trade", {"trade_id": 1, "extra": True}),
        ("resolve_dispute", {"trade_id": 1, "favor_buyer": "yes"}),
        ("resolve_dispute", {"trade_id": 1, "favor_buyer": 1}),
    ])
    def test_malformed_requests(self, gateway, parties, operation, params):
        with pytest.raises(ValidationError):
            _call(gateway, parties.owner, operation, **params)

    def test_from_dict_missing_field(self):
        with pytest.raises(ValidationError):
            CallRequest.from_dict({"operation": "create_trade", "params": {}})

    def test_malformed_issued_at(self, gateway, parties):
        request = CallRequest.create("create_trade", {"amount": UNIT}, parties.seller)
        request.issued_at = "yesterday"
        with pytest.raises(ValidationError):
            gateway.submit(request)


class TestFreshnessWindow:

    def test_request_older_than_window(self, ledger, parties):
        wall    = ManualClock(start=int(time.time()))
        gateway = EscrowGateway(ledger, clock=wall)
        request = CallRequest.create("create_trade", {"amount": UNIT}, parties.seller)

        wall.advance(REQUEST_MAX_AGE + 5)
        with pytest.raises(StaleRequestError):
            gateway.submit(request)
        assert ledger.trades() == []

    def test_request_dated_in_the_future(self, ledger, parties):
        gateway = EscrowGateway(ledger, clock=ManualClock(start=int(time.time()) - 3600))
        request = CallRequest.create("create_trade", {"amount": UNIT}, parties.seller)

        with pytest.raises(StaleRequestError):
            gateway.submit(request)

    def test_stale_request_counts_as_replay(self, ledger, parties):
        wall    = ManualClock(start=int(time.time()))
        gateway = EscrowGateway(ledger, clock=wall)
        request = CallRequest.create("create_trade", {"amount": UNIT}, parties.seller)
        gateway.submit(request)

        wall.advance(REQUEST_MAX_AGE + 5)
        with pytest.raises(RequestReplayError):
            gateway.submit(request)
        assert ledger.next_trade_id == 2


class TestNonceLog:

    def test_nonces_survive_a_new_gateway(self, tmp_path, ledger, parties):
        log     = tmp_path / "nonces.jsonl"
        request = CallRequest.create("create_trade", {"amount": UNIT}, parties.seller)
        EscrowGateway(ledger, nonce_log=log).submit(request)

        restarted = EscrowGateway(ledger, nonce_log=log)
        assert restarted.tracked_nonces == 1
        with pytest.raises(RequestReplayError):
            restarted.submit(request)
        assert ledger.next_trade_id == 2

    def test_expired_nonces_compacted_on_load(self, tmp_path, ledger, parties):
        log  = tmp_path / "nonces.jsonl"
        wall = ManualClock(start=int(time.time()))
        gateway = EscrowGateway(ledger, clock=wall, nonce_log=log)
        for _ in range(3):
            gateway.submit(CallRequest.create("create_trade", {"amount": UNIT}, parties.seller))
        assert len(log.read_text(encoding="utf-8").splitlines()) == 3

        wall.advance(REQUEST_MAX_AGE + 5)
        later = EscrowGateway(ledger, clock=wall, nonce_log=log)

        assert later.tracked_nonces == 0
        assert log.read_text(encoding="utf-8") == ""

    def test_unwritable_log_dispatches_nothing(self, tmp_path, ledger, parties):
        log = tmp_path / "nonces.jsonl"
        gateway = EscrowGateway(ledger, nonce_log=log)
        log.mkdir()

        with pytest.raises(JournalError):
            _call(gateway, parties.seller, "create_trade", amount=UNIT)
        assert ledger.trades() == []
        assert gateway.tracked_nonces == 0

    def test_corrupt_log_refused(self, tmp_path, ledger):
        log = tmp_path / "nonces.jsonl"
        log.write_text("{not json\n", encoding="utf-8")

        with pytest.raises(JournalError):
            EscrowGateway(ledger, nonce_log=log)
