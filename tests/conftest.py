"""
Shared fixtures: deterministic party keys, a funded in-memory asset, a
manual clock and a ledger wired to all three.
"""

import pytest

from tradeescrow.core.clock import ManualClock
from tradeescrow.core.crypto import PartyKey
from tradeescrow.core.journal import EventJournal
from tradeescrow.escrow.engine import EscrowLedger
from tradeescrow.transfer.memory import InMemoryAsset

from tests.helpers.parties import Parties, UNIT


@pytest.fixture
def parties() -> Parties:
    return Parties(
        owner=     PartyKey.from_seed(b"\x01" * 32),
        seller=    PartyKey.from_seed(b"\x02" * 32),
        buyer=     PartyKey.from_seed(b"\x03" * 32),
        custodian= PartyKey.from_seed(b"\x04" * 32),
        stranger=  PartyKey.from_seed(b"\x05" * 32),
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start=1_700_000_000)


@pytest.fixture
def asset(parties) -> InMemoryAsset:
    """Buyer holds 1000 units and has approved the custodian for all of it."""
    usdc = InMemoryAsset(custodian=parties.custodian.identity)
    usdc.mint(parties.buyer.identity, 1000 * UNIT)
    usdc.approve(parties.buyer.identity, parties.custodian.identity, 1000 * UNIT)
    return usdc


@pytest.fixture
def journal(parties) -> EventJournal:
    return EventJournal(parties.custodian)


@pytest.fixture
def ledger(parties, asset, clock, journal) -> EscrowLedger:
    return EscrowLedger(
        owner=   parties.owner.identity,
        asset=   asset,
        clock=   clock,
        journal= journal,
    )
