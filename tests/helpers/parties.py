"""
Test parties and scenario helpers.
"""

from dataclasses import dataclass

from tradeescrow.core.crypto import PartyKey

# One whole unit of a 6-decimal asset.
UNIT = 10 ** 6


@dataclass
class Parties:
    owner:     PartyKey
    seller:    PartyKey
    buyer:     PartyKey
    custodian: PartyKey
    stranger:  PartyKey


def open_trade(ledger, parties, amount=100 * UNIT, until="created"):
    """Drive a fresh trade up to the named stage and return its id."""
    trade = ledger.create_trade(parties.seller.identity, amount)
    if until == "created":
        return trade.trade_id
    ledger.pay_trade(parties.buyer.identity, trade.trade_id)
    if until == "paid":
        return trade.trade_id
    ledger.mark_as_sent(parties.seller.identity, trade.trade_id)
    if until == "sent":
        return trade.trade_id
    ledger.dispute_trade(parties.buyer.identity, trade.trade_id)
    if until == "dispute":
        return trade.trade_id
    raise ValueError(f"unknown stage {until!r}")
