"""
tradeescrow: Basic Usage Example

Demonstrates:
- An in-memory asset and a manual clock
- One trade settled by confirmation
- One trade refunded by timeout
- Verifying the signed journal
"""

from tradeescrow import EscrowLedger, InMemoryAsset, ManualClock, PartyKey
from tradeescrow.core.journal import EventJournal
from tradeescrow.core.replay import JournalReplay
from tradeescrow.escrow.engine import TIMEOUT_SECONDS


def main():
    """Walk two trades through the escrow."""

    print("=" * 60)
    print("tradeescrow: Basic Usage Example")
    print("=" * 60)
    print()

    owner, seller, buyer, custodian = (PartyKey.generate() for _ in range(4))

    # 1. Asset and ledger
    print("1. Funding the buyer...")
    usdc = InMemoryAsset(custodian=custodian.identity)
    usdc.mint(buyer.identity, usdc.parse_units("500"))
    usdc.approve(buyer.identity, custodian.identity, usdc.parse_units("500"))

    clock  = ManualClock()
    ledger = EscrowLedger(
        owner=   owner.identity,
        asset=   usdc,
        clock=   clock,
        journal= EventJournal(custodian),
    )
    print(f"  Buyer balance: {usdc.format_units(usdc.balance_of(buyer.identity))} USDC")
    print()

    # 2. Happy path
    print("2. Trade #1: created, paid, sent, confirmed...")
    trade = ledger.create_trade(seller.identity, usdc.parse_units("100"))
    ledger.pay_trade(buyer.identity, trade.trade_id)
    ledger.mark_as_sent(seller.identity, trade.trade_id)
    ledger.confirm_reception(buyer.identity, trade.trade_id)
    print(f"  Seller received: {usdc.format_units(usdc.balance_of(seller.identity))} USDC")
    print(f"  Fees held:       {usdc.format_units(ledger.fee_balance)} USDC")
    print()

    # 3. Timeout
    print("3. Trade #2: paid, seller never ships...")
    trade = ledger.create_trade(seller.identity, usdc.parse_units("50"))
    ledger.pay_trade(buyer.identity, trade.trade_id)
    clock.advance(TIMEOUT_SECONDS)
    refunded = ledger.expire_trade(owner.identity, trade.trade_id)
    print(f"  Status: {refunded.status.label}")
    print(f"  Buyer balance: {usdc.format_units(usdc.balance_of(buyer.identity))} USDC")
    print()

    # 4. Fees and conservation
    print("4. Owner withdraws fees...")
    withdrawn = ledger.withdraw_fees(owner.identity, owner.identity)
    print(f"  Withdrawn: {usdc.format_units(withdrawn)} USDC")
    print(f"  Custody balanced: {ledger.check_conservation()}")
    print()

    # 5. Journal
    print("5. Verifying journal...")
    summary = JournalReplay(ledger.journal.records).verify()
    print(f"  Records: {summary.total_records}")
    print(f"  Valid:   {summary.valid}")
    print()

    print("=" * 60)
    print("Basic usage complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
