"""
tradeescrow: Production Setup Example

Demonstrates:
- Party keys on disk
- A YAML-configured deployment with a persistent journal
- Signed calls through the gateway
- Checking the journal with the CLI afterwards
"""

from pathlib import Path

from tradeescrow.core.crypto import PartyKey
from tradeescrow.runtime.context import RuntimeContext
from tradeescrow.runtime.gateway import CallRequest
from tradeescrow.transfer.memory import InMemoryAsset


def setup_production(root: Path) -> RuntimeContext:
    """Write keys and config under root and start a deployment."""

    print("=" * 60)
    print("tradeescrow: Production Setup")
    print("=" * 60)
    print()

    keys_dir = root / "keys"
    keys_dir.mkdir(parents=True, exist_ok=True)

    # 1. Owner key
    print("1. Generating owner key...")
    owner = PartyKey.generate()
    owner.save(keys_dir / "owner.pem")
    print(f"  Owner: {owner.identity[:16]}...")
    print()

    # 2. Config
    print("2. Writing escrow.yaml...")
    config_path = root / "escrow.yaml"
    config_path.write_text(
        "escrow:\n"
        f"  owner: '{owner.identity}'\n"
        "  custodian_key: keys/custodian.pem\n"
        "  journal: journal\n"
        "asset:\n"
        "  symbol: USDC\n"
        "  decimals: 6\n",
        encoding="utf-8",
    )
    print()

    # 3. Deployment
    print("3. Starting deployment...")
    ctx = RuntimeContext.from_config(
        config_path,
        lambda custodian, config: InMemoryAsset(
            custodian, config.asset_symbol, config.asset_decimals,
        ),
    )
    print(f"  Custodian: {ctx.custodian_key.identity[:16]}...")
    print(f"  Journal:   {ctx.journal.path}")
    print()
    return ctx


def demo_signed_calls(ctx: RuntimeContext) -> None:
    """Seller and buyer act through signed requests only."""

    seller = PartyKey.generate()
    buyer  = PartyKey.generate()
    usdc   = ctx.ledger.asset
    usdc.mint(buyer.identity, usdc.parse_units("210"))
    usdc.approve(buyer.identity, ctx.custodian_key.identity, usdc.parse_units("210"))

    print("4. Seller opens a trade...")
    trade = ctx.gateway.submit(
        CallRequest.create("create_trade", {"amount": usdc.parse_units("200")}, seller),
    )
    print(f"  Trade #{trade.trade_id} for {usdc.format_units(trade.amount)} USDC")

    print("5. Buyer pays, seller ships, buyer confirms...")
    for key, operation in (
        (buyer, "pay_trade"),
        (seller, "mark_as_sent"),
        (buyer, "confirm_reception"),
    ):
        trade = ctx.gateway.submit(
            CallRequest.create(operation, {"trade_id": trade.trade_id}, key),
        )
    print(f"  Status: {trade.status.label}")
    print()

    print("Next steps:")
    print(f"  tradeescrow verify {ctx.journal.path}")
    print(f"  tradeescrow status {ctx.journal.path} {trade.trade_id}")
    print(f"  tradeescrow fees {ctx.journal.path}")


if __name__ == "__main__":
    context = setup_production(Path("escrow-deployment"))
    demo_signed_calls(context)
