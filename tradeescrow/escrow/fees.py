"""
Fee model.

A flat 5% is charged on BOTH legs of a trade, computed independently from
the same principal:

    buyer pays     amount + fee(amount)
    seller gets    amount - fee(amount)
    ledger keeps   2 * fee(amount)

Integer arithmetic with truncating division throughout. No rounding
correction is applied anywhere else.
"""

FEE_BPS = 500
BPS_DENOMINATOR = 10_000


def fee_amount(amount: int) -> int:
    """fee(amount) = floor(amount * FEE_BPS / 10000)"""
    return amount * FEE_BPS // BPS_DENOMINATOR


def buyer_obligation(amount: int) -> int:
    """Total debited from the buyer, and held in custody until settlement."""
    return amount + fee_amount(amount)


def seller_payout(amount: int) -> int:
    return amount - fee_amount(amount)


def settlement_fee(amount: int) -> int:
    """Fee take added to the ledger's fee balance when a trade settles."""
    return 2 * fee_amount(amount)
