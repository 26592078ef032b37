"""Position sizing — pure math, no I/O.

Converts free margin, risk fraction, and leverage into an order quantity.
"""


def calculate_size(
    balance: float,
    price: float,
    risk_per_trade: float,
    leverage: int,
) -> float:
    """Calculate the base-asset quantity for a new market order.

    Formula::

        margin   = balance × risk_per_trade
        notional = margin × leverage
        size     = notional / price

    No lot-size rounding is applied; the gateway floors the quantity to the
    exchange step size when the order is submitted.

    Args:
        balance: Free margin in the base currency (e.g. 1_000.0).
        price: Current price of the symbol.
        risk_per_trade: Fraction of balance committed as margin, in (0, 1].
        leverage: Leverage multiplier (e.g. 5).

    Returns:
        Quantity in contracts / base asset (never negative).

    Raises:
        ValueError: If any input is outside its valid range.
    """
    if balance < 0:
        raise ValueError(f"balance must be non-negative, got {balance}")
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    if not 0 < risk_per_trade <= 1:
        raise ValueError(f"risk_per_trade must be in (0, 1], got {risk_per_trade}")
    if leverage <= 0:
        raise ValueError(f"leverage must be positive, got {leverage}")

    return (balance * risk_per_trade * leverage) / price
