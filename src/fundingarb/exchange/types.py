"""Exchange-specific type definitions and utility functions.

All monetary values use Decimal. Never use float for prices, quantities, or fees.
"""

from dataclasses import dataclass
from decimal import Decimal


@dataclass
class ContractInfo:
    """Trading constraints for a perpetual contract.

    Built from the ccxt market entry. ``contract_size`` is the amount of base
    asset one contract represents (1 on most venues, e.g. 0.0001 BTC on Gate).
    """

    symbol: str
    contract_size: Decimal = Decimal("1")
    min_amount: Decimal = Decimal("0")
    amount_step: Decimal = Decimal("0")
    tick_size: Decimal = Decimal("0")
    market_id: str = ""


def round_to_step(value: Decimal, step: Decimal) -> Decimal:
    """Round a value down to the nearest step increment.

    Uses integer division to ensure we always round DOWN (never up),
    which keeps an order within the requested notional.

    Args:
        value: The raw quantity to round.
        step: The minimum increment (e.g., 0.001 for BTC).

    Returns:
        The value rounded down to the nearest step.
    """
    return (value // step) * step
