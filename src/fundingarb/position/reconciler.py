"""Pairs open positions across venues into hedged groups by base token.

Positions are read fresh from every adapter on each call; nothing here is
persisted. A venue that cannot be queried contributes no positions for that
pass. Flat rows (zero contracts) are dropped before grouping.
"""

from collections.abc import Iterable

from fundingarb.concurrency import gather_outcomes
from fundingarb.exchange.registry import ExchangeRegistry
from fundingarb.exchange.symbols import extract_base_token
from fundingarb.logging import get_logger
from fundingarb.models import ExchangeId, HedgedPositionGroup, Position, PositionSide

logger = get_logger(__name__)


def group_positions(positions: Iterable[Position]) -> list[HedgedPositionGroup]:
    """Group non-flat positions by base token, first-seen order.

    Each group keeps the first long and the first short encountered; any
    further rows on an already-filled side are ignored.
    """
    longs: dict[str, Position] = {}
    shorts: dict[str, Position] = {}
    order: list[str] = []

    for position in positions:
        if position.contracts == 0:
            continue
        base_token = extract_base_token(position.symbol)
        if base_token not in longs and base_token not in shorts:
            order.append(base_token)
        bucket = longs if position.side is PositionSide.LONG else shorts
        bucket.setdefault(base_token, position)

    return [
        HedgedPositionGroup(
            base_token=base_token,
            long=longs.get(base_token),
            short=shorts.get(base_token),
        )
        for base_token in order
    ]


class PositionReconciler:
    """Reads positions from every adapter and reconciles them into hedge groups.

    Args:
        registry: Exchange registry providing the adapters.
    """

    def __init__(self, registry: ExchangeRegistry) -> None:
        self._registry = registry

    async def fetch_positions(
        self, exchanges: Iterable[ExchangeId] | None = None
    ) -> list[Position]:
        """Fetch positions from all adapters concurrently, in enumeration order."""
        outcomes = await gather_outcomes(
            (exchange_id, adapter.get_positions())
            for exchange_id, adapter in self._registry.items(exchanges)
        )

        positions: list[Position] = []
        for outcome in outcomes:
            if not outcome.ok:
                logger.warning(
                    "positions_fetch_failed",
                    exchange=outcome.key.value,
                    error=outcome.reason,
                )
                continue
            positions.extend(outcome.result or [])
        return positions

    async def reconcile(
        self, exchanges: Iterable[ExchangeId] | None = None
    ) -> list[HedgedPositionGroup]:
        """Fetch open positions and group them by base token."""
        positions = await self.fetch_positions(exchanges)
        groups = group_positions(positions)
        logger.debug(
            "positions_reconciled",
            positions=len(positions),
            groups=len(groups),
            hedged=sum(1 for group in groups if group.has_hedge),
        )
        return groups
