"""Cross-exchange funding-rate opportunity detection.

For a base token listed on several venues, going long where the funding rate
is lowest and short where it is highest collects the rate difference every
funding period while the two price legs offset each other:

  long_rate  = min(rate_a, rate_b)
  short_rate = max(rate_a, rate_b)
  rate_difference = short_rate - long_rate   (>= 0, sign of either leg irrelevant)

Two selection policies:
- pairwise: every unordered venue pair per base token, ranked, top ``limit``.
- extremal: only the lowest/highest venue per base token, kept when the
  difference reaches ``threshold``; no truncation.

Both sorts are stable, so equal differences keep encounter order
(adapter enumeration order, then row order within an adapter).
"""

from collections.abc import Iterable
from decimal import Decimal
from typing import Literal

from fundingarb.logging import get_logger
from fundingarb.models import ArbitrageOpportunity, FundingRate

logger = get_logger(__name__)

DEFAULT_LIMIT = 10
DEFAULT_THRESHOLD = Decimal("0.0001")

Policy = Literal["pairwise", "extremal"]


def group_by_base_token(rates: Iterable[FundingRate]) -> dict[str, list[FundingRate]]:
    """Group rates by base token, one row per exchange (first seen wins).

    Group order and row order follow encounter order.
    """
    groups: dict[str, list[FundingRate]] = {}
    for rate in rates:
        group = groups.setdefault(rate.base_token, [])
        if any(existing.exchange == rate.exchange for existing in group):
            continue
        group.append(rate)
    return groups


def build_opportunity(a: FundingRate, b: FundingRate) -> ArbitrageOpportunity:
    """Orient a pair of rates into long (lower rate) and short (higher rate) legs.

    On equal rates ``a`` is the long leg.
    """
    if a.funding_rate <= b.funding_rate:
        long_leg, short_leg = a, b
    else:
        long_leg, short_leg = b, a

    return ArbitrageOpportunity(
        base_token=a.base_token,
        long_exchange=long_leg.exchange,
        short_exchange=short_leg.exchange,
        long_rate=long_leg.funding_rate,
        short_rate=short_leg.funding_rate,
        rate_difference=short_leg.funding_rate - long_leg.funding_rate,
        long_symbol=long_leg.symbol,
        short_symbol=short_leg.symbol,
        long_mark_price=long_leg.mark_price,
        long_index_price=long_leg.index_price,
        short_mark_price=short_leg.mark_price,
        short_index_price=short_leg.index_price,
        long_next_funding=long_leg.funding_timestamp,
        short_next_funding=short_leg.funding_timestamp,
    )


def rank(opportunities: list[ArbitrageOpportunity]) -> list[ArbitrageOpportunity]:
    """Sort by rate_difference descending; stable for ties."""
    return sorted(opportunities, key=lambda o: o.rate_difference, reverse=True)


class OpportunityDetector:
    """Finds and ranks cross-exchange funding-rate differentials.

    Args:
        policy: Policy used by detect().
        limit: Truncation for the pairwise policy.
        threshold: Minimum rate difference for the extremal policy.
    """

    def __init__(
        self,
        policy: Policy = "pairwise",
        limit: int = DEFAULT_LIMIT,
        threshold: Decimal = DEFAULT_THRESHOLD,
    ) -> None:
        self._policy = policy
        self._limit = limit
        self._threshold = threshold

    @property
    def policy(self) -> Policy:
        return self._policy

    def detect(self, rates: Iterable[FundingRate]) -> list[ArbitrageOpportunity]:
        """Run the configured policy."""
        if self._policy == "extremal":
            return self.find_extremal(rates, self._threshold)
        return self.find_pairwise(rates, self._limit)

    def find_pairwise(
        self, rates: Iterable[FundingRate], limit: int | None = DEFAULT_LIMIT
    ) -> list[ArbitrageOpportunity]:
        """Emit one opportunity per unordered exchange pair for every base token.

        Args:
            rates: Normalized funding rates from any number of venues.
            limit: Keep only the top ``limit`` by rate difference (None keeps all).

        Returns:
            Opportunities sorted by rate_difference descending.
        """
        candidates: list[ArbitrageOpportunity] = []

        for group in group_by_base_token(rates).values():
            if len(group) < 2:
                continue
            for i in range(len(group)):
                for j in range(i + 1, len(group)):
                    candidates.append(build_opportunity(group[i], group[j]))

        ranked = rank(candidates)
        if limit is not None:
            ranked = ranked[:limit]

        logger.debug(
            "pairwise_opportunities",
            candidates=len(candidates),
            returned=len(ranked),
        )
        return ranked

    def find_extremal(
        self,
        rates: Iterable[FundingRate],
        threshold: Decimal = DEFAULT_THRESHOLD,
    ) -> list[ArbitrageOpportunity]:
        """Emit at most one opportunity per base token: lowest vs highest rate.

        Args:
            rates: Normalized funding rates from any number of venues.
            threshold: Minimum rate difference (inclusive) to keep an opportunity.

        Returns:
            Opportunities sorted by rate_difference descending, not truncated.
        """
        opportunities: list[ArbitrageOpportunity] = []

        for group in group_by_base_token(rates).values():
            if len(group) < 2:
                continue
            ordered = sorted(group, key=lambda r: r.funding_rate, reverse=True)
            highest, lowest = ordered[0], ordered[-1]

            opportunity = build_opportunity(lowest, highest)
            if opportunity.rate_difference >= threshold:
                opportunities.append(opportunity)

        ranked = rank(opportunities)
        logger.debug(
            "extremal_opportunities",
            threshold=str(threshold),
            returned=len(ranked),
        )
        return ranked
