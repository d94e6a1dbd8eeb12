"""Market data layer -- funding-rate aggregation, opportunity detection, and snapshot caching."""

from fundingarb.market_data.aggregator import RateAggregator
from fundingarb.market_data.opportunity_detector import OpportunityDetector
from fundingarb.market_data.snapshot import SnapshotCache, SnapshotService

__all__ = ["OpportunityDetector", "RateAggregator", "SnapshotCache", "SnapshotService"]
