"""Source adapter implementations."""

from trendwatch.ingest.signals.sources.base import (
    MetadataAdapter,
    MetadataReading,
    SignalReading,
    SourceAdapter,
)
from trendwatch.ingest.signals.sources.discussion import DiscussionSource
from trendwatch.ingest.signals.sources.manual import ManualCurationSource
from trendwatch.ingest.signals.sources.sales_rank import (
    SalesRankMetadataSource,
    SalesRankSource,
)

__all__ = [
    "MetadataAdapter",
    "MetadataReading",
    "SignalReading",
    "SourceAdapter",
    "DiscussionSource",
    "ManualCurationSource",
    "SalesRankMetadataSource",
    "SalesRankSource",
]
