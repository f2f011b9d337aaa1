"""Primary sales source (best-seller / movers-and-shakers style rank feeds)."""

from __future__ import annotations

from trendwatch.ingest.signals.sources.base import MetadataAdapter, SourceAdapter


class SalesRankSource(SourceAdapter):
    """Readings carry the sales-rank jump percentage as ``value``."""

    source_name = "primary_sales_source"
    default_signal_type = "sales_rank_jump"


class SalesRankMetadataSource(MetadataAdapter):
    source_name = "primary_sales_source"
