"""Social discussion source (forum posts mentioning a product)."""

from __future__ import annotations

from trendwatch.ingest.signals.sources.base import SourceAdapter


class DiscussionSource(SourceAdapter):
    """Readings carry the post's engagement score as ``value``."""

    source_name = "discussion_source"
    default_signal_type = "mention"
