"""Manual curation: products an editor adds by hand."""

from __future__ import annotations

from trendwatch.ingest.signals.sources.base import SourceAdapter


class ManualCurationSource(SourceAdapter):
    source_name = "manual_curation"
    default_signal_type = "manual_search"
