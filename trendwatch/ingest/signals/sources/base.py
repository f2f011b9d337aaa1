"""Base classes for source adapters.

Adapters are black boxes that return normalized readings. A configured
``feed_url`` is fetched as a JSON list of readings; otherwise
``mock_readings`` from the adapter config are replayed (local runs, tests).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

import httpx

from trendwatch.errors import AdapterError

logger = logging.getLogger(__name__)


@dataclass
class SignalReading:
    """One normalized observation of a product candidate."""

    candidate_name: str
    source: str
    signal_type: str
    detected_at: datetime
    candidate_url: Optional[str] = None
    value: Optional[float] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    # Optional quote harvested alongside a discussion mention
    review: Optional[dict[str, Any]] = None


@dataclass
class MetadataReading:
    """Slow-changing product details from the primary source."""

    star_rating: Optional[float] = None
    review_count: Optional[int] = None
    price: Optional[float] = None
    image_url: Optional[str] = None


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return datetime.utcnow()


class SourceAdapter:
    """Base class for signal source adapters."""

    source_name: str = "unknown"
    default_signal_type: str = "mention"

    async def fetch_readings(self, config: Optional[dict] = None) -> List[SignalReading]:
        """
        Fetch the current batch of readings.

        Raises:
            AdapterError: source unreachable, blocked or malformed
        """
        config = config or {}
        feed_url = config.get("feed_url")
        if feed_url:
            items = await self._fetch_feed(feed_url, config)
            return self.build_readings(items)
        mock_readings = config.get("mock_readings") or []
        if mock_readings:
            return self.build_readings(mock_readings)
        logger.debug("No readings configured for %s", self.source_name)
        return []

    async def _fetch_feed(self, url: str, config: dict) -> list[dict]:
        timeout = config.get("timeout_seconds", 20.0)
        try:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                response = await client.get(url, headers=config.get("headers") or {})
        except httpx.HTTPError as e:
            raise AdapterError(self.source_name, f"request failed: {e}") from e

        if response.status_code in (403, 429):
            raise AdapterError(
                self.source_name, f"blocked (HTTP {response.status_code})", blocked=True
            )
        if response.status_code >= 400:
            raise AdapterError(self.source_name, f"HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise AdapterError(self.source_name, "response is not JSON") from e

        items = payload.get("readings") if isinstance(payload, dict) else payload
        if not isinstance(items, list):
            raise AdapterError(self.source_name, "expected a list of readings")
        return items

    def build_readings(self, items: List[dict]) -> List[SignalReading]:
        """Build readings from raw dict entries; malformed entries are skipped."""
        readings: List[SignalReading] = []
        for item in items:
            try:
                readings.append(self.build_reading(item))
            except (AdapterError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed %s reading: %s", self.source_name, exc)
        return readings

    def build_reading(self, item: dict) -> SignalReading:
        if not isinstance(item, dict):
            raise AdapterError(self.source_name, "reading must be an object")
        name = (item.get("candidate_name") or item.get("name") or "").strip()
        url = item.get("candidate_url") or item.get("url")
        if not name and not url:
            raise AdapterError(self.source_name, "reading has no candidate name or URL")
        value = item.get("value")
        return SignalReading(
            candidate_name=name,
            candidate_url=url,
            source=self.source_name,
            signal_type=item.get("signal_type") or self.default_signal_type,
            value=float(value) if value is not None else None,
            metadata=dict(item.get("metadata") or {}),
            detected_at=_parse_datetime(item.get("detected_at")),
            review=item.get("review"),
        )


class MetadataAdapter:
    """Base class for primary source metadata lookups (ratings, price)."""

    source_name: str = "unknown"

    async def fetch_metadata(self, product, config: Optional[dict] = None) -> Optional[MetadataReading]:
        """
        Look up current metadata for a product.

        Mock entries in ``config["mock_metadata"]`` are keyed by external key.

        Returns:
            MetadataReading, or None when the source has nothing for the product
        """
        config = config or {}
        entries = config.get("mock_metadata") or {}
        entry = entries.get(product.external_key or "") if product.external_key else None
        if entry is None:
            return None
        return MetadataReading(
            star_rating=entry.get("star_rating"),
            review_count=entry.get("review_count"),
            price=entry.get("price"),
            image_url=entry.get("image_url"),
        )
