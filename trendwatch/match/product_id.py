"""Hard-key extraction from retailer product URLs."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExternalKey:
    """Retailer-scoped product identifier embedded in a URL."""

    retailer: str
    raw_id: str

    def as_string(self) -> str:
        return f"{self.retailer}:{self.raw_id}"


class ProductIdMapper:
    """Map retailer product URLs to stable external keys."""

    # Hostname fragment -> retailer
    _hosts = {
        "amazon.": "amazon",
        "amzn.": "amazon",
        "walmart.": "walmart",
        "target.": "target",
        "bestbuy.": "bestbuy",
    }

    _patterns = {
        "amazon": [
            r"/dp/([A-Z0-9]{10})",
            r"/gp/product/([A-Z0-9]{10})",
        ],
        "walmart": [
            r"/ip/(?:[^/]+/)?(\d+)",
            r"[?&]itemId=(\d+)",
        ],
        "target": [
            r"/A-(\d+)",
        ],
        "bestbuy": [
            r"[?&]skuId=(\d+)",
            r"/site/[^/]+/(\d+)\.p",
        ],
    }

    def retailer_for_url(self, url: Optional[str]) -> Optional[str]:
        if not url:
            return None
        host = (urlparse(url).hostname or "").lower()
        for fragment, retailer in self._hosts.items():
            if fragment in host:
                return retailer
        return None

    def extract(self, url: Optional[str]) -> Optional[ExternalKey]:
        """
        Extract the external key from a product URL.

        Args:
            url: Candidate product URL

        Returns:
            ExternalKey, or None when the URL carries no recognizable id
        """
        retailer = self.retailer_for_url(url)
        if not retailer:
            return None
        for pattern in self._patterns.get(retailer, []):
            match = re.search(pattern, url)
            if match:
                return ExternalKey(retailer=retailer, raw_id=match.group(1).upper())
        logger.debug("No %s product id found in %s", retailer, url)
        return None

    def external_key(self, url: Optional[str]) -> Optional[str]:
        key = self.extract(url)
        return key.as_string() if key else None


product_id_mapper = ProductIdMapper()
