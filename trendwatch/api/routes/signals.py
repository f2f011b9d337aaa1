"""Manual curation signal intake."""

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from trendwatch.api.deps import get_database, require_admin_api_key
from trendwatch.ingest.signals.ingestor import signal_ingestor
from trendwatch.ingest.signals.sources import SignalReading

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/signals", tags=["signals"])


class ReadingCreate(BaseModel):
    candidate_name: str = ""
    candidate_url: Optional[str] = None
    source: str = "manual_curation"
    signal_type: str = "manual_search"
    value: Optional[float] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    detected_at: Optional[datetime] = None


class IngestResponse(BaseModel):
    product_id: int
    is_new_product: bool
    match_method: str
    inserted: bool
    signal_id: Optional[int]
    base_score: Optional[int] = None
    current_score: Optional[int] = None


@router.post("", response_model=IngestResponse, status_code=201)
async def ingest_reading(
    reading: ReadingCreate,
    db: AsyncSession = Depends(get_database),
    _admin: None = Depends(require_admin_api_key),
):
    """
    Ingest one reading (e.g. an editor adding a product by hand).

    Re-posting the same reading is a no-op reported as ``inserted=false``.
    """
    outcome = await signal_ingestor.ingest_reading(
        db,
        SignalReading(
            candidate_name=reading.candidate_name,
            candidate_url=reading.candidate_url,
            source=reading.source,
            signal_type=reading.signal_type,
            value=reading.value,
            metadata=reading.metadata,
            detected_at=reading.detected_at or datetime.utcnow(),
        ),
    )
    logger.info(
        f"Manual reading for product {outcome.product_id} "
        f"({outcome.match_method}, inserted={outcome.inserted})"
    )
    return IngestResponse(
        product_id=outcome.product_id,
        is_new_product=outcome.is_new_product,
        match_method=outcome.match_method,
        inserted=outcome.inserted,
        signal_id=outcome.signal_id,
        base_score=outcome.score.base_score if outcome.score else None,
        current_score=outcome.score.current_score if outcome.score else None,
    )
