"""Administrative routes: merges, rescoring, lifecycle, jobs."""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trendwatch.api.deps import get_database, require_admin_api_key
from trendwatch.db.models import JobRun
from trendwatch.lifecycle.controller import lifecycle_controller
from trendwatch.merge.discovery import find_duplicate_candidates, merge_duplicate_groups
from trendwatch.merge.operator import merge_operator
from trendwatch.scoring.engine import scoring_engine
from trendwatch.worker.tasks import JOB_DECAY, JOB_INGEST, JOB_METADATA_REFRESH, task_runner

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_api_key)],
)


class MergeRequest(BaseModel):
    duplicate_id: int
    target_id: int


class MergeResponse(BaseModel):
    target_id: int
    duplicate_id: int
    merged_signal_count: int
    dropped_signal_count: int
    transferred_review_count: int
    alias_slug: Optional[str]
    current_score: Optional[int]


class ScoreResponse(BaseModel):
    product_id: int
    base_score: int
    current_score: int
    peak_score: int
    days_trending: int


class StatusResponse(BaseModel):
    id: int
    status: str
    published_at: Optional[datetime]

    class Config:
        from_attributes = True


class ActorRequest(BaseModel):
    actor: str = "admin"


class ReflagRequest(ActorRequest):
    reason: str


class BatchResponse(BaseModel):
    updated: int
    skipped: int
    failed: int
    errors: List[str]
    aborted: bool


class DuplicateProduct(BaseModel):
    id: int
    name: str
    status: str
    external_key: Optional[str]
    on_primary_source: bool

    class Config:
        from_attributes = True


class DuplicateGroupResponse(BaseModel):
    target: DuplicateProduct
    duplicates: List[DuplicateProduct]


class JobRunResponse(BaseModel):
    run_id: str
    job_type: str
    trigger: Optional[str]
    status: str
    started_at: datetime
    completed_at: Optional[datetime]
    updated: int
    skipped: int
    failed: int
    error_message: Optional[str]

    class Config:
        from_attributes = True


@router.post("/merge", response_model=MergeResponse)
async def merge_products(request: MergeRequest, db: AsyncSession = Depends(get_database)):
    """Merge a duplicate product into its target."""
    result = await merge_operator.merge(db, request.duplicate_id, request.target_id)
    return MergeResponse(
        target_id=result.target_id,
        duplicate_id=result.duplicate_id,
        merged_signal_count=result.merged_signal_count,
        dropped_signal_count=result.dropped_signal_count,
        transferred_review_count=result.transferred_review_count,
        alias_slug=result.alias_slug,
        current_score=result.score.current_score if result.score else None,
    )


@router.get("/duplicates", response_model=List[DuplicateGroupResponse])
async def list_duplicates(
    threshold: Optional[float] = Query(None, gt=0, le=1),
    db: AsyncSession = Depends(get_database),
):
    """Products that look like the same item, with the one each group would keep."""
    groups = await find_duplicate_candidates(db, threshold)
    return [
        DuplicateGroupResponse(
            target=DuplicateProduct.model_validate(group.target),
            duplicates=[DuplicateProduct.model_validate(p) for p in group.duplicates],
        )
        for group in groups
    ]


@router.post("/duplicates/merge", response_model=BatchResponse)
async def merge_duplicates(
    threshold: Optional[float] = Query(None, gt=0, le=1),
    db: AsyncSession = Depends(get_database),
):
    """Find duplicate groups and merge each into its target."""
    groups = await find_duplicate_candidates(db, threshold)
    summary = await merge_duplicate_groups(db, groups)
    return BatchResponse(**summary.to_dict())


@router.post("/backfill-decay", response_model=BatchResponse)
async def backfill_decay_fields(db: AsyncSession = Depends(get_database)):
    """Populate first_detected_at on legacy products and rescore them."""
    summary = await scoring_engine.backfill_decay_fields(db)
    return BatchResponse(**summary.to_dict())


@router.post("/products/{product_id}/reset-peak", response_model=ScoreResponse)
async def reset_peak(product_id: int, db: AsyncSession = Depends(get_database)):
    result = await scoring_engine.reset_peak(db, product_id)
    return ScoreResponse(
        product_id=result.product_id,
        base_score=result.base_score,
        current_score=result.current_score,
        peak_score=result.peak_score,
        days_trending=result.days_trending,
    )


@router.post("/products/{product_id}/content-ready", response_model=StatusResponse)
async def mark_content_ready(product_id: int, db: AsyncSession = Depends(get_database)):
    """Content generation finished: FLAGGED -> DRAFT."""
    return await lifecycle_controller.mark_content_ready(db, product_id)


@router.post("/products/{product_id}/publish", response_model=StatusResponse)
async def publish_product(
    product_id: int,
    request: ActorRequest,
    db: AsyncSession = Depends(get_database),
):
    return await lifecycle_controller.publish(db, product_id, request.actor)


@router.post("/products/{product_id}/reflag", response_model=StatusResponse)
async def reflag_product(
    product_id: int,
    request: ReflagRequest,
    db: AsyncSession = Depends(get_database),
):
    """Send a product back to FLAGGED (audited)."""
    return await lifecycle_controller.reflag(db, product_id, request.actor, request.reason)


@router.delete("/products/{product_id}", status_code=204)
async def delete_product(
    product_id: int,
    actor: str = Query("admin"),
    db: AsyncSession = Depends(get_database),
):
    """Hard-delete a product and everything attached to it."""
    await lifecycle_controller.delete_product(db, product_id, actor)


@router.post("/jobs/{job_type}", response_model=BatchResponse)
async def trigger_job(job_type: str):
    """Run a batch job now (ingest, decay, metadata_refresh)."""
    jobs = {
        JOB_INGEST: task_runner.ingest_signals,
        JOB_DECAY: task_runner.recalculate_scores,
        JOB_METADATA_REFRESH: task_runner.refresh_metadata,
    }
    job = jobs.get(job_type)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Unknown job '{job_type}'")

    summary = await job(trigger="manual")
    if summary is None:
        raise HTTPException(status_code=409, detail=f"{job_type} is already running")
    return BatchResponse(**summary.to_dict())


@router.get("/jobs", response_model=List[JobRunResponse])
async def list_job_runs(
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_database),
):
    """Most recent batch runs."""
    result = await db.execute(select(JobRun).order_by(JobRun.started_at.desc()).limit(limit))
    return result.scalars().all()


def _known_job(job_type: str) -> str:
    if job_type not in (JOB_INGEST, JOB_DECAY, JOB_METADATA_REFRESH):
        raise HTTPException(status_code=404, detail=f"Unknown job '{job_type}'")
    return job_type


@router.get("/jobs/{job_type}/lock")
async def get_job_lock(job_type: str):
    """Who holds the job lock, if anyone."""
    info = await task_runner.lock_manager.get_lock_info(_known_job(job_type))
    return {"job_type": job_type, "locked": info is not None, "holder": info}


@router.delete("/jobs/{job_type}/lock", status_code=204)
async def force_release_job_lock(job_type: str):
    """Clear a lock left behind by a crashed run."""
    await task_runner.lock_manager.force_unlock(_known_job(job_type))
