"""FastAPI dependencies."""

import hmac
import logging
from typing import AsyncIterator

from fastapi import Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from trendwatch.config import settings
from trendwatch.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)


async def get_database() -> AsyncIterator[AsyncSession]:
    """Request-scoped session. Operations commit their own work; leftovers are rolled back."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            if session.in_transaction():
                await session.rollback()


async def require_admin_api_key(
    request: Request,
    x_admin_api_key: str = Header(..., alias="X-Admin-API-Key"),
) -> None:
    """
    Guard merges, lifecycle transitions, manual signals and job triggers.

    Raises:
        HTTPException: 503 if no key is configured, 403 if the key is wrong
    """
    if not settings.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API key not configured",
        )

    if not hmac.compare_digest(x_admin_api_key.encode(), settings.admin_api_key.encode()):
        client = request.client.host if request.client else "unknown"
        logger.warning(f"Rejected admin request to {request.url.path} from {client}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin API key")
