"""
Health Check Endpoints.

Liveness answers without touching anything; readiness runs a trivial query
against the approval database so deployments can wait for the store.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from approval_chain.core.database import get_session
from approval_chain.core.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health", summary="Liveness check", response_description="Status object.")
async def health_check():
    return {"status": "ok"}


@router.get(
    "/health/ready",
    summary="Readiness check",
    description="Verify the approval database accepts queries.",
    responses={503: {"description": "Database unavailable"}},
)
async def readiness_check(session: AsyncSession = Depends(get_session)):
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning(f"Readiness check failed: {exc}")
        return JSONResponse(status_code=503, content={"status": "unavailable", "database": "error"})
    return {"status": "ok", "database": "ok"}
