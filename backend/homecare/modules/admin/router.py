"""Admin router for usage statistics."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from homecare.core.database import get_db
from homecare.modules.admin.service import AdminUsageService
from homecare.modules.auth.jwt import require_admin
from homecare.modules.usage.exceptions import UsageServiceError
from homecare.modules.usage.schemas import Envelope, UsageStatsResponse

router = APIRouter(prefix="/admin", tags=["admin"])


def get_admin_usage_service(session: AsyncSession = Depends(get_db)) -> AdminUsageService:
    """Dependency to get admin usage service."""
    return AdminUsageService(session)


@router.get(
    "/usage/stats",
    response_model=Envelope[UsageStatsResponse],
    summary="Platform usage statistics for the current period",
)
async def get_usage_stats(
    refresh: bool = Query(False, description="Bypass the stats cache"),
    service: AdminUsageService = Depends(get_admin_usage_service),
    _admin_id=Depends(require_admin),
):
    try:
        stats = await service.get_usage_stats(refresh=refresh)
        return Envelope(data=stats)
    except UsageServiceError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        )
