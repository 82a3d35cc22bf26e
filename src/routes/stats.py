# src/routes/stats.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any
from core.dependencies import get_query_service
from db.database import get_db
from schemas.base_schemas import ApiResponse
from schemas.response_schemas import SystemStats
from services.query_service import QueryService

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get(
    "",
    response_model=ApiResponse[SystemStats],
    summary="System statistics",
    description="Aggregate counts of records, profiles, pending requests and live grants",
)
async def get_system_stats(
    db: AsyncSession = Depends(get_db),
    queries: QueryService = Depends(get_query_service),
) -> Any:
    """System stats endpoint"""
    return ApiResponse(data=await queries.stats(db))
