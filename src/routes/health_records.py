# src/routes/health_records.py
from datetime import timedelta
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, List
from core.dependencies import (
    get_consent_service,
    get_current_principal,
    get_health_record_service,
    get_query_service,
    require_patient,
)
from db.database import get_db
from schemas.base_schemas import ApiResponse, MessageData
from schemas.health_record_schemas import (
    HealthRecordCreate,
    HealthRecordPublic,
    HealthRecordUpdate,
    RecordGrantPublic,
)
from schemas.response_schemas import AuditLogPublic
from schemas.share_request_schemas import DirectShareCreate, ShareRequestPublic
from services.consent_service import ConsentService
from services.health_record_service import HealthRecordService
from services.identity_service import ResolvedIdentity
from services.query_service import QueryService
from utils.rate_limiter import limiter
from utils.logger import setup_logger

router = APIRouter(prefix="/health-records", tags=["health-records"])
logger = setup_logger("HEALTH_RECORD_ROUTES")


@router.post(
    "",
    response_model=ApiResponse[HealthRecordPublic],
    status_code=status.HTTP_201_CREATED,
    summary="Create health record",
    description="Create a health record owned by the calling patient",
)
@limiter.limit("60/minute")
async def create_health_record(
    request: Request,
    record_in: HealthRecordCreate,
    identity: ResolvedIdentity = Depends(require_patient),
    db: AsyncSession = Depends(get_db),
    records: HealthRecordService = Depends(get_health_record_service),
) -> Any:
    """Create health record endpoint"""
    record = await records.create_record(db, identity.principal, record_in)
    public = await records.to_public(db, [record])
    return ApiResponse(data=public[0])


@router.get(
    "/mine",
    response_model=ApiResponse[List[HealthRecordPublic]],
    summary="My records",
    description="Records owned by the caller",
)
async def get_my_records(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    queries: QueryService = Depends(get_query_service),
) -> Any:
    """My records endpoint"""
    return ApiResponse(data=await queries.my_records(db, principal, skip, limit))


@router.get(
    "/shared-with-me",
    response_model=ApiResponse[List[HealthRecordPublic]],
    summary="Records shared with me",
    description="Records the caller can read through an unexpired grant",
)
async def get_shared_records(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    queries: QueryService = Depends(get_query_service),
) -> Any:
    """Shared records endpoint"""
    return ApiResponse(data=await queries.shared_with_me(db, principal, skip, limit))


@router.get(
    "/{record_id}",
    response_model=ApiResponse[HealthRecordPublic],
    summary="Get health record",
    description="Read a record as its owner, a grantee, or anyone if it is public",
)
async def get_health_record(
    record_id: str,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    records: HealthRecordService = Depends(get_health_record_service),
) -> Any:
    """Get health record endpoint"""
    record = await records.get_record(db, record_id, principal)
    public = await records.to_public(db, [record])
    return ApiResponse(data=public[0])


@router.patch(
    "/{record_id}",
    response_model=ApiResponse[HealthRecordPublic],
    summary="Update health record",
    description="Owner-only update of title, description and data",
)
async def update_health_record(
    record_id: str,
    patch: HealthRecordUpdate,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    records: HealthRecordService = Depends(get_health_record_service),
) -> Any:
    """Update health record endpoint"""
    record = await records.update_record(db, record_id, principal, patch)
    public = await records.to_public(db, [record])
    return ApiResponse(data=public[0])


@router.delete(
    "/{record_id}",
    response_model=ApiResponse[MessageData],
    summary="Delete health record",
    description="Owner-only delete; pending requests left empty become expired",
)
async def delete_health_record(
    record_id: str,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    records: HealthRecordService = Depends(get_health_record_service),
) -> Any:
    """Delete health record endpoint"""
    await records.delete_record(db, record_id, principal)
    return ApiResponse(data=MessageData(message="Health record deleted"))


@router.get(
    "/{record_id}/access",
    response_model=ApiResponse[List[RecordGrantPublic]],
    summary="Record access list",
    description="Unexpired grants on a record; owner only",
)
async def get_record_access(
    record_id: str,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    queries: QueryService = Depends(get_query_service),
) -> Any:
    """Record access endpoint"""
    return ApiResponse(data=await queries.record_access(db, principal, record_id))


@router.get(
    "/{record_id}/audit",
    response_model=ApiResponse[List[AuditLogPublic]],
    summary="Record audit trail",
    description="Access audit entries of a record; owner only",
)
async def get_record_audit_log(
    record_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    queries: QueryService = Depends(get_query_service),
) -> Any:
    """Record audit endpoint"""
    return ApiResponse(
        data=await queries.record_audit_log(db, principal, record_id, skip, limit)
    )


@router.post(
    "/{record_id}/share",
    response_model=ApiResponse[ShareRequestPublic],
    status_code=status.HTTP_201_CREATED,
    summary="Share record with provider",
    description="Grant a provider read access without a prior request",
)
@limiter.limit("30/minute")
async def share_record_with_provider(
    request: Request,
    record_id: str,
    share_in: DirectShareCreate,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    consent: ConsentService = Depends(get_consent_service),
) -> Any:
    """Direct share endpoint"""
    ttl = timedelta(seconds=share_in.ttl_seconds) if share_in.ttl_seconds else None
    share_request = await consent.share_directly(
        db, principal, record_id, share_in.provider_id, ttl
    )
    public = await consent.to_public(db, [share_request])
    return ApiResponse(data=public[0])


@router.delete(
    "/{record_id}/access/{provider_id}",
    response_model=ApiResponse[MessageData],
    summary="Revoke access",
    description="Remove a provider's access to a record immediately; owner only",
)
async def revoke_access(
    record_id: str,
    provider_id: str,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    consent: ConsentService = Depends(get_consent_service),
) -> Any:
    """Revoke access endpoint"""
    had_grant = await consent.revoke(db, principal, record_id, provider_id)
    message = "Access revoked" if had_grant else "Provider had no access"
    return ApiResponse(data=MessageData(message=message))
