# src/routes/share_requests.py
from datetime import timedelta
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, List, Optional
from core.dependencies import (
    get_consent_service,
    get_current_principal,
    get_query_service,
    require_provider,
)
from db.database import get_db
from models.share_request import ShareStatus
from schemas.base_schemas import ApiResponse
from schemas.share_request_schemas import ShareRequestCreate, ShareRequestPublic
from services.consent_service import ConsentService
from services.identity_service import ResolvedIdentity
from services.query_service import QueryService
from utils.rate_limiter import limiter
from utils.logger import setup_logger

router = APIRouter(prefix="/share-requests", tags=["share-requests"])
logger = setup_logger("SHARE_REQUEST_ROUTES")


@router.post(
    "",
    response_model=ApiResponse[ShareRequestPublic],
    status_code=status.HTTP_201_CREATED,
    summary="Request access",
    description="Provider asks a patient for read access to some of their records",
)
@limiter.limit("30/minute")
async def create_share_request(
    request: Request,
    request_in: ShareRequestCreate,
    identity: ResolvedIdentity = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
    consent: ConsentService = Depends(get_consent_service),
) -> Any:
    """Create share request endpoint"""
    ttl = timedelta(seconds=request_in.ttl_seconds) if request_in.ttl_seconds else None
    share_request = await consent.request_share(
        db,
        provider_id=identity.principal,
        patient_id=request_in.patient_id,
        record_ids=request_in.record_ids,
        message=request_in.message,
        ttl=ttl,
    )
    public = await consent.to_public(db, [share_request])
    return ApiResponse(data=public[0])


@router.get(
    "/mine",
    response_model=ApiResponse[List[ShareRequestPublic]],
    summary="My share requests",
    description="Requests where the caller is the patient or the provider",
)
async def get_my_share_requests(
    status_filter: Optional[ShareStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    queries: QueryService = Depends(get_query_service),
) -> Any:
    """My share requests endpoint"""
    return ApiResponse(
        data=await queries.my_share_requests(db, principal, status_filter, skip, limit)
    )


@router.post(
    "/{request_id}/approve",
    response_model=ApiResponse[ShareRequestPublic],
    summary="Approve share request",
    description="Patient approves a pending request; grants read access to its records",
)
async def approve_share_request(
    request_id: str,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    consent: ConsentService = Depends(get_consent_service),
) -> Any:
    """Approve share request endpoint"""
    share_request = await consent.approve(db, principal, request_id)
    public = await consent.to_public(db, [share_request])
    return ApiResponse(data=public[0])


@router.post(
    "/{request_id}/reject",
    response_model=ApiResponse[ShareRequestPublic],
    summary="Reject share request",
    description="Patient rejects a pending request; no access is granted",
)
async def reject_share_request(
    request_id: str,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    consent: ConsentService = Depends(get_consent_service),
) -> Any:
    """Reject share request endpoint"""
    share_request = await consent.reject(db, principal, request_id)
    public = await consent.to_public(db, [share_request])
    return ApiResponse(data=public[0])
