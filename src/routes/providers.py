# src/routes/providers.py
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, List, Optional
from core.dependencies import get_current_principal, get_identity_service
from db.database import get_db
from schemas.base_schemas import ApiResponse
from schemas.provider_schemas import ProviderPublic, ProviderRegister
from services.identity_service import IdentityService
from utils.rate_limiter import limiter
from utils.logger import setup_logger

router = APIRouter(prefix="/providers", tags=["providers"])
logger = setup_logger("PROVIDER_ROUTES")


@router.post(
    "/register",
    response_model=ApiResponse[ProviderPublic],
    status_code=status.HTTP_201_CREATED,
    summary="Register as healthcare provider",
    description="Create the caller's provider profile; providers start unverified",
)
@limiter.limit("10/minute")
async def register_provider(
    request: Request,
    profile: ProviderRegister,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    identities: IdentityService = Depends(get_identity_service),
) -> Any:
    """Register provider endpoint"""
    provider = await identities.register_provider(db, principal, profile)
    return ApiResponse(data=ProviderPublic.model_validate(provider))


@router.get(
    "",
    response_model=ApiResponse[List[ProviderPublic]],
    summary="List providers",
    description="List registered healthcare providers, optionally by specialty",
)
async def list_providers(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    specialty: Optional[str] = Query(None, description="Filter by specialty"),
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    identities: IdentityService = Depends(get_identity_service),
) -> Any:
    """List providers endpoint"""
    providers = await identities.list_providers(db, skip, limit, specialty)
    return ApiResponse(data=[ProviderPublic.model_validate(p) for p in providers])


@router.get(
    "/{provider_id}",
    response_model=ApiResponse[ProviderPublic],
    summary="Get provider",
    description="Get a healthcare provider profile by principal",
)
async def get_provider(
    provider_id: str,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    identities: IdentityService = Depends(get_identity_service),
) -> Any:
    """Get provider by ID endpoint"""
    provider = await identities.get_provider(db, provider_id)
    return ApiResponse(data=ProviderPublic.model_validate(provider))
