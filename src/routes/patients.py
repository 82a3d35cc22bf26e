# src/routes/patients.py
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any
from core.dependencies import get_current_principal, get_identity_service
from db.database import get_db
from schemas.base_schemas import ApiResponse
from schemas.patient_schemas import PatientPublic, PatientRegister, PatientUpdate
from services.identity_service import IdentityService
from utils.rate_limiter import limiter
from utils.logger import setup_logger

router = APIRouter(prefix="/patients", tags=["patients"])
logger = setup_logger("PATIENT_ROUTES")


@router.post(
    "/register",
    response_model=ApiResponse[PatientPublic],
    status_code=status.HTTP_201_CREATED,
    summary="Register as patient",
    description="Create the caller's patient profile; its id is the caller principal",
)
@limiter.limit("10/minute")
async def register_patient(
    request: Request,
    profile: PatientRegister,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    identities: IdentityService = Depends(get_identity_service),
) -> Any:
    """Register patient endpoint"""
    patient = await identities.register_patient(db, principal, profile)
    return ApiResponse(data=PatientPublic.model_validate(patient))


@router.put(
    "/me",
    response_model=ApiResponse[PatientPublic],
    summary="Update my profile",
    description="Update the caller's own patient profile",
)
async def update_my_profile(
    patch: PatientUpdate,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    identities: IdentityService = Depends(get_identity_service),
) -> Any:
    """Update patient profile endpoint"""
    patient = await identities.update_patient_profile(db, principal, patch)
    return ApiResponse(data=PatientPublic.model_validate(patient))


@router.get(
    "/{patient_id}",
    response_model=ApiResponse[PatientPublic],
    summary="Get patient",
    description="Get a patient profile by principal",
)
async def get_patient(
    patient_id: str,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    identities: IdentityService = Depends(get_identity_service),
) -> Any:
    """Get patient by ID endpoint"""
    patient = await identities.get_patient(db, patient_id)
    return ApiResponse(data=PatientPublic.model_validate(patient))
