# src/routes/identity.py
from fastapi import APIRouter, Depends
from typing import Any
from core.dependencies import get_current_identity
from schemas.base_schemas import ApiResponse
from schemas.identity_schemas import IdentityPublic
from schemas.patient_schemas import PatientPublic
from schemas.provider_schemas import ProviderPublic
from services.identity_service import ResolvedIdentity
from utils.logger import setup_logger

router = APIRouter(prefix="/identity", tags=["identity"])
logger = setup_logger("IDENTITY_ROUTES")


@router.get(
    "/me",
    response_model=ApiResponse[IdentityPublic],
    summary="Who am I",
    description="Resolve the caller principal to its patient or provider profile",
)
async def get_user_profile(
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> Any:
    """Identity endpoint; an unregistered principal is not an error"""
    return ApiResponse(
        data=IdentityPublic(
            principal=identity.principal,
            kind=identity.kind.value,
            patient=(
                PatientPublic.model_validate(identity.patient)
                if identity.patient
                else None
            ),
            provider=(
                ProviderPublic.model_validate(identity.provider)
                if identity.provider
                else None
            ),
        )
    )
