# src/services/identity_service.py
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from models.healthcare_provider import HealthcareProvider
from models.patient import GenderEnum, Patient
from schemas.patient_schemas import PatientRegister, PatientUpdate
from schemas.provider_schemas import ProviderRegister
from utils.clock import Clock, utcnow
from utils.exceptions import ConflictException, handle_db_exception
from utils.locks import principal_locks
from utils.logger import setup_logger
from .base_service import BaseService

logger = setup_logger("IDENTITY_SERVICE")


class IdentityKind(str, Enum):
    PATIENT = "patient"
    PROVIDER = "provider"
    UNREGISTERED = "unregistered"


@dataclass(frozen=True)
class ResolvedIdentity:
    principal: str
    kind: IdentityKind
    patient: Optional[Patient] = None
    provider: Optional[HealthcareProvider] = None

    @property
    def is_patient(self) -> bool:
        return self.kind == IdentityKind.PATIENT

    @property
    def is_provider(self) -> bool:
        return self.kind == IdentityKind.PROVIDER


def _profile_values(profile) -> dict:
    values = profile.model_dump(exclude_unset=True)
    if values.get("gender") is not None:
        values["gender"] = GenderEnum(values["gender"])
    if "emergency_contact" in values and profile.emergency_contact is not None:
        values["emergency_contact"] = profile.emergency_contact.model_dump(
            mode="json"
        )
    return values


class IdentityService:
    """Maps caller principals to their patient or provider profile"""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock: Clock = clock or utcnow
        self.patients = BaseService(Patient, clock=self.clock)
        self.providers = BaseService(HealthcareProvider, clock=self.clock)

    async def resolve(self, db: AsyncSession, principal: str) -> ResolvedIdentity:
        """Pure lookup; an unknown principal resolves to UNREGISTERED"""
        patient = await self.patients.get(db, principal)
        if patient is not None:
            return ResolvedIdentity(principal, IdentityKind.PATIENT, patient=patient)

        provider = await self.providers.get(db, principal)
        if provider is not None:
            return ResolvedIdentity(
                principal, IdentityKind.PROVIDER, provider=provider
            )

        return ResolvedIdentity(principal, IdentityKind.UNREGISTERED)

    async def _ensure_unregistered(self, db: AsyncSession, principal: str) -> None:
        identity = await self.resolve(db, principal)
        if identity.kind != IdentityKind.UNREGISTERED:
            logger.warning(
                f"Registration refused for {principal}: already a {identity.kind.value}"
            )
            raise ConflictException(
                f"Principal is already registered as a {identity.kind.value}"
            )

    async def _commit_registration(
        self, db: AsyncSession, principal: str, other_role: BaseService, label: str
    ) -> None:
        """Flush the new profile, re-check the other role, then commit"""
        try:
            await db.flush()
            if await other_role.get(db, principal) is not None:
                await db.rollback()
                logger.warning(
                    f"Registration refused for {principal}: registered in "
                    f"the other role meanwhile"
                )
                raise ConflictException(
                    "Principal is already registered in another role"
                )
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictException(f"{label} already exists")
        except SQLAlchemyError as e:
            await handle_db_exception(db, logger, f"register {label.lower()}", e)

    async def register_patient(
        self, db: AsyncSession, principal: str, profile: PatientRegister
    ) -> Patient:
        """Self-register the caller as a patient"""
        async with principal_locks.hold(principal):
            await self._ensure_unregistered(db, principal)

            patient = Patient(
                id=principal, created_at=self.clock(), **_profile_values(profile)
            )
            db.add(patient)
            await self._commit_registration(db, principal, self.providers, "Patient")

        logger.info(f"Registered patient {principal}")
        return patient

    async def register_provider(
        self, db: AsyncSession, principal: str, profile: ProviderRegister
    ) -> HealthcareProvider:
        """Self-register the caller as a healthcare provider (unverified)"""
        async with principal_locks.hold(principal):
            await self._ensure_unregistered(db, principal)

            provider = HealthcareProvider(
                id=principal,
                verified=False,
                created_at=self.clock(),
                **profile.model_dump(exclude_unset=True),
            )
            db.add(provider)
            await self._commit_registration(
                db, principal, self.patients, "Healthcare provider"
            )

        logger.info(f"Registered healthcare provider {principal}")
        return provider

    async def update_patient_profile(
        self, db: AsyncSession, principal: str, patch: PatientUpdate
    ) -> Patient:
        """Update the caller's own profile; the id never changes"""
        async with principal_locks.hold(principal):
            patient = await self.patients.get_or_404(
                db, principal, "Patient profile not found"
            )
            for field, value in _profile_values(patch).items():
                setattr(patient, field, value)
            patient.updated_at = self.clock()

            try:
                await db.commit()
            except SQLAlchemyError as e:
                await handle_db_exception(db, logger, "update patient profile", e)

        logger.info(f"Updated patient profile {principal}")
        return patient

    async def get_patient(self, db: AsyncSession, patient_id: str) -> Patient:
        return await self.patients.get_or_404(db, patient_id, "Patient not found")

    async def get_provider(
        self, db: AsyncSession, provider_id: str
    ) -> HealthcareProvider:
        return await self.providers.get_or_404(
            db, provider_id, "Healthcare provider not found"
        )

    async def list_providers(
        self,
        db: AsyncSession,
        skip: int = 0,
        limit: int = 50,
        specialty: Optional[str] = None,
    ) -> List[HealthcareProvider]:
        query = select(HealthcareProvider).order_by(
            HealthcareProvider.name, HealthcareProvider.id
        )
        if specialty:
            query = query.where(HealthcareProvider.specialty == specialty)

        result = await db.execute(query.offset(skip).limit(limit))
        return list(result.scalars().all())


identity_service = IdentityService()
