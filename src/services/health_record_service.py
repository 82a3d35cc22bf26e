# src/services/health_record_service.py
from typing import List, Optional, Sequence
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from models.audit_log import AuditAction
from models.health_record import HealthRecord, RecordType, generate_id
from models.patient import Patient
from models.record_grant import RecordGrant
from schemas.health_record_schemas import (
    HealthRecordCreate,
    HealthRecordPublic,
    HealthRecordUpdate,
)
from utils.clock import Clock, as_utc, utcnow
from utils.exceptions import ForbiddenException, handle_db_exception
from utils.locks import record_locks
from utils.logger import setup_logger
from .audit_service import audit_service
from .base_service import BaseService
from .consent_service import AccessOperation, ConsentService, consent_service

logger = setup_logger("HEALTH_RECORD_SERVICE")

MUTABLE_FIELDS = ("title", "description", "data")


class HealthRecordService(BaseService[HealthRecord]):
    """Record store; every access goes through the consent engine"""

    def __init__(
        self, clock: Optional[Clock] = None, consent: Optional[ConsentService] = None
    ):
        super().__init__(HealthRecord, clock=clock or utcnow)
        if consent is None:
            consent = consent_service if clock is None else ConsentService(clock)
        self.consent = consent

    async def create_record(
        self, db: AsyncSession, owner_id: str, record_in: HealthRecordCreate
    ) -> HealthRecord:
        """Create a record owned by the calling patient"""
        if await db.get(Patient, owner_id) is None:
            logger.warning(f"Record creation refused for non-patient {owner_id}")
            raise ForbiddenException("Only registered patients can create records")

        now = self.now()
        record = HealthRecord(
            id=generate_id(),
            patient_id=owner_id,
            title=record_in.title,
            description=record_in.description,
            record_type=RecordType(record_in.record_type),
            data=record_in.data.model_dump(mode="json"),
            is_public=record_in.is_public,
            date_created=now,
            date_updated=now,
        )
        db.add(record)
        audit_service.record(
            db,
            owner_id,
            AuditAction.RECORD_CREATED,
            "health_record",
            record.id,
            {"record_type": record.record_type.value, "is_public": record.is_public},
            at=now,
        )
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await handle_db_exception(db, logger, "create health record", e)

        logger.info(f"Created health record {record.id} for patient {owner_id}")
        return record

    async def get_record(
        self, db: AsyncSession, record_id: str, caller: str
    ) -> HealthRecord:
        return await self.consent.authorize(
            db, caller, record_id, AccessOperation.READ
        )

    async def update_record(
        self,
        db: AsyncSession,
        record_id: str,
        caller: str,
        patch: HealthRecordUpdate,
    ) -> HealthRecord:
        """Owner-only update of title, description and data"""
        async with record_locks.hold(record_id):
            record = await self.consent.authorize(
                db, caller, record_id, AccessOperation.WRITE
            )

            changes = patch.model_dump(exclude_unset=True, exclude_none=True)
            if "data" in changes:
                changes["data"] = patch.data.model_dump(mode="json")
            for field in MUTABLE_FIELDS:
                if field in changes:
                    setattr(record, field, changes[field])

            now = self.now()
            record.date_updated = max(now, as_utc(record.date_created))
            audit_service.record(
                db,
                caller,
                AuditAction.RECORD_UPDATED,
                "health_record",
                record_id,
                {"fields": sorted(changes)},
                at=now,
            )
            try:
                await db.commit()
            except SQLAlchemyError as e:
                await handle_db_exception(db, logger, "update health record", e)

        logger.info(f"Updated health record {record_id}")
        return record

    async def delete_record(self, db: AsyncSession, record_id: str, caller: str) -> None:
        """Owner-only delete; grants go with the record, share requests are detached"""
        async with record_locks.hold(record_id):
            await self.consent.authorize(
                db, caller, record_id, AccessOperation.DELETE
            )

            await db.execute(
                delete(RecordGrant)
                .where(RecordGrant.record_id == record_id)
                .execution_options(synchronize_session=False)
            )
            await db.execute(
                delete(HealthRecord)
                .where(HealthRecord.id == record_id)
                .execution_options(synchronize_session=False)
            )
            audit_service.record(
                db,
                caller,
                AuditAction.RECORD_DELETED,
                "health_record",
                record_id,
                at=self.now(),
            )
            try:
                await db.commit()
            except SQLAlchemyError as e:
                await handle_db_exception(db, logger, "delete health record", e)

        await self.consent.detach_record(db, record_id, caller)
        logger.info(f"Deleted health record {record_id}")

    async def to_public(
        self, db: AsyncSession, records: Sequence[HealthRecord]
    ) -> List[HealthRecordPublic]:
        """Attach the live shared_with set to each record"""
        grantees = await self.consent.live_grantees(db, [r.id for r in records])
        return [
            HealthRecordPublic.model_validate(
                {
                    "id": r.id,
                    "patient_id": r.patient_id,
                    "title": r.title,
                    "description": r.description,
                    "record_type": r.record_type,
                    "data": r.data or {},
                    "is_public": r.is_public,
                    "shared_with": grantees.get(r.id, []),
                    "date_created": r.date_created,
                    "date_updated": r.date_updated,
                }
            )
            for r in records
        ]


health_record_service = HealthRecordService()
