# src/services/query_service.py
from typing import List, Optional
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from models.health_record import HealthRecord
from models.healthcare_provider import HealthcareProvider
from models.patient import Patient
from models.record_grant import RecordGrant
from models.share_request import ShareRequest, ShareStatus
from schemas.health_record_schemas import HealthRecordPublic, RecordGrantPublic
from schemas.response_schemas import AuditLogPublic, SystemStats
from schemas.share_request_schemas import ShareRequestPublic
from utils.clock import Clock, utcnow
from utils.logger import setup_logger
from .audit_service import audit_service
from .consent_service import AccessOperation, ConsentService, consent_service
from .health_record_service import HealthRecordService, health_record_service

logger = setup_logger("QUERY_SERVICE")


class QueryService:
    """Per-caller views, computed from current state on every call"""

    def __init__(
        self,
        clock: Optional[Clock] = None,
        records: Optional[HealthRecordService] = None,
        consent: Optional[ConsentService] = None,
    ):
        self.clock: Clock = clock or utcnow
        if clock is None:
            self.consent = consent or consent_service
            self.records = records or health_record_service
        else:
            self.consent = consent or ConsentService(clock)
            self.records = records or HealthRecordService(clock, self.consent)

    async def my_records(
        self, db: AsyncSession, caller: str, skip: int = 0, limit: int = 100
    ) -> List[HealthRecordPublic]:
        result = await db.execute(
            select(HealthRecord)
            .where(HealthRecord.patient_id == caller)
            .order_by(HealthRecord.date_created, HealthRecord.id)
            .offset(skip)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return await self.records.to_public(db, result.scalars().all())

    async def shared_with_me(
        self, db: AsyncSession, caller: str, skip: int = 0, limit: int = 100
    ) -> List[HealthRecordPublic]:
        """Records the caller can read through a live grant"""
        result = await db.execute(
            select(HealthRecord)
            .join(RecordGrant, RecordGrant.record_id == HealthRecord.id)
            .where(
                RecordGrant.provider_id == caller,
                RecordGrant.expires_at >= self.clock(),
            )
            .order_by(HealthRecord.date_created, HealthRecord.id)
            .offset(skip)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return await self.records.to_public(db, result.scalars().all())

    async def my_share_requests(
        self,
        db: AsyncSession,
        caller: str,
        status: Optional[ShareStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[ShareRequestPublic]:
        """Requests where the caller is the patient or the provider.

        The status filter applies to the effective status, so a lapsed
        Pending request is listed under Expired.
        """
        query = select(ShareRequest).where(
            or_(
                ShareRequest.patient_id == caller,
                ShareRequest.provider_id == caller,
            )
        )
        if status is not None:
            query = query.where(self._effective_status_is(ShareStatus(status)))

        result = await db.execute(
            query.order_by(ShareRequest.requested_at.desc(), ShareRequest.id)
            .offset(skip)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return await self.consent.to_public(db, result.scalars().all())

    def _effective_status_is(self, status: ShareStatus):
        """SQL form of effective_status(request, now) == status"""
        now = self.clock()
        if status == ShareStatus.PENDING:
            return and_(
                ShareRequest.status == ShareStatus.PENDING,
                ShareRequest.expires_at >= now,
            )
        if status == ShareStatus.EXPIRED:
            return or_(
                ShareRequest.status == ShareStatus.EXPIRED,
                and_(
                    ShareRequest.status == ShareStatus.PENDING,
                    ShareRequest.expires_at < now,
                ),
            )
        return ShareRequest.status == status

    async def record_access(
        self, db: AsyncSession, caller: str, record_id: str
    ) -> List[RecordGrantPublic]:
        """Live grants on a record, visible to its owner only"""
        await self.consent.authorize(db, caller, record_id, AccessOperation.WRITE)
        result = await db.execute(
            select(RecordGrant)
            .where(
                RecordGrant.record_id == record_id,
                RecordGrant.expires_at >= self.clock(),
            )
            .order_by(RecordGrant.granted_at, RecordGrant.provider_id)
            .execution_options(populate_existing=True)
        )
        return [RecordGrantPublic.model_validate(g) for g in result.scalars().all()]

    async def record_audit_log(
        self,
        db: AsyncSession,
        caller: str,
        record_id: str,
        skip: int = 0,
        limit: int = 100,
    ) -> List[AuditLogPublic]:
        await self.consent.authorize(db, caller, record_id, AccessOperation.WRITE)
        entries = await audit_service.get_entity_log(
            db, "health_record", record_id, skip, limit
        )
        return [AuditLogPublic.model_validate(e) for e in entries]

    async def stats(self, db: AsyncSession) -> SystemStats:
        """Operator-facing counts; lapsed requests and grants are not counted"""
        now = self.clock()

        async def scalar(query) -> int:
            result = await db.execute(query)
            return result.scalar_one()

        stats = SystemStats(
            total_records=await scalar(select(func.count(HealthRecord.id))),
            total_patients=await scalar(select(func.count(Patient.id))),
            total_providers=await scalar(select(func.count(HealthcareProvider.id))),
            pending_share_requests=await scalar(
                select(func.count(ShareRequest.id)).where(
                    ShareRequest.status == ShareStatus.PENDING,
                    ShareRequest.expires_at >= now,
                )
            ),
            active_grants=await scalar(
                select(func.count(RecordGrant.id)).where(
                    RecordGrant.expires_at >= now
                )
            ),
        )
        logger.debug(f"System stats: {stats.model_dump()}")
        return stats


query_service = QueryService()
