# src/services/consent_service.py
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from core.config import settings
from models.audit_log import AuditAction
from models.health_record import HealthRecord, generate_id
from models.healthcare_provider import HealthcareProvider
from models.patient import Patient
from models.record_grant import RecordGrant
from models.share_request import ShareRequest, ShareRequestRecord, ShareStatus
from schemas.share_request_schemas import ShareRequestPublic
from utils.clock import Clock, as_utc, utcnow
from utils.exceptions import (
    AlreadyResolvedException,
    BadRequestException,
    ExpiredException,
    ForbiddenException,
    NotFoundException,
    handle_db_exception,
)
from utils.locks import record_locks, share_request_locks
from utils.logger import setup_logger
from .audit_service import audit_service

logger = setup_logger("CONSENT_SERVICE")

DIRECT_SHARE_MESSAGE = "Shared directly by patient"


class AccessOperation(str, Enum):
    READ = "read"
    WRITE = "write"
    DELETE = "delete"


def effective_status(request: ShareRequest, now: datetime) -> ShareStatus:
    """Status as observed at `now`; a lapsed Pending request reads Expired.

    An Approved request keeps reading Approved after it lapses; the lapse
    shows up on its grants instead.
    """
    status = ShareStatus(request.status)
    if status == ShareStatus.PENDING and now > as_utc(request.expires_at):
        return ShareStatus.EXPIRED
    return status


class ConsentService:
    """Share request lifecycle, live grants and the authorization decision.

    Expiry is evaluated lazily against the injected clock; nothing sweeps in
    the background. Each mutation is atomic for the entity it touches: an
    in-process lock per record id or request id, plus conditional updates and
    a unique grant constraint for writers in other processes.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock: Clock = clock or utcnow

    # Authorization

    async def _load_record(
        self, db: AsyncSession, record_id: str
    ) -> Optional[HealthRecord]:
        result = await db.execute(
            select(HealthRecord)
            .where(HealthRecord.id == record_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def has_live_grant(
        self,
        db: AsyncSession,
        record_id: str,
        provider_id: str,
        now: Optional[datetime] = None,
    ) -> bool:
        now = now or self.clock()
        result = await db.execute(
            select(RecordGrant.id).where(
                RecordGrant.record_id == record_id,
                RecordGrant.provider_id == provider_id,
                RecordGrant.expires_at >= now,
            )
        )
        return result.first() is not None

    async def check_access(
        self,
        db: AsyncSession,
        caller: str,
        record: HealthRecord,
        operation: AccessOperation,
    ) -> bool:
        """Decide whether `caller` may perform `operation` on a loaded record"""
        if record.patient_id == caller:
            return True
        if operation != AccessOperation.READ:
            return False
        if record.is_public:
            return True
        return await self.has_live_grant(db, record.id, caller)

    async def is_authorized(
        self,
        db: AsyncSession,
        caller: str,
        record_id: str,
        operation: AccessOperation,
    ) -> bool:
        record = await self._load_record(db, record_id)
        if record is None:
            return False
        return await self.check_access(db, caller, record, operation)

    async def authorize(
        self,
        db: AsyncSession,
        caller: str,
        record_id: str,
        operation: AccessOperation,
    ) -> HealthRecord:
        """Load a record for an operation or raise NotFound / Forbidden"""
        record = await self._load_record(db, record_id)
        if record is None:
            raise NotFoundException("Health record not found")

        if not await self.check_access(db, caller, record, operation):
            logger.warning(
                f"Denied {operation.value} on record {record_id} to {caller}"
            )
            if operation == AccessOperation.READ:
                audit_service.record(
                    db,
                    caller,
                    AuditAction.ACCESS_DENIED,
                    "health_record",
                    record_id,
                    {"operation": operation.value},
                    at=self.clock(),
                )
                await db.commit()
                raise ForbiddenException("Access denied")
            raise ForbiddenException(
                f"Only the record owner may {operation.value} this record"
            )
        return record

    # Share request lifecycle

    def _resolve_ttl(self, ttl: Optional[timedelta], default_days: int) -> timedelta:
        if ttl is None:
            return timedelta(days=default_days)
        if ttl <= timedelta(0):
            raise BadRequestException("ttl must be positive")
        if ttl > timedelta(days=settings.SHARE_REQUEST_MAX_TTL_DAYS):
            raise BadRequestException(
                f"ttl may not exceed {settings.SHARE_REQUEST_MAX_TTL_DAYS} days"
            )
        return ttl

    async def request_share(
        self,
        db: AsyncSession,
        provider_id: str,
        patient_id: str,
        record_ids: Sequence[str],
        message: str = "",
        ttl: Optional[timedelta] = None,
    ) -> ShareRequest:
        """Provider asks a patient for read access to a set of their records"""
        if await db.get(HealthcareProvider, provider_id) is None:
            raise ForbiddenException(
                "Only registered healthcare providers can request access"
            )
        if await db.get(Patient, patient_id) is None:
            raise NotFoundException("Patient not found")

        ids = list(dict.fromkeys(record_ids))
        if not ids:
            raise BadRequestException("At least one record id is required")
        ttl = self._resolve_ttl(ttl, settings.SHARE_REQUEST_DEFAULT_TTL_DAYS)

        result = await db.execute(
            select(HealthRecord.id).where(
                HealthRecord.id.in_(ids), HealthRecord.patient_id == patient_id
            )
        )
        owned = set(result.scalars().all())
        not_owned = [record_id for record_id in ids if record_id not in owned]
        if not_owned:
            logger.warning(
                f"Share request by {provider_id} names records not owned by "
                f"{patient_id}: {not_owned}"
            )
            raise ForbiddenException(
                f"Records not owned by patient: {', '.join(not_owned)}"
            )

        now = self.clock()
        request = ShareRequest(
            id=generate_id(),
            patient_id=patient_id,
            provider_id=provider_id,
            message=message,
            status=ShareStatus.PENDING,
            requested_at=now,
            expires_at=now + ttl,
        )
        try:
            db.add(request)
            await db.flush()
            db.add_all(
                ShareRequestRecord(share_request_id=request.id, record_id=record_id)
                for record_id in ids
            )
            audit_service.record(
                db,
                provider_id,
                AuditAction.SHARE_REQUESTED,
                "share_request",
                request.id,
                {"patient_id": patient_id, "record_ids": ids},
                at=now,
            )
            await db.commit()
        except SQLAlchemyError as e:
            await handle_db_exception(db, logger, "create share request", e)

        logger.info(
            f"Share request {request.id}: {provider_id} -> {patient_id} "
            f"for {len(ids)} record(s)"
        )
        return request

    async def _get_request(self, db: AsyncSession, request_id: str) -> ShareRequest:
        result = await db.execute(
            select(ShareRequest)
            .where(ShareRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        request = result.scalar_one_or_none()
        if request is None:
            raise NotFoundException("Share request not found")
        return request

    async def _transition(
        self,
        db: AsyncSession,
        request_id: str,
        new_status: ShareStatus,
        now: datetime,
        from_statuses: Iterable[ShareStatus] = (ShareStatus.PENDING,),
    ) -> bool:
        """Conditional single-row status change; True only for the winner"""
        result = await db.execute(
            update(ShareRequest)
            .where(
                ShareRequest.id == request_id,
                ShareRequest.status.in_(list(from_statuses)),
            )
            .values(
                status=new_status,
                resolved_at=func.coalesce(ShareRequest.resolved_at, now),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _resolve_pending(
        self,
        db: AsyncSession,
        patient_id: str,
        request_id: str,
        new_status: ShareStatus,
        action: AuditAction,
    ) -> ShareRequest:
        """Guards shared by approve and reject, then the status transition"""
        async with share_request_locks.hold(request_id):
            request = await self._get_request(db, request_id)

            if request.patient_id != patient_id:
                logger.warning(
                    f"{patient_id} tried to resolve share request {request_id} "
                    f"addressed to {request.patient_id}"
                )
                raise ForbiddenException(
                    "Only the patient named in a share request can resolve it"
                )

            if request.status != ShareStatus.PENDING:
                raise AlreadyResolvedException(
                    f"Share request is already {ShareStatus(request.status).value}"
                )

            now = self.clock()
            if now > as_utc(request.expires_at):
                if await self._transition(db, request_id, ShareStatus.EXPIRED, now):
                    audit_service.record(
                        db,
                        patient_id,
                        AuditAction.SHARE_EXPIRED,
                        "share_request",
                        request_id,
                        {"observed_on": new_status.value},
                        at=now,
                    )
                await db.commit()
                raise ExpiredException()

            if not await self._transition(db, request_id, new_status, now):
                # Another worker resolved it between our read and our write
                await db.rollback()
                raise AlreadyResolvedException("Share request is no longer pending")

            audit_service.record(
                db,
                patient_id,
                action,
                "share_request",
                request_id,
                {"provider_id": request.provider_id},
                at=now,
            )
            try:
                await db.commit()
            except SQLAlchemyError as e:
                await handle_db_exception(db, logger, action.value, e)

            logger.info(f"Share request {request_id} -> {new_status.value}")
            return await self._get_request(db, request_id)

    async def approve(
        self, db: AsyncSession, patient_id: str, request_id: str
    ) -> ShareRequest:
        """Approve a pending request and grant access to its surviving records.

        Records deleted since the request was made are skipped without error;
        approval succeeds even when none survive.
        """
        request = await self._resolve_pending(
            db, patient_id, request_id, ShareStatus.APPROVED, AuditAction.SHARE_APPROVED
        )

        granted: List[str] = []
        for record_id in await self.record_ids_of(db, request_id):
            if await self._grant_access(
                db,
                record_id=record_id,
                owner_id=patient_id,
                provider_id=request.provider_id,
                share_request_id=request_id,
                expires_at=as_utc(request.expires_at),
            ):
                granted.append(record_id)

        logger.info(
            f"Share request {request_id} approved; granted {request.provider_id} "
            f"access to {len(granted)} record(s)"
        )
        return request

    async def reject(
        self, db: AsyncSession, patient_id: str, request_id: str
    ) -> ShareRequest:
        return await self._resolve_pending(
            db, patient_id, request_id, ShareStatus.REJECTED, AuditAction.SHARE_REJECTED
        )

    # Grants

    async def _apply_grant(
        self,
        db: AsyncSession,
        record_id: str,
        provider_id: str,
        share_request_id: str,
        expires_at: datetime,
        owner_id: str,
        now: datetime,
    ) -> None:
        """Insert or extend the (record, provider) grant; caller holds the lock"""
        result = await db.execute(
            select(RecordGrant).where(
                RecordGrant.record_id == record_id,
                RecordGrant.provider_id == provider_id,
            )
        )
        grant = result.scalar_one_or_none()

        if grant is None:
            db.add(
                RecordGrant(
                    record_id=record_id,
                    provider_id=provider_id,
                    share_request_id=share_request_id,
                    granted_at=now,
                    expires_at=expires_at,
                )
            )
        elif as_utc(grant.expires_at) < now:
            # Lapsed grant is replaced outright
            grant.share_request_id = share_request_id
            grant.granted_at = now
            grant.expires_at = expires_at
        elif expires_at > as_utc(grant.expires_at):
            grant.share_request_id = share_request_id
            grant.expires_at = expires_at

        audit_service.record(
            db,
            owner_id,
            AuditAction.ACCESS_GRANTED,
            "health_record",
            record_id,
            {"provider_id": provider_id, "share_request_id": share_request_id},
            at=now,
        )

    async def _grant_access(
        self,
        db: AsyncSession,
        record_id: str,
        owner_id: str,
        provider_id: str,
        share_request_id: str,
        expires_at: datetime,
    ) -> bool:
        """Grant one record under its lock; False when the record is gone"""
        async with record_locks.hold(record_id):
            record = await self._load_record(db, record_id)
            if record is None or record.patient_id != owner_id:
                logger.info(
                    f"Skipping grant on record {record_id}: no longer present"
                )
                return False

            await self._apply_grant(
                db,
                record_id,
                provider_id,
                share_request_id,
                expires_at,
                owner_id,
                self.clock(),
            )
            try:
                await db.commit()
            except SQLAlchemyError as e:
                await handle_db_exception(db, logger, "grant record access", e)
            return True

    async def revoke(
        self, db: AsyncSession, patient_id: str, record_id: str, provider_id: str
    ) -> bool:
        """Remove a provider's access to a record immediately.

        Returns whether a grant existed. The originating share request keeps
        its status; renewed access needs a new request.
        """
        async with record_locks.hold(record_id):
            record = await self._load_record(db, record_id)
            if record is None:
                raise NotFoundException("Health record not found")
            if record.patient_id != patient_id:
                raise ForbiddenException("Only the record owner may revoke access")

            now = self.clock()
            result = await db.execute(
                delete(RecordGrant).where(
                    RecordGrant.record_id == record_id,
                    RecordGrant.provider_id == provider_id,
                )
                .execution_options(synchronize_session=False)
            )
            had_grant = result.rowcount > 0
            audit_service.record(
                db,
                patient_id,
                AuditAction.ACCESS_REVOKED,
                "health_record",
                record_id,
                {"provider_id": provider_id, "had_grant": had_grant},
                at=now,
            )
            try:
                await db.commit()
            except SQLAlchemyError as e:
                await handle_db_exception(db, logger, "revoke record access", e)

        logger.info(f"Revoked {provider_id} access to record {record_id}")
        return had_grant

    async def share_directly(
        self,
        db: AsyncSession,
        patient_id: str,
        record_id: str,
        provider_id: str,
        ttl: Optional[timedelta] = None,
    ) -> ShareRequest:
        """Owner shares one record without a prior request.

        Recorded as a share request created already Approved, so every grant
        traces back to a request.
        """
        if await db.get(HealthcareProvider, provider_id) is None:
            raise NotFoundException("Healthcare provider not found")
        ttl = self._resolve_ttl(ttl, settings.DIRECT_SHARE_TTL_DAYS)

        async with record_locks.hold(record_id):
            record = await self._load_record(db, record_id)
            if record is None:
                raise NotFoundException("Health record not found")
            if record.patient_id != patient_id:
                raise ForbiddenException("Only the record owner may share it")

            now = self.clock()
            request = ShareRequest(
                id=generate_id(),
                patient_id=patient_id,
                provider_id=provider_id,
                message=DIRECT_SHARE_MESSAGE,
                status=ShareStatus.APPROVED,
                requested_at=now,
                expires_at=now + ttl,
                resolved_at=now,
            )
            try:
                db.add(request)
                await db.flush()
                db.add(
                    ShareRequestRecord(share_request_id=request.id, record_id=record_id)
                )
                audit_service.record(
                    db,
                    patient_id,
                    AuditAction.SHARE_APPROVED,
                    "share_request",
                    request.id,
                    {"provider_id": provider_id, "direct": True},
                    at=now,
                )
                await self._apply_grant(
                    db,
                    record_id,
                    provider_id,
                    request.id,
                    request.expires_at,
                    patient_id,
                    now,
                )
                await db.commit()
            except SQLAlchemyError as e:
                await handle_db_exception(db, logger, "share record", e)

        logger.info(f"Record {record_id} shared directly with {provider_id}")
        return request

    # Record deletion cascade

    async def detach_record(
        self, db: AsyncSession, record_id: str, actor: str
    ) -> List[str]:
        """Remove a deleted record's id from every share request naming it.

        A Pending or Approved request left without ids becomes Expired.
        Returns the ids of requests that expired this way.
        """
        result = await db.execute(
            select(ShareRequestRecord.share_request_id).where(
                ShareRequestRecord.record_id == record_id
            )
        )
        request_ids = list(result.scalars().all())

        expired: List[str] = []
        for request_id in request_ids:
            async with share_request_locks.hold(request_id):
                now = self.clock()
                await db.execute(
                    delete(ShareRequestRecord).where(
                        ShareRequestRecord.share_request_id == request_id,
                        ShareRequestRecord.record_id == record_id,
                    )
                    .execution_options(synchronize_session=False)
                )
                remaining = await db.execute(
                    select(func.count())
                    .select_from(ShareRequestRecord)
                    .where(ShareRequestRecord.share_request_id == request_id)
                )
                if remaining.scalar_one() == 0 and await self._transition(
                    db,
                    request_id,
                    ShareStatus.EXPIRED,
                    now,
                    from_statuses=(ShareStatus.PENDING, ShareStatus.APPROVED),
                ):
                    expired.append(request_id)
                    audit_service.record(
                        db,
                        actor,
                        AuditAction.SHARE_EXPIRED,
                        "share_request",
                        request_id,
                        {"reason": "all records deleted"},
                        at=now,
                    )
                try:
                    await db.commit()
                except SQLAlchemyError as e:
                    await handle_db_exception(db, logger, "detach deleted record", e)

        if request_ids:
            logger.info(
                f"Detached record {record_id} from {len(request_ids)} share "
                f"request(s); {len(expired)} expired"
            )
        return expired

    # Read helpers used by the projection layer

    async def record_ids_of(self, db: AsyncSession, request_id: str) -> List[str]:
        mapping = await self.record_ids_by_request(db, [request_id])
        return mapping.get(request_id, [])

    async def record_ids_by_request(
        self, db: AsyncSession, request_ids: Sequence[str]
    ) -> Dict[str, List[str]]:
        if not request_ids:
            return {}
        result = await db.execute(
            select(ShareRequestRecord.share_request_id, ShareRequestRecord.record_id)
            .where(ShareRequestRecord.share_request_id.in_(list(request_ids)))
            .order_by(ShareRequestRecord.record_id)
        )
        mapping: Dict[str, List[str]] = {}
        for request_id, record_id in result.all():
            mapping.setdefault(request_id, []).append(record_id)
        return mapping

    async def live_grantees(
        self, db: AsyncSession, record_ids: Sequence[str]
    ) -> Dict[str, List[str]]:
        """shared_with for each record: providers whose grant has not lapsed"""
        if not record_ids:
            return {}
        result = await db.execute(
            select(RecordGrant.record_id, RecordGrant.provider_id)
            .where(
                RecordGrant.record_id.in_(list(record_ids)),
                RecordGrant.expires_at >= self.clock(),
            )
            .order_by(RecordGrant.provider_id)
        )
        mapping: Dict[str, List[str]] = {}
        for record_id, provider_id in result.all():
            mapping.setdefault(record_id, []).append(provider_id)
        return mapping

    async def to_public(
        self, db: AsyncSession, requests: Sequence[ShareRequest]
    ) -> List[ShareRequestPublic]:
        now = self.clock()
        record_ids = await self.record_ids_by_request(db, [r.id for r in requests])
        return [
            ShareRequestPublic.model_validate(
                {
                    "id": r.id,
                    "patient_id": r.patient_id,
                    "provider_id": r.provider_id,
                    "record_ids": record_ids.get(r.id, []),
                    "message": r.message,
                    "status": effective_status(r, now),
                    "requested_at": r.requested_at,
                    "expires_at": r.expires_at,
                    "resolved_at": r.resolved_at,
                }
            )
            for r in requests
        ]


consent_service = ConsentService()
