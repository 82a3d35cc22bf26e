"""
Tests for the consent engine: share request lifecycle, grants and expiry
"""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import delete, update

from models.audit_log import AuditAction
from models.health_record import HealthRecord
from models.share_request import ShareRequest, ShareStatus
from services.consent_service import AccessOperation, DIRECT_SHARE_MESSAGE
from utils.exceptions import (
    AlreadyResolvedException,
    BadRequestException,
    ExpiredException,
    ForbiddenException,
    NotFoundException,
)

from conftest import OTHER_PATIENT, OTHER_PROVIDER, PATIENT, PROVIDER


async def can_read(services, db, caller, record_id):
    return await services.consent.is_authorized(
        db, caller, record_id, AccessOperation.READ
    )


def count_grants(monkeypatch, consent):
    """Record every grant the consent service applies"""
    applied = []
    real_apply_grant = consent._apply_grant

    async def counting_apply_grant(*args, **kwargs):
        applied.append(args)
        return await real_apply_grant(*args, **kwargs)

    monkeypatch.setattr(consent, "_apply_grant", counting_apply_grant)
    return applied


class TestRequestShare:
    """Tests for creating share requests."""

    async def test_request_starts_pending(self, db, services, make_record, clock):
        """A new request is Pending and expires after the default ttl."""
        record = await make_record()

        request = await services.consent.request_share(
            db, PROVIDER, PATIENT, [record.id], "Pre-op review"
        )

        assert request.status == ShareStatus.PENDING
        assert request.expires_at == clock() + timedelta(days=30)
        assert await services.consent.record_ids_of(db, request.id) == [record.id]
        assert not await can_read(services, db, PROVIDER, record.id)

    async def test_duplicate_ids_collapse(self, db, services, make_record):
        record = await make_record()

        request = await services.consent.request_share(
            db, PROVIDER, PATIENT, [record.id, record.id]
        )

        assert await services.consent.record_ids_of(db, request.id) == [record.id]

    async def test_caller_must_be_provider(self, db, services, make_record):
        """Patients and unregistered principals cannot request access."""
        record = await make_record()

        for caller in (OTHER_PATIENT, "nobody"):
            with pytest.raises(ForbiddenException):
                await services.consent.request_share(db, caller, PATIENT, [record.id])

    async def test_unknown_patient(self, db, services, people):
        with pytest.raises(NotFoundException):
            await services.consent.request_share(db, PROVIDER, "ghost", ["r-1"])

    async def test_empty_record_ids(self, db, services, people):
        with pytest.raises(BadRequestException):
            await services.consent.request_share(db, PROVIDER, PATIENT, [])

    async def test_foreign_records_are_named(self, db, services, make_record):
        """Records owned by someone else are rejected and listed."""
        mine = await make_record()
        theirs = await make_record(owner=OTHER_PATIENT, title="Carol's X-ray")

        with pytest.raises(ForbiddenException) as exc_info:
            await services.consent.request_share(
                db, PROVIDER, PATIENT, [mine.id, theirs.id, "missing-id"]
            )

        assert theirs.id in exc_info.value.detail
        assert "missing-id" in exc_info.value.detail
        assert mine.id not in exc_info.value.detail

    async def test_ttl_bounds(self, db, services, make_record):
        record = await make_record()

        with pytest.raises(BadRequestException):
            await services.consent.request_share(
                db, PROVIDER, PATIENT, [record.id], ttl=timedelta(days=366)
            )
        with pytest.raises(BadRequestException):
            await services.consent.request_share(
                db, PROVIDER, PATIENT, [record.id], ttl=timedelta(seconds=-1)
            )


class TestApproveAndReject:
    """Tests for resolving share requests."""

    async def test_approve_grants_every_record(self, db, services, make_record, clock):
        first = await make_record(title="Lipids")
        second = await make_record(title="ECG")
        request = await services.consent.request_share(
            db, PROVIDER, PATIENT, [first.id, second.id], ttl=timedelta(days=7)
        )

        approved = await services.consent.approve(db, PATIENT, request.id)

        assert approved.status == ShareStatus.APPROVED
        assert approved.resolved_at is not None
        assert await can_read(services, db, PROVIDER, first.id)
        assert await can_read(services, db, PROVIDER, second.id)
        assert not await can_read(services, db, OTHER_PROVIDER, first.id)

        grants = await services.queries.record_access(db, PATIENT, first.id)
        assert [g.provider_id for g in grants] == [PROVIDER]
        assert grants[0].share_request_id == request.id
        assert grants[0].expires_at == clock() + timedelta(days=7)

    async def test_only_named_patient_resolves(self, db, services, make_record):
        record = await make_record()
        request = await services.consent.request_share(
            db, PROVIDER, PATIENT, [record.id]
        )

        for caller in (OTHER_PATIENT, PROVIDER):
            with pytest.raises(ForbiddenException):
                await services.consent.approve(db, caller, request.id)
            with pytest.raises(ForbiddenException):
                await services.consent.reject(db, caller, request.id)

        assert not await can_read(services, db, PROVIDER, record.id)

    async def test_unknown_request(self, db, services, people):
        with pytest.raises(NotFoundException):
            await services.consent.approve(db, PATIENT, "no-such-request")

    async def test_reject_grants_nothing(self, db, services, make_record):
        record = await make_record()
        request = await services.consent.request_share(
            db, PROVIDER, PATIENT, [record.id]
        )

        rejected = await services.consent.reject(db, PATIENT, request.id)

        assert rejected.status == ShareStatus.REJECTED
        assert not await can_read(services, db, PROVIDER, record.id)

    async def test_resolved_requests_are_terminal(self, db, services, make_record):
        """A resolved request can be neither approved nor rejected again."""
        record = await make_record()
        approved = await services.consent.request_share(
            db, PROVIDER, PATIENT, [record.id]
        )
        rejected = await services.consent.request_share(
            db, PROVIDER, PATIENT, [record.id]
        )
        await services.consent.approve(db, PATIENT, approved.id)
        await services.consent.reject(db, PATIENT, rejected.id)

        with pytest.raises(AlreadyResolvedException):
            await services.consent.approve(db, PATIENT, approved.id)
        with pytest.raises(AlreadyResolvedException):
            await services.consent.reject(db, PATIENT, approved.id)
        with pytest.raises(AlreadyResolvedException):
            await services.consent.approve(db, PATIENT, rejected.id)

    async def test_lapsed_request_cannot_be_approved(
        self, db, services, make_record, clock
    ):
        """Approving after expiry persists Expired and grants nothing."""
        record = await make_record()
        request = await services.consent.request_share(
            db, PROVIDER, PATIENT, [record.id], ttl=timedelta(hours=1)
        )
        clock.advance(hours=1, seconds=1)

        with pytest.raises(ExpiredException):
            await services.consent.approve(db, PATIENT, request.id)

        assert not await can_read(services, db, PROVIDER, record.id)
        with pytest.raises(AlreadyResolvedException):
            await services.consent.approve(db, PATIENT, request.id)

        views = await services.queries.my_share_requests(db, PATIENT)
        assert views[0].status == ShareStatus.EXPIRED

    async def test_lapsed_pending_reads_expired(self, db, services, make_record, clock):
        """Expiry is observed lazily without any write."""
        record = await make_record()
        await services.consent.request_share(
            db, PROVIDER, PATIENT, [record.id], ttl=timedelta(hours=1)
        )

        pending = await services.queries.my_share_requests(
            db, PROVIDER, status=ShareStatus.PENDING
        )
        assert len(pending) == 1

        clock.advance(hours=2)

        assert await services.queries.my_share_requests(
            db, PROVIDER, status=ShareStatus.PENDING
        ) == []
        expired = await services.queries.my_share_requests(
            db, PROVIDER, status=ShareStatus.EXPIRED
        )
        assert len(expired) == 1


class TestGrantLapse:
    """Tests for the time-bounded nature of grants."""

    async def test_grant_lapses_with_request(self, db, services, make_record, clock):
        """An approved one-hour request stops granting two hours later."""
        record = await make_record()
        request = await services.consent.request_share(
            db, PROVIDER, PATIENT, [record.id], ttl=timedelta(hours=1)
        )
        await services.consent.approve(db, PATIENT, request.id)
        assert await can_read(services, db, PROVIDER, record.id)

        clock.advance(hours=2)

        assert not await can_read(services, db, PROVIDER, record.id)
        with pytest.raises(ForbiddenException):
            await services.records.get_record(db, record.id, PROVIDER)

        views = await services.queries.my_share_requests(db, PATIENT)
        assert views[0].status == ShareStatus.APPROVED

        mine = await services.queries.my_records(db, PATIENT)
        assert mine[0].shared_with == []
        assert await services.queries.shared_with_me(db, PROVIDER) == []

    async def test_grant_valid_through_expiry_instant(
        self, db, services, make_record, clock
    ):
        record = await make_record()
        request = await services.consent.request_share(
            db, PROVIDER, PATIENT, [record.id], ttl=timedelta(hours=1)
        )
        await services.consent.approve(db, PATIENT, request.id)

        clock.advance(hours=1)

        assert await can_read(services, db, PROVIDER, record.id)

    async def test_later_approval_extends_grant(self, db, services, make_record, clock):
        record = await make_record()
        short = await services.consent.request_share(
            db, PROVIDER, PATIENT, [record.id], ttl=timedelta(days=1)
        )
        long = await services.consent.request_share(
            db, PROVIDER, PATIENT, [record.id], ttl=timedelta(days=10)
        )
        await services.consent.approve(db, PATIENT, long.id)
        await services.consent.approve(db, PATIENT, short.id)

        grants = await services.queries.record_access(db, PATIENT, record.id)
        assert len(grants) == 1
        assert grants[0].expires_at == clock() + timedelta(days=10)
        assert grants[0].share_request_id == long.id


class TestRevoke:
    """Tests for revoking access."""

    async def test_revoke_is_immediate(self, db, services, make_record):
        record = await make_record()
        request = await services.consent.request_share(
            db, PROVIDER, PATIENT, [record.id]
        )
        await services.consent.approve(db, PATIENT, request.id)

        assert await services.consent.revoke(db, PATIENT, record.id, PROVIDER)

        assert not await can_read(services, db, PROVIDER, record.id)
        views = await services.queries.my_share_requests(db, PATIENT)
        assert views[0].status == ShareStatus.APPROVED

    async def test_revoke_without_grant(self, db, services, make_record):
        record = await make_record()

        assert not await services.consent.revoke(db, PATIENT, record.id, PROVIDER)

    async def test_only_owner_revokes(self, db, services, make_record):
        record = await make_record()

        with pytest.raises(ForbiddenException):
            await services.consent.revoke(db, PROVIDER, record.id, PROVIDER)
        with pytest.raises(NotFoundException):
            await services.consent.revoke(db, PATIENT, "missing", PROVIDER)

    async def test_revoke_is_audited(self, db, services, make_record, clock):
        record = await make_record()
        clock.advance(minutes=5)
        await services.consent.revoke(db, PATIENT, record.id, PROVIDER)

        trail = await services.queries.record_audit_log(db, PATIENT, record.id)

        assert [e.action for e in trail] == [
            AuditAction.RECORD_CREATED,
            AuditAction.ACCESS_REVOKED,
        ]


class TestDirectShare:
    """Tests for sharing without a prior request."""

    async def test_share_directly(self, db, services, make_record, clock):
        record = await make_record()

        request = await services.consent.share_directly(
            db, PATIENT, record.id, PROVIDER, ttl=timedelta(hours=4)
        )

        assert request.status == ShareStatus.APPROVED
        assert request.message == DIRECT_SHARE_MESSAGE
        assert await can_read(services, db, PROVIDER, record.id)
        clock.advance(hours=5)
        assert not await can_read(services, db, PROVIDER, record.id)

    async def test_unknown_provider(self, db, services, make_record):
        record = await make_record()

        with pytest.raises(NotFoundException):
            await services.consent.share_directly(db, PATIENT, record.id, "ghost")

    async def test_only_owner_shares(self, db, services, make_record):
        record = await make_record()

        with pytest.raises(ForbiddenException):
            await services.consent.share_directly(
                db, OTHER_PATIENT, record.id, PROVIDER
            )


class TestRecordDeletion:
    """Tests for share requests that outlive their records."""

    async def test_deleted_record_is_skipped_on_approve(
        self, db, services, make_record
    ):
        kept = await make_record(title="X")
        deleted = await make_record(title="Y")
        request = await services.consent.request_share(
            db, PROVIDER, PATIENT, [kept.id, deleted.id]
        )

        await services.records.delete_record(db, deleted.id, PATIENT)
        approved = await services.consent.approve(db, PATIENT, request.id)

        assert approved.status == ShareStatus.APPROVED
        assert await services.consent.record_ids_of(db, request.id) == [kept.id]
        assert await can_read(services, db, PROVIDER, kept.id)
        assert not await can_read(services, db, PROVIDER, deleted.id)

    async def test_request_without_records_expires(self, db, services, make_record):
        record = await make_record()
        request = await services.consent.request_share(
            db, PROVIDER, PATIENT, [record.id]
        )

        await services.records.delete_record(db, record.id, PATIENT)

        views = await services.queries.my_share_requests(db, PROVIDER)
        assert views[0].status == ShareStatus.EXPIRED
        assert views[0].record_ids == []
        with pytest.raises(AlreadyResolvedException):
            await services.consent.approve(db, PATIENT, request.id)

    async def test_approve_with_every_record_gone(
        self, db, services, make_record, monkeypatch
    ):
        """Approval still succeeds, and grants nothing, when no record survives."""
        record = await make_record()
        request = await services.consent.request_share(
            db, PROVIDER, PATIENT, [record.id]
        )
        # Row removed without detaching it from the request
        await db.execute(delete(HealthRecord).where(HealthRecord.id == record.id))
        await db.commit()
        applied = count_grants(monkeypatch, services.consent)

        approved = await services.consent.approve(db, PATIENT, request.id)

        assert approved.status == ShareStatus.APPROVED
        assert applied == []
        assert not await can_read(services, db, PROVIDER, record.id)

    async def test_rejected_request_keeps_status(self, db, services, make_record):
        record = await make_record()
        request = await services.consent.request_share(
            db, PROVIDER, PATIENT, [record.id]
        )
        await services.consent.reject(db, PATIENT, request.id)

        await services.records.delete_record(db, record.id, PATIENT)

        views = await services.queries.my_share_requests(db, PATIENT)
        assert views[0].status == ShareStatus.REJECTED


class TestConcurrentApproval:
    """Tests for racing resolutions of the same request."""

    async def test_concurrent_approvals_resolve_once(
        self, session_factory, services, make_record, monkeypatch
    ):
        """Exactly one approval wins and exactly one grant is applied."""
        record = await make_record()
        async with session_factory() as setup:
            request = await services.consent.request_share(
                setup, PROVIDER, PATIENT, [record.id]
            )

        applied = count_grants(monkeypatch, services.consent)

        async def approve():
            async with session_factory() as session:
                return await services.consent.approve(session, PATIENT, request.id)

        results = await asyncio.gather(approve(), approve(), return_exceptions=True)

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, AlreadyResolvedException)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert len(applied) == 1

    async def test_approve_and_reject_race(self, session_factory, services, make_record):
        record = await make_record()
        async with session_factory() as setup:
            request = await services.consent.request_share(
                setup, PROVIDER, PATIENT, [record.id]
            )

        async def resolve(action):
            async with session_factory() as session:
                return await action(session, PATIENT, request.id)

        results = await asyncio.gather(
            resolve(services.consent.approve),
            resolve(services.consent.reject),
            return_exceptions=True,
        )

        statuses = {r.status for r in results if not isinstance(r, Exception)}
        assert len(statuses) == 1
        assert sum(isinstance(r, AlreadyResolvedException) for r in results) == 1

    async def test_resolved_by_another_worker_after_read(
        self, session_factory, services, make_record, monkeypatch
    ):
        """A resolution committed elsewhere between read and write wins."""
        record = await make_record()
        async with session_factory() as setup:
            request = await services.consent.request_share(
                setup, PROVIDER, PATIENT, [record.id]
            )

        applied = count_grants(monkeypatch, services.consent)
        real_get_request = services.consent._get_request
        reads = []

        async def read_then_reject_elsewhere(db, request_id):
            found = await real_get_request(db, request_id)
            if not reads:
                reads.append(request_id)
                async with session_factory() as other:
                    await other.execute(
                        update(ShareRequest)
                        .where(ShareRequest.id == request_id)
                        .values(status=ShareStatus.REJECTED)
                    )
                    await other.commit()
            return found

        monkeypatch.setattr(
            services.consent, "_get_request", read_then_reject_elsewhere
        )

        async with session_factory() as session:
            with pytest.raises(AlreadyResolvedException):
                await services.consent.approve(session, PATIENT, request.id)

        assert applied == []
        async with session_factory() as session:
            stored = await session.get(ShareRequest, request.id)
            assert stored.status == ShareStatus.REJECTED
            assert not await can_read(services, session, PROVIDER, record.id)
