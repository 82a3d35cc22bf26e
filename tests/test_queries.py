"""
Tests for the per-caller projections and system statistics
"""

from datetime import timedelta

import pytest

from models.share_request import ShareStatus
from utils.exceptions import ForbiddenException

from conftest import OTHER_PATIENT, OTHER_PROVIDER, PATIENT, PROVIDER


class TestProjections:
    """Tests for my_records, shared_with_me and my_share_requests."""

    async def test_my_records_only_lists_own(self, db, services, make_record):
        mine = await make_record(title="Mine")
        await make_record(owner=OTHER_PATIENT, title="Carol's")

        records = await services.queries.my_records(db, PATIENT)

        assert [r.id for r in records] == [mine.id]

    async def test_shared_with_me_follows_grants(self, db, services, make_record):
        shared = await make_record(title="Shared")
        await make_record(title="Private")
        await make_record(title="Public", is_public=True)
        await services.consent.share_directly(db, PATIENT, shared.id, PROVIDER)

        records = await services.queries.shared_with_me(db, PROVIDER)

        assert [r.id for r in records] == [shared.id]
        assert records[0].shared_with == [PROVIDER]
        assert await services.queries.shared_with_me(db, OTHER_PROVIDER) == []

    async def test_share_requests_visible_to_both_parties(
        self, db, services, make_record
    ):
        record = await make_record()
        request = await services.consent.request_share(
            db, PROVIDER, PATIENT, [record.id], "Referral"
        )

        for caller in (PATIENT, PROVIDER):
            views = await services.queries.my_share_requests(db, caller)
            assert [v.id for v in views] == [request.id]
            assert views[0].message == "Referral"
        assert await services.queries.my_share_requests(db, OTHER_PROVIDER) == []

    async def test_status_filter(self, db, services, make_record, clock):
        record = await make_record()
        approved = await services.consent.request_share(
            db, PROVIDER, PATIENT, [record.id]
        )
        clock.advance(seconds=1)
        pending = await services.consent.request_share(
            db, PROVIDER, PATIENT, [record.id]
        )
        await services.consent.approve(db, PATIENT, approved.id)

        only_pending = await services.queries.my_share_requests(
            db, PATIENT, status=ShareStatus.PENDING
        )
        only_approved = await services.queries.my_share_requests(
            db, PATIENT, status=ShareStatus.APPROVED
        )

        assert [v.id for v in only_pending] == [pending.id]
        assert [v.id for v in only_approved] == [approved.id]

    async def test_share_requests_paginate(self, db, services, make_record, clock):
        """Pages are newest first, with and without a status filter."""
        record = await make_record()
        ids = []
        for _ in range(3):
            request = await services.consent.request_share(
                db, PROVIDER, PATIENT, [record.id], ttl=timedelta(hours=1)
            )
            ids.append(request.id)
            clock.advance(minutes=1)

        page = await services.queries.my_share_requests(db, PATIENT, skip=1, limit=1)
        assert [v.id for v in page] == [ids[1]]

        # Only the oldest request has lapsed
        clock.advance(minutes=57, seconds=30)

        expired = await services.queries.my_share_requests(
            db, PATIENT, status=ShareStatus.EXPIRED
        )
        pending = await services.queries.my_share_requests(
            db, PATIENT, status=ShareStatus.PENDING, skip=1, limit=5
        )
        assert [v.id for v in expired] == [ids[0]]
        assert [v.id for v in pending] == [ids[1]]

    async def test_access_list_is_owner_only(self, db, services, make_record):
        record = await make_record()
        await services.consent.share_directly(db, PATIENT, record.id, PROVIDER)

        with pytest.raises(ForbiddenException):
            await services.queries.record_access(db, PROVIDER, record.id)
        with pytest.raises(ForbiddenException):
            await services.queries.record_audit_log(db, PROVIDER, record.id)


class TestStats:
    """Tests for system statistics."""

    async def test_counts_exclude_lapsed_state(self, db, services, make_record, clock):
        first = await make_record()
        second = await make_record()
        granted = await services.consent.request_share(
            db, PROVIDER, PATIENT, [first.id], ttl=timedelta(hours=1)
        )
        await services.consent.request_share(
            db, OTHER_PROVIDER, PATIENT, [second.id], ttl=timedelta(days=2)
        )
        await services.consent.approve(db, PATIENT, granted.id)

        stats = await services.queries.stats(db)
        assert stats.total_records == 2
        assert stats.total_patients == 2
        assert stats.total_providers == 2
        assert stats.pending_share_requests == 1
        assert stats.active_grants == 1

        clock.advance(days=3)

        stats = await services.queries.stats(db)
        assert stats.pending_share_requests == 0
        assert stats.active_grants == 0
        assert stats.total_records == 2
