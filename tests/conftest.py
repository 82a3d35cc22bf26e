"""
Shared fixtures: a temporary SQLite database per test, a controllable clock,
and service instances bound to that clock.
"""

import os

os.environ["ENVIRONMENT"] = "testing"
os.environ["SQLITE_MODE"] = "true"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from db.database import build_engine, build_session_factory, create_tables
from schemas.health_record_schemas import HealthRecordCreate
from schemas.patient_schemas import PatientRegister
from schemas.provider_schemas import ProviderRegister
from services.consent_service import ConsentService
from services.health_record_service import HealthRecordService
from services.identity_service import IdentityService
from services.query_service import QueryService

PATIENT = "patient-alice"
OTHER_PATIENT = "patient-carol"
PROVIDER = "dr-bob"
OTHER_PROVIDER = "dr-dave"


class FakeClock:
    """Clock whose time only moves when a test moves it"""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@dataclass
class Services:
    identity: IdentityService
    consent: ConsentService
    records: HealthRecordService
    queries: QueryService


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def services(clock):
    consent = ConsentService(clock)
    records = HealthRecordService(clock, consent)
    return Services(
        identity=IdentityService(clock),
        consent=consent,
        records=records,
        queries=QueryService(clock, records, consent),
    )


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'health_records_test.db'}"


@pytest.fixture
async def engine(database_url):
    engine = build_engine(database_url)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def people(db, services):
    """Two patients and two providers"""
    await services.identity.register_patient(db, PATIENT, PatientRegister(name="Alice"))
    await services.identity.register_patient(
        db, OTHER_PATIENT, PatientRegister(name="Carol")
    )
    await services.identity.register_provider(
        db, PROVIDER, ProviderRegister(name="Dr Bob", specialty="cardiology")
    )
    await services.identity.register_provider(
        db, OTHER_PROVIDER, ProviderRegister(name="Dr Dave", specialty="oncology")
    )


@pytest.fixture
def make_record(db, services, people):
    async def _make(owner: str = PATIENT, title: str = "Blood panel", **fields):
        record_in = HealthRecordCreate(
            title=title, record_type=fields.pop("record_type", "lab_result"), **fields
        )
        return await services.records.create_record(db, owner, record_in)

    return _make
