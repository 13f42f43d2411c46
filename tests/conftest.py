# pylint: disable=redefined-outer-name
from datetime import date, timedelta

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import clear_mappers, sessionmaker
from sqlalchemy.pool import StaticPool

from admission.adapters import repository
from admission.adapters.ledger import TransactionLedger
from admission.adapters.notifications import AbstractNotifier
from admission.domain import model
from admission.domain.exceptions import PatientNotFound
from admission.service_layer.coordinator import TransactionCoordinator
from admission.service_layer.loading import AbstractLoadingIndicator
from admission.service_layer.unit_of_work import AbstractAdmissionUnitOfWork


class FakePatientRepository(repository.AbstractPatientRepository):
    def __init__(self, patients):
        self.patients = patients
        self.created = []   # drafts passed to add()
        self.deleted = []   # ids passed to delete()
        self.fail_with = None
        self.fail_delete_with = None
        self.fail_get_with = None

    def add(self, draft):
        self.created.append(draft)
        if self.fail_with is not None:
            raise self.fail_with
        return super().add(draft)

    def get(self, patient_id):
        if self.fail_get_with is not None:
            raise self.fail_get_with
        return super().get(patient_id)

    def delete(self, patient_id):
        self.deleted.append(patient_id)
        if self.fail_delete_with is not None:
            raise self.fail_delete_with
        return super().delete(patient_id)

    def _add(self, patient):
        self.patients[patient.id] = patient

    def _get(self, patient_id):
        return self.patients.get(patient_id)

    def _delete(self, patient_id):
        return self.patients.pop(patient_id, None) is not None


class FakeClinicalEventRepository(repository.AbstractClinicalEventRepository):
    """Keeps the patient's infection fields in sync, like the real backend."""

    def __init__(self, patients):
        self.patients = patients
        self.events = {}
        self.created = []
        self.fail_with = None

    def add(self, draft):
        self.created.append(draft)
        if self.fail_with is not None:
            raise self.fail_with
        return super().add(draft)

    def _add(self, event):
        patient = self.patients.get(event.patient_id)
        if patient is None:
            raise PatientNotFound(event.patient_id)
        self.events[event.id] = event
        open_infections = [e for e in self._list_for_patient(patient.id) if e.is_open_infection]
        latest = max(open_infections, key=lambda e: e.event_date, default=None)
        patient.infected = latest is not None
        patient.infection_date = latest.event_date if latest else None

    def _list_for_patient(self, patient_id):
        return [e for e in self.events.values() if e.patient_id == patient_id]


class FakeUnitOfWork(AbstractAdmissionUnitOfWork):
    def __init__(self):
        self.store = {}
        self.patients = FakePatientRepository(self.store)
        self.events = FakeClinicalEventRepository(self.store)
        self.commits = 0

    def _commit(self):
        self.commits += 1

    def rollback(self):
        pass


class FakeNotifier(AbstractNotifier):
    def __init__(self):
        self.sent = []

    def _send(self, notification):
        self.sent.append(notification)

    def of_level(self, level):
        return [n for n in self.sent if n.level == level]


class RecordingLoadingIndicator(AbstractLoadingIndicator):
    def __init__(self):
        self.calls = []

    def set_loading(self, loading, message=None):
        self.calls.append(loading)


@pytest.fixture
def uow():
    return FakeUnitOfWork()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def loading():
    return RecordingLoadingIndicator()


@pytest.fixture
def ledger():
    return TransactionLedger()


@pytest.fixture
def coordinator(uow, ledger, notifier, loading):
    # the fakes share one store, so handing out the same instance is enough
    return TransactionCoordinator(uow_factory=lambda: uow, ledger=ledger, notifier=notifier, loading=loading)


@pytest.fixture
def patient_data():
    return {
        "nome": "Mario",
        "cognome": "Rossi",
        "birth_date": "1960-04-12",
        "admission_date": (date.today() - timedelta(days=3)).isoformat(),
        "diagnosis": "Polmonite",
        "department": "Medicina Interna",
    }


@pytest.fixture
def infection_data():
    return {
        "event_date": (date.today() - timedelta(days=1)).isoformat(),
        "pathogen_agent": "Klebsiella pneumoniae",
        "description": "Infezione delle vie urinarie",
    }


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis()


@pytest.fixture
def sqlite_session_factory():
    """Create SQLite in-memory database for fast testing."""
    from admission.adapters import orm

    # one shared connection so every session sees the same in-memory database
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    orm.metadata.create_all(engine)
    orm.start_mappers()

    yield sessionmaker(bind=engine, expire_on_commit=False)

    clear_mappers()
    engine.dispose()
