"""
Shared pytest fixtures: a memory-backed store on a controllable clock and an API client bound to it.
"""
import itertools
from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from main import app, get_store
from models import NewPatient, NewPayment, NewVisit, PatientContact, VisitVitals
from storage import MemoryStorage
from store import ClinicStore

# Reference instant used across the suite (seed ages and follow-up buckets depend on it)
REFERENCE_NOW = datetime(2025, 11, 1, 9, 30, tzinfo=timezone.utc)
REFERENCE_DAY = date(2025, 11, 1)


class TickingClock:
    """Advances one second per reading so successive timestamps differ."""

    def __init__(self, start: datetime = REFERENCE_NOW):
        self._start = start
        self._ticks = itertools.count()

    def __call__(self) -> datetime:
        return self._start + timedelta(seconds=next(self._ticks))


class FailingStorage:
    """Storage whose reads and writes always raise, like a full or disabled disk."""

    def __init__(self):
        self.write_attempts = 0

    def get_item(self, key):
        raise OSError("storage disabled")

    def set_item(self, key, value):
        self.write_attempts += 1
        raise OSError("quota exceeded")

    def remove_item(self, key):
        raise OSError("storage disabled")


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def store(storage, clock):
    """Seeded store on the reference date, persisting into `storage`."""
    return ClinicStore(storage, clock=clock)


@pytest.fixture
def client(store):
    """FastAPI TestClient whose endpoints read and write `store`."""
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_patient_input(**overrides) -> NewPatient:
    values = dict(
        firstName="Amani",
        lastName="Youssef",
        gender="female",
        birthDate="1988-02-14",
        contact=PatientContact(phone="0771234567", email="amani@example.com", address="  "),
        chronicConditions=["Hypertension"],
        allergies=["Penicillin"],
        notes="Prefers evening appointments.",
    )
    values.update(overrides)
    return NewPatient(**values)


def make_visit_input(patient_id: str, **overrides) -> NewVisit:
    values = dict(
        patientId=patient_id,
        visitDate="2025-10-12",
        reason="Routine follow-up",
        complaints=["Headache"],
        diagnoses=["Hypertension"],
        followUpDate="2025-11-10",
        vitals=VisitVitals(bloodPressure="150/95", heartRate="92 bpm"),
        attendingPhysician="Dr. Karim Awad",
    )
    values.update(overrides)
    return NewVisit(**values)


def make_payment_input(patient_id: str, **overrides) -> NewPayment:
    values = dict(
        patientId=patient_id,
        amountDue=1200,
        amountPaid=800,
        method="card",
        invoiceNumber="INV-TEST-1",
    )
    values.update(overrides)
    return NewPayment(**values)
