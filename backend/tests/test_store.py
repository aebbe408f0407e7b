"""
Tests for store.py - mutation contracts, persistence after every change, rehydration
"""
import json
import logging
import sys
import threading
from dataclasses import replace

import pytest

from commands import AddPatient, UpdatePatient, replay
from conftest import (
    REFERENCE_DAY,
    REFERENCE_NOW,
    FailingStorage,
    TickingClock,
    make_patient_input,
    make_payment_input,
    make_visit_input,
)
from followups import FollowUpBucket, follow_up_status
from models import (
    ClinicState,
    Patient,
    PatientUpdate,
    PaymentUpdate,
    VisitUpdate,
    VisitVitals,
    calculate_age,
    payment_balance,
    payment_status,
)
from storage import MemoryStorage, dump_state
from store import ClinicStore

KEY = "clinic-state-v1"


def _stored(storage: MemoryStorage) -> dict:
    return json.loads(storage.get_item(KEY))


# =============================================================================
# TEST: add_patient / update_patient
# =============================================================================
class TestPatients:
    """Patient creation and partial updates"""

    def test_add_patient_computes_age_and_timestamps(self, store):
        patient = store.add_patient(make_patient_input())
        assert patient.id.startswith("pat-")
        assert patient.age == calculate_age("1988-02-14", REFERENCE_DAY) == 37
        assert patient.createdAt == patient.updatedAt
        assert store.patients[-1] == patient

    def test_add_patient_sanitizes_contact(self, store):
        patient = store.add_patient(make_patient_input())
        assert patient.contact.address is None
        assert patient.contact.email == "amani@example.com"

    def test_add_patient_copies_lists(self, store):
        data = make_patient_input()
        patient = store.add_patient(data)
        data.chronicConditions.append("Asthma")
        assert patient.chronicConditions == ["Hypertension"]

    def test_add_patient_persists(self, store, storage):
        patient = store.add_patient(make_patient_input())
        assert patient.id in [p["id"] for p in _stored(storage)["patients"]]

    def test_update_birth_date_recomputes_age(self, store):
        patient = store.add_patient(make_patient_input())
        updated = store.update_patient(patient.id, PatientUpdate(birthDate="2000-12-01"))
        assert updated.birthDate == "2000-12-01"
        assert updated.age == calculate_age("2000-12-01", REFERENCE_DAY) == 24

    def test_empty_update_keeps_age(self, store):
        patient = store.add_patient(make_patient_input())
        updated = store.update_patient(patient.id, PatientUpdate())
        assert updated.age == patient.age

    def test_empty_update_twice_only_moves_updated_at(self, store):
        patient = store.add_patient(make_patient_input())
        first = store.update_patient(patient.id, PatientUpdate())
        second = store.update_patient(patient.id, PatientUpdate())
        assert first.updatedAt < second.updatedAt
        assert replace(first, updatedAt=second.updatedAt) == second

    def test_update_merges_and_sanitizes_contact(self, store):
        patient = store.add_patient(make_patient_input())
        updated = store.update_patient(
            patient.id, PatientUpdate(contact={"address": "Abdoun", "email": " "})
        )
        assert updated.contact.phone == "0771234567"
        assert updated.contact.address == "Abdoun"
        assert updated.contact.email is None

    def test_update_replaces_lists_wholesale(self, store):
        patient = store.add_patient(make_patient_input())
        updated = store.update_patient(patient.id, PatientUpdate(chronicConditions=["Asthma"]))
        assert updated.chronicConditions == ["Asthma"]
        assert updated.allergies == ["Penicillin"]

    def test_update_keeps_created_at_and_refreshes_updated_at(self, store):
        patient = store.add_patient(make_patient_input())
        updated = store.update_patient(patient.id, PatientUpdate(notes="Call before visits."))
        assert updated.createdAt == patient.createdAt
        assert updated.updatedAt > patient.updatedAt
        assert updated.notes == "Call before visits."

    def test_update_unknown_patient_returns_none(self, store, storage):
        before = store.state
        assert store.update_patient("pat-missing", PatientUpdate(firstName="X")) is None
        assert store.state is before
        assert store.history == ()
        assert storage.get_item(KEY) is None


# =============================================================================
# TEST: add_visit / update_visit
# =============================================================================
class TestVisits:
    """Visit creation, vitals merge and immutable patient reference"""

    def test_add_visit_defaults_vitals(self, store):
        visit = store.add_visit(make_visit_input("pat-amani-youssef", vitals=None))
        assert visit.id.startswith("visit-")
        assert visit.vitals == VisitVitals()
        assert visit.createdAt == visit.updatedAt

    def test_update_vitals_is_shallow_merge(self, store):
        visit = store.add_visit(make_visit_input("pat-amani-youssef"))
        updated = store.update_visit(visit.id, VisitUpdate(vitals={"temperature": "37.5"}))
        assert updated.vitals == VisitVitals(
            bloodPressure="150/95", heartRate="92 bpm", temperature="37.5"
        )

    def test_update_replaces_complaints_and_diagnoses(self, store):
        visit = store.add_visit(make_visit_input("pat-amani-youssef"))
        updated = store.update_visit(visit.id, VisitUpdate(complaints=["Cough", "Fever"]))
        assert updated.complaints == ["Cough", "Fever"]
        assert updated.diagnoses == ["Hypertension"]

    def test_update_never_changes_patient(self, store):
        visit = store.add_visit(make_visit_input("pat-amani-youssef"))
        updated = store.update_visit(visit.id, VisitUpdate(reason="Reschedule", followUpDate="2025-11-20"))
        assert updated.patientId == "pat-amani-youssef"
        assert updated.followUpDate == "2025-11-20"

    def test_update_unknown_visit_returns_none(self, store):
        assert store.update_visit("visit-missing", VisitUpdate(reason="x")) is None


# =============================================================================
# TEST: add_payment / update_payment
# =============================================================================
class TestPayments:
    """Payment creation and updates; the store does not validate amounts"""

    def test_add_payment_sets_recorded_at(self, store):
        payment = store.add_payment(make_payment_input("pat-amani-youssef"))
        assert payment.id.startswith("pay-")
        assert payment.recordedAt == payment.updatedAt

    def test_update_keeps_recorded_at_and_patient(self, store):
        payment = store.add_payment(make_payment_input("pat-amani-youssef"))
        updated = store.update_payment(payment.id, PaymentUpdate(amountPaid=1200, method="cash"))
        assert updated.recordedAt == payment.recordedAt
        assert updated.patientId == payment.patientId
        assert updated.updatedAt > payment.updatedAt
        assert updated.method == "cash"
        assert updated.status == "paid"

    def test_overpayment_accepted_and_balance_clamped(self, store):
        payment = store.add_payment(make_payment_input("pat-amani-youssef"))
        updated = store.update_payment(payment.id, PaymentUpdate(amountPaid=5000))
        assert updated.amountPaid == 5000
        assert payment_balance(updated.amountDue, updated.amountPaid) == 0
        assert payment_status(updated.amountDue, updated.amountPaid) == "paid"

    def test_partial_fields_keep_existing_values(self, store):
        payment = store.add_payment(make_payment_input("pat-amani-youssef", notes="First"))
        updated = store.update_payment(payment.id, PaymentUpdate(invoiceNumber="INV-2"))
        assert updated.notes == "First"
        assert updated.amountDue == 1200
        assert updated.invoiceNumber == "INV-2"

    def test_update_unknown_payment_returns_none(self, store):
        assert store.update_payment("pay-missing", PaymentUpdate(amountPaid=1)) is None


# =============================================================================
# TEST: history, persistence and lifecycle
# =============================================================================
class TestLifecycle:
    def test_history_records_commands_and_replays(self, store):
        patient = store.add_patient(make_patient_input())
        store.update_patient(patient.id, PatientUpdate(firstName="Amira"))
        kinds = [type(c) for c in store.history]
        assert kinds == [AddPatient, UpdatePatient]
        assert replay(store.initial_state, store.history) == store.state

    def test_snapshots_are_not_mutated(self, store):
        before = store.state
        store.add_patient(make_patient_input())
        assert len(before.patients) == 3
        assert len(store.state.patients) == 4

    def test_write_failure_keeps_memory_state(self, clock, caplog):
        failing = FailingStorage()
        store = ClinicStore(failing, clock=clock)
        with caplog.at_level(logging.ERROR):
            patient = store.add_patient(make_patient_input())
        assert store.get_patient(patient.id) == patient
        assert failing.write_attempts == 1
        assert store.save() is False
        assert "state_write_failed" in caplog.text

    def test_open_empty_storage_uses_seed(self, storage):
        store = ClinicStore.open(storage, clock=TickingClock())
        assert [p.id for p in store.patients] == [
            "pat-amani-youssef",
            "pat-omar-salem",
            "pat-laila-hassan",
        ]
        assert len(store.visits) == 3
        assert len(store.payments) == 3

    def test_open_rehydrates_stored_state(self, store, storage):
        patient = store.add_patient(make_patient_input(firstName="Rana"))
        reopened = ClinicStore.open(storage, clock=TickingClock())
        assert reopened.get_patient(patient.id) == patient
        assert reopened.state == store.state

    def test_open_recomputes_stale_age(self):
        stale = ClinicState(
            patients=(
                Patient(
                    id="pat-1",
                    firstName="Amani",
                    lastName="Youssef",
                    gender="female",
                    birthDate="1988-02-14",
                    age=12,
                    contact=make_patient_input().contact,
                ),
            )
        )
        storage = MemoryStorage({KEY: dump_state(stale)})
        reopened = ClinicStore.open(storage, clock=TickingClock())
        assert reopened.patients[0].age == 37
        assert reopened.patients[0].contact.address is None

    def test_open_malformed_storage_falls_back_and_logs(self, caplog):
        storage = MemoryStorage({KEY: "{not json"})
        with caplog.at_level(logging.ERROR):
            store = ClinicStore.open(storage, clock=TickingClock())
        assert len(store.patients) == 3
        assert "state_parse_failed_using_seed" in caplog.text

    def test_open_unreadable_storage_falls_back(self):
        store = ClinicStore.open(FailingStorage(), clock=TickingClock())
        assert len(store.patients) == 3

    def test_reset_restores_seed_and_clears_history(self, store, storage):
        store.add_patient(make_patient_input())
        store.reset()
        assert len(store.patients) == 3
        assert store.history == ()
        assert len(_stored(storage)["patients"]) == 3

    def test_close_saves_snapshot(self, store, storage):
        store.close()
        assert _stored(storage) == store.state.to_dict()


# =============================================================================
# Scenario: register Amani, log her visit, check the follow-up bucket
# =============================================================================
class TestReferenceScenario:
    def test_amani_follow_up_is_nine_days_out(self, storage):
        store = ClinicStore(storage, state=ClinicState(), clock=TickingClock(REFERENCE_NOW))
        patient = store.add_patient(make_patient_input())
        assert patient.age == 37

        visit = store.add_visit(
            make_visit_input(patient.id, visitDate="2025-10-12", followUpDate="2025-11-10")
        )
        status = follow_up_status(visit.followUpDate, store.today())
        assert status.days == 9
        assert status.bucket == FollowUpBucket.later
        assert status.label == "In 9 days"

    @pytest.mark.parametrize(
        "due, paid, balance, status",
        [(1200, 800, 400, "partial"), (3500, 3500, 0, "paid"), (650, 0, 650, "pending")],
    )
    def test_payment_scenarios(self, store, due, paid, balance, status):
        payment = store.add_payment(
            make_payment_input("pat-amani-youssef", amountDue=due, amountPaid=paid)
        )
        assert payment.balance == balance
        assert payment.status == status


# =============================================================================
# TEST: concurrent mutations (API handlers run in a threadpool)
# =============================================================================
class TestConcurrentMutations:
    @pytest.fixture(autouse=True)
    def fast_switching(self):
        interval = sys.getswitchinterval()
        sys.setswitchinterval(1e-6)
        yield
        sys.setswitchinterval(interval)

    def test_parallel_adds_keep_every_patient(self, store, storage):
        threads, per_thread = 8, 50

        def worker(n):
            for i in range(per_thread):
                store.add_patient(make_patient_input(firstName=f"P{n}-{i}"))

        pool = [threading.Thread(target=worker, args=(n,)) for n in range(threads)]
        for t in pool:
            t.start()
        for t in pool:
            t.join()

        expected = 3 + threads * per_thread
        assert len(store.patients) == expected
        assert len({p.id for p in store.patients}) == expected
        assert len(store.history) == threads * per_thread
        assert len(_stored(storage)["patients"]) == expected
        assert replay(store.initial_state, store.history) == store.state

    def test_parallel_updates_and_adds_do_not_drop_records(self, store):
        def adder():
            for _ in range(100):
                store.add_payment(make_payment_input("pat-amani-youssef"))

        def updater():
            for i in range(100):
                store.update_patient("pat-omar-salem", PatientUpdate(notes=f"note {i}"))

        pool = [threading.Thread(target=adder), threading.Thread(target=updater)]
        for t in pool:
            t.start()
        for t in pool:
            t.join()

        assert len(store.payments) == 3 + 100
        assert store.get_patient("pat-omar-salem").notes == "note 99"
