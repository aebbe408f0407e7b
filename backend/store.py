# Clinic state store - owns the three collections, builds records, persists every transition
from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Callable, List, Optional, Tuple, TypeVar
from uuid import uuid4

import structlog

from commands import (
    AddPatient,
    AddPayment,
    AddVisit,
    Command,
    UpdatePatient,
    UpdatePayment,
    UpdateVisit,
    apply_command,
)
from config import DEFAULT_STORAGE_KEY
from models import (
    ClinicState,
    NewPatient,
    NewPayment,
    NewVisit,
    Patient,
    PatientUpdate,
    Payment,
    PaymentUpdate,
    Visit,
    VisitUpdate,
    VisitVitals,
    calculate_age,
    format_timestamp,
    merge_contact,
    merge_vitals,
    sanitize_contact,
)
from seed import seed_state
from storage import StateStorage, load_state, save_state

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _create_id(prefix: str) -> str:
    return f"{prefix}-{uuid4()}"


def _pick(value: Optional[T], fallback: T) -> T:
    """Keep the existing value when the partial does not provide one."""
    return fallback if value is None else value


class ClinicStore:
    """
    Single owner of patients, visits and payments.

    Every mutation is turned into a command, applied with `apply_command`,
    recorded in `history` and followed by `save()`. Update operations return
    None when the id is unknown. Nothing here validates input; that happens at
    the request-model layer.

    Each mutation (lookup, record build, dispatch, save) runs under `_lock`;
    API handlers call in from a threadpool.
    """

    def __init__(
        self,
        storage: StateStorage,
        key: str = DEFAULT_STORAGE_KEY,
        *,
        state: Optional[ClinicState] = None,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[str], str]] = None,
    ) -> None:
        self._storage = storage
        self._key = key
        self._clock = clock or _utc_now
        self._new_id = id_factory or _create_id
        self._lock = threading.RLock()
        self._initial = state if state is not None else seed_state(self._clock())
        self._state = self._initial
        self._history: List[Command] = []

    @classmethod
    def open(
        cls,
        storage: StateStorage,
        key: str = DEFAULT_STORAGE_KEY,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[str], str]] = None,
    ) -> "ClinicStore":
        """Rehydrate from storage (seed dataset when nothing usable is stored)."""
        clock = clock or _utc_now
        state = load_state(storage, key, clock())
        return cls(storage, key, state=state, clock=clock, id_factory=id_factory)

    def close(self) -> None:
        with self._lock:
            self.save()
            logger.info("store_closed", key=self._key, commands=len(self._history))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def state(self) -> ClinicState:
        return self._state

    @property
    def initial_state(self) -> ClinicState:
        return self._initial

    @property
    def history(self) -> Tuple[Command, ...]:
        with self._lock:
            return tuple(self._history)

    @property
    def patients(self) -> Tuple[Patient, ...]:
        return self._state.patients

    @property
    def visits(self) -> Tuple[Visit, ...]:
        return self._state.visits

    @property
    def payments(self) -> Tuple[Payment, ...]:
        return self._state.payments

    def today(self) -> date:
        return self._clock().date()

    def get_patient(self, patient_id: str) -> Optional[Patient]:
        return next((p for p in self._state.patients if p.id == patient_id), None)

    def get_visit(self, visit_id: str) -> Optional[Visit]:
        return next((v for v in self._state.visits if v.id == visit_id), None)

    def get_payment(self, payment_id: str) -> Optional[Payment]:
        return next((p for p in self._state.payments if p.id == payment_id), None)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def dispatch(self, command: Command) -> ClinicState:
        with self._lock:
            self._state = apply_command(self._state, command)
            self._history.append(command)
            self.save()
            return self._state

    def save(self) -> bool:
        with self._lock:
            return save_state(self._storage, self._key, self._state)

    def reset(self, state: Optional[ClinicState] = None) -> ClinicState:
        """Replace everything with `state` (seed dataset by default) and start a new history."""
        with self._lock:
            self._initial = state if state is not None else seed_state(self._clock())
            self._state = self._initial
            self._history = []
            self.save()
            logger.info("store_reset", key=self._key, patients=len(self._state.patients))
            return self._state

    def add_patient(self, data: NewPatient) -> Patient:
        with self._lock:
            now = self._clock()
            timestamp = format_timestamp(now)
            patient = Patient(
                id=self._new_id("pat"),
                firstName=data.firstName,
                lastName=data.lastName,
                gender=data.gender,
                birthDate=data.birthDate,
                age=calculate_age(data.birthDate, now.date()),
                contact=sanitize_contact(data.contact),
                chronicConditions=list(data.chronicConditions),
                allergies=list(data.allergies),
                notes=data.notes,
                createdAt=timestamp,
                updatedAt=timestamp,
            )
            self.dispatch(AddPatient(patient))
        logger.info("patient_added", patient_id=patient.id)
        return patient

    def update_patient(self, patient_id: str, data: PatientUpdate) -> Optional[Patient]:
        with self._lock:
            existing = self.get_patient(patient_id)
            if existing is None:
                return None

            now = self._clock()
            updated = replace(
                existing,
                firstName=_pick(data.firstName, existing.firstName),
                lastName=_pick(data.lastName, existing.lastName),
                gender=_pick(data.gender, existing.gender),
                birthDate=_pick(data.birthDate, existing.birthDate),
                age=calculate_age(data.birthDate, now.date()) if data.birthDate else existing.age,
                contact=(
                    merge_contact(existing.contact, data.contact)
                    if data.contact is not None
                    else existing.contact
                ),
                chronicConditions=(
                    list(data.chronicConditions)
                    if data.chronicConditions is not None
                    else existing.chronicConditions
                ),
                allergies=list(data.allergies) if data.allergies is not None else existing.allergies,
                notes=_pick(data.notes, existing.notes),
                updatedAt=format_timestamp(now),
            )
            self.dispatch(UpdatePatient(updated))
            return updated

    def add_visit(self, data: NewVisit) -> Visit:
        with self._lock:
            timestamp = format_timestamp(self._clock())
            visit = Visit(
                id=self._new_id("visit"),
                patientId=data.patientId,
                visitDate=data.visitDate,
                reason=data.reason,
                complaints=list(data.complaints),
                diagnoses=list(data.diagnoses),
                notes=data.notes,
                treatmentPlan=data.treatmentPlan,
                followUpDate=data.followUpDate,
                vitals=data.vitals if data.vitals is not None else VisitVitals(),
                attendingPhysician=data.attendingPhysician,
                createdAt=timestamp,
                updatedAt=timestamp,
            )
            self.dispatch(AddVisit(visit))
        logger.info("visit_added", visit_id=visit.id, patient_id=visit.patientId)
        return visit

    def update_visit(self, visit_id: str, data: VisitUpdate) -> Optional[Visit]:
        with self._lock:
            existing = self.get_visit(visit_id)
            if existing is None:
                return None

            updated = replace(
                existing,
                visitDate=_pick(data.visitDate, existing.visitDate),
                reason=_pick(data.reason, existing.reason),
                complaints=list(data.complaints) if data.complaints is not None else existing.complaints,
                diagnoses=list(data.diagnoses) if data.diagnoses is not None else existing.diagnoses,
                notes=_pick(data.notes, existing.notes),
                treatmentPlan=_pick(data.treatmentPlan, existing.treatmentPlan),
                followUpDate=_pick(data.followUpDate, existing.followUpDate),
                vitals=(
                    merge_vitals(existing.vitals, data.vitals)
                    if data.vitals is not None
                    else existing.vitals
                ),
                attendingPhysician=_pick(data.attendingPhysician, existing.attendingPhysician),
                updatedAt=format_timestamp(self._clock()),
            )
            self.dispatch(UpdateVisit(updated))
            return updated

    def add_payment(self, data: NewPayment) -> Payment:
        with self._lock:
            timestamp = format_timestamp(self._clock())
            payment = Payment(
                id=self._new_id("pay"),
                patientId=data.patientId,
                visitId=data.visitId,
                amountDue=data.amountDue,
                amountPaid=data.amountPaid,
                method=data.method,
                invoiceNumber=data.invoiceNumber,
                notes=data.notes,
                recordedAt=timestamp,
                updatedAt=timestamp,
            )
            self.dispatch(AddPayment(payment))
        logger.info("payment_added", payment_id=payment.id, patient_id=payment.patientId)
        return payment

    def update_payment(self, payment_id: str, data: PaymentUpdate) -> Optional[Payment]:
        with self._lock:
            existing = self.get_payment(payment_id)
            if existing is None:
                return None

            updated = replace(
                existing,
                visitId=_pick(data.visitId, existing.visitId),
                amountDue=_pick(data.amountDue, existing.amountDue),
                amountPaid=_pick(data.amountPaid, existing.amountPaid),
                method=_pick(data.method, existing.method),
                invoiceNumber=_pick(data.invoiceNumber, existing.invoiceNumber),
                notes=_pick(data.notes, existing.notes),
                updatedAt=format_timestamp(self._clock()),
            )
            self.dispatch(UpdatePayment(updated))
            return updated
