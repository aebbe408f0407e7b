# Registry views - patient list, patient detail and payment ledger derived from the state
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

from analytics import payment_totals
from followups import FollowUpItem, next_follow_up
from models import (
    ClinicState,
    Patient,
    Payment,
    PaymentStatus,
    Visit,
    parse_day,
    parse_timestamp,
    timestamp_sort_key,
    payment_balance,
)


@dataclass(frozen=True)
class PatientSummary:
    patient: Patient
    outstandingBalance: float
    lastVisitDate: Optional[str] = None
    lastVisitReason: Optional[str] = None


@dataclass(frozen=True)
class PatientDetail:
    patient: Patient
    visits: List[Visit] = field(default_factory=list)
    payments: List[Payment] = field(default_factory=list)
    totalBilled: float = 0
    totalPaid: float = 0
    outstandingBalance: float = 0
    nextFollowUp: Optional[FollowUpItem] = None


@dataclass(frozen=True)
class PaymentRow:
    payment: Payment
    balance: float
    status: PaymentStatus
    patient: Optional[Patient] = None
    visit: Optional[Visit] = None


def _newest_visits_first(visits: Iterable[Visit]) -> List[Visit]:
    return sorted(visits, key=lambda v: parse_day(v.visitDate), reverse=True)


def patient_summaries(state: ClinicState) -> List[PatientSummary]:
    """One row per patient: clamped outstanding balance and the most recent visit."""
    summaries = []
    for patient in state.patients:
        visits = _newest_visits_first(v for v in state.visits if v.patientId == patient.id)
        last_visit = visits[0] if visits else None
        outstanding = sum(
            payment_balance(p.amountDue, p.amountPaid)
            for p in state.payments
            if p.patientId == patient.id
        )
        summaries.append(
            PatientSummary(
                patient=patient,
                outstandingBalance=outstanding,
                lastVisitDate=last_visit.visitDate if last_visit else None,
                lastVisitReason=last_visit.reason if last_visit else None,
            )
        )
    return summaries


def search_patients(
    summaries: Iterable[PatientSummary],
    search: str = "",
    gender: Optional[str] = None,
    conditions: Sequence[str] = (),
) -> List[PatientSummary]:
    """Case-insensitive search over name, phone and email; gender match; ALL conditions present."""
    needle = search.strip().lower()
    result = []
    for summary in summaries:
        patient = summary.patient
        if needle:
            haystack = [patient.full_name, patient.contact.phone, patient.contact.email or ""]
            if not any(needle in value.lower() for value in haystack if value):
                continue
        if gender and patient.gender != gender:
            continue
        if conditions and not all(c in patient.chronicConditions for c in conditions):
            continue
        result.append(summary)
    return result


def patient_detail(state: ClinicState, patient_id: str, today: date) -> Optional[PatientDetail]:
    """Everything the patient page shows, or None for an unknown patient."""
    patient = next((p for p in state.patients if p.id == patient_id), None)
    if patient is None:
        return None

    visits = _newest_visits_first(v for v in state.visits if v.patientId == patient_id)
    payments = sorted(
        (p for p in state.payments if p.patientId == patient_id),
        key=lambda p: timestamp_sort_key(p.recordedAt),
        reverse=True,
    )
    totals = payment_totals(payments)
    return PatientDetail(
        patient=patient,
        visits=visits,
        payments=payments,
        totalBilled=totals["billed"],
        totalPaid=totals["collected"],
        outstandingBalance=totals["outstanding"],
        nextFollowUp=next_follow_up(visits, today),
    )


def payment_rows(state: ClinicState) -> List[PaymentRow]:
    """Payments joined with their patient and visit, newest recordedAt first."""
    patients: Dict[str, Patient] = {p.id: p for p in state.patients}
    visits: Dict[str, Visit] = {v.id: v for v in state.visits}
    rows = [
        PaymentRow(
            payment=payment,
            balance=payment.balance,
            status=payment.status,
            patient=patients.get(payment.patientId),
            visit=visits.get(payment.visitId) if payment.visitId else None,
        )
        for payment in state.payments
    ]
    rows.sort(key=lambda row: timestamp_sort_key(row.payment.recordedAt), reverse=True)
    return rows


def filter_payment_rows(
    rows: Iterable[PaymentRow],
    search: str = "",
    method: Optional[str] = None,
    status: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
) -> List[PaymentRow]:
    """Search invoice, method, notes and patient name; exact method/status; recordedAt day in [start, end]."""
    needle = search.strip().lower()
    start_day = parse_day(start) if start else None
    end_day = parse_day(end) if end else None

    result = []
    for row in rows:
        payment = row.payment
        if needle:
            haystack = [
                payment.invoiceNumber or "",
                payment.method,
                payment.notes or "",
                row.patient.full_name if row.patient else "",
            ]
            if not any(needle in value.lower() for value in haystack if value):
                continue
        if method and payment.method != method:
            continue
        if status and row.status != status:
            continue
        if start_day or end_day:
            if not payment.recordedAt:
                continue
            day = parse_timestamp(payment.recordedAt).date()
            if start_day and day < start_day:
                continue
            if end_day and day > end_day:
                continue
        result.append(row)
    return result
