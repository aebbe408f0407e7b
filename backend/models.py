# Domain models - patients, visits, payments and the derived fields computed from them
from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


class Gender(str, Enum):
    male = "male"
    female = "female"


class PaymentMethod(str, Enum):
    cash = "cash"
    card = "card"
    insurance = "insurance"
    transfer = "transfer"


class PaymentStatus(str, Enum):
    paid = "paid"
    partial = "partial"
    pending = "pending"


@dataclass(frozen=True)
class PatientContact:
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None
    emergencyContactName: Optional[str] = None
    emergencyContactPhone: Optional[str] = None


@dataclass(frozen=True)
class Patient:
    """Registered patient. `age` is derived from `birthDate`, never authoritative."""
    id: str
    firstName: str
    lastName: str
    gender: str  # "male" | "female"
    birthDate: str  # YYYY-MM-DD
    age: int
    contact: PatientContact
    chronicConditions: List[str] = field(default_factory=list)
    allergies: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    createdAt: str = ""
    updatedAt: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.firstName} {self.lastName}"


@dataclass(frozen=True)
class VisitVitals:
    bloodPressure: Optional[str] = None
    heartRate: Optional[str] = None
    temperature: Optional[str] = None
    oxygenSaturation: Optional[str] = None


@dataclass(frozen=True)
class Visit:
    """Clinical encounter. patientId is fixed at creation."""
    id: str
    patientId: str
    visitDate: str  # YYYY-MM-DD
    reason: str
    complaints: List[str] = field(default_factory=list)
    diagnoses: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    treatmentPlan: Optional[str] = None
    followUpDate: Optional[str] = None
    vitals: VisitVitals = field(default_factory=VisitVitals)
    attendingPhysician: Optional[str] = None
    createdAt: str = ""
    updatedAt: str = ""


@dataclass(frozen=True)
class Payment:
    """Billing record. recordedAt is set once when the payment is added."""
    id: str
    patientId: str
    amountDue: float
    amountPaid: float
    method: str  # "cash" | "card" | "insurance" | "transfer"
    visitId: Optional[str] = None
    invoiceNumber: Optional[str] = None
    recordedAt: str = ""
    updatedAt: str = ""
    notes: Optional[str] = None

    @property
    def balance(self) -> float:
        return payment_balance(self.amountDue, self.amountPaid)

    @property
    def status(self) -> PaymentStatus:
        return payment_status(self.amountDue, self.amountPaid)


@dataclass(frozen=True)
class ClinicState:
    """Aggregate root. Transitions build a new value, snapshots are never mutated."""
    patients: Tuple[Patient, ...] = ()
    visits: Tuple[Visit, ...] = ()
    payments: Tuple[Payment, ...] = ()

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "patients": [to_dict(p) for p in self.patients],
            "visits": [to_dict(v) for v in self.visits],
            "payments": [to_dict(p) for p in self.payments],
        }


# -----------------------------------------------------------------------------
# Inputs for the store's add/update operations. For updates, None means
# "not provided"; contact and vitals carry only the keys being changed.
# -----------------------------------------------------------------------------

@dataclass
class NewPatient:
    firstName: str
    lastName: str
    gender: str
    birthDate: str
    contact: PatientContact
    chronicConditions: List[str] = field(default_factory=list)
    allergies: List[str] = field(default_factory=list)
    notes: Optional[str] = None


@dataclass
class PatientUpdate:
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    gender: Optional[str] = None
    birthDate: Optional[str] = None
    contact: Optional[Dict[str, Optional[str]]] = None
    chronicConditions: Optional[List[str]] = None
    allergies: Optional[List[str]] = None
    notes: Optional[str] = None


@dataclass
class NewVisit:
    patientId: str
    visitDate: str
    reason: str
    complaints: List[str] = field(default_factory=list)
    diagnoses: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    treatmentPlan: Optional[str] = None
    followUpDate: Optional[str] = None
    vitals: Optional[VisitVitals] = None
    attendingPhysician: Optional[str] = None


@dataclass
class VisitUpdate:
    visitDate: Optional[str] = None
    reason: Optional[str] = None
    complaints: Optional[List[str]] = None
    diagnoses: Optional[List[str]] = None
    notes: Optional[str] = None
    treatmentPlan: Optional[str] = None
    followUpDate: Optional[str] = None
    vitals: Optional[Dict[str, Optional[str]]] = None
    attendingPhysician: Optional[str] = None


@dataclass
class NewPayment:
    patientId: str
    amountDue: float
    amountPaid: float
    method: str
    visitId: Optional[str] = None
    invoiceNumber: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class PaymentUpdate:
    visitId: Optional[str] = None
    amountDue: Optional[float] = None
    amountPaid: Optional[float] = None
    method: Optional[str] = None
    invoiceNumber: Optional[str] = None
    notes: Optional[str] = None


# -----------------------------------------------------------------------------
# Derived fields - the single definitions every view and the store reuse
# -----------------------------------------------------------------------------

def parse_day(value: str) -> date:
    """Calendar date of a YYYY-MM-DD string (a trailing time part is ignored)."""
    return date.fromisoformat(value[:10])


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def timestamp_sort_key(value: Optional[str]) -> datetime:
    """Sort key for stored timestamps; a record without one sorts as the oldest."""
    return parse_timestamp(value) if value else _EARLIEST


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with milliseconds and a Z suffix, e.g. 2025-11-01T09:30:00.000Z"""
    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def calculate_age(birth_date: str, today: Optional[date] = None) -> int:
    """Completed years between birth_date and today."""
    today = today or date.today()
    birth = parse_day(birth_date)
    age = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        age -= 1
    return age


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def sanitize_contact(contact: PatientContact) -> PatientContact:
    """Blank optional contact strings become unset; non-blank values are kept as given."""
    return PatientContact(
        phone=contact.phone,
        email=None if _blank(contact.email) else contact.email,
        address=None if _blank(contact.address) else contact.address,
        emergencyContactName=None if _blank(contact.emergencyContactName) else contact.emergencyContactName,
        emergencyContactPhone=None if _blank(contact.emergencyContactPhone) else contact.emergencyContactPhone,
    )


def merge_contact(contact: PatientContact, changes: Mapping[str, Optional[str]]) -> PatientContact:
    """Overlay the given contact keys onto an existing contact, then sanitize."""
    known = _field_names(PatientContact)
    return sanitize_contact(replace(contact, **{k: v for k, v in changes.items() if k in known}))


def merge_vitals(vitals: VisitVitals, changes: Mapping[str, Optional[str]]) -> VisitVitals:
    """Shallow per-field merge: keys present in changes win, the rest are kept."""
    known = _field_names(VisitVitals)
    return replace(vitals, **{k: v for k, v in changes.items() if k in known})


def payment_balance(amount_due: float, amount_paid: float) -> float:
    """Outstanding balance, floored at zero."""
    return max(amount_due - amount_paid, 0)


def payment_collected(amount_due: float, amount_paid: float) -> float:
    """Collected revenue never counts overpayment."""
    return min(amount_paid, amount_due)


def payment_status(amount_due: float, amount_paid: float) -> PaymentStatus:
    if amount_due - amount_paid <= 0:
        return PaymentStatus.paid
    if amount_paid == 0:
        return PaymentStatus.pending
    return PaymentStatus.partial


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def percent(part: float, total: float) -> int:
    """Whole percentage rounded half up, 0 when total is 0."""
    if not total:
        return 0
    return round_half_up(part / total * 100)


# -----------------------------------------------------------------------------
# Persisted layout (camelCase keys, unset optionals omitted)
# -----------------------------------------------------------------------------

def _field_names(cls) -> set:
    return {f.name for f in fields(cls)}


def _prune(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _prune(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_prune(v) for v in value]
    return value


def to_dict(record: Any) -> Dict[str, Any]:
    """Dataclass -> JSON-ready dict, dropping unset optional fields."""
    return _prune(asdict(record))


def _known(cls, data: Mapping[str, Any]) -> Dict[str, Any]:
    names = _field_names(cls)
    return {k: v for k, v in data.items() if k in names}


def patient_from_dict(data: Mapping[str, Any]) -> Patient:
    values = _known(Patient, data)
    values["contact"] = PatientContact(**_known(PatientContact, data["contact"]))
    values["chronicConditions"] = list(data.get("chronicConditions") or [])
    values["allergies"] = list(data.get("allergies") or [])
    values.setdefault("age", 0)
    return Patient(**values)


def visit_from_dict(data: Mapping[str, Any]) -> Visit:
    values = _known(Visit, data)
    values["vitals"] = VisitVitals(**_known(VisitVitals, data.get("vitals") or {}))
    values["complaints"] = list(data.get("complaints") or [])
    values["diagnoses"] = list(data.get("diagnoses") or [])
    return Visit(**values)


def payment_from_dict(data: Mapping[str, Any]) -> Payment:
    return Payment(**_known(Payment, data))
