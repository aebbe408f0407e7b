# Request models - form-level validation in front of the store
# Blank optional strings are normalized to None so the store never sees "".
from __future__ import annotations

import re
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models import (
    Gender,
    NewPatient,
    NewPayment,
    NewVisit,
    PatientContact,
    PatientUpdate,
    PaymentMethod,
    PaymentUpdate,
    VisitUpdate,
    VisitVitals,
)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def iso_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class FormModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


# -----------------------------------------------------------------------------
# Patients
# -----------------------------------------------------------------------------

class ContactFields(FormModel):
    email: Optional[str] = None
    address: Optional[str] = None
    emergencyContactName: Optional[str] = None
    emergencyContactPhone: Optional[str] = None

    @field_validator("email", "address", "emergencyContactName", "emergencyContactPhone", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("email")
    @classmethod
    def _email_format(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not _EMAIL_RE.match(value):
            raise ValueError("Enter a valid email address")
        return value


class ContactCreate(ContactFields):
    phone: str = Field(..., min_length=1)


class ContactUpdate(ContactFields):
    phone: Optional[str] = Field(None, min_length=1)

    @field_validator("phone")
    @classmethod
    def _phone_required(cls, value: Optional[str]) -> str:
        if value is None:
            raise ValueError("Phone number is required")
        return value


class PatientCreateRequest(FormModel):
    firstName: str = Field(..., min_length=1)
    lastName: str = Field(..., min_length=1)
    gender: Gender
    birthDate: date
    contact: ContactCreate
    chronicConditions: List[str] = Field(default_factory=list)
    allergies: List[str] = Field(default_factory=list)
    notes: Optional[str] = None

    @field_validator("notes", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Any:
        return _blank_to_none(value)

    def to_input(self) -> NewPatient:
        return NewPatient(
            firstName=self.firstName,
            lastName=self.lastName,
            gender=self.gender.value,
            birthDate=self.birthDate.isoformat(),
            contact=PatientContact(**self.contact.model_dump()),
            chronicConditions=list(self.chronicConditions),
            allergies=list(self.allergies),
            notes=self.notes,
        )


class PatientUpdateRequest(FormModel):
    firstName: Optional[str] = Field(None, min_length=1)
    lastName: Optional[str] = Field(None, min_length=1)
    gender: Optional[Gender] = None
    birthDate: Optional[date] = None
    contact: Optional[ContactUpdate] = None
    chronicConditions: Optional[List[str]] = None
    allergies: Optional[List[str]] = None
    notes: Optional[str] = None

    def to_input(self) -> PatientUpdate:
        return PatientUpdate(
            firstName=self.firstName,
            lastName=self.lastName,
            gender=self.gender.value if self.gender else None,
            birthDate=iso_date(self.birthDate),
            # Only the keys the client sent are merged onto the stored contact
            contact=self.contact.model_dump(exclude_unset=True) if self.contact else None,
            chronicConditions=self.chronicConditions,
            allergies=self.allergies,
            notes=self.notes,
        )


# -----------------------------------------------------------------------------
# Visits
# -----------------------------------------------------------------------------

class VitalsFields(FormModel):
    bloodPressure: Optional[str] = None
    heartRate: Optional[str] = None
    temperature: Optional[str] = None
    oxygenSaturation: Optional[str] = None

    @field_validator("bloodPressure", "heartRate", "temperature", "oxygenSaturation", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Any:
        return _blank_to_none(value)


class VisitFields(FormModel):
    notes: Optional[str] = None
    treatmentPlan: Optional[str] = None
    followUpDate: Optional[date] = None
    attendingPhysician: Optional[str] = None

    @field_validator("notes", "treatmentPlan", "followUpDate", "attendingPhysician", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Any:
        return _blank_to_none(value)


class VisitCreateRequest(VisitFields):
    patientId: str = Field(..., min_length=1)
    visitDate: date
    reason: str = Field(..., min_length=3)
    complaints: List[str] = Field(..., min_length=1)
    diagnoses: List[str] = Field(..., min_length=1)
    vitals: VitalsFields = Field(default_factory=VitalsFields)

    def to_input(self) -> NewVisit:
        return NewVisit(
            patientId=self.patientId,
            visitDate=self.visitDate.isoformat(),
            reason=self.reason,
            complaints=list(self.complaints),
            diagnoses=list(self.diagnoses),
            notes=self.notes,
            treatmentPlan=self.treatmentPlan,
            followUpDate=iso_date(self.followUpDate),
            vitals=VisitVitals(**self.vitals.model_dump()),
            attendingPhysician=self.attendingPhysician,
        )


class VisitUpdateRequest(VisitFields):
    """patientId is not accepted here; a visit stays with the patient it was logged for."""
    visitDate: Optional[date] = None
    reason: Optional[str] = Field(None, min_length=3)
    complaints: Optional[List[str]] = Field(None, min_length=1)
    diagnoses: Optional[List[str]] = Field(None, min_length=1)
    vitals: Optional[VitalsFields] = None

    def to_input(self) -> VisitUpdate:
        return VisitUpdate(
            visitDate=iso_date(self.visitDate),
            reason=self.reason,
            complaints=self.complaints,
            diagnoses=self.diagnoses,
            notes=self.notes,
            treatmentPlan=self.treatmentPlan,
            followUpDate=iso_date(self.followUpDate),
            vitals=self.vitals.model_dump(exclude_unset=True) if self.vitals else None,
            attendingPhysician=self.attendingPhysician,
        )


# -----------------------------------------------------------------------------
# Payments
# -----------------------------------------------------------------------------

PAID_EXCEEDS_DUE = "Paid amount cannot exceed amount due"


class PaymentFields(FormModel):
    visitId: Optional[str] = None
    invoiceNumber: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("visitId", "invoiceNumber", "notes", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Any:
        return _blank_to_none(value)


class PaymentCreateRequest(PaymentFields):
    patientId: str = Field(..., min_length=1)
    amountDue: float = Field(..., gt=0)
    amountPaid: float = Field(..., ge=0)
    method: PaymentMethod

    @model_validator(mode="after")
    def _paid_within_due(self) -> "PaymentCreateRequest":
        if self.amountPaid > self.amountDue:
            raise ValueError(PAID_EXCEEDS_DUE)
        return self

    def to_input(self) -> NewPayment:
        return NewPayment(
            patientId=self.patientId,
            visitId=self.visitId,
            amountDue=self.amountDue,
            amountPaid=self.amountPaid,
            method=self.method.value,
            invoiceNumber=self.invoiceNumber,
            notes=self.notes,
        )


class PaymentUpdateRequest(PaymentFields):
    """patientId and recordedAt are fixed once a payment is recorded."""
    amountDue: Optional[float] = Field(None, gt=0)
    amountPaid: Optional[float] = Field(None, ge=0)
    method: Optional[PaymentMethod] = None

    @model_validator(mode="after")
    def _paid_within_due(self) -> "PaymentUpdateRequest":
        if self.amountDue is not None and self.amountPaid is not None and self.amountPaid > self.amountDue:
            raise ValueError(PAID_EXCEEDS_DUE)
        return self

    def to_input(self) -> PaymentUpdate:
        return PaymentUpdate(
            visitId=self.visitId,
            amountDue=self.amountDue,
            amountPaid=self.amountPaid,
            method=self.method.value if self.method else None,
            invoiceNumber=self.invoiceNumber,
            notes=self.notes,
        )


def error_detail(message: str, field_name: str) -> List[Dict[str, Any]]:
    """422 body in the same shape FastAPI uses for request validation errors."""
    return [{"loc": ["body", field_name], "msg": message, "type": "value_error"}]
