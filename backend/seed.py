# Seed data - the fixed dataset used when no stored state is available
from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

import structlog

from models import (
    ClinicState,
    Patient,
    PatientContact,
    Payment,
    Visit,
    VisitVitals,
    calculate_age,
    format_timestamp,
)

logger = structlog.get_logger(__name__)

DISEASES = [
    "Babesiosis",
    "Bronchitis",
    "Chickenpox",
    "Cholera",
    "Chronic Kidney Disease",
    "COVID-19",
    "Diabetes Mellitus",
    "Gastroenteritis",
    "Heart Failure",
    "Hypertension",
    "Influenza",
    "Malaria",
    "Migraine",
    "Pneumonia",
    "Tuberculosis",
    "Upper Respiratory Infection",
    "Urinary Tract Infection",
]

COMMON_COMPLAINTS = [
    "Fever",
    "Headache",
    "Shortness of Breath",
    "Chest Pain",
    "Cough",
    "General Fatigue",
    "Abdominal Pain",
    "Joint Pain",
    "Skin Rash",
    "Nausea",
    "Dizziness",
    "Back Pain",
    "Sore Throat",
    "Loss of Appetite",
]

CHRONIC_CONDITIONS = [
    "Hypertension",
    "Diabetes",
    "Asthma",
    "Heart Disease",
    "Chronic Kidney Disease",
    "Arthritis",
    "Chronic Obstructive Pulmonary Disease",
    "Thyroid Disorders",
    "Cancer History",
    "Obesity",
    "Depression",
]

ALLERGIES = [
    "Penicillin",
    "Sulfa Drugs",
    "Latex",
    "Peanuts",
    "Shellfish",
    "Pollen",
    "Dust Mites",
    "Eggs",
]

ATTENDING_PHYSICIANS = [
    "Dr. Karim Awad",
    "Dr. Hala Ibrahim",
    "Dr. Rami Farouk",
]

PAYMENT_METHOD_OPTIONS: List[Dict[str, str]] = [
    {"value": "cash", "label": "Cash"},
    {"value": "card", "label": "Credit / Debit Card"},
    {"value": "insurance", "label": "Insurance"},
    {"value": "transfer", "label": "Bank Transfer"},
]


def catalog() -> Dict[str, list]:
    """Option lists offered by the registration, visit and payment forms."""
    return {
        "diseases": list(DISEASES),
        "complaints": list(COMMON_COMPLAINTS),
        "chronicConditions": list(CHRONIC_CONDITIONS),
        "allergies": list(ALLERGIES),
        "physicians": list(ATTENDING_PHYSICIANS),
        "paymentMethods": [dict(option) for option in PAYMENT_METHOD_OPTIONS],
    }


def seed_state(now: Optional[datetime] = None) -> ClinicState:
    """Three patients with one visit and one payment each. Ages are computed against `now`."""
    now = now or datetime.now(timezone.utc)
    today = now.date()
    timestamp = format_timestamp(now)

    patients = (
        Patient(
            id="pat-amani-youssef",
            firstName="Amani",
            lastName="Youssef",
            gender="female",
            birthDate="1988-02-14",
            age=calculate_age("1988-02-14", today),
            contact=PatientContact(
                phone="0771234567",
                email="amani.youssef@example.com",
                address="Khalda, Amman",
                emergencyContactName="Karim Youssef",
                emergencyContactPhone="0771234567",
            ),
            chronicConditions=["Hypertension", "Asthma"],
            allergies=["Penicillin"],
            notes="Prefers evening appointments and follows DASH diet.",
            createdAt=timestamp,
            updatedAt=timestamp,
        ),
        Patient(
            id="pat-omar-salem",
            firstName="Omar",
            lastName="Salem",
            gender="male",
            birthDate="1975-07-03",
            age=calculate_age("1975-07-03", today),
            contact=PatientContact(
                phone="0798765432",
                email="omar.salem@example.com",
                address="8th circle, Amman",
                emergencyContactName="Mona Salem",
                emergencyContactPhone="0798765432",
            ),
            chronicConditions=["Diabetes", "Heart Disease"],
            allergies=["Sulfa Drugs"],
            notes="Uses insulin pump and monitors glucose twice daily.",
            createdAt=timestamp,
            updatedAt=timestamp,
        ),
        Patient(
            id="pat-laila-hassan",
            firstName="Laila",
            lastName="Hassan",
            gender="female",
            birthDate="1994-11-22",
            age=calculate_age("1994-11-22", today),
            contact=PatientContact(
                phone="0798765432",
                email="laila.hassan@example.com",
                address="Marj al hmam, Amman",
                emergencyContactName="Hassan Abdelrahman",
                emergencyContactPhone="0798765432",
            ),
            chronicConditions=["Thyroid Disorders"],
            allergies=[],
            notes="On thyroid hormone replacement therapy.",
            createdAt=timestamp,
            updatedAt=timestamp,
        ),
    )

    visits = (
        Visit(
            id="visit-amani-1",
            patientId="pat-amani-youssef",
            visitDate="2025-10-12",
            reason="Routine follow-up",
            complaints=["Headache", "Shortness of Breath"],
            diagnoses=["Hypertension"],
            notes="Blood pressure elevated, adjust medication.",
            treatmentPlan="Increase beta blocker dosage and schedule pulmonary function test.",
            followUpDate="2025-11-10",
            vitals=VisitVitals(bloodPressure="150/95", heartRate="92 bpm", oxygenSaturation="96%"),
            attendingPhysician="Dr. Nour El Din",
            createdAt=timestamp,
            updatedAt=timestamp,
        ),
        Visit(
            id="visit-omar-1",
            patientId="pat-omar-salem",
            visitDate="2025-09-28",
            reason="Post surgery review",
            complaints=["General Fatigue"],
            diagnoses=["Heart Failure"],
            notes="Recovery progressing, monitor cardiac rehab adherence.",
            treatmentPlan="Continue medication, start light exercise with supervision.",
            followUpDate="2025-12-01",
            vitals=VisitVitals(bloodPressure="130/85", heartRate="78 bpm"),
            attendingPhysician="Dr. Karim Awad",
            createdAt=timestamp,
            updatedAt=timestamp,
        ),
        Visit(
            id="visit-laila-1",
            patientId="pat-laila-hassan",
            visitDate="2025-11-05",
            reason="New symptoms",
            complaints=["Dizziness", "Fatigue"],
            diagnoses=["Thyroid Disorders"],
            notes="Adjust hormone replacement dosage.",
            treatmentPlan="Update lab tests in 6 weeks and adjust medication.",
            followUpDate="2025-12-20",
            vitals=VisitVitals(bloodPressure="118/76", heartRate="72 bpm"),
            attendingPhysician="Dr. Hala Ibrahim",
            createdAt=timestamp,
            updatedAt=timestamp,
        ),
    )

    payments = (
        Payment(
            id="pay-amani-1",
            patientId="pat-amani-youssef",
            visitId="visit-amani-1",
            amountDue=1200,
            amountPaid=800,
            method="card",
            invoiceNumber="INV-2025-1001",
            recordedAt="2025-10-12T14:10:00.000Z",
            updatedAt="2025-10-30T09:00:00.000Z",
            notes="Insurance pending for remaining balance.",
        ),
        Payment(
            id="pay-omar-1",
            patientId="pat-omar-salem",
            visitId="visit-omar-1",
            amountDue=3500,
            amountPaid=3500,
            method="insurance",
            invoiceNumber="INV-2025-1022",
            recordedAt="2025-09-28T11:20:00.000Z",
            updatedAt="2025-09-28T11:20:00.000Z",
            notes="Covered under premium plan.",
        ),
        Payment(
            id="pay-laila-1",
            patientId="pat-laila-hassan",
            visitId="visit-laila-1",
            amountDue=650,
            amountPaid=400,
            method="cash",
            invoiceNumber="INV-2025-1102",
            recordedAt="2025-11-05T16:45:00.000Z",
            updatedAt="2025-11-05T16:45:00.000Z",
            notes="Patient will settle the rest next visit.",
        ),
    )

    state = ClinicState(patients=patients, visits=visits, payments=payments)
    logger.debug(
        "seed_state_built",
        patients=len(state.patients),
        visits=len(state.visits),
        payments=len(state.payments),
    )
    return state
