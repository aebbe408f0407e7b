# Backend main entry point - clinic dashboard API over the clinic state store
from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from analytics import PatientFilters, build_analytics, build_dashboard
from config import Settings, get_settings
from followups import filter_follow_ups, upcoming_follow_ups
from logging_config import configure_logging
from models import Gender, PaymentMethod, PaymentStatus, to_dict
from schemas import (
    PAID_EXCEEDS_DUE,
    PatientCreateRequest,
    PatientUpdateRequest,
    PaymentCreateRequest,
    PaymentUpdateRequest,
    VisitCreateRequest,
    VisitUpdateRequest,
    error_detail,
    iso_date,
)
from seed import catalog
from storage import FileStorage, MemoryStorage, StateStorage
from store import ClinicStore
from views import (
    filter_payment_rows,
    patient_detail,
    patient_summaries,
    payment_rows,
    search_patients,
)

settings = get_settings()
configure_logging(settings.log_level, settings.log_json)
logger = structlog.get_logger(__name__)


def build_storage(current: Settings) -> StateStorage:
    if current.storage_backend == "memory":
        return MemoryStorage()
    return FileStorage(current.data_dir)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the store (rehydrating from storage) for the app's lifetime and save it on shutdown."""
    current = get_settings()
    store = ClinicStore.open(build_storage(current), current.storage_key)
    app.state.store = store
    logger.info("store_opened", backend=current.storage_backend, key=current.storage_key)
    try:
        yield
    finally:
        store.close()


app = FastAPI(title="Clinic Dashboard API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_store(request: Request) -> ClinicStore:
    return request.app.state.store


def _is_demo_mode() -> bool:
    """True only when DEMO_MODE env var is explicitly 'true' (read per request)."""
    return get_settings().demo_mode


def _require_patient(store: ClinicStore, patient_id: str) -> None:
    if store.get_patient(patient_id) is None:
        raise HTTPException(status_code=404, detail="Patient not found")


def _require_visit_of(store: ClinicStore, visit_id: str, patient_id: str) -> None:
    visit = store.get_visit(visit_id)
    if visit is None:
        raise HTTPException(status_code=404, detail="Visit not found")
    if visit.patientId != patient_id:
        raise HTTPException(
            status_code=422,
            detail=error_detail("Visit belongs to a different patient", "visitId"),
        )


@app.get("/")
def read_root():
    return {"message": "Clinic Dashboard API"}


@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.get("/state")
def get_state(store: ClinicStore = Depends(get_store)):
    """Full snapshot in the persisted layout."""
    return store.state.to_dict()


@app.get("/catalog")
def get_catalog():
    return catalog()


# -----------------------------------------------------------------------------
# Patients
# -----------------------------------------------------------------------------

@app.get("/patients")
def list_patients(
    search: str = "",
    gender: Optional[Gender] = None,
    condition: Optional[List[str]] = Query(None),
    store: ClinicStore = Depends(get_store),
):
    summaries = search_patients(
        patient_summaries(store.state),
        search=search,
        gender=gender.value if gender else None,
        conditions=condition or [],
    )
    return [to_dict(summary) for summary in summaries]


@app.post("/patients", status_code=201)
def create_patient(request: PatientCreateRequest, store: ClinicStore = Depends(get_store)):
    return to_dict(store.add_patient(request.to_input()))


@app.get("/patients/{patient_id}")
def get_patient(patient_id: str, store: ClinicStore = Depends(get_store)):
    detail = patient_detail(store.state, patient_id, store.today())
    if detail is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    return to_dict(detail)


@app.patch("/patients/{patient_id}")
def update_patient(
    patient_id: str,
    request: PatientUpdateRequest,
    store: ClinicStore = Depends(get_store),
):
    patient = store.update_patient(patient_id, request.to_input())
    if patient is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    return to_dict(patient)


# -----------------------------------------------------------------------------
# Visits and follow-ups
# -----------------------------------------------------------------------------

@app.post("/visits", status_code=201)
def create_visit(request: VisitCreateRequest, store: ClinicStore = Depends(get_store)):
    _require_patient(store, request.patientId)
    return to_dict(store.add_visit(request.to_input()))


@app.patch("/visits/{visit_id}")
def update_visit(
    visit_id: str,
    request: VisitUpdateRequest,
    store: ClinicStore = Depends(get_store),
):
    visit = store.update_visit(visit_id, request.to_input())
    if visit is None:
        raise HTTPException(status_code=404, detail="Visit not found")
    return to_dict(visit)


@app.get("/follow-ups")
def list_follow_ups(
    search: str = "",
    start: Optional[date] = None,
    end: Optional[date] = None,
    store: ClinicStore = Depends(get_store),
):
    """Upcoming follow-ups (today onwards), soonest first, with their urgency bucket."""
    items = upcoming_follow_ups(store.patients, store.visits, store.today())
    return [to_dict(item) for item in filter_follow_ups(items, search, iso_date(start), iso_date(end))]


# -----------------------------------------------------------------------------
# Payments
# -----------------------------------------------------------------------------

@app.get("/payments")
def list_payments(
    search: str = "",
    method: Optional[PaymentMethod] = None,
    status: Optional[PaymentStatus] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    store: ClinicStore = Depends(get_store),
):
    rows = filter_payment_rows(
        payment_rows(store.state),
        search=search,
        method=method.value if method else None,
        status=status.value if status else None,
        start=iso_date(start),
        end=iso_date(end),
    )
    return [to_dict(row) for row in rows]


@app.post("/payments", status_code=201)
def create_payment(request: PaymentCreateRequest, store: ClinicStore = Depends(get_store)):
    _require_patient(store, request.patientId)
    if request.visitId:
        _require_visit_of(store, request.visitId, request.patientId)
    return to_dict(store.add_payment(request.to_input()))


@app.patch("/payments/{payment_id}")
def update_payment(
    payment_id: str,
    request: PaymentUpdateRequest,
    store: ClinicStore = Depends(get_store),
):
    existing = store.get_payment(payment_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Payment not found")

    # The edit form validates the amounts it ends up saving, not just the ones sent
    due = request.amountDue if request.amountDue is not None else existing.amountDue
    paid = request.amountPaid if request.amountPaid is not None else existing.amountPaid
    if paid > due:
        raise HTTPException(status_code=422, detail=error_detail(PAID_EXCEEDS_DUE, "amountPaid"))
    if request.visitId:
        _require_visit_of(store, request.visitId, existing.patientId)

    payment = store.update_payment(payment_id, request.to_input())
    if payment is None:
        raise HTTPException(status_code=404, detail="Payment not found")
    return to_dict(payment)


# -----------------------------------------------------------------------------
# Analytics
# -----------------------------------------------------------------------------

@app.get("/analytics")
def get_analytics(
    gender: Optional[List[str]] = Query(None),
    age_min: int = Query(0, alias="ageMin"),
    age_max: int = Query(100, alias="ageMax"),
    disease: Optional[List[str]] = Query(None),
    condition: Optional[List[str]] = Query(None),
    store: ClinicStore = Depends(get_store),
):
    filters = PatientFilters(
        genders=gender or [],
        age_min=age_min,
        age_max=age_max,
        diseases=disease or [],
        chronic_conditions=condition or [],
    )
    return build_analytics(store.state, filters)


@app.get("/dashboard")
def get_dashboard(store: ClinicStore = Depends(get_store)):
    return build_dashboard(store.state, store.today())


# -----------------------------------------------------------------------------
# Demo helpers
# -----------------------------------------------------------------------------

@app.get("/demo/status")
def demo_status():
    """Returns whether demo mode is enabled. Only for frontend visibility gate."""
    return {"demoMode": _is_demo_mode()}


@app.post("/demo/reset")
def demo_reset(store: ClinicStore = Depends(get_store)):
    """
    Restore the seed dataset. Only available when DEMO_MODE=true.
    The stored snapshot is overwritten and the command history starts over.
    """
    if not _is_demo_mode():
        raise HTTPException(status_code=404, detail="Demo reset not available")
    state = store.reset()
    logger.info("demo_reset", patients=len(state.patients))
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
