# Analytics - cohort filters, cross-collection joins and aggregates over the clinic state
# Everything here is recomputed from the raw collections on every call.
from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import DefaultDict, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from followups import upcoming_follow_ups
from models import (
    ClinicState,
    Patient,
    Payment,
    Visit,
    parse_day,
    payment_balance,
    payment_collected,
    percent,
    round_half_up,
    timestamp_sort_key,
    to_dict,
)

ZERO_STATUS = {"paid": 0, "partial": 0, "pending": 0}
DEFAULT_AGE_MIN = 0
DEFAULT_AGE_MAX = 100


@dataclass
class PatientFilters:
    """Analytics cohort selection. Empty selections do not filter."""
    genders: List[str] = field(default_factory=list)
    age_min: int = DEFAULT_AGE_MIN
    age_max: int = DEFAULT_AGE_MAX
    diseases: List[str] = field(default_factory=list)
    chronic_conditions: List[str] = field(default_factory=list)

    def age_bounds(self) -> Tuple[int, int]:
        """Inclusive bounds; min clamped to 0, max never below min."""
        safe_min = max(0, self.age_min)
        safe_max = max(safe_min, self.age_max)
        return safe_min, safe_max

    def active_count(self) -> int:
        age_changed = self.age_min > DEFAULT_AGE_MIN or self.age_max < DEFAULT_AGE_MAX
        return sum([
            bool(self.genders),
            age_changed,
            bool(self.diseases),
            bool(self.chronic_conditions),
        ])


def group_visits_by_patient(visits: Iterable[Visit]) -> Dict[str, List[Visit]]:
    grouped: DefaultDict[str, List[Visit]] = defaultdict(list)
    for visit in visits:
        grouped[visit.patientId].append(visit)
    return dict(grouped)


def filter_patients(
    patients: Iterable[Patient],
    visits: Iterable[Visit],
    filters: PatientFilters,
) -> List[Patient]:
    """
    Patients matching every active facet:
    - gender in the selection
    - age within the inclusive bounds
    - ALL selected chronic conditions present
    - at least one visit carrying a selected diagnosis
    """
    age_min, age_max = filters.age_bounds()
    visits_by_patient = group_visits_by_patient(visits)
    diseases = set(filters.diseases)

    result: List[Patient] = []
    for patient in patients:
        if filters.genders and patient.gender not in filters.genders:
            continue
        if patient.age < age_min or patient.age > age_max:
            continue
        if filters.chronic_conditions and not all(
            condition in patient.chronicConditions for condition in filters.chronic_conditions
        ):
            continue
        if diseases:
            patient_visits = visits_by_patient.get(patient.id, [])
            if not any(diseases.intersection(v.diagnoses) for v in patient_visits):
                continue
        result.append(patient)
    return result


def filter_visits(
    visits: Iterable[Visit],
    patient_ids: Set[str],
    diseases: Sequence[str] = (),
) -> List[Visit]:
    """Visits of the patients in view, narrowed to the selected diagnoses if any."""
    wanted = set(diseases)
    return [
        v for v in visits
        if v.patientId in patient_ids and (not wanted or wanted.intersection(v.diagnoses))
    ]


def filter_payments(payments: Iterable[Payment], patient_ids: Set[str]) -> List[Payment]:
    return [p for p in payments if p.patientId in patient_ids]


def payment_totals(payments: Iterable[Payment]) -> Dict[str, float]:
    """billed = sum(due), collected = sum(min(paid, due)), outstanding = sum(max(due - paid, 0))"""
    billed = 0.0
    collected = 0.0
    outstanding = 0.0
    for p in payments:
        billed += p.amountDue
        collected += payment_collected(p.amountDue, p.amountPaid)
        outstanding += payment_balance(p.amountDue, p.amountPaid)
    return {"billed": billed, "collected": collected, "outstanding": outstanding}


def collection_rate(collected: float, total: float) -> int:
    return percent(collected, total)


def payment_status_counts(payments: Iterable[Payment]) -> Dict[str, int]:
    counts = dict(ZERO_STATUS)
    for p in payments:
        counts[p.status.value] += 1
    return counts


def visits_by_month(visits: Iterable[Visit], limit: int = 6) -> List[Dict]:
    """Visit counts per YYYY-MM, ascending, keeping only the most recent `limit` months."""
    counter: Counter = Counter()
    for visit in visits:
        day = parse_day(visit.visitDate)
        counter[f"{day.year}-{day.month:02d}"] += 1

    buckets = []
    for key in sorted(counter)[-limit:]:
        first_day = date(int(key[:4]), int(key[5:7]), 1)
        buckets.append({"key": key, "label": first_day.strftime("%b %Y"), "count": counter[key]})
    return buckets


def visit_trend(buckets: Sequence[Dict]) -> Optional[int]:
    """Percent change of the latest month against the previous one (None without a base)."""
    if len(buckets) < 2:
        return None
    latest = buckets[-1]["count"]
    previous = buckets[-2]["count"]
    if not previous:
        return None
    return percent(latest - previous, previous)


def label_frequency(label_lists: Iterable[Iterable[str]]) -> Counter:
    counter: Counter = Counter()
    for labels in label_lists:
        counter.update(labels)
    return counter


def top_n(frequency: Counter, n: int = 5) -> List[Dict]:
    """Most frequent labels first; ties keep first-seen order."""
    return [{"label": label, "count": count} for label, count in frequency.most_common(n)]


def gender_distribution(patients: Iterable[Patient]) -> Dict[str, int]:
    return dict(Counter(p.gender for p in patients))


def age_stats(patients: Sequence[Patient]) -> Dict[str, int]:
    if not patients:
        return {"min": 0, "max": 0, "average": 0}
    ages = [p.age for p in patients]
    return {
        "min": min(ages),
        "max": max(ages),
        "average": round_half_up(sum(ages) / len(ages)),
    }


def build_analytics(state: ClinicState, filters: Optional[PatientFilters] = None) -> Dict:
    """Analytics page payload for the cohort selected by `filters`."""
    filters = filters or PatientFilters()
    patients = filter_patients(state.patients, state.visits, filters)
    patient_ids = {p.id for p in patients}
    visits = filter_visits(state.visits, patient_ids, filters.diseases)
    payments = filter_payments(state.payments, patient_ids)

    totals = payment_totals(payments)
    coverage = totals["collected"] + totals["outstanding"]
    months = visits_by_month(visits)

    genders = gender_distribution(patients)
    top_gender = None
    if genders:
        label, count = Counter(genders).most_common(1)[0]
        top_gender = {"gender": label, "count": count, "pct": percent(count, len(patients))}

    return {
        "counts": {
            "patients": len(patients),
            "visits": len(visits),
            "payments": len(payments),
        },
        "overall": {
            "patients": len(state.patients),
            "visits": len(state.visits),
            "payments": len(state.payments),
        },
        "activeFilters": filters.active_count(),
        "ages": age_stats(patients),
        "billed": totals["billed"],
        "collected": totals["collected"],
        "outstanding": totals["outstanding"],
        "collectionRate": collection_rate(totals["collected"], coverage),
        "visitsPerPatient": round(len(visits) / len(patients), 1) if patients else 0,
        "genderDistribution": genders,
        "topGender": top_gender,
        "topDiagnoses": top_n(label_frequency(v.diagnoses for v in visits)),
        "topChronicConditions": top_n(label_frequency(p.chronicConditions for p in patients)),
        "topComplaints": top_n(label_frequency(v.complaints for v in visits)),
        "paymentStatus": payment_status_counts(payments),
        "visitsByMonth": months,
        "visitTrend": visit_trend(months),
    }


def build_dashboard(state: ClinicState, today: date) -> Dict:
    """Home dashboard payload: headline totals, upcoming follow-ups, recent patients, top labels."""
    visits_this_month = sum(
        1 for v in state.visits
        if (parse_day(v.visitDate).year, parse_day(v.visitDate).month) == (today.year, today.month)
    )
    totals = payment_totals(state.payments)

    follow_ups = [
        {
            "visit": to_dict(item.visit),
            "patient": to_dict(item.patient) if item.patient else None,
            "followUpDate": item.followUpDate,
            "status": to_dict(item.status),
        }
        for item in upcoming_follow_ups(state.patients, state.visits, today)[:4]
    ]
    recent = sorted(state.patients, key=lambda p: timestamp_sort_key(p.updatedAt), reverse=True)[:5]

    return {
        "totalPatients": len(state.patients),
        "totalVisits": len(state.visits),
        "visitsThisMonth": visits_this_month,
        "billed": totals["billed"],
        "collected": totals["collected"],
        "outstanding": totals["outstanding"],
        "collectionRate": collection_rate(totals["collected"], totals["billed"]),
        "upcomingFollowUps": follow_ups,
        "recentPatients": [to_dict(p) for p in recent],
        "topDiagnoses": top_n(label_frequency(v.diagnoses for v in state.visits), 5),
        "topChronicConditions": top_n(label_frequency(p.chronicConditions for p in state.patients), 4),
    }
