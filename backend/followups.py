# Follow-up scheduling views - urgency buckets relative to today (date-only)
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from models import Patient, Visit, parse_day


class FollowUpBucket(str, Enum):
    overdue = "overdue"
    due_today = "due_today"
    due_soon = "due_soon"
    next_7_days = "next_7_days"
    later = "later"


@dataclass(frozen=True)
class FollowUpStatus:
    bucket: FollowUpBucket
    label: str
    tone: str  # "destructive" | "warning" | "accent" | "muted"
    days: int


@dataclass(frozen=True)
class FollowUpItem:
    visit: Visit
    followUpDate: str
    status: FollowUpStatus
    patient: Optional[Patient] = None


def days_until(follow_up_date: str, today: date) -> int:
    """Whole days from today to the follow-up date; time of day never counts."""
    return (parse_day(follow_up_date) - today).days


def follow_up_status(follow_up_date: str, today: date) -> FollowUpStatus:
    """
    Classify a follow-up date:
      < 0  overdue        "N day(s) overdue"
      0    due today
      1-3  due soon
      4-7  next 7 days
      > 7  later          "In N days"
    """
    days = days_until(follow_up_date, today)
    if days < 0:
        plural = "" if days == -1 else "s"
        return FollowUpStatus(FollowUpBucket.overdue, f"{abs(days)} day{plural} overdue", "destructive", days)
    if days == 0:
        return FollowUpStatus(FollowUpBucket.due_today, "Due today", "warning", days)
    if days <= 3:
        return FollowUpStatus(FollowUpBucket.due_soon, "Due soon", "warning", days)
    if days <= 7:
        return FollowUpStatus(FollowUpBucket.next_7_days, "Next 7 days", "accent", days)
    return FollowUpStatus(FollowUpBucket.later, f"In {days} days", "muted", days)


def upcoming_follow_ups(
    patients: Iterable[Patient],
    visits: Iterable[Visit],
    today: date,
) -> List[FollowUpItem]:
    """Follow-ups due today or later whose patient still exists, soonest first."""
    by_id: Dict[str, Patient] = {p.id: p for p in patients}
    items: List[FollowUpItem] = []
    for visit in visits:
        if not visit.followUpDate:
            continue
        patient = by_id.get(visit.patientId)
        if patient is None or parse_day(visit.followUpDate) < today:
            continue
        items.append(
            FollowUpItem(
                visit=visit,
                followUpDate=visit.followUpDate,
                status=follow_up_status(visit.followUpDate, today),
                patient=patient,
            )
        )
    items.sort(key=lambda item: parse_day(item.followUpDate))
    return items


def next_follow_up(visits: Sequence[Visit], today: date) -> Optional[FollowUpItem]:
    """Earliest follow-up on or after today among the given visits (patient detail view)."""
    dated = [v for v in visits if v.followUpDate and parse_day(v.followUpDate) >= today]
    if not dated:
        return None
    visit = min(dated, key=lambda v: parse_day(v.followUpDate))
    return FollowUpItem(
        visit=visit,
        followUpDate=visit.followUpDate,
        status=follow_up_status(visit.followUpDate, today),
    )


def filter_follow_ups(
    items: Iterable[FollowUpItem],
    search: str = "",
    start: Optional[str] = None,
    end: Optional[str] = None,
) -> List[FollowUpItem]:
    """Search patient name, visit reason and physician; keep dates within [start, end]."""
    needle = search.strip().lower()
    start_day = parse_day(start) if start else None
    end_day = parse_day(end) if end else None

    result: List[FollowUpItem] = []
    for item in items:
        if item.patient is None:
            continue
        if needle:
            haystack = [item.patient.full_name, item.visit.reason, item.visit.attendingPhysician or ""]
            if not any(needle in value.lower() for value in haystack if value):
                continue
        day = parse_day(item.followUpDate)
        if start_day and day < start_day:
            continue
        if end_day and day > end_day:
            continue
        result.append(item)
    return result
