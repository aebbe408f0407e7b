# Key-scoped state storage and the JSON snapshot layout
from __future__ import annotations

import json
import os
import re
import tempfile
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Optional, Protocol

import structlog

from models import (
    ClinicState,
    calculate_age,
    patient_from_dict,
    payment_from_dict,
    sanitize_contact,
    visit_from_dict,
)
from seed import seed_state

logger = structlog.get_logger(__name__)


class StateStorage(Protocol):
    """Minimal string key/value capability the store persists through."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    """Process-local storage; used by tests and CLINIC_STORAGE=memory."""

    def __init__(self, items: Optional[Dict[str, str]] = None) -> None:
        self._items: Dict[str, str] = dict(items or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


def _safe_key(value: str) -> str:
    cleaned = re.sub(r"[^\w.\-@]+", "_", value.strip())
    if cleaned in {"", ".", ".."}:
        cleaned = "unknown"
    return cleaned[:200]


class FileStorage:
    """One `<key>.json` file per key under a data directory."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        return self.root / f"{_safe_key(key)}.json"

    def get_item(self, key: str) -> Optional[str]:
        fp = self._path(key)
        if not fp.exists():
            return None
        return fp.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        fp = self._path(key)
        # Unique temp file per write so concurrent saves never share one
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=self.root, prefix=f"{fp.name}.", suffix=".tmp", delete=False
        ) as tmp:
            tmp.write(value)
        os.replace(tmp.name, fp)

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def dump_state(state: ClinicState) -> str:
    return json.dumps(state.to_dict(), ensure_ascii=False)


def parse_state(raw: str, today: Optional[date] = None) -> ClinicState:
    """
    Rebuild a ClinicState from its JSON layout.

    Stored documents are trusted as-is except for patient age (recomputed
    against `today`) and contact sanitation. Raises ValueError/TypeError/KeyError
    on documents that do not have the three collections, RecursionError on
    absurdly nested JSON.
    """
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("stored state is not an object")
    for name in ("patients", "visits", "payments"):
        if not isinstance(data.get(name), list):
            raise ValueError(f"stored state has no '{name}' list")

    patients = tuple(
        replace(
            patient,
            age=calculate_age(patient.birthDate, today),
            contact=sanitize_contact(patient.contact),
        )
        for patient in (patient_from_dict(item) for item in data["patients"])
    )
    return ClinicState(
        patients=patients,
        visits=tuple(visit_from_dict(item) for item in data["visits"]),
        payments=tuple(payment_from_dict(item) for item in data["payments"]),
    )


def load_state(storage: StateStorage, key: str, now: datetime) -> ClinicState:
    """Stored state if readable, otherwise the seed dataset. Never raises."""
    try:
        raw = storage.get_item(key)
    except Exception as exc:
        logger.error("state_read_failed", key=key, error=str(exc))
        return seed_state(now)

    if not raw:
        logger.info("state_not_found_using_seed", key=key)
        return seed_state(now)

    try:
        state = parse_state(raw, now.date())
    except (ValueError, TypeError, KeyError, AttributeError, RecursionError) as exc:
        logger.error("state_parse_failed_using_seed", key=key, error=str(exc))
        return seed_state(now)

    logger.info(
        "state_loaded",
        key=key,
        patients=len(state.patients),
        visits=len(state.visits),
        payments=len(state.payments),
    )
    return state


def save_state(storage: StateStorage, key: str, state: ClinicState) -> bool:
    """Write the full snapshot. Failures are logged and reported as False."""
    try:
        storage.set_item(key, dump_state(state))
    except Exception as exc:
        logger.error("state_write_failed", key=key, error=str(exc))
        return False
    return True
