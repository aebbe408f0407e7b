# Mutation commands - one variant per store operation, applied by a single pure transition
from __future__ import annotations

from dataclasses import dataclass, replace
from functools import reduce
from typing import Iterable, Tuple, TypeVar, Union

from models import ClinicState, Patient, Payment, Visit


@dataclass(frozen=True)
class AddPatient:
    patient: Patient


@dataclass(frozen=True)
class UpdatePatient:
    patient: Patient


@dataclass(frozen=True)
class AddVisit:
    visit: Visit


@dataclass(frozen=True)
class UpdateVisit:
    visit: Visit


@dataclass(frozen=True)
class AddPayment:
    payment: Payment


@dataclass(frozen=True)
class UpdatePayment:
    payment: Payment


Command = Union[AddPatient, UpdatePatient, AddVisit, UpdateVisit, AddPayment, UpdatePayment]

R = TypeVar("R", Patient, Visit, Payment)


def _replace_by_id(records: Tuple[R, ...], record: R) -> Tuple[R, ...]:
    return tuple(record if existing.id == record.id else existing for existing in records)


def apply_command(state: ClinicState, command: Command) -> ClinicState:
    """
    Return the state that results from applying one command.
    Adds append, updates swap the record with the same id (no-op if it is absent).
    The input state is never modified.
    """
    if isinstance(command, AddPatient):
        return replace(state, patients=state.patients + (command.patient,))
    if isinstance(command, UpdatePatient):
        return replace(state, patients=_replace_by_id(state.patients, command.patient))
    if isinstance(command, AddVisit):
        return replace(state, visits=state.visits + (command.visit,))
    if isinstance(command, UpdateVisit):
        return replace(state, visits=_replace_by_id(state.visits, command.visit))
    if isinstance(command, AddPayment):
        return replace(state, payments=state.payments + (command.payment,))
    if isinstance(command, UpdatePayment):
        return replace(state, payments=_replace_by_id(state.payments, command.payment))
    return state


def replay(initial: ClinicState, commands: Iterable[Command]) -> ClinicState:
    """Fold a command history over an initial state."""
    return reduce(apply_command, commands, initial)
