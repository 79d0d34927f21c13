"""Reglas puras sobre un `Schedule`: validación, igualdad lógica y etiquetas."""
from __future__ import annotations

from typing import Optional, Tuple

from schedsync.core.time import day_order, to_minutes
from schedsync.domain.schedules.errors import EmptyDays, InvalidTimeRange, MissingRoom
from schedsync.domain.schedules.schemas import Schedule, ScheduleCopy


def _blank_to_none(v: Optional[str]) -> Optional[str]:
    v = (v or "").strip()
    return v or None


def validate_schedule(schedule: Schedule) -> None:
    """Lanza el primer error de validación encontrado (rango, días, aula)."""
    if to_minutes(schedule.start_time) >= to_minutes(schedule.end_time):
        raise InvalidTimeRange(schedule.start_time, schedule.end_time)
    if not schedule.days:
        raise EmptyDays()
    if not _blank_to_none(schedule.room_name):
        raise MissingRoom()


def scope_of(schedule: Schedule) -> Tuple[Optional[str], Optional[str]]:
    return (_blank_to_none(schedule.semester), _blank_to_none(schedule.academic_year))


def same_slot(a: Schedule, b: Schedule) -> bool:
    """Mismo bloque lógico: días, horas y alcance iguales (ignora `id`)."""
    return (
        set(a.days) == set(b.days)
        and a.start_time == b.start_time
        and a.end_time == b.end_time
        and scope_of(a) == scope_of(b)
    )


def describe(schedule: Schedule) -> str:
    days = "/".join(d.capitalize() for d in schedule.days) or "-"
    subject = schedule.subject_code or schedule.subject_name or schedule.subject_id or "unassigned"
    return f"{days} {schedule.start_time}-{schedule.end_time} {subject}"


def sort_key(schedule: Schedule) -> Tuple[int, int, str]:
    first_day = min((day_order(d) for d in schedule.days), default=99)
    return (first_day, to_minutes(schedule.start_time), schedule.id or "")


def to_copy(schedule: Schedule, instructor_id: str) -> ScheduleCopy:
    data = schedule.model_dump(exclude={"schedule_id", "instructor_id"})
    return ScheduleCopy(**data, schedule_id=schedule.id, instructor_id=instructor_id)
