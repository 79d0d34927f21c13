"""Detección de traslapes entre un horario candidato y los horarios de un profesor.

Funciones puras: sin IO ni efectos secundarios.
"""
from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from schedsync.core.time import to_minutes
from schedsync.domain.schedules.schemas import ConflictResult, Schedule
from schedsync.domain.schedules.validation import scope_of


def overlaps(a: Schedule, b: Schedule) -> bool:
    """True si comparten día y sus rangos [inicio, fin) se traslapan en el mismo alcance."""
    if scope_of(a) != scope_of(b):
        return False
    if not set(a.days) & set(b.days):
        return False
    s1, e1 = to_minutes(a.start_time), to_minutes(a.end_time)
    s2, e2 = to_minutes(b.start_time), to_minutes(b.end_time)
    return s1 < e2 and s2 < e1


def check_conflict(candidate: Schedule, existing: Iterable[Schedule], exclude_id: Optional[str] = None) -> ConflictResult:
    """Devuelve los horarios de `existing` que chocan con `candidate`.

    `exclude_id` omite el horario que se está editando.
    """
    conflicts: List[Schedule] = []
    for other in existing:
        if exclude_id is not None and other.id == exclude_id:
            continue
        if overlaps(candidate, other):
            conflicts.append(other)
    return ConflictResult(has_conflict=bool(conflicts), conflicts=conflicts)


def find_self_overlaps(schedules: List[Schedule]) -> List[Tuple[Schedule, Schedule]]:
    """Pares ya traslapados dentro de una lista guardada (auditoría)."""
    pairs: List[Tuple[Schedule, Schedule]] = []
    for i, a in enumerate(schedules):
        for b in schedules[i + 1:]:
            if overlaps(a, b):
                pairs.append((a, b))
    return pairs
