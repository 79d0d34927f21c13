"""Proyección de la lista autoritativa del profesor hacia las vistas de subjects/sections."""
from __future__ import annotations

from typing import Iterable

from schedsync.domain.schedules.schemas import ProjectedViews, Schedule
from schedsync.domain.schedules.validation import to_copy


def project(instructor_id: str, schedules: Iterable[Schedule]) -> ProjectedViews:
    views = ProjectedViews()
    for schedule in schedules:
        if not schedule.id:
            continue
        copy = to_copy(schedule, instructor_id)
        if schedule.subject_id:
            views.subjects.setdefault(schedule.subject_id, []).append(copy)
        if schedule.section_id:
            # Una sección guarda un solo horario: gana el último de la lista
            views.sections[schedule.section_id] = copy
    return views
