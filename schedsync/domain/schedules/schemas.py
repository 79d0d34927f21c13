"""
Modelos de dominio para horarios de clase (un bloque semanal por registro).

Convenciones:
- Campos en inglés y snake_case.
- Días normalizados a códigos `mon..sun`.
- Horas `HH:MM` en 24h.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator

from schedsync.core.time import is_hhmm, normalize_day


Day = Literal["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


class Schedule(BaseModel):
    """Bloque semanal de una clase: días, rango horario, aula y referencias."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    days: List[str] = Field(default_factory=list)
    start_time: str
    end_time: str
    room_name: Optional[str] = None
    subject_id: Optional[str] = None
    subject_code: Optional[str] = None
    subject_name: Optional[str] = None
    section_id: Optional[str] = None
    section_code: Optional[str] = None
    semester: Optional[str] = None
    academic_year: Optional[str] = None
    department: Optional[str] = None

    @field_validator("days", mode="before")
    @classmethod
    def _normalize_days(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        uniq: List[str] = []
        for raw in v:
            code = normalize_day(str(raw))
            if code is None:
                raise ValueError(f"unknown day: {raw}")
            if code not in uniq:
                uniq.append(code)
        return uniq

    @field_validator("start_time", "end_time")
    @classmethod
    def _validate_time(cls, v: str) -> str:
        v = (v or "").strip()
        if is_hhmm(v):
            return v
        raise ValueError("time must be HH:MM")


class ScheduleCopy(Schedule):
    """Copia desnormalizada de un `Schedule` guardada en subjects/sections.

    `schedule_id` es el id del horario original; `id` lo replica para que las
    copias se puedan comparar directamente con el horario del profesor.
    """

    schedule_id: str
    instructor_id: str


class ConflictResult(BaseModel):
    has_conflict: bool
    conflicts: List[Schedule] = Field(default_factory=list)


class PendingPropagation(BaseModel):
    """Marcador de propagación pendiente (saga) guardado junto al commit del profesor."""

    token: str
    schedule_id: str
    action: Literal["upsert", "remove"]
    subject_id: Optional[str] = None
    section_id: Optional[str] = None
    previous_subject_id: Optional[str] = None
    previous_section_id: Optional[str] = None
    created_at: Optional[str] = None


class InstructorRecord(BaseModel):
    """Vista del documento `teachers` que le interesa al motor de sincronización."""

    instructor_id: str
    schedules: List[Schedule] = Field(default_factory=list)
    version: int = 0
    pending: List[PendingPropagation] = Field(default_factory=list)


class ProjectedViews(BaseModel):
    subjects: Dict[str, List[ScheduleCopy]] = Field(default_factory=dict)
    sections: Dict[str, ScheduleCopy] = Field(default_factory=dict)


class ReconcileReport(BaseModel):
    retried: int = 0
    settled: int = 0
    failed: List[str] = Field(default_factory=list)
