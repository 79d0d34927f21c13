"""
Esquemas Pydantic de entrada/salida para endpoints de horarios.

El cuerpo de alta/edición es el `Schedule` de dominio (sin `id` obligatorio).
"""
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from schedsync.domain.schedules.schemas import Schedule, ScheduleCopy


class ScheduleWriteResponse(BaseModel):
    message: str
    id: str
    data: Schedule
    # "partial": el horario quedó guardado pero faltan copias (ver `stage`)
    status: Literal["settled", "partial"] = "settled"
    stage: Optional[str] = None


class ScheduleListOut(BaseModel):
    instructor_id: str
    schedules: List[Schedule] = Field(default_factory=list)


class ReassignRequest(BaseModel):
    old_instructor_id: str = Field(min_length=1)
    new_instructor_id: str = Field(min_length=1)


class ReassignOut(BaseModel):
    subject_id: str
    schedules: List[ScheduleCopy] = Field(default_factory=list)


class ResyncOut(BaseModel):
    instructor_id: str
    copies_written: int
