"""
Taxonomía de errores del subsistema de horarios.

- Validación y conflicto: corregibles por el usuario, se detectan antes de escribir.
- PropagationFailed: el commit del profesor SÍ ocurrió; las copias quedan pendientes.
- StoreError: falla transitoria del almacén de documentos.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, TYPE_CHECKING

from schedsync.core.exceptions import AppError

if TYPE_CHECKING:
    from schedsync.domain.schedules.schemas import Schedule


def _label(schedule: "Schedule") -> str:
    from schedsync.domain.schedules.validation import describe

    return describe(schedule)


class ScheduleValidationError(AppError):
    """Entrada inválida; no se escribió nada."""

    reason = "invalid_schedule"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=422, details={"reason": self.reason, **(details or {})})


class InvalidTimeRange(ScheduleValidationError):
    reason = "invalid_time_range"

    def __init__(self, start_time: str, end_time: str):
        super().__init__(
            f"Start time {start_time} must be earlier than end time {end_time}",
            details={"start_time": start_time, "end_time": end_time},
        )


class EmptyDays(ScheduleValidationError):
    reason = "empty_days"

    def __init__(self):
        super().__init__("At least one day is required")


class MissingRoom(ScheduleValidationError):
    reason = "missing_room"

    def __init__(self):
        super().__init__("A room is required to schedule a class")


class SectionInstructorMismatch(ScheduleValidationError):
    reason = "section_instructor_mismatch"

    def __init__(self, section_id: str, expected: str, actual: str):
        super().__init__(
            f"Section {section_id} belongs to instructor {actual}, not {expected}",
            details={"section_id": section_id, "instructor_id": actual},
        )


class DuplicateScheduleId(ScheduleValidationError):
    reason = "duplicate_schedule_id"

    def __init__(self, schedule_id: str):
        super().__init__(
            f"Schedule id {schedule_id} is already used by a different slot",
            details={"schedule_id": schedule_id},
        )


class ScheduleConflictError(AppError):
    """El candidato se traslapa con horarios existentes del profesor."""

    def __init__(self, conflicts: List["Schedule"]):
        self.conflicts = list(conflicts)
        labels = [_label(s) for s in self.conflicts]
        super().__init__(
            "Schedule conflicts with: " + "; ".join(labels),
            status_code=409,
            details={
                "reason": "schedule_conflict",
                "conflicts": [s.model_dump(mode="json") for s in self.conflicts],
            },
        )


class StoreError(AppError):
    """Falla transitoria del almacén (red, disponibilidad)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message, status_code=503, details={"reason": "store_unavailable"})


class StaleInstructorError(AppError):
    """El documento del profesor cambió entre la lectura y la escritura (CAS falló)."""

    def __init__(self, instructor_id: str, expected_version: int):
        self.instructor_id = instructor_id
        self.expected_version = expected_version
        super().__init__(
            f"Instructor {instructor_id} changed since version {expected_version}",
            status_code=409,
        )


class ConcurrentModificationError(AppError):
    def __init__(self, instructor_id: str, attempts: int):
        super().__init__(
            f"Instructor {instructor_id} schedules kept changing; gave up after {attempts} attempts",
            status_code=409,
            details={"reason": "concurrent_modification", "instructor_id": instructor_id},
        )


class InstructorNotFoundError(AppError):
    def __init__(self, instructor_id: str):
        super().__init__(f"Instructor with id {instructor_id} not found", status_code=404)


class ScheduleNotFoundError(AppError):
    def __init__(self, instructor_id: str, schedule_id: str):
        super().__init__(
            f"Schedule {schedule_id} not found for instructor {instructor_id}",
            status_code=404,
        )


class PropagationFailedError(AppError):
    """Commit autoritativo hecho; falló una copia desnormalizada tras agotar reintentos.

    Es un éxito parcial: no se revierte el commit y el marcador pendiente queda
    para el paso de reconciliación.
    """

    def __init__(self, stage: str, cause: BaseException, schedule: Optional["Schedule"] = None, schedule_id: Optional[str] = None):
        self.stage = stage
        self.cause = cause
        self.schedule = schedule
        self.schedule_id = schedule_id or (schedule.id if schedule is not None else None)
        details: Dict[str, Any] = {
            "reason": "propagation_failed",
            "status": "partial",
            "stage": stage,
            "schedule_id": self.schedule_id,
        }
        if schedule is not None:
            details["schedule"] = schedule.model_dump(mode="json")
        super().__init__(
            f"Schedule {self.schedule_id} was saved but {stage} propagation failed: {cause}",
            status_code=202,
            details=details,
        )
