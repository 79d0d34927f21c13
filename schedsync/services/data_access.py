"""
Fachada de acceso a datos para el motor de sincronización.

`ScheduleStore` es el contrato que consume el motor; `MongoScheduleStore` lo
implementa como envoltorio delgado sobre los repos async y traduce errores de
pymongo a `StoreError`.
"""
from __future__ import annotations

from typing import Any, Awaitable, Dict, List, Optional, Protocol, Tuple, TypeVar

from pymongo.errors import PyMongoError

from schedsync.domain.schedules.errors import InstructorNotFoundError, StaleInstructorError, StoreError
from schedsync.domain.schedules.schemas import (
    InstructorRecord,
    PendingPropagation,
    Schedule,
    ScheduleCopy,
)
from schedsync.repositories import sections_repo, subjects_repo, teachers_repo

T = TypeVar("T")


class ScheduleStore(Protocol):
    async def get_instructor_schedules(self, instructor_id: str) -> List[Schedule]: ...

    async def load_instructor(self, instructor_id: str) -> InstructorRecord: ...

    async def write_instructor_schedules(
        self,
        instructor_id: str,
        schedules: List[Schedule],
        *,
        expected_version: Optional[int] = None,
        pending: Optional[PendingPropagation] = None,
    ) -> int: ...

    async def clear_pending(self, instructor_id: str, token: str) -> None: ...

    async def list_pending(self) -> List[Tuple[str, PendingPropagation]]: ...

    async def upsert_subject_schedule_copy(self, subject_id: str, copy: ScheduleCopy) -> bool: ...

    async def remove_subject_schedule_copy(self, subject_id: str, schedule_id: str) -> None: ...

    async def list_subject_schedule_copies(self, subject_id: str) -> List[ScheduleCopy]: ...

    async def reassign_subject_copies(
        self, subject_id: str, old_instructor_id: str, new_instructor_id: str, copies: List[ScheduleCopy]
    ) -> List[ScheduleCopy]: ...

    async def set_section_schedule(
        self, section_id: str, copy: Optional[ScheduleCopy], *, only_if_schedule_id: Optional[str] = None
    ) -> bool: ...

    async def get_section(self, section_id: str) -> Optional[Dict[str, Any]]: ...

    async def find_subjects_with_copy(self, schedule_id: str) -> List[str]: ...

    async def find_sections_with_copy(self, schedule_id: str) -> List[str]: ...

    async def find_subjects_with_instructor_copies(self, instructor_id: str) -> List[str]: ...


async def _guard(op: str, aw: Awaitable[T]) -> T:
    try:
        return await aw
    except PyMongoError as e:
        raise StoreError(f"{op} failed: {e}", cause=e) from e


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(mode="json")


class MongoScheduleStore:
    """Implementación Motor del contrato `ScheduleStore`."""

    async def get_instructor_schedules(self, instructor_id: str) -> List[Schedule]:
        return (await self.load_instructor(instructor_id)).schedules

    async def load_instructor(self, instructor_id: str) -> InstructorRecord:
        doc = await _guard("load_instructor", teachers_repo.get_teacher(instructor_id))
        if doc is None:
            raise InstructorNotFoundError(instructor_id)
        return InstructorRecord(
            instructor_id=instructor_id,
            schedules=[Schedule(**s) for s in (doc.get("schedules") or [])],
            version=int(doc.get("schedules_version") or 0),
            pending=[PendingPropagation(**p) for p in (doc.get("pending_sync") or [])],
        )

    async def write_instructor_schedules(
        self,
        instructor_id: str,
        schedules: List[Schedule],
        *,
        expected_version: Optional[int] = None,
        pending: Optional[PendingPropagation] = None,
    ) -> int:
        version = await _guard(
            "write_instructor_schedules",
            teachers_repo.write_schedules(
                instructor_id,
                [_dump(s) for s in schedules],
                expected_version=expected_version,
                pending=_dump(pending) if pending is not None else None,
            ),
        )
        if version is not None:
            return version
        if not await _guard("teacher_exists", teachers_repo.teacher_exists(instructor_id)):
            raise InstructorNotFoundError(instructor_id)
        raise StaleInstructorError(instructor_id, expected_version if expected_version is not None else -1)

    async def clear_pending(self, instructor_id: str, token: str) -> None:
        await _guard("clear_pending", teachers_repo.pull_pending(instructor_id, token))

    async def list_pending(self) -> List[Tuple[str, PendingPropagation]]:
        docs = await _guard("list_pending", teachers_repo.list_with_pending())
        out: List[Tuple[str, PendingPropagation]] = []
        for d in docs:
            for p in d.get("pending_sync") or []:
                out.append((str(d["_id"]), PendingPropagation(**p)))
        return out

    async def upsert_subject_schedule_copy(self, subject_id: str, copy: ScheduleCopy) -> bool:
        return await _guard("upsert_subject_schedule_copy", subjects_repo.upsert_copy(subject_id, _dump(copy)))

    async def remove_subject_schedule_copy(self, subject_id: str, schedule_id: str) -> None:
        await _guard("remove_subject_schedule_copy", subjects_repo.remove_copy(subject_id, schedule_id))

    async def list_subject_schedule_copies(self, subject_id: str) -> List[ScheduleCopy]:
        items = await _guard("list_subject_schedule_copies", subjects_repo.list_copies(subject_id))
        return [ScheduleCopy(**c) for c in items]

    async def reassign_subject_copies(
        self, subject_id: str, old_instructor_id: str, new_instructor_id: str, copies: List[ScheduleCopy]
    ) -> List[ScheduleCopy]:
        items = await _guard(
            "reassign_subject_copies",
            subjects_repo.reassign_copies(subject_id, old_instructor_id, new_instructor_id, [_dump(c) for c in copies]),
        )
        return [ScheduleCopy(**c) for c in items or []]

    async def set_section_schedule(
        self, section_id: str, copy: Optional[ScheduleCopy], *, only_if_schedule_id: Optional[str] = None
    ) -> bool:
        return await _guard(
            "set_section_schedule",
            sections_repo.set_schedule(
                section_id,
                _dump(copy) if copy is not None else None,
                only_if_schedule_id=only_if_schedule_id,
            ),
        )

    async def get_section(self, section_id: str) -> Optional[Dict[str, Any]]:
        return await _guard("get_section", sections_repo.get_section(section_id))

    async def find_subjects_with_copy(self, schedule_id: str) -> List[str]:
        return await _guard("find_subjects_with_copy", subjects_repo.find_ids_with_copy(schedule_id))

    async def find_sections_with_copy(self, schedule_id: str) -> List[str]:
        return await _guard("find_sections_with_copy", sections_repo.find_ids_with_copy(schedule_id))

    async def find_subjects_with_instructor_copies(self, instructor_id: str) -> List[str]:
        return await _guard(
            "find_subjects_with_instructor_copies", subjects_repo.find_ids_with_instructor(instructor_id)
        )
