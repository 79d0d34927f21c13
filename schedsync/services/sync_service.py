"""
Motor de sincronización de horarios (saga sin transacciones entre colecciones).

Flujo por cambio:
1. Validar el candidato y detectar conflictos contra la lista del profesor.
2. Commit: escribir la lista autoritativa (CAS sobre `schedules_version`) junto
   con un marcador de propagación pendiente.
3. Propagar copias a subjects/sections con reintentos acotados.
4. Limpiar el marcador. Si la propagación falla se lanza `PropagationFailedError`
   y el marcador queda para `reconcile_pending()`.

Las escrituras de copias son reemplazo-por-id, así que repetir cualquier paso
converge al mismo estado.
"""
from __future__ import annotations

import asyncio
import logging
import weakref
from typing import Awaitable, Callable, List, MutableMapping, Optional, Set, Tuple, TypeVar
from uuid import uuid4

from schedsync.core.config import Settings, settings as default_settings
from schedsync.core.time import now_iso
from schedsync.domain.schedules.errors import (
    ConcurrentModificationError,
    DuplicateScheduleId,
    InstructorNotFoundError,
    PropagationFailedError,
    ScheduleConflictError,
    ScheduleNotFoundError,
    SectionInstructorMismatch,
    StaleInstructorError,
    StoreError,
)
from schedsync.domain.schedules.schemas import (
    ConflictResult,
    InstructorRecord,
    PendingPropagation,
    ReconcileReport,
    Schedule,
    ScheduleCopy,
)
from schedsync.domain.schedules.validation import sort_key, to_copy, validate_schedule
from schedsync.services.conflict_service import check_conflict, find_self_overlaps
from schedsync.services.data_access import ScheduleStore
from schedsync.services.projection import project

_log = logging.getLogger("schedsync.sync")

T = TypeVar("T")

# build(record) -> (nueva lista o None si no hay que escribir, marcador, resultado)
Builder = Callable[[InstructorRecord], Tuple[Optional[List[Schedule]], PendingPropagation, Optional[Schedule]]]


def _pending(schedule_id: str, action: str, **refs: Optional[str]) -> PendingPropagation:
    return PendingPropagation(
        token=uuid4().hex,
        schedule_id=schedule_id,
        action=action,
        created_at=now_iso(),
        **refs,
    )


def _find(schedules: List[Schedule], schedule_id: str) -> Optional[Schedule]:
    return next((s for s in schedules if s.id == schedule_id), None)


class ScheduleSyncService:
    """Orquesta altas, ediciones y bajas de horarios y mantiene las copias al día."""

    def __init__(
        self,
        store: ScheduleStore,
        settings: Optional[Settings] = None,
        locks: Optional[MutableMapping[str, asyncio.Lock]] = None,
    ) -> None:
        self.store = store
        self.settings = settings or default_settings
        # Registro débil: un lock se libera de memoria cuando nadie lo usa
        self._locks = locks if locks is not None else weakref.WeakValueDictionary()

    # ---- Helpers ----

    def _lock(self, instructor_id: str) -> asyncio.Lock:
        lock = self._locks.get(instructor_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[instructor_id] = lock
        return lock

    def _new_id(self) -> str:
        return f"{self.settings.schedule_id_prefix}{uuid4().hex}"

    async def _with_retry(self, stage: str, schedule_id: str, fn: Callable[[], Awaitable[T]]) -> T:
        attempts = max(1, self.settings.sync_retry_attempts)
        attempt = 0
        while True:
            attempt += 1
            try:
                return await fn()
            except StoreError as e:
                if attempt >= attempts:
                    _log.error("stage=%s schedule_id=%s propagation failed after %s attempts: %s", stage, schedule_id, attempts, e)
                    raise PropagationFailedError(stage, e, schedule_id=schedule_id) from e
                _log.warning("stage=%s schedule_id=%s attempt=%s failed: %s", stage, schedule_id, attempt, e)
                backoff = self.settings.sync_retry_backoff_seconds * attempt
                if backoff > 0:
                    await asyncio.sleep(backoff)

    async def _check_section(self, instructor_id: str, candidate: Schedule) -> None:
        if not candidate.section_id:
            return
        section = await self.store.get_section(candidate.section_id)
        owner = (section or {}).get("instructor_id")
        if owner and owner != instructor_id:
            raise SectionInstructorMismatch(candidate.section_id, instructor_id, owner)

    async def _commit(self, instructor_id: str, build: Builder) -> Tuple[PendingPropagation, Optional[Schedule], bool]:
        """Lee-valida-escribe con compare-and-swap; reintenta si la versión cambió.

        La lectura no se reintenta ante `StoreError`: se propaga tal cual.
        """
        attempts = max(1, self.settings.sync_cas_attempts)
        for attempt in range(1, attempts + 1):
            record = await self.store.load_instructor(instructor_id)
            schedules, pending, result = build(record)
            if schedules is None:
                return pending, result, False
            try:
                version = await self.store.write_instructor_schedules(
                    instructor_id,
                    schedules,
                    expected_version=record.version,
                    pending=pending,
                )
            except StaleInstructorError:
                _log.info("instructor_id=%s stale version=%s attempt=%s; reloading", instructor_id, record.version, attempt)
                continue
            _log.info(
                "commit instructor_id=%s schedule_id=%s action=%s version=%s",
                instructor_id, pending.schedule_id, pending.action, version,
            )
            return pending, result, True
        raise ConcurrentModificationError(instructor_id, attempts)

    async def _apply(self, instructor_id: str, pending: PendingPropagation, schedule: Optional[Schedule]) -> None:
        """Aplica un marcador pendiente sobre subjects/sections (idempotente)."""
        sid = pending.schedule_id

        if pending.action == "remove":
            subject_ids: Set[str] = set(await self._with_retry("cleanup_subject", sid, lambda: self.store.find_subjects_with_copy(sid)))
            if pending.subject_id:
                subject_ids.add(pending.subject_id)
            for subject_id in sorted(subject_ids):
                await self._with_retry(
                    "cleanup_subject", sid,
                    lambda subject_id=subject_id: self.store.remove_subject_schedule_copy(subject_id, sid),
                )
            section_ids: Set[str] = set(await self._with_retry("cleanup_section", sid, lambda: self.store.find_sections_with_copy(sid)))
            if pending.section_id:
                section_ids.add(pending.section_id)
            for section_id in sorted(section_ids):
                await self._with_retry(
                    "cleanup_section", sid,
                    lambda section_id=section_id: self.store.set_section_schedule(section_id, None, only_if_schedule_id=sid),
                )
            return

        if schedule is None:
            return
        copy = to_copy(schedule, instructor_id)

        if pending.previous_subject_id and pending.previous_subject_id != schedule.subject_id:
            prev = pending.previous_subject_id
            await self._with_retry("cleanup_subject", sid, lambda: self.store.remove_subject_schedule_copy(prev, sid))
        if pending.previous_section_id and pending.previous_section_id != schedule.section_id:
            prev_section = pending.previous_section_id
            await self._with_retry(
                "cleanup_section", sid,
                lambda: self.store.set_section_schedule(prev_section, None, only_if_schedule_id=sid),
            )

        if schedule.subject_id:
            subject_id = schedule.subject_id
            found = await self._with_retry("subject", sid, lambda: self.store.upsert_subject_schedule_copy(subject_id, copy))
            if not found:
                _log.warning("subject_id=%s not found; copy of schedule_id=%s skipped", subject_id, sid)

        if schedule.section_id:
            section_id = schedule.section_id
            section = await self._with_retry("section", sid, lambda: self.store.get_section(section_id))
            if section is not None:
                await self._with_retry("section", sid, lambda: self.store.set_section_schedule(section_id, copy))

    async def _settle(self, instructor_id: str, pending: PendingPropagation, schedule: Optional[Schedule], persisted: bool) -> None:
        try:
            await self._apply(instructor_id, pending, schedule)
        except PropagationFailedError as e:
            if schedule is not None:
                e.schedule = schedule
                e.details["schedule"] = schedule.model_dump(mode="json")
            raise
        if persisted:
            try:
                await self._with_retry("clear_pending", pending.schedule_id, lambda: self.store.clear_pending(instructor_id, pending.token))
            except PropagationFailedError:
                # Las copias ya convergieron; reconciliar el marcador es inocuo
                _log.warning("instructor_id=%s pending token=%s left behind", instructor_id, pending.token)

    async def _settle_shielded(self, instructor_id: str, pending: PendingPropagation, schedule: Optional[Schedule], persisted: bool) -> None:
        """Corre `_settle` sin que una cancelación del caller la corte.

        Se llama con el lock del profesor tomado; si el caller se cancela, el lock
        se mantiene hasta que la propagación termine y luego se re-lanza la cancelación.
        """
        task = asyncio.ensure_future(self._settle(instructor_id, pending, schedule, persisted))
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            await asyncio.wait([task])
            if not task.cancelled() and task.exception() is not None:
                _log.warning(
                    "instructor_id=%s schedule_id=%s propagation after cancel failed: %s",
                    instructor_id, pending.schedule_id, task.exception(),
                )
            raise

    # ---- Operaciones ----

    async def check(self, instructor_id: str, candidate: Schedule, exclude_id: Optional[str] = None) -> ConflictResult:
        """Chequeo en seco: valida y detecta conflictos sin escribir nada."""
        validate_schedule(candidate)
        existing = await self.store.get_instructor_schedules(instructor_id)
        return check_conflict(candidate, existing, exclude_id=exclude_id)

    async def list_instructor_schedules(self, instructor_id: str) -> List[Schedule]:
        schedules = await self.store.get_instructor_schedules(instructor_id)
        return sorted(schedules, key=sort_key)

    async def add_schedule(self, instructor_id: str, candidate: Schedule) -> Schedule:
        validate_schedule(candidate)
        await self._check_section(instructor_id, candidate)

        def build(record: InstructorRecord):
            existing = record.schedules
            if candidate.id:
                prior = _find(existing, candidate.id)
                if prior is not None:
                    # Reintento de un alta ya confirmada: solo re-propagar
                    if prior.model_dump() == candidate.model_dump():
                        return None, _pending(prior.id, "upsert"), prior
                    raise DuplicateScheduleId(candidate.id)
            result = check_conflict(candidate, existing)
            if result.has_conflict:
                raise ScheduleConflictError(result.conflicts)
            schedule = candidate.model_copy(update={"id": candidate.id or self._new_id()})
            pending = _pending(schedule.id, "upsert", subject_id=schedule.subject_id, section_id=schedule.section_id)
            return existing + [schedule], pending, schedule

        async with self._lock(instructor_id):
            pending, schedule, persisted = await self._commit(instructor_id, build)
            await self._settle_shielded(instructor_id, pending, schedule, persisted)
        return schedule

    async def update_schedule(self, instructor_id: str, schedule_id: str, candidate: Schedule) -> Schedule:
        """Edición = validar como nuevo excluyéndose a sí mismo + reemplazo por id."""
        validate_schedule(candidate)
        await self._check_section(instructor_id, candidate)

        def build(record: InstructorRecord):
            existing = record.schedules
            prior = _find(existing, schedule_id)
            if prior is None:
                raise ScheduleNotFoundError(instructor_id, schedule_id)
            result = check_conflict(candidate, existing, exclude_id=schedule_id)
            if result.has_conflict:
                raise ScheduleConflictError(result.conflicts)
            updated = candidate.model_copy(update={"id": schedule_id})
            schedules = [updated if s.id == schedule_id else s for s in existing]
            pending = _pending(
                schedule_id,
                "upsert",
                subject_id=updated.subject_id,
                section_id=updated.section_id,
                previous_subject_id=prior.subject_id,
                previous_section_id=prior.section_id,
            )
            return schedules, pending, updated

        async with self._lock(instructor_id):
            pending, schedule, persisted = await self._commit(instructor_id, build)
            await self._settle_shielded(instructor_id, pending, schedule, persisted)
        return schedule

    async def remove_schedule(self, instructor_id: str, schedule_id: str) -> None:
        """Baja autoritativa y limpieza de copias; repetirla no es error."""

        def build(record: InstructorRecord):
            target = _find(record.schedules, schedule_id)
            if target is None:
                # Ya se borró: limpieza tolerante a una baja previa parcial
                return None, _pending(schedule_id, "remove"), None
            schedules = [s for s in record.schedules if s.id != schedule_id]
            pending = _pending(schedule_id, "remove", subject_id=target.subject_id, section_id=target.section_id)
            return schedules, pending, target

        async with self._lock(instructor_id):
            pending, removed, persisted = await self._commit(instructor_id, build)
            await self._settle_shielded(instructor_id, pending, removed, persisted)

    async def reassign_instructor(self, subject_id: str, old_instructor_id: str, new_instructor_id: str) -> List[ScheduleCopy]:
        """Reconstruye las copias de una materia al cambiar su profesor.

        Conserva las copias de los demás profesores; descarta las del anterior y
        proyecta los horarios vigentes del nuevo para esa materia. El cambio sobre
        la materia es un solo update atómico: altas concurrentes de otros
        profesores no se pierden.
        """
        # El lock del nuevo profesor evita que su lista cambie entre la lectura y el update
        async with self._lock(new_instructor_id):
            new_schedules = await self.store.get_instructor_schedules(new_instructor_id)
            added = [to_copy(s, new_instructor_id) for s in new_schedules if s.id and s.subject_id == subject_id]
            rebuilt = await self._with_retry(
                "subject", subject_id,
                lambda: self.store.reassign_subject_copies(subject_id, old_instructor_id, new_instructor_id, added),
            )
        _log.info(
            "reassign subject_id=%s old=%s new=%s added=%s total=%s",
            subject_id, old_instructor_id, new_instructor_id, len(added), len(rebuilt),
        )
        return rebuilt

    async def resync_instructor(self, instructor_id: str) -> int:
        """Re-proyecta todos los horarios del profesor y barre copias huérfanas.

        Devuelve el número de copias escritas.
        """
        async with self._lock(instructor_id):
            record = await self.store.load_instructor(instructor_id)
            for pending in record.pending:
                await self._apply(instructor_id, pending, _find(record.schedules, pending.schedule_id))
                await self._with_retry(
                    "clear_pending", pending.schedule_id,
                    lambda token=pending.token: self.store.clear_pending(instructor_id, token),
                )

            # Datos previos a la validación pueden traer traslapes: se reportan, no se corrigen
            for a, b in find_self_overlaps(record.schedules):
                _log.warning("instructor_id=%s stored overlap: %s <-> %s", instructor_id, a.id, b.id)

            views = project(instructor_id, record.schedules)
            written = 0
            for subject_id, copies in views.subjects.items():
                for copy in copies:
                    await self._with_retry(
                        "subject", copy.schedule_id,
                        lambda subject_id=subject_id, copy=copy: self.store.upsert_subject_schedule_copy(subject_id, copy),
                    )
                    written += 1
            for section_id, copy in views.sections.items():
                section = await self._with_retry("section", copy.schedule_id, lambda section_id=section_id: self.store.get_section(section_id))
                if section is None:
                    continue
                await self._with_retry(
                    "section", copy.schedule_id,
                    lambda section_id=section_id, copy=copy: self.store.set_section_schedule(section_id, copy),
                )
                written += 1

            live = {s.id for s in record.schedules}
            stale_subjects = await self._with_retry(
                "cleanup_subject", instructor_id,
                lambda: self.store.find_subjects_with_instructor_copies(instructor_id),
            )
            for subject_id in stale_subjects:
                copies = await self._with_retry(
                    "cleanup_subject", instructor_id,
                    lambda subject_id=subject_id: self.store.list_subject_schedule_copies(subject_id),
                )
                for c in copies:
                    if c.instructor_id == instructor_id and c.schedule_id not in live:
                        await self._with_retry(
                            "cleanup_subject", c.schedule_id,
                            lambda subject_id=subject_id, sid=c.schedule_id: self.store.remove_subject_schedule_copy(subject_id, sid),
                        )

        _log.info("resync instructor_id=%s copies_written=%s", instructor_id, written)
        return written

    async def reconcile_pending(self) -> ReconcileReport:
        """Reintenta todas las propagaciones pendientes registradas en `teachers`."""
        report = ReconcileReport()
        for instructor_id, pending in await self.store.list_pending():
            report.retried += 1
            try:
                async with self._lock(instructor_id):
                    schedule = None
                    if pending.action == "upsert":
                        record = await self.store.load_instructor(instructor_id)
                        schedule = _find(record.schedules, pending.schedule_id)
                    await self._settle(instructor_id, pending, schedule, persisted=True)
                report.settled += 1
            except (PropagationFailedError, StoreError, InstructorNotFoundError) as e:
                _log.warning("reconcile instructor_id=%s schedule_id=%s failed: %s", instructor_id, pending.schedule_id, e)
                report.failed.append(pending.schedule_id)
        _log.info("reconcile retried=%s settled=%s failed=%s", report.retried, report.settled, len(report.failed))
        return report
