"""Endpoints de mantenimiento de copias desnormalizadas (reasignación y reconciliación)."""
from fastapi import APIRouter, Depends

from schedsync.api.deps import get_sync_service
from schedsync.api.schemas.schedules import ReassignOut, ReassignRequest, ResyncOut
from schedsync.domain.schedules.schemas import ReconcileReport
from schedsync.services.sync_service import ScheduleSyncService

router = APIRouter(tags=["Sync"])


@router.post(
    "/subjects/{subject_id}/reassign",
    response_model=ReassignOut,
    summary="Reasignar profesor de una materia",
    description="Reconstruye las copias de la materia sin tocar las de otros profesores.",
)
async def reassign(subject_id: str, payload: ReassignRequest, svc: ScheduleSyncService = Depends(get_sync_service)) -> ReassignOut:
    copies = await svc.reassign_instructor(subject_id, payload.old_instructor_id, payload.new_instructor_id)
    return ReassignOut(subject_id=subject_id, schedules=copies)


@router.post("/instructors/{instructor_id}/resync", response_model=ResyncOut, summary="Re-proyectar horarios del profesor")
async def resync(instructor_id: str, svc: ScheduleSyncService = Depends(get_sync_service)) -> ResyncOut:
    written = await svc.resync_instructor(instructor_id)
    return ResyncOut(instructor_id=instructor_id, copies_written=written)


@router.post("/sync/reconcile", response_model=ReconcileReport, summary="Reintentar propagaciones pendientes")
async def reconcile(svc: ScheduleSyncService = Depends(get_sync_service)) -> ReconcileReport:
    return await svc.reconcile_pending()
