"""Endpoints de horarios por profesor: listar, chequear, alta, edición y baja."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import JSONResponse

from schedsync.api.deps import get_sync_service
from schedsync.api.schemas.schedules import ScheduleListOut, ScheduleWriteResponse
from schedsync.domain.schedules.errors import PropagationFailedError
from schedsync.domain.schedules.schemas import ConflictResult, Schedule
from schedsync.services.sync_service import ScheduleSyncService

router = APIRouter(prefix="/instructors/{instructor_id}/schedules", tags=["Schedules"])


def _partial(e: PropagationFailedError, message: str) -> JSONResponse:
    # El commit autoritativo sí ocurrió: 202 para que no se reenvíe el alta
    body = ScheduleWriteResponse(
        message=message,
        id=e.schedule_id or "",
        data=e.schedule,
        status="partial",
        stage=e.stage,
    )
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=body.model_dump(mode="json"))


@router.get(
    "",
    response_model=ScheduleListOut,
    summary="Listar horarios del profesor",
    description="Devuelve la lista autoritativa ordenada por día y hora de inicio.",
)
async def list_schedules(instructor_id: str, svc: ScheduleSyncService = Depends(get_sync_service)) -> ScheduleListOut:
    items = await svc.list_instructor_schedules(instructor_id)
    return ScheduleListOut(instructor_id=instructor_id, schedules=items)


@router.post(
    "/check",
    response_model=ConflictResult,
    summary="Chequear conflictos (sin escribir)",
)
async def check_schedule(
    instructor_id: str,
    payload: Schedule,
    exclude_id: Optional[str] = Query(default=None, description="Id del horario en edición"),
    svc: ScheduleSyncService = Depends(get_sync_service),
) -> ConflictResult:
    return await svc.check(instructor_id, payload, exclude_id=exclude_id)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=ScheduleWriteResponse,
    summary="Agregar horario",
    description="Valida, detecta conflictos, guarda en el profesor y propaga copias a materia/sección.",
)
async def create_schedule(instructor_id: str, payload: Schedule, svc: ScheduleSyncService = Depends(get_sync_service)):
    try:
        schedule = await svc.add_schedule(instructor_id, payload)
    except PropagationFailedError as e:
        return _partial(e, "saved; propagation pending")
    return ScheduleWriteResponse(message="ok", id=schedule.id, data=schedule)


@router.put(
    "/{schedule_id}",
    response_model=ScheduleWriteResponse,
    summary="Editar horario",
    description="Reemplaza el horario conservando su id; no choca consigo mismo.",
)
async def update_schedule(
    instructor_id: str,
    schedule_id: str,
    payload: Schedule,
    svc: ScheduleSyncService = Depends(get_sync_service),
):
    try:
        schedule = await svc.update_schedule(instructor_id, schedule_id, payload)
    except PropagationFailedError as e:
        return _partial(e, "saved; propagation pending")
    return ScheduleWriteResponse(message="ok", id=schedule.id, data=schedule)


@router.delete(
    "/{schedule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Eliminar horario",
    description="Baja idempotente: borrar dos veces no es error.",
)
async def delete_schedule(instructor_id: str, schedule_id: str, svc: ScheduleSyncService = Depends(get_sync_service)):
    await svc.remove_schedule(instructor_id, schedule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
