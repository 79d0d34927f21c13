"""
Dependencias reutilizables para routers (FastAPI Depends).

- Mantener esta capa delgada: sin lógica de negocio.
- La autenticación es un pre-chequeo de la app contenedora, no se repite aquí.
"""
from fastapi import Depends, Request

from schedsync.core.config import settings
from schedsync.services.data_access import MongoScheduleStore, ScheduleStore
from schedsync.services.sync_service import ScheduleSyncService


def get_schedule_store() -> ScheduleStore:
    return MongoScheduleStore()


def get_sync_service(request: Request, store: ScheduleStore = Depends(get_schedule_store)) -> ScheduleSyncService:
    # Los locks por profesor viven en app.state para compartirse entre requests
    return ScheduleSyncService(store, settings, locks=request.app.state.instructor_locks)
