"""Repo async de `teachers`: lista autoritativa de horarios por profesor.

Cada escritura de `schedules` incrementa `schedules_version` (compare-and-swap)
y registra el marcador de propagación pendiente en el mismo update.
"""
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument

from schedsync.core.time import now_iso
from schedsync.infrastructure.db.mongo_async import get_async_db

COLLECTION = "teachers"

_PROJECTION = {"schedules": 1, "schedules_version": 1, "pending_sync": 1}


def _version_filter(expected_version: int) -> Dict[str, Any]:
    if expected_version == 0:
        # Documentos legacy sin contador cuentan como versión 0
        return {"$or": [{"schedules_version": 0}, {"schedules_version": {"$exists": False}}]}
    return {"schedules_version": expected_version}


async def get_teacher(instructor_id: str) -> Optional[Dict[str, Any]]:
    db = get_async_db()
    return await db[COLLECTION].find_one({"_id": instructor_id}, _PROJECTION)


async def teacher_exists(instructor_id: str) -> bool:
    db = get_async_db()
    return await db[COLLECTION].count_documents({"_id": instructor_id}, limit=1) > 0


async def write_schedules(
    instructor_id: str,
    schedules: List[Dict[str, Any]],
    expected_version: Optional[int] = None,
    pending: Optional[Dict[str, Any]] = None,
) -> Optional[int]:
    """Reemplaza `schedules` y devuelve la nueva versión.

    Devuelve None si el profesor no existe o la versión no coincide.
    """
    db = get_async_db()
    q: Dict[str, Any] = {"_id": instructor_id}
    if expected_version is not None:
        q.update(_version_filter(expected_version))

    stage: Dict[str, Any] = {
        "schedules": {"$literal": schedules},
        "schedules_version": {"$add": [{"$ifNull": ["$schedules_version", 0]}, 1]},
        "updated_at": now_iso(),
    }
    if pending is not None:
        # Un marcador por schedule_id: el más reciente reemplaza al anterior
        stage["pending_sync"] = {
            "$concatArrays": [
                {
                    "$filter": {
                        "input": {"$ifNull": ["$pending_sync", []]},
                        "as": "p",
                        "cond": {"$ne": ["$$p.schedule_id", {"$literal": pending["schedule_id"]}]},
                    }
                },
                [{"$literal": pending}],
            ]
        }

    doc = await db[COLLECTION].find_one_and_update(
        q,
        [{"$set": stage}],
        projection={"schedules_version": 1},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        return None
    return int(doc.get("schedules_version", 0))


async def pull_pending(instructor_id: str, token: str) -> None:
    db = get_async_db()
    await db[COLLECTION].update_one(
        {"_id": instructor_id},
        {"$pull": {"pending_sync": {"token": token}}},
    )


async def list_with_pending() -> List[Dict[str, Any]]:
    db = get_async_db()
    cursor = db[COLLECTION].find({"pending_sync.0": {"$exists": True}}, {"pending_sync": 1})
    return [d async for d in cursor]
