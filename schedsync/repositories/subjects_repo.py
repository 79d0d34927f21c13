"""Repo async de `subjects`: copias desnormalizadas de horarios y roster de profesores."""
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument

from schedsync.core.time import now_iso
from schedsync.infrastructure.db.mongo_async import get_async_db

COLLECTION = "subjects"


async def upsert_copy(subject_id: str, copy: Dict[str, Any]) -> bool:
    """Reemplaza-por-id la copia `copy` en un solo update atómico.

    Devuelve False si la materia no existe.
    """
    db = get_async_db()
    res = await db[COLLECTION].update_one(
        {"_id": subject_id},
        [
            {
                "$set": {
                    "schedules": {
                        "$concatArrays": [
                            {
                                "$filter": {
                                    "input": {"$ifNull": ["$schedules", []]},
                                    "as": "c",
                                    "cond": {"$ne": ["$$c.schedule_id", {"$literal": copy["schedule_id"]}]},
                                }
                            },
                            [{"$literal": copy}],
                        ]
                    },
                    "instructor_ids": {
                        "$setUnion": [{"$ifNull": ["$instructor_ids", []]}, {"$literal": [copy["instructor_id"]]}]
                    },
                    "updated_at": now_iso(),
                }
            }
        ],
    )
    return res.matched_count > 0


async def remove_copy(subject_id: str, schedule_id: str) -> None:
    db = get_async_db()
    await db[COLLECTION].update_one(
        {"_id": subject_id},
        {"$pull": {"schedules": {"schedule_id": schedule_id}}, "$set": {"updated_at": now_iso()}},
    )


async def list_copies(subject_id: str) -> List[Dict[str, Any]]:
    db = get_async_db()
    doc = await db[COLLECTION].find_one({"_id": subject_id}, {"schedules": 1}) or {}
    return list(doc.get("schedules") or [])


async def reassign_copies(
    subject_id: str,
    old_instructor_id: str,
    new_instructor_id: str,
    copies: List[Dict[str, Any]],
) -> Optional[List[Dict[str, Any]]]:
    """Cambia el profesor de la materia en un solo update atómico.

    Quita las copias y el roster de ambos profesores y agrega `copies` y el
    nuevo profesor. Las copias de otros profesores no se tocan.
    Devuelve la lista resultante o None si la materia no existe.
    """
    db = get_async_db()
    swapped = {"$literal": [old_instructor_id, new_instructor_id]}
    doc = await db[COLLECTION].find_one_and_update(
        {"_id": subject_id},
        [
            {
                "$set": {
                    "schedules": {
                        "$concatArrays": [
                            {
                                "$filter": {
                                    "input": {"$ifNull": ["$schedules", []]},
                                    "as": "c",
                                    "cond": {"$not": [{"$in": ["$$c.instructor_id", swapped]}]},
                                }
                            },
                            {"$literal": copies},
                        ]
                    },
                    "instructor_ids": {
                        "$concatArrays": [
                            {
                                "$filter": {
                                    "input": {"$ifNull": ["$instructor_ids", []]},
                                    "as": "i",
                                    "cond": {"$not": [{"$in": ["$$i", swapped]}]},
                                }
                            },
                            {"$literal": [new_instructor_id]},
                        ]
                    },
                    "updated_at": now_iso(),
                }
            }
        ],
        projection={"schedules": 1},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        return None
    return list(doc.get("schedules") or [])


async def find_ids_with_copy(schedule_id: str) -> List[str]:
    db = get_async_db()
    cursor = db[COLLECTION].find({"schedules.schedule_id": schedule_id}, {"_id": 1})
    return [str(d["_id"]) async for d in cursor]


async def find_ids_with_instructor(instructor_id: str) -> List[str]:
    db = get_async_db()
    cursor = db[COLLECTION].find({"schedules.instructor_id": instructor_id}, {"_id": 1})
    return [str(d["_id"]) async for d in cursor]
