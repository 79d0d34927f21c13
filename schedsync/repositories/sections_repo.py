"""Repo async de `sections` (roster con un solo horario desnormalizado)."""
from typing import Any, Dict, List, Optional

from schedsync.core.time import now_iso
from schedsync.infrastructure.db.mongo_async import get_async_db

COLLECTION = "sections"


async def get_section(section_id: str) -> Optional[Dict[str, Any]]:
    db = get_async_db()
    doc = await db[COLLECTION].find_one(
        {"_id": section_id},
        {"schedule": 1, "instructor_id": 1, "subject_id": 1},
    )
    if not doc:
        return None
    doc["id"] = str(doc.pop("_id"))
    return doc


async def set_schedule(
    section_id: str,
    copy: Optional[Dict[str, Any]],
    only_if_schedule_id: Optional[str] = None,
) -> bool:
    """Fija (o limpia con None) el horario de la sección.

    Con `only_if_schedule_id` solo escribe si la sección guarda esa copia.
    """
    db = get_async_db()
    q: Dict[str, Any] = {"_id": section_id}
    if only_if_schedule_id is not None:
        q["schedule.schedule_id"] = only_if_schedule_id
    res = await db[COLLECTION].update_one(q, {"$set": {"schedule": copy, "updated_at": now_iso()}})
    return res.matched_count > 0


async def find_ids_with_copy(schedule_id: str) -> List[str]:
    db = get_async_db()
    cursor = db[COLLECTION].find({"schedule.schedule_id": schedule_id}, {"_id": 1})
    return [str(d["_id"]) async for d in cursor]
