"""
Bootstrap de la base Mongo: define y aplica validadores (JSON Schema) e índices.
Se ejecuta al inicio de la app para asegurar colecciones mínimas y consistencia.
No tumba la app si algo falla; deja warnings en casos no críticos.
"""
from __future__ import annotations

from typing import Any, Dict, List
import logging
from pymongo.errors import PyMongoError

from schedsync.infrastructure.db.mongo_async import get_async_db
from schedsync.repositories.teachers_repo import COLLECTION as TEACHERS
from schedsync.repositories.subjects_repo import COLLECTION as SUBJECTS
from schedsync.repositories.sections_repo import COLLECTION as SECTIONS

_log = logging.getLogger("schedsync.mongo.bootstrap")

_HHMM = "^([01][0-9]|2[0-3]):[0-5][0-9]$"

_schedule_schema: Dict[str, Any] = {
    "bsonType": "object",
    "required": ["id", "days", "start_time", "end_time"],
    "properties": {
        "id": {"bsonType": "string"},
        "days": {
            "bsonType": "array",
            "minItems": 1,
            "uniqueItems": True,
            "items": {"enum": ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]},
        },
        "start_time": {"bsonType": "string", "pattern": _HHMM},
        "end_time": {"bsonType": "string", "pattern": _HHMM},
        "room_name": {"bsonType": ["string", "null"]},
        "subject_id": {"bsonType": ["string", "null"]},
        "section_id": {"bsonType": ["string", "null"]},
        "semester": {"bsonType": ["string", "null"]},
        "academic_year": {"bsonType": ["string", "null"]},
    },
    "additionalProperties": True,
}

_copy_schema: Dict[str, Any] = {
    **_schedule_schema,
    "required": ["id", "schedule_id", "instructor_id", "days", "start_time", "end_time"],
    "properties": {
        **_schedule_schema["properties"],
        "schedule_id": {"bsonType": "string"},
        "instructor_id": {"bsonType": "string"},
    },
}


async def _collmod_or_create(name: str, validator: Dict[str, Any]) -> None:
    db = get_async_db()
    try:
        await db.command({
            "collMod": name,
            "validator": {"$jsonSchema": validator},
            "validationLevel": "moderate",
        })
    except PyMongoError:
        # Si collMod falla (no existe o sin privilegios), intenta crear con validator
        try:
            if name not in await db.list_collection_names():
                await db.create_collection(name, validator={"$jsonSchema": validator})
        except PyMongoError as e:
            _log.warning("No se pudo aplicar validator en '%s': %s", name, e)


async def _ensure_indexes(name: str, indexes: List[Dict[str, Any]]) -> None:
    coll = get_async_db()[name]
    for ix in indexes:
        ix = dict(ix)
        keys = ix.pop("keys")
        try:
            await coll.create_index(keys, **ix)
        except PyMongoError as e:
            _log.warning("No se pudo crear índice en '%s' (%s): %s", name, keys, e)


async def ensure_collections() -> None:
    """Garantiza colecciones, validadores e índices mínimos."""
    # Profesores: fuente de verdad de los horarios
    teacher_validator = {
        "bsonType": "object",
        "properties": {
            "schedules": {"bsonType": "array", "items": _schedule_schema},
            "schedules_version": {"bsonType": ["int", "long"], "minimum": 0},
            "pending_sync": {"bsonType": "array"},
        },
        "additionalProperties": True,
    }
    await _collmod_or_create(TEACHERS, teacher_validator)
    await _ensure_indexes(
        TEACHERS,
        [
            {"keys": [("schedules.id", 1)], "name": "ix_schedule_id"},
            {"keys": [("pending_sync.schedule_id", 1)], "name": "ix_pending_sync", "sparse": True},
        ],
    )

    # Materias: copias desnormalizadas + roster de profesores
    subject_validator = {
        "bsonType": "object",
        "properties": {
            "schedules": {"bsonType": "array", "items": _copy_schema},
            "instructor_ids": {"bsonType": "array", "items": {"bsonType": "string"}},
        },
        "additionalProperties": True,
    }
    await _collmod_or_create(SUBJECTS, subject_validator)
    await _ensure_indexes(
        SUBJECTS,
        [
            {"keys": [("schedules.schedule_id", 1)], "name": "ix_copy_schedule_id"},
            {"keys": [("schedules.instructor_id", 1)], "name": "ix_copy_instructor_id"},
            {"keys": [("instructor_ids", 1)], "name": "ix_instructor_ids"},
        ],
    )

    # Secciones: un solo horario por sección
    section_validator = {
        "bsonType": "object",
        "properties": {
            "schedule": {"oneOf": [_copy_schema, {"bsonType": "null"}]},
            "instructor_id": {"bsonType": ["string", "null"]},
            "subject_id": {"bsonType": ["string", "null"]},
            "student_ids": {"bsonType": "array", "items": {"bsonType": "string"}},
        },
        "additionalProperties": True,
    }
    await _collmod_or_create(SECTIONS, section_validator)
    await _ensure_indexes(
        SECTIONS,
        [
            {"keys": [("schedule.schedule_id", 1)], "name": "ix_section_schedule_id"},
            {"keys": [("instructor_id", 1)], "name": "ix_section_instructor"},
            {"keys": [("subject_id", 1)], "name": "ix_section_subject"},
        ],
    )
