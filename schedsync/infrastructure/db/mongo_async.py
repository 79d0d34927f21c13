"""Cliente MongoDB asíncrono (Motor).

Un único cliente/base por proceso, inicializado en el startup de FastAPI.
"""
from __future__ import annotations

import certifi
import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from schedsync.core.config import settings

_log = logging.getLogger("schedsync.mongo")

_aclient: Optional[AsyncIOMotorClient] = None
_adb: Optional[AsyncIOMotorDatabase] = None


def _build_async_client() -> AsyncIOMotorClient:
    uri = settings.mongo_uri
    kwargs = dict(serverSelectionTimeoutMS=settings.mongo_server_selection_timeout_ms)
    if uri.startswith("mongodb+srv://"):
        # SRV ya implica TLS; proveemos CA bundle para robustez
        kwargs["tlsCAFile"] = certifi.where()
    elif settings.mongo_tls:
        kwargs["tls"] = True
        kwargs["tlsCAFile"] = certifi.where()
        if settings.mongo_tls_insecure:
            kwargs["tlsAllowInvalidCertificates"] = True
        if settings.mongo_tls_allow_invalid_hostnames:
            kwargs["tlsAllowInvalidHostnames"] = True
    return AsyncIOMotorClient(uri, **kwargs)


async def init_async_mongo() -> bool:
    """Crea el cliente y valida conexión (ping). No tumba la app si falla."""
    global _aclient, _adb
    try:
        _aclient = _aclient or _build_async_client()
        await _aclient.admin.command("ping")
        _adb = _aclient[settings.mongo_db]
        _log.info("Mongo conectado (db=%s)", settings.mongo_db)
        return True
    except PyMongoError as e:
        _log.warning("Mongo no accesible: %s", e)
        _adb = None
        return False


def get_async_db() -> AsyncIOMotorDatabase:
    """Devuelve la DB asíncrona; inicializa lazy si aún no hay cliente."""
    global _aclient, _adb
    if _adb is None:
        _aclient = _aclient or _build_async_client()
        _adb = _aclient[settings.mongo_db]
        _log.info("Motor listo (db async inicializada)")
    return _adb


def db_ready() -> bool:
    return _adb is not None


def close_async_mongo() -> None:
    global _aclient, _adb
    if _aclient is not None:
        _aclient.close()
    _aclient = None
    _adb = None
