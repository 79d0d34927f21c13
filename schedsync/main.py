"""Entrada principal de la app FastAPI (configura middlewares, excepciones y routers)."""
from fastapi import FastAPI
from schedsync.core.config import settings
from schedsync.infrastructure.db.mongo_async import init_async_mongo, close_async_mongo
from schedsync.infrastructure.db.bootstrap import ensure_collections
from schedsync.api.router import api_router
from schedsync.core.logging import setup_logging
from schedsync.core.middleware import add_middlewares
from schedsync.core.exceptions import register_exception_handlers
from pymongo.errors import PyMongoError
import logging
import weakref

_log = logging.getLogger("schedsync.startup")

setup_logging(settings.log_level)
app = FastAPI(title=settings.app_name)
# Locks por profesor; se liberan solos cuando ningún request los usa
app.state.instructor_locks = weakref.WeakValueDictionary()

add_middlewares(app, settings)
register_exception_handlers(app)


# Startup
@app.on_event("startup")
async def on_startup():
    if not await init_async_mongo():
        _log.warning("Mongo no listo; omitiendo ensure_collections()")
        return
    # Garantiza colecciones/índices/validadores mínimos
    try:
        await ensure_collections()
    except PyMongoError as e:
        # No impedir el arranque si fallan validadores/índices
        _log.warning("ensure_collections() falló: %s", e)


@app.on_event("shutdown")
async def on_shutdown():
    close_async_mongo()


# Monta routers bajo el prefijo configurado
app.include_router(api_router, prefix=settings.api_prefix_normalized)
