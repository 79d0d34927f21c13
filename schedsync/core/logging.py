"""
Configuración de logging para el servicio e integración con Uvicorn.
"""
import logging

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(level: str = "INFO") -> None:
    resolved = getattr(logging, (level or "INFO").upper(), logging.INFO)
    logging.basicConfig(level=resolved, format=_FORMAT)
    logging.getLogger("schedsync").setLevel(resolved)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(resolved)
    # Motor/pymongo son muy verbosos en DEBUG
    logging.getLogger("pymongo").setLevel(max(resolved, logging.INFO))
