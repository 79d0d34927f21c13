"""Configuración central del servicio (Pydantic Settings).

- Carga variables desde .env en la raíz del proyecto.
- Agrupa ajustes por área: App, CORS, Mongo, Logging, Sincronización.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, Field
from pathlib import Path

# Resuelve el .env ubicado en la raíz del proyecto (independiente del CWD)
ENV_FILE = Path(__file__).resolve().parents[2] / ".env"


class Settings(BaseSettings):
    """Variables de configuración con valores por defecto razonables.

    Nota: los valores pueden sobreescribirse vía variables de entorno (.env).
    """
    # App
    app_name: str = "SchedSync API (Horarios)"
    api_prefix: str = "/api"

    # CORS
    cors_origins: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]
    cors_allow_any: bool = False  # Permite todos los orígenes (usa con cuidado)

    # Mongo
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "schedsync_db"
    mongo_tls: bool = False
    # TLS relax options (dev only)
    mongo_tls_insecure: bool = False
    mongo_tls_allow_invalid_hostnames: bool = False
    mongo_server_selection_timeout_ms: int = 15000

    # Logging
    log_level: str = Field(
        "INFO",
        validation_alias=AliasChoices("SCHEDSYNC_LOG_LEVEL", "LOG_LEVEL"),
    )

    # Sincronización (propagación de copias desnormalizadas)
    sync_retry_attempts: int = Field(
        3,
        ge=1,
        validation_alias=AliasChoices("SCHEDSYNC_RETRY_ATTEMPTS", "SYNC_RETRY_ATTEMPTS"),
    )
    sync_retry_backoff_seconds: float = Field(
        0.2,
        ge=0.0,
        validation_alias=AliasChoices("SCHEDSYNC_RETRY_BACKOFF", "SYNC_RETRY_BACKOFF_SECONDS"),
    )
    # Intentos de compare-and-swap sobre el documento del profesor
    sync_cas_attempts: int = Field(
        3,
        ge=1,
        validation_alias=AliasChoices("SCHEDSYNC_CAS_ATTEMPTS", "SYNC_CAS_ATTEMPTS"),
    )
    schedule_id_prefix: str = "sch_"

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # no fallar si hay variables no usadas
    )

    # --- Utilidades derivadas / helpers ---
    @property
    def api_prefix_normalized(self) -> str:
        """Devuelve `api_prefix` con formato consistente.

        - Siempre inicia con '/'
        - Sin '/' final (excepto cuando es solo '/')
        - Si está vacío, devuelve ""
        """
        pref = (self.api_prefix or "").strip()
        if not pref:
            return ""
        if not pref.startswith('/'):
            pref = '/' + pref
        if len(pref) > 1 and pref.endswith('/'):
            pref = pref[:-1]
        return pref


settings = Settings()
