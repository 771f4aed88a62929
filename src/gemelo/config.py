"""
Configuración centralizada del sistema.
Carga variables de entorno y define settings globales.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Encontrar la raíz del proyecto (donde está el .env)
# config.py -> gemelo/ -> src/ -> raíz del proyecto
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Configuración principal de la aplicación."""

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Supabase (opcional: el matcher corre sin base de datos)
    supabase_url: Optional[str] = Field(None, description="URL del proyecto Supabase")
    supabase_key: Optional[str] = Field(None, description="Anon key de Supabase")
    supabase_service_key: Optional[str] = Field(
        None, description="Service role key para operaciones admin"
    )

    # Matcher
    matcher_algorithm_version: str = Field(
        "matcher_v1", description="Versión del algoritmo de matching"
    )
    matcher_rule_version: str = Field("v1", description="Versión de las reglas de scoring")
    matcher_workers: int = Field(
        0, ge=0, description="Procesos para scoring (0 = cantidad de CPUs)"
    )
    matcher_parallel_min_pairs: int = Field(
        2000, ge=1, description="Mínimo de pares candidatos para paralelizar el scoring"
    )
    matcher_max_wildcard_bucket_size: int = Field(
        500, ge=2, description="Tamaño máximo de un bucket comodín antes de truncarlo"
    )

    # Umbrales de clasificación
    auto_match_threshold: int = Field(
        93, ge=0, le=100, description="Score mínimo para AUTO_MATCH"
    )
    review_required_min: int = Field(
        80, ge=0, le=100, description="Score mínimo para REVIEW_REQUIRED"
    )

    # Persistencia
    match_persist_batch_size: int = Field(
        500, ge=1, description="Filas por request al persistir pares"
    )

    # Logging
    log_level: str = Field("INFO", description="Nivel de logging")


@lru_cache
def get_settings() -> Settings:
    """Obtiene la configuración cacheada."""
    return Settings()


# Constantes del sistema
MATCH_STATUSES = ["AUTO_MATCH", "REVIEW_REQUIRED", "DISTINCT"]

RUN_STATUS_RUNNING = "RUNNING"
RUN_STATUS_FINISHED = "FINISHED"

PLATFORM_NAMES = {
    "zigbang": "직방",
    "dabang": "다방",
    "naver": "네이버 부동산",
    "r114": "부동산114",
    "peterpanz": "피터팬",
    "daangn": "당근부동산",
    "kbland": "KB부동산",
}
