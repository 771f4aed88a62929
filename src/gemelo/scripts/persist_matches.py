"""
Script para persistir un payload del matcher ya generado.

Repetir la ejecución con el mismo payload no escribe nada nuevo.

Uso:
    python -m gemelo.scripts.persist_matches --matches listings.matches.json --base-run-id 20260101_0900
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import structlog
from pydantic import ValidationError

from gemelo.config import get_settings
from gemelo.database import MatchStore, PersistResult
from gemelo.database.repositories import normalize_base_run_id
from gemelo.errors import InputError, PersistenceFailure
from gemelo.models import MatchOutput

# Configurar logging
settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(message)s",
    force=True,
)

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


def load_match_output(path: Path) -> MatchOutput:
    """
    Lee un payload del matcher.

    Raises:
        InputError: Si el archivo no se puede leer o no tiene la forma esperada
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise InputError(f"No se pudo leer {path}: {e}") from e
    try:
        return MatchOutput.model_validate(json.loads(raw))
    except json.JSONDecodeError as e:
        raise InputError(f"{path} no es JSON válido: {e}") from e
    except ValidationError as e:
        raise InputError(f"{path} no es un payload del matcher: {e}") from e


def persist_matches(path: Path, base_run_id: Optional[str] = None) -> PersistResult:
    output = load_match_output(path)
    base = normalize_base_run_id(base_run_id) or normalize_base_run_id(output.run_id)
    if not base:
        raise InputError("No se pudo determinar el base run (usar --base-run-id)")
    return MatchStore().persist(output, base, payload_path=str(path))


def main():
    """Entry point del script."""
    parser = argparse.ArgumentParser(description="Persistir resultados del matcher")
    parser.add_argument(
        "--matches",
        type=Path,
        required=True,
        help="Payload JSON generado por run_matcher",
    )
    parser.add_argument(
        "--base-run-id",
        type=str,
        default=None,
        help="Base run al que pertenece el payload (default: run_id del payload)",
    )

    args = parser.parse_args()

    try:
        result = persist_matches(args.matches, args.base_run_id)
        logger.info(
            "Persistencia completada",
            matcher_run_id=result.matcher_run_id,
            stored_pairs=result.stored_pairs,
            skipped_pairs=result.skipped_pairs,
            conflicting_pairs=result.conflicting_pairs,
            stored_groups=result.stored_groups,
            already_persisted=result.already_persisted,
        )
        sys.exit(0)

    except InputError as e:
        logger.error("Payload inválido", error=str(e))
        sys.exit(2)
    except PersistenceFailure as e:
        logger.error("Error de persistencia", error=str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Persistencia interrumpida por usuario")
        sys.exit(130)
    except Exception as e:
        logger.error("Error fatal persistiendo", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
