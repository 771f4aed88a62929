"""
Script para ejecutar el matcher sobre un lote de listings.

Lee el documento de entrada ({run_id, listings}), genera pares y grupos,
escribe el payload de salida y opcionalmente lo persiste.

Uso:
    python -m gemelo.scripts.run_matcher --input listings.json
    python -m gemelo.scripts.run_matcher --input listings.json --out matches.json
    python -m gemelo.scripts.run_matcher --input listings.json --persist --base-run-id 20260101_0900
    python -m gemelo.scripts.run_matcher --input listings.json --rules '{"threshold": {"auto_match": 95}}'
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
from gemelo.database import MatchStore
from gemelo.errors import InputError, PersistenceFailure
from gemelo.matching import MatchingEngine, load_input_document
from gemelo.models import RulesConfig
from gemelo.database.repositories import normalize_base_run_id

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


def parse_rules(raw: Optional[str]) -> RulesConfig:
    """
    Reglas por defecto con los overrides JSON de --rules.

    Raises:
        InputError: Si el JSON es inválido o algún valor no pasa validación
    """
    rules = RulesConfig.default()
    if not raw:
        return rules
    try:
        overrides = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InputError(f"--rules no es JSON válido: {e}") from e
    if not isinstance(overrides, dict):
        raise InputError("--rules debe ser un objeto JSON")
    try:
        return rules.with_overrides(overrides)
    except ValidationError as e:
        raise InputError(f"--rules inválido: {e}") from e


def default_output_path(input_path: Path) -> Path:
    return input_path.with_name(f"{input_path.stem}.matches.json")


def run_matcher(
    input_path: Path,
    out_path: Optional[Path] = None,
    rules_json: Optional[str] = None,
    persist: bool = False,
    base_run_id: Optional[str] = None,
) -> dict:
    """
    Ejecuta el matcher y, si se pide, persiste el resultado.

    Args:
        input_path: Documento {run_id, listings}
        out_path: Dónde escribir el payload (None = junto al input)
        rules_json: Overrides de reglas en JSON
        persist: Guardar el run en Supabase
        base_run_id: Base run al que pertenece el lote (default: run_id del input)

    Returns:
        Resumen del run
    """
    rules = parse_rules(rules_json)
    document = load_input_document(input_path)

    engine = MatchingEngine(rules=rules)
    output = engine.run(document)

    out_path = out_path or default_output_path(input_path)
    out_path.write_text(
        json.dumps(output.to_json_dict(), ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    logger.info("Payload escrito", path=str(out_path), pairs=len(output.pairs))

    stats = output.input_summary.model_dump()
    if persist:
        base = normalize_base_run_id(base_run_id) or normalize_base_run_id(output.run_id)
        result = MatchStore().persist(output, base, payload_path=str(out_path))
        stats.update(
            matcher_run_id=result.matcher_run_id,
            stored_pairs=result.stored_pairs,
            already_persisted=result.already_persisted,
        )
    return stats


def main():
    """Entry point del script."""
    parser = argparse.ArgumentParser(
        description="Detección de listings duplicados entre plataformas"
    )
    parser.add_argument(
        "--input",
        type=Path,
        required=True,
        help="Documento JSON con run_id y listings",
    )
    parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Archivo de salida (default: <input>.matches.json)",
    )
    parser.add_argument(
        "--rules",
        type=str,
        default=None,
        help='Overrides de reglas en JSON (ej: \'{"threshold": {"auto_match": 95}}\')',
    )
    parser.add_argument(
        "--persist",
        action="store_true",
        help="Persistir el run en Supabase",
    )
    parser.add_argument(
        "--base-run-id",
        type=str,
        default=None,
        help="Base run al que pertenece el lote",
    )

    args = parser.parse_args()

    logger.info("Iniciando matcher...", input=str(args.input))

    try:
        stats = run_matcher(
            input_path=args.input,
            out_path=args.out,
            rules_json=args.rules,
            persist=args.persist,
            base_run_id=args.base_run_id,
        )
        logger.info("Matcher completado", **stats)
        sys.exit(0)

    except InputError as e:
        logger.error("Input inválido", error=str(e))
        sys.exit(2)
    except PersistenceFailure as e:
        logger.error("Error de persistencia", error=str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Matcher interrumpido por usuario")
        sys.exit(130)
    except Exception as e:
        logger.error("Error fatal en matcher", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
