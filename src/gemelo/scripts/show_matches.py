"""
Script para consultar el último run del matcher de un base run.

Uso:
    python -m gemelo.scripts.show_matches
    python -m gemelo.scripts.show_matches --run-id 20260101_0900 --status AUTO_MATCH
    python -m gemelo.scripts.show_matches --group 42
"""

import argparse
import json
import logging
import sys

import structlog

from gemelo.config import MATCH_STATUSES, get_settings
from gemelo.database import MatchQueryService
from gemelo.errors import PersistenceFailure

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


def main():
    """Entry point del script."""
    parser = argparse.ArgumentParser(description="Consultar resultados del matcher")
    parser.add_argument(
        "--run-id",
        type=str,
        default=None,
        help="Base run (default: el más completo y reciente)",
    )
    parser.add_argument(
        "--status",
        type=str,
        default=None,
        choices=MATCH_STATUSES,
        help="Filtrar pares por estado",
    )
    parser.add_argument("--limit", type=int, default=400, help="Pares por página")
    parser.add_argument("--offset", type=int, default=0, help="Desplazamiento de página")
    parser.add_argument(
        "--group",
        type=int,
        default=None,
        help="Mostrar solo un grupo por id",
    )

    args = parser.parse_args()

    try:
        service = MatchQueryService()
        if args.group is not None:
            group = service.get_group(args.group)
            if group is None:
                logger.warning("Grupo no encontrado", group_id=args.group)
                sys.exit(1)
            payload = group.model_dump(mode="json")
        else:
            data = service.get_matching_data(
                run_id=args.run_id,
                status=args.status,
                limit=args.limit,
                offset=args.offset,
            )
            logger.info(
                "Run del matcher",
                base_run_id=data.base_run_id,
                matcher_run_id=data.matcher_run_id,
                **data.summary.model_dump(),
            )
            payload = data.model_dump(mode="json")

        print(json.dumps(payload, ensure_ascii=False, indent=2))
        sys.exit(0)

    except PersistenceFailure as e:
        logger.error("Error consultando el store", error=str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Consulta interrumpida por usuario")
        sys.exit(130)
    except Exception as e:
        logger.error("Error fatal en consulta", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
