"""
Persistencia de resultados del matcher.

Cada invocación crea un MatcherRun con el snapshot de reglas usado, inserta
los pares con ON CONFLICT DO NOTHING (la primera escritura gana) y genera los
grupos desde cero. El run queda en RUNNING hasta que todo está escrito; los
lectores solo ven runs FINISHED, así un corte a mitad de camino nunca deja
un run visible a medio escribir.
"""

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import httpx
import structlog
from postgrest.exceptions import APIError

from gemelo.config import RUN_STATUS_FINISHED, RUN_STATUS_RUNNING, get_settings
from gemelo.database.repositories import (
    ListingCatalogRepository,
    ListingMatchRepository,
    MatchGroupRepository,
    MatcherRunRepository,
)
from gemelo.database.supabase_client import SupabaseClient, get_supabase_client
from gemelo.errors import PersistenceFailure
from gemelo.models.match import MatchOutput, PairRecord

logger = structlog.get_logger()

DEFAULT_MEMBER_SCORE = 100


@dataclass
class PersistResult:
    """Resultado de persistir un MatchOutput."""

    matcher_run_id: Optional[int]
    run_key: str
    total_pairs: int = 0
    stored_pairs: int = 0
    skipped_pairs: int = 0
    conflicting_pairs: int = 0
    total_groups: int = 0
    stored_groups: int = 0
    already_persisted: bool = False


def compute_run_key(base_run_id: str, output: MatchOutput) -> str:
    """Clave determinística de un run: mismo output + base run = misma clave."""
    rules = json.dumps(output.rules_snapshot, sort_keys=True)
    content = f"{base_run_id}|{output.run_id}|{output.generated_at}|{rules}"
    return hashlib.sha256(content.encode()).hexdigest()[:32]


class ListingIdResolver:
    """
    Traduce los ids del payload (listing_id, external_id, source_ref, con o
    sin prefijo de plataforma) a listing_id de la base.

    Un external_id o source_ref sin prefijo que aparece en más de una
    plataforma es ambiguo y solo se resuelve con prefijo.
    """

    def __init__(self, rows: list[dict]):
        self._map: dict[str, int] = {}
        self._ids: dict[str, int] = {}
        self._ambiguous: set[str] = set()
        for row in rows:
            listing_id = row.get("listing_id")
            if listing_id is None:
                continue
            listing_id = int(listing_id)
            platform = (row.get("platform_code") or "").strip().lower()
            self._ids[str(listing_id)] = listing_id
            for field in ("external_id", "source_ref"):
                value = str(row.get(field) or "").strip()
                if value:
                    if self._map.setdefault(value, listing_id) != listing_id:
                        self._ambiguous.add(value)
                    self._map.setdefault(f"{platform}:{value}", listing_id)

    def __len__(self) -> int:
        return len(self._ids) + len(self._map)

    def resolve(self, value) -> Optional[int]:
        key = str(value if value is not None else "").strip()
        if not key:
            return None
        if key in self._ids:
            return self._ids[key]
        if key in self._ambiguous:
            return None
        return self._map.get(key)


def _batches(rows: list[dict], size: int):
    for pos in range(0, len(rows), size):
        yield rows[pos : pos + size]


class MatchStore:
    """Escribe runs, pares y grupos del matcher."""

    def __init__(
        self,
        client: Optional[SupabaseClient] = None,
        batch_size: Optional[int] = None,
    ):
        client = client or get_supabase_client()
        self.runs = MatcherRunRepository(client)
        self.matches = ListingMatchRepository(client)
        self.groups = MatchGroupRepository(client)
        self.catalog = ListingCatalogRepository(client)
        self.batch_size = batch_size or get_settings().match_persist_batch_size

    def persist(
        self,
        output: MatchOutput,
        base_run_id: str,
        payload_path: Optional[str] = None,
    ) -> PersistResult:
        """
        Persiste un MatchOutput asociado a un base run.

        Repetir la llamada con el mismo output es un no-op. Si existe un run
        incompleto con la misma clave (corte previo) se descarta y se
        escribe desde cero.

        Raises:
            PersistenceFailure: Si el store no responde o rechaza una escritura
        """
        run_key = compute_run_key(base_run_id, output)
        try:
            return self._persist(output, base_run_id, run_key, payload_path)
        except (APIError, httpx.HTTPError) as e:
            logger.error(
                "Error persistiendo run del matcher",
                run_key=run_key,
                base_run_id=base_run_id,
                error=str(e),
            )
            raise PersistenceFailure(f"No se pudo persistir el run {run_key}: {e}") from e

    def _persist(
        self,
        output: MatchOutput,
        base_run_id: str,
        run_key: str,
        payload_path: Optional[str],
    ) -> PersistResult:
        existing = self.runs.get_by_run_key(run_key)
        if existing and existing.get("status") == RUN_STATUS_FINISHED:
            logger.info(
                "Run ya persistido, no se escribe nada",
                run_key=run_key,
                matcher_run_id=existing.get("matcher_run_id"),
            )
            return PersistResult(
                matcher_run_id=existing.get("matcher_run_id"),
                run_key=run_key,
                total_pairs=len(output.pairs),
                total_groups=len(output.match_groups),
                already_persisted=True,
            )
        if existing:
            logger.warning(
                "Run incompleto encontrado, se reescribe desde cero",
                run_key=run_key,
                matcher_run_id=existing.get("matcher_run_id"),
            )
            self.runs.delete_cascade(existing["matcher_run_id"])

        resolver = ListingIdResolver(self.catalog.get_by_base_run(base_run_id))
        summary = output.input_summary
        run = self.runs.create(
            {
                "run_key": run_key,
                "base_run_id": base_run_id,
                "source_run_id": output.run_id,
                "algorithm_version": output.algorithm_version,
                "rule_version": output.rule_version,
                "candidates": summary.candidate_pairs,
                "auto_match_count": summary.auto_match,
                "review_required_count": summary.review_required,
                "distinct_count": summary.distinct,
                "threshold_json": output.rules_snapshot,
                "status": RUN_STATUS_RUNNING,
                "started_at": output.started_at or output.generated_at,
                "run_meta": {
                    "source": "gemelo.matcher",
                    "base_run_id": base_run_id,
                    "payload_path": payload_path,
                    "listing_count": summary.count,
                    "truncated_buckets": output.blocking.truncated_buckets,
                },
            }
        )
        matcher_run_id = run.get("matcher_run_id")
        if matcher_run_id is None:
            raise PersistenceFailure("El store no devolvió matcher_run_id")

        result = PersistResult(
            matcher_run_id=matcher_run_id,
            run_key=run_key,
            total_pairs=len(output.pairs),
            total_groups=len(output.match_groups),
        )
        logger.info(
            "Run del matcher creado",
            matcher_run_id=matcher_run_id,
            base_run_id=base_run_id,
            resolvable_ids=len(resolver),
        )

        rows = self._pair_rows(matcher_run_id, output.pairs, resolver, result)
        for batch in _batches(rows, self.batch_size):
            result.stored_pairs += self.matches.insert_ignore_duplicates(batch)
        result.conflicting_pairs += len(rows) - result.stored_pairs

        for group in output.match_groups:
            members: dict[int, float] = {}
            for member in group.members:
                listing_id = resolver.resolve(member)
                if listing_id is None or listing_id in members:
                    continue
                members[listing_id] = group.member_scores.get(member, DEFAULT_MEMBER_SCORE)
            if len(members) < 2:
                logger.warning(
                    "Grupo sin miembros suficientes resolubles",
                    canonical_key=group.canonical_key,
                    resolved=len(members),
                )
                continue

            created = self.groups.create(
                {
                    "matcher_run_id": matcher_run_id,
                    "canonical_key": group.canonical_key,
                    "canonical_status": "OPEN",
                    "reason_json": group.model_dump(mode="json"),
                }
            )
            group_id = created.get("group_id")
            if group_id is None:
                raise PersistenceFailure("El store no devolvió group_id")
            self.groups.add_members(
                [
                    {"group_id": group_id, "listing_id": listing_id, "score": score}
                    for listing_id, score in members.items()
                ]
            )
            result.stored_groups += 1

        self.runs.mark_finished(matcher_run_id, output.generated_at or _utc_now_iso())

        logger.info(
            "Run del matcher persistido",
            matcher_run_id=matcher_run_id,
            stored_pairs=result.stored_pairs,
            skipped_pairs=result.skipped_pairs,
            conflicting_pairs=result.conflicting_pairs,
            stored_groups=result.stored_groups,
        )
        return result

    def _pair_rows(
        self,
        matcher_run_id: int,
        pairs: list[PairRecord],
        resolver: ListingIdResolver,
        result: PersistResult,
    ) -> list[dict]:
        """Filas de pares con ids resueltos y ordenados (min, max)."""
        rows = []
        seen: set[tuple[int, int]] = set()
        for pair in pairs:
            source = resolver.resolve(pair.source_listing_id)
            target = resolver.resolve(pair.target_listing_id)
            if source is None or target is None or source == target:
                result.skipped_pairs += 1
                continue
            ordered = (min(source, target), max(source, target))
            if ordered in seen:
                result.conflicting_pairs += 1
                continue
            seen.add(ordered)

            rows.append(
                {
                    "matcher_run_id": matcher_run_id,
                    "source_listing_id": ordered[0],
                    "target_listing_id": ordered[1],
                    "score": pair.score,
                    "distance_score": pair.distance_score,
                    "address_score": pair.address_score,
                    "area_score": pair.area_score,
                    "price_score": pair.price_score,
                    "attribute_score": pair.attribute_score,
                    "status": pair.status.value,
                    "reason_json": pair.reason_json,
                }
            )

        if result.skipped_pairs:
            logger.warning(
                "Pares sin listing resoluble",
                matcher_run_id=matcher_run_id,
                skipped=result.skipped_pairs,
            )
        return rows


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
