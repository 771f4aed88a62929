"""
Fixtures compartidas.

FakeSupabase imita el subconjunto del query builder de supabase-py que usan
los repositorios (select/eq/in_/gte/lte/or_/like/ilike/order/limit/range,
insert, upsert con ignore_duplicates, update y delete) sobre tablas en memoria.
"""

import copy
import itertools
from dataclasses import dataclass
from typing import Any, Optional

import httpx
import pytest

from gemelo.config import Settings
from gemelo.database.supabase_client import SupabaseClient

AUTO_IDS = {
    "matcher_runs": "matcher_run_id",
    "listing_matches": "match_id",
    "match_groups": "group_id",
}

UNIQUE_KEYS = {
    "matcher_runs": ("run_key",),
    "listing_matches": ("matcher_run_id", "source_listing_id", "target_listing_id"),
    "match_group_members": ("group_id", "listing_id"),
}

DEFAULTS = {
    "match_group_members": {"score": 100},
    "match_groups": {"canonical_status": "OPEN", "reason_json": {}},
}


@dataclass
class FakeResponse:
    data: list
    count: Optional[int] = None


def _like(value: Any, pattern: str, case_sensitive: bool = True) -> bool:
    text = "" if value is None else str(value)
    pattern = pattern if case_sensitive else pattern.lower()
    text = text if case_sensitive else text.lower()
    if pattern.startswith("%") and pattern.endswith("%"):
        return pattern.strip("%") in text
    if pattern.endswith("%"):
        return text.startswith(pattern[:-1])
    if pattern.startswith("%"):
        return text.endswith(pattern[1:])
    return text == pattern


def _compare(value: Any, op: str, other: Any) -> bool:
    if value is None:
        return False
    if op == ">=":
        return float(value) >= float(other)
    if op == "<=":
        return float(value) <= float(other)
    return float(value) == float(other)


def _parse_condition(text: str):
    """"columna.operador.valor" del filtro or de PostgREST (is, eq, gte, lte)."""
    column, op, value = text.strip().split(".", 2)
    if op == "is" and value == "null":
        return lambda row: row.get(column) is None
    symbols = {"eq": "==", "gte": ">=", "lte": "<="}
    return lambda row: _compare(row.get(column), symbols[op], value)


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.action = "select"
        self.payload: Any = None
        self.filters: list = []
        self.orders: list[tuple[str, bool]] = []
        self.limit_value: Optional[int] = None
        self.range_value: Optional[tuple[int, int]] = None
        self.count_mode: Optional[str] = None
        self.ignore_duplicates = False

    # Acciones

    def select(self, columns: str = "*", count: Optional[str] = None):
        self.action = "select"
        self.count_mode = count
        return self

    def insert(self, data):
        self.action = "insert"
        self.payload = data
        return self

    def upsert(self, data, on_conflict: str = "", ignore_duplicates: bool = False):
        self.action = "upsert"
        self.payload = data
        self.ignore_duplicates = ignore_duplicates
        return self

    def update(self, data: dict):
        self.action = "update"
        self.payload = data
        return self

    def delete(self):
        self.action = "delete"
        return self

    # Filtros

    def eq(self, column: str, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column: str, values):
        allowed = list(values)
        self.filters.append(lambda row: row.get(column) in allowed)
        return self

    def gte(self, column: str, value):
        self.filters.append(lambda row: _compare(row.get(column), ">=", value))
        return self

    def lte(self, column: str, value):
        self.filters.append(lambda row: _compare(row.get(column), "<=", value))
        return self

    def or_(self, filters: str):
        conditions = [_parse_condition(part) for part in filters.split(",")]
        self.filters.append(lambda row: any(cond(row) for cond in conditions))
        return self

    def like(self, column: str, pattern: str):
        self.filters.append(lambda row: _like(row.get(column), pattern))
        return self

    def ilike(self, column: str, pattern: str):
        self.filters.append(lambda row: _like(row.get(column), pattern, case_sensitive=False))
        return self

    def order(self, column: str, desc: bool = False):
        self.orders.append((column, desc))
        return self

    def limit(self, size: int):
        self.limit_value = size
        return self

    def range(self, start: int, end: int):
        self.range_value = (start, end)
        return self

    # Ejecución

    def _matching(self) -> list[dict]:
        rows = self.db.tables.setdefault(self.table, [])
        return [row for row in rows if all(f(row) for f in self.filters)]

    def execute(self) -> FakeResponse:
        self.db.calls.append((self.table, self.action))
        failure = self.db.failures.get((self.table, self.action))
        if failure is not None:
            raise failure

        if self.action == "select":
            rows = self._matching()
            for column, desc in reversed(self.orders):
                rows.sort(
                    key=lambda row: (row.get(column) is None, row.get(column)),
                    reverse=desc,
                )
            total = len(rows)
            if self.range_value is not None:
                start, end = self.range_value
                rows = rows[start : end + 1]
            if self.limit_value is not None:
                rows = rows[: self.limit_value]
            if self.db.max_rows is not None:
                rows = rows[: self.db.max_rows]
            count = total if self.count_mode == "exact" else None
            return FakeResponse(copy.deepcopy(rows), count)

        if self.action in ("insert", "upsert"):
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for item in items:
                row = self.db.insert_row(self.table, item, self.ignore_duplicates)
                if row is not None:
                    inserted.append(copy.deepcopy(row))
            return FakeResponse(inserted)

        if self.action == "update":
            rows = self._matching()
            for row in rows:
                row.update(self.payload)
            return FakeResponse(copy.deepcopy(rows))

        if self.action == "delete":
            rows = self._matching()
            doomed = {id(row) for row in rows}
            table = self.db.tables[self.table]
            self.db.tables[self.table] = [row for row in table if id(row) not in doomed]
            return FakeResponse(copy.deepcopy(rows))

        raise AssertionError(f"Acción no soportada: {self.action}")


class FakeSupabase:
    """Cliente supabase-py en memoria."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.failures: dict[tuple[str, str], Exception] = {}
        self.calls: list[tuple[str, str]] = []
        # Tope de filas por respuesta, como max-rows de PostgREST
        self.max_rows: Optional[int] = None
        self._ids = itertools.count(1)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def fail(self, table: str, action: str, error: Optional[Exception] = None) -> None:
        self.failures[(table, action)] = error or httpx.ConnectError("store caído")

    def insert_row(self, table: str, item: dict, ignore_duplicates: bool) -> Optional[dict]:
        rows = self.tables.setdefault(table, [])
        row = {**DEFAULTS.get(table, {}), **copy.deepcopy(item)}

        unique = UNIQUE_KEYS.get(table)
        if unique:
            key = tuple(row.get(col) for col in unique)
            if any(tuple(r.get(col) for col in unique) == key for r in rows):
                if ignore_duplicates:
                    return None
                raise httpx.HTTPStatusError(
                    "duplicate key",
                    request=httpx.Request("POST", f"http://fake/{table}"),
                    response=httpx.Response(409),
                )

        id_column = AUTO_IDS.get(table)
        if id_column and row.get(id_column) is None:
            row[id_column] = next(self._ids)
        rows.append(row)
        return row

    def rows(self, table: str) -> list[dict]:
        return self.tables.get(table, [])


@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def supabase(fake_db) -> SupabaseClient:
    return SupabaseClient(fake_db)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        matcher_workers=1,
        matcher_max_wildcard_bucket_size=500,
    )


def catalog_row(listing_id: int, run_id: str = "20260101_0900::zigbang", **fields) -> dict:
    """Fila de la vista listing_catalog con valores por defecto razonables."""
    platform = run_id.split("::")[-1]
    row = {
        "listing_id": listing_id,
        "platform_code": platform,
        "external_id": f"ext-{listing_id}",
        "source_ref": f"ext-{listing_id}",
        "address_text": "서울 강남구 역삼동 123",
        "address_code": "1168010100",
        "rent_amount": 50,
        "deposit_amount": 1000,
        "area_exclusive_m2": 33.0,
        "area_gross_m2": None,
        "room_count": 1,
        "floor": 3,
        "image_count": 2,
        "created_at": "2026-01-01T09:00:00+00:00",
        "run_id": run_id,
    }
    row.update(fields)
    if "area_m2" not in fields:
        area = row["area_exclusive_m2"]
        row["area_m2"] = area if area is not None else row["area_gross_m2"]
    return row


def listing_a(**fields) -> dict:
    """Monoambiente en Gangnam con todos los campos cargados."""
    data = {
        "id": "101",
        "platform_code": "zigbang",
        "external_id": "z-1",
        "address_text": "서울 강남구 역삼동 123",
        "rent_amount": 50,
        "deposit_amount": 1000,
        "area_exclusive_m2": 33,
        "room_count": 2,
        "floor": 3,
        "total_floor": 10,
        "lease_type": "monthly",
        "lat": 37.5000,
        "lng": 127.0300,
    }
    data.update(fields)
    return data


def listing_b(**fields) -> dict:
    """El mismo aviso que A publicado en otra plataforma."""
    data = listing_a(id="102", platform_code="dabang", external_id="d-9")
    data.update(fields)
    return data


def listing_c(**fields) -> dict:
    """Otro inmueble, en otra ciudad."""
    data = {
        "id": "103",
        "platform_code": "zigbang",
        "external_id": "z-2",
        "address_text": "부산 해운대구 우동 77",
        "rent_amount": 150,
        "area_exclusive_m2": 99,
        "room_count": 1,
        "lease_type": "jeonse",
        "lat": 35.1600,
        "lng": 129.1600,
    }
    data.update(fields)
    return data


@pytest.fixture
def abc_document() -> dict:
    return {
        "run_id": "20260101_0900",
        "listings": [listing_a(), listing_b(), listing_c()],
    }


@pytest.fixture
def abc_catalog(fake_db) -> list[dict]:
    """Filas de catálogo para los listings A, B y C del base run 20260101_0900."""
    rows = [
        catalog_row(101, "20260101_0900::zigbang", external_id="z-1", source_ref="z-1"),
        catalog_row(102, "20260101_0900::dabang", external_id="d-9", source_ref="d-9"),
        catalog_row(
            103,
            "20260101_0900::zigbang",
            external_id="z-2",
            source_ref="z-2",
            address_text="부산 해운대구 우동 77",
            rent_amount=150,
            deposit_amount=None,
            area_exclusive_m2=99.0,
            image_count=0,
        ),
    ]
    fake_db.tables["listing_catalog"] = rows
    return rows
