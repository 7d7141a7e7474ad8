import asyncio
import uuid
from copy import deepcopy
from typing import Any, Dict, List, Optional, Sequence

from ...application.ports.record_store import RecordStore, Row, Filter, EYE_SCANS
from ...utils import as_utc, utc_now


def _matches(row: Row, filters: Sequence[Filter]) -> bool:
    for f in filters:
        value = row.get(f.column)
        expected = as_utc(f.value)
        if f.op == "eq" and value != expected:
            return False
        if f.op == "gte" and (value is None or value < expected):
            return False
        if f.op == "is_null" and value is not None:
            return False
        if f.op not in ("eq", "gte", "is_null"):
            raise ValueError(f"Unsupported filter operator {f.op}")
    return True


class InMemoryRecordStore(RecordStore):
    def __init__(self) -> None:
        self._tables: Dict[str, List[Row]] = {}

    def rows(self, table: str) -> List[Row]:
        return [deepcopy(r) for r in self._tables.get(table, [])]

    async def query(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        await asyncio.sleep(0)
        rows = [r for r in self._tables.get(table, []) if _matches(r, filters)]
        if order_by:
            rows.sort(key=lambda r: _sort_key(r.get(order_by)), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return [deepcopy(r) for r in rows]

    async def insert(self, table: str, row: Row) -> Row:
        await asyncio.sleep(0)
        stored = {k: as_utc(v) for k, v in row.items()}
        stored.setdefault("id", str(uuid.uuid4()))
        stored.setdefault("created_at", utc_now())
        if table == EYE_SCANS:
            stored.setdefault("scan_date", stored["created_at"])
        self._tables.setdefault(table, []).append(stored)
        return deepcopy(stored)

    async def count(self, table: str, filters: Sequence[Filter] = ()) -> int:
        await asyncio.sleep(0)
        return sum(1 for r in self._tables.get(table, []) if _matches(r, filters))


def _sort_key(value: Any):
    # None sorts first.
    return (value is not None, value)
