from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

PROFILES = "profiles"
EYE_SCANS = "eye_scans"
APPOINTMENTS = "appointments"
AUTH_USERS = "auth_users"

Row = Dict[str, Any]


@dataclass(frozen=True)
class Filter:
    column: str
    op: str
    value: Any = None


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def gte(column: str, value: Any) -> Filter:
    return Filter(column, "gte", value)


def is_null(column: str) -> Filter:
    return Filter(column, "is_null")


class RecordStore(Protocol):
    async def query(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        ...

    async def insert(self, table: str, row: Row) -> Row:
        ...

    async def count(self, table: str, filters: Sequence[Filter] = ()) -> int:
        ...
