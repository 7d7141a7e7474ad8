import asyncio
import logging
from typing import List, Optional, Sequence, Type

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from .tables import TABLES
from ....application.ports.record_store import RecordStore, Row, Filter
from ....exceptions import PersistenceError
from ....utils import as_utc

logger = logging.getLogger(__name__)


def _row(entry: SQLModel) -> Row:
    # SQLite hands datetimes back without an offset; everything stored is UTC.
    return {k: as_utc(v) for k, v in entry.model_dump().items()}


class SqlRecordStore(RecordStore):
    """Record store over SQLModel tables; blocking calls run on a worker thread."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def _model(self, table: str) -> Type[SQLModel]:
        model = TABLES.get(table)
        if model is None:
            raise PersistenceError(f"Unknown table {table}")
        return model

    def _where(self, statement, model: Type[SQLModel], filters: Sequence[Filter]):
        for f in filters:
            column = getattr(model, f.column)
            if f.op == "eq":
                statement = statement.where(column == as_utc(f.value))
            elif f.op == "gte":
                statement = statement.where(column >= as_utc(f.value))
            elif f.op == "is_null":
                statement = statement.where(column.is_(None))
            else:
                raise PersistenceError(f"Unsupported filter operator {f.op}")
        return statement

    async def query(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        model = self._model(table)

        def run() -> List[Row]:
            statement = self._where(select(model), model, filters)
            if order_by:
                column = getattr(model, order_by)
                statement = statement.order_by(column.desc() if descending else column.asc())
            if limit is not None:
                statement = statement.limit(limit)
            with Session(self.engine) as session:
                return [_row(r) for r in session.exec(statement).all()]

        return await self._run(run, f"query {table}")

    async def insert(self, table: str, row: Row) -> Row:
        model = self._model(table)

        def run() -> Row:
            values = {k: as_utc(v) for k, v in row.items() if k in model.model_fields}
            entry = model(**values)
            with Session(self.engine) as session:
                session.add(entry)
                session.commit()
                session.refresh(entry)
                return _row(entry)

        return await self._run(run, f"insert into {table}")

    async def count(self, table: str, filters: Sequence[Filter] = ()) -> int:
        model = self._model(table)

        def run() -> int:
            statement = self._where(select(func.count()).select_from(model), model, filters)
            with Session(self.engine) as session:
                return int(session.exec(statement).one())

        return await self._run(run, f"count {table}")

    async def _run(self, fn, what: str):
        try:
            return await asyncio.to_thread(fn)
        except SQLAlchemyError as e:
            logger.error(f"Database error during {what}: {e}")
            raise PersistenceError(f"Database error during {what}") from e
