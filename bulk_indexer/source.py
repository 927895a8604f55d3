"""Record sources the indexer can read from.

``TableSource`` supports every access pattern: plain iteration, keyset
batches, primary key bounds and range loads. ``IterableSource`` only
iterates, which puts the indexer in cursor mode.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

import pymysql

from bulk_indexer.config import Settings
from bulk_indexer.errors import SourceQueryError
from bulk_indexer.records import Indexable, RowRecord


@runtime_checkable
class RecordSource(Protocol):
    name: str

    def iterate(self) -> Iterable[Indexable]: ...

    def load_records(self, record_ids: Sequence[Any]) -> List[Indexable]: ...


@runtime_checkable
class BatchedSource(RecordSource, Protocol):
    def find_in_batches(
        self, batch_size: int, after_id: Optional[Any] = None, ids_only: bool = False
    ) -> Iterator[List[Indexable]]: ...


@runtime_checkable
class KeyedSource(BatchedSource, Protocol):
    def primary_key_bounds(self) -> Optional[Tuple[Any, Any]]: ...

    def load_range(self, min_id: Any, max_id: Any) -> List[Indexable]: ...


class IterableSource:
    def __init__(self, name: str, records: Iterable[Indexable]) -> None:
        self.name = name
        self._records = records

    def iterate(self) -> Iterable[Indexable]:
        return iter(self._records)

    def load_records(self, record_ids: Sequence[Any]) -> List[Indexable]:
        wanted = {str(record_id) for record_id in record_ids}
        return [record for record in self._records if str(record.id) in wanted]


class TableSource:
    def __init__(
        self,
        settings: Settings,
        table: Optional[str] = None,
        name: Optional[str] = None,
        primary_key: Optional[str] = None,
        columns: Optional[List[str]] = None,
        routing_column: Optional[str] = None,
        eligible_column: Optional[str] = None,
    ) -> None:
        self.settings = settings
        self.table = table or settings.source_table
        self.name = name or settings.source_class_name
        self.primary_key = primary_key or settings.source_primary_key
        self.columns = columns if columns is not None else list(settings.source_columns)
        self.routing_column = routing_column or settings.source_routing_column
        self.eligible_column = eligible_column or settings.source_eligible_column

    def connect(self, cursorclass=pymysql.cursors.DictCursor) -> pymysql.connections.Connection:
        return pymysql.connect(
            host=self.settings.mysql_host,
            port=self.settings.mysql_port,
            user=self.settings.mysql_user,
            password=self.settings.mysql_password,
            database=self.settings.mysql_database,
            charset="utf8mb4",
            cursorclass=cursorclass,
            autocommit=True,
        )

    @contextmanager
    def cursor(self, cursorclass=pymysql.cursors.DictCursor):
        conn = self.connect(cursorclass)
        try:
            with conn.cursor() as cursor:
                yield cursor
        finally:
            conn.close()

    def _select_list(self, ids_only: bool = False) -> str:
        if ids_only:
            parts = [self.primary_key]
            if self.routing_column:
                parts.append(self.routing_column)
        elif self.columns:
            parts = [self.primary_key] + [col for col in self.columns if col != self.primary_key]
            for extra in (self.routing_column, self.eligible_column):
                if extra and extra not in parts:
                    parts.append(extra)
        else:
            return "*"
        return ", ".join(f"`{col}`" for col in parts)

    def _to_record(self, row: Dict[str, Any]) -> RowRecord:
        return RowRecord(
            id=row[self.primary_key],
            data=row,
            routing_column=self.routing_column,
            eligible_column=self.eligible_column,
        )

    def _fetch(self, where: str, params: Sequence[Any]) -> List[Indexable]:
        query = f"SELECT {self._select_list()} FROM `{self.table}` WHERE {where} ORDER BY `{self.primary_key}`"
        with self.cursor() as cursor:
            cursor.execute(query, params)
            return [self._to_record(row) for row in cursor.fetchall()]

    def iterate(self) -> Iterator[Indexable]:
        query = f"SELECT {self._select_list()} FROM `{self.table}` ORDER BY `{self.primary_key}`"
        with self.cursor(pymysql.cursors.SSDictCursor) as cursor:
            cursor.execute(query)
            for row in cursor:
                yield self._to_record(row)

    def find_in_batches(
        self, batch_size: int, after_id: Optional[Any] = None, ids_only: bool = False
    ) -> Iterator[List[Indexable]]:
        select_list = self._select_list(ids_only)
        last_id = after_id
        while True:
            params: List[Any] = []
            where_sql = ""
            if last_id is not None:
                where_sql = f"WHERE `{self.primary_key}` > %s "
                params.append(last_id)
            params.append(batch_size)
            query = (
                f"SELECT {select_list} FROM `{self.table}` {where_sql}"
                f"ORDER BY `{self.primary_key}` LIMIT %s"
            )
            with self.cursor() as cursor:
                cursor.execute(query, params)
                rows = cursor.fetchall()
            if not rows:
                return
            yield [self._to_record(row) for row in rows]
            if len(rows) < batch_size:
                return
            last_id = rows[-1][self.primary_key]

    def primary_key_bounds(self) -> Optional[Tuple[Any, Any]]:
        query = f"SELECT MIN(`{self.primary_key}`) AS min_id, MAX(`{self.primary_key}`) AS max_id FROM `{self.table}`"
        try:
            with self.cursor() as cursor:
                cursor.execute(query)
                row = cursor.fetchone()
        except pymysql.err.MySQLError as exc:
            raise SourceQueryError(f"Failed to read key bounds of {self.table}: {exc}") from exc
        if not row or row.get("min_id") is None:
            return None
        return row["min_id"], row["max_id"]

    def load_records(self, record_ids: Sequence[Any]) -> List[Indexable]:
        if not record_ids:
            return []
        placeholders = ",".join(["%s"] * len(record_ids))
        return self._fetch(f"`{self.primary_key}` IN ({placeholders})", list(record_ids))

    def load_range(self, min_id: Any, max_id: Any) -> List[Indexable]:
        return self._fetch(f"`{self.primary_key}` BETWEEN %s AND %s", [min_id, max_id])
