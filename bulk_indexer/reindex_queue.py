from typing import Iterable, List

from bulk_indexer.identifiers import encode
from bulk_indexer.records import Indexable
from bulk_indexer.store import ListStore


class ReindexQueue:
    """Durable queue of encoded record ids waiting to be reindexed."""

    def __init__(self, store: ListStore, index_name: str, namespace: str = "bulk_indexer") -> None:
        self.store = store
        self.index_name = index_name
        self.namespace = namespace

    @property
    def key(self) -> str:
        return f"{self.namespace}:reindex_queue:{self.index_name}"

    def push(self, record_ids: Iterable[str]) -> int:
        return self.store.lpush(self.key, [str(value) for value in record_ids])

    def push_records(self, records: Iterable[Indexable]) -> int:
        # keep routing so the record can still be deleted if it is gone by the time the queue is processed
        return self.push(encode(record.id, record.search_routing()) for record in records)

    def reserve(self, limit: int = 1000) -> List[str]:
        return self.store.rpop(self.key, limit)

    def length(self) -> int:
        return self.store.llen(self.key)

    def clear(self) -> None:
        self.store.delete(self.key)
