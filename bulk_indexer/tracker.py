import logging
from typing import Any

from bulk_indexer.store import SetStore

logger = logging.getLogger(__name__)


class BatchTracker:
    """Pending batch ids of a full async reindex, one shared set per index.

    A job that crashes never deregisters, so its id stays in the set and
    ``count`` overstates the remaining work until the set is cleared.
    """

    def __init__(self, store: SetStore, namespace: str = "bulk_indexer") -> None:
        self.store = store
        self.namespace = namespace

    def key(self, index_name: str) -> str:
        return f"{self.namespace}:reindex:{index_name}:batches"

    def register(self, index_name: str, batch_id: Any) -> None:
        self.store.sadd(self.key(index_name), str(batch_id))

    def deregister(self, index_name: str, batch_id: Any) -> None:
        self.store.srem(self.key(index_name), str(batch_id))

    def count(self, index_name: str) -> int:
        return self.store.scard(self.key(index_name))

    def clear(self, index_name: str) -> None:
        logger.info("[tracker] clearing pending batches index=%s", index_name)
        self.store.delete(self.key(index_name))
