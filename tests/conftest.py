from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pytest

from bulk_indexer.dispatch import BulkIndexer
from bulk_indexer.metrics import metrics
from bulk_indexer.reindex_queue import ReindexQueue
from bulk_indexer.source import IterableSource
from bulk_indexer.store import MemoryStore
from bulk_indexer.tracker import BatchTracker


@dataclass
class Doc:
    id: Any
    eligible: bool = True
    routing: Optional[str] = None
    title: str = ""

    def should_index(self) -> bool:
        return self.eligible

    def search_routing(self) -> Optional[str]:
        return self.routing

    def search_data(self) -> Dict[str, Any]:
        return {"title": self.title}

    def search_title(self) -> Dict[str, Any]:
        return {"title": self.title.upper()}


@dataclass
class FakeIndex:
    name: str = "docs_v1"
    calls: List[tuple] = field(default_factory=list)
    doc_count: int = 0

    def bulk_index(self, records):
        self.calls.append(("index", [str(r.id) for r in records]))

    def bulk_update(self, records, method_name):
        self.calls.append(("update", [str(r.id) for r in records], method_name))

    def bulk_delete(self, records):
        self.calls.append(("delete", [(str(r.id), r.search_routing()) for r in records]))

    def total_docs(self) -> int:
        return self.doc_count


class FakeJobRunner:
    def __init__(self) -> None:
        self.payloads = []

    def enqueue(self, payload):
        self.payloads.append(payload)
        return len(self.payloads)


class FakeClient:
    """Stands in for OpenSearchClient, recording every bulk body."""

    def __init__(self):
        self.bulk_lines = []

    def bulk(self, lines):
        self.bulk_lines.append(list(lines))
        return {"errors": False, "items": []}

    def count(self, index_name):
        return 0

    def close(self):
        pass


class FakeKeyedSource:
    """Keyed source over an in-memory table; bounds may be forced to fail."""

    def __init__(self, name: str, records: List[Doc], bounds_error: Optional[Exception] = None) -> None:
        self.name = name
        self.records = sorted(records, key=lambda r: r.id)
        self.bounds_error = bounds_error
        self.batch_calls = []

    def iterate(self):
        return iter(self.records)

    def load_records(self, record_ids):
        wanted = {str(value) for value in record_ids}
        return [r for r in self.records if str(r.id) in wanted]

    def find_in_batches(self, batch_size, after_id=None, ids_only=False):
        self.batch_calls.append({"after_id": after_id, "ids_only": ids_only})
        rows = [r for r in self.records if after_id is None or r.id > after_id]
        for i in range(0, len(rows), batch_size):
            yield rows[i : i + batch_size]

    def primary_key_bounds(self):
        if self.bounds_error is not None:
            raise self.bounds_error
        if not self.records:
            return None
        return self.records[0].id, self.records[-1].id

    def load_range(self, min_id, max_id):
        return [r for r in self.records if min_id <= r.id <= max_id]


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def tracker(store):
    return BatchTracker(store, namespace="test")


@pytest.fixture
def fake_index():
    return FakeIndex()


@pytest.fixture
def job_runner():
    return FakeJobRunner()


@pytest.fixture
def reindex_queue(store, fake_index):
    return ReindexQueue(store, fake_index.name, namespace="test")


@pytest.fixture
def indexer(fake_index, tracker, job_runner, reindex_queue):
    return BulkIndexer(fake_index, tracker, job_runner=job_runner, reindex_queue=reindex_queue, batch_size=2)


@pytest.fixture
def iterable_source():
    return IterableSource("Doc", [Doc(1), Doc(2, eligible=False), Doc(3)])
