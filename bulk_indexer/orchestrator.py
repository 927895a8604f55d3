"""Full asynchronous reindex: one job per batch, each tracked until it finishes.

``plan_range_jobs`` and ``plan_cursor_jobs`` only build payloads. ``FullReindex``
picks the strategy for a source, registers each batch and enqueues its job.
"""

import logging
import numbers
from decimal import Decimal
from typing import Any, Iterable, Iterator, List

from bulk_indexer.errors import SourceQueryError
from bulk_indexer.jobs import JobPayload, JobRunner
from bulk_indexer.partition import DEFAULT_BATCH_SIZE, partition_by_range, partition_by_size
from bulk_indexer.records import Indexable
from bulk_indexer.source import BatchedSource, KeyedSource, RecordSource
from bulk_indexer.tracker import BatchTracker

logger = logging.getLogger(__name__)

_NO_BOUNDS = object()


def is_numeric_key(value: Any) -> bool:
    if isinstance(value, Decimal):
        # DECIMAL primary keys come back from pymysql as Decimal
        return value.is_finite() and value == value.to_integral_value()
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def plan_range_jobs(
    class_name: str, index_name: str, min_id: int, max_id: int, batch_size: int = DEFAULT_BATCH_SIZE
) -> Iterator[JobPayload]:
    for id_range in partition_by_range(int(min_id), int(max_id), batch_size):
        yield JobPayload(
            class_name=class_name,
            index_name=index_name,
            batch_id=id_range.batch_id,
            min_id=id_range.min_id,
            max_id=id_range.max_id,
        )


def plan_cursor_jobs(class_name: str, index_name: str, batches: Iterable[List[Indexable]]) -> Iterator[JobPayload]:
    for i, batch in enumerate(batches):
        yield JobPayload(
            class_name=class_name,
            index_name=index_name,
            batch_id=i + 1,
            record_ids=[str(record.id) for record in batch],
        )


class FullReindex:
    def __init__(
        self,
        index_name: str,
        tracker: BatchTracker,
        job_runner: JobRunner,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self.index_name = index_name
        self.tracker = tracker
        self.job_runner = job_runner
        self.batch_size = batch_size

    def _bounds(self, source: KeyedSource) -> Any:
        try:
            return source.primary_key_bounds()
        except SourceQueryError as exc:
            logger.warning("[full-reindex] index=%s key bounds unavailable, using cursor batches: %s", self.index_name, exc)
            return _NO_BOUNDS

    def plan(self, source: RecordSource) -> Iterator[JobPayload]:
        if isinstance(source, KeyedSource):
            bounds = self._bounds(source)
            if bounds is None:
                logger.info("[full-reindex] index=%s source=%s is empty", self.index_name, source.name)
                return
            if bounds is not _NO_BOUNDS and is_numeric_key(bounds[0]):
                min_id, max_id = bounds
                yield from plan_range_jobs(source.name, self.index_name, min_id, max_id, self.batch_size)
                return
        if isinstance(source, BatchedSource):
            batches = source.find_in_batches(self.batch_size, ids_only=True)
        else:
            batches = partition_by_size(source.iterate(), self.batch_size)
        yield from plan_cursor_jobs(source.name, self.index_name, batches)

    def run(self, source: RecordSource) -> int:
        emitted = 0
        for payload in self.plan(source):
            self.tracker.register(self.index_name, payload.batch_id)
            self.job_runner.enqueue(payload)
            emitted += 1
        logger.info("[full-reindex] index=%s source=%s jobs=%s", self.index_name, source.name, emitted)
        return emitted
