import logging
from enum import Enum
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from bulk_indexer.errors import InvalidConfigurationError
from bulk_indexer.identifiers import decode
from bulk_indexer.jobs import PROCESS_BATCH, JobPayload, JobRunner
from bulk_indexer.metrics import instrument, metrics
from bulk_indexer.opensearch import SearchIndex
from bulk_indexer.orchestrator import FullReindex
from bulk_indexer.partition import DEFAULT_BATCH_SIZE, partition_by_size
from bulk_indexer.records import Indexable, PlaceholderRecord
from bulk_indexer.reindex_queue import ReindexQueue
from bulk_indexer.retry import with_retries
from bulk_indexer.source import BatchedSource, RecordSource
from bulk_indexer.tracker import BatchTracker

logger = logging.getLogger(__name__)


class DispatchMode(str, Enum):
    INLINE = "inline"
    ASYNC = "async"
    QUEUE = "queue"

    @classmethod
    def parse(cls, value: Union["DispatchMode", str]) -> "DispatchMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidConfigurationError(f"Invalid value for mode: {value!r}") from None


def split_for_dispatch(records: Iterable[Indexable], skip_deletes: bool) -> Tuple[List[Indexable], List[Indexable]]:
    """Eligible records get indexed, the rest deleted unless deletes are skipped."""
    to_index: List[Indexable] = []
    to_delete: List[Indexable] = []
    for record in records:
        if record.should_index():
            to_index.append(record)
        elif not skip_deletes:
            to_delete.append(record)
    return to_index, to_delete


class BulkIndexer:
    def __init__(
        self,
        index: SearchIndex,
        tracker: BatchTracker,
        job_runner: Optional[JobRunner] = None,
        reindex_queue: Optional[ReindexQueue] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self.index = index
        self.tracker = tracker
        self.job_runner = job_runner
        self.reindex_queue = reindex_queue
        self.batch_size = batch_size

    def _require_runner(self) -> JobRunner:
        if self.job_runner is None:
            raise InvalidConfigurationError("Async mode requires a job runner")
        return self.job_runner

    def _require_queue(self) -> ReindexQueue:
        if self.reindex_queue is None:
            raise InvalidConfigurationError("Queue mode requires a reindex queue")
        return self.reindex_queue

    def import_scope(
        self,
        source: RecordSource,
        resume: bool = False,
        method_name: Optional[str] = None,
        mode: Union[DispatchMode, str] = DispatchMode.INLINE,
        full: bool = False,
    ) -> int:
        """Import a whole source, returning the number of batches dispatched or jobs emitted."""
        mode = DispatchMode.parse(mode)
        if mode is DispatchMode.QUEUE and method_name:
            raise InvalidConfigurationError("Partial reindex not supported with queue option")

        if full and mode is DispatchMode.ASYNC:
            return FullReindex(self.index.name, self.tracker, self._require_runner(), self.batch_size).run(source)

        if isinstance(source, BatchedSource):
            after_id = None
            if resume:
                # indexed doc count stands in for the last indexed id; deleted rows leave gaps it cannot see
                after_id = self.index.total_docs()
                logger.info("[import] index=%s resuming after id=%s", self.index.name, after_id)
            batches = source.find_in_batches(self.batch_size, after_id=after_id, ids_only=mode is DispatchMode.ASYNC)
        else:
            batches = partition_by_size(source.iterate(), self.batch_size)

        dispatched = 0
        for batch in batches:
            self.dispatch(batch, mode, method_name=method_name, full=full, class_name=source.name)
            dispatched += 1
        logger.info("[import] index=%s source=%s mode=%s batches=%s", self.index.name, source.name, mode.value, dispatched)
        return dispatched

    def dispatch(
        self,
        records: Iterable[Indexable],
        mode: Union[DispatchMode, str] = DispatchMode.INLINE,
        method_name: Optional[str] = None,
        full: bool = False,
        class_name: Optional[str] = None,
    ) -> None:
        mode = DispatchMode.parse(mode)
        if mode is DispatchMode.QUEUE and method_name:
            raise InvalidConfigurationError("Partial reindex not supported with queue option")

        records = list(records)
        if not records:
            return

        if mode is DispatchMode.ASYNC:
            if not class_name:
                raise InvalidConfigurationError("Async mode requires the class name of the records")
            self._require_runner().enqueue(
                JobPayload(
                    class_name=class_name,
                    index_name=self.index.name,
                    record_ids=[str(record.id) for record in records],
                    method_name=method_name,
                )
            )
        elif mode is DispatchMode.QUEUE:
            self._require_queue().push_records(records)
        elif mode is DispatchMode.INLINE:
            # a full import targets a fresh index and a partial update never removes documents
            to_index, to_delete = split_for_dispatch(records, skip_deletes=full or method_name is not None)
            self.import_inline(to_index, to_delete, method_name=method_name)
        else:
            raise InvalidConfigurationError(f"Invalid value for mode: {mode!r}")

    def import_inline(
        self,
        index_records: Sequence[Indexable],
        delete_records: Sequence[Indexable],
        method_name: Optional[str] = None,
    ) -> None:
        if not index_records and not delete_records:
            return
        action = "Update" if method_name else "Import"
        with instrument("bulk", message=f"{self.index.name} {action}"):
            if index_records:
                if method_name:
                    with_retries(self.index.bulk_update, index_records, method_name)
                else:
                    with_retries(self.index.bulk_index, index_records)
                metrics.inc("bulk_indexer_docs_total", {"action": action.lower()}, len(index_records))
            if delete_records:
                with_retries(self.index.bulk_delete, delete_records)
                metrics.inc("bulk_indexer_docs_total", {"action": "delete"}, len(delete_records))

    def import_batch(
        self, records: Iterable[Indexable], method_name: Optional[str] = None, batch_id: Optional[Any] = None
    ) -> None:
        self.dispatch(records, DispatchMode.INLINE, method_name=method_name)
        if batch_id is not None:
            self.tracker.deregister(self.index.name, batch_id)

    def import_queue(self, source: RecordSource, record_ids: Sequence[str]) -> None:
        routing = {}
        for value in record_ids:
            identifier = decode(value)
            routing[identifier.id] = identifier.routing

        loaded = source.load_records(list(routing))
        records = [record for record in loaded if record.should_index()]
        indexed_ids = {str(record.id) for record in records}
        delete_records = [
            PlaceholderRecord(record_id, routing[record_id]) for record_id in routing if record_id not in indexed_ids
        ]
        self.import_inline(records, delete_records)

    def process_queue(self, source: RecordSource, inline: bool = False, limit: Optional[int] = None) -> int:
        reindex_queue = self._require_queue()
        # reserve() pops ids, so a missing runner has to fail first
        runner = None if inline else self._require_runner()
        processed = 0
        while limit is None or processed < limit:
            record_ids = reindex_queue.reserve(self.batch_size)
            if not record_ids:
                break
            if runner is None:
                self.import_queue(source, record_ids)
            else:
                runner.enqueue(
                    JobPayload(
                        kind=PROCESS_BATCH,
                        class_name=source.name,
                        index_name=self.index.name,
                        record_ids=record_ids,
                    )
                )
            processed += 1
        return processed

    def batches_left(self) -> int:
        return self.tracker.count(self.index.name)
