import logging
import threading
from typing import Any, Callable, Dict, Mapping, Optional

from bulk_indexer.db import JobQueue
from bulk_indexer.dispatch import BulkIndexer
from bulk_indexer.errors import InvalidConfigurationError, to_error_payload
from bulk_indexer.jobs import PROCESS_BATCH, JobPayload
from bulk_indexer.source import KeyedSource, RecordSource

logger = logging.getLogger(__name__)


class JobExecutor:
    """Runs one job payload by re-entering inline dispatch."""

    def __init__(self, sources: Mapping[str, RecordSource], indexer_for: Callable[[str], BulkIndexer]) -> None:
        self.sources = sources
        self.indexer_for = indexer_for

    def source_for(self, class_name: str) -> RecordSource:
        source = self.sources.get(class_name)
        if source is None:
            raise InvalidConfigurationError(f"Unknown class name: {class_name}")
        return source

    def execute(self, payload: JobPayload) -> None:
        source = self.source_for(payload.class_name)
        indexer = self.indexer_for(payload.index_name)

        if payload.kind == PROCESS_BATCH:
            indexer.import_queue(source, payload.record_ids or [])
            return

        if payload.record_ids is not None:
            records = source.load_records(payload.record_ids)
        elif isinstance(source, KeyedSource):
            records = source.load_range(payload.min_id, payload.max_id)
        else:
            raise InvalidConfigurationError(f"Source {source.name} cannot load records by id range")
        indexer.import_batch(records, method_name=payload.method_name, batch_id=payload.batch_id)


class JobWorker:
    def __init__(self, job_queue: JobQueue, executor: JobExecutor, poll_interval_sec: float = 2.0) -> None:
        self.job_queue = job_queue
        self.executor = executor
        self.poll_interval_sec = poll_interval_sec

    def run_job(self, job: Dict[str, Any]) -> bool:
        job_id = job["job_id"]
        try:
            payload = JobPayload.model_validate(job.get("payload_json") or {})
            self.executor.execute(payload)
        except Exception as exc:
            # the batch id stays registered; batches_left keeps counting it
            logger.exception("[worker] job_id=%s failed: %s", job_id, exc)
            self.job_queue.mark_failed(job_id, to_error_payload(exc), str(exc))
            return False
        self.job_queue.mark_succeeded(job_id)
        logger.info("[worker] job_id=%s complete", job_id)
        return True

    def run_once(self) -> Optional[bool]:
        job = self.job_queue.claim_next_job()
        if not job:
            return None
        logger.info("[worker] claimed job_id=%s kind=%s", job["job_id"], job.get("job_kind"))
        return self.run_job(job)

    def run_forever(self, stop_event: threading.Event) -> None:
        logger.info("Bulk index worker started")
        while not stop_event.is_set():
            try:
                if self.run_once() is None:
                    stop_event.wait(self.poll_interval_sec)
            except Exception as exc:
                logger.exception("Worker loop error: %s", exc)
                stop_event.wait(self.poll_interval_sec)
