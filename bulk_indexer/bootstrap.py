from dataclasses import dataclass, field
from typing import Dict, Optional

from bulk_indexer.config import Settings
from bulk_indexer.db import JobQueue
from bulk_indexer.dispatch import BulkIndexer
from bulk_indexer.errors import InvalidConfigurationError
from bulk_indexer.opensearch import OpenSearchClient, SearchIndex
from bulk_indexer.reindex_queue import ReindexQueue
from bulk_indexer.source import RecordSource, TableSource
from bulk_indexer.store import build_store
from bulk_indexer.tracker import BatchTracker
from bulk_indexer.worker import JobExecutor, JobWorker


@dataclass
class Services:
    settings: Settings
    client: OpenSearchClient
    tracker: BatchTracker
    job_queue: JobQueue
    store: object
    sources: Dict[str, RecordSource] = field(default_factory=dict)

    def source(self, class_name: Optional[str] = None) -> RecordSource:
        name = class_name or self.settings.source_class_name
        source = self.sources.get(name)
        if source is None:
            raise InvalidConfigurationError(f"Unknown class name: {name}")
        return source

    def indexer_for(self, index_name: Optional[str] = None) -> BulkIndexer:
        name = index_name or self.settings.index_name
        return BulkIndexer(
            index=SearchIndex(self.client, name),
            tracker=self.tracker,
            job_runner=self.job_queue,
            reindex_queue=ReindexQueue(self.store, name, self.settings.namespace),
            batch_size=self.settings.batch_size,
        )

    def worker(self) -> JobWorker:
        executor = JobExecutor(self.sources, self.indexer_for)
        return JobWorker(self.job_queue, executor, self.settings.job_poll_interval_sec)


def build_services(settings: Settings) -> Services:
    store = build_store(settings.redis_url)
    source = TableSource(settings)
    return Services(
        settings=settings,
        client=OpenSearchClient(settings),
        tracker=BatchTracker(store, settings.namespace),
        job_queue=JobQueue(settings),
        store=store,
        sources={source.name: source},
    )
