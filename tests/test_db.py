import pytest

from bulk_indexer.config import Settings
from bulk_indexer.db import JobQueue


class RecordingCursor:
    def __init__(self, conn):
        self.conn = conn
        self.rowcount = 0

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, query, params=None):
        self.conn.queries.append((query, list(params or [])))
        self.rowcount = self.conn.rowcount

    def fetchone(self):
        return self.conn.row


class RecordingConnection:
    def __init__(self, row=None, rowcount=0):
        self.row = row
        self.rowcount = rowcount
        self.queries = []
        self.committed = False

    def cursor(self):
        return RecordingCursor(self)

    def commit(self):
        self.committed = True

    def rollback(self):
        pass

    def close(self):
        pass


@pytest.fixture
def job_queue():
    return JobQueue(Settings.from_env())


def test_count_failed_reads_without_updating(monkeypatch, job_queue):
    conn = RecordingConnection(row={"n": 3})
    monkeypatch.setattr(job_queue, "connect", lambda: conn)
    assert job_queue.count_failed("docs_v1") == 3
    query, params = conn.queries[0]
    assert query.startswith("SELECT COUNT(*)")
    assert "status='FAILED' AND index_name=%s" in query
    assert params == ["docs_v1"]


def test_count_failed_and_requeue_share_the_filter(monkeypatch, job_queue):
    conn = RecordingConnection(row={"n": 2}, rowcount=2)
    monkeypatch.setattr(job_queue, "connect", lambda: conn)
    assert job_queue.count_failed() == 2
    assert job_queue.requeue_failed() == 2
    count_query, requeue_query = (query for query, _ in conn.queries)
    assert count_query.endswith("WHERE status='FAILED'")
    assert requeue_query.startswith("UPDATE bulk_index_job SET status='QUEUED'")
    assert requeue_query.endswith("WHERE status='FAILED'")
    assert conn.committed
