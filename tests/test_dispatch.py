import pytest

from bulk_indexer.dispatch import BulkIndexer, DispatchMode, split_for_dispatch
from bulk_indexer.errors import InvalidConfigurationError, TransientClientError
from bulk_indexer.metrics import metrics

from conftest import Doc, FakeKeyedSource


def test_eligibility_split():
    a, b, c = Doc("A"), Doc("B", eligible=False), Doc("C")
    to_index, to_delete = split_for_dispatch([a, b, c], skip_deletes=False)
    assert to_index == [a, c]
    assert to_delete == [b]

    to_index, to_delete = split_for_dispatch([a, b, c], skip_deletes=True)
    assert to_index == [a, c]
    assert to_delete == []


def test_mode_parse():
    assert DispatchMode.parse("ASYNC") is DispatchMode.ASYNC
    assert DispatchMode.parse(DispatchMode.QUEUE) is DispatchMode.QUEUE
    with pytest.raises(InvalidConfigurationError):
        DispatchMode.parse("later")


def test_inline_indexes_and_deletes_in_one_span(indexer, fake_index):
    indexer.dispatch([Doc(1), Doc(2, eligible=False, routing="r"), Doc(3)], "inline")
    assert fake_index.calls == [("index", ["1", "3"]), ("delete", [("2", "r")])]
    snapshot = metrics.snapshot()
    assert snapshot["bulk_indexer_bulk_total{outcome=ok}"] == 1
    assert snapshot["bulk_indexer_docs_total{action=import}"] == 2
    assert snapshot["bulk_indexer_docs_total{action=delete}"] == 1


def test_inline_full_import_skips_deletes(indexer, fake_index):
    indexer.dispatch([Doc(1), Doc(2, eligible=False)], DispatchMode.INLINE, full=True)
    assert fake_index.calls == [("index", ["1"])]


def test_partial_update_never_deletes(indexer, fake_index):
    indexer.dispatch([Doc(1), Doc(2, eligible=False)], DispatchMode.INLINE, method_name="search_title")
    assert fake_index.calls == [("update", ["1"], "search_title")]


def test_inline_only_deletes(indexer, fake_index):
    indexer.dispatch([Doc(9, eligible=False)])
    assert fake_index.calls == [("delete", [("9", None)])]


def test_empty_batch_is_noop(indexer, fake_index, job_runner):
    for mode in DispatchMode:
        indexer.dispatch([], mode, class_name="Doc")
    assert fake_index.calls == []
    assert job_runner.payloads == []


def test_inline_retries_transient_error_once(indexer, fake_index, monkeypatch):
    attempts = []
    original = fake_index.bulk_index

    def flaky(records):
        attempts.append(1)
        if len(attempts) == 1:
            raise TransientClientError("reset by peer")
        original(records)

    monkeypatch.setattr(fake_index, "bulk_index", flaky)
    indexer.dispatch([Doc(1)])
    assert len(attempts) == 2
    assert fake_index.calls == [("index", ["1"])]


def test_inline_terminal_failure_propagates(indexer, fake_index, monkeypatch):
    def down(records):
        raise TransientClientError("down")

    monkeypatch.setattr(fake_index, "bulk_index", down)
    with pytest.raises(TransientClientError):
        indexer.dispatch([Doc(1)])
    assert metrics.snapshot()["bulk_indexer_bulk_total{outcome=error}"] == 1


def test_async_enqueues_ids(indexer, job_runner):
    indexer.dispatch([Doc(1), Doc(2)], "async", method_name="search_title", class_name="Doc")
    assert len(job_runner.payloads) == 1
    payload = job_runner.payloads[0]
    assert payload.class_name == "Doc"
    assert payload.index_name == "docs_v1"
    assert payload.record_ids == ["1", "2"]
    assert payload.method_name == "search_title"
    assert payload.batch_id is None


def test_async_without_class_name_is_rejected(indexer):
    with pytest.raises(InvalidConfigurationError):
        indexer.dispatch([Doc(1)], "async")


def test_queue_pushes_records(indexer, reindex_queue, fake_index):
    indexer.dispatch([Doc(1, routing="r"), Doc(2, eligible=False)], "queue")
    assert reindex_queue.reserve(10) == ["1|r", "2"]
    assert fake_index.calls == []


def test_queue_with_partial_update_fails_before_any_call(indexer, reindex_queue, fake_index, job_runner):
    with pytest.raises(InvalidConfigurationError):
        indexer.dispatch([Doc(1)], DispatchMode.QUEUE, method_name="search_title")
    assert reindex_queue.length() == 0
    assert fake_index.calls == []
    assert job_runner.payloads == []


def test_queue_mode_requires_queue(fake_index, tracker):
    indexer = BulkIndexer(fake_index, tracker)
    with pytest.raises(InvalidConfigurationError):
        indexer.dispatch([Doc(1)], "queue")


def test_import_batch_deregisters_on_success(indexer, tracker, fake_index):
    tracker.register(fake_index.name, 3)
    indexer.import_batch([Doc(1)], batch_id=3)
    assert tracker.count(fake_index.name) == 0


def test_import_batch_failure_leaves_batch_registered(indexer, tracker, fake_index, monkeypatch):
    def down(records):
        raise TransientClientError("down")

    monkeypatch.setattr(fake_index, "bulk_index", down)
    tracker.register(fake_index.name, 3)
    with pytest.raises(TransientClientError):
        indexer.import_batch([Doc(1)], batch_id=3)
    assert tracker.count(fake_index.name) == 1


def test_import_queue_builds_placeholders_for_missing_ids(indexer, fake_index):
    source = FakeKeyedSource("Doc", [Doc(1), Doc(2, eligible=False, routing="old")])
    indexer.import_queue(source, ["1", "2|r2", "3|a||b"])
    assert fake_index.calls == [
        ("index", ["1"]),
        ("delete", [("2", "r2"), ("3", "a|b")]),
    ]


def test_import_scope_plain_source_inline(indexer, fake_index, iterable_source):
    assert indexer.import_scope(iterable_source) == 2
    assert fake_index.calls == [("index", ["1"]), ("delete", [("2", None)]), ("index", ["3"])]


def test_import_scope_async_uses_id_batches(indexer, job_runner):
    source = FakeKeyedSource("Doc", [Doc(i) for i in range(1, 6)])
    assert indexer.import_scope(source, mode="async") == 3
    assert source.batch_calls == [{"after_id": None, "ids_only": True}]
    assert [p.record_ids for p in job_runner.payloads] == [["1", "2"], ["3", "4"], ["5"]]


def test_import_scope_resume_uses_indexed_doc_count(indexer, fake_index):
    fake_index.doc_count = 3
    source = FakeKeyedSource("Doc", [Doc(i) for i in range(1, 6)])
    indexer.import_scope(source, resume=True)
    assert source.batch_calls == [{"after_id": 3, "ids_only": False}]
    assert fake_index.calls == [("index", ["4", "5"])]


def test_import_scope_rejects_queue_with_partial(indexer, iterable_source):
    with pytest.raises(InvalidConfigurationError):
        indexer.import_scope(iterable_source, mode="queue", method_name="search_title")


def test_process_queue_inline(indexer, reindex_queue, fake_index):
    source = FakeKeyedSource("Doc", [Doc(1), Doc(2), Doc(3)])
    reindex_queue.push(["1", "2", "3"])
    assert indexer.process_queue(source, inline=True) == 2
    assert fake_index.calls == [("index", ["1", "2"]), ("index", ["3"])]
    assert reindex_queue.length() == 0


def test_process_queue_enqueues_jobs(indexer, reindex_queue, job_runner):
    source = FakeKeyedSource("Doc", [])
    reindex_queue.push(["1", "2", "3"])
    assert indexer.process_queue(source, limit=1) == 1
    assert job_runner.payloads[0].kind == "process_batch"
    assert job_runner.payloads[0].record_ids == ["1", "2"]
    assert reindex_queue.length() == 1


def test_process_queue_without_runner_keeps_queue_intact(fake_index, tracker, reindex_queue):
    indexer = BulkIndexer(fake_index, tracker, reindex_queue=reindex_queue, batch_size=2)
    reindex_queue.push(["1", "2", "3"])
    with pytest.raises(InvalidConfigurationError):
        indexer.process_queue(FakeKeyedSource("Doc", []))
    assert reindex_queue.length() == 3
