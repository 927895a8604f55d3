import argparse
import logging
import os
import threading
from typing import List, Optional

from bulk_indexer.bootstrap import Services, build_services
from bulk_indexer.config import Settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bulk-indexer", description="Bulk index a record source into OpenSearch.")
    parser.add_argument("--index", help="target index name (default: INDEX_NAME)")
    parser.add_argument("--class-name", help="source to read from (default: SOURCE_CLASS_NAME)")
    sub = parser.add_subparsers(dest="command", required=True)

    run_import = sub.add_parser("import", help="import the source into the index")
    run_import.add_argument("--mode", default="inline", choices=["inline", "async", "queue"])
    run_import.add_argument("--full", action="store_true", help="full reindex (one tracked job per batch in async mode)")
    run_import.add_argument("--resume", action="store_true", help="skip ids up to the indexed document count")
    run_import.add_argument("--method-name", help="partial update using this record method")

    sub.add_parser("batches-left", help="print the number of pending full-reindex batches")

    process = sub.add_parser("process-queue", help="drain the reindex queue")
    process.add_argument("--inline", action="store_true", help="index in this process instead of enqueuing jobs")
    process.add_argument("--limit", type=int, help="max batches to drain")

    sub.add_parser("clear-batches", help="forget pending batches of the index")

    requeue = sub.add_parser("requeue-failed", help="reset FAILED jobs to QUEUED")
    requeue.add_argument("--dry-run", action="store_true", help="only count the FAILED jobs")

    sub.add_parser("worker", help="run the job worker in the foreground")
    sub.add_parser("init-db", help="create the job table")
    return parser


def run(args: argparse.Namespace, services: Services) -> int:
    indexer = services.indexer_for(args.index)

    if args.command == "import":
        source = services.source(args.class_name)
        batches = indexer.import_scope(
            source,
            resume=args.resume,
            method_name=args.method_name,
            mode=args.mode,
            full=args.full,
        )
        print(f"[import] index={indexer.index.name} mode={args.mode} batches={batches}")
    elif args.command == "batches-left":
        print(indexer.batches_left())
    elif args.command == "process-queue":
        source = services.source(args.class_name)
        batches = indexer.process_queue(source, inline=args.inline, limit=args.limit)
        print(f"[queue] index={indexer.index.name} batches={batches} remaining={indexer.reindex_queue.length()}")
    elif args.command == "clear-batches":
        services.tracker.clear(indexer.index.name)
        print(f"[batches] index={indexer.index.name} cleared")
    elif args.command == "requeue-failed":
        if args.dry_run:
            failed = services.job_queue.count_failed(indexer.index.name)
            print(f"[requeue] index={indexer.index.name} would requeue {failed} jobs")
            return 0
        updated = services.job_queue.requeue_failed(indexer.index.name)
        print(f"[requeue] requeued {updated} jobs")
    elif args.command == "worker":
        stop_event = threading.Event()
        try:
            services.worker().run_forever(stop_event)
        except KeyboardInterrupt:
            stop_event.set()
    elif args.command == "init-db":
        services.job_queue.ensure_schema()
        print("[init-db] bulk_index_job ready")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
    services = build_services(Settings.from_env())
    try:
        return run(args, services)
    finally:
        services.client.close()


if __name__ == "__main__":
    raise SystemExit(main())
