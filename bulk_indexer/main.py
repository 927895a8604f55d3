import logging
import os
import threading
import uuid
from typing import Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from bulk_indexer.bootstrap import build_services
from bulk_indexer.config import Settings
from bulk_indexer.dispatch import DispatchMode
from bulk_indexer.errors import BulkIndexError, InvalidConfigurationError, to_error_payload
from bulk_indexer.metrics import metrics
from bulk_indexer.schemas import (
    BatchesLeftResponse,
    HealthResponse,
    ImportRequest,
    ImportResponse,
    ProcessQueueRequest,
    ProcessQueueResponse,
)

settings = Settings.from_env()
logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
logger = logging.getLogger("bulk-indexer")

services = build_services(settings)

app = FastAPI(title="bulk-indexer")

stop_event = threading.Event()


def request_context(request: Request) -> Dict[str, str]:
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    trace_id = request.headers.get("x-trace-id") or uuid.uuid4().hex
    return {"request_id": request_id, "trace_id": trace_id}


def error_payload(request: Request, code: str, message: str, status_code: int, detail=None) -> JSONResponse:
    ctx = request_context(request)
    error = {"code": code, "message": message}
    if detail is not None:
        error["detail"] = detail
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "trace_id": ctx["trace_id"],
            "request_id": ctx["request_id"],
        },
    )


@app.on_event("startup")
def on_startup() -> None:
    if not settings.worker_enabled:
        return
    worker = services.worker()
    thread = threading.Thread(target=worker.run_forever, args=(stop_event,), daemon=True)
    thread.start()
    app.state.worker_thread = thread


@app.on_event("shutdown")
def on_shutdown() -> None:
    stop_event.set()
    services.client.close()


@app.exception_handler(HTTPException)
async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    code = str(exc.detail or "http_error")
    message = str(exc.detail or "http_error")
    return error_payload(request, code, message, exc.status_code)


@app.exception_handler(RequestValidationError)
async def handle_validation_exception(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_payload(request, "invalid_request", "invalid_request", 400)


@app.exception_handler(InvalidConfigurationError)
async def handle_invalid_configuration(request: Request, exc: InvalidConfigurationError) -> JSONResponse:
    return error_payload(request, "invalid_request", str(exc), 400)


@app.exception_handler(BulkIndexError)
async def handle_bulk_index_error(request: Request, exc: BulkIndexError) -> JSONResponse:
    logger.warning("Bulk index error: %s", exc)
    return error_payload(request, "bulk_index_failed", str(exc), 502, detail=to_error_payload(exc))


@app.exception_handler(Exception)
async def handle_unhandled_exception(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error: %s", exc)
    return error_payload(request, "internal_error", "internal_error", 500)


@app.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    ctx = request_context(request)
    return HealthResponse(status="ok", trace_id=ctx["trace_id"], request_id=ctx["request_id"])


@app.get("/metrics")
async def get_metrics() -> Dict[str, float]:
    return metrics.snapshot()


@app.post("/internal/index/imports", response_model=ImportResponse)
def create_import(request: Request, payload: ImportRequest) -> ImportResponse:
    ctx = request_context(request)
    mode = DispatchMode.parse(payload.mode)
    source = services.source(payload.class_name)
    indexer = services.indexer_for(payload.index_name)
    batches = indexer.import_scope(
        source,
        resume=payload.resume,
        method_name=payload.method_name,
        mode=mode,
        full=payload.full,
    )
    return ImportResponse(
        trace_id=ctx["trace_id"],
        request_id=ctx["request_id"],
        index_name=indexer.index.name,
        mode=mode.value,
        batches=batches,
    )


@app.get("/internal/index/batches", response_model=BatchesLeftResponse)
def get_batches_left(request: Request, index_name: str = "") -> BatchesLeftResponse:
    ctx = request_context(request)
    indexer = services.indexer_for(index_name or None)
    return BatchesLeftResponse(
        trace_id=ctx["trace_id"],
        request_id=ctx["request_id"],
        index_name=indexer.index.name,
        batches_left=indexer.batches_left(),
    )


@app.post("/internal/index/queue/process", response_model=ProcessQueueResponse)
def process_queue(request: Request, payload: ProcessQueueRequest) -> ProcessQueueResponse:
    ctx = request_context(request)
    source = services.source(payload.class_name)
    indexer = services.indexer_for(payload.index_name)
    batches = indexer.process_queue(source, inline=payload.inline, limit=payload.limit)
    return ProcessQueueResponse(
        trace_id=ctx["trace_id"],
        request_id=ctx["request_id"],
        index_name=indexer.index.name,
        batches=batches,
        queue_length=indexer.reindex_queue.length(),
    )
