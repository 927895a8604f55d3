import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx

from bulk_indexer.config import Settings
from bulk_indexer.errors import BulkRequestError, TransientClientError
from bulk_indexer.records import Indexable

logger = logging.getLogger(__name__)

TRANSIENT_STATUSES = {429, 502, 503, 504}


def is_transient_status(status: Optional[int]) -> bool:
    return status is not None and (status in TRANSIENT_STATUSES or status >= 500)


class OpenSearchClient:
    def __init__(self, settings: Settings, transport: Optional[httpx.BaseTransport] = None) -> None:
        self.base_url = settings.os_url.rstrip("/")
        self.timeout_sec = settings.timeout_sec
        self._http = httpx.Client(base_url=self.base_url, timeout=self.timeout_sec, transport=transport)

    def close(self) -> None:
        self._http.close()

    def request(
        self,
        method: str,
        path: str,
        body: Optional[Any] = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            response = self._http.request(method, path, json=body, content=content, headers=headers)
        except httpx.TransportError as exc:
            raise TransientClientError(f"OpenSearch request failed: {exc}") from exc
        if is_transient_status(response.status_code):
            raise TransientClientError(
                f"OpenSearch request failed (HTTP {response.status_code}): {response.text}",
                status_code=response.status_code,
            )
        return response

    def bulk(self, lines: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
        payload = "\n".join(json.dumps(line, ensure_ascii=False) for line in lines) + "\n"
        response = self.request(
            "POST",
            "/_bulk",
            content=payload.encode("utf-8"),
            headers={"Content-Type": "application/x-ndjson"},
        )
        if response.status_code >= 300:
            raise BulkRequestError(
                f"Bulk request failed (HTTP {response.status_code}): {response.text}",
                status_code=response.status_code,
            )
        result = response.json()
        if result.get("errors"):
            raise_item_errors(result.get("items", []))
        return result

    def count(self, index_name: str) -> int:
        response = self.request("GET", f"/{index_name}/_count")
        if response.status_code == 404:
            return 0
        if response.status_code >= 300:
            raise BulkRequestError(f"Count failed (HTTP {response.status_code}): {response.text}", status_code=response.status_code)
        return int(response.json().get("count", 0))


def raise_item_errors(items: List[Dict[str, Any]]) -> None:
    failures = []
    for item in items:
        for action in item.values():
            if isinstance(action, dict) and action.get("error"):
                failures.append(action)
    if not failures:
        return
    first = failures[0]
    error_info = first.get("error")
    reason = error_info.get("reason") if isinstance(error_info, dict) else str(error_info)
    message = f"{len(failures)} bulk item(s) failed; first error: {reason}"
    detail = {"first_error": first}
    if all(is_transient_status(failure.get("status")) for failure in failures):
        raise TransientClientError(message, status_code=first.get("status"), detail=detail)
    raise BulkRequestError(message, status_code=first.get("status"), detail=detail)


class SearchIndex:
    """One named index on the cluster, addressed through the bulk API."""

    def __init__(self, client: OpenSearchClient, name: str) -> None:
        self.client = client
        self.name = name

    def _meta(self, record: Indexable) -> Dict[str, Any]:
        meta: Dict[str, Any] = {"_index": self.name, "_id": str(record.id)}
        routing = record.search_routing()
        if routing is not None:
            meta["routing"] = routing
        return meta

    def bulk_index(self, records: Iterable[Indexable]) -> Dict[str, Any]:
        lines: List[Dict[str, Any]] = []
        for record in records:
            lines.append({"index": self._meta(record)})
            lines.append(record.search_data())
        logger.debug("[bulk] index=%s action=index docs=%s", self.name, len(lines) // 2)
        return self.client.bulk(lines)

    def bulk_update(self, records: Iterable[Indexable], method_name: str) -> Dict[str, Any]:
        lines: List[Dict[str, Any]] = []
        for record in records:
            partial = getattr(record, method_name)
            lines.append({"update": self._meta(record)})
            lines.append({"doc": partial()})
        logger.debug("[bulk] index=%s action=update method=%s docs=%s", self.name, method_name, len(lines) // 2)
        return self.client.bulk(lines)

    def bulk_delete(self, records: Iterable[Indexable]) -> Dict[str, Any]:
        lines = [{"delete": self._meta(record)} for record in records]
        logger.debug("[bulk] index=%s action=delete docs=%s", self.name, len(lines))
        return self.client.bulk(lines)

    def total_docs(self) -> int:
        return self.client.count(self.name)
