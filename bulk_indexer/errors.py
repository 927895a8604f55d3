from typing import Any, Dict, Optional


class BulkIndexError(Exception):
    def __init__(self, message: str, retryable: bool = False, stage: Optional[str] = None, detail: Any = None) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.stage = stage
        self.detail = detail


class TransientClientError(BulkIndexError):
    """Network or 5xx-class failure of a bulk call. Retried once."""

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Any = None) -> None:
        super().__init__(message, retryable=True, stage="BULK", detail=detail)
        self.status_code = status_code


class BulkRequestError(BulkIndexError):
    def __init__(self, message: str, status_code: Optional[int] = None, detail: Any = None) -> None:
        super().__init__(message, retryable=False, stage="BULK", detail=detail)
        self.status_code = status_code


class InvalidConfigurationError(BulkIndexError):
    def __init__(self, message: str, detail: Any = None) -> None:
        super().__init__(message, retryable=False, stage="CONFIG", detail=detail)


class SourceQueryError(BulkIndexError):
    def __init__(self, message: str, detail: Any = None) -> None:
        super().__init__(message, retryable=False, stage="SOURCE", detail=detail)


def to_error_payload(exc: Exception) -> Dict[str, Any]:
    if isinstance(exc, BulkIndexError):
        return {
            "message": str(exc),
            "retryable": exc.retryable,
            "stage": exc.stage,
            "detail": exc.detail,
        }
    return {"message": str(exc), "retryable": False}
