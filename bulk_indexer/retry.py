import logging
from typing import Any, Callable, TypeVar

from bulk_indexer.errors import TransientClientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRIES = 1


def with_retries(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run one bulk call, retrying once on a transient client error."""
    retries = 0
    while True:
        try:
            return fn(*args, **kwargs)
        except TransientClientError as exc:
            if retries >= MAX_RETRIES:
                raise
            retries += 1
            logger.warning("[bulk] transient failure, retrying (attempt %s/%s): %s", retries, MAX_RETRIES, exc)
