import math
from dataclasses import dataclass
from typing import Iterable, Iterator, List, TypeVar

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 1000


@dataclass(frozen=True)
class IdRange:
    index: int
    min_id: int
    max_id: int

    @property
    def batch_id(self) -> int:
        return self.index + 1


def _check_batch_size(batch_size: int) -> None:
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")


def partition_by_size(items: Iterable[T], batch_size: int = DEFAULT_BATCH_SIZE) -> Iterator[List[T]]:
    _check_batch_size(batch_size)
    batch: List[T] = []
    for item in items:
        batch.append(item)
        if len(batch) == batch_size:
            yield batch
            batch = []
    if batch:
        yield batch


def batch_count(min_id: int, max_id: int, batch_size: int = DEFAULT_BATCH_SIZE) -> int:
    _check_batch_size(batch_size)
    if max_id < min_id:
        return 0
    return math.ceil((max_id - min_id + 1) / batch_size)


def partition_by_range(min_id: int, max_id: int, batch_size: int = DEFAULT_BATCH_SIZE) -> Iterator[IdRange]:
    # the last range may run past max_id; rows are re-resolved by range later
    for i in range(batch_count(min_id, max_id, batch_size)):
        lo = min_id + i * batch_size
        yield IdRange(index=i, min_id=lo, max_id=lo + batch_size - 1)
