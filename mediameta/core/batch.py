from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ItemFailure:
    item: Any
    error: Exception

    def __str__(self) -> str:
        return f"{self.item}: {self.error}"


@dataclass
class BatchResult(Generic[T]):
    """ Per-item outcome of a batch operation. Items that succeeded stay done when others fail. """
    succeeded: list[T] = field(default_factory=list)
    failed: list[ItemFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        return f"{len(self.succeeded)} succeeded, {len(self.failed)} failed"


def run(items: Iterable[Any], fn: Callable[[Any], T], *, label: str = "item") -> BatchResult[T]:
    """ Apply fn to each item in order, collecting results and exceptions. """
    result: BatchResult[T] = BatchResult()
    for item in items:
        try:
            result.succeeded.append(fn(item))
        except Exception as e:
            log.error("Batch %s %r failed: %s", label, item, e)
            result.failed.append(ItemFailure(item, e))
    return result
