"""Shared batch execution for multi-item operations."""

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

import structlog

from taskflow.errors import TaskflowError, ValidationError

logger = structlog.get_logger()

T = TypeVar("T")


class BatchMode(str, Enum):
    """How a batch treats per-item failures."""

    # Each item commits on its own; failures are recorded and the rest continue
    ISOLATED = "isolated"
    # Every item is validated before any is applied; one failure rejects the batch
    ALL_OR_NOTHING = "all_or_nothing"


class Outcome(str, Enum):
    SUCCESS = "success"
    AUTO_REVIEWED = "auto_reviewed"


@dataclass
class Succeeded(Generic[T]):
    item: T
    outcome: Outcome = Outcome.SUCCESS


@dataclass
class Failed(Generic[T]):
    item: T
    reason: str
    message: str


@dataclass
class BatchResult(Generic[T]):
    """Per-item outcomes, in request order. Each item appears exactly once."""

    entries: list[Succeeded[T] | Failed[T]] = field(default_factory=list)
    extra: dict = field(default_factory=dict)

    @property
    def success(self) -> list[T]:
        return [
            e.item
            for e in self.entries
            if isinstance(e, Succeeded) and e.outcome is Outcome.SUCCESS
        ]

    @property
    def auto_reviewed(self) -> list[T]:
        return [
            e.item
            for e in self.entries
            if isinstance(e, Succeeded) and e.outcome is Outcome.AUTO_REVIEWED
        ]

    @property
    def failed(self) -> list[Failed[T]]:
        return [e for e in self.entries if isinstance(e, Failed)]


def dedupe(items: Iterable[T]) -> list[T]:
    """Drop repeated items, keeping first occurrence order."""
    seen: set = set()
    unique = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        unique.append(item)
    return unique


class BatchCoordinator(Generic[T]):
    """Runs an operation over a list of items under a ``BatchMode``.

    Only ``TaskflowError`` is treated as a per-item failure. Any other
    exception propagates and aborts the batch.
    """

    def __init__(self, mode: BatchMode, max_items: int | None = None, name: str = "batch"):
        self.mode = mode
        self.max_items = max_items
        self.name = name

    def _prepare(self, items: list[T]) -> list[T]:
        if not items:
            raise ValidationError("At least one item is required")
        unique = dedupe(items)
        if self.max_items is not None and len(unique) > self.max_items:
            raise ValidationError(f"At most {self.max_items} items per request")
        return unique

    async def run(
        self,
        items: list[T],
        apply: Callable[[T], Awaitable[Outcome | None]],
        validate: Callable[[T], Awaitable[None]] | None = None,
    ) -> BatchResult[T]:
        unique = self._prepare(items)
        result: BatchResult[T] = BatchResult()

        if self.mode is BatchMode.ALL_OR_NOTHING:
            if validate is not None:
                for item in unique:
                    await validate(item)
            for item in unique:
                outcome = await apply(item)
                result.entries.append(Succeeded(item, outcome or Outcome.SUCCESS))
        else:
            for item in unique:
                try:
                    if validate is not None:
                        await validate(item)
                    outcome = await apply(item)
                except TaskflowError as e:
                    logger.info(
                        "batch_item_failed",
                        batch=self.name,
                        item=str(item),
                        reason=e.code,
                    )
                    result.entries.append(Failed(item, e.code, e.message))
                else:
                    result.entries.append(Succeeded(item, outcome or Outcome.SUCCESS))

        logger.info(
            "batch_completed",
            batch=self.name,
            mode=self.mode.value,
            total=len(unique),
            failed=len(result.failed),
        )
        return result
