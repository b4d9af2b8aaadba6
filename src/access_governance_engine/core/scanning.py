"""Failure-isolated, bounded-concurrency sweep over a working set of entities.

Each entity is scanned independently; one entity's exception is logged and
recorded in ScanOutcome.failures without aborting the others. Results arrive
in completion order, so consumers must sort them (detectors sort by score).
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from access_governance_engine.observability import get_logger

logger = get_logger(__name__)

E = TypeVar("E")
T = TypeVar("T")


@dataclass
class ScanOutcome(Generic[T]):
    """Aggregate result of a sweep.

    Attributes:
        results: Non-null results, in completion order.
        failures: Entity key → error message for entities whose scan raised.
        scanned: Number of entities attempted.
    """

    results: list[T] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    scanned: int = 0


async def scan_isolated(
    entities: Sequence[E],
    scan: Callable[[E], Awaitable[T | None]],
    key: Callable[[E], str],
    concurrency: int,
    operation: str,
) -> ScanOutcome[T]:
    """Scan every entity with at most `concurrency` scans in flight.

    Args:
        entities: The working set.
        scan: Coroutine function returning a result or None for "nothing found".
        key: Derives the identifier logged and recorded for an entity.
        concurrency: Worker pool size (values below 1 are treated as 1).
        operation: Operation name for log context.

    Returns:
        ScanOutcome with results and per-entity failures.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))
    outcome: ScanOutcome[T] = ScanOutcome(scanned=len(entities))

    async def _scan_one(entity: E) -> None:
        entity_key = key(entity)
        async with semaphore:
            try:
                result = await scan(entity)
            except Exception as exc:
                logger.error(
                    "Entity scan failed",
                    operation=operation,
                    entity_id=entity_key,
                    error=str(exc),
                )
                outcome.failures[entity_key] = str(exc) or type(exc).__name__
                return
        if result is not None:
            outcome.results.append(result)

    await asyncio.gather(*(_scan_one(entity) for entity in entities))
    return outcome
