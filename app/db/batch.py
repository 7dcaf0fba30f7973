"""
Parallel read batches.

A read-model endpoint describes its queries as a mapping of operation name
to BatchQuery and runs them together. Each query gets its own session
(an AsyncSession must not be shared between concurrent tasks). The batch is
all-or-nothing: the first failure is raised as QueryError naming the
operation, and no partial result is returned.
"""

import asyncio
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Executable, Result
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from app.exceptions import QueryError
from app.observability.metrics import metrics
from app.observability.tracing import read_batch_span

logger = get_logger(__name__)


@dataclass(frozen=True)
class BatchQuery:
    """A statement plus how to read its result."""

    statement: Executable
    fetch: Callable[[Result[Any]], Any]


def scalar(statement: Executable) -> BatchQuery:
    """Single value (COUNT, SUM...)."""
    return BatchQuery(statement, lambda result: result.scalar_one())


def scalar_or_none(statement: Executable) -> BatchQuery:
    return BatchQuery(statement, lambda result: result.scalar_one_or_none())


def one(statement: Executable) -> BatchQuery:
    """Exactly one row (multi-column aggregate)."""
    return BatchQuery(statement, lambda result: result.one())


def first(statement: Executable) -> BatchQuery:
    return BatchQuery(statement, lambda result: result.first())


def rows(statement: Executable) -> BatchQuery:
    return BatchQuery(statement, lambda result: result.all())


def entities(statement: Executable) -> BatchQuery:
    """First column of every row, e.g. ORM instances from select(Model)."""
    return BatchQuery(statement, lambda result: result.scalars().all())


async def run_batch(
    session_factory: async_sessionmaker[AsyncSession],
    queries: Mapping[str, BatchQuery],
) -> dict[str, Any]:
    """
    Execute every query concurrently and return results keyed by name.

    Raises:
        QueryError: the first query that failed, with its operation name
    """

    async def _run(name: str, query: BatchQuery) -> tuple[str, Any]:
        start = time.perf_counter()
        try:
            async with session_factory() as session:
                result = await session.execute(query.statement)
                value = query.fetch(result)
        except Exception as e:
            metrics.record_db_query(name, False, time.perf_counter() - start)
            metrics.record_error(type(e).__name__, name)
            raise QueryError(name, e) from e

        metrics.record_db_query(name, True, time.perf_counter() - start)
        return name, value

    batch_start = time.perf_counter()
    with read_batch_span(list(queries)):
        try:
            results = await asyncio.gather(*(_run(name, q) for name, q in queries.items()))
        except QueryError as e:
            logger.warning("read_batch_failed", operation=e.operation, error=str(e.cause))
            raise

    duration = time.perf_counter() - batch_start
    metrics.db_batch_duration_seconds.observe(duration)
    logger.debug("read_batch_completed", query_count=len(queries), duration_seconds=duration)
    return dict(results)
