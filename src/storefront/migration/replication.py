"""
Background replication of writes to the secondary store.

Each secondary write runs as its own ``asyncio`` task that the request path
never awaits. Tasks are held in a set until they finish so they cannot be
garbage collected mid-flight. A failed task wraps its exception in
``ReplicationError`` and puts it on a queue; a single consumer task drains
the queue into the ``ErrorLog``. No failure escapes as an unhandled task
exception.

There is no retry. A write that fails stays failed until the records are
repaired out of band.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from storefront.exceptions import ReplicationError
from storefront.migration.error_log import ErrorLog
from storefront.observability import (
    ATTR_ERROR_TYPE,
    ATTR_OPERATION,
    ATTR_STORE_ROLE,
    Tracer,
    create_tracer,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Failure:
    operation: str
    args: Any
    error: ReplicationError


class Replicator:
    """
    Runs secondary writes in the background and records their failures.

    Args:
        error_log: Destination for replication failures
        secondary_name: Store name used in log messages and spans
        tracer: Optional custom Tracer instance
        enable_tracing: If True and OpenTelemetry is available, emit traces

    Example:
        >>> replicator = Replicator(error_log, secondary_name="wide_column")
        >>> replicator.submit("create", lambda: secondary.create(product), {"data": product})
        >>> await replicator.drain()
    """

    def __init__(
        self,
        error_log: ErrorLog,
        *,
        secondary_name: str = "secondary",
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._error_log = error_log
        self._secondary_name = secondary_name
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._tasks: set[asyncio.Task[None]] = set()
        self._failures: asyncio.Queue[_Failure] | None = None
        self._consumer: asyncio.Task[None] | None = None

    @property
    def pending(self) -> int:
        """Number of secondary writes still in flight."""
        return len(self._tasks)

    def submit(
        self,
        operation: str,
        call: Callable[[], Awaitable[Any]],
        args: Any = None,
    ) -> asyncio.Task[None]:
        """
        Start a secondary write without waiting for it.

        Must be called from a running event loop.

        Args:
            operation: Repository operation name, recorded on failure
            call: Zero-argument coroutine factory performing the write
            args: Call arguments, recorded on failure

        Returns:
            The background task
        """
        failures = self._ensure_consumer()
        task = asyncio.get_running_loop().create_task(
            self._replicate(operation, call, args, failures),
            name=f"replicate-{self._secondary_name}-{operation}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _ensure_consumer(self) -> asyncio.Queue[_Failure]:
        # the queue belongs to the loop that runs its consumer
        if self._failures is None or self._consumer is None or self._consumer.done():
            self._failures = asyncio.Queue()
            self._consumer = asyncio.get_running_loop().create_task(
                self._consume(self._failures), name="replication-error-consumer"
            )
        return self._failures

    async def _replicate(
        self,
        operation: str,
        call: Callable[[], Awaitable[Any]],
        args: Any,
        failures: asyncio.Queue[_Failure],
    ) -> None:
        with self._tracer.span(
            f"storefront.replication.{operation}",
            {ATTR_OPERATION: operation, ATTR_STORE_ROLE: self._secondary_name},
        ) as span:
            try:
                await call()
            except Exception as e:
                if span:
                    span.set_attribute(ATTR_ERROR_TYPE, type(e).__name__)
                error = ReplicationError(operation, e)
                error.__cause__ = e
                await failures.put(_Failure(operation, args, error))
                return
        logger.debug("Replicated %s to %s store", operation, self._secondary_name)

    async def _consume(self, failures: asyncio.Queue[_Failure]) -> None:
        while True:
            failure = await failures.get()
            try:
                self._error_log.log(
                    f"Replication of {failure.operation} to {self._secondary_name} store failed",
                    failure.operation,
                    failure.args,
                    failure.error,
                )
            finally:
                failures.task_done()

    async def drain(self) -> None:
        """Wait until every submitted write has finished and its failure is logged."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        consumer_running = self._consumer is not None and not self._consumer.done()
        if self._failures is not None and consumer_running:
            await self._failures.join()

    async def close(self) -> None:
        """Drain outstanding writes, then stop the failure consumer."""
        await self.drain()
        if self._consumer is not None:
            self._consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer
            self._consumer = None
            self._failures = None


__all__ = ["Replicator"]
