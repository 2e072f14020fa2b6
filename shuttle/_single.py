from __future__ import annotations

import functools
import logging
import typing as tp

from ._config import SingleOptions, SingleType
from ._exceptions import CanceledError, ConfigurationError
from ._handles import Deferred, RequestHandle
from ._pipeline import ParallelPipeline

logger = logging.getLogger("shuttle.single")

T = tp.TypeVar("T")

__all__ = ("SingleFlightController", "SUPERSEDED_MESSAGE", "PREVIOUS_NOT_COMPLETED_MESSAGE")

SUPERSEDED_MESSAGE = "This request has been canceled because the next request has come in."
PREVIOUS_NOT_COMPLETED_MESSAGE = "This request has been canceled because the previous request has not been completed."

Send = tp.Callable[[], RequestHandle[T]]
"""Dispatches the call through the concurrency pipeline and the retry controller."""


class SingleFlightController:
    """
    Deduplicates concurrent calls sharing a canonical key.

    - ``QUEUE`` runs the calls for one key one at a time, in arrival order.
    - ``NEXT`` lets the latest call win and aborts the one in flight.
    - ``PREV`` keeps the call in flight and rejects the newcomers.

    Per-key state only exists while the key has outstanding work.

    :param pipeline: The global pipeline, its task group also runs the per-key queues
    :type pipeline: ParallelPipeline
    """

    def __init__(self, pipeline: ParallelPipeline) -> None:
        self._pipeline = pipeline
        self._queues: tp.Dict[str, ParallelPipeline] = {}
        self._next: tp.Dict[str, tp.Callable[[], None]] = {}
        self._prev: tp.Set[str] = set()

    @property
    def queued_keys(self) -> tp.FrozenSet[str]:
        return frozenset(self._queues)

    @property
    def next_keys(self) -> tp.FrozenSet[str]:
        return frozenset(self._next)

    @property
    def prev_keys(self) -> tp.FrozenSet[str]:
        return frozenset(self._prev)

    def is_idle(self) -> bool:
        return not self._queues and not self._next and not self._prev

    def request(self, key: str, options: tp.Optional[SingleOptions], send: Send[T]) -> RequestHandle[T]:
        if options is None:
            return send()

        if options.type is SingleType.QUEUE:
            return self._queue(key, send)
        if options.type is SingleType.NEXT:
            return self._latest(key, send)
        if options.type is SingleType.PREV:
            return self._earliest(key, send)

        raise ConfigurationError(f"Unknown single type {options.type!r}")

    def _queue(self, key: str, send: Send[T]) -> RequestHandle[T]:
        queue = self._queues.get(key)
        if queue is None:
            queue = ParallelPipeline(1, self._pipeline.task_group)
            self._queues[key] = queue
            queue.on_empty(functools.partial(self._release_queue, key, queue))
            logger.debug(f"Created the queue for {key}.")

        dispatched: tp.List[RequestHandle[T]] = []

        async def work() -> T:
            handle = send()
            dispatched.append(handle)
            return await handle

        task = queue.add(work)
        if task.position > 0:
            logger.debug(f"Queued the call #{task.position} for {key}.")

        def abort() -> None:
            task.cancel()
            for handle in dispatched:
                handle.abort()

        return RequestHandle(task.deferred, abort)

    def _release_queue(self, key: str, queue: ParallelPipeline) -> None:
        if self._queues.get(key) is queue:
            del self._queues[key]
            logger.debug(f"Released the queue for {key}.")

    def _latest(self, key: str, send: Send[T]) -> RequestHandle[T]:
        previous = self._next.pop(key, None)
        if previous is not None:
            logger.debug(f"Superseding the call in flight for {key}.")
            previous()

        handle = send()
        superseded = False

        def supersede() -> None:
            nonlocal superseded
            superseded = True
            handle.abort()

        self._next[key] = supersede
        deferred: Deferred[T] = Deferred()

        def settle(result: Deferred[T]) -> None:
            if self._next.get(key) is supersede:
                del self._next[key]
            if superseded:
                deferred.set_exception(CanceledError(SUPERSEDED_MESSAGE))
            else:
                deferred.settle_from(result)

        handle.add_done_callback(settle)
        return RequestHandle(deferred, handle.abort)

    def _earliest(self, key: str, send: Send[T]) -> RequestHandle[T]:
        if key in self._prev:
            logger.debug(f"Rejecting the call for {key}, the previous one has not completed.")
            return RequestHandle.rejected(CanceledError(PREVIOUS_NOT_COMPLETED_MESSAGE))

        self._prev.add(key)
        try:
            handle = send()
        except BaseException:
            self._prev.discard(key)
            raise
        handle.add_done_callback(lambda _: self._prev.discard(key))
        return handle
