from __future__ import annotations

import enum
import itertools
import logging
import typing as tp
from collections import deque

import anyio
from anyio.abc import TaskGroup

from ._exceptions import CanceledError, ConfigurationError
from ._handles import Deferred

logger = logging.getLogger("shuttle.pipeline")

T = tp.TypeVar("T")

__all__ = ("ParallelPipeline", "PipelineTask", "TaskState")

SHUTDOWN_MESSAGE = "The task was canceled because the pipeline was shut down."


class TaskState(enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    FINISHED = "finished"


class PipelineTask(tp.Generic[T]):
    """
    A unit of work owned by a :class:`ParallelPipeline`.

    Awaiting the task returns the work's result or raises its exception.
    """

    def __init__(self, work: tp.Callable[[], tp.Awaitable[T]], pipeline: "ParallelPipeline", position: int) -> None:
        self.work = work
        self.position = position
        self.state = TaskState.PENDING
        self.deferred: Deferred[T] = Deferred()
        self.cancel_requested = False
        self._pipeline = pipeline
        self._scope = anyio.CancelScope()

    def cancel(self) -> None:
        """
        Cancels the task.

        A pending task is removed from the queue without ever running. A running
        task has its work cancelled and settles as :class:`CanceledError` once the
        work terminates. Finished tasks are left alone.
        """
        if self.cancel_requested or self.deferred.done():
            return
        self.cancel_requested = True
        self._pipeline._cancel(self)

    def done(self) -> bool:
        return self.deferred.done()

    def add_done_callback(self, callback: tp.Callable[[Deferred[T]], None]) -> None:
        self.deferred.add_done_callback(callback)

    def __await__(self) -> tp.Generator[tp.Any, None, T]:
        return self.deferred.wait().__await__()

    def __repr__(self) -> str:
        return f"<PipelineTask #{self.position} {self.state.value}>"


class ParallelPipeline:
    """
    Admission queue bounding how many units of work run at the same time.

    Units are admitted in submission order. When a running unit finishes, the
    oldest pending unit takes its place.

    :param max_concurrency: How many units may run simultaneously
    :type max_concurrency: int
    :param task_group: Task group the admitted units run in, can be bound later
    :type task_group: tp.Optional[TaskGroup]
    """

    def __init__(self, max_concurrency: int, task_group: tp.Optional[TaskGroup] = None) -> None:
        self._max_concurrency = self._validate(max_concurrency)
        self.task_group = task_group
        self._pending: tp.Deque[PipelineTask[tp.Any]] = deque()
        self._running = 0
        self._positions = itertools.count()
        self._empty_callbacks: tp.List[tp.Callable[[], None]] = []

    @staticmethod
    def _validate(max_concurrency: int) -> int:
        if not isinstance(max_concurrency, int) or isinstance(max_concurrency, bool) or max_concurrency < 1:
            raise ConfigurationError(f"Maximum concurrency must be an integer >= 1, got {max_concurrency!r}")
        return max_concurrency

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def running(self) -> int:
        return self._running

    def is_empty(self) -> bool:
        return not self._pending and self._running == 0

    def add(self, work: tp.Callable[[], tp.Awaitable[T]]) -> PipelineTask[T]:
        if self.task_group is None:
            raise RuntimeError("The pipeline is not bound to a task group")

        task: PipelineTask[T] = PipelineTask(work, self, next(self._positions))
        self._pending.append(task)
        self._admit()
        return task

    def change_max_concurrency(self, max_concurrency: int) -> None:
        """Changes the limit for future admissions. Running units are not affected."""
        self._max_concurrency = self._validate(max_concurrency)
        logger.debug(f"Changed the maximum concurrency to {max_concurrency}.")
        if self.task_group is not None:
            self._admit()

    def on_empty(self, callback: tp.Callable[[], None]) -> None:
        """Registers a callback fired every time no unit is pending or running."""
        self._empty_callbacks.append(callback)

    def _admit(self) -> None:
        task_group = self.task_group
        assert task_group is not None
        if task_group.cancel_scope.cancel_called:
            self._drain()
            return

        while self._pending and self._running < self._max_concurrency:
            task = self._pending.popleft()
            task.state = TaskState.RUNNING
            self._running += 1
            logger.debug(f"Admitted task #{task.position} (running={self._running}, pending={len(self._pending)}).")
            task_group.start_soon(self._run, task, task_group)

    def _drain(self) -> None:
        if self._pending:
            logger.debug(f"Dropping {len(self._pending)} pending tasks, the pipeline is shutting down.")
        while self._pending:
            task = self._pending.popleft()
            task.state = TaskState.FINISHED
            task.deferred.set_exception(CanceledError(SHUTDOWN_MESSAGE))

    def _cancel(self, task: PipelineTask[tp.Any]) -> None:
        if task.state is TaskState.PENDING:
            self._pending.remove(task)
            task.state = TaskState.FINISHED
            logger.debug(f"Removed task #{task.position} from the queue before admission.")
            task.deferred.set_exception(CanceledError("The task was canceled before it was started."))
            self._notify_if_empty()
        elif task.state is TaskState.RUNNING:
            logger.debug(f"Cancelling running task #{task.position}.")
            task._scope.cancel()

    async def _run(self, task: PipelineTask[tp.Any], task_group: TaskGroup) -> None:
        try:
            if task_group.cancel_scope.cancel_called:
                return
            if not task.cancel_requested:
                with task._scope:
                    result = await task.work()
            if task.cancel_requested:
                task.deferred.set_exception(CanceledError("The task was canceled while it was running."))
            else:
                task.deferred.set_result(result)
        except Exception as exc:
            if task.cancel_requested:
                task.deferred.set_exception(CanceledError("The task was canceled while it was running."))
            else:
                task.deferred.set_exception(exc)
        finally:
            # Only reached unsettled when the owning task group is being cancelled.
            task.deferred.set_exception(CanceledError(SHUTDOWN_MESSAGE))
            task.state = TaskState.FINISHED
            self._running -= 1
            self._admit()
            self._notify_if_empty()

    def _notify_if_empty(self) -> None:
        if self.is_empty():
            for callback in list(self._empty_callbacks):
                callback()
