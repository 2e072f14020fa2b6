from __future__ import annotations

import typing as tp

import anyio

T = tp.TypeVar("T")

__all__ = ("Deferred", "RequestHandle")


class Deferred(tp.Generic[T]):
    """
    A value that is settled exactly once, either with a result or an exception.

    Later settlements are ignored. Done callbacks run synchronously, in
    registration order, at the moment of settlement.
    """

    def __init__(self) -> None:
        self._event = anyio.Event()
        self._settled = False
        self._result: tp.Optional[T] = None
        self._exception: tp.Optional[BaseException] = None
        self._callbacks: tp.List[tp.Callable[["Deferred[T]"], None]] = []

    def done(self) -> bool:
        return self._settled

    def set_result(self, value: T) -> bool:
        if self._settled:
            return False
        self._result = value
        self._settle()
        return True

    def set_exception(self, exception: BaseException) -> bool:
        if self._settled:
            return False
        self._exception = exception
        self._settle()
        return True

    def settle_from(self, other: "Deferred[T]") -> bool:
        exception = other.exception()
        if exception is not None:
            return self.set_exception(exception)
        return self.set_result(tp.cast(T, other._result))

    def _settle(self) -> None:
        self._settled = True
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(self)

    def add_done_callback(self, callback: tp.Callable[["Deferred[T]"], None]) -> None:
        if self._settled:
            callback(self)
        else:
            self._callbacks.append(callback)

    def exception(self) -> tp.Optional[BaseException]:
        if not self._settled:
            raise RuntimeError("Deferred value is not settled yet")
        return self._exception

    def result(self) -> T:
        if self.exception() is not None:
            raise tp.cast(BaseException, self._exception)
        return tp.cast(T, self._result)

    async def wait(self) -> T:
        await self._event.wait()
        return self.result()

    def __await__(self) -> tp.Generator[tp.Any, None, T]:
        return self.wait().__await__()


class RequestHandle(tp.Generic[T]):
    """
    The awaitable returned by every call function.

    ``abort()`` (alias ``cancel()``) is idempotent and does nothing once the
    call has settled.

    Example:
        ```
        handle = client.get("/users")
        handle.abort()
        await handle  # raises CanceledError
        ```
    """

    def __init__(self, deferred: Deferred[T], on_abort: tp.Optional[tp.Callable[[], None]] = None) -> None:
        self._deferred = deferred
        self._on_abort = on_abort
        self._aborted = False

    @classmethod
    def rejected(cls, exception: BaseException) -> "RequestHandle[T]":
        deferred: Deferred[T] = Deferred()
        deferred.set_exception(exception)
        return cls(deferred)

    @property
    def deferred(self) -> Deferred[T]:
        return self._deferred

    @property
    def aborted(self) -> bool:
        return self._aborted

    def abort(self) -> None:
        if self._aborted or self._deferred.done():
            return
        self._aborted = True
        if self._on_abort is not None:
            self._on_abort()

    def cancel(self) -> None:
        self.abort()

    def done(self) -> bool:
        return self._deferred.done()

    def add_done_callback(self, callback: tp.Callable[[Deferred[T]], None]) -> None:
        self._deferred.add_done_callback(callback)

    def exception(self) -> tp.Optional[BaseException]:
        return self._deferred.exception()

    def result(self) -> T:
        return self._deferred.result()

    def __await__(self) -> tp.Generator[tp.Any, None, T]:
        return self._deferred.wait().__await__()
