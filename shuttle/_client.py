from __future__ import annotations

import functools
import logging
import sys
import types
import typing as tp

import anyio
import httpx
from anyio.abc import TaskGroup

from ._cache import CacheController
from ._config import RequestConfig, SingleType, parse_cache, parse_retry, parse_single
from ._frequency import FrequencyGuard
from ._handles import RequestHandle
from ._keys import KeyRegistry
from ._pipeline import ParallelPipeline
from ._retry import RetryController
from ._single import SingleFlightController
from ._storages import CacheStore
from ._transports import CACHE_EXTENSION, AsyncCacheTransport, CacheDirective, translate_error, validate_status
from ._utils import BaseClock, Clock, join_url, to_list

if sys.version_info < (3, 11):  # pragma: no cover
    from exceptiongroup import BaseExceptionGroup

if tp.TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self

logger = logging.getLogger("shuttle.client")

__all__ = ("AsyncRequestClient",)

DEFAULT_MAXIMUM = 5
DEFAULT_REQUEST_LIMIT = 50

# Options that only make sense for the default transport.
TRANSPORT_OPTIONS = ("verify", "cert", "http1", "http2", "limits")


def normalize_maximum(value: tp.Any) -> int:
    try:
        maximum = int(value)
    except (TypeError, ValueError):
        return DEFAULT_MAXIMUM
    if maximum == 0:
        return DEFAULT_MAXIMUM
    return max(1, maximum)


class AsyncRequestClient:
    """
    Orchestrates calls over an HTTPX transport.

    Every call goes through the frequency guard, the single-flight controller,
    the concurrency pipeline and the retry controller. ``GET`` calls may be served
    from the in-memory cache.

    The client must be opened with ``async with`` before any call is made. Leaving
    the block waits for the outstanding calls, or cancels them if the block raised.

    :param base_url: Base URL of every relative call
    :type base_url: str
    :param maximum: How many calls may be in flight at once, defaults to 5
    :type maximum: int
    :param request_limit: Calls allowed per path per second, zero or less disables the check, defaults to 50
    :type request_limit: int
    :param domains: Fallback base URLs rotated through on retries, defaults to None
    :type domains: tp.Optional[tp.Sequence[str]]
    :param transport: Transport performing the HTTP exchanges, defaults to ``httpx.AsyncHTTPTransport``
    :type transport: tp.Optional[httpx.AsyncBaseTransport]
    :param store: Cache store, defaults to a new in-memory store
    :type store: tp.Optional[CacheStore]
    :param clock: Wall clock used by the cache and the frequency guard
    :type clock: tp.Optional[BaseClock]

    Other keyword arguments are passed to ``httpx.AsyncClient``.
    """

    Single = SingleType

    def __init__(
        self,
        base_url: str = "",
        *,
        maximum: int = DEFAULT_MAXIMUM,
        request_limit: int = DEFAULT_REQUEST_LIMIT,
        domains: tp.Optional[tp.Union[str, tp.Sequence[str]]] = None,
        transport: tp.Optional[httpx.AsyncBaseTransport] = None,
        store: tp.Optional[CacheStore] = None,
        clock: tp.Optional[BaseClock] = None,
        **kwargs: tp.Any,
    ) -> None:
        if transport is None:
            transport = httpx.AsyncHTTPTransport(
                **{name: kwargs.pop(name) for name in TRANSPORT_OPTIONS if name in kwargs},
                trust_env=kwargs.get("trust_env", True),
            )

        clock = clock if clock is not None else Clock()
        try:
            limit = int(request_limit)
        except (TypeError, ValueError):
            limit = 0

        self._domains = to_list(domains) or None
        self._frequency = FrequencyGuard(maximum=limit, clock=clock)
        self._cache_transport = AsyncCacheTransport(transport, controller=CacheController(store, clock))
        self._client = httpx.AsyncClient(base_url=base_url, transport=self._cache_transport, **kwargs)
        self._keys = KeyRegistry(str(self._client.base_url))
        self._pipeline = ParallelPipeline(normalize_maximum(maximum))
        self._single = SingleFlightController(self._pipeline)
        self._retry = RetryController()
        self._task_group: tp.Optional[TaskGroup] = None

    @property
    def domains(self) -> tp.Optional[tp.List[str]]:
        """Registered fallback domains."""
        return list(self._domains) if self._domains is not None else None

    @property
    def base_url(self) -> httpx.URL:
        return self._client.base_url

    @property
    def store(self) -> CacheStore:
        return self._cache_transport.controller.store

    @property
    def event_hooks(self) -> tp.Dict[str, tp.List[tp.Callable[..., tp.Any]]]:
        """
        Request and response hooks, run in registration order on both legs.

        The cache layer sits beneath every hook, so hooks also see cached responses.
        """
        return self._client.event_hooks

    @event_hooks.setter
    def event_hooks(self, event_hooks: tp.Dict[str, tp.List[tp.Callable[..., tp.Any]]]) -> None:
        self._client.event_hooks = event_hooks

    @property
    def pipeline(self) -> ParallelPipeline:
        return self._pipeline

    @property
    def single(self) -> SingleFlightController:
        return self._single

    @property
    def is_open(self) -> bool:
        return self._task_group is not None

    def maximum(self, maximum: int) -> None:
        """Changes how many calls may be in flight at once."""
        self._pipeline.change_max_concurrency(normalize_maximum(maximum))

    def build_url(self, url: str, *, params: tp.Any = None) -> httpx.URL:
        """Resolves ``url`` and ``params`` against the base URL, as a call would send them."""
        return self._client.build_request("GET", url, params=params).url

    def request(
        self,
        method: str,
        url: str,
        *,
        params: tp.Any = None,
        headers: tp.Any = None,
        cookies: tp.Any = None,
        content: tp.Any = None,
        data: tp.Any = None,
        files: tp.Any = None,
        json: tp.Any = None,
        timeout: tp.Any = httpx.USE_CLIENT_DEFAULT,
        extensions: tp.Optional[tp.Dict[str, tp.Any]] = None,
        single: tp.Any = None,
        cache: tp.Any = None,
        retry: tp.Any = None,
    ) -> RequestHandle[httpx.Response]:
        """
        Schedules a call and returns its handle.

        :param single: ``False`` to disable single-flight, or a ``SingleType``, defaults to the queue policy
        :param cache: ``True`` or ``{"time": milliseconds}`` to cache a ``GET`` response
        :param retry: ``True`` or a mapping of ``RetryOptions`` fields to retry failed attempts
        :raises ConfigurationError: if the call options are invalid
        :raises FrequencyExceeded: if the path was called too often
        """
        if self._task_group is None:
            raise RuntimeError("The client is not open, use `async with` before making calls.")

        config = RequestConfig(
            method=method,
            url=url,
            params=params,
            headers=headers,
            cookies=cookies,
            content=content,
            data=data,
            files=files,
            json=json,
            timeout=timeout,
            extensions=extensions,
            single=parse_single(single),
            cache=parse_cache(cache),
            retry=parse_retry(retry, self._domains),
        )

        self._frequency.check(url)

        key = self._keys.key_for(config)
        logger.debug(f"Dispatching {key}.")
        return self._single.request(key, config.single, functools.partial(self._send, config))

    def get(self, url: str, **kwargs: tp.Any) -> RequestHandle[httpx.Response]:
        return self.request("GET", url, **kwargs)

    def delete(self, url: str, **kwargs: tp.Any) -> RequestHandle[httpx.Response]:
        return self.request("DELETE", url, **kwargs)

    def head(self, url: str, **kwargs: tp.Any) -> RequestHandle[httpx.Response]:
        return self.request("HEAD", url, **kwargs)

    def options(self, url: str, **kwargs: tp.Any) -> RequestHandle[httpx.Response]:
        return self.request("OPTIONS", url, **kwargs)

    def post(self, url: str, data: tp.Any = None, **kwargs: tp.Any) -> RequestHandle[httpx.Response]:
        return self.request("POST", url, data=data, **kwargs)

    def put(self, url: str, data: tp.Any = None, **kwargs: tp.Any) -> RequestHandle[httpx.Response]:
        return self.request("PUT", url, data=data, **kwargs)

    def patch(self, url: str, data: tp.Any = None, **kwargs: tp.Any) -> RequestHandle[httpx.Response]:
        return self.request("PATCH", url, data=data, **kwargs)

    def _send(self, config: RequestConfig) -> RequestHandle[httpx.Response]:
        invoke = functools.partial(self._invoke, config)
        task = self._pipeline.add(lambda: self._retry.execute(invoke, config.retry))
        return RequestHandle(task.deferred, task.cancel)

    async def _invoke(self, config: RequestConfig, base_url: tp.Optional[str] = None) -> httpx.Response:
        extensions = dict(config.extensions or {})
        if config.cache is not None:
            extensions[CACHE_EXTENSION] = CacheDirective(self._keys.key_for(config), config.cache)

        request = self._client.build_request(
            config.method,
            join_url(base_url, config.url) if base_url else config.url,
            params=config.params,
            headers=config.headers,
            cookies=config.cookies,
            content=config.content,
            data=config.data,
            files=config.files,
            json=config.json,
            timeout=config.timeout,
            extensions=extensions,
        )

        try:
            response = await self._client.send(request)
        except httpx.TransportError as exc:
            raise translate_error(exc) from exc

        return validate_status(response)

    async def __aenter__(self) -> "Self":
        task_group = anyio.create_task_group()
        await task_group.__aenter__()
        try:
            await self._client.__aenter__()
        except BaseException:
            await task_group.__aexit__(None, None, None)
            raise

        self._task_group = task_group
        self._pipeline.task_group = task_group
        return self

    async def __aexit__(
        self,
        exc_type: tp.Optional[tp.Type[BaseException]] = None,
        exc_value: tp.Optional[BaseException] = None,
        traceback: tp.Optional[types.TracebackType] = None,
    ) -> None:
        task_group, self._task_group = self._task_group, None
        try:
            if task_group is not None:
                try:
                    await task_group.__aexit__(exc_type, exc_value, traceback)
                except BaseExceptionGroup as group:
                    # The block's own exception is re-raised as is once this method returns.
                    if exc_value is None or list(group.exceptions) != [exc_value]:
                        raise
        finally:
            self._pipeline.task_group = None
            await self._client.__aexit__(exc_type, exc_value, traceback)
