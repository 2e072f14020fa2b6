from __future__ import annotations

import typing as tp
from dataclasses import dataclass

import anyio.lowlevel
import httpx

from ._cache import CacheController
from ._config import CacheOptions
from ._exceptions import BadRequestError, BadResponseError, ErrorCode, TransportError
from ._storages import CacheEntry

__all__ = ("AsyncCacheTransport", "CacheDirective", "translate_error", "validate_status", "CACHE_EXTENSION")

CACHE_EXTENSION = "shuttle_cache"


@dataclass(frozen=True)
class CacheDirective:
    """Per-request cache instructions, carried in ``request.extensions``."""

    key: str
    options: CacheOptions


def translate_error(exc: httpx.TransportError) -> TransportError:
    """Classifies an httpx transport failure into a :class:`TransportError`."""
    if isinstance(exc, httpx.TimeoutException):
        code = ErrorCode.TIMED_OUT
    elif isinstance(exc, httpx.ConnectError):
        code = ErrorCode.CONNECTION_REFUSED
    elif isinstance(exc, httpx.RemoteProtocolError):
        code = ErrorCode.CONNECTION_ABORTED
    elif isinstance(exc, httpx.NetworkError):
        code = ErrorCode.NETWORK_ERROR
    else:
        code = ErrorCode.UNKNOWN

    try:
        request: tp.Optional[httpx.Request] = exc.request
    except RuntimeError:
        request = None

    return TransportError(str(exc) or exc.__class__.__name__, code, request=request)


def validate_status(response: httpx.Response) -> httpx.Response:
    """
    Raises for 4xx and 5xx responses.

    :raises BadRequestError: for 4xx responses
    :raises BadResponseError: for 5xx responses
    """
    status = response.status_code
    if 400 <= status < 500:
        raise BadRequestError(f"Request failed with status code {status}", response)
    if 500 <= status < 600:
        raise BadResponseError(f"Request failed with status code {status}", response)
    return response


async def _read_raw(response: httpx.Response) -> tp.Tuple[tp.List[tp.Tuple[bytes, bytes]], bytes]:
    if not response.is_stream_consumed:
        content = b"".join([chunk async for chunk in response.aiter_raw()])
        return list(response.headers.raw), content

    # The body was already decoded, so it must not be decoded a second time on replay.
    headers = [
        (key, value)
        for key, value in response.headers.raw
        if key.lower() not in (b"content-encoding", b"content-length", b"transfer-encoding")
    ]
    headers.append((b"Content-Length", str(len(response.content)).encode("ascii")))
    return headers, response.content


class AsyncCacheTransport(httpx.AsyncBaseTransport):
    """
    An HTTPX transport that serves and stores responses for requests carrying a cache directive.

    Requests without the ``shuttle_cache`` extension pass straight through.

    :param transport: Transport that our class wraps in order to add the cache layer on top of
    :type transport: httpx.AsyncBaseTransport
    :param controller: Controller that decides about freshness and storing, defaults to None
    :type controller: tp.Optional[CacheController], optional
    """

    def __init__(self, transport: httpx.AsyncBaseTransport, controller: tp.Optional[CacheController] = None) -> None:
        self._transport = transport
        self.controller = controller if controller is not None else CacheController()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        directive = request.extensions.get(CACHE_EXTENSION)
        if not isinstance(directive, CacheDirective):
            return await self._transport.handle_async_request(request)

        entry = self.controller.lookup(directive.key, directive.options)
        if entry is not None:
            # Hits resolve on a fresh scheduling turn, like a real response would.
            await anyio.lowlevel.checkpoint()
            return entry.to_response()

        response = await self._transport.handle_async_request(request)
        if not 200 <= response.status_code < 300 or not directive.options.enabled:
            return response

        headers, content = await _read_raw(response)
        await response.aclose()

        entry = CacheEntry(
            status_code=response.status_code,
            headers=headers,
            content=content,
            stored_at=self.controller.now(),
            extensions={key: value for key, value in response.extensions.items() if key == "http_version"},
        )
        self.controller.save(directive.key, directive.options, entry)

        return httpx.Response(
            status_code=response.status_code,
            headers=headers,
            content=content,
            extensions={**response.extensions, "from_cache": False},
        )

    async def aclose(self) -> None:
        await self._transport.aclose()
