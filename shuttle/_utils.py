from __future__ import annotations

import re
import time
import typing as tp

import anyio

T = tp.TypeVar("T")

_ABSOLUTE_URL = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


class BaseClock:
    def now(self) -> float:
        """Returns the current wall-clock time in milliseconds."""
        raise NotImplementedError()


class Clock(BaseClock):
    def now(self) -> float:
        return time.time() * 1000


async def sleep(milliseconds: tp.Union[int, float]) -> None:
    await anyio.sleep(milliseconds / 1000)


def strip_query(url: str) -> str:
    return url.split("#", 1)[0].split("?", 1)[0]


def is_absolute_url(url: str) -> bool:
    return bool(_ABSOLUTE_URL.match(url))


def join_url(base: str, url: str) -> str:
    """
    Joins a base URL and a path, collapsing the slashes at the seam.

    Absolute URLs are returned untouched.

    Example:
        ```
        join_url("https://example.com/api/", "/users")  # "https://example.com/api/users"
        ```
    """
    if not base or is_absolute_url(url):
        return url
    return f"{base.rstrip('/')}/{url.lstrip('/')}"


def to_list(value: tp.Union[T, tp.Iterable[T], None]) -> tp.List[T]:
    if value is None:
        return []
    if isinstance(value, (str, bytes)) or not isinstance(value, tp.Iterable):
        return [tp.cast(T, value)]
    return list(value)
