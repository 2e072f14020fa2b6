from __future__ import annotations

import typing as tp
import weakref

from ._utils import is_absolute_url, strip_query

if tp.TYPE_CHECKING:  # pragma: no cover
    from ._config import RequestConfig

__all__ = ("generate_key", "KeyRegistry")


def generate_key(method: str, base_url: str, url: str) -> str:
    """
    Builds the canonical identity of a call, ``"{METHOD}::{base}/{path}"``.

    The query string and the body are not part of the key, so ``/users?page=1``
    and ``/users/?page=2`` share single-flight and cache state. Slashes at both
    ends of the path are ignored.
    """
    path = strip_query(url or "").rstrip("/")
    if is_absolute_url(path):
        return f"{method.upper()}::{path}"
    return f"{method.upper()}::{(base_url or '').rstrip('/')}/{path.lstrip('/')}"


class KeyRegistry:
    """Computes canonical keys lazily, once per request configuration."""

    def __init__(self, base_url: str = "") -> None:
        self.base_url = base_url
        self._keys: "weakref.WeakKeyDictionary[RequestConfig, str]" = weakref.WeakKeyDictionary()

    def key_for(self, config: "RequestConfig") -> str:
        try:
            return self._keys[config]
        except KeyError:
            pass
        key = generate_key(config.method, self.base_url, config.url)
        self._keys[config] = key
        return key

    def __len__(self) -> int:
        return len(self._keys)
