from __future__ import annotations

import logging
import typing as tp

from ._config import CacheOptions
from ._storages import CacheEntry, CacheStore
from ._utils import BaseClock, Clock

logger = logging.getLogger("shuttle.cache")

__all__ = ("CacheController",)


class CacheController:
    """
    Decides whether a stored response may be served and whether a fresh one is stored.

    :param store: Where the entries live, defaults to a new :class:`CacheStore`
    :type store: tp.Optional[CacheStore]
    :param clock: Source of wall-clock milliseconds, defaults to :class:`Clock`
    :type clock: tp.Optional[BaseClock]
    """

    def __init__(self, store: tp.Optional[CacheStore] = None, clock: tp.Optional[BaseClock] = None) -> None:
        self.store = store if store is not None else CacheStore()
        self._clock = clock if clock is not None else Clock()

    def now(self) -> float:
        return self._clock.now()

    def lookup(self, key: str, options: tp.Optional[CacheOptions]) -> tp.Optional[CacheEntry]:
        if options is None:
            return None

        if not options.enabled:
            if key in self.store:
                logger.debug(f"Removing the cached response for {key} since caching is disabled for it.")
                self.store.remove(key)
            return None

        entry = self.store.get(key)
        if entry is None:
            logger.debug(f"No cached response for {key}.")
            return None

        if not options.unbounded and entry.age(self.now()) > options.time:
            logger.debug(f"Evicting the cached response for {key}, it is older than {options.time} ms.")
            self.store.remove(key)
            return None

        logger.debug(f"Using the cached response for {key}.")
        return entry

    def save(self, key: str, options: tp.Optional[CacheOptions], entry: CacheEntry) -> bool:
        """
        Stores ``entry`` unless caching is disabled or an entry already exists.

        The first stored response wins until it expires.
        """
        if options is None or not options.enabled:
            return False

        if key in self.store:
            logger.debug(f"Keeping the existing cached response for {key}.")
            return False

        logger.debug(f"Storing the response for {key}.")
        self.store.set(key, entry)
        return True
