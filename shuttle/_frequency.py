from __future__ import annotations

import logging
import typing as tp

from ._exceptions import FrequencyExceeded
from ._utils import BaseClock, Clock

logger = logging.getLogger("shuttle.frequency")

__all__ = ("FrequencyGuard",)


class FrequencyGuard:
    """
    Counts calls per path in fixed windows of ``range`` milliseconds.

    :param maximum: Calls allowed per path in one window, zero or less disables the guard
    :type maximum: int
    :param range: Window width in milliseconds
    :type range: int
    """

    def __init__(self, maximum: int = 50, range: int = 1000, clock: tp.Optional[BaseClock] = None) -> None:
        self.maximum = maximum
        self.range = range
        self._clock = clock if clock is not None else Clock()
        self._windows: tp.Dict[str, tp.Tuple[float, int]] = {}

    @property
    def enabled(self) -> bool:
        return self.maximum > 0

    def check(self, path: str) -> int:
        """
        Records one call for ``path`` and returns the count in the current window.

        :raises FrequencyExceeded: if the count exceeds ``maximum``
        """
        if not self.enabled:
            return 0

        now = self._clock.now()
        self._prune(now)

        started_at, count = self._windows.get(path, (now, 0))
        count += 1
        self._windows[path] = (started_at, count)

        if count > self.maximum:
            logger.debug(f"Rejecting the call to {path!r}, {count} calls in the current window.")
            raise FrequencyExceeded(
                f"The request frequency is over the limit in {self.range} ms. "
                f"Current count is {count} with path {path!r}. "
                "It may be an infinite loop; to continue, set `request_limit` to a bigger number or zero.",
                path=path,
                count=count,
            )
        return count

    def _prune(self, now: float) -> None:
        expired = [path for path, (started_at, _) in self._windows.items() if now - started_at >= self.range]
        for path in expired:
            del self._windows[path]

    def __len__(self) -> int:
        return len(self._windows)
