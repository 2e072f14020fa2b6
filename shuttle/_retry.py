from __future__ import annotations

import logging
import typing as tp

from ._config import RetryOptions
from ._exceptions import ErrorCode, TransportError, is_cancel
from ._utils import sleep

logger = logging.getLogger("shuttle.retry")

T = tp.TypeVar("T")

__all__ = ("RetryController", "Invoke")

Invoke = tp.Callable[[tp.Optional[str]], tp.Awaitable[T]]
"""Performs one attempt. Receives the base URL to use instead of the configured one, if any."""


def pick_domain(domains: tp.Sequence[str], attempt: int) -> tp.Optional[str]:
    """
    Returns the base URL override for a 0-based attempt number.

    The rotation is the configured endpoint followed by every domain, wrapping
    around: with ``["d1", "d2"]`` the attempts use ``None, d1, d2, None, d1, ...``.
    """
    if not domains:
        return None
    position = attempt % (len(domains) + 1)
    return None if position == 0 else domains[position - 1]


class RetryController:
    """
    Wraps a single transport invocation with classify-then-retry logic.

    :param sleeper: Awaitable used to wait between attempts, receives milliseconds
    :type sleeper: tp.Callable[[float], tp.Awaitable[None]]
    """

    def __init__(self, sleeper: tp.Callable[[float], tp.Awaitable[None]] = sleep) -> None:
        self._sleep = sleeper

    def is_retryable(self, error: BaseException, options: RetryOptions) -> bool:
        if is_cancel(error) or not isinstance(error, TransportError):
            return False

        code = error.code.value if isinstance(error.code, ErrorCode) else str(error.code)

        if code in options.error_reasons:
            return True

        if (
            options.bad_response_matcher is not None
            and code == ErrorCode.BAD_RESPONSE.value
            and options.bad_response_matcher(error.status)
        ):
            return True

        if (
            options.bad_request_matcher is not None
            and code == ErrorCode.BAD_REQUEST.value
            and options.bad_request_matcher(error.status)
        ):
            return True

        return False

    async def execute(self, invoke: Invoke[T], options: tp.Optional[RetryOptions]) -> T:
        if options is None:
            return await invoke(None)

        domains = list(options.domains or [])
        retries = 0

        while True:
            base_url = pick_domain(domains, retries)
            if base_url is not None:
                logger.debug(f"Switching to the domain {base_url!r} for attempt {retries + 1}.")

            try:
                return await invoke(base_url)
            except TransportError as exc:
                if retries >= options.count:
                    logger.debug(f"Giving up after {retries + 1} attempts, the last one failed with {exc.code}.")
                    raise
                if not self.is_retryable(exc, options):
                    logger.debug(f"Not retrying the error {exc.code} (status={exc.status}).")
                    raise

                logger.debug(
                    f"Attempt {retries + 1} failed with {exc.code} (status={exc.status}), "
                    f"retrying in {options.delay} ms."
                )
            await self._sleep(options.delay)
            retries += 1
