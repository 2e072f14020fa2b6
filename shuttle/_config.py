from __future__ import annotations

import enum
import typing as tp
from dataclasses import dataclass, field, replace

import httpx

from ._exceptions import ConfigurationError, ErrorCode
from ._ranges import CodeRangeMatcher, CodeRangeSpec, compile_code_range
from ._utils import to_list

__all__ = (
    "SingleType",
    "SingleOptions",
    "CacheOptions",
    "RetryOptions",
    "RequestConfig",
    "DEFAULT_ERROR_REASONS",
    "DEFAULT_BAD_RESPONSE_CODES",
    "DEFAULT_BAD_REQUEST_CODES",
    "parse_single",
    "parse_cache",
    "parse_retry",
)

READ_METHOD = "GET"

DEFAULT_ERROR_REASONS = frozenset(
    {
        ErrorCode.CONNECTION_ABORTED.value,
        ErrorCode.NETWORK_ERROR.value,
        ErrorCode.TIMED_OUT.value,
        ErrorCode.CONNECTION_REFUSED.value,
    }
)
DEFAULT_BAD_RESPONSE_CODES = (500, 404, 502)
DEFAULT_BAD_REQUEST_CODES = (404,)


class SingleType(str, enum.Enum):
    NEXT = "next"
    """Always use the latest request, aborting the one still in flight."""

    PREV = "prev"
    """Keep the request in flight and reject the newer ones until it completes."""

    QUEUE = "queue"
    """Run requests one at a time in arrival order. The default."""


def _is_number(value: tp.Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class SingleOptions:
    type: SingleType = SingleType.QUEUE

    def __post_init__(self) -> None:
        try:
            self.type = SingleType(self.type.lower() if isinstance(self.type, str) else self.type)
        except ValueError:
            raise ConfigurationError(
                f"Unknown single type {self.type!r}, expected one of {[t.value for t in SingleType]}"
            ) from None


@dataclass
class CacheOptions:
    time: tp.Union[int, float] = -1
    """
    Time to live in milliseconds.

    A negative value keeps the response forever, zero disables caching.
    """

    def __post_init__(self) -> None:
        if not _is_number(self.time):
            raise ConfigurationError(f"Cache time must be a number of milliseconds, got {self.time!r}")

    @property
    def enabled(self) -> bool:
        return self.time != 0

    @property
    def unbounded(self) -> bool:
        return self.time < 0


def _reason(value: tp.Any) -> str:
    return value.value if isinstance(value, ErrorCode) else str(value)


@dataclass
class RetryOptions:
    count: int = 5
    """Number of retries after the first attempt."""

    delay: tp.Union[int, float] = 1000
    """Fixed delay between attempts in milliseconds."""

    error_reasons: tp.Union[str, ErrorCode, tp.Iterable[tp.Union[str, ErrorCode]]] = DEFAULT_ERROR_REASONS
    """Error codes that are always retried."""

    bad_response_codes: CodeRangeSpec = DEFAULT_BAD_RESPONSE_CODES
    """Status codes retried on a bad response, unless ``BAD_RESPONSE`` is in ``error_reasons``."""

    bad_request_codes: CodeRangeSpec = DEFAULT_BAD_REQUEST_CODES
    """Status codes retried on a bad request, unless ``BAD_REQUEST`` is in ``error_reasons``."""

    domains: tp.Optional[tp.Sequence[str]] = None
    """Base URLs rotated through on each retry."""

    bad_response_matcher: tp.Optional[CodeRangeMatcher] = field(init=False, repr=False, default=None)
    bad_request_matcher: tp.Optional[CodeRangeMatcher] = field(init=False, repr=False, default=None)

    def __post_init__(self) -> None:
        if not _is_number(self.count) or not _is_number(self.delay):
            raise ConfigurationError("Retry count and delay must be numbers")

        self.count = max(int(self.count), 1)
        self.delay = max(self.delay, 0)
        self.error_reasons = frozenset(_reason(reason) for reason in to_list(self.error_reasons))
        self.domains = to_list(self.domains) or None

        if ErrorCode.BAD_RESPONSE.value not in self.error_reasons:
            self.bad_response_matcher = compile_code_range(self.bad_response_codes)
        if ErrorCode.BAD_REQUEST.value not in self.error_reasons:
            self.bad_request_matcher = compile_code_range(self.bad_request_codes)


def _from_mapping(cls: tp.Type[tp.Any], value: tp.Mapping[str, tp.Any]) -> tp.Any:
    try:
        return cls(**value)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid {cls.__name__}: {exc}") from None


def parse_single(value: tp.Any) -> tp.Optional[SingleOptions]:
    """
    Resolves the ``single`` call option.

    ``None`` (not given) and ``True`` enable the queue policy, ``False`` disables
    single-flight, a ``SingleType`` or its name selects a policy.
    """
    if value is None or value is True:
        return SingleOptions()
    if value is False:
        return None
    if isinstance(value, SingleOptions):
        return value
    if isinstance(value, (SingleType, str)):
        return SingleOptions(type=tp.cast(SingleType, value))
    if isinstance(value, tp.Mapping):
        return tp.cast(SingleOptions, _from_mapping(SingleOptions, value))
    raise ConfigurationError(f"Invalid single option {value!r}")


def parse_cache(value: tp.Any) -> tp.Optional[CacheOptions]:
    if value is None or value is False:
        return None
    if value is True:
        return CacheOptions()
    if isinstance(value, CacheOptions):
        return value
    if _is_number(value):
        return CacheOptions(time=value)
    if isinstance(value, tp.Mapping):
        return tp.cast(CacheOptions, _from_mapping(CacheOptions, value))
    raise ConfigurationError(f"Invalid cache option {value!r}")


def parse_retry(value: tp.Any, default_domains: tp.Optional[tp.Sequence[str]] = None) -> tp.Optional[RetryOptions]:
    if value is None or value is False:
        return None
    if value is True:
        options = RetryOptions()
    elif isinstance(value, RetryOptions):
        options = value
    elif isinstance(value, tp.Mapping):
        options = tp.cast(RetryOptions, _from_mapping(RetryOptions, value))
    else:
        raise ConfigurationError(f"Invalid retry option {value!r}")

    if options.domains is None and default_domains:
        options = replace(options, domains=list(default_domains))
    return options


@dataclass(eq=False)
class RequestConfig:
    """
    Everything needed to dispatch one call.

    Instances are compared and hashed by identity so they can be weakly
    associated with their canonical key.
    """

    method: str
    url: str
    params: tp.Any = None
    headers: tp.Any = None
    cookies: tp.Any = None
    content: tp.Any = None
    data: tp.Any = None
    files: tp.Any = None
    json: tp.Any = None
    timeout: tp.Any = httpx.USE_CLIENT_DEFAULT
    extensions: tp.Optional[tp.Dict[str, tp.Any]] = None
    single: tp.Optional[SingleOptions] = None
    cache: tp.Optional[CacheOptions] = None
    retry: tp.Optional[RetryOptions] = None

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        if self.cache is not None and self.cache.enabled and self.method != READ_METHOD:
            raise ConfigurationError(f"Cache is only supported for the `{READ_METHOD}` method, got `{self.method}`")
