import logging

from shuttle._cache import CacheController as CacheController
from shuttle._client import AsyncRequestClient as AsyncRequestClient
from shuttle._config import (
    CacheOptions as CacheOptions,
    RequestConfig as RequestConfig,
    RetryOptions as RetryOptions,
    SingleOptions as SingleOptions,
    SingleType as SingleType,
    parse_cache as parse_cache,
    parse_retry as parse_retry,
    parse_single as parse_single,
)
from shuttle._exceptions import (
    BadRequestError as BadRequestError,
    BadResponseError as BadResponseError,
    CanceledError as CanceledError,
    ConfigurationError as ConfigurationError,
    ErrorCode as ErrorCode,
    FrequencyExceeded as FrequencyExceeded,
    InvalidSpecification as InvalidSpecification,
    ShuttleError as ShuttleError,
    TransportError as TransportError,
    is_cancel as is_cancel,
)
from shuttle._frequency import FrequencyGuard as FrequencyGuard
from shuttle._handles import Deferred as Deferred, RequestHandle as RequestHandle
from shuttle._keys import KeyRegistry as KeyRegistry, generate_key as generate_key
from shuttle._pipeline import ParallelPipeline as ParallelPipeline, PipelineTask as PipelineTask
from shuttle._ranges import (
    CodeRange as CodeRange,
    CodeRangeMatcher as CodeRangeMatcher,
    compile_code_range as compile_code_range,
    parse_code_range as parse_code_range,
)
from shuttle._retry import RetryController as RetryController
from shuttle._single import SingleFlightController as SingleFlightController
from shuttle._storages import CacheEntry as CacheEntry, CacheStore as CacheStore
from shuttle._transports import AsyncCacheTransport as AsyncCacheTransport
from shuttle._utils import BaseClock as BaseClock, Clock as Clock

logging.getLogger("shuttle").addHandler(logging.NullHandler())

__all__ = (
    # Client
    "AsyncRequestClient",
    "RequestHandle",
    "Deferred",
    # Options
    "SingleType",
    "SingleOptions",
    "CacheOptions",
    "RetryOptions",
    "RequestConfig",
    "parse_single",
    "parse_cache",
    "parse_retry",
    # Components
    "ParallelPipeline",
    "PipelineTask",
    "RetryController",
    "SingleFlightController",
    "CacheController",
    "CacheStore",
    "CacheEntry",
    "AsyncCacheTransport",
    "FrequencyGuard",
    "KeyRegistry",
    "generate_key",
    ## Code ranges
    "CodeRange",
    "CodeRangeMatcher",
    "compile_code_range",
    "parse_code_range",
    # Clocks
    "BaseClock",
    "Clock",
    # Exceptions
    "ErrorCode",
    "ShuttleError",
    "ConfigurationError",
    "InvalidSpecification",
    "FrequencyExceeded",
    "CanceledError",
    "TransportError",
    "BadResponseError",
    "BadRequestError",
    "is_cancel",
)
