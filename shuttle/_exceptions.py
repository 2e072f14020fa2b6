from __future__ import annotations

import enum
import typing as tp

if tp.TYPE_CHECKING:  # pragma: no cover
    import httpx

__all__ = (
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


class ErrorCode(str, enum.Enum):
    CONNECTION_ABORTED = "CONNECTION_ABORTED"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMED_OUT = "TIMED_OUT"
    CONNECTION_REFUSED = "CONNECTION_REFUSED"
    BAD_RESPONSE = "BAD_RESPONSE"
    BAD_REQUEST = "BAD_REQUEST"
    CANCELED = "CANCELED"
    UNKNOWN = "UNKNOWN"

    def __str__(self) -> str:
        return str(self.value)


class ShuttleError(Exception): ...


class ConfigurationError(ShuttleError): ...


class InvalidSpecification(ConfigurationError): ...


class FrequencyExceeded(ShuttleError):
    def __init__(self, message: str, path: str, count: int) -> None:
        super().__init__(message)
        self.path = path
        self.count = count


class CanceledError(ShuttleError):
    """
    Raised when a call was aborted, superseded or rejected by its single-flight policy.

    Never retried.
    """

    code = ErrorCode.CANCELED
    __cancel__ = True


class TransportError(ShuttleError):
    """
    A failure reported by the transport, classified by ``code``.

    :param message: Human readable description
    :type message: str
    :param code: Classification used for retry eligibility
    :type code: ErrorCode
    :param status: Response status code, when a response was received
    :type status: tp.Optional[int]
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        *,
        status: tp.Optional[int] = None,
        request: tp.Optional["httpx.Request"] = None,
        response: tp.Optional["httpx.Response"] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status
        self.request = request
        self.response = response


class BadResponseError(TransportError):
    def __init__(self, message: str, response: "httpx.Response") -> None:
        super().__init__(
            message,
            ErrorCode.BAD_RESPONSE,
            status=response.status_code,
            request=response.request,
            response=response,
        )


class BadRequestError(TransportError):
    def __init__(self, message: str, response: "httpx.Response") -> None:
        super().__init__(
            message,
            ErrorCode.BAD_REQUEST,
            status=response.status_code,
            request=response.request,
            response=response,
        )


def is_cancel(value: tp.Any) -> bool:
    return bool(getattr(value, "__cancel__", False))
