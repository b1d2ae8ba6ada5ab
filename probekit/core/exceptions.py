# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
probekit Exception Hierarchy

Exception Hierarchy:
    ProbeError (base)
    ├── ConfigError
    ├── InvalidRequestError
    ├── UnsupportedOperationError
    ├── UnsupportedPlatformError
    ├── ResourceError
    │   ├── PathNotFoundError
    │   └── AccessDeniedError
    ├── QueryError
    │   └── QueryTimeoutError
    └── OperationCancelledError

Only InvalidRequestError and UnsupportedOperationError escape the facade.
Everything else is folded into an ErrorInfo on the way out.
"""

import traceback
from typing import Any, Dict, List, Optional

from .models import ErrorInfo, ErrorKind


class ProbeError(Exception):
    """Base exception for all probekit errors"""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        result = {
            "type": self.__class__.__name__,
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }

        if self.cause:
            result["cause"] = {
                "type": self.cause.__class__.__name__,
                "message": str(self.cause),
            }

        return result

    def to_error_info(self) -> ErrorInfo:
        return ErrorInfo(
            type=self.kind,
            message=self.message,
            stack_trace=_format_trace(self),
        )

    def __str__(self):
        base = self.message
        if self.details:
            base += f" | Details: {self.details}"
        if self.cause:
            base += f" | Caused by: {self.cause}"
        return base


class ConfigError(ProbeError):
    """Configuration-related errors"""


class InvalidRequestError(ProbeError):
    """Request payload does not match the shape expected for its kind"""

    kind = ErrorKind.INVALID_REQUEST

    def __init__(
        self,
        message: str,
        errors: Optional[List[Dict[str, Any]]] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["errors"] = self.errors
        return result


class UnsupportedOperationError(ProbeError):
    """Operation kind is not one of the known tags"""

    kind = ErrorKind.UNSUPPORTED_OPERATION

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.operation = operation


class UnsupportedPlatformError(ProbeError):
    """Host lacks the capability (WMI, registry, cmd.exe)"""

    kind = ErrorKind.UNSUPPORTED_PLATFORM


class ResourceError(ProbeError):
    """Resource access errors"""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.path = path

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["path"] = self.path
        return result


class PathNotFoundError(ResourceError):
    """Root path or root key does not exist"""

    kind = ErrorKind.PATH_NOT_FOUND


class AccessDeniedError(ResourceError):
    """Root path or root key cannot be read"""

    kind = ErrorKind.ACCESS_DENIED


class QueryError(ProbeError):
    """Malformed query or engine-reported fault"""

    kind = ErrorKind.QUERY_ERROR


class QueryTimeoutError(QueryError):
    """Query exceeded its effective timeout"""

    kind = ErrorKind.TIMEOUT

    def __init__(self, message: str, timeout_seconds: float, **kwargs):
        super().__init__(message, **kwargs)
        self.timeout_seconds = timeout_seconds

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["timeout_seconds"] = self.timeout_seconds
        return result


class OperationCancelledError(ProbeError):
    """Caller cancellation fired before the operation finished"""

    kind = ErrorKind.CANCELLED


def _format_trace(error: BaseException) -> Optional[str]:
    if error.__traceback__ is None:
        return None
    return "".join(traceback.format_tb(error.__traceback__))


def error_info_from_exception(error: BaseException) -> ErrorInfo:
    """
    Map any exception onto an ErrorInfo.

    ProbeError subclasses keep their kind; anything else becomes Unknown and
    carries its native type name in the message.
    """
    if isinstance(error, ProbeError):
        return error.to_error_info()

    message = str(error) or error.__class__.__name__
    return ErrorInfo(
        type=ErrorKind.UNKNOWN,
        message=f"{error.__class__.__name__}: {message}",
        stack_trace=_format_trace(error),
    )
