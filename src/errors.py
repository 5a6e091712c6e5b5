"""
Provider errors and remote error classification.

Every failure surfaced to the host derives from ProviderError and carries
the operation name and, when known, the instance id.
"""

import asyncio
from enum import Enum
from typing import Optional

from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
    WaiterError,
)

NOT_FOUND_CODES = frozenset(
    {
        "InvalidInstanceID.NotFound",
        "InvalidInstanceId.NotFound",
    }
)

TRANSIENT_CODES = frozenset(
    {
        "RequestLimitExceeded",
        "Throttling",
        "ThrottlingException",
        "InsufficientInstanceCapacity",
        "ServiceUnavailable",
        "Unavailable",
        "InternalError",
        "InternalFailure",
    }
)

# Reason botocore gives when a waiter runs out of attempts
WAITER_TIMEOUT_REASON = "Max attempts exceeded"


class ErrorClass(Enum):
    """Classification of a remote API failure."""

    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    FATAL = "fatal"


def error_code(error: BaseException) -> str:
    """Return the remote error code of a botocore ClientError, or ''."""
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code", "")
    return ""


def classify(error: BaseException) -> ErrorClass:
    """
    Classify a remote API failure.

    Args:
        error: The exception raised by the compute client.

    Returns:
        NOT_FOUND when the instance does not exist, TRANSIENT for throttling,
        capacity, connectivity and wait-timeout failures, FATAL otherwise.
    """
    if isinstance(error, ClientError):
        code = error_code(error)
        if code in NOT_FOUND_CODES:
            return ErrorClass.NOT_FOUND
        if code in TRANSIENT_CODES:
            return ErrorClass.TRANSIENT
        return ErrorClass.FATAL

    if isinstance(error, WaiterError):
        if WAITER_TIMEOUT_REASON in (error.reason or ""):
            return ErrorClass.TRANSIENT
        return ErrorClass.FATAL

    if isinstance(
        error,
        (
            EndpointConnectionError,
            ConnectTimeoutError,
            ReadTimeoutError,
            asyncio.TimeoutError,
        ),
    ):
        return ErrorClass.TRANSIENT

    return ErrorClass.FATAL


def is_not_found(error: BaseException) -> bool:
    """Check whether an error means the instance no longer exists."""
    return classify(error) is ErrorClass.NOT_FOUND


class ProviderError(Exception):
    """Base exception for provider errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        instance_id: Optional[str] = None,
        error_class: ErrorClass = ErrorClass.FATAL,
    ):
        self.message = message
        self.operation = operation
        self.instance_id = instance_id
        self.error_class = error_class
        super().__init__(message)

    def __str__(self) -> str:
        prefix = []
        if self.operation:
            prefix.append(self.operation)
        if self.instance_id:
            prefix.append(self.instance_id)
        if prefix:
            return f"{' '.join(prefix)}: {self.message}"
        return self.message

    @classmethod
    def wrap(
        cls,
        error: BaseException,
        operation: str,
        instance_id: Optional[str] = None,
    ) -> "ProviderError":
        """
        Build an error of this type from a remote failure.

        The original exception should be chained with ``raise ... from``.
        """
        return cls(
            str(error) or type(error).__name__,
            operation=operation,
            instance_id=instance_id,
            error_class=classify(error),
        )


class ConfigurationError(ProviderError):
    """Raised when required provider settings are missing."""


class ProviderConnectionError(ProviderError):
    """Raised when the connection context cannot be built."""


class SpecValidationError(ProviderError):
    """Raised when a desired-state document does not match the schema."""


class InstanceNotFoundError(ProviderError):
    """Raised when the remote API reports that an instance does not exist."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        instance_id: Optional[str] = None,
    ):
        super().__init__(
            message,
            operation=operation,
            instance_id=instance_id,
            error_class=ErrorClass.NOT_FOUND,
        )


class CreateFailedError(ProviderError):
    """Raised when no instance was created; safe to retry from scratch."""


class CreateSucceededButNotReadyError(ProviderError):
    """
    Raised when an instance was created but could not be confirmed ready.

    The instance exists remotely and ``instance_id`` is always set. Retrying
    the create would launch a duplicate.
    """

    def __init__(
        self,
        message: str,
        instance_id: str,
        operation: str = "create",
        error_class: ErrorClass = ErrorClass.FATAL,
        partial_state=None,
    ):
        super().__init__(
            message,
            operation=operation,
            instance_id=instance_id,
            error_class=error_class,
        )
        self.partial_state = partial_state


class ReadFailedError(ProviderError):
    """Raised when describing an instance fails for a reason other than not-found."""


class DeleteFailedError(ProviderError):
    """Raised when terminating an instance fails."""
