"""Utility modules for logging, errors, retries and AWS client management."""

from aws_converge.utils.aws_client import AWSClientManager, AWSCredentials
from aws_converge.utils.retry import RetryStrategy, retry_when_error_code
from aws_converge.utils.errors import (
    ErrorCategory,
    ErrorSeverity,
    ErrorContext,
    ResourceError,
    ConfigurationError,
    CredentialError,
    NetworkError,
    ProvisioningError,
    ValidationError,
    NotFoundError,
    WaitError,
    WaitTimeoutError,
    NotFoundDuringPollError,
    UnexpectedStatusError,
    FetchError,
    WaitCancelledError,
    ErrorHandler,
    error_handler,
    error_code,
    is_not_found,
)
from aws_converge.utils.logging import get_logger, setup_logging, LogContext

__all__ = [
    # AWS Client
    'AWSClientManager',
    'AWSCredentials',

    # Retry
    'RetryStrategy',
    'retry_when_error_code',

    # Errors
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorContext',
    'ResourceError',
    'ConfigurationError',
    'CredentialError',
    'NetworkError',
    'ProvisioningError',
    'ValidationError',
    'NotFoundError',
    'WaitError',
    'WaitTimeoutError',
    'NotFoundDuringPollError',
    'UnexpectedStatusError',
    'FetchError',
    'WaitCancelledError',
    'ErrorHandler',
    'error_handler',
    'error_code',
    'is_not_found',

    # Logging
    'get_logger',
    'setup_logging',
    'LogContext',
]
