"""Error types and AWS error classification."""

import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from botocore.exceptions import ClientError, NoCredentialsError, PartialCredentialsError

from aws_converge.utils.logging import get_logger

logger = get_logger(__name__)


class ErrorCategory(Enum):
    """What went wrong, broadly."""
    CONFIGURATION = "configuration"
    AWS = "aws"
    NETWORK = "network"
    PROVISIONING = "provisioning"
    CREDENTIAL = "credential"
    PERMISSION = "permission"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    WAIT = "wait"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    CRITICAL = "critical"  # the run stops
    ERROR = "error"  # this resource failed, others continue
    WARNING = "warning"
    INFO = "info"


_LOG_LEVELS = {
    ErrorSeverity.CRITICAL: logging.ERROR,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.INFO: logging.INFO,
}


@dataclass
class ErrorContext:
    """Where an error happened."""
    resource_id: Optional[str] = None
    resource_type: Optional[str] = None
    operation: Optional[str] = None
    aws_service: Optional[str] = None
    aws_operation: Optional[str] = None
    request_id: Optional[str] = None
    additional_info: Optional[Dict[str, Any]] = None


class ResourceError(Exception):
    """Base exception for everything that can fail while converging a resource.

    Subclasses set ``default_category`` and ``default_severity``; both can
    still be overridden per instance.

    Args:
        message: Human-readable description
        category: Overrides the class category
        severity: Overrides the class severity
        context: Resource and operation the error belongs to
        cause: Underlying exception
        suggestions: Steps the user can take to fix it
    """

    default_category = ErrorCategory.UNKNOWN
    default_severity = ErrorSeverity.ERROR

    def __init__(
        self,
        message: str,
        category: Optional[ErrorCategory] = None,
        severity: Optional[ErrorSeverity] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.severity = severity or self.default_severity
        self.context = context or ErrorContext()
        self.cause = cause
        self.suggestions = list(suggestions or [])

    def to_user_message(self) -> str:
        """Multi-line description for the terminal."""
        details = [
            ('Resource', self.context.resource_id),
            ('Operation', self.context.operation),
            ('Cause', self.cause),
        ]
        lines = [f"{self.severity.value.upper()}: {self.message}"]
        lines.extend(f"   {label}: {value}" for label, value in details if value)

        if self.suggestions:
            lines.append("\nSuggested fixes:")
            lines.extend(f"   {n}. {text}" for n, text in enumerate(self.suggestions, 1))

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'context': asdict(self.context),
            'cause': str(self.cause) if self.cause else None,
            'suggestions': self.suggestions,
        }


class ConfigurationError(ResourceError):
    """The manifest or CLI settings are unusable."""
    default_category = ErrorCategory.CONFIGURATION
    default_severity = ErrorSeverity.CRITICAL


class CredentialError(ResourceError):
    default_category = ErrorCategory.CREDENTIAL
    default_severity = ErrorSeverity.CRITICAL


class NetworkError(ResourceError):
    default_category = ErrorCategory.NETWORK


class ProvisioningError(ResourceError):
    """A create, update or delete could not be carried out."""
    default_category = ErrorCategory.PROVISIONING


class ValidationError(ResourceError):
    """Desired state is internally inconsistent."""
    default_category = ErrorCategory.VALIDATION


class NotFoundError(ResourceError):
    default_category = ErrorCategory.NOT_FOUND


class WaitError(ResourceError):
    """Base class for failures while waiting on a resource to converge.

    Carries the last observation made by the poll loop so that callers can
    report where the resource got stuck.
    """

    default_category = ErrorCategory.WAIT

    def __init__(
        self,
        message: str,
        last_status: Optional[str] = None,
        last_object: Any = None,
        elapsed: float = 0.0,
        resource_id: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault('context', ErrorContext(resource_id=resource_id))
        super().__init__(message, **kwargs)
        self.last_status = last_status
        self.last_object = last_object
        self.elapsed = elapsed
        self.resource_id = resource_id


class WaitTimeoutError(WaitError):
    """Deadline exceeded while the resource was still pending."""


class NotFoundDuringPollError(WaitError):
    """The resource disappeared while waiting for it to become available."""
    default_category = ErrorCategory.NOT_FOUND


class UnexpectedStatusError(WaitError):
    """Fetch succeeded but returned a status outside the pending and target sets."""


class FetchError(WaitError):
    """The status fetch itself failed (transport, auth, throttling)."""


class WaitCancelledError(WaitError):
    default_severity = ErrorSeverity.WARNING


def error_code(error: Exception) -> str:
    """Return the AWS error code of a ClientError, or an empty string."""
    if isinstance(error, ClientError):
        return error.response.get('Error', {}).get('Code', '')
    return ''


def error_message(error: Exception) -> str:
    """Return the AWS error message of a ClientError, or str(error)."""
    if isinstance(error, ClientError):
        return error.response.get('Error', {}).get('Message', str(error))
    return str(error)


NOT_FOUND_ERROR_CODES = frozenset({
    'CacheParameterGroupNotFound',
    'ServerlessCacheNotFoundFault',
    'ResourceNotFoundException',
})


def is_not_found(error: Exception) -> bool:
    """True when ``error`` means the remote resource does not exist."""
    return isinstance(error, NotFoundError) or error_code(error) in NOT_FOUND_ERROR_CODES


class AWSErrorInfo(NamedTuple):
    category: ErrorCategory
    summary: str
    suggestions: Tuple[str, ...]


_CHECK_IAM = 'Check the IAM policies attached to your user or role'

AWS_ERRORS: Dict[str, AWSErrorInfo] = {
    'InvalidClientTokenId': AWSErrorInfo(
        ErrorCategory.CREDENTIAL, 'AWS credentials are invalid',
        ('Verify credentials with: aws sts get-caller-identity',),
    ),
    'ExpiredToken': AWSErrorInfo(
        ErrorCategory.CREDENTIAL, 'AWS session token has expired',
        ('Refresh your session credentials and run again',),
    ),
    'AccessDenied': AWSErrorInfo(
        ErrorCategory.PERMISSION, 'Access denied',
        (_CHECK_IAM, 'Service control policies can also deny ElastiCache or App Runner actions'),
    ),
    'AccessDeniedException': AWSErrorInfo(ErrorCategory.PERMISSION, 'Access denied', (_CHECK_IAM,)),
    'ThrottlingException': AWSErrorInfo(
        ErrorCategory.NETWORK, 'Request rate exceeded', ('Run again later',),
    ),
    'Throttling': AWSErrorInfo(ErrorCategory.NETWORK, 'Request rate exceeded', ('Run again later',)),
    'CacheParameterGroupNotFound': AWSErrorInfo(
        ErrorCategory.NOT_FOUND, 'Parameter group not found',
        ('Check the region; the group may have been deleted outside this tool',),
    ),
    'ServerlessCacheNotFoundFault': AWSErrorInfo(
        ErrorCategory.NOT_FOUND, 'Serverless cache not found',
        ('Check the region; the cache may have been deleted outside this tool',),
    ),
    'ResourceNotFoundException': AWSErrorInfo(
        ErrorCategory.NOT_FOUND, 'Resource not found', ('Check the ARN and region',),
    ),
    'InvalidCacheParameterGroupState': AWSErrorInfo(
        ErrorCategory.PROVISIONING, 'Parameter group is busy',
        ('Wait for caches using the group to finish modifying',
         'Detach the group from its caches before deleting it'),
    ),
    'InvalidServerlessCacheStateFault': AWSErrorInfo(
        ErrorCategory.PROVISIONING, 'Serverless cache is not available for this operation',
        ('Wait for the cache to become available and run again',),
    ),
    'DependencyViolation': AWSErrorInfo(
        ErrorCategory.PROVISIONING, 'Resource still has dependents',
        ('Delete or detach the dependent resources first',),
    ),
    'InvalidParameterValue': AWSErrorInfo(
        ErrorCategory.VALIDATION, 'Invalid parameter value',
        ('List valid parameters with: aws elasticache describe-cache-parameters',),
    ),
    'InvalidParameterCombination': AWSErrorInfo(
        ErrorCategory.VALIDATION, 'Invalid parameter combination',
        ('Some fields cannot be changed together; apply them in separate runs',),
    ),
    'InvalidRequestException': AWSErrorInfo(ErrorCategory.VALIDATION, 'Invalid request', ()),
    'ServiceQuotaExceededException': AWSErrorInfo(
        ErrorCategory.PROVISIONING, 'Service quota exceeded',
        ('Delete unused auto scaling configuration revisions', 'Request a quota increase'),
    ),
}


class ErrorHandler:
    """Turns arbitrary exceptions into ``ResourceError`` for reporting."""

    def handle_exception(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None
    ) -> ResourceError:
        """Classify ``error``; ``ResourceError`` instances are returned as is."""
        if isinstance(error, ResourceError):
            return error

        context = context or ErrorContext()

        if isinstance(error, ClientError):
            return self._from_client_error(error, context)

        if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
            return CredentialError(
                'No usable AWS credentials found',
                context=context,
                cause=error,
                suggestions=['Run aws configure, set AWS_ACCESS_KEY_ID/AWS_SECRET_ACCESS_KEY, or pass --profile'],
            )

        if isinstance(error, (ConnectionError, TimeoutError)):
            return NetworkError(
                f'Network error: {error}',
                context=context,
                cause=error,
                suggestions=['Check that the AWS endpoints for the region are reachable'],
            )

        return ResourceError(str(error), context=context, cause=error)

    def _from_client_error(self, error: ClientError, context: ErrorContext) -> ResourceError:
        code = error_code(error) or 'Unknown'
        context.request_id = error.response.get('ResponseMetadata', {}).get('RequestId')
        context.aws_operation = context.aws_operation or error.operation_name

        info = AWS_ERRORS.get(code)
        if info is None:
            return ResourceError(
                f"AWS error {code}: {error_message(error)}",
                category=ErrorCategory.AWS,
                context=context,
                cause=error,
                suggestions=[f'AWS request ID: {context.request_id}'],
            )

        return ResourceError(
            f"{info.summary}: {error_message(error)}",
            category=info.category,
            context=context,
            cause=error,
            suggestions=list(info.suggestions),
        )

    def log_error(self, error: ResourceError) -> None:
        logger.log(_LOG_LEVELS[error.severity], error.to_user_message())
        logger.debug(f"Error details: {error.to_dict()}")


error_handler = ErrorHandler()
