"""Tests for error classification."""

from botocore.exceptions import ClientError, NoCredentialsError

from aws_converge.utils.errors import (
    ErrorCategory,
    ErrorContext,
    ErrorHandler,
    ErrorSeverity,
    NotFoundDuringPollError,
    NotFoundError,
    ProvisioningError,
    ResourceError,
    WaitCancelledError,
    WaitTimeoutError,
    error_code,
    error_message,
    is_not_found,
)


def client_error(code: str, message: str = "boom") -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": message},
            "ResponseMetadata": {"RequestId": "req-123"},
        },
        "DescribeServerlessCaches",
    )


class TestHelpers:
    """Tests for ClientError helpers."""

    def test_error_code_and_message(self) -> None:
        error = client_error("DependencyViolation", "still in use")

        assert error_code(error) == "DependencyViolation"
        assert error_message(error) == "still in use"

    def test_non_client_error(self) -> None:
        error = RuntimeError("nope")

        assert error_code(error) == ""
        assert error_message(error) == "nope"

    def test_is_not_found(self) -> None:
        assert is_not_found(client_error("ServerlessCacheNotFoundFault"))
        assert is_not_found(client_error("CacheParameterGroupNotFound"))
        assert is_not_found(client_error("ResourceNotFoundException"))
        assert is_not_found(NotFoundError("gone"))
        assert not is_not_found(client_error("InvalidParameterValue"))


class TestWaitErrors:
    """Tests for waiter error types."""

    def test_carries_last_observation(self) -> None:
        error = WaitTimeoutError(
            "timed out", last_status="creating", last_object={"a": 1}, elapsed=12.5, resource_id="cache-1",
        )

        assert error.category == ErrorCategory.WAIT
        assert error.last_status == "creating"
        assert error.last_object == {"a": 1}
        assert error.elapsed == 12.5
        assert error.context.resource_id == "cache-1"

    def test_not_found_category(self) -> None:
        assert NotFoundDuringPollError("gone").category == ErrorCategory.NOT_FOUND

    def test_cancel_is_a_warning(self) -> None:
        assert WaitCancelledError("stop").severity == ErrorSeverity.WARNING


class TestErrorHandler:
    """Tests for ErrorHandler."""

    def test_resource_errors_pass_through(self) -> None:
        original = ProvisioningError("bad")

        assert ErrorHandler().handle_exception(original) is original

    def test_mapped_aws_code(self) -> None:
        error = ErrorHandler().handle_exception(
            client_error("AccessDenied", "not allowed"),
            ErrorContext(resource_id="cache-1", operation="create"),
        )

        assert error.category == ErrorCategory.PERMISSION
        assert "not allowed" in error.message
        assert error.context.request_id == "req-123"
        assert error.suggestions

    def test_unmapped_aws_code(self) -> None:
        error = ErrorHandler().handle_exception(client_error("SomethingOdd"))

        assert error.category == ErrorCategory.AWS
        assert "SomethingOdd" in error.message
        assert error.context.aws_operation == "DescribeServerlessCaches"

    def test_missing_credentials(self) -> None:
        error = ErrorHandler().handle_exception(NoCredentialsError())

        assert error.category == ErrorCategory.CREDENTIAL

    def test_unknown_exception(self) -> None:
        error = ErrorHandler().handle_exception(RuntimeError("weird"))

        assert type(error) is ResourceError
        assert error.category == ErrorCategory.UNKNOWN
        assert isinstance(error.cause, RuntimeError)

    def test_user_message(self) -> None:
        error = ProvisioningError(
            "Create failed",
            context=ErrorContext(resource_id="cache-1", operation="create"),
            suggestions=["Try again"],
        )
        message = error.to_user_message()

        assert "Create failed" in message
        assert "Resource: cache-1" in message
        assert "1. Try again" in message
        assert error.to_dict()["context"]["resource_id"] == "cache-1"
