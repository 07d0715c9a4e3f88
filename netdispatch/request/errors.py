"""Error types for the request dispatch layer."""

from netdispatch.request.models import ErrorClass, ErrorDescriptor, ResponseType


class ResponseDecodeError(Exception):
    """Raised when a body does not match its declared response type.

    Transports intercept this and report it as an ``ErrorClass.DECODE``
    failure; it never reaches the caller.
    """

    def __init__(self, response_type: ResponseType, message: str) -> None:
        """Initialize the decode error.

        Args:
            response_type: Declared response type that failed.
            message: Human-readable reason.
        """
        self.response_type = response_type
        self.message = message
        super().__init__(f"Could not decode body as {response_type.value}: {message}")

    def to_descriptor(self) -> ErrorDescriptor:
        """Convert the exception into an error descriptor.

        Returns:
            Descriptor tagged DECODE.
        """
        return ErrorDescriptor(error_class=ErrorClass.DECODE, message=str(self))


def configuration_error(message: str) -> ErrorDescriptor:
    """Build a descriptor for an invalid request config.

    Args:
        message: What was wrong with the config.

    Returns:
        Descriptor tagged CONFIGURATION.
    """
    return ErrorDescriptor(
        error_class=ErrorClass.CONFIGURATION,
        message=f"Invalid request configuration: {message}",
    )


def network_error(message: str) -> ErrorDescriptor:
    """Build a descriptor for a transport-level failure.

    Args:
        message: Underlying failure description.

    Returns:
        Descriptor tagged NETWORK.
    """
    return ErrorDescriptor(
        error_class=ErrorClass.NETWORK,
        message=f"Request failed due to network error: {message}",
    )


def timeout_error(timeout_ms: float | None) -> ErrorDescriptor:
    """Build a descriptor for an attempt that hit its deadline.

    Args:
        timeout_ms: Deadline that was exceeded, if configured.

    Returns:
        Descriptor tagged TIMEOUT.
    """
    if timeout_ms is None:
        message = "Request timed out"
    else:
        message = f"Request timed out after {timeout_ms:g}ms"
    return ErrorDescriptor(error_class=ErrorClass.TIMEOUT, message=message)


def abort_error(reason: str | None) -> ErrorDescriptor:
    """Build a descriptor for a cancelled request.

    Args:
        reason: Reason given when the token was signaled.

    Returns:
        Descriptor tagged ABORT.
    """
    return ErrorDescriptor(
        error_class=ErrorClass.ABORT,
        message=reason or "Request aborted",
    )


def status_error(
    status_code: int,
    status_text: str,
    body: object = None,
) -> ErrorDescriptor:
    """Build a descriptor for a non-2xx response.

    Args:
        status_code: HTTP status code.
        status_text: HTTP reason phrase.
        body: Decoded error body, if decoding succeeded.

    Returns:
        Descriptor tagged STATUS.
    """
    return ErrorDescriptor(
        error_class=ErrorClass.STATUS,
        message=f"Request failed with status {status_code}: {status_text}",
        status_code=status_code,
        status_text=status_text,
        body=body,
    )
