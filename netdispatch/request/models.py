"""Data models for the request dispatch layer."""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from netdispatch.request.cancellation import CancellationToken
from netdispatch.request.constants import CONTENT_TYPE_HEADER, DEFAULT_RETRIES


class ResponseType(str, Enum):
    """Logical type the response body is decoded into.

    - TEXT: Decoded string (default)
    - JSON: Parsed JSON value
    - BLOB: Bytes plus their content type
    - ARRAYBUFFER: Raw bytes
    - DOCUMENT: Parsed HTML or XML document
    """

    TEXT = "text"
    JSON = "json"
    BLOB = "blob"
    ARRAYBUFFER = "arraybuffer"
    DOCUMENT = "document"


class ErrorClass(str, Enum):
    """Classification of dispatch errors for retry decisions and reporting.

    - CONFIGURATION: Request config was missing or invalid; no I/O happened
    - NETWORK: Transport could not reach the server
    - STATUS: Server answered with a non-2xx status
    - TIMEOUT: Attempt exceeded its deadline
    - ABORT: Cancellation token was signaled
    - DECODE: Body did not match the declared response type
    """

    CONFIGURATION = "CONFIGURATION"
    NETWORK = "NETWORK"
    STATUS = "STATUS"
    TIMEOUT = "TIMEOUT"
    ABORT = "ABORT"
    DECODE = "DECODE"


RETRYABLE_ERROR_CLASSES = frozenset(
    {ErrorClass.NETWORK, ErrorClass.STATUS, ErrorClass.TIMEOUT}
)


class ErrorDescriptor(BaseModel):
    """Typed error from a dispatch.

    Provides structured information about what went wrong, so callers can
    tell "the server responded but the body was wrong" apart from "the
    server was unreachable".
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    error_class: ErrorClass = Field(description="Classification of the error")
    message: Annotated[str, Field(min_length=1, description="Human-readable message")]
    status_code: int | None = Field(
        default=None, description="HTTP status code if available"
    )
    status_text: str | None = Field(
        default=None, description="HTTP reason phrase if available"
    )
    body: Any = Field(default=None, description="Decoded error body, if any")

    @property
    def retryable(self) -> bool:
        """Check if the error class allows another attempt."""
        return self.error_class in RETRYABLE_ERROR_CLASSES


@dataclass(frozen=True)
class FormData:
    """Pre-built form payload.

    Sent as application/x-www-form-urlencoded, or as multipart/form-data
    when files are present. Never serialized to JSON.

    Attributes:
        fields: Form field names and values.
        files: Optional httpx-style file mapping.
    """

    fields: Mapping[str, str] = field(default_factory=dict)
    files: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class Blob:
    """Binary body together with its media type.

    Attributes:
        content: Raw body bytes.
        content_type: Media type reported by the server.
    """

    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        """Get the size of the blob in bytes."""
        return len(self.content)


def find_header(headers: Mapping[str, str], name: str) -> str | None:
    """Look up a header value by case-insensitive name.

    Args:
        headers: Header mapping.
        name: Header name to find.

    Returns:
        Header value, or None if absent.
    """
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


ProgressCallback = Callable[[int, int | None], None]
SuccessCallback = Callable[[Any], None]
ErrorCallback = Callable[[ErrorDescriptor], None]


class RequestConfig(BaseModel):
    """Configuration for one logical request.

    Immutable once dispatch begins. Only method and url are required;
    everything else defaults to no retry, no timeout, text response and
    the event-driven transport.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    method: Annotated[str, Field(min_length=1, description="HTTP verb")]
    url: Annotated[str, Field(min_length=1, description="Target URL")]
    headers: dict[str, str] = Field(default_factory=dict)
    data: Any = Field(default=None, description="Body or form payload")
    timeout_ms: Annotated[float | None, Field(gt=0)] = None
    retries: Annotated[int, Field(ge=0)] = DEFAULT_RETRIES
    retry_delay_ms: Annotated[int | None, Field(ge=0)] = None
    retry_schedule: tuple[Annotated[int, Field(ge=0)], ...] | None = None
    response_type: ResponseType = ResponseType.TEXT
    on_progress: ProgressCallback | None = None
    on_success: SuccessCallback | None = None
    on_error: ErrorCallback | None = None
    cancel_token: CancellationToken | None = None
    use_fetch: bool = Field(
        default=False,
        description="If True, use the streaming transport instead of event-driven",
    )

    @field_validator("method")
    @classmethod
    def normalize_method(cls, v: str) -> str:
        """Upper-case the HTTP verb."""
        return v.strip().upper()

    @field_validator("headers")
    @classmethod
    def validate_unique_headers(cls, v: dict[str, str]) -> dict[str, str]:
        """Ensure header names are unique regardless of case."""
        seen: set[str] = set()
        for key in v:
            lowered = key.lower()
            if lowered in seen:
                msg = f"Duplicate header name (case-insensitive): '{key}'"
                raise ValueError(msg)
            seen.add(lowered)
        return v

    @property
    def content_type(self) -> str | None:
        """Get the Content-Type header, looked up case-insensitively."""
        return find_header(self.headers, CONTENT_TYPE_HEADER)

    @property
    def is_cancelled(self) -> bool:
        """Check if the cancellation token has been signaled."""
        return self.cancel_token is not None and self.cancel_token.cancelled


class Success(BaseModel):
    """Successful outcome carrying the decoded body."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["success"] = "success"
    value: Any = Field(default=None, description="Decoded response body")
    status_code: int = Field(ge=100, le=599, description="HTTP status code")
    status_text: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    url: str = ""
    attempts: Annotated[int, Field(ge=1)] = 1

    @property
    def is_success(self) -> bool:
        """Check if the outcome is a success."""
        return True


class Failure(BaseModel):
    """Failed outcome carrying the error descriptor."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["failure"] = "failure"
    error: ErrorDescriptor
    attempts: Annotated[int, Field(ge=0)] = 1

    @property
    def is_success(self) -> bool:
        """Check if the outcome is a success."""
        return False


Outcome = Success | Failure
