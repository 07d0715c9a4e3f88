"""Configuration-driven async HTTP request dispatcher."""

from netdispatch.observability import configure_logging
from netdispatch.request import (
    Blob,
    CancellationToken,
    Dispatcher,
    ErrorClass,
    ErrorDescriptor,
    Failure,
    FormData,
    Outcome,
    RequestConfig,
    ResponseType,
    Success,
    delete,
    dispatch,
    get,
    patch,
    post,
    put,
)
from netdispatch.settings import DispatchSettings, get_settings


__version__ = "0.1.0"

__all__ = [
    "Blob",
    "CancellationToken",
    "DispatchSettings",
    "Dispatcher",
    "ErrorClass",
    "ErrorDescriptor",
    "Failure",
    "FormData",
    "Outcome",
    "RequestConfig",
    "ResponseType",
    "Success",
    "configure_logging",
    "delete",
    "dispatch",
    "get",
    "get_settings",
    "patch",
    "post",
    "put",
]
