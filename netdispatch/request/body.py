"""Request body serialization shared by both transports."""

import json
from collections.abc import Mapping
from typing import Any

from netdispatch.request.constants import BODYLESS_METHODS, CONTENT_TYPE_JSON
from netdispatch.request.decoder import media_type
from netdispatch.request.models import FormData, RequestConfig


def is_json_content_type(content_type: str | None) -> bool:
    """Check if a Content-Type declares JSON.

    Args:
        content_type: Header value, possibly with parameters.

    Returns:
        True for application/json and any +json type.
    """
    kind = media_type(content_type)
    return kind == CONTENT_TYPE_JSON or kind.endswith("+json")


def to_json_text(value: Any) -> str:
    """Serialize a value to compact JSON text.

    Output has no whitespace between tokens and keeps non-ASCII characters.

    Raises:
        TypeError: If the value is not JSON-serializable.
        ValueError: If the value contains NaN or infinity.
    """
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def build_body_kwargs(config: RequestConfig) -> dict[str, Any]:
    """Build httpx request keyword arguments for the body.

    GET and HEAD never carry a body. A structured body is serialized to
    JSON only when the caller declared a JSON content type; every other
    shape is passed to httpx unchanged.

    Args:
        config: Request configuration.

    Returns:
        Dictionary with "content", "data" and/or "files" keys.

    Raises:
        TypeError: If a JSON body is not serializable.
        ValueError: If a JSON body contains NaN or infinity.
    """
    data = config.data
    if data is None or config.method in BODYLESS_METHODS:
        return {}

    if isinstance(data, FormData):
        kwargs: dict[str, Any] = {"data": dict(data.fields)}
        if data.files:
            kwargs["files"] = data.files
        return kwargs

    if isinstance(data, str | bytes | bytearray):
        return {"content": data}

    if is_json_content_type(config.content_type):
        return {"content": to_json_text(data)}

    if isinstance(data, Mapping):
        return {"data": dict(data)}

    return {"content": str(data)}
