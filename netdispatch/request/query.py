"""Query-string encoding for GET and DELETE helpers."""

from collections.abc import Mapping
from urllib.parse import quote

from netdispatch.request.constants import URI_COMPONENT_SAFE_CHARS


def to_query_value(value: object) -> str:
    """Render a value the way it appears in a query string.

    Booleans become "true"/"false", None becomes "null", integral floats
    drop their fractional part and sequences are comma-joined.

    Args:
        value: Value to render.

    Returns:
        String form of the value.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, list | tuple):
        return ",".join(to_query_value(item) for item in value)
    return str(value)


def encode_uri_component(value: object) -> str:
    """Percent-encode a value for use as one query key or value.

    Args:
        value: Value to encode.

    Returns:
        Encoded string; a space becomes %20, never "+".
    """
    return quote(to_query_value(value), safe=URI_COMPONENT_SAFE_CHARS)


def build_query_string(params: Mapping[str, object]) -> str:
    """Build a query string from a mapping, preserving key order.

    Args:
        params: Query keys and values.

    Returns:
        Encoded "k=v&k2=v2" string without a leading "?".
    """
    return "&".join(
        f"{encode_uri_component(key)}={encode_uri_component(value)}"
        for key, value in params.items()
    )


def append_query(url: str, params: Mapping[str, object] | None) -> str:
    """Append encoded query parameters to a URL.

    Args:
        url: Base URL, which may already carry a query.
        params: Query keys and values.

    Returns:
        URL with the query appended, or the URL unchanged if params is empty.
    """
    if not params:
        return url
    query = build_query_string(params)
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{query}"
