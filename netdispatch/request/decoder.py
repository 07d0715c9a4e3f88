"""Response body decoding by declared response type."""

import json
from typing import Any
from xml.etree.ElementTree import ParseError

import defusedxml
import defusedxml.ElementTree as DefusedET
from bs4 import BeautifulSoup

from netdispatch.request.constants import XML_CONTENT_TYPE_SUFFIX, XML_CONTENT_TYPES
from netdispatch.request.errors import ResponseDecodeError
from netdispatch.request.models import Blob, ResponseType


DEFAULT_ENCODING = "utf-8"
DEFAULT_BLOB_CONTENT_TYPE = "application/octet-stream"


def media_type(content_type: str | None) -> str:
    """Extract the bare media type from a Content-Type value.

    Args:
        content_type: Header value such as "text/html; charset=utf-8".

    Returns:
        Lower-cased media type, or an empty string.
    """
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def is_xml_media_type(content_type: str | None) -> bool:
    """Check if a Content-Type denotes an XML document.

    Args:
        content_type: Header value.

    Returns:
        True for application/xml, text/xml and any +xml type.
    """
    kind = media_type(content_type)
    return kind in XML_CONTENT_TYPES or kind.endswith(XML_CONTENT_TYPE_SUFFIX)


class ResponseDecoder:
    """Turns raw body bytes into the value for a declared response type.

    Both transports hand the fully-read body to the same decoder, so a
    given response decodes identically regardless of transport.
    """

    def decode(
        self,
        body: bytes,
        response_type: ResponseType,
        content_type: str | None = None,
        encoding: str | None = None,
    ) -> Any:
        """Decode a body.

        Args:
            body: Raw response bytes.
            response_type: Declared response type.
            content_type: Response Content-Type header, if any.
            encoding: Charset from the response, if any.

        Returns:
            str for TEXT, parsed value for JSON, Blob for BLOB, bytes for
            ARRAYBUFFER, and an Element or BeautifulSoup for DOCUMENT.

        Raises:
            ResponseDecodeError: If the body does not match the type.
        """
        if response_type == ResponseType.JSON:
            return self._decode_json(body, encoding)
        if response_type == ResponseType.BLOB:
            return Blob(
                content=body,
                content_type=media_type(content_type) or DEFAULT_BLOB_CONTENT_TYPE,
            )
        if response_type == ResponseType.ARRAYBUFFER:
            return body
        if response_type == ResponseType.DOCUMENT:
            return self._decode_document(body, content_type, encoding)
        return self._decode_text(body, encoding, response_type)

    def _decode_text(
        self,
        body: bytes,
        encoding: str | None,
        response_type: ResponseType = ResponseType.TEXT,
    ) -> str:
        """Decode bytes to text, replacing undecodable sequences.

        Raises:
            ResponseDecodeError: If the charset is unknown.
        """
        charset = encoding or DEFAULT_ENCODING
        try:
            return body.decode(charset, errors="replace")
        except LookupError as e:
            raise ResponseDecodeError(
                response_type, f"unknown charset '{charset}'"
            ) from e

    def _decode_json(self, body: bytes, encoding: str | None) -> Any:
        """Parse a JSON body. An empty body decodes to None."""
        text = self._decode_text(body, encoding, ResponseType.JSON).lstrip("\ufeff")
        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ResponseDecodeError(ResponseType.JSON, str(e)) from e

    def _decode_document(
        self,
        body: bytes,
        content_type: str | None,
        encoding: str | None,
    ) -> Any:
        """Parse an XML or HTML document based on the Content-Type."""
        if is_xml_media_type(content_type):
            try:
                return DefusedET.fromstring(body)
            except (ParseError, defusedxml.DefusedXmlException) as e:
                raise ResponseDecodeError(ResponseType.DOCUMENT, str(e)) from e

        text = self._decode_text(body, encoding, ResponseType.DOCUMENT)
        return BeautifulSoup(text, "lxml")
