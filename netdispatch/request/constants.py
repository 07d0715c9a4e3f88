"""HTTP constants for the request dispatch layer.

Centralizes all HTTP-related constants to avoid duplication across modules.
"""

# HTTP Status Code Ranges
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 300

# Methods that never carry a request body
BODYLESS_METHODS = frozenset({"GET", "HEAD"})

# Content types
CONTENT_TYPE_HEADER = "Content-Type"
CONTENT_TYPE_JSON = "application/json"
XML_CONTENT_TYPES = frozenset({"application/xml", "text/xml"})
XML_CONTENT_TYPE_SUFFIX = "+xml"

# Retry defaults
DEFAULT_RETRIES = 0
DEFAULT_RETRY_DELAY_MS = 1000

# Chunk size for streaming reads
DEFAULT_CHUNK_SIZE = 8192

# Characters left unescaped when encoding a URI component
URI_COMPONENT_SAFE_CHARS = "-_.!~*'()"
