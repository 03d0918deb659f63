"""Default values shared across webquery modules."""

from __future__ import annotations

DEFAULT_TIMEOUT_SECONDS = 100.0
DEFAULT_USER_AGENT = ""
DEFAULT_ENCODING = "utf-8-sig"

CHUNK_SIZE = 64 * 1024

TEMP_FILE_RETRY_BUDGET_SECONDS = 5.0
TEMP_FILE_RETRY_DELAY_SECONDS = 0.1
TEMP_FILE_DEFAULT_STEM = "tmp"

HTML_MEDIA_TYPES = ("text/html", "application/xhtml+xml")

FORM_URLENCODED = "application/x-www-form-urlencoded"
MULTIPART_FORM_DATA = "multipart/form-data"

# Request headers that a request may set itself; config only fills them in.
REQUEST_OWNED_HEADERS = ("User-Agent", "Referer", "Accept", "Content-Type")

# Response headers that describe the entity rather than the message.
CONTENT_HEADER_NAMES = frozenset({"allow", "expires", "last-modified"})
CONTENT_HEADER_PREFIX = "content-"

SUPPORTED_PROXY_SCHEMES = ("http", "https", "socks4", "socks4a", "socks5", "socks5h")
SUPPORTED_CONFIG_SUFFIXES = (".json", ".yaml", ".yml")
JSON_INDENT = 2

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
