"""Content-Type resolution: sanitizing and parsing media type headers."""

from email.headerregistry import HeaderRegistry
from typing import Dict, Optional, Tuple

from mime_decoder.errors import InvalidContentType

DEFAULT_MEDIA_TYPE = "text/plain"

_HEADER_FACTORY = HeaderRegistry()


def sanitize_content_type_header(content_type: str) -> str:
    """Drop duplicate parameters, keeping the first one.

    Keys compare case-insensitively and values are not looked at, so
    ``text/html; charset=utf-8; charset="UTF-8"`` becomes
    ``text/html; charset=utf-8``.
    """
    seen = set()
    result = []
    for param in content_type.split(";"):
        param = param.strip()
        if not param:
            continue
        if "=" in param:
            key = param.split("=", 1)[0].lower()
            if key in seen:
                continue
            seen.add(key)
        result.append(param)
    return "; ".join(result)


def parse_media_type(value: str) -> Tuple[str, Dict[str, str]]:
    """Parse ``type/subtype; key=value; ...`` into a lower-cased media type and params.

    RFC 2231 extended and continued parameters come back folded into plain keys.
    """
    header = _HEADER_FACTORY("content-type", value)
    if header.defects:
        raise InvalidContentType(value, str(header.defects[0]))
    return header.content_type, dict(header.params)


def parse_content_type(content_type: Optional[str]) -> Tuple[str, Dict[str, str]]:
    """Resolve a Content-Type header value; an absent header means ``text/plain``."""
    if not content_type:
        return DEFAULT_MEDIA_TYPE, {}
    try:
        return parse_media_type(sanitize_content_type_header(content_type))
    except InvalidContentType as exc:
        raise InvalidContentType(content_type, exc.reason) from None
