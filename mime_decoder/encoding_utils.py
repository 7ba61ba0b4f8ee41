"""RFC 2047 encoded-word decoding for header values."""

import base64
import binascii
import logging
import re
from email.errors import HeaderParseError
from email.header import decode_header
from typing import Optional, Tuple

from mime_decoder.charsets import is_supported, to_text

logger = logging.getLogger(__name__)

KOI8_MARKER = "=?koi8-r"
_KOI8_PREFIXES = ("=?koi8-r?b?", "=?koi8-r?q?")
_KOI8_PREFIX_LEN = 11

# "=" must open a hex escape or a soft line break.
_BAD_QP_ESCAPE_RE = re.compile(r"=(?![0-9A-Fa-f]{2}|\r?\n)")


def _b64(payload: str) -> bytes:
    return base64.b64decode(payload.encode("ascii"), validate=True)


def decode_encoded_word(word: str) -> str:
    """Decode one ``=?charset?enc?payload?=`` token; raise ValueError otherwise."""
    try:
        parts = decode_header(word)
    except HeaderParseError as exc:
        raise ValueError("invalid encoded word {!r}".format(word)) from exc
    if len(parts) != 1 or not parts[0][1]:
        raise ValueError("not an encoded word: {!r}".format(word))
    data, charset = parts[0]
    # RFC 2231 allows a language suffix: =?utf-8*en?Q?...?=
    charset = charset.split("*", 1)[0]

    if is_supported(charset):
        return to_text(data, charset)
    try:
        return data.decode(charset, errors="replace")
    except LookupError as exc:
        raise ValueError("unhandled charset {!r}".format(charset)) from exc


def decode_koi8(s: str) -> Tuple[bool, str]:
    """Decode a whole header written as a single KOI8-R encoded block.

    Some producers encode an entire header as one KOI8-R word that would not pass
    a regular encoded-word decoder. Returns ``(False, "")`` when ``s`` is not such
    a value or cannot be decoded.
    """
    if not s.lower().startswith(KOI8_MARKER):
        return False, ""

    prefix = s[:_KOI8_PREFIX_LEN].lower()
    if prefix not in _KOI8_PREFIXES or len(s) < _KOI8_PREFIX_LEN + 2 or not s.endswith("?="):
        logger.warning("KOI8-R header has an unexpected shape, keeping it as is")
        return False, ""

    payload = s[_KOI8_PREFIX_LEN:-2]
    if prefix[-2] == "b":
        try:
            data = _b64(payload)
        except (binascii.Error, UnicodeEncodeError):
            logger.warning("KOI8-R header base64 decode failed, keeping it as is")
            return False, ""
    else:
        if _BAD_QP_ESCAPE_RE.search(payload):
            logger.warning("KOI8-R header quoted-printable decode failed, keeping it as is")
            return False, ""
        data = binascii.a2b_qp(payload.encode("ascii", "replace"))

    return True, to_text(data, "koi8-r")


def decode_mime_sentence(s: Optional[str]) -> str:
    """Decode a header value made of RFC 2047 encoded words and plain words.

    Adjacent encoded words are joined without a separator; plain words keep one
    leading space unless they open the value.
    """
    if not s:
        return ""

    if s.lower().startswith(KOI8_MARKER):
        ok, decoded = decode_koi8(s)
        return decoded if ok else s

    result = []
    for word in s.split(" "):
        try:
            result.append(decode_encoded_word(word))
        except ValueError:
            result.append(word if not result else " " + word)
    return "".join(result)


def safe_filename(name: Optional[str]) -> str:
    """Filename safe to offer as a download name."""
    if not name:
        return "unnamed"
    cleaned = re.sub(r'[<>:"/\\|?*\x00-\x1f]', "_", name)
    cleaned = cleaned.strip(". ")
    return cleaned or "unnamed"
