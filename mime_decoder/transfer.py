"""Content-Transfer-Encoding decoding of part bodies."""

import base64
import binascii
from typing import Optional

from mime_decoder.charsets import decode_charset
from mime_decoder.errors import TransferDecodeError, UnknownTransferEncoding

OCTET_STREAM = "application/octet-stream"

IDENTITY_ENCODINGS = {"", "7bit", "8bit"}


def _decode_base64(data: bytes) -> bytes:
    compact = b"".join(data.split())
    try:
        return base64.b64decode(compact, validate=True)
    except binascii.Error as exc:
        raise TransferDecodeError("base64 decode failed: {}".format(exc)) from exc


def _decode_quoted_printable(data: bytes) -> bytes:
    return binascii.a2b_qp(data)


def decode_transfer_encoding(data: bytes, encoding: Optional[str]) -> bytes:
    """Undo the transfer encoding only, without touching the charset."""
    name = (encoding or "").strip().lower()
    if name == "base64":
        return _decode_base64(data)
    if name == "quoted-printable":
        return _decode_quoted_printable(data)
    if name in IDENTITY_ENCODINGS:
        return data
    raise UnknownTransferEncoding(encoding)


def media_type_of(content_type: Optional[str]) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def decode_content(data: bytes, encoding: Optional[str], content_type: Optional[str]) -> bytes:
    """Decode a part body to UTF-8 bytes.

    ``application/octet-stream`` payloads skip charset handling so binary data is
    never reinterpreted as text.
    """
    decoded = decode_transfer_encoding(data, encoding)
    if media_type_of(content_type) == OCTET_STREAM:
        return decoded
    return decode_charset(decoded, content_type)
