"""Single-byte charset transcoding of decoded part bodies to UTF-8."""

import codecs
from types import MappingProxyType
from typing import Optional

_CHARSET_SEPARATOR = "; charset="


def _decoding_table(codec: str) -> str:
    # Bytes the codec leaves undefined keep their own code point, so every
    # table has 256 defined entries.
    chars = []
    for value in range(256):
        try:
            chars.append(bytes([value]).decode(codec))
        except UnicodeDecodeError:
            chars.append(chr(value))
    return "".join(chars)


DECODING_TABLES = MappingProxyType({
    "windows-1252": _decoding_table("cp1252"),
    "iso-8859-1": _decoding_table("latin-1"),
    "koi8-r": _decoding_table("koi8_r"),
    "windows-1251": _decoding_table("cp1251"),
})


def extract_charset(content_type: Optional[str]) -> Optional[str]:
    """Return the lower-cased ``charset`` value of a Content-Type string, if any."""
    if not content_type or _CHARSET_SEPARATOR not in content_type:
        return None
    value = content_type.split(_CHARSET_SEPARATOR, 1)[1].split(";", 1)[0]
    value = value.strip(" \"'\n\r\t").lower()
    return value or None


def is_supported(charset: Optional[str]) -> bool:
    return bool(charset) and charset.lower() in DECODING_TABLES


def to_text(data: bytes, charset: str) -> str:
    """Decode ``data`` with one of the table charsets. Never fails."""
    table = DECODING_TABLES[charset.lower()]
    text, _ = codecs.charmap_decode(data, "strict", table)
    return text


def transcode(data: bytes, charset: Optional[str]) -> bytes:
    """Transcode ``data`` from ``charset`` to UTF-8.

    Charsets outside the table are assumed to be ASCII or UTF-8 already and the
    bytes are returned unchanged.
    """
    if not is_supported(charset):
        return data
    return to_text(data, charset).encode("utf-8")


def decode_charset(data: bytes, content_type: Optional[str]) -> bytes:
    return transcode(data, extract_charset(content_type))
