"""Entry point: decode one raw RFC 5322 message into an :class:`Email`."""

import logging
from typing import BinaryIO, Callable, Optional, Union

from mime_decoder.content_type import parse_content_type
from mime_decoder.headers import decode_header_fields, decode_header_map, read_message
from mime_decoder.models import Email
from mime_decoder.multipart import (
    TEXT_HTML,
    TEXT_PLAIN,
    PartContext,
    UniqueIdSource,
    decode_text,
    walk_multipart,
)
from mime_decoder.transfer import decode_content

logger = logging.getLogger(__name__)


def _read_source(source: Union[bytes, bytearray, BinaryIO]) -> bytes:
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source)
    return source.read()


def parse_email(
    source: Union[bytes, bytearray, BinaryIO],
    unique_id: Optional[Callable[[], object]] = None,
) -> Email:
    """Decode a complete message.

    ``source`` is the raw message as bytes or a binary stream positioned at its
    first header line. ``unique_id`` produces the suffix of fallback attachment
    names (``attachment-<id>``); by default a clock reading unique within the
    parse.

    Raises a :class:`~mime_decoder.errors.MimeDecodeError` subclass on the first
    decoding failure; I/O errors of the stream propagate unchanged. A
    :class:`~mime_decoder.errors.HeaderFieldError` carries the partially
    decoded message in its ``email`` attribute: header map, content type unset,
    typed fields filled up to the failing one.
    """
    raw = _read_source(source)
    message, body = read_message(raw)

    fields = decode_header_fields(message)
    header = decode_header_map(message)
    if fields.error is not None:
        fields.error.email = Email(header=header, **fields.as_kwargs())
        raise fields.error

    content_type = message.get("Content-Type", "") or ""
    media_type, params = parse_content_type(content_type)
    transfer_encoding = message.get("Content-Transfer-Encoding", "")
    logger.debug("top-level content type %s, %d body bytes", media_type, len(body))

    text_body = ""
    html_body = ""
    content = None
    attachments = ()
    embedded_files = ()

    context = PartContext.for_media_type(media_type)
    if context is not None:
        result = walk_multipart(body, params.get("boundary"), context, unique_id or UniqueIdSource())
        text_body = result.text.text
        html_body = result.html.text
        attachments = tuple(result.attachments)
        embedded_files = tuple(result.embedded_files)
    elif media_type == TEXT_PLAIN:
        text_body = decode_text(decode_content(body, transfer_encoding, content_type))
    elif media_type == TEXT_HTML:
        html_body = decode_text(decode_content(body, transfer_encoding, content_type))
    else:
        content = decode_content(body, transfer_encoding, content_type)

    return Email(
        header=header,
        content_type=content_type,
        content=content,
        text_body=text_body,
        html_body=html_body,
        attachments=attachments,
        embedded_files=embedded_files,
        **fields.as_kwargs()
    )
