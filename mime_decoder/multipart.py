"""Recursive walk over multipart/mixed, multipart/alternative and multipart/related bodies.

Each multipart kind is a :class:`PartContext`. All contexts share one walk:
text/plain and text/html leaves are appended to the body accumulators, nested
multiparts the context allows are walked recursively and merged, and any other
leaf goes through the context's default rule (attachment for ``mixed``,
embedded file for ``alternative`` and ``related``). A leaf matching nothing
aborts the whole parse with :class:`UnsupportedPartType`.
"""

import enum
import logging
import re
import time
from dataclasses import dataclass, field
from email.message import Message
from typing import Callable, Iterator, List, Optional

from mime_decoder.content_type import parse_content_type
from mime_decoder.encoding_utils import decode_mime_sentence
from mime_decoder.errors import InvalidContentType, MalformedMultipart, UnsupportedPartType
from mime_decoder.headers import read_message
from mime_decoder.models import Attachment, EmbeddedFile
from mime_decoder.transfer import OCTET_STREAM, decode_content

logger = logging.getLogger(__name__)

MULTIPART_MIXED = "multipart/mixed"
MULTIPART_ALTERNATIVE = "multipart/alternative"
MULTIPART_RELATED = "multipart/related"
TEXT_PLAIN = "text/plain"
TEXT_HTML = "text/html"

FALLBACK_FILENAME_PREFIX = "attachment-"


class UniqueIdSource:
    """Strictly increasing ids for fallback attachment names, one per parse."""

    def __init__(self, clock: Callable[[], int] = time.time_ns):
        self._clock = clock
        self._last = None

    def __call__(self) -> int:
        value = self._clock()
        if self._last is not None and value <= self._last:
            value = self._last + 1
        self._last = value
        return value


def iter_parts(body: bytes, boundary: Optional[str]) -> Iterator[bytes]:
    """Yield the raw bytes (headers and body) of each part, in order.

    The line break in front of a delimiter line belongs to the delimiter.
    Preamble and epilogue are skipped.
    """
    if not boundary:
        raise MalformedMultipart("multipart body without boundary parameter")

    delimiter = re.compile(
        rb"^--" + re.escape(boundary.encode("utf-8")) + rb"(--)?[ \t]*\r?$",
        re.MULTILINE,
    )
    start = None
    for match in delimiter.finditer(body):
        if start is not None:
            end = match.start()
            if body[end - 2:end] == b"\r\n":
                end -= 2
            elif body[end - 1:end] == b"\n":
                end -= 1
            yield body[start:max(start, end)]
        if match.group(1):
            return
        start = match.end()
        if body[start:start + 1] == b"\n":
            start += 1

    if start is None:
        raise MalformedMultipart("no opening boundary {!r}".format(boundary))
    raise MalformedMultipart("no closing boundary {!r}".format(boundary))


def read_part(raw: bytes) -> "Part":
    message, body = read_message(raw)
    content_type = message.get("Content-Type", "") or ""
    try:
        media_type, params = parse_content_type(content_type)
    except InvalidContentType:
        logger.debug("invalid part content type, aborting")
        raise
    return Part(message=message, body=body, content_type=content_type,
                media_type=media_type, params=params)


@dataclass
class Part:
    message: Message
    body: bytes
    content_type: str
    media_type: str
    params: dict

    def header(self, name: str) -> str:
        return self.message.get(name, "") or ""

    @property
    def filename(self) -> str:
        # Content-Disposition filename, then Content-Type name.
        name = self.message.get_filename()
        return name or ""

    def decode(self) -> bytes:
        return decode_content(self.body, self.header("Content-Transfer-Encoding"), self.content_type)


class BodyAccumulator:
    """Concatenation of every text leaf of one kind, in document order.

    The individual fragments stay available through :attr:`parts`.
    """

    def __init__(self):
        self.parts: List[str] = []

    def add(self, fragment: str) -> None:
        self.parts.append(fragment)

    def extend(self, other: "BodyAccumulator") -> None:
        self.parts.extend(other.parts)

    @property
    def text(self) -> str:
        return "".join(self.parts)

    def __str__(self):
        return self.text


@dataclass
class WalkResult:
    text: BodyAccumulator = field(default_factory=BodyAccumulator)
    html: BodyAccumulator = field(default_factory=BodyAccumulator)
    attachments: List[Attachment] = field(default_factory=list)
    embedded_files: List[EmbeddedFile] = field(default_factory=list)

    def merge(self, other: "WalkResult") -> None:
        self.text.extend(other.text)
        self.html.extend(other.html)
        self.attachments.extend(other.attachments)
        self.embedded_files.extend(other.embedded_files)


def decode_text(data: bytes) -> str:
    """Body text from decoded UTF-8 bytes with one trailing line feed trimmed.

    A carriage return in front of it stays.
    """
    text = data.decode("utf-8", errors="replace")
    if text.endswith("\n"):
        return text[:-1]
    return text


def is_attachment(part: Part) -> bool:
    return bool(part.filename) or part.media_type == OCTET_STREAM


def is_embedded_file(part: Part) -> bool:
    return part.header("Content-Transfer-Encoding") != ""


def decode_attachment(part: Part, unique_id: Callable[[], object]) -> Attachment:
    filename = decode_mime_sentence(part.filename)
    if not filename:
        filename = "{}{}".format(FALLBACK_FILENAME_PREFIX, unique_id())
    data = part.decode()
    if part.media_type == OCTET_STREAM:
        data = part.body
    return Attachment(filename=filename, content_type=part.media_type, data=data)


def decode_embedded_file(part: Part) -> EmbeddedFile:
    cid = decode_mime_sentence(part.header("Content-Id"))
    data = part.decode()
    return EmbeddedFile(cid=cid.strip("<>"), content_type=part.content_type, data=data)


class PartContext(enum.Enum):
    MIXED = MULTIPART_MIXED
    ALTERNATIVE = MULTIPART_ALTERNATIVE
    RELATED = MULTIPART_RELATED

    @classmethod
    def for_media_type(cls, media_type: str) -> Optional["PartContext"]:
        for context in cls:
            if context.value == media_type:
                return context
        return None

    @property
    def nested(self) -> frozenset:
        """Multipart kinds walked recursively inside this context."""
        if self is PartContext.MIXED:
            return frozenset({PartContext.ALTERNATIVE, PartContext.RELATED})
        if self is PartContext.ALTERNATIVE:
            return frozenset({PartContext.RELATED})
        return frozenset({PartContext.ALTERNATIVE})

    def classify_leaf(self, part: Part, result: WalkResult, unique_id: Callable[[], object]) -> None:
        if self is PartContext.MIXED:
            if is_attachment(part):
                result.attachments.append(decode_attachment(part, unique_id))
                return
        elif is_embedded_file(part):
            result.embedded_files.append(decode_embedded_file(part))
            return
        raise UnsupportedPartType(part.media_type, self.value)


def walk_multipart(
    body: bytes,
    boundary: Optional[str],
    context: PartContext,
    unique_id: Optional[Callable[[], object]] = None,
) -> WalkResult:
    """Decode one multipart body of kind ``context`` to the end of its parts."""
    if unique_id is None:
        unique_id = UniqueIdSource()
    result = WalkResult()

    for index, raw in enumerate(iter_parts(body, boundary)):
        part = read_part(raw)
        logger.debug("%s part %d: %s", context.value, index, part.media_type)

        if part.media_type == TEXT_PLAIN:
            result.text.add(decode_text(part.decode()))
            continue
        if part.media_type == TEXT_HTML:
            result.html.add(decode_text(part.decode()))
            continue

        nested = PartContext.for_media_type(part.media_type)
        if nested is not None and nested in context.nested:
            result.merge(walk_multipart(part.body, part.params.get("boundary"), nested, unique_id))
            continue

        context.classify_leaf(part, result, unique_id)

    return result
