"""Reading header blocks and building typed header fields.

Typed fields are parsed through a :class:`HeaderParser`, which keeps the first
failure and turns every later parse into a no-op returning a zero value. The
fields are visited in a fixed order, so a malformed ``From`` leaves ``To``,
``Date`` and everything after them empty while ``Subject`` and ``Sender`` are
still filled in.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email import errors as email_errors
from email.headerregistry import HeaderRegistry
from email.message import Message
from email.parser import BytesParser
from email.policy import Compat32
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from mime_decoder.encoding_utils import decode_mime_sentence
from mime_decoder.errors import (
    HeaderFieldError,
    MalformedAddressList,
    MalformedDate,
    MalformedMessage,
)
from mime_decoder.models import Address

ADDRESS_HEADERS = frozenset({
    "from", "sender", "reply-to", "to", "cc", "bcc",
    "resent-from", "resent-sender", "resent-to", "resent-cc", "resent-bcc",
})

_FOLD_RE = re.compile(r"\r?\n[ \t]+")

_MONTHS = {
    "Jan": 1, "Feb": 2, "Mar": 3, "Apr": 4, "May": 5, "Jun": 6,
    "Jul": 7, "Aug": 8, "Sep": 9, "Oct": 10, "Nov": 11, "Dec": 12,
}
_DATE_BODY = (
    r"(?:Mon|Tue|Wed|Thu|Fri|Sat|Sun), (?P<day>{day}) (?P<month>{months}) (?P<year>\d{{4}}) "
    r"(?P<hour>\d{{1,2}}):(?P<minute>\d{{2}}):(?P<second>\d{{2}}) "
    r"(?P<sign>[+-])(?P<tzh>\d{{2}})(?P<tzm>\d{{2}})"
)
_ZONE_COMMENT = r" \((?:[A-Z]{3,5}|ChST|MeST|GMT[+-]\d{1,2}|[+-]\d{2}(?:\d{2})?)\)"

# Tried in order, first match wins.
DATE_LAYOUTS = tuple(
    re.compile("^" + _DATE_BODY.format(day=day, months="|".join(_MONTHS)) + suffix + "$")
    for suffix in ("", _ZONE_COMMENT)
    for day in (r"\d{2}", r"\d{1,2}")
)


class _RawHeaderPolicy(Compat32):
    """compat32 with header values returned unfolded and 8-bit bytes read as UTF-8."""

    def header_fetch_parse(self, name, value):
        value = value.encode("utf-8", "surrogateescape").decode("utf-8", "replace")
        return _FOLD_RE.sub(" ", value).strip()


HEADER_POLICY = _RawHeaderPolicy()

_HEADER_FACTORY = HeaderRegistry()


def read_message(raw: bytes) -> Tuple[Message, bytes]:
    """Split ``raw`` into its parsed header block and the untouched body bytes."""
    message = BytesParser(policy=HEADER_POLICY).parsebytes(raw, headersonly=True)
    for defect in message.defects:
        if isinstance(defect, email_errors.MissingHeaderBodySeparatorDefect):
            raise MalformedMessage("malformed header block")
    payload = message.get_payload() or ""
    return message, payload.encode("utf-8", "surrogateescape")


def canonical_header_name(name: str) -> str:
    return "-".join(p[:1].upper() + p[1:].lower() for p in name.strip().split("-"))


def parse_address_list(field_name: str, value: str) -> Tuple[Address, ...]:
    """Parse an RFC 5322 address list; display names have encoded words decoded."""
    try:
        header = _HEADER_FACTORY(field_name, value)
        addresses = header.addresses
    except (email_errors.HeaderParseError, IndexError, ValueError) as exc:
        raise MalformedAddressList(field_name, value, str(exc)) from exc

    for defect in header.defects:
        if isinstance(defect, email_errors.InvalidHeaderDefect):
            raise MalformedAddressList(field_name, value, str(defect))

    result = []
    for addr in addresses:
        if not addr.username or not addr.domain:
            raise MalformedAddressList(field_name, value, "missing addr-spec")
        result.append(Address(name=addr.display_name, address=addr.addr_spec))
    return tuple(result)


def parse_date(field_name: str, value: str) -> datetime:
    for layout in DATE_LAYOUTS:
        match = layout.match(value)
        if match is None:
            continue
        offset = timedelta(hours=int(match.group("tzh")), minutes=int(match.group("tzm")))
        if match.group("sign") == "-":
            offset = -offset
        try:
            return datetime(
                int(match.group("year")),
                _MONTHS[match.group("month")],
                int(match.group("day")),
                int(match.group("hour")),
                int(match.group("minute")),
                int(match.group("second")),
                tzinfo=timezone(offset),
            )
        except ValueError as exc:
            raise MalformedDate(field_name, value, str(exc)) from exc
    raise MalformedDate(field_name, value, "no matching date layout")


class HeaderParser:
    """Parses header fields, remembering only the first failure."""

    def __init__(self, message: Message):
        self.message = message
        self.error: Optional[HeaderFieldError] = None

    def _get(self, name: str) -> str:
        return self.message.get(name, "") or ""

    def parse_text(self, name: str) -> str:
        if self.error is not None:
            return ""
        return decode_mime_sentence(self._get(name))

    def parse_address_list(self, name: str) -> Tuple[Address, ...]:
        if self.error is not None:
            return ()
        value = self._get(name)
        if not value.strip():
            return ()
        try:
            return parse_address_list(name, value)
        except MalformedAddressList as exc:
            self.error = exc
            return ()

    def parse_address(self, name: str) -> Optional[Address]:
        if self.error is not None:
            return None
        value = self._get(name)
        if not value.strip():
            return None
        try:
            addresses = parse_address_list(name, value)
        except MalformedAddressList as exc:
            self.error = exc
            return None
        if len(addresses) != 1:
            self.error = MalformedAddressList(name, value, "expected a single address")
            return None
        return addresses[0]

    def parse_date(self, name: str) -> Optional[datetime]:
        if self.error is not None:
            return None
        value = self._get(name)
        if value == "":
            return None
        try:
            return parse_date(name, value)
        except MalformedDate as exc:
            self.error = exc
            return None

    def parse_message_id(self, name: str) -> str:
        if self.error is not None:
            return ""
        return trim_message_id(self._get(name))

    def parse_message_id_list(self, name: str) -> Tuple[str, ...]:
        if self.error is not None:
            return ()
        return tuple(
            trim_message_id(token)
            for token in self._get(name).split(" ")
            if token.strip()
        )


def trim_message_id(value: str) -> str:
    return value.strip("<> \t\r\n")


@dataclass
class HeaderFields:
    subject: str = ""
    sender: Optional[Address] = None
    from_: Tuple[Address, ...] = ()
    reply_to: Tuple[Address, ...] = ()
    to: Tuple[Address, ...] = ()
    cc: Tuple[Address, ...] = ()
    bcc: Tuple[Address, ...] = ()
    date: Optional[datetime] = None
    resent_from: Tuple[Address, ...] = ()
    resent_sender: Optional[Address] = None
    resent_to: Tuple[Address, ...] = ()
    resent_cc: Tuple[Address, ...] = ()
    resent_bcc: Tuple[Address, ...] = ()
    resent_message_id: str = ""
    message_id: str = ""
    in_reply_to: Tuple[str, ...] = ()
    references: Tuple[str, ...] = ()
    resent_date: Optional[datetime] = None
    error: Optional[HeaderFieldError] = None

    def as_kwargs(self) -> Dict[str, object]:
        values = dict(self.__dict__)
        values.pop("error")
        return values


def decode_header_fields(message: Message) -> HeaderFields:
    """Build the typed header fields of ``message``.

    Never raises for malformed fields: the first failure is stored in
    ``HeaderFields.error`` and every field after it keeps its zero value.
    """
    hp = HeaderParser(message)
    fields = HeaderFields()
    fields.subject = hp.parse_text("Subject")
    fields.sender = hp.parse_address("Sender")
    fields.from_ = hp.parse_address_list("From")
    fields.reply_to = hp.parse_address_list("Reply-To")
    fields.to = hp.parse_address_list("To")
    fields.cc = hp.parse_address_list("Cc")
    fields.bcc = hp.parse_address_list("Bcc")
    fields.date = hp.parse_date("Date")
    fields.resent_from = hp.parse_address_list("Resent-From")
    fields.resent_sender = hp.parse_address("Resent-Sender")
    fields.resent_to = hp.parse_address_list("Resent-To")
    fields.resent_cc = hp.parse_address_list("Resent-Cc")
    fields.resent_bcc = hp.parse_address_list("Resent-Bcc")
    fields.resent_message_id = hp.parse_message_id("Resent-Message-ID")
    fields.message_id = hp.parse_message_id("Message-ID")
    fields.in_reply_to = hp.parse_message_id_list("In-Reply-To")
    fields.references = hp.parse_message_id_list("References")
    fields.resent_date = hp.parse_date("Resent-Date")
    fields.error = hp.error
    return fields


def decode_header_map(message: Message) -> Mapping[str, Tuple[str, ...]]:
    """Map canonical header names to their values, encoded words decoded.

    Address-bearing headers are kept as they are; their display names are
    decoded while parsing the address list instead.
    """
    collected: Dict[str, List[str]] = {}
    for name, value in message.items():
        if name.lower() not in ADDRESS_HEADERS:
            value = decode_mime_sentence(value)
        collected.setdefault(canonical_header_name(name), []).append(value)
    return MappingProxyType({k: tuple(v) for k, v in collected.items()})
