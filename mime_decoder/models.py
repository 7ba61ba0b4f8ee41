import base64
from dataclasses import dataclass, field, asdict
from datetime import datetime
from email.utils import formataddr
from types import MappingProxyType
from typing import Optional, Tuple, Mapping


def _b64(data: Optional[bytes]) -> Optional[str]:
    if data is None:
        return None
    return base64.b64encode(data).decode("ascii")


@dataclass(frozen=True)
class Address:
    name: str
    address: str

    def __str__(self):
        return formataddr((self.name, self.address))

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class Attachment:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    def to_dict(self):
        return {
            "filename": self.filename,
            "content_type": self.content_type,
            "size": self.size,
            "data": _b64(self.data),
        }


@dataclass(frozen=True)
class EmbeddedFile:
    cid: str
    content_type: str
    data: bytes

    def to_dict(self):
        return {
            "cid": self.cid,
            "content_type": self.content_type,
            "size": len(self.data),
            "data": _b64(self.data),
        }


def _addresses(items):
    return [a.to_dict() for a in items]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class Email:
    """A decoded message. Address-bearing header values stay undecoded in ``header``."""

    header: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: MappingProxyType({}))

    subject: str = ""
    sender: Optional[Address] = None
    from_: Tuple[Address, ...] = ()
    reply_to: Tuple[Address, ...] = ()
    to: Tuple[Address, ...] = ()
    cc: Tuple[Address, ...] = ()
    bcc: Tuple[Address, ...] = ()
    date: Optional[datetime] = None
    message_id: str = ""
    in_reply_to: Tuple[str, ...] = ()
    references: Tuple[str, ...] = ()

    resent_from: Tuple[Address, ...] = ()
    resent_sender: Optional[Address] = None
    resent_to: Tuple[Address, ...] = ()
    resent_date: Optional[datetime] = None
    resent_cc: Tuple[Address, ...] = ()
    resent_bcc: Tuple[Address, ...] = ()
    resent_message_id: str = ""

    content_type: str = ""
    content: Optional[bytes] = None

    html_body: str = ""
    text_body: str = ""

    attachments: Tuple[Attachment, ...] = ()
    embedded_files: Tuple[EmbeddedFile, ...] = ()

    def get_header(self, name: str) -> str:
        """Return the first decoded value of header ``name``, or ``""``."""
        for key, values in self.header.items():
            if key.lower() == name.lower() and values:
                return values[0]
        return ""

    def to_dict(self):
        return {
            "header": {k: list(v) for k, v in self.header.items()},
            "subject": self.subject,
            "sender": self.sender.to_dict() if self.sender else None,
            "from": _addresses(self.from_),
            "reply_to": _addresses(self.reply_to),
            "to": _addresses(self.to),
            "cc": _addresses(self.cc),
            "bcc": _addresses(self.bcc),
            "date": _iso(self.date),
            "message_id": self.message_id,
            "in_reply_to": list(self.in_reply_to),
            "references": list(self.references),
            "resent_from": _addresses(self.resent_from),
            "resent_sender": self.resent_sender.to_dict() if self.resent_sender else None,
            "resent_to": _addresses(self.resent_to),
            "resent_date": _iso(self.resent_date),
            "resent_cc": _addresses(self.resent_cc),
            "resent_bcc": _addresses(self.resent_bcc),
            "resent_message_id": self.resent_message_id,
            "content_type": self.content_type,
            "content": _b64(self.content),
            "text_body": self.text_body,
            "html_body": self.html_body,
            "attachments": [a.to_dict() for a in self.attachments],
            "embedded_files": [e.to_dict() for e in self.embedded_files],
        }
