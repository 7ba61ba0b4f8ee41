"""Feed every message of an mbox file through the decoder."""

import logging
import mailbox
import os
from typing import Callable, Iterator, List, Optional, Tuple

from mime_decoder.errors import MimeDecodeError
from mime_decoder.models import Email
from mime_decoder.parser import parse_email

logger = logging.getLogger(__name__)


def iter_mbox_messages(mbox_path: str) -> Iterator[Tuple[str, bytes]]:
    """Yield ``(key, raw_bytes)`` for each message, without the ``From `` line."""
    mbox = mailbox.mbox(mbox_path, create=False)
    try:
        for key in mbox.iterkeys():
            yield str(key), mbox.get_bytes(key)
    finally:
        mbox.close()


def parse_mbox(
    mbox_path: str,
    unique_id: Optional[Callable[[], object]] = None,
) -> List[Tuple[str, Email]]:
    """Parse all messages of ``mbox_path``; the first failing message aborts."""
    source_name = os.path.basename(mbox_path)
    emails = []
    for key, raw in iter_mbox_messages(mbox_path):
        try:
            emails.append((key, parse_email(raw, unique_id=unique_id)))
        except MimeDecodeError as exc:
            logger.error("Message %s of %s could not be decoded: %s", key, source_name, type(exc).__name__)
            raise
    logger.info("Decoded %d messages from %s", len(emails), source_name)
    return emails
