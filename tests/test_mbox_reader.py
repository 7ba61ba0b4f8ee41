import logging
import mailbox

import pytest

from mime_decoder.errors import MalformedDate
from mime_decoder.mbox_reader import iter_mbox_messages, parse_mbox


def _write_mbox(path, *messages):
    with open(path, "wb") as f:
        for raw in messages:
            f.write(b"From sender@example.com Mon Jan  2 15:04:05 2006\n")
            f.write(raw.replace(b"\r\n", b"\n"))
            f.write(b"\n\n")
    return str(path)


def test_iter_mbox_messages(tmp_path, message):
    path = _write_mbox(
        tmp_path / "inbox.mbox",
        message("Subject: one", body="first\n"),
        message("Subject: two", body="second\n"),
    )
    messages = list(iter_mbox_messages(path))
    assert [key for key, _ in messages] == ["0", "1"]
    assert messages[0][1].startswith(b"Subject: one\n")
    assert not messages[1][1].startswith(b"From ")


def test_parse_mbox(tmp_path, message, caplog):
    path = _write_mbox(
        tmp_path / "inbox.mbox",
        message("Subject: one", "Content-Type: text/plain", body="first\n"),
        message("Subject: two", "Content-Type: text/html", body="<p>second</p>\n"),
    )
    with caplog.at_level(logging.INFO, logger="mime_decoder.mbox_reader"):
        emails = parse_mbox(path)

    assert [key for key, _ in emails] == ["0", "1"]
    assert emails[0][1].subject == "one"
    assert emails[0][1].text_body.startswith("first")
    assert emails[1][1].html_body.startswith("<p>second</p>")
    assert "Decoded 2 messages from inbox.mbox" in caplog.text


def test_parse_mbox_stops_at_first_failure(tmp_path, message, caplog):
    path = _write_mbox(
        tmp_path / "broken.mbox",
        message("Subject: ok", body="fine\n"),
        message("Subject: bad", "Date: sometime", body="oops\n"),
    )
    with pytest.raises(MalformedDate):
        parse_mbox(path)
    assert "Message 1 of broken.mbox could not be decoded" in caplog.text


def test_parse_mbox_missing_file(tmp_path):
    with pytest.raises(mailbox.NoSuchMailboxError):
        parse_mbox(str(tmp_path / "missing.mbox"))
