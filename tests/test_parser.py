import base64
import io
import quopri

import pytest

from mime_decoder.errors import (
    InvalidContentType,
    MalformedAddressList,
    MalformedDate,
    MalformedMultipart,
    UnknownTransferEncoding,
    UnsupportedPartType,
)
from mime_decoder.models import Address
from mime_decoder.parser import parse_email

GREETING = "Коллеги, добрый день!"


@pytest.fixture
def mixed_message(message):
    return message(
        "From: Sender <sender@example.com>",
        "To: rcpt@example.com",
        "Subject: report",
        "Date: Mon, 2 Jan 2006 15:04:05 -0700",
        "Message-ID: <mixed@example.com>",
        "MIME-Version: 1.0",
        'Content-Type: multipart/mixed; boundary="outer"',
        body=(
            b"--outer\r\n"
            b'Content-Type: multipart/alternative; boundary="inner"\r\n'
            b"\r\n"
            b"--inner\r\n"
            b"Content-Type: text/plain; charset=utf-8\r\n"
            b"\r\n"
            b"Hello\n"
            b"\r\n--inner\r\n"
            b"Content-Type: text/html; charset=utf-8\r\n"
            b"\r\n"
            b"<p>Hello</p>\n"
            b"\r\n--inner--\r\n"
            b"\r\n--outer\r\n"
            b"Content-Type: application/octet-stream\r\n"
            b"\r\n"
            b"\x00\x01\xd0\xff raw"
            b"\r\n--outer--\r\n"
        ),
    )


def test_koi8r_quoted_printable_text_body(message):
    raw = message(
        "Content-Type: text/plain; charset=koi8-r",
        "Content-Transfer-Encoding: quoted-printable",
        body=quopri.encodestring(GREETING.encode("koi8_r")),
    )
    assert parse_email(raw).text_body == GREETING


def test_windows1251_base64_text_body(message):
    raw = message(
        "Content-Type: text/plain; charset=windows-1251",
        "Content-Transfer-Encoding: Base64",
        body=base64.encodebytes(GREETING.encode("cp1251")),
    )
    assert parse_email(raw).text_body == GREETING


def test_koi8r_subject(message):
    encoded = base64.b64encode(GREETING.encode("koi8_r")).decode("ascii")
    raw = message("Subject: =?KOI8-R?B?{}?=".format(encoded), body="x")
    email = parse_email(raw)
    assert email.subject == GREETING
    assert email.get_header("subject") == GREETING


def test_fused_utf8_subject(message, encoded_word):
    subject = " ".join([
        encoded_word("Приглашаем "),
        encoded_word("на "),
        encoded_word("вебинар"),
        "online",
        encoded_word(" в 10:00"),
    ])
    assert parse_email(message("Subject: " + subject)).subject == "Приглашаем на вебинар online в 10:00"


def test_mixed_with_alternative_and_octet_stream(mixed_message):
    email = parse_email(mixed_message)
    assert email.text_body == "Hello"
    assert email.html_body == "<p>Hello</p>"
    assert email.content is None
    assert email.embedded_files == ()
    [attachment] = email.attachments
    assert attachment.filename.startswith("attachment-")
    assert len(attachment.filename) > len("attachment-")
    assert attachment.content_type == "application/octet-stream"
    assert attachment.data == b"\x00\x01\xd0\xff raw"


def test_metadata(mixed_message):
    email = parse_email(mixed_message)
    assert email.subject == "report"
    assert email.from_ == (Address("Sender", "sender@example.com"),)
    assert email.to == (Address("", "rcpt@example.com"),)
    assert email.message_id == "mixed@example.com"
    assert email.date.year == 2006
    assert email.content_type == 'multipart/mixed; boundary="outer"'
    assert email.header["Mime-Version"] == ("1.0",)


def test_injected_ids_make_filenames_deterministic(mixed_message, counter_ids):
    email = parse_email(mixed_message, unique_id=counter_ids)
    assert email.attachments[0].filename == "attachment-1"


def test_parsing_is_idempotent(mixed_message):
    first = parse_email(mixed_message, unique_id=lambda: 7)
    second = parse_email(mixed_message, unique_id=lambda: 7)
    assert first == second

    a = parse_email(mixed_message).to_dict()
    b = parse_email(mixed_message).to_dict()
    for d in (a, b):
        for attachment in d["attachments"]:
            attachment.pop("filename")
    assert a == b


def test_related_part_without_transfer_encoding_fails(message):
    raw = message(
        'Content-Type: multipart/related; boundary="rel"',
        body=(
            b"--rel\r\n"
            b"Content-Type: text/html\r\n\r\n<img src=\"cid:logo\">\r\n"
            b"--rel\r\n"
            b"Content-Type: image/png\r\nContent-ID: <logo>\r\n\r\nPNG\r\n"
            b"--rel--\r\n"
        ),
    )
    with pytest.raises(UnsupportedPartType):
        parse_email(raw)


def test_alternative_with_related_embedded_file(message):
    logo = base64.b64encode(b"PNGDATA").decode("ascii").encode("ascii")
    raw = message(
        'Content-Type: multipart/alternative; boundary="alt"',
        body=(
            b"--alt\r\n"
            b"Content-Type: text/plain\r\n\r\nplain version\r\n"
            b"--alt\r\n"
            b'Content-Type: multipart/related; boundary="rel"\r\n\r\n'
            b"--rel\r\n"
            b"Content-Type: text/html\r\n\r\n<img src=\"cid:logo\">\r\n"
            b"--rel\r\n"
            b"Content-Type: image/png\r\nContent-Transfer-Encoding: base64\r\nContent-ID: <logo>\r\n\r\n"
            + logo + b"\r\n"
            b"--rel--\r\n"
            b"\r\n--alt--\r\n"
        ),
    )
    email = parse_email(raw)
    assert email.text_body == "plain version"
    assert email.html_body == '<img src="cid:logo">'
    assert email.attachments == ()
    [embedded] = email.embedded_files
    assert embedded.cid == "logo"
    assert embedded.content_type == "image/png"
    assert embedded.data == b"PNGDATA"


def test_html_body(message):
    email = parse_email(message("Content-Type: text/html; charset=utf-8", body="<b>hi</b>\n"))
    assert email.html_body == "<b>hi</b>"
    assert email.text_body == ""


def test_crlf_body_keeps_carriage_return(message):
    email = parse_email(message("Content-Type: text/plain", body="line one\r\nline two\r\n"))
    assert email.text_body == "line one\r\nline two\r"


def test_missing_content_type_is_plain_text(message):
    email = parse_email(message("Subject: plain", body="just text\n"))
    assert email.text_body == "just text"
    assert email.content_type == ""


def test_other_content_goes_to_content(message):
    raw = message(
        "Content-Type: application/pdf",
        "Content-Transfer-Encoding: base64",
        body=base64.b64encode(b"%PDF-1.7"),
    )
    email = parse_email(raw)
    assert email.content == b"%PDF-1.7"
    assert email.text_body == ""
    assert email.html_body == ""
    assert email.attachments == ()


def test_stream_source(message):
    email = parse_email(io.BytesIO(message("Subject: streamed", body="x")))
    assert email.subject == "streamed"


def test_stream_errors_propagate():
    class BrokenStream(object):
        def read(self):
            raise OSError("connection reset")

    with pytest.raises(OSError):
        parse_email(BrokenStream())


def test_header_error_aborts_parse(message):
    with pytest.raises(MalformedDate):
        parse_email(message("Date: not a date", body="x"))


def test_header_error_keeps_fields_before_failure(message):
    raw = message(
        "Subject: hi",
        "Sender: Bot <bot@example.com>",
        "From: bad",
        "To: a@b.com",
        "Content-Type: text/plain",
        body="body",
    )
    with pytest.raises(MalformedAddressList) as exc_info:
        parse_email(raw)

    partial = exc_info.value.email
    assert partial.subject == "hi"
    assert partial.sender == Address("Bot", "bot@example.com")
    assert partial.from_ == ()
    assert partial.to == ()
    assert partial.get_header("To") == "a@b.com"
    assert partial.content_type == ""
    assert partial.text_body == ""


def test_invalid_content_type(message):
    with pytest.raises(InvalidContentType) as exc_info:
        parse_email(message("Content-Type: text/", body="x"))
    assert exc_info.value.value == "text/"


def test_unknown_transfer_encoding(message):
    with pytest.raises(UnknownTransferEncoding):
        parse_email(message("Content-Type: text/plain", "Content-Transfer-Encoding: x-gzip", body="x"))


def test_truncated_multipart(message):
    raw = message(
        'Content-Type: multipart/mixed; boundary="b"',
        body=b"--b\r\nContent-Type: text/plain\r\n\r\nunterminated",
    )
    with pytest.raises(MalformedMultipart):
        parse_email(raw)
