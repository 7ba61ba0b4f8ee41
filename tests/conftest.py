import base64
import itertools
import os
import sys
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def _message(*lines, body=b""):
    """Join header lines with CRLF, add the blank separator line and the body."""
    head = "\r\n".join(lines).encode("utf-8") + b"\r\n\r\n"
    if isinstance(body, str):
        body = body.encode("utf-8")
    return head + body


def _encoded_word(text, charset="UTF-8", python_codec="utf-8"):
    payload = base64.b64encode(text.encode(python_codec)).decode("ascii")
    return "=?{}?B?{}?=".format(charset, payload)


@pytest.fixture
def message():
    return _message


@pytest.fixture
def encoded_word():
    return _encoded_word


@pytest.fixture
def counter_ids():
    return itertools.count(1).__next__
