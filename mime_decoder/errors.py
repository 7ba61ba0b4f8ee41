"""Errors raised while decoding a message. Every one of them aborts the parse."""


class MimeDecodeError(Exception):
    """Base class for all decoding failures."""


class InvalidContentType(MimeDecodeError):
    def __init__(self, value: str, reason: str = ""):
        self.value = value
        self.reason = reason
        msg = "error parsing media type from content type header {!r}".format(value)
        if reason:
            msg += ": " + reason
        super().__init__(msg)


class UnsupportedPartType(MimeDecodeError):
    def __init__(self, media_type: str, context: str):
        self.media_type = media_type
        self.context = context
        super().__init__("can't process {} inner mime type: {}".format(context, media_type))


class UnknownTransferEncoding(MimeDecodeError):
    def __init__(self, encoding: str):
        self.encoding = encoding
        super().__init__("unknown encoding: {}".format(encoding))


class TransferDecodeError(MimeDecodeError):
    """Payload is not valid for its declared transfer encoding."""


class MalformedMultipart(MimeDecodeError):
    """Boundary structure of a multipart body is missing or truncated."""


class MalformedMessage(MimeDecodeError):
    """Header block of the message or of a part cannot be read."""


class HeaderFieldError(MimeDecodeError):
    """A typed header field failed to parse.

    ``email`` is set by :func:`~mime_decoder.parser.parse_email` to an ``Email``
    holding the header map and every field decoded before the failure.
    """

    def __init__(self, field: str, value: str, reason: str = ""):
        self.field = field
        self.value = value
        self.email = None
        msg = "malformed {} header {!r}".format(field, value)
        if reason:
            msg += ": " + reason
        super().__init__(msg)


class MalformedAddressList(HeaderFieldError):
    pass


class MalformedDate(HeaderFieldError):
    pass
