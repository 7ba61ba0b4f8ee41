"""Flask service handing posted messages to the MIME decoder."""

import io
import logging
import os
import tempfile

from flask import Flask, jsonify, request, send_file
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.utils import secure_filename

from mime_decoder.encoding_utils import safe_filename
from mime_decoder.errors import MimeDecodeError
from mime_decoder.mbox_reader import parse_mbox
from mime_decoder.parser import parse_email
import config

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = config.MAX_MESSAGE_BYTES


def _check_size():
    if request.content_length and request.content_length > config.MAX_MESSAGE_BYTES:
        raise RequestEntityTooLarge()


def _posted_message():
    """Raw message bytes from an uploaded file or from the request body."""
    _check_size()
    if request.mimetype == "multipart/form-data":
        f = request.files.get("file")
        return f.read() if f else b""
    return request.get_data()


@app.errorhandler(MimeDecodeError)
def handle_decode_error(exc):
    logger.info("Rejected message: %s", type(exc).__name__)
    return jsonify({"error": type(exc).__name__, "detail": str(exc)}), 422


@app.errorhandler(RequestEntityTooLarge)
def handle_too_large(exc):
    return jsonify({"error": "Message too large", "limit": config.MAX_MESSAGE_BYTES}), 413


@app.route("/api/parse", methods=["POST"])
def api_parse():
    """Decode one raw RFC 5322 message and return it as JSON."""
    raw = _posted_message()
    if not raw:
        return jsonify({"error": "No message provided"}), 400
    email = parse_email(raw)
    return jsonify(email.to_dict())


@app.route("/api/attachment/<int:index>", methods=["POST"])
def api_attachment(index):
    """Decode the posted message and download its attachment number ``index``."""
    raw = _posted_message()
    if not raw:
        return jsonify({"error": "No message provided"}), 400
    email = parse_email(raw)
    if index >= len(email.attachments):
        return jsonify({"error": "Attachment not found"}), 404
    attachment = email.attachments[index]
    return send_file(
        io.BytesIO(attachment.data),
        mimetype=attachment.content_type or "application/octet-stream",
        as_attachment=True,
        download_name=safe_filename(attachment.filename),
    )


@app.route("/api/parse-mbox", methods=["POST"])
def api_parse_mbox():
    """Accept an uploaded .mbox file and decode every message in it."""
    _check_size()
    if "file" not in request.files:
        return jsonify({"error": "No file provided"}), 400
    f = request.files["file"]
    if not f.filename or not f.filename.endswith(".mbox"):
        return jsonify({"error": "Only .mbox files are accepted"}), 400

    filename = secure_filename(f.filename)
    os.makedirs(config.UPLOADS_DIR, exist_ok=True)
    # One file per request; concurrent uploads may share a client filename.
    fd, save_path = tempfile.mkstemp(suffix=".mbox", dir=config.UPLOADS_DIR)
    try:
        with os.fdopen(fd, "wb") as out:
            f.save(out)
        emails = parse_mbox(save_path)
    finally:
        os.remove(save_path)

    return jsonify({
        "status": "ok",
        "source_file": filename,
        "count": len(emails),
        "emails": [dict(key=key, **email.to_dict()) for key, email in emails],
    })


if __name__ == "__main__":
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app.run(host=config.HOST, port=config.PORT)
