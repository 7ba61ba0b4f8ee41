import os

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DATA_DIR = os.environ.get("MIME_DECODER_DATA_DIR", os.path.join(BASE_DIR, "data"))
UPLOADS_DIR = os.path.join(DATA_DIR, "uploads")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Upper bound for one posted message or mbox file.
MAX_MESSAGE_BYTES = int(os.environ.get("MAX_MESSAGE_BYTES", 25 * 1024 * 1024))

HOST = os.environ.get("HOST", "127.0.0.1")
PORT = int(os.environ.get("PORT", "5000"))
