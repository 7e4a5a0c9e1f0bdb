import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parents[2] / ".env")

REST_URL = os.getenv("LIVECHAT_REST_URL", "http://localhost:8080/wp-json/pax-support-pro/v1").rstrip("/")
NONCE = os.getenv("LIVECHAT_NONCE", "")
REQUEST_TIMEOUT = float(os.getenv("LIVECHAT_REQUEST_TIMEOUT", "5.0"))

POLL_INTERVAL = float(os.getenv("LIVECHAT_POLL_INTERVAL", "3.0"))
MAX_POLL_FAILURES = int(os.getenv("LIVECHAT_MAX_POLL_FAILURES", "3"))

# 24 hours
SESSION_TTL = int(os.getenv("LIVECHAT_SESSION_TTL", "86400"))
PENDING_TIMEOUT = float(os.getenv("LIVECHAT_PENDING_TIMEOUT", "60"))
TYPING_TIMEOUT = float(os.getenv("LIVECHAT_TYPING_TIMEOUT", "3.0"))

WELCOME_MESSAGE = os.getenv("LIVECHAT_WELCOME_MESSAGE", "Hello, I need help.")
MAX_UPLOAD_MB = int(os.getenv("LIVECHAT_MAX_UPLOAD_MB", "10"))

# file | redis
STORAGE = os.getenv("LIVECHAT_STORAGE", "file")
STORAGE_PATH = os.getenv("LIVECHAT_STORAGE_PATH", ".livechat_session.json")
STORAGE_KEY = os.getenv("LIVECHAT_STORAGE_KEY", "pax_livechat_session_v2")
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
