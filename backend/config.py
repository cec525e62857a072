"""Application configuration."""

import os
import re
from pathlib import Path


def parse_size(size_str: str) -> int:
    """Parse size string like '100MB', '1GB' into bytes."""
    if not size_str:
        return 0

    match = re.match(r"^(\d+(?:\.\d+)?)\s*(B|KB|MB|GB|TB)$", size_str.strip().upper())
    if not match:
        return 0

    value = float(match.group(1))
    unit = match.group(2)

    multipliers = {
        "B": 1,
        "KB": 1024,
        "MB": 1024**2,
        "GB": 1024**3,
        "TB": 1024**4,
    }

    return int(value * multipliers[unit])


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


DATA_DIR = Path(os.environ.get("DATA_DIR", str(Path(__file__).parent.parent / "data")))
DATA_DIR.mkdir(parents=True, exist_ok=True)

FILES_DIR = DATA_DIR / "files"
FILES_DIR.mkdir(parents=True, exist_ok=True)

DATABASE_URL = os.environ.get("DATABASE_URL", f"sqlite:///{DATA_DIR}/lapse.db")

# Expiry
DEFAULT_EXPIRY_HOURS = int(os.environ.get("DEFAULT_EXPIRY_HOURS", "24"))
MAX_EXPIRY_HOURS = int(os.environ.get("MAX_EXPIRY_HOURS", "168"))

# Admission
MAX_FILE_SIZE = parse_size(os.environ.get("MAX_FILE_SIZE", "50MB"))

DEFAULT_ALLOWED_MIME_TYPES = [
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "application/zip",
    "application/x-rar-compressed",
    "application/x-7z-compressed",
    "application/json",
    "application/javascript",
    "text/plain",
    "text/html",
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "audio/mpeg",
    "audio/mp3",
    "video/mp4",
    "video/x-matroska",
    "video/x-msvideo",
    "application/octet-stream",
]
ALLOWED_MIME_TYPES = _env_list("ALLOWED_MIME_TYPES", DEFAULT_ALLOWED_MIME_TYPES)

# Background cleanup
CLEANUP_INTERVAL_SECONDS = float(os.environ.get("CLEANUP_INTERVAL_SECONDS", "300"))
REAPER_ENABLED = _env_bool("REAPER_ENABLED", True)

# Every blob and metadata call is bounded by this
STORAGE_TIMEOUT_SECONDS = float(os.environ.get("STORAGE_TIMEOUT_SECONDS", "30"))

# HTTP
BASE_URL = os.environ.get("BASE_URL", "").strip().rstrip("/")
ALLOWED_ORIGINS = _env_list("ALLOWED_ORIGINS", ["*"])

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").strip().upper()
