import logging
import os
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]
load_dotenv(ROOT_DIR / ".env")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

_TRUTHY = {"1", "true", "yes", "on"}


def get_ffmpeg_bin() -> str:
    return os.getenv("FFMPEG_BIN", "ffmpeg").strip() or "ffmpeg"


def get_audio_bitrate() -> str:
    return os.getenv("FRAMEGRAPH_AUDIO_BITRATE", "192k").strip() or "192k"


def strict_sync_enabled() -> bool:
    return os.getenv("FRAMEGRAPH_STRICT_SYNC", "").strip().lower() in _TRUTHY


def _log_file_path() -> Path | None:
    log_file = os.getenv("FRAMEGRAPH_LOG_FILE", "").strip()
    if not log_file:
        return None
    path = Path(log_file)
    return path if path.is_absolute() else ROOT_DIR / path


def configure_logging(level: str | None = None) -> None:
    level_name = (level or LOG_LEVEL).upper()
    logging.basicConfig(level=level_name, format=LOG_FORMAT)

    log_path = _log_file_path()
    if log_path is None:
        return

    package_logger = logging.getLogger("framegraph")
    package_logger.setLevel(level_name)
    # One handler per log file across repeated calls
    if any(
        getattr(handler, "baseFilename", None) == str(log_path)
        for handler in package_logger.handlers
    ):
        return
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger.addHandler(file_handler)
