"""Logging setup shared by the web app and the audit CLI."""

import logging
import logging.handlers
import sys

from app.config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = False


def setup_logging(level: int = logging.INFO, log_file: str = "scriptrack.log") -> None:
    """Configure the root logger with console output and a rotating log file."""
    global _configured
    if _configured:
        return

    settings = get_settings()
    log_path = settings.logs_dir / log_file

    # Always log to the console
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                log_path,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
            )
        )
    except (PermissionError, OSError) as e:
        # Keep running with console logging only
        print(f"Warning: Could not create log file at {log_path}: {e}", file=sys.stderr)

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)

    # Silence noisy libraries
    for noisy in ("botocore", "boto3", "s3transfer", "urllib3", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _configured = True
