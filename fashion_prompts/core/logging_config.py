"""
Centralized logging configuration for Fashion Prompt Studio.

Call setup_logging() once at application startup.
All modules using logging.getLogger(__name__) will automatically
inherit this configuration.
"""
import logging
import logging.handlers
import json
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from contextvars import ContextVar

# ── Context variables for request / batch correlation ──
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")
session_id_var: ContextVar[str] = ContextVar("session_id", default="-")

# Discord user tokens: three dot-separated base64url segments
_DISCORD_TOKEN = re.compile(r"\b([\w-]{10})[\w-]{14,}\.[\w-]{6}\.[\w-]{27,}\b")


def get_request_id() -> str:
    """Get the current request ID from context. Usable from any module."""
    return request_id_var.get("-")


def get_session_id() -> str:
    """Get the batch session ID bound to the current context."""
    return session_id_var.get("-")


def mask_tokens(text: str) -> str:
    """Replace Discord tokens with their first 10 characters."""
    return _DISCORD_TOKEN.sub(lambda m: f"{m.group(1)}...", text)


class TokenMaskingFilter(logging.Filter):
    """Masks Discord user tokens that leak into log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = mask_tokens(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


# ══════════════════════════════════════════════════════════════════
# JSON Formatter (for log files / aggregation)
# ══════════════════════════════════════════════════════════════════
class JSONFormatter(logging.Formatter):
    """Outputs each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": get_request_id(),
            "session_id": get_session_id(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        # Extra fields attached by middleware or callers
        for key in ("method", "path", "status_code", "duration_ms",
                     "client_ip", "request_size", "response_size",
                     "event_type", "item_id"):
            if hasattr(record, key):
                entry[key] = getattr(record, key)
        return json.dumps(entry, ensure_ascii=False)


# ══════════════════════════════════════════════════════════════════
# Console Formatter (colored, human-readable)
# ══════════════════════════════════════════════════════════════════
class ColoredFormatter(logging.Formatter):
    """
    Colored console output.
    Format: [HH:MM:SS] LEVEL    logger — message  [req:id] [session:id]
    """

    COLORS = {
        "DEBUG":    "\033[36m",    # Cyan
        "INFO":     "\033[32m",    # Green
        "WARNING":  "\033[33m",    # Yellow
        "ERROR":    "\033[31m",    # Red
        "CRITICAL": "\033[1;31m",  # Bold Red
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        time_str = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        # Shorten logger name: fashion_prompts.services.midjourney_relay → midjourney_relay
        name = record.name
        parts = name.split(".")
        if len(parts) > 2:
            name = parts[-1]

        req_id = get_request_id()
        req_tag = f" {self.DIM}[req:{req_id[:8]}]{self.RESET}" if req_id != "-" else ""
        session_id = get_session_id()
        session_tag = f" {self.DIM}[session:{session_id[:16]}]{self.RESET}" if session_id != "-" else ""

        return (
            f"{self.DIM}[{time_str}]{self.RESET} "
            f"{color}{record.levelname:<8}{self.RESET} "
            f"{name} — {record.getMessage()}{req_tag}{session_tag}"
        )


# ══════════════════════════════════════════════════════════════════
# Setup
# ══════════════════════════════════════════════════════════════════
def _rotating_handler(path: Path, level: int, backups: int, log_json: bool) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=str(path),
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=backups,
        encoding="utf-8",
    )
    handler.setLevel(level)
    if log_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        ))
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_dir: Path = Path("./logs"),
    log_json: bool = True,
) -> None:
    """
    Configure the root logger with console + file handlers.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR).
        log_dir: Directory for log files.
        log_json: Whether to write JSON to log files.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    # ── Root logger ──
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    masking = TokenMaskingFilter()

    # ── Console handler ──
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(ColoredFormatter())
    console.addFilter(masking)
    root.addHandler(console)

    # ── Rotating file + error-only file (for quick triage) ──
    for handler in (
        _rotating_handler(log_dir / "fashion_prompts.log", level, 5, log_json),
        _rotating_handler(log_dir / "fashion_prompts.error.log", logging.ERROR, 3, log_json),
    ):
        handler.addFilter(masking)
        root.addHandler(handler)

    # ── Quiet noisy third-party loggers ──
    for noisy in (
        "uvicorn.access", "uvicorn.error",
        "httpcore", "httpx", "groq", "openai",
        "asyncio", "watchfiles", "PIL",
    ):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    # Keep uvicorn.error at INFO so startup messages show
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)

    logging.getLogger("fashion_prompts").info(
        f"Logging configured: level={log_level}, dir={log_dir}, json={log_json}"
    )
