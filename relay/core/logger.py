import json
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Final

from relay.core.config import get_settings
from relay.core.trace import get_trace_id

_STANDARD_ATTRS: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


def _secret_patterns() -> list[str]:
    raw = get_settings().mask_secrets_patterns or ""
    return [p.strip().lower() for p in raw.split(",") if p.strip()]


def mask_secret(value: str | None) -> str:
    """Hide a credential, keeping only its last four characters."""
    if not value:
        return ""
    if len(value) <= 4:
        return "***"
    return f"***{value[-4:]}"


def mask_payload(obj: Any) -> Any:
    """Replace values whose key looks like a secret."""
    patterns = _secret_patterns()

    def _mask(item: Any) -> Any:
        if isinstance(item, dict):
            out: dict[str, Any] = {}
            for k, v in item.items():
                if any(p in str(k).lower() for p in patterns):
                    out[k] = "***"
                else:
                    out[k] = _mask(v)
            return out
        if isinstance(item, list):
            return [_mask(x) for x in item]
        return item

    return _mask(obj)


class JsonFormatter(logging.Formatter):
    """Serialize log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        log_record: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "category": record.name,
            "message": record.getMessage(),
            "trace_id": get_trace_id() or None,
        }
        extra = {k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS}
        if extra:
            log_record.update(mask_payload(extra))
        if record.exc_info:
            log_record["exc"] = self.formatException(record.exc_info)
        return json.dumps(log_record, ensure_ascii=False, default=str)


class SizeAndTimeRotatingFileHandler(TimedRotatingFileHandler):
    """Rotate on size as well as on time."""

    def __init__(
        self,
        filename: str | Path,
        max_bytes: int = 0,
        backup_count: int = 0,
        when: str = "midnight",
        interval: int = 1,
        encoding: str | None = "utf-8",
        delay: bool = False,
        utc: bool = False,
        atTime=None,
    ) -> None:
        self.maxBytes = max_bytes
        super().__init__(
            str(filename),
            when=when,
            interval=interval,
            backupCount=backup_count,
            encoding=encoding,
            delay=delay,
            utc=utc,
            atTime=atTime,
        )

    def shouldRollover(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if self.maxBytes > 0:
            if self.stream is None:  # pragma: no cover
                self.stream = self._open()
            msg = f"{self.format(record)}\n"
            enc = self.encoding
            if not isinstance(enc, str) or enc.lower() == "locale":
                enc = "utf-8"
            if (self.stream.tell() + len(msg.encode(enc))) >= self.maxBytes:
                return True
        return super().shouldRollover(record)


def log_dir() -> Path:
    path = Path(get_settings().log_dir)
    path.mkdir(parents=True, exist_ok=True)
    return path


def _build_logger(name: str, file_path: Path | None = None) -> logging.Logger:
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    settings = get_settings()
    if file_path is None:
        file_path = log_dir() / f"{name}.jsonl"
    handler = SizeAndTimeRotatingFileHandler(
        file_path,
        max_bytes=settings.log_rotate_mb * 1024 * 1024,
        backup_count=settings.log_retention_days,
        delay=True,
    )
    handler.setFormatter(JsonFormatter())
    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    return logger


_LOGGERS: dict[str, logging.Logger] = {}


def get_logger(name: str) -> logging.Logger:
    """Return the named logger, creating its JSONL file handler on first use."""
    if name not in _LOGGERS:
        _LOGGERS[name] = _build_logger(name)
    return _LOGGERS[name]
