"""Logging configuration for Blocker.

Every driver log line carries an ``event`` (see logging_schema) and,
where it concerns a volume, the volume context as ``extra`` fields:

    logger.info("Attached EBS volume", extra={"event": LogEvent.VOLUME_ATTACHED,
                                               "volume": "vol1", "device": "/dev/sdf"})

Two output formats:
- text: one line per record, volume context appended as key=value
- json: one object per record for the Docker daemon's log driver
"""

import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any

from pythonjsonlogger import json as jsonlogger

from blocker.config import LoggingConfig

# Context fields in the order they are rendered
VOLUME_CONTEXT_FIELDS = (
    "volume",
    "volume_id",
    "device",
    "mountpoint",
    "instance_id",
    "attempt",
    "reason",
)


def volume_context(record: logging.LogRecord) -> dict[str, Any]:
    """Volume context fields present on a record, in render order."""
    return {
        field: getattr(record, field)
        for field in VOLUME_CONTEXT_FIELDS
        if getattr(record, field, None) is not None
    }


class RateLimitFilter(logging.Filter):
    """Suppress repeats of the same event for the same volume.

    Poll loops log the same "waiting" line every interval while an EBS
    state transition is pending. Records are keyed on (event, volume),
    so a wait on one volume never hides a wait on another. Records
    without an event fall back to logger, line and message.

    Args:
        rate_limit_seconds: Minimum seconds between repeats (default: 5)
        max_cache_size: Maximum number of keys to track (default: 1000)
    """

    def __init__(
        self,
        rate_limit_seconds: float = 5.0,
        max_cache_size: int = 1000,
        name: str = "",
    ) -> None:
        super().__init__(name)
        self._rate_limit = rate_limit_seconds
        self._max_cache = max_cache_size
        self._last_log: dict[tuple[str, ...], float] = {}

    @staticmethod
    def key(record: logging.LogRecord) -> tuple[str, ...]:
        event = getattr(record, "event", None)
        if event is not None:
            return (str(event), str(getattr(record, "volume", "")), record.getMessage())
        return (record.name, str(record.lineno), record.getMessage())

    def filter(self, record: logging.LogRecord) -> bool:
        # Failures always pass
        if record.levelno >= logging.WARNING:
            return True

        key = self.key(record)
        now = time.monotonic()
        last_time = self._last_log.get(key)
        if last_time is not None and now - last_time < self._rate_limit:
            return False

        self._last_log[key] = now
        if len(self._last_log) > self._max_cache:
            oldest_keys = sorted(self._last_log, key=self._last_log.get)[:100]  # type: ignore[arg-type]
            for old_key in oldest_keys:
                del self._last_log[old_key]

        return True


class BlockerTextFormatter(logging.Formatter):
    """Human-readable lines with the event and volume context appended.

    Example:
        2026-10-19 12:00:00,000 INFO blocker.driver.allocator: Attached EBS volume
        [volume_attached volume=vol1 device=/dev/sdf]
    """

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        event = getattr(record, "event", None)
        context = volume_context(record)
        if event is None and not context:
            return line

        parts = [str(event)] if event is not None else []
        parts.extend(f"{k}={v}" for k, v in context.items())
        return f"{line} [{' '.join(parts)}]"


class BlockerJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter for the plugin.

    Output fields:
    - timestamp: ISO 8601 with timezone
    - level, logger, service
    - event: LogEvent value, "log" for records without one
    - the volume context fields, always at the top level
    - exception: formatted traceback, when present
    """

    def __init__(self, config: LoggingConfig, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._service = config.service_name

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.fromtimestamp(
            record.created, tz=timezone.utc
        ).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["service"] = self._service
        log_record["event"] = str(getattr(record, "event", "log"))
        log_record.update(volume_context(record))

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        log_record.pop("color_message", None)


def setup_logging(config: LoggingConfig) -> None:
    """Configure logging for the plugin.

    Args:
        config: Logging configuration settings.
    """
    level = getattr(logging, config.level.upper(), logging.INFO)

    if config.format == "json":
        formatter: logging.Formatter = BlockerJsonFormatter(config)
    else:
        formatter = BlockerTextFormatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(RateLimitFilter(rate_limit_seconds=5.0))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in ("uvicorn", "uvicorn.error"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers.clear()
        uv_logger.propagate = False
        uv_logger.addHandler(handler)

    # Plugin requests are logged by the request middleware
    logging.getLogger("uvicorn.access").disabled = True

    # EC2 and metadata client chatter
    for name in ("httpx", "httpcore", "aiobotocore", "botocore"):
        logging.getLogger(name).setLevel(logging.WARNING)
