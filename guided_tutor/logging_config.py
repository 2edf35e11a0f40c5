"""
Structured Logging for the Guided Tutor engine

Every record can carry turn context (session_id, turn_id) plus a component
tag and an event name, so a single turn can be followed across the
orchestrator, the generation adapters and the HTTP layer.

Output:
- json: one object per line, for the log file and log shippers
- text: coloured single-line records for a development console

Usage:
    from guided_tutor.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger("orchestrator")
    logger.info("Turn started", extra={"event": "turn_started", "session_id": "sess_1a2b"})
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from guided_tutor.config import Settings, settings as default_settings


LOGGER_PREFIX = "tutor"

# Attributes copied from `extra` into structured output, in this order
CONTEXT_FIELDS = (
    "component",
    "event",
    "session_id",
    "turn_id",
    "status",
    "model",
    "attempts",
    "duration_ms",
    "params",
    "output",
    "error",
    "data",
)

QUIET_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "openai": logging.WARNING,
    "anthropic": logging.WARNING,
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
}


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    {"timestamp": "...", "level": "INFO", "logger": "tutor.orchestrator",
     "message": "Turn started: turn_3", "event": "turn_started",
     "session_id": "sess_1a2b", "turn_id": "turn_3", "data": {...}}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": _record_time(record).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Readable console output with level colours."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    DATA_PREVIEW_CHARS = 120

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        component = getattr(record, "component", record.name)
        header = (
            f"{color}{_record_time(record):%H:%M:%S}.{int(record.msecs):03d} "
            f"{record.levelname:<7} {component}{self.RESET}"
        )

        context = "/".join(
            str(value)
            for value in (getattr(record, "session_id", None), getattr(record, "turn_id", None))
            if value
        )
        line = f"{header} [{context}] {record.getMessage()}" if context else f"{header} {record.getMessage()}"

        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration}ms)"

        data = getattr(record, "data", None)
        if data:
            preview = json.dumps(data, default=str)
            if len(preview) > self.DATA_PREVIEW_CHARS:
                preview = preview[: self.DATA_PREVIEW_CHARS] + "..."
            line += f"\n    {preview}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextAdapter(logging.LoggerAdapter):
    """
    Stamps fixed context (session_id, turn_id) onto every record.

    Per-call `extra` is kept; the adapter's context wins on key clashes.
    """

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs["extra"] = {**kwargs.get("extra", {}), **self.extra}
        return msg, kwargs


def _build_handlers(config: Settings) -> list[logging.Handler]:
    level = getattr(logging, config.log_level)
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(JSONFormatter() if config.log_format == "json" else TextFormatter())
    console.setLevel(level)
    handlers: list[logging.Handler] = [console]

    if config.log_to_file:
        path = Path(config.log_file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        # The file always gets JSON at DEBUG
        file_handler.setFormatter(JSONFormatter())
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)
    return handlers


def setup_logging(config: Optional[Settings] = None) -> None:
    """
    Configure the root logger once at process start.

    Args:
        config: Settings to read log options from (module settings if omitted)
    """
    config = config or default_settings
    root = logging.getLogger()
    root.setLevel(getattr(logging, config.log_level))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in _build_handlers(config):
        root.addHandler(handler)

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Logger for a component, e.g. get_logger("orchestrator") -> tutor.orchestrator."""
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


def create_turn_logger(base_logger: logging.Logger, session_id: str, turn_id: str) -> ContextAdapter:
    return ContextAdapter(base_logger, {"session_id": session_id, "turn_id": turn_id})


def log_generation_event(
    logger: logging.Logger,
    model: str,
    status: str,
    caller: str,
    params: Optional[dict] = None,
    output: Optional[dict] = None,
    error: Optional[str] = None,
    duration_ms: Optional[int] = None,
    attempts: Optional[int] = None,
) -> None:
    """
    Log one backend call.

    Args:
        logger: Adapter logger
        model: Backend model name
        status: "starting", "complete", "retrying" or "failed"
        caller: Component tag, e.g. "generation:ollama"
        params: Request parameters (temperature, max_tokens, stream)
        output: Response summary (length, token counts)
        error: Error text for retrying/failed calls
        duration_ms: Wall time of the call
        attempts: Transport attempts made so far
    """
    optional = {
        "params": params,
        "output": output,
        "error": error,
        "duration_ms": duration_ms,
        "attempts": attempts,
    }
    extra = {"component": caller, "event": f"generation_{status}", "status": status, "model": model}
    extra.update({key: value for key, value in optional.items() if value is not None})

    if status == "failed":
        level = logging.ERROR
    elif status == "retrying":
        level = logging.WARNING
    else:
        level = logging.INFO
    logger.log(level, f"Generation {status}: {model}", extra=extra)


def log_state_change(
    logger: logging.Logger,
    session_id: str,
    turn_id: str,
    changes: dict[str, dict[str, Any]],
) -> None:
    """
    Log session field changes as {"field": {"from": old, "to": new}}.

    Skipped when LOG_STATE_CHANGES is off or nothing changed.
    """
    if not default_settings.log_state_changes or not changes:
        return

    logger.info(
        "Session state updated",
        extra={
            "component": "orchestrator",
            "event": "state_updated",
            "session_id": session_id,
            "turn_id": turn_id,
            "data": {"changes": changes},
        },
    )
