"""loguru sinks for chatdelta.

The package disables its loguru namespace on import, so a host application
hears nothing from chatdelta until it calls ``setup_logging``. Sinks added
here only receive ``chatdelta.*`` records, and the host's own sinks are left
in place unless ``exclusive`` is set.
"""

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger

_NAMESPACE = "chatdelta"
_DEFAULT_LOG_FILE = "chatdelta.log"

_CONSOLE_FORMAT = "<level>{level:<8}</level> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}"

# Console only unless config.json lists consumers
_DEFAULT_CONSUMERS = [{"type": "console"}]


@dataclass(frozen=True)
class LogSink:
    kind: str
    level: str
    path: str | None = None
    rotation: str = "10 MB"
    retention: int = 3

    def describe(self) -> str:
        if self.kind == "file":
            return f"file ({self.path}, {self.level})"
        return f"console (stderr, {self.level})"

    def register(self) -> int:
        if self.kind == "file":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            return logger.add(
                self.path,
                level=self.level,
                format=_FILE_FORMAT,
                rotation=self.rotation,
                retention=self.retention,
                filter=_NAMESPACE,
            )
        return logger.add(sys.stderr, level=self.level, format=_CONSOLE_FORMAT, filter=_NAMESPACE)


def parse_log_consumers(consumers: list[dict[str, Any]], level: str) -> tuple[list[LogSink], list[str]]:
    """Turn ``LogConsumers`` entries into sinks. Returns (sinks, unknown types)."""
    sinks: list[LogSink] = []
    unknown: list[str] = []
    for config in consumers:
        kind = str(config.get("type", "")).strip().lower()
        sink_level = str(config.get("level", level)).upper()
        if kind == "console":
            sinks.append(LogSink("console", sink_level))
        elif kind == "file":
            sinks.append(LogSink(
                "file",
                sink_level,
                path=str(config.get("path", _DEFAULT_LOG_FILE)),
                rotation=str(config.get("rotation", "10 MB")),
                retention=int(config.get("retention", 3)),
            ))
        else:
            unknown.append(kind)
    return sinks, unknown


def setup_logging(
    level: str = "WARNING",
    consumers: list[dict[str, Any]] | None = None,
    *,
    exclusive: bool = False,
) -> list[str]:
    """Enable chatdelta logging and attach its sinks.

    ``exclusive`` first removes every existing loguru sink; the CLI uses it,
    embedding applications normally should not. Returns a description of
    each registered sink.
    """
    if exclusive:
        logger.remove()

    sinks, unknown = parse_log_consumers(
        consumers if consumers is not None else _DEFAULT_CONSUMERS,
        level.upper(),
    )
    for sink in sinks:
        sink.register()
    logger.enable(_NAMESPACE)

    for kind in unknown:
        logger.warning(f"Unknown log consumer type: {kind!r}")
    return [sink.describe() for sink in sinks]


def disable_logging() -> None:
    logger.disable(_NAMESPACE)
