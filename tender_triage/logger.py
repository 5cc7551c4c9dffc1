"""
Логирование триажа.

JSON-формат для продакшена (парсинг в ELK/CloudWatch), читаемый формат
для локальной отладки. Решения по каждой записи логируются через extra,
чтобы их можно было отфильтровать по source_id.
"""

import logging
import json
import sys
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO
from pathlib import Path

# Стандартные атрибуты LogRecord, которые не попадают в "extra"
_RESERVED_ATTRS = frozenset({
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'message', 'pathname', 'process', 'processName', 'relativeCreated',
    'thread', 'threadName', 'exc_info', 'exc_text', 'stack_info', 'taskName',
})


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter.

    Output format:
    {"timestamp": "...Z", "level": "INFO", "logger": "tender_triage.dedup.index",
     "message": "...", "extra": {"source_id": "25-12345"}}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra_fields = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        }
        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data, ensure_ascii=False, default=str)


class HumanReadableFormatter(logging.Formatter):
    """2025-03-01 12:34:56 INFO     tender_triage.service: message"""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s %(levelname)-8s %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


def setup_logging(
    level: str = "INFO",
    use_json: bool = True,
    log_file: Optional[Path] = None,
    stream: Optional[TextIO] = None
) -> None:
    """
    Настройка логирования для всего приложения.

    Args:
        level: DEBUG, INFO, WARNING, ERROR
        use_json: JSON формат (True для production)
        log_file: Путь к файлу логов (опционально)
        stream: Поток консоли (по умолчанию stdout)
    """
    formatter = StructuredFormatter() if use_json else HumanReadableFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def auto_setup_logging() -> None:
    """
    Настройка из переменных окружения.

    Environment variables:
        LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
        LOG_FORMAT: json или human (default: human)
        LOG_FILE: Путь к файлу логов (опционально)
    """
    log_level = os.getenv("LOG_LEVEL", "INFO")
    log_format = os.getenv("LOG_FORMAT", "human")
    log_file_path = os.getenv("LOG_FILE")

    setup_logging(
        level=log_level,
        use_json=log_format.lower() == "json",
        log_file=Path(log_file_path) if log_file_path else None,
    )


class RecordLoggerAdapter(logging.LoggerAdapter):
    """
    Добавляет идентификатор AO в extra каждого сообщения.

    Example:
        log = RecordLoggerAdapter(logger, {"source": "BOAMP", "source_id": "25-1"})
        log.info("🟢 CREATE")
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs


__all__ = [
    'setup_logging',
    'auto_setup_logging',
    'RecordLoggerAdapter',
    'StructuredFormatter',
    'HumanReadableFormatter',
]
