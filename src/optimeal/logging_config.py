"""
Логи приложения: одна JSON-строка на запись, в stdout.
"""
import logging
import sys

from pythonjsonlogger import jsonlogger

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
RENAMED_FIELDS = {"asctime": "timestamp", "levelname": "level"}

# клиенты HTTP пишут каждый запрос на INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(log_level: str = "INFO") -> None:
    """
    Ставит JSON-обработчик на корневой логгер вместо всех прежних.

    Уровень берётся только из аргумента (Settings.LOG_LEVEL), неизвестное
    имя уровня даёт INFO.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(jsonlogger.JsonFormatter(LOG_FORMAT, rename_fields=RENAMED_FIELDS))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logging.getLogger(__name__).info(f"Logging configured at {logging.getLevelName(level)}")
