import logging
import os
import sys

RESET = "\033[0m"
LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}
NAME_COLOR = "\033[34m"


def paint(text: str, color: str) -> str:
    return f"{color}{text}{RESET}" if color else text


class ColorFormatter(logging.Formatter):
    """Colours the level and logger name; plain output when not on a terminal."""

    def __init__(self, fmt=None, datefmt=None, use_color=None):
        super().__init__(fmt, datefmt)
        self.use_color = sys.stderr.isatty() if use_color is None else use_color

    def format(self, record):
        if not self.use_color:
            return super().format(record)
        # Other handlers (uvicorn, pytest caplog) must keep seeing plain fields
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = paint(
            f"{record.levelname:<8}", LEVEL_COLORS.get(record.levelno, "")
        )
        colored.name = paint(record.name, NAME_COLOR)
        return super().format(colored)


LOGGER_NAME = "build-scheduler"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

handler = logging.StreamHandler()
handler.setFormatter(ColorFormatter(LOG_FORMAT))
logger = logging.getLogger(LOGGER_NAME)
logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
logger.handlers.clear()
logger.addHandler(handler)


def uvicorn_log_config(level: str = "INFO") -> dict:
    """Route uvicorn's loggers through the same formatter as the scheduler."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "color": {
                "()": ColorFormatter,
                "fmt": LOG_FORMAT,
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "color",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "uvicorn": {"handlers": ["default"], "level": level, "propagate": False},
            "uvicorn.error": {
                "handlers": ["default"],
                "level": level,
                "propagate": False,
            },
            "uvicorn.access": {
                "handlers": ["default"],
                "level": level,
                "propagate": False,
            },
            LOGGER_NAME: {
                "handlers": ["default"],
                "level": level,
                "propagate": False,
            },
        },
        "root": {"handlers": ["default"], "level": level},
    }
