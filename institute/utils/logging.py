import json
import logging
import os
import sys
from datetime import date
from pathlib import Path
from typing import Any, Dict

from loguru import logger

from institute.utils.context import get_request_id

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[request_id]}</cyan> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

DEFAULT_SECTION: Dict[str, Any] = {
    "log_dir": None,
    "filename": "institute.log",
    "level": "info",
    "rotation": "20 MB",
    "retention": "14 days",
    "console_format": DEFAULT_FORMAT,
    "file_format": DEFAULT_FORMAT,
    "use_json_logs": False,
}

# Libraries whose stdlib loggers are routed through loguru
INTERCEPTED_LOGGERS = (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "httpx",
    "postgrest",
    "supabase",
    "sqlalchemy.engine",
)


def _attach_request_id(record: Dict[str, Any]) -> None:
    record["extra"]["request_id"] = get_request_id() or "app"


class InterceptHandler(logging.Handler):
    """Forwards stdlib log records to loguru, keeping the caller's location."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


class CustomizeLogger:
    @classmethod
    def make_logger(cls, config_path: Path, environment: str = "logger"):
        section = cls.load_section(config_path, environment)
        level = os.getenv("LOG_LEVEL", section["level"]).upper()

        logger.remove()
        logger.configure(extra={"request_id": "app"}, patcher=_attach_request_id)

        logger.add(
            sys.stdout,
            enqueue=True,
            backtrace=True,
            level=level,
            format=section["console_format"],
            colorize=True,
        )

        if section["log_dir"]:
            filename = f"{date.today().strftime('%Y-%m-%d')}-{section['filename']}"
            file_options: Dict[str, Any] = {
                "rotation": section["rotation"],
                "retention": section["retention"],
                "enqueue": True,
                "backtrace": True,
                "level": level,
                "colorize": False,
            }
            if section["use_json_logs"]:
                file_options["serialize"] = True
            else:
                file_options["format"] = section["file_format"]
            logger.add(str(Path(section["log_dir"]) / filename), **file_options)

        cls._setup_intercept_handlers()
        return logger

    @staticmethod
    def _setup_intercept_handlers() -> None:
        logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
        for name in INTERCEPTED_LOGGERS:
            std_logger = logging.getLogger(name)
            std_logger.handlers = [InterceptHandler()]
            std_logger.propagate = False

    @staticmethod
    def load_section(config_path: Path, environment: str) -> Dict[str, Any]:
        """The named section of the JSON config over the defaults; defaults alone when the file is missing."""
        if not config_path.exists():
            return dict(DEFAULT_SECTION)
        with open(config_path) as config_file:
            config = json.load(config_file)
        section = config.get(environment) or config.get("logger") or {}
        return {**DEFAULT_SECTION, **section}


config_path = Path(__file__).resolve().parents[2] / "logging_config.json"
environment = "production" if os.getenv("ENVIRONMENT", "development") == "production" else "logger"
custom_logger = CustomizeLogger.make_logger(config_path, environment)


def get_logger():
    """Shared loguru logger; every record carries the request id of the request being served."""
    return custom_logger
