import logging
import sys
import os
from pathlib import Path
from loguru import logger
import json
from datetime import date

from nexusflow.utils.context import get_request_id, get_user_id

PROJECT_ROOT = Path(__file__).resolve().parents[2]

DEFAULT_LOGGING_CONFIG = {
    "log_dir": "logs",
    "filename": "nexusflow.log",
    "level": "info",
    "rotation": "20 MB",
    "retention": "14 days",
    "console_format": "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | {extra[request_id]} | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
    "file_format": "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[request_id]} | {name}:{function}:{line} - {message}",
}


class InterceptHandler(logging.Handler):
    loglevel_mapping = {
        50: "CRITICAL",
        40: "ERROR",
        30: "WARNING",
        20: "INFO",
        10: "DEBUG",
        0: "NOTSET",
    }

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except (AttributeError, ValueError):
            level = self.loglevel_mapping[record.levelno]

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        request_id = get_request_id() or "app"
        log = logger.bind(request_id=request_id)
        log.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


class CustomizeLogger:
    @classmethod
    def make_logger(cls, config_path: Path, environment: str = "logger"):
        config = cls.load_logging_config(config_path)
        logging_config = {
            **DEFAULT_LOGGING_CONFIG,
            **config.get(environment, config.get("logger", {})),
        }

        log_dir = Path(logging_config["log_dir"])
        if not log_dir.is_absolute():
            log_dir = PROJECT_ROOT / log_dir

        return cls.customize_logging(
            log_dir=log_dir,
            filename=f"{date.today().strftime('%Y-%m-%d')}-{logging_config['filename']}",
            level=os.getenv("LOG_LEVEL", logging_config["level"]),
            rotation=logging_config["rotation"],
            retention=logging_config["retention"],
            console_format=logging_config["console_format"],
            file_format=logging_config["file_format"],
            use_json_logs=logging_config.get("use_json_logs", False),
            file_enabled=logging_config.get("file_enabled", True),
        )

    @classmethod
    def customize_logging(
        cls,
        log_dir: Path,
        filename: str,
        level: str,
        rotation: str,
        retention: str,
        console_format: str,
        file_format: str,
        use_json_logs: bool = False,
        file_enabled: bool = True,
    ):
        logger.remove()
        logger.configure(extra={"request_id": "app", "user_id": None})

        # Console logger with colors
        logger.add(
            sys.stdout,
            enqueue=True,
            backtrace=True,
            level=level.upper(),
            format=console_format,
            colorize=True,
        )

        if file_enabled:
            if use_json_logs:
                logger.add(
                    str(log_dir / filename),
                    rotation=rotation,
                    retention=retention,
                    enqueue=True,
                    backtrace=True,
                    level=level.upper(),
                    serialize=True,
                    colorize=False,
                )
            else:
                logger.add(
                    str(log_dir / filename),
                    rotation=rotation,
                    retention=retention,
                    enqueue=True,
                    backtrace=True,
                    level=level.upper(),
                    format=file_format,
                    colorize=False,
                )

        # Redirect standard logging to loguru
        cls._setup_intercept_handlers()

        return logger

    @staticmethod
    def _setup_intercept_handlers():
        logging.basicConfig(handlers=[InterceptHandler()], level=0)

        third_party_loggers = [
            "uvicorn",
            "uvicorn.error",
            "uvicorn.access",
            "fastapi",
            "celery",
            "httpx",
        ]
        for log_name in third_party_loggers:
            _logger = logging.getLogger(log_name)
            _logger.handlers = [InterceptHandler()]

    @staticmethod
    def load_logging_config(config_path: Path):
        if not config_path.exists():
            return {}
        with open(config_path) as config_file:
            return json.load(config_file)


# Initialize logger
config_path = Path(os.getenv("LOGGING_CONFIG_PATH", PROJECT_ROOT / "logging_config.json"))
environment = os.getenv("ENVIRONMENT", "development")
if environment not in ("production", "test"):
    environment = "logger"
custom_logger = CustomizeLogger.make_logger(config_path, environment)


def get_logger():
    """Get the custom logger instance with request ID binding."""
    request_id = get_request_id() or "app"
    return custom_logger.bind(request_id=request_id, user_id=get_user_id())
