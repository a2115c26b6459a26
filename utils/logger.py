import logging
import sys
from typing import Optional

import colorama
from colorama import Fore, Style

colorama.init()

APP_LOGGER_NAME = "spotify_catalog_app"
SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

LEVEL_COLORS = {
    "DEBUG": Fore.CYAN,
    "INFO": "",
    "SUCCESS": Fore.GREEN,
    "WARNING": Fore.YELLOW,
    "ERROR": Fore.RED,
    "CRITICAL": Fore.RED + Style.BRIGHT,
}


class ColoredFormatter(logging.Formatter):
    """Console formatter that colors the whole line by level."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelname, "")
        return f"{color}{message}{Style.RESET_ALL}" if color else message


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure the root logger: colored console output plus an optional log file."""

    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(ColoredFormatter("%(message)s"))
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        root.addHandler(file_handler)

    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _logger() -> logging.Logger:
    return logging.getLogger(APP_LOGGER_NAME)


def log_info(message: str) -> None:
    _logger().info(message)


def log_success(message: str) -> None:
    _logger().log(SUCCESS, message)


def log_warning(message: str) -> None:
    _logger().warning(message)


def log_error(message: str) -> None:
    _logger().error(message)
