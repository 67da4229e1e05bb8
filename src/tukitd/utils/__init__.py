from .logger import get_logger, get_category_logger, configure_logger, LogCategory, LogLevel
from .command_line import expand_command

__all__ = [
    "get_logger",
    "get_category_logger",
    "configure_logger",
    "LogCategory",
    "LogLevel",
    "expand_command",
]
