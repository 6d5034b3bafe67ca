from .log import config_file_logging, config_root_logger, log_uncaught_exceptions, validate_log_level
from .sighandler import SigHandler

__all__ = [
    "config_file_logging",
    "config_root_logger",
    "log_uncaught_exceptions",
    "validate_log_level",
    "SigHandler",
]
