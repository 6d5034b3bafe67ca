from .util import config_root_logger

__version__ = "0.1.0"

config_root_logger()

__all__ = ["__version__"]
