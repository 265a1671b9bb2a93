"""Configuration, logging and persistence for the quick roll service."""
from .config import QuickRollConfig, configure_logger, load_config, parse_config, setup_logging
from .database import MessageStore

__all__ = [
    'QuickRollConfig', 'configure_logger', 'load_config', 'parse_config', 'setup_logging',
    'MessageStore',
]
