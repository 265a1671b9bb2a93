#!/usr/bin/env python3
# -*- coding: utf-8 -*-
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import yaml
from packaging import version

from quickroll.config import ItemRollFlags, Settings
from quickroll.dice import FormulaParser
from quickroll.errors import ConfigError
from quickroll.rules import ItemType

# Highest config format this code understands
CONFIG_VERSION = '1.0'

DEFAULT_LOG_FORMAT = '[%(asctime).19s] [%(name)s] [%(levelname)s] %(message)s'


class RobustFileHandler(logging.FileHandler):
    """FileHandler that gracefully handles flush errors on Windows"""

    def flush(self):
        """Flush the stream, ignoring EINVAL from stale Windows file handles"""
        try:
            super().flush()
        except OSError as e:
            if e.errno != 22:  # EINVAL
                raise


def configure_logger(logger,
                     log_file=None,
                     log_format=None,
                     log_level=logging.INFO):
    """Configure a logger with a file or stream handler

    Args:
        logger: Logger instance or logger name string
        log_file: File path string or file-like object (None for stderr)
        log_format: Format string for log messages
        log_level: Logging level (e.g., logging.INFO, logging.DEBUG)

    Returns:
        Configured logger instance
    """
    if isinstance(log_file, str):
        handler = RobustFileHandler(
            log_file,
            mode='a',
            encoding='utf-8',
            errors='replace'
        )
    else:
        handler = logging.StreamHandler(log_file)  # Default to stderr if None

    handler.setFormatter(logging.Formatter(log_format))

    if isinstance(logger, str):
        logger = logging.getLogger(logger)

    logger.addHandler(handler)
    logger.setLevel(log_level)

    return logger


@dataclass
class QuickRollConfig:
    """
    Typed service configuration.

    Attributes:
        version: Config format version
        settings: Quick roll settings
        item_flags: Default quick roll toggles per item kind
        database_url: Message store URL
        nats_url: NATS server URL
        log_level: Logging level name
        log_file: Log file path (None for stderr)
        max_dice: Most dice allowed in one formula term
        max_faces: Most faces allowed on one die
        emit_events: Publish rolled/updated events
    """

    version: str = CONFIG_VERSION
    settings: Settings = field(default_factory=Settings)
    item_flags: Dict[ItemType, ItemRollFlags] = field(default_factory=dict)
    database_url: str = 'sqlite+aiosqlite:///quickroll.db'
    nats_url: str = 'nats://localhost:4222'
    log_level: str = 'info'
    log_file: Optional[str] = None
    max_dice: int = FormulaParser.DEFAULT_MAX_DICE
    max_faces: int = FormulaParser.DEFAULT_MAX_FACES
    emit_events: bool = True

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level.upper())

    def flags_for(self, item_type: ItemType) -> ItemRollFlags:
        return self.item_flags.get(ItemType(item_type)) or ItemRollFlags.defaults(item_type)


_TOP_LEVEL_KEYS = {
    'version', 'settings', 'item_flags', 'database', 'nats',
    'logging', 'dice', 'emit_events',
}


def parse_config(conf: Optional[Mapping[str, Any]]) -> QuickRollConfig:
    """Validate a configuration mapping and build a QuickRollConfig

    Args:
        conf: Parsed JSON/YAML configuration

    Returns:
        QuickRollConfig

    Raises:
        ConfigError: On unknown keys, invalid values or an unsupported version
    """
    conf = dict(conf or {})

    unknown = sorted(set(conf) - _TOP_LEVEL_KEYS)
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

    config_version = str(conf.get('version', CONFIG_VERSION))
    try:
        parsed_version = version.parse(config_version)
    except version.InvalidVersion:
        raise ConfigError(f"Invalid config version: {config_version!r}") from None
    if parsed_version.major > version.parse(CONFIG_VERSION).major:
        raise ConfigError(
            f"Config version {config_version} is newer than supported ({CONFIG_VERSION})"
        )

    item_flags = {}
    for kind, flags in (conf.get('item_flags') or {}).items():
        try:
            item_type = ItemType(kind)
        except ValueError:
            raise ConfigError(f"Unknown item type in item_flags: {kind!r}") from None
        item_flags[item_type] = ItemRollFlags.from_dict(item_type, flags)

    database = conf.get('database') or {}
    nats = conf.get('nats') or {}
    logging_config = conf.get('logging') or {}
    dice = conf.get('dice') or {}

    log_level = str(logging_config.get('level', 'info'))
    if not isinstance(getattr(logging, log_level.upper(), None), int):
        raise ConfigError(f"Invalid log level: {log_level!r}")

    return QuickRollConfig(
        version=config_version,
        settings=Settings.from_dict(conf.get('settings')),
        item_flags=item_flags,
        database_url=database.get('url', QuickRollConfig.database_url),
        nats_url=nats.get('url', QuickRollConfig.nats_url),
        log_level=log_level,
        log_file=logging_config.get('file'),
        max_dice=int(dice.get('max_dice', FormulaParser.DEFAULT_MAX_DICE)),
        max_faces=int(dice.get('max_faces', FormulaParser.DEFAULT_MAX_FACES)),
        emit_events=bool(conf.get('emit_events', True)),
    )


def load_config(config_file):
    """Load and parse configuration from a JSON or YAML file

    Args:
        config_file: Path to the config file (.yaml/.yml for YAML, else JSON)

    Returns:
        QuickRollConfig

    Raises:
        ConfigError: If the file cannot be parsed or fails validation
    """
    try:
        with open(config_file, 'r', encoding='utf-8') as fp:
            if str(config_file).endswith(('.yaml', '.yml')):
                conf = yaml.safe_load(fp)
            else:
                conf = json.load(fp)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not parse {config_file}: {e}") from e

    if conf is not None and not isinstance(conf, dict):
        raise ConfigError(f"{config_file} must contain a mapping")

    return parse_config(conf)


def setup_logging(config: QuickRollConfig):
    """Configure the root logger from a QuickRollConfig

    Returns:
        The configured root logger
    """
    return configure_logger(
        logging.getLogger(),
        log_file=config.log_file,
        log_format=DEFAULT_LOG_FORMAT,
        log_level=config.logging_level,
    )
