"""
Configuration parsing package for confbind.

This package provides the option registry and the line-oriented parser that
reads configuration files into registered options.
"""

from .registry import OptionRegistry
from .parser import (
    ConfigParser,
    ParserSettings,
    ParseResult,
    DEFAULT_CONFIG_NAMES,
    find_config_file,
    parse_config,
    validate_config_file,
    create_config_template
)

__all__ = [
    'OptionRegistry',
    'ConfigParser',
    'ParserSettings',
    'ParseResult',
    'DEFAULT_CONFIG_NAMES',
    'find_config_file',
    'parse_config',
    'validate_config_file',
    'create_config_template'
]
