"""
confbind - Core Package

Binds the keys of a flat ``name: value`` configuration file to typed program
variables, with defaults, sequence arity checks and subcommand groups.
"""

__version__ = "0.1.0"
__author__ = "confbind Team"

from .errors import (
    ConfigurationError,
    ParseError,
    ArityError,
    UnknownSubcommandError,
    SourceUnavailableError,
    DuplicateOptionError
)
from .models import Variable, Option
from .config import ConfigParser, OptionRegistry, ParserSettings, ParseResult

__all__ = [
    'ConfigParser',
    'OptionRegistry',
    'ParserSettings',
    'ParseResult',
    'Variable',
    'Option',
    'ConfigurationError',
    'ParseError',
    'ArityError',
    'UnknownSubcommandError',
    'SourceUnavailableError',
    'DuplicateOptionError'
]
