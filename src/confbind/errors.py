"""
Exception hierarchy for confbind.

Every error raised by the package derives from ConfigurationError so callers
can catch configuration problems with a single except clause. Errors raised
deep in the coercion path are enriched with option, line and source context
as they travel back up to the parser.
"""

from typing import Optional, Union
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration parsing or validation fails."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.option: Optional[str] = None
        self.line_number: Optional[int] = None
        self.source: Optional[str] = None

    def add_context(
        self,
        option: Optional[str] = None,
        line_number: Optional[int] = None,
        source: Optional[Union[str, Path]] = None
    ) -> 'ConfigurationError':
        """
        Attach location context to the error.

        Context that is already set is kept, so the innermost caller wins.

        Returns:
            The same error, for use in ``raise err.add_context(...)``
        """
        if option is not None and self.option is None:
            self.option = option
        if line_number is not None and self.line_number is None:
            self.line_number = line_number
        if source is not None and self.source is None:
            self.source = str(source)
        return self

    def __str__(self) -> str:
        location = []
        if self.source:
            location.append(self.source)
        if self.line_number is not None:
            location.append(f"line {self.line_number}")
        if self.option:
            location.append(f"option '{self.option}'")

        if location:
            return f"{', '.join(location)}: {self.message}"
        return self.message


class ParseError(ConfigurationError):
    """Raised when a token cannot be coerced to the target type."""

    def __init__(self, token: str, type_name: str, reason: Optional[str] = None):
        message = f"Failed to parse {token!r} as {type_name}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.token = token
        self.type_name = type_name
        self.reason = reason


class ArityError(ConfigurationError):
    """Raised when a sequence has a different number of elements than expected."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Expected {expected} elements, got {actual}")
        self.expected = expected
        self.actual = actual


class UnknownSubcommandError(ConfigurationError):
    """Raised when activating a subcommand that was never registered."""

    def __init__(self, name: str):
        super().__init__(f"Unknown subcommand: {name}")
        self.name = name


class SourceUnavailableError(ConfigurationError):
    """Raised when the configuration source cannot be opened or read."""

    def __init__(self, source: Union[str, Path, None], reason: str):
        super().__init__(f"Cannot read configuration source {source}: {reason}")
        self.reason = reason
        self.source = str(source) if source is not None else None

    def __str__(self) -> str:
        # source is already part of the message
        return self.message


class DuplicateOptionError(ConfigurationError):
    """Raised when an option or subcommand name is registered twice."""

    def __init__(self, name: str, kind: str = "option"):
        super().__init__(f"Duplicate {kind} name: {name}")
        self.name = name
        self.kind = kind
