"""
Line-oriented configuration parser for confbind.

This module reads flat ``name: value`` configuration files and feeds every
pair to the option registry. It handles comments, blank lines, a configurable
delimiter, config file discovery, dry-run validation, and writing templates
and snapshots that parse back to the same values.
"""

import codecs
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Iterable, Iterator, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..errors import ConfigurationError, SourceUnavailableError
from .registry import OptionRegistry


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAMES = [
    '.confbind.yaml',
    '.confbind.yml',
    'confbind.yaml',
    'confbind.yml',
    '.confbind.conf',
    'confbind.conf'
]

Source = Union[str, Path, IO[str], Iterable[str]]


class ParserSettings(BaseModel):
    """
    Settings controlling how configuration lines are read.

    Attributes:
        delimiter: Separates the option name from its value
        comment_marker: Lines starting with this (after whitespace) are skipped
        separator: Separates sequence elements inside a value
        apply_defaults: Apply defaults to unset options after a parse
        strict_mode: Treat unknown options and malformed lines as errors
        encoding: Text encoding of configuration files
    """

    delimiter: str = Field(":", min_length=1, description="Name/value delimiter")
    comment_marker: str = Field("#", min_length=1, description="Comment line marker")
    separator: str = Field(",", min_length=1, description="Sequence element separator")
    apply_defaults: bool = Field(True, description="Apply defaults after parsing")
    strict_mode: bool = Field(False, description="Treat warnings as errors")
    encoding: str = Field("utf-8-sig", description="File encoding")

    @field_validator('encoding')
    @classmethod
    def validate_encoding(cls, v: str) -> str:
        """Validate that the encoding is known to Python."""
        try:
            codecs.lookup(v)
        except LookupError:
            raise ValueError(f"Unknown encoding: {v}")
        return v

    @model_validator(mode='after')
    def validate_markers(self) -> 'ParserSettings':
        """Ensure the delimiter cannot be mistaken for a comment."""
        if self.delimiter.strip() and self.delimiter.strip().startswith(self.comment_marker):
            raise ValueError(f"Delimiter {self.delimiter!r} conflicts with comment marker {self.comment_marker!r}")
        return self


@dataclass
class ParseResult:
    """
    Result of a configuration parsing operation.

    Attributes:
        source: Path or name of the source that was read
        lines_read: Number of lines read
        applied: Option names that took a value from the source
        ignored: Names found in the source that matched no option
        defaults_applied: Option names that received their default
        warnings: Non-fatal problems, such as unknown names or lines without a delimiter
    """
    source: Optional[str] = None
    lines_read: int = 0
    applied: List[str] = field(default_factory=list)
    ignored: List[str] = field(default_factory=list)
    defaults_applied: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class ConfigParser(OptionRegistry):
    """
    Option registry that can read its values from a configuration file.

    Parsing stops at the first value that cannot be coerced. Lines applied
    before the failure keep their effect. Unknown names and lines without a
    delimiter are ignored and reported as warnings in the result.
    """

    def __init__(
        self,
        delimiter: str = ":",
        settings: Optional[ParserSettings] = None,
        *,
        strict_mode: bool = False,
        name: str = "",
        description: str = ""
    ):
        """
        Initialize the configuration parser.

        Args:
            delimiter: Name/value delimiter (ignored when settings are given)
            settings: Full parser settings
            strict_mode: If True, treat warnings as errors (ignored when settings are given)
            name: Registry name
            description: Help text
        """
        if settings is None:
            try:
                settings = ParserSettings(delimiter=delimiter, strict_mode=strict_mode)
            except ValidationError as e:
                raise ConfigurationError(f"Invalid parser settings: {e.errors()[0]['msg']}") from e

        super().__init__(name, description, separator=settings.separator)
        self.settings = settings
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def delimiter(self) -> str:
        return self.settings.delimiter

    @property
    def strict_mode(self) -> bool:
        return self.settings.strict_mode

    def split_line(self, line: str) -> Optional[Tuple[str, str]]:
        """
        Split a line at the first delimiter.

        Both name and value are trimmed on both sides.

        Returns:
            (name, value), or None if the line has no delimiter
        """
        name, sep, value = line.partition(self.settings.delimiter)
        if not sep:
            return None
        return name.strip(), value.strip()

    def is_skipped(self, line: str) -> bool:
        """Check if a line is blank or a comment."""
        stripped = line.strip()
        return not stripped or stripped.startswith(self.settings.comment_marker)

    @contextmanager
    def _open_source(self, source: Source) -> Iterator[Tuple[Iterable[str], str]]:
        if isinstance(source, (str, Path)):
            path = Path(source)
            try:
                handle = open(path, 'r', encoding=self.settings.encoding)
            except OSError as e:
                raise SourceUnavailableError(path, e.strerror or str(e)) from e

            with handle:
                yield handle, str(path)
        else:
            yield source, getattr(source, 'name', '<stream>')

    def parse(self, source: Optional[Source] = None) -> ParseResult:
        """
        Parse a configuration source and apply its values.

        Args:
            source: Path, open text stream or iterable of lines. If None,
                searches the default locations for a configuration file.

        Returns:
            ParseResult describing what was applied and ignored

        Raises:
            SourceUnavailableError: If the source cannot be opened or read
            ParseError: If a value cannot be coerced to its option's type
            ArityError: If a sequence value has the wrong number of elements
            ConfigurationError: If strict mode is on and warnings were recorded
        """
        if source is None:
            source = find_config_file()
            if source is None:
                raise SourceUnavailableError(None, "no configuration file found")

        result = ParseResult()

        with self._open_source(source) as (lines, label):
            result.source = label
            try:
                for line_number, line in enumerate(lines, start=1):
                    result.lines_read = line_number
                    self._parse_line(line, line_number, result)
            except UnicodeDecodeError as e:
                raise SourceUnavailableError(label, f"cannot decode as {self.settings.encoding}: {e.reason}") from e
            except OSError as e:
                raise SourceUnavailableError(label, str(e)) from e

        if self.settings.apply_defaults:
            result.defaults_applied = self.apply_defaults()

        if self.settings.strict_mode and result.warnings:
            raise ConfigurationError(
                f"Configuration warnings in strict mode: {'; '.join(result.warnings)}"
            ).add_context(source=label)

        self.logger.info(
            f"Configuration loaded from {label}: {len(result.applied)} applied, "
            f"{len(result.ignored)} ignored, {len(result.defaults_applied)} defaulted"
        )
        return result

    def _parse_line(self, line: str, line_number: int, result: ParseResult) -> None:
        if self.is_skipped(line):
            return

        pair = self.split_line(line)
        if pair is None:
            result.warnings.append(f"line {line_number}: no '{self.settings.delimiter}' delimiter, ignored")
            return

        name, value = pair
        if not name:
            result.warnings.append(f"line {line_number}: empty option name, ignored")
            return

        try:
            applied = self.lookup_and_apply(name, value)
        except ConfigurationError as e:
            raise e.add_context(line_number=line_number, source=result.source)

        if applied:
            result.applied.append(name)
        else:
            result.ignored.append(name)
            result.warnings.append(f"line {line_number}: unknown option '{name}', ignored")

    def validate(self, source: Source) -> List[str]:
        """
        Check a configuration source without changing any bound value.

        Unlike parse(), every line is checked, so all problems are reported.

        Args:
            source: Path, open text stream or iterable of lines

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        try:
            with self._open_source(source) as (lines, label):
                for line_number, line in enumerate(lines, start=1):
                    if self.is_skipped(line):
                        continue

                    pair = self.split_line(line)
                    if pair is None or not pair[0]:
                        if self.settings.strict_mode:
                            errors.append(f"line {line_number}: no option name/value pair")
                        continue

                    name, value = pair
                    option = self.resolve(name)
                    if option is None:
                        if self.settings.strict_mode:
                            errors.append(f"line {line_number}: unknown option '{name}'")
                        continue

                    message = option.check(value)
                    if message:
                        errors.append(f"line {line_number}: {message}")

        except SourceUnavailableError as e:
            errors.append(str(e))
        except UnicodeDecodeError as e:
            errors.append(f"Cannot decode configuration source as {self.settings.encoding}: {e.reason}")

        return errors

    def render(self, use_defaults: bool = False) -> str:
        """
        Render the registered options as configuration text.

        Descriptions become comments. Subcommand options are written with
        qualified ``subcommand.option`` names so the output parses back.

        Args:
            use_defaults: Write defaults instead of current values

        Returns:
            Configuration file content
        """
        lines = [
            f"# {self.description}" if self.description else "# Configuration",
            "",
        ]
        lines.extend(self._render_registry(self, "", use_defaults))
        return "\n".join(lines) + "\n"

    def _render_registry(self, registry: OptionRegistry, prefix: str, use_defaults: bool) -> List[str]:
        lines = []
        delimiter = self.settings.delimiter

        for name, option in registry.options.items():
            if option.description:
                lines.append(f"{self.settings.comment_marker} {option.description}")

            value = option.default if use_defaults else option.render_current()
            if value is None:
                lines.append(f"{self.settings.comment_marker} {prefix}{name}{delimiter}")
            else:
                lines.append(f"{prefix}{name}{delimiter} {value}")

        for name, subcommand in registry.subcommands.items():
            lines.append("")
            header = f"{self.settings.comment_marker} [{prefix}{name}]"
            if subcommand.description:
                header += f" {subcommand.description}"
            lines.append(header)
            lines.extend(self._render_registry(subcommand, f"{prefix}{name}.", use_defaults))

        return lines

    def save_config(self, output_path: Union[str, Path], use_defaults: bool = False) -> None:
        """
        Save the current option values to a configuration file.

        Args:
            output_path: Path where to save the configuration
            use_defaults: Write defaults instead of current values

        Raises:
            ConfigurationError: If file cannot be written
        """
        try:
            output_path = Path(output_path)
            output_path.parent.mkdir(parents=True, exist_ok=True)

            with open(output_path, 'w', encoding='utf-8') as f:
                f.write(self.render(use_defaults=use_defaults))

            self.logger.info(f"Configuration saved to {output_path}")

        except OSError as e:
            raise ConfigurationError(f"Cannot write configuration file {output_path}: {e}") from e


def find_config_file(
    config_names: Optional[List[str]] = None,
    search_paths: Optional[List[Path]] = None,
    app_name: str = "confbind"
) -> Optional[Path]:
    """
    Find a configuration file in the default locations.

    Searches the current directory, the home directory and ``~/.config/<app_name>``.

    Args:
        config_names: File names to look for, in order of preference
        search_paths: Directories to search instead of the defaults
        app_name: Application name for the XDG config directory

    Returns:
        Path to the first configuration file found, or None
    """
    if config_names is None:
        config_names = DEFAULT_CONFIG_NAMES

    if search_paths is None:
        search_paths = [
            Path.cwd(),
            Path.home(),
            Path.home() / '.config' / app_name,
        ]

    for search_path in search_paths:
        for config_name in config_names:
            config_file = Path(search_path) / config_name
            if config_file.is_file():
                logger.info(f"Found configuration file: {config_file}")
                return config_file

    logger.info("No configuration file found")
    return None


def parse_config(parser: ConfigParser, source: Optional[Source] = None) -> ParseResult:
    """
    Convenience function to parse configuration into a parser's options.

    Args:
        parser: Parser holding the option bindings
        source: Configuration source (optional, searched for when omitted)

    Returns:
        ParseResult of the parse
    """
    return parser.parse(source)


def validate_config_file(parser: ConfigParser, config_path: Union[str, Path]) -> List[str]:
    """
    Convenience function to validate a configuration file.

    Args:
        parser: Parser holding the option bindings
        config_path: Path to configuration file

    Returns:
        List of validation errors (empty if valid)
    """
    return parser.validate(config_path)


def create_config_template(parser: ConfigParser, output_path: Union[str, Path]) -> None:
    """
    Create a template configuration file holding every option's default.

    Args:
        parser: Parser holding the option bindings
        output_path: Where to save the template

    Raises:
        ConfigurationError: If template cannot be created
    """
    parser.save_config(output_path, use_defaults=True)
