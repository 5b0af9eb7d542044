"""
Unit tests for the configuration parser.

Tests line parsing, delimiter and comment handling, default application,
error propagation, dry-run validation, file discovery and rendering.
"""

import io
import os
import tempfile
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import List
from unittest.mock import patch

import pytest

from confbind.config.parser import (
    DEFAULT_CONFIG_NAMES,
    ConfigParser,
    ParserSettings,
    ParseResult,
    create_config_template,
    find_config_file,
    parse_config,
    validate_config_file
)
from confbind.errors import (
    ArityError,
    ConfigurationError,
    ParseError,
    SourceUnavailableError
)
from confbind.models.option import Variable


class Shape(IntEnum):
    CIRCLE = 0
    SQUARE = 1


@dataclass
class Settings:
    scalar: int = 0
    vector: List[int] = field(default_factory=list)
    items: List[int] = field(default_factory=list)
    shape: Shape = Shape.CIRCLE
    name: str = ""


def build_parser(target, **kwargs):
    parser = ConfigParser(**kwargs)
    parser.add_option("scalar", target, "scalar", description="A number").default_val(42)
    parser.add_option("vector", target, "vector").default_val("1,2,3").expected(3)
    parser.add_option("list", target, "items").default_val([10, 20, 30])
    return parser


def write_config(content):
    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False, encoding='utf-8') as f:
        f.write(content)
        return f.name


class TestConfigParser:
    """Test cases for ConfigParser class."""

    def test_init_default(self):
        """Test default initialization."""
        parser = ConfigParser()
        assert parser.delimiter == ":"
        assert parser.strict_mode is False
        assert parser.settings.comment_marker == "#"
        assert parser.settings.separator == ","

    def test_init_custom_delimiter(self):
        """Test initialization with a custom delimiter."""
        parser = ConfigParser("=")
        assert parser.delimiter == "="

    def test_init_invalid_settings(self):
        """Test an empty delimiter is rejected."""
        with pytest.raises(ConfigurationError, match="Invalid parser settings"):
            ConfigParser("")

    def test_full_scenario(self):
        """Test the file values land in the bound variables."""
        settings = Settings()
        parser = build_parser(settings)
        temp_path = write_config("scalar: 1\nvector: 3,3,3\nlist: 360\n")

        try:
            result = parser.parse(temp_path)

            assert isinstance(result, ParseResult)
            assert settings.scalar == 1
            assert settings.vector == [3, 3, 3]
            assert settings.items == [360]
            assert result.applied == ["scalar", "vector", "list"]
            assert result.defaults_applied == []
            assert result.source == temp_path
            assert result.lines_read == 3

        finally:
            os.unlink(temp_path)

    def test_defaults_fill_missing_keys(self):
        """Test options missing from the file receive their defaults."""
        settings = Settings()
        parser = build_parser(settings)
        temp_path = write_config("scalar: 100\n")

        try:
            result = parser.parse(temp_path)

            assert settings.scalar == 100
            assert settings.vector == [1, 2, 3]
            assert settings.items == [10, 20, 30]
            assert sorted(result.defaults_applied) == ["list", "vector"]

        finally:
            os.unlink(temp_path)

    def test_file_value_wins_over_default(self):
        """Test defaults applied earlier never clobber file values."""
        settings = Settings()
        parser = build_parser(settings)

        parser.apply_defaults()
        assert settings.scalar == 42

        parser.parse(["scalar: 7"])
        assert settings.scalar == 7

    def test_comments_and_blank_lines(self):
        """Test comments and blank lines are skipped."""
        settings = Settings()
        parser = build_parser(settings)

        result = parser.parse([
            "# leading comment",
            "",
            "   ",
            "   # indented comment: 99",
            "scalar: 5",
        ])

        assert settings.scalar == 5
        assert result.applied == ["scalar"]
        assert result.warnings == []
        assert result.lines_read == 5

    def test_whitespace_trimmed(self):
        """Test names and values are trimmed on both sides."""
        settings = Settings()
        parser = build_parser(settings)

        parser.parse(["   scalar   :    12   ", "vector:4 ,5, 6"])

        assert settings.scalar == 12
        assert settings.vector == [4, 5, 6]

    def test_first_delimiter_splits(self):
        """Test only the first delimiter separates name and value."""
        holder = Variable(str, "")
        parser = ConfigParser()
        parser.add_option("url", holder)

        parser.parse(["url: http://example.com:8080/path"])

        assert holder.value == "http://example.com:8080/path"

    def test_line_without_delimiter_ignored(self):
        """Test lines without a delimiter are ignored with a warning."""
        settings = Settings()
        parser = build_parser(settings)

        result = parser.parse(["just some text", "scalar: 3"])

        assert settings.scalar == 3
        assert len(result.warnings) == 1
        assert "line 1" in result.warnings[0]

    def test_empty_name_ignored(self):
        """Test a line with nothing before the delimiter is ignored."""
        settings = Settings()
        parser = build_parser(settings)

        result = parser.parse([": 5"])

        assert settings.scalar == 42
        assert "empty option name" in result.warnings[0]

    def test_unknown_key_ignored(self):
        """Test unregistered keys do not raise or affect any variable."""
        settings = Settings()
        parser = build_parser(settings)
        parser.apply_defaults()
        before = Settings(**vars(settings))

        result = parser.parse(["unknown: 123", "another: x"])

        assert settings == before
        assert result.ignored == ["unknown", "another"]
        assert len(result.warnings) == 2

    def test_custom_delimiter(self):
        """Test a parser with a custom delimiter."""
        settings = Settings()
        parser = build_parser(settings, delimiter="=")

        parser.parse(["scalar = 9", "vector = 7, 8, 9", "list: 1"])

        assert settings.scalar == 9
        assert settings.vector == [7, 8, 9]
        assert settings.items == [10, 20, 30]

    def test_custom_settings(self):
        """Test custom comment marker and separator."""
        settings = Settings()
        parser = build_parser(
            settings,
            settings=ParserSettings(comment_marker=";", separator="|", apply_defaults=False)
        )

        result = parser.parse(["; comment", "vector: 1 | 2 | 3"])

        assert settings.vector == [1, 2, 3]
        assert settings.scalar == 0
        assert result.defaults_applied == []

    def test_enum_option(self):
        """Test enum values parse from integers and names."""
        settings = Settings()
        parser = ConfigParser()
        parser.add_option("shape", settings, "shape")

        parser.parse(["shape: 1"])
        assert settings.shape is Shape.SQUARE

        parser.parse(["shape: circle"])
        assert settings.shape is Shape.CIRCLE

    def test_stream_source(self):
        """Test parsing from an open text stream."""
        settings = Settings()
        parser = build_parser(settings)

        result = parser.parse(io.StringIO("scalar: 8\n"))

        assert settings.scalar == 8
        assert result.source == "<stream>"

    def test_path_source(self):
        """Test parsing from a Path object."""
        settings = Settings()
        parser = build_parser(settings)
        temp_path = write_config("scalar: 11\n")

        try:
            parser.parse(Path(temp_path))
            assert settings.scalar == 11
        finally:
            os.unlink(temp_path)

    def test_utf8_bom(self):
        """Test a UTF-8 byte order mark does not corrupt the first name."""
        settings = Settings()
        parser = build_parser(settings)

        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False, encoding='utf-8-sig') as f:
            f.write("scalar: 13\n")
            temp_path = f.name

        try:
            parser.parse(temp_path)
            assert settings.scalar == 13
        finally:
            os.unlink(temp_path)


class TestParseErrors:
    """Test cases for error propagation during parsing."""

    def test_source_not_found(self):
        """Test a missing file raises SourceUnavailableError."""
        parser = ConfigParser()

        with pytest.raises(SourceUnavailableError, match="/nonexistent/config.yaml"):
            parser.parse("/nonexistent/config.yaml")

    def test_directory_source(self):
        """Test a directory cannot be parsed."""
        parser = ConfigParser()

        with tempfile.TemporaryDirectory() as temp_dir:
            with pytest.raises(SourceUnavailableError):
                parser.parse(temp_dir)

    def test_undecodable_file(self):
        """Test bytes that are not valid UTF-8 raise SourceUnavailableError."""
        parser = ConfigParser()

        with tempfile.NamedTemporaryFile(mode='wb', suffix='.yaml', delete=False) as f:
            f.write(b"scalar: \xff\xfe\n")
            temp_path = f.name

        try:
            with pytest.raises(SourceUnavailableError, match="cannot decode"):
                parser.parse(temp_path)
        finally:
            os.unlink(temp_path)

    def test_permission_error(self):
        """Test an unreadable file raises SourceUnavailableError."""
        parser = ConfigParser()

        with patch('builtins.open', side_effect=PermissionError(13, "Permission denied")):
            with pytest.raises(SourceUnavailableError, match="Permission denied"):
                parser.parse("/test/path.yaml")

    def test_malformed_value_aborts(self):
        """Test the first malformed value stops the parse with context."""
        settings = Settings()
        parser = build_parser(settings)

        with pytest.raises(ParseError) as exc_info:
            parser.parse(["scalar: 1", "list: 5, abc", "vector: 9,9,9"])

        error = exc_info.value
        assert error.token == "abc"
        assert error.line_number == 2
        assert error.option == "list"
        assert "line 2" in str(error)

        # earlier lines stay applied, later lines and defaults are not reached
        assert settings.scalar == 1
        assert settings.items == []
        assert settings.vector == []

    def test_arity_error(self):
        """Test n-1 and n+1 elements fail for an expected count of n."""
        for value in ("1,2", "1,2,3,4"):
            settings = Settings()
            parser = build_parser(settings)

            with pytest.raises(ArityError) as exc_info:
                parser.parse([f"vector: {value}"])

            assert exc_info.value.expected == 3
            assert settings.vector == []

    def test_error_carries_source(self):
        """Test errors from a file name the file."""
        parser = build_parser(Settings())
        temp_path = write_config("scalar: abc\n")

        try:
            with pytest.raises(ParseError) as exc_info:
                parser.parse(temp_path)
            assert exc_info.value.source == temp_path
            assert str(exc_info.value).startswith(temp_path)
        finally:
            os.unlink(temp_path)

    def test_strict_mode_with_warnings(self):
        """Test strict mode raises error on warnings."""
        settings = Settings()
        parser = build_parser(settings, strict_mode=True)

        with pytest.raises(ConfigurationError, match="warnings in strict mode"):
            parser.parse(["scalar: 2", "unknown: 1"])

        assert settings.scalar == 2

    def test_strict_mode_clean_file(self):
        """Test strict mode accepts a file without warnings."""
        settings = Settings()
        parser = build_parser(settings, strict_mode=True)

        result = parser.parse(["scalar: 2"])
        assert result.warnings == []

    def test_no_config_file_found(self):
        """Test parse() without a source fails when discovery finds nothing."""
        parser = ConfigParser()

        with patch('confbind.config.parser.find_config_file', return_value=None):
            with pytest.raises(SourceUnavailableError, match="no configuration file found"):
                parser.parse()


class TestSubcommandParsing:
    """Test cases for parsing into subcommand options."""

    def test_active_subcommand_options(self):
        """Test keys reach the active subcommand's options."""
        port = Variable(int, 0)
        parser = ConfigParser()
        parser.add_subcommand("serve").add_option("port", port, default=80)
        parser.parse_subcommand("serve")

        parser.parse(["port: 8080"])
        assert port.value == 8080

    def test_subcommand_default(self):
        """Test defaults of the active subcommand are applied."""
        port = Variable(int, 0)
        parser = ConfigParser()
        parser.add_subcommand("serve").add_option("port", port, default=80)
        parser.parse_subcommand("serve")

        result = parser.parse([])
        assert port.value == 80
        assert result.defaults_applied == ["serve.port"]

    def test_inactive_subcommand_ignored(self):
        """Test keys of an inactive subcommand are unknown unless qualified."""
        port = Variable(int, 0)
        parser = ConfigParser()
        parser.add_subcommand("serve").add_option("port", port)

        result = parser.parse(["port: 1", "serve.port: 2"])
        assert port.value == 2
        assert result.ignored == ["port"]
        assert result.applied == ["serve.port"]

    def test_subcommand_uses_parser_separator(self):
        """Test subcommands share the parser's sequence separator."""
        ports = Variable(List[int], [])
        parser = ConfigParser(settings=ParserSettings(separator=";"))
        parser.add_subcommand("serve").add_option("ports", ports)

        parser.parse(["serve.ports: 1;2"])
        assert ports.value == [1, 2]


class TestValidate:
    """Test cases for dry-run validation."""

    def test_valid_file(self):
        """Test a valid file reports no errors."""
        settings = Settings()
        parser = build_parser(settings)
        temp_path = write_config("scalar: 1\nvector: 1,2,3\n")

        try:
            assert validate_config_file(parser, temp_path) == []
            assert settings.scalar == 0
        finally:
            os.unlink(temp_path)

    def test_collects_all_errors(self):
        """Test every bad line is reported and nothing is written."""
        settings = Settings(scalar=4)
        parser = build_parser(settings)

        errors = parser.validate(["scalar: abc", "vector: 1,2", "list: 5", "unknown: 1"])

        assert len(errors) == 2
        assert errors[0].startswith("line 1")
        assert "Expected 3 elements, got 2" in errors[1]
        assert settings.scalar == 4
        assert settings.items == []

    def test_strict_mode_reports_unknown(self):
        """Test strict mode reports unknown names and malformed lines."""
        parser = build_parser(Settings(), strict_mode=True)

        errors = parser.validate(["unknown: 1", "no delimiter"])

        assert errors == [
            "line 1: unknown option 'unknown'",
            "line 2: no option name/value pair",
        ]

    def test_missing_file(self):
        """Test a missing file is reported as an error."""
        errors = validate_config_file(ConfigParser(), "/nonexistent/config.yaml")

        assert len(errors) == 1
        assert "Cannot read configuration source" in errors[0]


class TestRendering:
    """Test cases for writing configuration files."""

    def test_render_current_values(self):
        """Test rendering writes current values with description comments."""
        settings = Settings(scalar=5, vector=[1, 1, 1], items=[2])
        parser = build_parser(settings)

        text = parser.render()

        assert "# A number\nscalar: 5\n" in text
        assert "vector: 1,1,1\n" in text
        assert "list: 2\n" in text

    def test_render_defaults(self):
        """Test rendering defaults instead of current values."""
        parser = build_parser(Settings())

        text = parser.render(use_defaults=True)

        assert "scalar: 42\n" in text
        assert "vector: 1,2,3\n" in text
        assert "list: 10,20,30\n" in text

    def test_option_without_value_commented(self):
        """Test options without a value are written as comments."""
        holder = Variable(int)
        parser = ConfigParser()
        parser.add_option("count", holder)

        assert "# count:\n" in parser.render()

    def test_save_and_reparse(self):
        """Test a saved configuration parses back to the same values."""
        source = Settings(scalar=9, vector=[4, 5, 6], items=[7])
        target = Settings()
        port = Variable(int, 8080)
        target_port = Variable(int, 0)

        writer = build_parser(source)
        writer.add_subcommand("serve", "Server options").add_option("port", port)
        reader = build_parser(target)
        reader.add_subcommand("serve").add_option("port", target_port)

        with tempfile.TemporaryDirectory() as temp_dir:
            output_path = Path(temp_dir) / "nested" / "config.yaml"
            writer.save_config(output_path)

            assert output_path.exists()
            reader.parse(output_path)

        assert target == source
        assert target_port.value == 8080

    def test_save_config_permission_error(self):
        """Test write failures raise ConfigurationError."""
        parser = build_parser(Settings())

        with patch('builtins.open', side_effect=PermissionError("Access denied")):
            with pytest.raises(ConfigurationError, match="Cannot write configuration file"):
                parser.save_config("/tmp/confbind-test/config.yaml")

    def test_create_config_template(self):
        """Test a template holds defaults that parse back."""
        parser = build_parser(Settings())

        with tempfile.TemporaryDirectory() as temp_dir:
            output_path = Path(temp_dir) / "template.yaml"
            create_config_template(parser, output_path)

            settings = Settings()
            build_parser(settings, settings=ParserSettings(apply_defaults=False)).parse(output_path)

        assert settings.scalar == 42
        assert settings.vector == [1, 2, 3]
        assert settings.items == [10, 20, 30]


class TestFindConfigFile:
    """Test cases for configuration file discovery."""

    def test_finds_first_match(self):
        """Test the first existing default name is found."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_file = Path(temp_dir) / DEFAULT_CONFIG_NAMES[2]
            config_file.write_text("scalar: 1\n")

            assert find_config_file(search_paths=[Path(temp_dir)]) == config_file

    def test_custom_names(self):
        """Test searching for custom file names."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_file = Path(temp_dir) / "app.conf"
            config_file.write_text("scalar: 1\n")

            assert find_config_file(["app.conf"], [Path(temp_dir)]) == config_file

    def test_not_found(self):
        """Test None is returned when nothing exists."""
        with tempfile.TemporaryDirectory() as temp_dir:
            assert find_config_file(search_paths=[Path(temp_dir)]) is None

    def test_parse_uses_discovered_file(self):
        """Test parse() without a source reads the discovered file."""
        settings = Settings()
        parser = build_parser(settings)
        temp_path = write_config("scalar: 21\n")

        try:
            with patch('confbind.config.parser.find_config_file', return_value=Path(temp_path)):
                result = parse_config(parser)
            assert settings.scalar == 21
            assert result.source == temp_path
        finally:
            os.unlink(temp_path)


class TestParserSettings:
    """Test cases for ParserSettings validation."""

    def test_defaults(self):
        """Test default settings."""
        settings = ParserSettings()
        assert settings.delimiter == ":"
        assert settings.comment_marker == "#"
        assert settings.separator == ","
        assert settings.apply_defaults is True
        assert settings.strict_mode is False

    def test_unknown_encoding(self):
        """Test unknown encodings are rejected."""
        with pytest.raises(ValueError, match="Unknown encoding"):
            ParserSettings(encoding="not-a-codec")

    def test_delimiter_conflicts_with_comment(self):
        """Test a delimiter starting with the comment marker is rejected."""
        with pytest.raises(ValueError, match="conflicts with comment marker"):
            ParserSettings(delimiter="#")
