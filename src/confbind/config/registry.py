"""
Option registry for confbind.

The registry maps option names to bindings and subcommand names to nested
registries. It resolves a (name, value) pair coming from the line parser to a
binding and applies defaults to every binding that was not set explicitly.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from ..errors import ConfigurationError, DuplicateOptionError, UnknownSubcommandError
from ..models.coercion import DEFAULT_SEPARATOR
from ..models.option import AttributeOption, Option, SetterOption


logger = logging.getLogger(__name__)


class OptionRegistry:
    """
    Name-keyed collection of option bindings with nested subcommands.

    Names are unique: registering an option or subcommand name twice raises
    DuplicateOptionError. Unknown names passed to lookup_and_apply() are
    ignored so config files stay forward and backward compatible.
    """

    SUBCOMMAND_SEPARATOR = '.'

    def __init__(self, name: str = "", description: str = "", separator: str = DEFAULT_SEPARATOR):
        """
        Initialize an empty registry.

        Args:
            name: Registry name (the subcommand name for nested registries)
            description: Help text
            separator: Element separator for sequence options
        """
        self.name = name
        self.description = description
        self.separator = separator
        self._options: Dict[str, Option] = {}
        self._subcommands: Dict[str, 'OptionRegistry'] = {}
        self._active: Optional['OptionRegistry'] = None

    @property
    def options(self) -> Dict[str, Option]:
        return dict(self._options)

    @property
    def subcommands(self) -> Dict[str, 'OptionRegistry']:
        return dict(self._subcommands)

    @property
    def active_subcommand(self) -> Optional['OptionRegistry']:
        return self._active

    def add_option(
        self,
        name: str,
        target: Any,
        attr: Optional[str] = None,
        *,
        description: str = "",
        default: Any = None,
        expected: int = 0,
        value_type: Any = None
    ) -> Option:
        """
        Bind an option name to an attribute of a caller-owned object.

        Everything after ``attr`` is keyword-only, so a description is always
        passed as ``description=``.

        Args:
            name: Option name as it appears in the config file
            target: Object holding the value, or a Variable
            attr: Attribute to write (defaults to ``value`` for a Variable)
            description: Help text
            default: Default value, typed or already rendered as a string
            expected: Required element count for sequence options
            value_type: Target type, when it cannot be inferred from target

        Returns:
            The new option, for fluent configuration

        Raises:
            DuplicateOptionError: If the name is already registered
            ConfigurationError: If the option cannot be built
        """
        option = AttributeOption(
            name, target, attr,
            value_type=value_type,
            description=description,
            separator=self.separator
        )
        return self._register(option, default, expected)

    def add_option_with_setter(
        self,
        name: str,
        setter: Callable[[Any], None],
        getter: Optional[Callable[[], Any]] = None,
        *,
        value_type: Any = None,
        description: str = "",
        default: Any = None,
        expected: int = 0,
        transform: Optional[Callable[[str], Any]] = None
    ) -> Option:
        """
        Bind an option name to a setter/getter pair.

        Args:
            name: Option name as it appears in the config file
            setter: Called with the coerced value
            getter: Returns the current value (used for type inference and snapshots)
            value_type: Target type; inferred from getter() when omitted
            description: Help text
            default: Default value, typed or already rendered as a string
            expected: Required element count for sequence options
            transform: Replaces default coercion when given

        Returns:
            The new option, for fluent configuration

        Raises:
            DuplicateOptionError: If the name is already registered
            ConfigurationError: If the option cannot be built
        """
        option = SetterOption(
            name, setter, getter,
            value_type=value_type,
            description=description,
            transform=transform,
            separator=self.separator
        )
        return self._register(option, default, expected)

    def _register(self, option: Option, default: Any, expected: int) -> Option:
        if option.name in self._options:
            raise DuplicateOptionError(option.name)

        if expected:
            option.expected(expected)
        if default is not None:
            option.default_val(default)

        self._options[option.name] = option
        logger.debug(f"Registered option '{option.name}' ({option.coercer!r})")
        return option

    def _new_subcommand(self, name: str, description: str) -> 'OptionRegistry':
        return OptionRegistry(name, description, separator=self.separator)

    def add_subcommand(self, name: str, description: str = "") -> 'OptionRegistry':
        """
        Create a nested registry for a group of options.

        Returns:
            The new registry

        Raises:
            DuplicateOptionError: If the subcommand name is already registered
        """
        name = name.strip()
        if not name:
            raise ConfigurationError("Subcommand name cannot be empty")
        if name in self._subcommands:
            raise DuplicateOptionError(name, kind="subcommand")

        subcommand = self._new_subcommand(name, description)
        self._subcommands[name] = subcommand
        return subcommand

    def parse_subcommand(self, name: str) -> 'OptionRegistry':
        """
        Mark a registered subcommand as active.

        Options unknown to this registry are then resolved in the active
        subcommand, and apply_defaults() descends into it.

        Returns:
            The activated registry

        Raises:
            UnknownSubcommandError: If no subcommand has this name
        """
        try:
            self._active = self._subcommands[name]
        except KeyError:
            raise UnknownSubcommandError(name) from None

        logger.debug(f"Activated subcommand '{name}'")
        return self._active

    def get_option(self, name: str) -> Optional[Option]:
        return self._options.get(name)

    def lookup_and_apply(self, name: str, value: str) -> bool:
        """
        Apply a value to the option registered under a name.

        Resolution order: this registry's options, a qualified
        ``subcommand.option`` name, then the active subcommand.

        Returns:
            True if an option took the value, False if the name is unknown

        Raises:
            ParseError: If the value cannot be coerced
            ArityError: If a sequence value has the wrong number of elements
        """
        option = self._options.get(name)
        if option is not None:
            option.set_value(value)
            return True

        prefix, sep, rest = name.partition(self.SUBCOMMAND_SEPARATOR)
        if sep and prefix in self._subcommands:
            return self._subcommands[prefix].lookup_and_apply(rest, value)

        if self._active is not None:
            return self._active.lookup_and_apply(name, value)

        logger.debug(f"Ignoring unknown option '{name}'")
        return False

    def resolve(self, name: str) -> Optional[Option]:
        """Find the option lookup_and_apply() would use for a name."""
        option = self._options.get(name)
        if option is not None:
            return option

        prefix, sep, rest = name.partition(self.SUBCOMMAND_SEPARATOR)
        if sep and prefix in self._subcommands:
            return self._subcommands[prefix].resolve(rest)

        if self._active is not None:
            return self._active.resolve(name)
        return None

    def apply_defaults(self) -> List[str]:
        """
        Apply defaults to every option without an explicit value.

        Descends into the active subcommand. Options that were set explicitly
        keep their value.

        Returns:
            Names of the options that received their default
        """
        applied = []
        for name, option in self._options.items():
            if option.is_set:
                continue
            if option.apply_default():
                applied.append(name)

        if self._active is not None:
            prefix = f"{self._active.name}{self.SUBCOMMAND_SEPARATOR}"
            applied.extend(prefix + name for name in self._active.apply_defaults())

        return applied

    def reset(self) -> None:
        """Forget explicit values and the active subcommand, recursively."""
        for option in self._options.values():
            option.reset()
        for subcommand in self._subcommands.values():
            subcommand.reset()
        self._active = None

    def to_dict(self) -> Dict[str, Any]:
        """
        Get rendered current values.

        Subcommands are nested under their name.
        """
        data: Dict[str, Any] = {
            name: option.render_current() for name, option in self._options.items()
        }
        for name, subcommand in self._subcommands.items():
            data[name] = subcommand.to_dict()
        return data

    def format_help(self, indent: int = 0) -> str:
        """
        Format a help listing of options and subcommands.

        Returns:
            Help text, one option per line
        """
        pad = ' ' * indent
        lines = []

        if self.description:
            lines.append(f"{pad}{self.description}")

        for name, option in self._options.items():
            line = f"{pad}  {name}"
            if option.description:
                line += f"  {option.description}"
            if option.default is not None:
                line += f" (default: {option.default})"
            lines.append(line)

        for name, subcommand in self._subcommands.items():
            lines.append(f"{pad}  [{name}]")
            sub_help = subcommand.format_help(indent + 2)
            if sub_help:
                lines.append(sub_help)

        return "\n".join(lines)

    def __contains__(self, name: object) -> bool:
        return name in self._options

    def __len__(self) -> int:
        return len(self._options)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(name={self.name!r}, options={list(self._options)}, "
            f"subcommands={list(self._subcommands)})"
        )
