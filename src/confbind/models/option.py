"""
Option bindings for confbind.

An option binds one configuration key to one externally-owned storage
location. Two forms exist: AttributeOption writes an attribute on a caller
object (or a Variable holder), SetterOption hands the value to a setter
function. Both coerce through the same path for file values and defaults.

Bindings hold plain references to caller storage; the caller's objects must
outlive the registry that owns the bindings.
"""

import logging
import types
from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, Optional, TypeVar, Union, get_args, get_origin, get_type_hints

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import ArityError, ConfigurationError, ParseError
from .coercion import DEFAULT_SEPARATOR, Coercer, TypeCategory, coercer_for, infer_type


logger = logging.getLogger(__name__)

T = TypeVar('T')


class Variable(Generic[T]):
    """
    Typed holder for a standalone configuration value.

    Python has no references to local variables, so a Variable plays that
    role: the registry writes ``value`` and the caller reads it back.

    Attributes:
        value_type: Declared type used for coercion
        value: Current value
    """

    def __init__(self, value_type: Any, value: Optional[T] = None):
        self.value_type = value_type
        self.value = value

    def get(self) -> Optional[T]:
        return self.value

    def __repr__(self) -> str:
        return f"Variable({self.value!r})"


class OptionSpec(BaseModel):
    """
    Validated settings of a single option.

    Attributes:
        name: Option name as it appears in the config file
        description: Help text, no effect on parsing
        default: Default value in rendered string form (None = no default)
        expected: Required element count for sequence options (0 = any)
    """

    model_config = ConfigDict(validate_assignment=True)

    name: str = Field(..., min_length=1, description="Option name")
    description: str = Field("", description="Help text")
    default: Optional[str] = Field(None, description="Rendered default value")
    expected: int = Field(0, ge=0, description="Required element count for sequences")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate and normalize the option name."""
        v = v.strip()
        if not v:
            raise ValueError("Option name cannot be empty")
        return v


def unwrap_optional(value_type: Any) -> Any:
    """Reduce Optional[X] to X, leaving every other annotation unchanged."""
    if get_origin(value_type) in (Union, getattr(types, 'UnionType', Union)):
        args = [arg for arg in get_args(value_type) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return value_type


class Option(ABC):
    """
    Binding of one configuration key to one storage location.

    Subclasses decide where a coerced value is written. Coercion, defaults and
    arity handling live here so every binding form behaves the same way.
    """

    def __init__(
        self,
        name: str,
        value_type: Any,
        description: str = "",
        separator: str = DEFAULT_SEPARATOR
    ):
        try:
            self.spec = OptionSpec(name=name, description=description or "")
        except ValidationError as e:
            raise ConfigurationError(f"Invalid option {name!r}: {e.errors()[0]['msg']}") from e

        self.value_type = value_type
        self.separator = separator
        self.coercer: Optional[Coercer] = (
            coercer_for(value_type, separator) if value_type is not None else None
        )
        self.is_set = False

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def description(self) -> str:
        return self.spec.description

    @property
    def default(self) -> Optional[str]:
        return self.spec.default

    @property
    def expected_count(self) -> int:
        return self.spec.expected

    @property
    def category(self) -> Optional[TypeCategory]:
        return self.coercer.category if self.coercer else None

    def default_val(self, value: Any) -> 'Option':
        """
        Set the default value.

        The value is rendered to its string form immediately and coerced again
        when the default is applied. A later call replaces an earlier one.

        Returns:
            This option, for chaining
        """
        self.spec.default = self.render(value)
        return self

    def expected(self, count: int) -> 'Option':
        """
        Require a sequence option to hold exactly ``count`` elements.

        Ignored for scalar and enum options. Options converted by a custom
        transform check the count whenever the transform returns a list or tuple.

        Returns:
            This option, for chaining

        Raises:
            ConfigurationError: If count is negative or contradicts a fixed-size tuple type
        """
        if self.coercer is not None and self.category is not TypeCategory.SEQUENCE:
            logger.debug(f"Ignoring expected count for non-sequence option '{self.name}'")
            return self

        fixed = self.coercer.fixed_length if self.coercer is not None else 0
        if fixed and count not in (0, fixed):
            raise ConfigurationError(
                f"Option '{self.name}' is a fixed-size tuple of {fixed} elements, cannot expect {count}"
            )

        try:
            self.spec.expected = count
        except ValidationError as e:
            raise ConfigurationError(f"Invalid expected count for '{self.name}': {count}") from e
        return self

    def convert(self, token: str) -> Any:
        """
        Coerce a token to this option's type without storing it.

        Raises:
            ParseError: If the token cannot be coerced
            ArityError: If a sequence has the wrong number of elements
        """
        try:
            return self._coerce(token)
        except ConfigurationError as e:
            raise e.add_context(option=self.name)

    def _coerce(self, token: str) -> Any:
        return self.coercer.coerce(token, self.spec.expected)

    def set_value(self, token: str) -> None:
        """
        Coerce a token and write it to the bound storage.

        On failure the storage keeps its previous value.
        """
        value = self.convert(token)
        self._store(value)
        self.is_set = True
        logger.debug(f"Option '{self.name}' set to {value!r}")

    def apply_default(self) -> bool:
        """
        Apply the default value, if one was registered.

        Returns:
            True if a default was applied
        """
        if self.spec.default is None:
            return False

        value = self.convert(self.spec.default)
        self._store(value)
        logger.debug(f"Option '{self.name}' defaulted to {value!r}")
        return True

    def check(self, token: str) -> Optional[str]:
        """
        Dry-run coercion of a token.

        Returns:
            The error message, or None if the token is valid
        """
        try:
            self.convert(token)
        except ConfigurationError as e:
            return str(e)
        return None

    def render(self, value: Any) -> str:
        """Render a typed value to the string form this option parses."""
        if self.coercer is not None:
            return self.coercer.render(value)
        if isinstance(value, (list, tuple)):
            return self.separator.join(str(item) for item in value)
        return str(value)

    def render_current(self) -> Optional[str]:
        """Render the value currently held by the bound storage."""
        value = self.current_value()
        if value is None:
            return None
        return self.render(value)

    def reset(self) -> None:
        """Forget that an explicit value was applied."""
        self.is_set = False

    @abstractmethod
    def current_value(self) -> Any:
        """Read the value currently held by the bound storage."""

    @abstractmethod
    def _store(self, value: Any) -> None:
        """Write a coerced value to the bound storage."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, type={self.coercer!r})"


class AttributeOption(Option):
    """
    Option writing to an attribute of a caller-owned object.

    The value type is taken, in order, from an explicit ``value_type``, the
    declared type of a Variable, the type hints of the target's class, or the
    type of the attribute's current value.
    """

    def __init__(
        self,
        name: str,
        target: Any,
        attr: Optional[str] = None,
        value_type: Any = None,
        description: str = "",
        separator: str = DEFAULT_SEPARATOR
    ):
        if attr is None:
            if not isinstance(target, Variable):
                raise ConfigurationError(f"Option {name!r} needs an attribute name for {type(target).__name__}")
            attr = 'value'
        elif isinstance(target, Variable) and attr != 'value':
            raise ConfigurationError(
                f"Option {name!r} binds a Variable, which only has a 'value' attribute; "
                f"got {attr!r} (pass description= as a keyword)"
            )

        if value_type is None:
            value_type = self._resolve_type(target, attr)
        if value_type is None:
            raise ConfigurationError(
                f"Cannot determine the type of option {name!r} from {type(target).__name__}.{attr}; "
                f"pass value_type explicitly"
            )

        super().__init__(name, value_type, description, separator)
        self.target = target
        self.attr = attr

    @staticmethod
    def _resolve_type(target: Any, attr: str) -> Any:
        if isinstance(target, Variable) and attr == 'value':
            return target.value_type

        try:
            hints = get_type_hints(type(target))
        except (NameError, TypeError) as e:
            logger.debug(f"Type hints unavailable for {type(target).__name__}: {e}")
            hints = {}

        if attr in hints:
            return unwrap_optional(hints[attr])

        return infer_type(getattr(target, attr, None))

    def current_value(self) -> Any:
        return getattr(self.target, self.attr, None)

    def _store(self, value: Any) -> None:
        try:
            setattr(self.target, self.attr, value)
        except ValidationError as e:
            raise ConfigurationError(
                f"Value {value!r} rejected by {type(self.target).__name__}.{self.attr}: {e.errors()[0]['msg']}"
            ).add_context(option=self.name) from e


class SetterOption(Option):
    """
    Option writing through a setter function.

    An optional ``transform`` replaces the default coercion completely; it
    receives the trimmed token and returns the value passed to the setter.
    """

    def __init__(
        self,
        name: str,
        setter: Callable[[Any], None],
        getter: Optional[Callable[[], Any]] = None,
        value_type: Any = None,
        description: str = "",
        transform: Optional[Callable[[str], Any]] = None,
        separator: str = DEFAULT_SEPARATOR
    ):
        if value_type is None and transform is None and getter is not None:
            value_type = infer_type(getter())
        if value_type is None and transform is None:
            raise ConfigurationError(
                f"Cannot determine the type of option {name!r}; pass value_type or transform"
            )

        super().__init__(name, value_type, description, separator)
        self.setter = setter
        self.getter = getter
        self.transform = transform

    def _coerce(self, token: str) -> Any:
        if self.transform is None:
            return super()._coerce(token)

        token = token.strip()
        try:
            value = self.transform(token)
        except (ValueError, TypeError, KeyError) as e:
            name = getattr(self.transform, '__name__', 'transform')
            raise ParseError(token, name, str(e)) from e

        expected = self.spec.expected
        if expected and isinstance(value, (list, tuple)) and len(value) != expected:
            raise ArityError(expected, len(value))
        return value

    def current_value(self) -> Any:
        return self.getter() if self.getter is not None else None

    def _store(self, value: Any) -> None:
        self.setter(value)
