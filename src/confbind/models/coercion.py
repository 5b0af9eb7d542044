"""
Value coercion for configuration options.

This module turns raw string tokens into typed values and renders typed values
back to strings. Three categories of target type are supported: scalars
(int, float, str, bool and anything pydantic can validate from a string),
enumerations, and homogeneous sequences of scalars or enumerations.

Defaults and file values share the same path: a default is rendered to a
string at registration time and coerced again when it is applied.
"""

import logging
from collections.abc import Sequence as AbcSequence
from enum import Enum
from typing import Any, List, Optional, Tuple, get_args, get_origin

from pydantic import TypeAdapter, ValidationError
from pydantic.errors import PydanticSchemaGenerationError

from ..errors import ArityError, ConfigurationError, ParseError


logger = logging.getLogger(__name__)

DEFAULT_SEPARATOR = ","

_BOOL_TOKENS = {
    'true': True,
    'yes': True,
    'on': True,
    '1': True,
    'false': False,
    'no': False,
    'off': False,
    '0': False,
}


class TypeCategory(Enum):
    """Categories of target types understood by the coercion layer."""
    SCALAR = "scalar"
    ENUM = "enum"
    SEQUENCE = "sequence"


def type_name(value_type: Any) -> str:
    """Get a readable name for a type or type annotation."""
    name = getattr(value_type, '__name__', None)
    if isinstance(name, str) and get_origin(value_type) is None:
        return name
    return repr(value_type).replace('typing.', '')


class Coercer:
    """
    Base class for string-to-value coercion.

    Attributes:
        value_type: The target type
        category: Category of the target type
    """

    category: TypeCategory = TypeCategory.SCALAR

    def __init__(self, value_type: Any):
        self.value_type = value_type

    @property
    def type_name(self) -> str:
        return type_name(self.value_type)

    @property
    def fixed_length(self) -> int:
        """Number of elements implied by the type itself (0 if none)."""
        return 0

    def coerce(self, token: str, expected: int = 0) -> Any:
        """
        Convert a raw token to a typed value.

        Args:
            token: Raw string token from a config line or a default
            expected: Required element count for sequences (0 = any)

        Returns:
            The typed value

        Raises:
            ParseError: If the token is not a valid value of the type
            ArityError: If a sequence has the wrong number of elements
        """
        raise NotImplementedError

    def render(self, value: Any) -> str:
        """Render a typed value to the string form accepted by coerce()."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.type_name})"


class ScalarCoercer(Coercer):
    """Coerces a whole token to a single scalar value."""

    category = TypeCategory.SCALAR

    def __init__(self, value_type: Any):
        super().__init__(value_type)
        self._adapter: Optional[TypeAdapter] = None

        if value_type not in (int, float, str, bool):
            try:
                self._adapter = TypeAdapter(value_type)
            except PydanticSchemaGenerationError:
                logger.debug(f"No validation schema for {self.type_name}, calling the type directly")

    def coerce(self, token: str, expected: int = 0) -> Any:
        token = token.strip()

        try:
            if self.value_type is bool:
                return self._coerce_bool(token)
            if self.value_type is str:
                return token
            if self.value_type in (int, float):
                return self.value_type(token)
            if self._adapter is not None:
                return self._adapter.validate_python(token)
            return self.value_type(token)

        except ValidationError as e:
            errors = e.errors()
            reason = errors[0]['msg'] if errors else str(e)
            raise ParseError(token, self.type_name, reason) from e
        except (ValueError, TypeError, ArithmeticError) as e:
            raise ParseError(token, self.type_name, str(e)) from e

    def _coerce_bool(self, token: str) -> bool:
        try:
            return _BOOL_TOKENS[token.lower()]
        except KeyError:
            raise ParseError(token, 'bool', "expected true/false, yes/no, on/off or 1/0") from None

    def render(self, value: Any) -> str:
        if isinstance(value, str):
            return value
        if self.value_type is bool:
            return 'true' if value else 'false'
        if self._adapter is not None:
            dumped = self._adapter.dump_python(value, mode='json')
            return dumped if isinstance(dumped, str) else str(dumped)
        return str(value)


class EnumCoercer(Coercer):
    """
    Coerces a token to an Enum member.

    Integer-valued enums are parsed from their integer representation, which is
    also the rendered form. Member names are accepted case-insensitively. Values
    that name no declared member are rejected, since a Python enum cannot hold
    an undeclared value.
    """

    category = TypeCategory.ENUM

    def __init__(self, value_type: Any):
        super().__init__(value_type)
        self._integral = all(isinstance(member.value, int) for member in value_type)

    def coerce(self, token: str, expected: int = 0) -> Any:
        token = token.strip()

        if self._integral:
            try:
                number = int(token)
            except ValueError:
                return self._from_name(token)
            try:
                return self.value_type(number)
            except ValueError as e:
                raise ParseError(token, self.type_name, "no member with this value") from e

        for member in self.value_type:
            if str(member.value) == token:
                return member
        return self._from_name(token)

    def _from_name(self, token: str) -> Any:
        lowered = token.lower()
        for name, member in self.value_type.__members__.items():
            if name.lower() == lowered:
                return member

        valid = ', '.join(self.value_type.__members__)
        raise ParseError(token, self.type_name, f"expected an integer or one of: {valid}")

    def render(self, value: Any) -> str:
        if isinstance(value, str):
            return value
        if isinstance(value, Enum):
            if self._integral:
                return str(int(value.value))
            return value.name
        return str(value)


class SequenceCoercer(Coercer):
    """
    Coerces a separator-delimited token to a list or tuple of elements.

    Elements are trimmed and coerced one by one, keeping input order. The
    result is always a fresh container, so a failed coercion never leaves a
    half-filled value behind.
    """

    category = TypeCategory.SEQUENCE

    def __init__(
        self,
        value_type: Any,
        element: Coercer,
        container: type = list,
        length: int = 0,
        separator: str = DEFAULT_SEPARATOR
    ):
        super().__init__(value_type)
        self.element = element
        self.container = container
        self.separator = separator
        self._length = length

    @property
    def fixed_length(self) -> int:
        return self._length

    def coerce(self, token: str, expected: int = 0) -> Any:
        token = token.strip()
        values = []

        if token:
            for index, piece in enumerate(token.split(self.separator)):
                piece = piece.strip()
                try:
                    values.append(self.element.coerce(piece))
                except ParseError as e:
                    raise ParseError(
                        piece, self.element.type_name, f"sequence element {index} of {token!r}"
                    ) from e

        required = expected or self._length
        if required > 0 and len(values) != required:
            raise ArityError(required, len(values))

        return self.container(values)

    def render(self, value: Any) -> str:
        if isinstance(value, str):
            return value
        return self.separator.join(self.element.render(item) for item in value)


def _sequence_parts(value_type: Any) -> Optional[Tuple[type, Any, int]]:
    """
    Split a sequence annotation into (container, element type, fixed length).

    Returns:
        None if the type is not a supported sequence type
    """
    if value_type in (list, tuple):
        return value_type, str, 0

    origin = get_origin(value_type)
    args = get_args(value_type)

    if origin in (list, AbcSequence):
        return list, (args[0] if args else str), 0

    if origin is tuple:
        if not args:
            return tuple, str, 0
        if len(args) == 2 and args[1] is Ellipsis:
            return tuple, args[0], 0
        if len(set(args)) != 1:
            raise ConfigurationError(f"Heterogeneous tuples are not supported: {type_name(value_type)}")
        return tuple, args[0], len(args)

    return None


def coercer_for(value_type: Any, separator: str = DEFAULT_SEPARATOR) -> Coercer:
    """
    Build the coercer for a target type.

    Args:
        value_type: A scalar type, an Enum subclass, or a list/tuple annotation
        separator: Element separator for sequence types

    Returns:
        Coercer for the type category

    Raises:
        ConfigurationError: If the type is a nested or heterogeneous sequence
    """
    parts = _sequence_parts(value_type)
    if parts is not None:
        container, element_type, length = parts
        element = coercer_for(element_type, separator)
        if element.category is TypeCategory.SEQUENCE:
            raise ConfigurationError(f"Nested sequences are not supported: {type_name(value_type)}")
        return SequenceCoercer(value_type, element, container, length, separator)

    if isinstance(value_type, type) and issubclass(value_type, Enum):
        return EnumCoercer(value_type)

    return ScalarCoercer(value_type)


def infer_type(value: Any) -> Any:
    """
    Infer a target type from an existing value.

    Non-empty lists and tuples yield a sequence type of their first element's
    type. Empty containers cannot be inferred.

    Returns:
        The inferred type, or None if it cannot be determined
    """
    if value is None:
        return None

    if isinstance(value, (list, tuple)):
        if not value:
            return None
        element_type = type(value[0])
        if isinstance(value, tuple):
            return Tuple[(element_type, ...)]
        return List[element_type]

    return type(value)
