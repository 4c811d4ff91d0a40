"""
Sheet Value Types

Typed values produced from the raw text of the sheet's Value column,
and the registry that maps a type tag (the Type column) to its parser.

Supported tags (not case sensitive):
- number, boolean, string, array, dictionary
- vector2, vector3, udim, udim2

Unknown tags degrade to string rather than failing the row.
"""

import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Union


@dataclass(frozen=True)
class Vector2:
    x: float = 0
    y: float = 0


@dataclass(frozen=True)
class Vector3:
    x: float = 0
    y: float = 0
    z: float = 0


@dataclass(frozen=True)
class UDim:
    """Scale/offset pair for one axis"""
    scale: float = 0
    offset: float = 0


@dataclass(frozen=True)
class UDim2:
    """Scale/offset pairs for the X and Y axes"""
    x_scale: float = 0
    x_offset: float = 0
    y_scale: float = 0
    y_offset: float = 0


TypedValue = Union[
    int,
    float,
    bool,
    str,
    tuple[str, ...],
    MappingProxyType,
    Vector2,
    Vector3,
    UDim,
    UDim2,
]

Parser = Callable[[str], TypedValue]


def _to_float(text: str) -> float | None:
    """float(text), or None for non-numeric and non-finite input (nan, inf)"""
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_number(raw: str) -> int | float:
    """Integer literal -> int, other finite numerics -> float, anything else -> 0"""
    text = raw.strip()
    try:
        return int(text)
    except ValueError:
        pass
    value = _to_float(text)
    return 0 if value is None else value


def parse_boolean(raw: str) -> bool:
    return raw.lower() == "true"


def parse_string(raw: str) -> str:
    return raw


def parse_array(raw: str) -> tuple[str, ...]:
    return tuple(raw.split(","))


def _trim_one_space(text: str) -> str:
    """Remove at most one leading and one trailing space"""
    if text.startswith(" "):
        text = text[1:]
    if text.endswith(" "):
        text = text[:-1]
    return text


def parse_dictionary(raw: str) -> MappingProxyType:
    """
    Parse "k1=v1,k2=v2" into a read-only mapping.

    Keys lose at most one leading/trailing space, values are kept as-is.
    Later duplicate keys overwrite earlier ones. An entry without "="
    maps its key to an empty string.
    """
    result: dict[str, str] = {}
    for entry in raw.split(","):
        key, _, value = entry.partition("=")
        result[_trim_one_space(key)] = value
    return MappingProxyType(result)


def _components(raw: str, count: int) -> list[float]:
    """Split on "," into exactly `count` numbers, defaulting to 0"""
    parts = raw.split(",")
    values: list[float] = []
    for i in range(count):
        value = _to_float(parts[i].strip()) if i < len(parts) else None
        values.append(0 if value is None else value)
    return values


def parse_vector2(raw: str) -> Vector2:
    return Vector2(*_components(raw, 2))


def parse_vector3(raw: str) -> Vector3:
    return Vector3(*_components(raw, 3))


def parse_udim(raw: str) -> UDim:
    return UDim(*_components(raw, 2))


def parse_udim2(raw: str) -> UDim2:
    return UDim2(*_components(raw, 4))


class TypeRegistry:
    """
    Maps type tags to parsers.

    Usage:
        registry = TypeRegistry()
        registry.resolve("Number")("42")   # -> 42
        registry.resolve("mystery")("x")   # -> "x"
    """

    def __init__(self) -> None:
        self._parsers: dict[str, Parser] = {
            "number": parse_number,
            "boolean": parse_boolean,
            "string": parse_string,
            "array": parse_array,
            "dictionary": parse_dictionary,
            "vector2": parse_vector2,
            "vector3": parse_vector3,
            "udim": parse_udim,
            "udim2": parse_udim2,
        }

    def register(self, tag: str, parser: Parser) -> None:
        """Add or replace the parser for a tag"""
        self._parsers[tag.lower()] = parser

    def resolve(self, tag: str) -> Parser:
        """Parser for tag; unknown tags fall back to string"""
        return self._parsers.get(tag.lower(), parse_string)

    def parse(self, tag: str, raw: str) -> TypedValue:
        return self.resolve(tag)(raw)

    @property
    def tags(self) -> list[str]:
        return sorted(self._parsers)


default_registry = TypeRegistry()


def values_equal(a: TypedValue | None, b: TypedValue | None) -> bool:
    """Structural equality that also requires the same type (True != 1)"""
    return type(a) is type(b) and a == b


def to_jsonable(value: TypedValue):
    """Convert a typed value to plain JSON-compatible data"""
    if isinstance(value, MappingProxyType):
        return dict(value)
    if isinstance(value, tuple):
        return list(value)
    if isinstance(value, (Vector2, Vector3, UDim, UDim2)):
        return {"type": type(value).__name__, **value.__dict__}
    return value
