"""Enum conversion utilities for config files and API payloads"""

from enum import Enum
from typing import Any, List, Type, TypeVar

E = TypeVar("E", bound=Enum)


class EnumHelper:
    """
    Conversions between enum members and the lowercase names used in
    YAML configuration and JSON responses.
    """

    @staticmethod
    def to_string(enum_value: Enum, lowercase: bool = True) -> str:
        if not isinstance(enum_value, Enum):
            raise TypeError(f"Expected Enum, got {type(enum_value).__name__}")
        name = enum_value.name
        return name.lower() if lowercase else name

    @staticmethod
    def list_names(enum_class: Type[E], lowercase: bool = True) -> List[str]:
        if lowercase:
            return [member.name.lower() for member in enum_class]
        return [member.name for member in enum_class]

    @staticmethod
    def to_enum(enum_class: Type[E], value: Any) -> E:
        """
        Convert a config value to an enum member (case-insensitive).

        Raises:
            ValueError: unknown name (message lists the valid ones)
            TypeError: value is neither a member nor a string
        """
        if isinstance(value, enum_class):
            return value
        if isinstance(value, str):
            try:
                return enum_class[value.strip().upper()]
            except KeyError:
                valid = ", ".join(EnumHelper.list_names(enum_class))
                raise ValueError(
                    f"Invalid value '{value}' for {enum_class.__name__} (expected one of: {valid})"
                )
        raise TypeError(f"Expected str or {enum_class.__name__}, got {type(value).__name__}")
