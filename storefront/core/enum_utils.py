"""
Enum Utilities for VARCHAR-based Status Fields

CONVENTION:
━━━━━━━━━━━
• Database: VARCHAR(30) - no database ENUM types
• SQLAlchemy: String(30) with Mapped[str]
• Python / Pydantic: str-Enum for validation and comparisons
• Values are stored in UPPERCASE

DATA FLOW:
━━━━━━━━━━
    Enum → .value → String → Database
    Database → String → to_enum() when a transition table needs the enum
"""

from enum import Enum
from typing import Any, Optional, TypeVar, Type


T = TypeVar('T', bound=Enum)


def get_enum_value(value: Any) -> Optional[str]:
    """
    Safely get string value from an enum or string.

    Examples:
        >>> get_enum_value(OrderStatus.PENDING)
        'PENDING'
        >>> get_enum_value("PENDING")
        'PENDING'
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return str(value)


def to_enum(value: Any, enum_class: Type[T]) -> Optional[T]:
    """
    Convert a database string to an enum instance, or None if unknown.

    Examples:
        >>> to_enum("PAID", PaymentStatus)
        PaymentStatus.PAID
        >>> to_enum("INVALID", PaymentStatus)
        None
    """
    if value is None:
        return None
    if isinstance(value, enum_class):
        return value
    try:
        return enum_class(str(value).upper())
    except (ValueError, KeyError):
        return None
