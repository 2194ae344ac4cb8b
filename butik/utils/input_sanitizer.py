"""
Input Sanitizer

Validation layer between caller-supplied values and database writes.
Quantities, prices and shipping costs reach the core from JSON bodies,
form fields and scripts, so they may arrive as int, float, Decimal or
numeric strings. Anything that cannot be read as a number raises
InvalidInputError naming the offending field.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from butik.core.exceptions import InvalidInputError

logger = logging.getLogger(__name__)


def sanitize_integer(
    value: Any,
    field_name: str = "integer",
    min_value: Optional[int] = None,
    required: bool = True,
) -> Optional[int]:
    """
    Coerce a value to int.

    Args:
        value: Raw value (int, numeric str, integral float/Decimal)
        field_name: Name of field (for error messages)
        min_value: Minimum allowed value
        required: If False, None/'' return None instead of raising

    Returns:
        Integer or None
    """
    if isinstance(value, str):
        value = value.strip()
        if value == "":
            value = None

    if value is None:
        if required:
            raise InvalidInputError(f"{field_name} is required", field=field_name)
        return None

    if isinstance(value, bool):
        raise InvalidInputError(f"{field_name} must be a valid number", field=field_name)

    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidInputError(f"{field_name} must be a valid number", field=field_name)

    if not number.is_finite() or number != number.to_integral_value():
        raise InvalidInputError(f"{field_name} must be a whole number", field=field_name)

    result = int(number)
    if min_value is not None and result < min_value:
        raise InvalidInputError(
            f"{field_name} must be at least {min_value}", field=field_name
        )
    return result


def sanitize_decimal(
    value: Any,
    field_name: str = "decimal",
    min_value: Optional[Decimal] = None,
    exclusive_min: bool = False,
    required: bool = True,
) -> Optional[Decimal]:
    """
    Coerce a monetary value to Decimal.

    `exclusive_min` turns the lower bound into a strict one, used for unit
    prices which must be positive while shipping cost may be zero.
    """
    if isinstance(value, str):
        value = value.strip()
        if value == "":
            value = None

    if value is None:
        if required:
            raise InvalidInputError(f"{field_name} is required", field=field_name)
        return None

    if isinstance(value, bool):
        raise InvalidInputError(f"{field_name} must be a valid number", field=field_name)

    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidInputError(f"{field_name} must be a valid number", field=field_name)

    if not result.is_finite():
        raise InvalidInputError(f"{field_name} must be a valid number", field=field_name)

    if min_value is not None:
        too_small = result <= min_value if exclusive_min else result < min_value
        if too_small:
            bound = "greater than" if exclusive_min else "at least"
            raise InvalidInputError(
                f"{field_name} must be {bound} {min_value}", field=field_name
            )
    return result


def sanitize_string(value: Any, max_length: Optional[int] = None) -> Optional[str]:
    """Strip a text value; empty strings become None."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if max_length and len(text) > max_length:
        logger.debug("Truncating value to %s characters", max_length)
        text = text[:max_length]
    return text
