"""
Input parsing helpers used by the service layer.

Each helper accepts the raw value coming from a JSON body or form field and
either returns the parsed value or raises BadRequestError naming the field.
"""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, Type

from .errors import BadRequestError


def parse_date(value: Any, field: str, required: bool = False) -> Optional[date]:
    """Parse an ISO date (or the date part of an ISO datetime)"""
    if value is None or value == '':
        if required:
            raise BadRequestError(f"{field} is required")
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        text = str(value).strip()
        if len(text) > 10:
            return datetime.fromisoformat(text.replace('Z', '+00:00')).date()
        return date.fromisoformat(text)
    except ValueError:
        raise BadRequestError(f"{field} must be an ISO date (YYYY-MM-DD)")


def parse_datetime(value: Any, field: str) -> Optional[datetime]:
    """Parse an ISO datetime; timezone info is dropped after conversion"""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace('Z', '+00:00'))
    except ValueError:
        raise BadRequestError(f"{field} must be an ISO datetime")
    return parsed.replace(tzinfo=None)


def parse_weight(value: Any, field: str) -> Optional[Decimal]:
    """Parse a non-negative decimal weight in tons"""
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise BadRequestError(f"{field} must be a number")
    try:
        weight = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise BadRequestError(f"{field} must be a number")
    if not weight.is_finite():
        raise BadRequestError(f"{field} must be a number")
    if weight < 0:
        raise BadRequestError(f"{field} must be greater than or equal to 0")
    return weight


def parse_amount(value: Any, field: str) -> Decimal:
    """Parse a strictly positive money amount"""
    amount = parse_weight(value, field)
    if amount is None:
        raise BadRequestError(f"{field} is required")
    if amount == 0:
        raise BadRequestError(f"{field} must be greater than 0")
    return amount


def parse_id(value: Any, field: str, required: bool = True) -> Optional[int]:
    if value is None or value == '':
        if required:
            raise BadRequestError(f"{field} is required")
        return None
    if isinstance(value, bool):
        raise BadRequestError(f"{field} must be an integer id")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BadRequestError(f"{field} must be an integer id")


def parse_enum(value: Any, enum_cls: Type[Enum], field: str, default: Optional[Enum] = None):
    """Accept an enum member, its name or its value (case-insensitive)"""
    if value is None or value == '':
        if default is None:
            raise BadRequestError(f"{field} is required")
        return default
    if isinstance(value, enum_cls):
        return value
    text = str(value).strip()
    for member in enum_cls:
        if text.upper() == member.name or text.lower() == str(member.value).lower():
            return member
    allowed = ', '.join(member.name for member in enum_cls)
    raise BadRequestError(f"{field} must be one of: {allowed}")


def clean_text(value: Any, max_length: Optional[int] = None) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if max_length:
        text = text[:max_length]
    return text
