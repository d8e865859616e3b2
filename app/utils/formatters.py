"""
Formatting utilities for invoices and user-facing messages.
Amounts are integer minor units (paise) rendered in Indian style.
"""
from decimal import Decimal, InvalidOperation
from datetime import datetime
from typing import Union, Optional


def group_in(integer_part: str) -> str:
    """
    Group the digits of a non-negative integer string in Indian style:
    the last three digits, then groups of two.

    Examples:
        group_in("123") -> "123"
        group_in("123456") -> "1,23,456"
        group_in("12345678") -> "1,23,45,678"
    """
    if len(integer_part) <= 3:
        return integer_part

    head, tail = integer_part[:-3], integer_part[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ','.join(groups + [tail])


def money_inr(value: Union[int, Decimal, str, None], symbol: Optional[str] = '₹') -> str:
    """
    Format an amount in minor units (paise) as rupees with Indian grouping.

    Args:
        value: Amount in paise
        symbol: Currency symbol prefix (None or '' to omit)

    Returns:
        Formatted string, or "-" when the value is invalid

    Examples:
        money_inr(12345650) -> "₹1,23,456.50"
        money_inr(50000) -> "₹500.00"
        money_inr(-1050) -> "-₹10.50"
    """
    if value is None or value == "":
        return "-"

    try:
        paise = int(Decimal(str(value)))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    sign = "-" if paise < 0 else ""
    rupees, fraction = divmod(abs(paise), 100)
    return f"{sign}{symbol or ''}{group_in(str(rupees))}.{fraction:02d}"


def num_in(value: Union[int, Decimal, None]) -> str:
    """
    Format a whole number with Indian grouping.

    Examples:
        num_in(150000) -> "1,50,000"
        num_in(None) -> "-"
    """
    if value is None:
        return "-"
    try:
        number = int(value)
    except (ValueError, TypeError):
        return "-"
    sign = "-" if number < 0 else ""
    return f"{sign}{group_in(str(abs(number)))}"


def datetime_in(value: Union[datetime, None]) -> str:
    """Format a datetime as DD/MM/YYYY HH:MM."""
    if not isinstance(value, datetime):
        return "-"
    return value.strftime("%d/%m/%Y %H:%M")
