"""Utility functions for the mortgage simulator.

This module provides helpers for parsing user input into Python data types,
for month arithmetic on ``datetime.date`` instances and for the cent-exact
money arithmetic used throughout the engine. Amounts are integer cents; any
intermediate ``Decimal`` result that becomes money is rounded to a whole cent
with ``ROUND_HALF_UP`` (half away from zero).
"""

from __future__ import annotations

import calendar
from datetime import date
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, getcontext
from typing import Union

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

Number = Union[int, Decimal]


def parse_year_month(ym: str) -> date:
    """Parse a YYYY-MM (or YYYY-MM-DD) string into a ``date`` object.

    Parameters
    ----------
    ym: str
        A string in the form ``"YYYY-MM"``. The day component, if present,
        will be ignored.

    Returns
    -------
    date
        A date object representing the first day of the specified month.

    Raises
    ------
    ValueError
        If the string is not a valid year-month.
    """
    try:
        parts = ym.split("-")
        if len(parts) < 2:
            raise ValueError
        year = int(parts[0])
        month = int(parts[1])
        return date(year, month, 1)
    except (ValueError, AttributeError) as exc:
        raise ValueError(f"Invalid year-month string: {ym}") from exc


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def date_for_month(start_date: date | None, month: int) -> date | None:
    """Calendar date of mortgage month ``month`` (month 1 is the start date)."""
    if start_date is None:
        return None
    return add_months(start_date, month - 1)


def decimal_from_str(value: str) -> Decimal:
    """Convert a numeric string into a ``Decimal``.

    The function strips any commas and handles both integer and float-like
    strings. It raises ``ValueError`` if conversion fails.
    """
    try:
        cleaned = str(value).replace(",", "").strip()
        result = Decimal(cleaned)
    except ArithmeticError as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value}")
    return result


def parse_amount(value: str) -> int:
    """Parse a euro amount with optional suffixes into cents.

    Accepts plain numbers ("500000", "1,250.50") and shorthand with ``k``/``m``
    suffixes (e.g. "500k" meaning 500_000 euros).
    """
    text = str(value).strip().lower().replace(",", "")
    factor = Decimal(1)
    if text.endswith("k"):
        factor = Decimal(1_000)
        text = text[:-1]
    elif text.endswith("m"):
        factor = Decimal(1_000_000)
        text = text[:-1]
    return round_cents(decimal_from_str(text) * factor * 100)


def round_cents(value: Number) -> int:
    """Round a cent amount to a whole cent, half away from zero."""
    return int(Decimal(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def floor_cents(value: Number) -> int:
    return int(Decimal(value).quantize(Decimal(1), rounding=ROUND_FLOOR))


def percent_of(amount: Number, percent: Number) -> Decimal:
    return Decimal(amount) * Decimal(percent) / 100


def monthly_rate(annual_rate: Decimal) -> Decimal:
    """Convert an annual rate in percent to a monthly rate in decimal."""
    return Decimal(annual_rate) / Decimal(100) / Decimal(12)


def annuity_payment(balance: Number, annual_rate: Decimal, months: int) -> int:
    """Return the annuity (equal installment) monthly payment in cents.

    The formula is:

        payment = B * r / (1 - (1 + r)^-n)

    where ``B`` is the balance, ``r`` the monthly rate and ``n`` the number of
    remaining payments. When the rate is zero the payment simplifies to
    ``B / n``. With no months left the whole balance is due.
    """
    if months <= 0:
        return balance
    if balance <= 0:
        return 0
    rate = monthly_rate(annual_rate)
    if rate == 0:
        return round_cents(Decimal(balance) / Decimal(months))
    payment = Decimal(balance) * rate / (1 - (1 + rate) ** -months)
    return round_cents(payment)


def interest_for_month(balance: int, annual_rate: Decimal) -> int:
    """Interest accrued on ``balance`` over one month, in cents."""
    if balance <= 0:
        return 0
    return round_cents(Decimal(balance) * monthly_rate(annual_rate))


def format_cents(amount: int) -> str:
    """Render cents as a euro string with thousands separators."""
    sign = "-" if amount < 0 else ""
    euros, cents = divmod(abs(amount), 100)
    return f"{sign}€{euros:,}.{cents:02d}"
