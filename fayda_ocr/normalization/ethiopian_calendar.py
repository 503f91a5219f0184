"""Ethiopian <-> Gregorian calendar conversion through Julian day numbers.

The Ethiopian calendar has twelve 30-day months followed by Pagume, a
thirteenth month of five days (six in the year before a Gregorian leap
year). Both calendars are mapped onto the Julian day number so dates can
be compared exactly.
"""

from datetime import date

# JDN of 1 Meskerem, year 1 (Amete Mihret era)
ETHIOPIAN_EPOCH = 1723856

# date.toordinal() of a day plus this offset gives its JDN
_GREGORIAN_ORDINAL_OFFSET = 1721425


def is_ethiopian_leap_year(year: int) -> bool:
    """Return whether Pagume has six days in the given Ethiopian year."""
    return year % 4 == 3


def ethiopian_month_length(year: int, month: int) -> int:
    """Number of days in an Ethiopian month (1-13)."""
    if month == 13:
        return 6 if is_ethiopian_leap_year(year) else 5
    return 30


def ethiopian_to_jdn(year: int, month: int, day: int) -> int:
    """Convert an Ethiopian date to its Julian day number."""
    return (
        ETHIOPIAN_EPOCH
        + 365
        + 365 * (year - 1)
        + year // 4
        + 30 * month
        + day
        - 31
    )


def jdn_to_ethiopian(jdn: int) -> tuple[int, int, int]:
    """Convert a Julian day number to an Ethiopian ``(year, month, day)``."""
    offset = jdn - ETHIOPIAN_EPOCH
    r = offset % 1461
    n = r % 365 + 365 * (r // 1460)
    year = 4 * (offset // 1461) + r // 365 - r // 1460
    return year, n // 30 + 1, n % 30 + 1


def gregorian_to_jdn(value: date) -> int:
    return value.toordinal() + _GREGORIAN_ORDINAL_OFFSET


def jdn_to_gregorian(jdn: int) -> date:
    return date.fromordinal(jdn - _GREGORIAN_ORDINAL_OFFSET)


def ethiopian_to_gregorian(year: int, month: int, day: int) -> date:
    """Convert an Ethiopian date to a Gregorian :class:`datetime.date`.

    Example:
        >>> ethiopian_to_gregorian(2018, 4, 27)
        datetime.date(2026, 1, 5)
    """
    return jdn_to_gregorian(ethiopian_to_jdn(year, month, day))


def gregorian_to_ethiopian(value: date) -> tuple[int, int, int]:
    """Convert a Gregorian date to an Ethiopian ``(year, month, day)``."""
    return jdn_to_ethiopian(gregorian_to_jdn(value))


def parse_canonical(value: str) -> tuple[int, int, int]:
    """Split a canonical ``YYYY/MM/DD`` string into integers.

    Raises:
        ValueError: If the string is not in canonical form.
    """
    parts = value.split("/")
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        raise ValueError(f"not a canonical YYYY/MM/DD date: {value!r}")
    year, month, day = (int(p) for p in parts)
    return year, month, day


def days_between(ethiopian: str, gregorian: str) -> int:
    """Signed day difference between two canonical dates of a date pair.

    Args:
        ethiopian: Ethiopian date as ``YYYY/MM/DD``.
        gregorian: Gregorian date as ``YYYY/MM/DD``.

    Returns:
        Gregorian JDN minus Ethiopian JDN; 0 when both name the same day.
    """
    eth_jdn = ethiopian_to_jdn(*parse_canonical(ethiopian))
    greg_jdn = gregorian_to_jdn(date(*parse_canonical(gregorian)))
    return greg_jdn - eth_jdn
