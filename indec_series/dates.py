"""Date coercion and period token parsing for INDEC spreadsheets."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, NamedTuple, Optional

from indec_series.cells import Cell, DateCell, EmptyCell, NumberCell, TextCell, to_cell
from indec_series.matching import normalize_text

SPANISH_MONTHS = {
    "enero": 1,
    "febrero": 2,
    "marzo": 3,
    "abril": 4,
    "mayo": 5,
    "junio": 6,
    "julio": 7,
    "agosto": 8,
    "septiembre": 9,
    "setiembre": 9,
    "octubre": 10,
    "noviembre": 11,
    "diciembre": 12,
}

MONTH_ABBREVIATIONS = {
    "ene": 1,
    "feb": 2,
    "mar": 3,
    "abr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "ago": 8,
    "sept": 9,
    "sep": 9,
    "set": 9,
    "oct": 10,
    "nov": 11,
    "dic": 12,
}

_MONTH_WORDS = {**SPANISH_MONTHS, **MONTH_ABBREVIATIONS}
# Whole words only: "energia" or "mayores" are not months.
MONTH_NAME_PATTERN = re.compile(
    r"\b(" + "|".join(sorted(_MONTH_WORDS, key=len, reverse=True)) + r")(?![a-z])"
)
YEAR_20XX_PATTERN = re.compile(r"\b(20\d{2})\b")

ISO_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})(?:-(\d{1,2}))?$")
YEAR_FIRST_SLASH_PATTERN = re.compile(r"^(\d{4})/(\d{1,2})(?:/(\d{1,2}))?$")
MONTH_YEAR_PATTERN = re.compile(r"^(\d{1,2})[/-](\d{4}|\d{2})$")
DAY_MONTH_YEAR_PATTERN = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4}|\d{2})$")
DOTTED_PATTERN = re.compile(r"^(\d{1,2})\.(\d{4}|\d{2})$")

# Spreadsheet serial dates count days from 1899-12-30; 2958465 is 9999-12-31.
EXCEL_EPOCH = datetime(1899, 12, 30)
MAX_EXCEL_SERIAL = 2958465
TIMESTAMP_THRESHOLD = 10000

_ORDINAL = r"(?:°|º|o|er|ero|ra|do|ndo|to|ro)?\.?"
_YEAR = r"((?:19|20)\d{2})"
QUARTER_TOKEN_PATTERNS = (
    re.compile(r"\bt\s*([1-4])\s*[-/ ]?\s*(?:de\s+)?" + _YEAR + r"\b"),
    re.compile(r"\b([1-4])\s*" + _ORDINAL + r"\s*trim(?:estre)?\.?\s*(?:de\s+|del\s+)?" + _YEAR + r"\b"),
)
QUARTER_YEAR_FIRST_PATTERN = re.compile(r"\b" + _YEAR + r"\s*[-/ ]?\s*t\s*([1-4])\b")
SEMESTER_TOKEN_PATTERNS = (
    re.compile(r"\b([12])\s*" + _ORDINAL + r"\s*sem(?:estre)?\.?\s*(?:de\s+|del\s+)?" + _YEAR + r"\b"),
    re.compile(r"\bs\s*([12])\s*[-/ ]?\s*" + _YEAR + r"\b"),
)
YEAR_MARKER_PATTERN = re.compile(r"\bano\s*" + _YEAR + r"\b")
SUB_PERIOD_PATTERN = re.compile(r"^([1-4])\s*" + _ORDINAL + r"\s*(trim|sem)")
SHORT_SUB_PERIOD_PATTERN = re.compile(r"^(t|s)\s*([1-4])$")

SUB_PERIODS_PER_YEAR = {"M": 12, "Q": 4, "S": 2}


class PeriodToken(NamedTuple):
    year: int
    sub_period: int
    frequency: str  # M | Q | S


def _iso_month(year: int, month: int) -> Optional[str]:
    if not 1 <= month <= 12 or year <= 0:
        return None
    return f"{year:04d}-{month:02d}-01"


def _full_year(value: str) -> int:
    year = int(value)
    return 2000 + year if len(value) == 2 else year


def month_from_name(value: Any) -> Optional[int]:
    """Month number of a Spanish month name or abbreviation found in ``value``."""
    match = MONTH_NAME_PATTERN.search(normalize_text(value))
    if not match:
        return None
    return _MONTH_WORDS[match.group(1)]


def _date_from_number(number: float) -> Optional[str]:
    if 1 <= number <= MAX_EXCEL_SERIAL:
        decoded = EXCEL_EPOCH + timedelta(days=int(number))
        return _iso_month(decoded.year, decoded.month)
    if number > TIMESTAMP_THRESHOLD:
        try:
            decoded = datetime.fromtimestamp(number / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
        return _iso_month(decoded.year, decoded.month)
    return None


def _date_from_text(text: str) -> Optional[str]:
    txt = text.strip()
    if not txt:
        return None

    match = ISO_PATTERN.match(txt) or YEAR_FIRST_SLASH_PATTERN.match(txt)
    if match:
        return _iso_month(int(match.group(1)), int(match.group(2)))

    match = MONTH_YEAR_PATTERN.match(txt) or DOTTED_PATTERN.match(txt)
    if match:
        return _iso_month(_full_year(match.group(2)), int(match.group(1)))

    match = DAY_MONTH_YEAR_PATTERN.match(txt)
    if match:
        return _iso_month(_full_year(match.group(3)), int(match.group(2)))

    month = month_from_name(txt)
    year_match = YEAR_20XX_PATTERN.search(txt)
    if month and year_match:
        return _iso_month(int(year_match.group(1)), month)

    return None


def extract_date(value: Any) -> Optional[str]:
    """Normalize a spreadsheet value to a ``YYYY-MM-01`` period key.

    Accepts serial-date numbers, date objects and the textual layouts INDEC
    uses (``2021-03``, ``03/2021``, ``03/21``, ``15/03/2021``, ``03.2021``,
    ``marzo 2021``). Returns None when nothing matches; never raises.
    """
    cell = to_cell(value)
    if isinstance(cell, DateCell):
        return _iso_month(cell.value.year, cell.value.month)
    if isinstance(cell, NumberCell):
        return _date_from_number(cell.value)
    if isinstance(cell, TextCell):
        return _date_from_text(cell.text)
    return None


def period_start(year: int, sub_period: int, frequency: str) -> str:
    """ISO date of the first day of a month, quarter or semester."""
    if frequency == "Q":
        month = 3 * (sub_period - 1) + 1
    elif frequency == "S":
        month = 6 * (sub_period - 1) + 1
    else:
        month = sub_period
    return f"{year:04d}-{month:02d}-01"


def period_label(year: int, sub_period: int, frequency: str) -> str:
    if frequency == "Q":
        return f"T{sub_period} {year}"
    if frequency == "S":
        return f"S{sub_period} {year}"
    return f"{year:04d}-{sub_period:02d}"


def parse_year_marker(cell: Cell) -> Optional[int]:
    """Year of a header marker such as ``Año 2017`` (or a bare year)."""
    if isinstance(cell, NumberCell):
        if cell.value.is_integer() and 1950 <= cell.value <= 2100:
            return int(cell.value)
        return None
    if not isinstance(cell, TextCell):
        return None
    txt = normalize_text(cell.text)
    match = YEAR_MARKER_PATTERN.search(txt)
    if match:
        return int(match.group(1))
    if re.fullmatch(_YEAR, txt):
        return int(txt)
    return None


def parse_sub_period(cell: Cell) -> Optional[tuple]:
    """``(number, frequency)`` of a bare sub-period label such as ``1° trimestre``."""
    if not isinstance(cell, TextCell):
        return None
    txt = normalize_text(cell.text)
    if YEAR_MARKER_PATTERN.search(txt) or re.search(r"\b(19|20)\d{2}\b", txt):
        return None
    match = SUB_PERIOD_PATTERN.match(txt)
    if match:
        frequency = "Q" if match.group(2) == "trim" else "S"
        number = int(match.group(1))
        if number > SUB_PERIODS_PER_YEAR[frequency]:
            return None
        return number, frequency
    match = SHORT_SUB_PERIOD_PATTERN.match(txt)
    if match:
        frequency = "Q" if match.group(1) == "t" else "S"
        number = int(match.group(2))
        if number > SUB_PERIODS_PER_YEAR[frequency]:
            return None
        return number, frequency
    return None


def _parse_period_text(text: str) -> Optional[PeriodToken]:
    txt = normalize_text(text)
    if not txt:
        return None

    for pattern in SEMESTER_TOKEN_PATTERNS:
        match = pattern.search(txt)
        if match:
            return PeriodToken(int(match.group(2)), int(match.group(1)), "S")

    for pattern in QUARTER_TOKEN_PATTERNS:
        match = pattern.search(txt)
        if match:
            return PeriodToken(int(match.group(2)), int(match.group(1)), "Q")

    match = QUARTER_YEAR_FIRST_PATTERN.search(txt)
    if match:
        return PeriodToken(int(match.group(1)), int(match.group(2)), "Q")

    # Combined "Año 2017 1° trimestre" in one cell
    year_match = YEAR_MARKER_PATTERN.search(txt)
    if year_match:
        rest = txt[year_match.end():].strip(" -/,")
        sub = parse_sub_period(TextCell(rest)) if rest else None
        if sub:
            return PeriodToken(int(year_match.group(1)), sub[0], sub[1])

    iso = _date_from_text(text)
    if iso:
        return PeriodToken(int(iso[:4]), int(iso[5:7]), "M")
    return None


def parse_period_token(value: Any) -> Optional[PeriodToken]:
    """Period named by a single header cell (quarter, semester or month)."""
    cell = to_cell(value)
    if isinstance(cell, EmptyCell):
        return None
    if isinstance(cell, TextCell):
        return _parse_period_text(cell.text)
    iso = extract_date(cell)
    if not iso:
        return None
    year = int(iso[:4])
    # Numbers in header rows are only periods when they decode to a plausible year
    if isinstance(cell, NumberCell) and not 1950 <= year <= 2100:
        return None
    return PeriodToken(year, int(iso[5:7]), "M")


def shift_months(year: int, month: int, delta: int) -> tuple:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def today_utc() -> date:
    return datetime.now(timezone.utc).date()
