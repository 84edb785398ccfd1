"""Grid abstraction over parsed spreadsheet sheets.

Every cell read from a workbook is converted once, at the grid boundary, into one
of four variants: ``NumberCell``, ``TextCell``, ``DateCell`` or ``EMPTY``. The
locator and extractor dispatch on these variants instead of probing raw pandas
values.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd


@dataclass(frozen=True)
class NumberCell:
    value: float


@dataclass(frozen=True)
class TextCell:
    text: str


@dataclass(frozen=True)
class DateCell:
    value: date


@dataclass(frozen=True)
class EmptyCell:
    def __bool__(self) -> bool:
        return False


EMPTY = EmptyCell()

Cell = Union[NumberCell, TextCell, DateCell, EmptyCell]


def to_cell(value: Any) -> Cell:
    """Convert a raw value (as pandas or a test fixture yields it) into a cell."""
    if isinstance(value, (NumberCell, TextCell, DateCell, EmptyCell)):
        return value
    if value is None or value is pd.NaT:
        return EMPTY
    if isinstance(value, bool):
        return TextCell(str(value))
    if isinstance(value, (pd.Timestamp, datetime)):
        if pd.isna(value):
            return EMPTY
        return DateCell(value.date())
    if isinstance(value, date):
        return DateCell(value)
    if isinstance(value, str):
        text = value.strip()
        return TextCell(text) if text else EMPTY
    try:
        number = float(value)
    except (TypeError, ValueError):
        text = str(value).strip()
        return TextCell(text) if text else EMPTY
    if math.isnan(number):
        return EMPTY
    return NumberCell(number)


def cell_text(cell: Cell) -> str:
    """Render a cell as display text ('' for empty cells)."""
    if isinstance(cell, TextCell):
        return cell.text
    if isinstance(cell, NumberCell):
        if cell.value.is_integer():
            return str(int(cell.value))
        return str(cell.value)
    if isinstance(cell, DateCell):
        return cell.value.isoformat()
    return ""


def _parse_numeric_text(text: str) -> Optional[float]:
    txt = (
        text.replace("−", "-")
        .replace("\xa0", "")
        .replace("%", "")
        .replace(" ", "")
    )
    if "," in txt and "." in txt:
        txt = txt.replace(".", "").replace(",", ".")
    else:
        txt = txt.replace(",", ".")
    if not re.fullmatch(r"[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?", txt):
        return None
    return float(txt)


def coerce_number(cell: Cell) -> Optional[float]:
    """Numeric value of a cell, or None when the cell is empty or not numeric."""
    if isinstance(cell, NumberCell):
        return cell.value
    if isinstance(cell, TextCell):
        return _parse_numeric_text(cell.text)
    return None


@dataclass(frozen=True)
class Grid:
    """A named sheet as an immutable 2D array of cells."""

    name: str
    rows: Tuple[Tuple[Cell, ...], ...]

    @classmethod
    def from_rows(cls, name: str, rows: Iterable[Sequence[Any]]) -> "Grid":
        return cls(name=name, rows=tuple(tuple(to_cell(v) for v in row) for row in rows))

    @classmethod
    def from_dataframe(cls, name: str, frame: pd.DataFrame) -> "Grid":
        return cls.from_rows(name, frame.itertuples(index=False, name=None))

    @property
    def n_rows(self) -> int:
        return len(self.rows)

    @property
    def n_cols(self) -> int:
        return max((len(row) for row in self.rows), default=0)

    def cell(self, row: int, col: int) -> Cell:
        if row < 0 or col < 0 or row >= len(self.rows):
            return EMPTY
        values = self.rows[row]
        if col >= len(values):
            return EMPTY
        return values[col]

    def text(self, row: int, col: int) -> str:
        return cell_text(self.cell(row, col))

    def number(self, row: int, col: int) -> Optional[float]:
        return coerce_number(self.cell(row, col))

    def populated_columns(self, row: int, start_col: int = 0) -> List[int]:
        if row < 0 or row >= len(self.rows):
            return []
        return [
            col for col in range(start_col, len(self.rows[row]))
            if not isinstance(self.rows[row][col], EmptyCell)
        ]

    def head(self, n: int = 10) -> str:
        """Diagnostic dump of the first ``n`` rows."""
        lines = []
        for index, row in enumerate(self.rows[:n]):
            rendered = " | ".join(cell_text(cell) for cell in row)
            lines.append(f"{index:>3}: {rendered}")
        return "\n".join(lines)
