"""Error taxonomy for spreadsheet ingestion runs."""

from __future__ import annotations

from typing import List, Optional, Tuple


class IngestionError(Exception):
    """Base class for hard ingestion failures."""


class TransientFetchError(IngestionError):
    """A single candidate URL could not be downloaded."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"{url}: {reason}")


class SourceUnavailableError(IngestionError):
    """Every candidate URL of an indicator failed."""

    def __init__(self, indicator: str, attempts: Optional[List[TransientFetchError]] = None):
        self.indicator = indicator
        self.attempts = list(attempts or [])
        tried = len(self.attempts)
        last = f" (ultimo error: {self.attempts[-1].reason})" if self.attempts else ""
        super().__init__(f"Fuente no disponible para {indicator}: {tried} URLs probadas{last}")


class StructureNotFoundError(IngestionError):
    """A sheet does not contain the expected entities or periods.

    Carries the sheet name and a dump of its first rows so the failure can be
    diagnosed from the logs alone.
    """

    def __init__(self, sheet_name: str, reason: str, dump: str = ""):
        self.sheet_name = sheet_name
        self.reason = reason
        self.dump = dump
        super().__init__(f"Estructura no encontrada en hoja '{sheet_name}': {reason}")

    def __str__(self) -> str:
        message = super().__str__()
        if self.dump:
            return f"{message}\n{self.dump}"
        return message


class DuplicatePeriodWarning(UserWarning):
    """A period label appeared more than once in a header; the first column wins."""

    def __init__(self, sheet_name: str, period_label: str, kept_column: int, dropped_column: int):
        self.sheet_name = sheet_name
        self.period_label = period_label
        self.kept_column = kept_column
        self.dropped_column = dropped_column
        super().__init__(
            f"Periodo duplicado '{period_label}' en hoja '{sheet_name}': "
            f"se conserva columna {kept_column}, se descarta {dropped_column}"
        )


class MalformedCellError(ValueError):
    """A cell failed numeric or date coercion.

    Never raised during extraction: malformed cells are skipped and counted.
    Kept so callers can describe the condition with a concrete type.
    """

    def __init__(self, position: Tuple[int, int], raw: object):
        self.position = position
        self.raw = raw
        super().__init__(f"Celda no numerica en {position}: {raw!r}")
