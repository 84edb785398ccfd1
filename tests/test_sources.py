"""Tests for candidate URL generation, downloads and workbook reading."""

import io
import sys
import tempfile
import unittest
from datetime import date
from pathlib import Path
from unittest.mock import Mock, patch

import pandas as pd
import requests

sys.path.insert(0, str(Path(__file__).parent.parent))

from indec_series.cells import Grid
from indec_series.errors import SourceUnavailableError, StructureNotFoundError, TransientFetchError
from indec_series.sources import (
    Downloader,
    download_first_available,
    find_sheet,
    fixed_candidate_urls,
    monthly_candidate_urls,
    poverty_candidate_urls,
    quarterly_candidate_urls,
    read_csv_history,
    read_workbook,
)


def _response(content=b"", status=200):
    response = Mock()
    response.content = content
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} Error")
    else:
        response.raise_for_status.return_value = None
    return response


class TestCandidateUrls(unittest.TestCase):
    def test_monthly_newest_first(self):
        urls = monthly_candidate_urls("https://x/sh_ipc_{mm}_{yy}.xls", date(2024, 2, 10), lookback=3)
        self.assertEqual(
            urls,
            ["https://x/sh_ipc_02_24.xls", "https://x/sh_ipc_01_24.xls", "https://x/sh_ipc_12_23.xls"],
        )

    def test_quarterly_templates_per_quarter(self):
        templates = ["a_{qq}_{yy}.xls", "b_{q}T{yyyy}.xlsx"]
        urls = quarterly_candidate_urls(templates, date(2024, 5, 1), lookback=2)
        self.assertEqual(urls, ["a_02_24.xls", "b_2T2024.xlsx", "a_01_24.xls", "b_1T2024.xlsx"])

    def test_quarterly_crosses_year(self):
        urls = quarterly_candidate_urls(["eph_{qq}_{yy}.xls"], date(2024, 2, 1), lookback=2)
        self.assertEqual(urls, ["eph_01_24.xls", "eph_04_23.xls"])

    def test_poverty_publications_march_and_september(self):
        urls = poverty_candidate_urls("pobreza_{mm}_{yy}.xls", date(2024, 10, 1), lookback=3)
        self.assertEqual(urls, ["pobreza_09_24.xls", "pobreza_03_24.xls", "pobreza_09_23.xls", "pobreza_03_23.xls"])

    def test_poverty_before_first_publication_of_year(self):
        urls = poverty_candidate_urls("pobreza_{mm}_{yy}.xls", date(2024, 2, 1), lookback=1)
        self.assertEqual(urls, ["pobreza_09_23.xls", "pobreza_03_23.xls"])

    def test_fixed_urls_drop_blanks(self):
        self.assertEqual(fixed_candidate_urls(["a", "", None, "b"]), ["a", "b"])


class TestDownloader(unittest.TestCase):
    @patch("indec_series.sources.requests.get")
    def test_falls_back_to_next_candidate(self, mock_get):
        mock_get.side_effect = [_response(status=404), _response(b"PK\x03\x04data")]
        result = download_first_available("ipc", ["https://x/new.xls", "https://x/old.xls"])
        self.assertEqual(result.url, "https://x/old.xls")
        self.assertEqual(result.filename, "old.xls")
        self.assertEqual(len(result.attempts), 1)
        self.assertIsInstance(result.attempts[0], TransientFetchError)
        self.assertEqual(mock_get.call_count, 2)
        self.assertIn("User-Agent", mock_get.call_args.kwargs["headers"])

    @patch("indec_series.sources.requests.get")
    def test_html_error_pages_are_rejected(self, mock_get):
        mock_get.return_value = _response(b"<!DOCTYPE html><html>no encontrado</html>")
        with self.assertRaises(SourceUnavailableError) as ctx:
            download_first_available("ipc", ["https://x/a.xls"])
        self.assertEqual(ctx.exception.indicator, "ipc")
        self.assertIn("HTML", ctx.exception.attempts[0].reason)

    @patch("indec_series.sources.requests.get")
    def test_connection_errors_are_retried(self, mock_get):
        mock_get.side_effect = [requests.ConnectionError("reset"), _response(b"xls-bytes")]
        downloader = Downloader(retry_attempts=2, retry_wait_seconds=0)
        self.assertEqual(downloader.fetch("https://x/a.xls"), b"xls-bytes")
        self.assertEqual(mock_get.call_count, 2)

    @patch("indec_series.sources.requests.get")
    def test_all_candidates_failing_raises(self, mock_get):
        mock_get.side_effect = requests.Timeout("timeout")
        downloader = Downloader(retry_attempts=1, retry_wait_seconds=0)
        with self.assertRaises(SourceUnavailableError) as ctx:
            downloader.fetch_first("emae", ["https://x/a.xls", "https://x/b.xls"])
        self.assertEqual(len(ctx.exception.attempts), 2)
        self.assertIn("emae", str(ctx.exception))

    def test_settings_come_from_download_and_storage_sections(self):
        config = {
            "download": {"timeout_seconds": 15, "retry_attempts": 4, "persist_raw": True},
            "storage": {"raw_dir": "data/raw"},
        }
        downloader = Downloader.from_config(config)
        self.assertEqual(downloader.timeout_seconds, 15.0)
        self.assertEqual(downloader.retry_attempts, 4)
        self.assertEqual(downloader.raw_dir, "data/raw")

        downloader = Downloader.from_config({"download": None})
        self.assertEqual(downloader.retry_attempts, 2)
        self.assertIsNone(downloader.raw_dir)

    @patch("indec_series.sources.requests.get")
    def test_raw_blob_is_persisted(self, mock_get):
        mock_get.return_value = _response(b"xls-bytes")
        with tempfile.TemporaryDirectory() as raw_dir:
            downloader = Downloader(retry_wait_seconds=0, raw_dir=raw_dir)
            result = downloader.fetch_first("ipc", ["https://x/sh_ipc_01_24.xls"])
            self.assertTrue(result.raw_path.endswith("sh_ipc_01_24.xls"))
            self.assertEqual(Path(result.raw_path).read_bytes(), b"xls-bytes")


class TestWorkbook(unittest.TestCase):
    def test_read_workbook_builds_grids(self):
        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            pd.DataFrame([["Región", "T1 2020"], ["GBA", 7.5]]).to_excel(
                writer, sheet_name="Cuadro 1", header=False, index=False
            )
            pd.DataFrame([["Notas"]]).to_excel(writer, sheet_name="Notas", header=False, index=False)

        workbook = read_workbook(buffer.getvalue(), "eph.xlsx")

        self.assertEqual(list(workbook), ["Cuadro 1", "Notas"])
        grid = workbook["Cuadro 1"]
        self.assertEqual(grid.text(1, 0), "GBA")
        self.assertEqual(grid.number(1, 1), 7.5)

    def test_unreadable_blob_raises(self):
        with self.assertRaises(StructureNotFoundError):
            read_workbook(b"definitely not a spreadsheet", "broken.xls")

    def test_find_sheet_exact_then_contains(self):
        workbook = {
            "Cuadro 1.1": Grid.from_rows("Cuadro 1.1", []),
            "Cuadro 1": Grid.from_rows("Cuadro 1", []),
            "Índices IPC Cobertura Nacional": Grid.from_rows("Índices IPC Cobertura Nacional", []),
        }
        self.assertEqual(find_sheet(workbook, ["Cuadro 1"]).name, "Cuadro 1")
        self.assertEqual(find_sheet(workbook, ["indices ipc"]).name, "Índices IPC Cobertura Nacional")
        self.assertIsNone(find_sheet(workbook, ["Cuadro 9"]))


class TestCsvHistory(unittest.TestCase):
    def test_columns_are_normalized_and_values_kept_as_text(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "emae.csv"
            path.write_text("Date;Original Value\n2023-01-01;140,5\n2023-02-01;\n", encoding="utf-8")
            frame = read_csv_history(path, sep=";")

        self.assertEqual(list(frame.columns), ["date", "original_value"])
        self.assertEqual(frame["original_value"].tolist(), ["140,5", ""])

    def test_empty_file_raises(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "vacio.csv"
            path.write_text("", encoding="utf-8")
            with self.assertRaises(StructureNotFoundError):
                read_csv_history(path)


if __name__ == "__main__":
    unittest.main()
