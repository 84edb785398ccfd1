"""Tests for the per-indicator workbook parsers."""

import sys
import unittest
from datetime import date, datetime
from pathlib import Path

import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent))

from indec_series.cells import Grid
from indec_series.errors import StructureNotFoundError
from indec_series.fetchers import FETCHERS
from indec_series.fetchers.emae import EMAEFetcher
from indec_series.fetchers.ipc import IPCFetcher
from indec_series.fetchers.labor import LaborMarketFetcher, parse_segment, segment_code
from indec_series.fetchers.poverty import PovertyFetcher


def workbook(*grids):
    return {grid.name: grid for grid in grids}


class TestRegistry(unittest.TestCase):
    def test_every_indicator_has_a_fetcher(self):
        self.assertEqual(set(FETCHERS), {"emae", "ipc", "labor_market", "poverty"})

    def test_candidate_urls_follow_publication_calendar(self):
        today = date(2024, 5, 20)
        ipc_urls = IPCFetcher({}).candidate_urls(today)
        self.assertTrue(ipc_urls[0].endswith("sh_ipc_05_24.xls"))
        self.assertEqual(len(ipc_urls), 4)

        poverty_urls = PovertyFetcher({}).candidate_urls(today)
        self.assertTrue(poverty_urls[0].endswith("cuadros_informe_pobreza_03_24.xls"))

        configured = EMAEFetcher({"indicators": {"emae": {"urls": ["https://x/emae.xls"]}}})
        self.assertEqual(configured.candidate_urls(today), ["https://x/emae.xls"])


def ipc_sheet():
    return Grid.from_rows(
        "Índices IPC Cobertura Nacional",
        [
            ["Cuadro 1. Índices", None, None],
            [None, datetime(2024, 1, 1), datetime(2024, 2, 1)],
            ["Total nacional", None, None],
            ["Nivel general", 100.0, 113.2],
            ["Alimentos y bebidas no alcohólicas", 101.5, 115.0],
            ["Categorías", None, None],
            ["Estacional", 102.0, 120.0],
            ["Núcleo", 100.5, "///"],
            ["Región GBA", None, None],
            ["Nivel general", 99.0, 110.0],
        ],
    )


class TestIPCFetcher(unittest.TestCase):
    def test_parse_regions_and_components(self):
        fetcher = IPCFetcher({})
        output = fetcher.parse(workbook(ipc_sheet()), source_file="sh_ipc_02_24.xls")

        self.assertEqual(len(output.records), 9)
        keys = {(r.region, r.entity_code, r.date) for r in output.records}
        self.assertIn(("Nacional", "GENERAL", "2024-02-01"), keys)
        self.assertIn(("Nacional", "RUBRO_ALIMENTOS", "2024-01-01"), keys)
        self.assertIn(("Nacional", "CAT_NUCLEO", "2024-01-01"), keys)
        self.assertNotIn(("Nacional", "CAT_NUCLEO", "2024-02-01"), keys)
        self.assertIn(("GBA", "GENERAL", "2024-02-01"), keys)
        self.assertEqual(output.warnings, ["1 celdas no numericas omitidas"])

    def test_rows_match_the_ipc_table(self):
        fetcher = IPCFetcher({})
        output = fetcher.parse(workbook(ipc_sheet()), source_file="sh_ipc_02_24.xls")
        rows = fetcher.to_rows(output.records)
        general = [row for row in rows if row["component_code"] == "GENERAL" and row["region"] == "GBA"]
        self.assertEqual(
            general[0],
            {
                "date": "2024-01-01",
                "component": "Nivel general",
                "component_code": "GENERAL",
                "component_type": "GENERAL",
                "region": "GBA",
                "index_value": 99.0,
                "source_file": "sh_ipc_02_24.xls",
            },
        )

    def test_sheet_without_regions_raises(self):
        sheet = Grid.from_rows("Índices IPC Cobertura Nacional", [["Notas metodológicas", None]])
        with self.assertRaises(StructureNotFoundError):
            IPCFetcher({}).parse(workbook(sheet))


def emae_sheet(march_adjusted=None):
    return Grid.from_rows(
        "Cuadro 1",
        [
            ["Estimador mensual de actividad económica", None, None, None, None],
            ["Período", None, "Serie original", "Serie desestacionalizada", "Serie tendencia-ciclo"],
            [2023, "Enero", 140.0, 145.0, 146.0],
            [None, "Febrero", 138.0, 146.0, 146.5],
            [None, "Marzo", 150.0, march_adjusted, march_adjusted],
            [2024, "Enero", 141.0, 147.0, 147.5],
            ["Fuente: INDEC", None, None, None, None],
        ],
    )


class TestEMAEFetcher(unittest.TestCase):
    def test_column_roles_from_header_labels(self):
        roles = EMAEFetcher({}).column_roles(emae_sheet())
        self.assertEqual(
            roles,
            {"original_value": 2, "seasonally_adjusted_value": 3, "cycle_trend_value": 4},
        )

    def test_year_marker_is_forward_filled(self):
        output = EMAEFetcher({}).parse(workbook(emae_sheet(march_adjusted=148.0)), source_file="emae.xls")
        self.assertEqual(
            [(r.date, r.value) for r in output.records],
            [("2023-01-01", 140.0), ("2023-02-01", 138.0), ("2023-03-01", 150.0), ("2024-01-01", 141.0)],
        )
        self.assertEqual(output.warnings, [])
        self.assertTrue(all(r.labels["adjustment_source"] == "indec" for r in output.records))

    def test_missing_adjustments_are_computed(self):
        output = EMAEFetcher({}).parse(workbook(emae_sheet()), source_file="emae.xls")
        march = output.records[2]
        self.assertEqual(march.labels["adjustment_source"], "computed")
        self.assertEqual(march.fields["seasonally_adjusted_value"], 150.0)
        self.assertIsNotNone(march.fields["cycle_trend_value"])
        self.assertEqual(output.records[0].fields["seasonally_adjusted_value"], 145.0)
        self.assertEqual(output.records[0].labels["adjustment_source"], "indec")
        self.assertEqual(len(output.warnings), 1)

    def test_computation_can_be_disabled(self):
        config = {"indicators": {"emae": {"compute_missing_adjustments": False}}}
        fetcher = EMAEFetcher(config)
        output = fetcher.parse(workbook(emae_sheet()), source_file="emae.xls")
        rows = fetcher.to_rows(output.records)
        self.assertIsNone(rows[2]["seasonally_adjusted_value"])
        self.assertEqual(rows[2]["adjustment_source"], "indec")
        self.assertEqual(rows[0]["original_value"], 140.0)

    def test_sheet_without_months_raises(self):
        sheet = Grid.from_rows("Cuadro 1", [["Estimador mensual", None, None]])
        with self.assertRaises(StructureNotFoundError):
            EMAEFetcher({}).parse(workbook(sheet))

    def test_history_rows_from_csv_frame(self):
        frame = pd.DataFrame(
            {
                "date": ["2023-02", "2023-01-01", "sin fecha", "2023-03-01"],
                "original_value": ["138,0", "140.5", "1.0", "150.0"],
                "seasonally_adjusted_value": ["146.0", "145.0", "", ""],
                "cycle_trend_value": ["146.5", "146.0", "", ""],
            }
        )
        fetcher = EMAEFetcher({})
        output = fetcher.parse_history(frame, source_file="emae.csv")

        self.assertEqual([r.date for r in output.records], ["2023-01-01", "2023-02-01", "2023-03-01"])
        self.assertEqual(output.records[1].value, 138.0)
        self.assertIn("1 filas CSV sin fecha o valor original omitidas", output.warnings)
        rows = fetcher.to_rows(output.records)
        self.assertEqual(rows[0]["adjustment_source"], "indec")
        self.assertEqual(rows[2]["seasonally_adjusted_value"], 150.0)
        self.assertEqual(rows[2]["adjustment_source"], "computed")

    def test_history_requires_date_and_original_columns(self):
        frame = pd.DataFrame({"fecha": ["2023-01-01"], "valor": ["140.5"]})
        with self.assertRaises(StructureNotFoundError) as ctx:
            EMAEFetcher({}).parse_history(frame, source_file="emae.csv")
        self.assertIn("date, original_value", ctx.exception.reason)
        self.assertFalse(IPCFetcher({}).supports_history)


def labor_sheet():
    return Grid.from_rows(
        "Cuadro 1",
        [
            ["Cuadro 1. Principales tasas", None, None],
            [None, "Año 2023", None],
            [None, "3° trimestre", "4° trimestre"],
            ["Total 31 aglomerados", None, None],
            ["Tasa de actividad", 47.6, 48.0],
            ["Tasa de empleo", 44.2, 45.0],
            ["Tasa de desocupación", 5.7, 5.7],
            ["Gran Buenos Aires", None, None],
            ["Tasa de actividad", 49.0, 49.5],
            ["Tasa de desocupación", 6.1, 6.0],
            ["Total 31 aglomerados - Mujeres 14 a 29", None, None],
            ["Tasa de desocupación", 15.0, 16.2],
        ],
    )


class TestLaborMarketFetcher(unittest.TestCase):
    def test_segment_labels(self):
        self.assertEqual(parse_segment("Total 31 aglomerados"), ("Total", "Total"))
        self.assertEqual(parse_segment("Varones de 30 a 64 años"), ("30-64", "Varones"))
        self.assertEqual(segment_code("Total", "Total"), "TOTAL")
        self.assertEqual(segment_code("14-29", "Mujeres"), "MUJERES_1429")

    def test_parse_blocks(self):
        fetcher = LaborMarketFetcher({})
        output = fetcher.parse(workbook(labor_sheet()), source_file="eph.xls")
        rows = fetcher.to_rows(output.records)

        self.assertEqual(len(rows), 6)
        national = [row for row in rows if row["data_type"] == "national"]
        self.assertEqual([row["period_label"] for row in national], ["T3 2023", "T4 2023"])
        self.assertEqual(national[0]["date"], "2023-07-01")
        self.assertEqual(national[0]["region"], "Total 31 aglomerados")
        self.assertEqual(national[0]["activity_rate"], 47.6)
        self.assertEqual(national[0]["employment_rate"], 44.2)
        self.assertEqual(national[0]["unemployment_rate"], 5.7)

        regional = [row for row in rows if row["data_type"] == "regional"]
        self.assertEqual({row["region"] for row in regional}, {"GBA"})
        self.assertEqual(regional[1]["activity_rate"], 49.5)
        self.assertIsNone(regional[1]["employment_rate"])

        segments = [row for row in rows if row["data_type"] == "demographic_segment"]
        self.assertEqual(len(segments), 2)
        self.assertEqual((segments[0]["age_group"], segments[0]["gender"]), ("14-29", "Mujeres"))
        self.assertEqual(segments[1]["unemployment_rate"], 16.2)
        self.assertTrue(all(row["source_file"] == "eph.xls" for row in rows))

    def test_block_without_indicator_rows_uses_default_field(self):
        sheet = Grid.from_rows(
            "Cuadro 1",
            [
                [None, "T1 2024", "T2 2024"],
                ["Región Cuyo", 5.1, 4.9],
            ],
        )
        fetcher = LaborMarketFetcher({})
        rows = fetcher.to_rows(fetcher.parse(workbook(sheet)).records)
        self.assertEqual([row["unemployment_rate"] for row in rows], [5.1, 4.9])
        self.assertEqual(rows[0]["region"], "Región Cuyo")


def poverty_national():
    return Grid.from_rows(
        "Cuadro 1",
        [
            ["Cuadro 1. Incidencia de la pobreza y la indigencia", None, None],
            [None, "1° semestre 2023", "2° semestre 2023"],
            ["Pobreza", None, None],
            ["Hogares", 29.6, 31.8],
            ["Personas", 40.1, 41.7],
            ["Indigencia", None, None],
            ["Hogares", 6.8, 8.7],
            ["Personas", 9.3, 11.9],
        ],
    )


def poverty_gap():
    return Grid.from_rows(
        "Cuadro 2.1",
        [
            ["Cuadro 2.1. Brecha y severidad de la indigencia", None, None],
            [None, "1° semestre 2023", "2° semestre 2023"],
            ["Brecha", 35.2, 36.1],
            ["Severidad", 19.4, 20.0],
        ],
    )


def poverty_regional():
    return Grid.from_rows(
        "Cuadro 4.3",
        [
            ["Cuadro 4.3. Pobreza por región", None, None, None, None],
            [None, "1° semestre 2023", None, "2° semestre 2023", None],
            [None, "Hogares", "Personas", "Hogares", "Personas"],
            ["Gran Buenos Aires", 30.0, 40.5, 31.0, 41.0],
            ["Noreste", 33.0, 44.0, 35.0, 46.0],
        ],
    )


class TestPovertyFetcher(unittest.TestCase):
    def test_partial_report(self):
        fetcher = PovertyFetcher({})
        output = fetcher.parse(
            workbook(poverty_national(), poverty_gap(), poverty_regional()),
            source_file="pobreza.xls",
        )

        self.assertTrue(output.partial)
        self.assertIn("Hoja 'Cuadro 2.2' ausente", output.warnings)
        self.assertIn("Hoja 'Cuadro 4.4' ausente", output.warnings)
        self.assertEqual(len(output.records), 6)

        rows = fetcher.to_rows(output.records)
        national = [row for row in rows if row["data_type"] == "national"]
        self.assertEqual(len(national), 2)
        first = national[0]
        self.assertEqual(first["date"], "2023-01-01")
        self.assertEqual(first["period_label"], "S1 2023")
        self.assertEqual(first["region"], "Total 31 aglomerados")
        self.assertEqual(first["poverty_rate_households"], 29.6)
        self.assertEqual(first["poverty_rate_persons"], 40.1)
        self.assertEqual(first["indigence_rate_persons"], 9.3)
        self.assertEqual(first["indigence_gap"], 35.2)
        self.assertEqual(first["indigence_severity"], 19.4)
        self.assertIsNone(first["poverty_gap"])

    def test_regional_households_and_persons(self):
        fetcher = PovertyFetcher({})
        output = fetcher.parse(workbook(poverty_regional()), source_file="pobreza.xls")
        rows = {(row["region"], row["date"]): row for row in fetcher.to_rows(output.records)}

        self.assertEqual(len(rows), 4)
        gba = rows[("Gran Buenos Aires", "2023-07-01")]
        self.assertEqual(gba["poverty_rate_households"], 31.0)
        self.assertEqual(gba["poverty_rate_persons"], 41.0)
        self.assertEqual(gba["data_type"], "regional")
        self.assertEqual(rows[("Noreste", "2023-01-01")]["poverty_rate_persons"], 44.0)

    def test_repeated_semester_column_keeps_first_value(self):
        revised = Grid.from_rows(
            "Cuadro 1",
            [
                ["Cuadro 1. Incidencia de la pobreza y la indigencia", None, None, None],
                [None, "1° semestre 2023", "2° semestre 2023", "2° semestre 2023"],
                ["Pobreza", None, None, None],
                ["Hogares", 29.6, 31.8, 99.0],
                ["Personas", 40.1, 41.7, 99.0],
            ],
        )
        fetcher = PovertyFetcher({})
        output = fetcher.parse(workbook(revised), source_file="pobreza.xls")

        duplicates = [w for w in output.warnings if w.startswith("Periodo duplicado")]
        self.assertEqual(len(duplicates), 1)
        self.assertIn("'S2 2023'", duplicates[0])
        rows = {row["period_label"]: row for row in fetcher.to_rows(output.records)}
        self.assertEqual(rows["S2 2023"]["poverty_rate_persons"], 41.7)

    def test_unrecognised_table_becomes_a_warning(self):
        broken = Grid.from_rows("Cuadro 1", [["Pobreza", None], ["Hogares", 30.0]])
        output = PovertyFetcher({}).parse(workbook(broken, poverty_regional()))
        self.assertTrue(output.partial)
        self.assertTrue(any(w.startswith("Hoja 'Cuadro 1':") for w in output.warnings))
        self.assertEqual(len(output.records), 4)

    def test_no_recognised_table_raises(self):
        notes = Grid.from_rows("Notas", [["Notas"]])
        with self.assertRaises(StructureNotFoundError):
            PovertyFetcher({}).parse(workbook(notes), source_file="pobreza.xls")


if __name__ == "__main__":
    unittest.main()
