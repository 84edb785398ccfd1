"""API and repository integration tests."""

import json
import sys
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).parent.parent))

from indec_series.api import app, get_session
from indec_series.models import (
    EMAERecord,
    IngestionRun,
    IPCRecord,
    LaborMarketRecord,
    PovertyRecord,
    get_engine,
    get_session_factory,
    init_db,
)
from indec_series.repositories import SeriesRepository


class TestAPI(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
        self.tmp.close()

        config = {
            "storage": {
                "default_backend": "sqlite",
                "sqlite": {"database_path": self.tmp.name},
            }
        }
        self.engine = get_engine(config, "sqlite")
        init_db(self.engine)
        Session = get_session_factory(self.engine)

        self.session = Session()
        self._seed_data(self.session)

        def override_session():
            test_session = Session()
            try:
                yield test_session
            finally:
                test_session.close()

        app.dependency_overrides[get_session] = override_session
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()
        self.session.close()
        self.engine.dispose()
        Path(self.tmp.name).unlink(missing_ok=True)

    def _seed_data(self, session):
        session.add_all(
            [
                EMAERecord(date="2023-01-01", original_value=140.0, adjustment_source="indec"),
                EMAERecord(date="2023-12-01", original_value=150.0, adjustment_source="indec"),
                EMAERecord(date="2024-01-01", original_value=154.0, seasonally_adjusted_value=151.0, adjustment_source="indec"),
            ]
        )
        for region, january, february in (("Nacional", 100.0, 113.2), ("GBA", 100.0, 110.0)):
            session.add_all(
                [
                    IPCRecord(
                        date="2024-01-01", component="Nivel general", component_code="GENERAL",
                        component_type="GENERAL", region=region, index_value=january,
                    ),
                    IPCRecord(
                        date="2024-02-01", component="Nivel general", component_code="GENERAL",
                        component_type="GENERAL", region=region, index_value=february,
                    ),
                ]
            )
        session.add(
            IPCRecord(
                date="2024-02-01", component="Salud", component_code="RUBRO_SALUD",
                component_type="RUBRO", region="Nacional", index_value=110.4,
            )
        )
        session.add_all(
            [
                LaborMarketRecord(
                    date="2023-07-01", period_label="T3 2023", region="Total 31 aglomerados",
                    data_type="national", unemployment_rate=5.7, activity_rate=47.6,
                ),
                LaborMarketRecord(
                    date="2023-10-01", period_label="T4 2023", region="Total 31 aglomerados",
                    data_type="national", unemployment_rate=5.0, activity_rate=48.0,
                ),
                LaborMarketRecord(
                    date="2023-10-01", period_label="T4 2023", region="Total 31 aglomerados",
                    age_group="14-29", gender="Mujeres", data_type="demographic_segment", unemployment_rate=16.2,
                ),
            ]
        )
        session.add_all(
            [
                PovertyRecord(
                    date="2023-01-01", period_label="S1 2023", region="Total 31 aglomerados",
                    data_type="national", poverty_rate_persons=40.1,
                ),
                PovertyRecord(
                    date="2023-07-01", period_label="S2 2023", region="Total 31 aglomerados",
                    data_type="national", poverty_rate_persons=41.7,
                ),
                PovertyRecord(
                    date="2023-07-01", period_label="S2 2023", region="Gran Buenos Aires",
                    data_type="regional", poverty_rate_persons=41.0,
                ),
            ]
        )
        session.add_all(
            [
                IngestionRun(
                    run_uuid="run-1", indicator="ipc", status="success",
                    warnings_json="[]", started_at=datetime(2024, 3, 1, 10, 0, 0),
                ),
                IngestionRun(
                    run_uuid="run-2", indicator="poverty", status="partial",
                    warnings_json=json.dumps(["Hoja 'Cuadro 4.4' ausente"]),
                    started_at=datetime(2024, 3, 2, 10, 0, 0),
                ),
            ]
        )
        session.commit()

    def test_emae_with_changes(self):
        response = self.client.get("/emae")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["pagination"]["total"], 3)
        latest = payload["items"][-1]
        self.assertEqual(latest["date"], "2024-01-01")
        self.assertEqual(latest["mom_change"], 2.67)
        self.assertEqual(latest["yoy_change"], 10.0)
        self.assertIsNone(payload["items"][0]["mom_change"])

    def test_emae_period_filter_and_order(self):
        response = self.client.get("/emae", params={"from": "2023-12", "order": "desc"})
        self.assertEqual(response.status_code, 200)
        dates = [item["date"] for item in response.json()["items"]]
        self.assertEqual(dates, ["2024-01-01", "2023-12-01"])

    def test_invalid_period_returns_400(self):
        response = self.client.get("/emae", params={"from": "01/2024"})
        self.assertEqual(response.status_code, 400)

        response = self.client.get("/poverty", params={"from": "2024-02", "to": "2024-01"})
        self.assertEqual(response.status_code, 400)

    def test_ipc_defaults_to_national_region(self):
        response = self.client.get("/ipc", params={"component": "GENERAL"})
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["meta"]["region"], "Nacional")
        self.assertEqual(len(payload["items"]), 2)
        self.assertEqual(payload["items"][1]["mom_change"], 13.2)

    def test_ipc_component_type_filter(self):
        response = self.client.get("/ipc", params={"component_type": "RUBRO"})
        self.assertEqual(response.status_code, 200)
        items = response.json()["items"]
        self.assertEqual([item["component_code"] for item in items], ["RUBRO_SALUD"])

        response = self.client.get("/ipc", params={"component_type": "OTRO"})
        self.assertEqual(response.status_code, 422)

    def test_labor_market_changes_in_points(self):
        response = self.client.get("/labor-market", params={"data_type": "national"})
        self.assertEqual(response.status_code, 200)
        items = response.json()["items"]
        self.assertEqual(len(items), 2)
        self.assertEqual(items[1]["qoq_change"], -0.7)

        response = self.client.get("/labor-market", params={"gender": "Mujeres"})
        self.assertEqual(response.json()["items"][0]["age_group"], "14-29")

    def test_poverty_by_region(self):
        response = self.client.get("/poverty", params={"region": "Total 31 aglomerados"})
        self.assertEqual(response.status_code, 200)
        items = response.json()["items"]
        self.assertEqual([item["period_label"] for item in items], ["S1 2023", "S2 2023"])
        self.assertEqual(items[1]["semester_change"], 1.6)

    def test_pagination(self):
        response = self.client.get("/ipc", params={"region": "GBA", "page_size": 1, "page": 2})
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["pagination"], {"page": 2, "page_size": 1, "total": 2, "total_pages": 2})
        self.assertEqual(payload["items"][0]["date"], "2024-02-01")

    def test_runs_latest(self):
        response = self.client.get("/runs/latest")
        self.assertEqual(response.status_code, 200)
        items = response.json()["items"]
        self.assertEqual([item["indicator"] for item in items], ["poverty", "ipc"])
        self.assertEqual(items[0]["warnings"], ["Hoja 'Cuadro 4.4' ausente"])

        response = self.client.get("/runs/latest", params={"indicator": "ipc"})
        self.assertEqual(len(response.json()["items"]), 1)


class TestSeriesRepository(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        config = {"storage": {"sqlite": {"database_path": str(Path(self.tmpdir.name) / "repo.db")}}}
        self.engine = get_engine(config, "sqlite")
        init_db(self.engine)
        self.session = get_session_factory(self.engine)()

    def tearDown(self):
        self.session.close()
        self.engine.dispose()
        self.tmpdir.cleanup()

    def test_empty_tables(self):
        repository = SeriesRepository(self.session)
        rows, pagination = repository.get_poverty()
        self.assertEqual(rows, [])
        self.assertEqual(pagination.total, 0)
        self.assertEqual(pagination.total_pages, 0)


if __name__ == "__main__":
    unittest.main()
