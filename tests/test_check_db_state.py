"""Tests for data and freshness gates in the check_db_state script."""

import io
import sys
import unittest
from unittest.mock import patch
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import scripts.check_db_state as check_db_state


def _state(counts=None, age=None):
    counts = counts if counts is not None else {"emae": 10, "ipc": 40, "labor_market": 0, "poverty": 6}
    return {
        "row_counts": counts,
        "latest_period": {table: "2024-01-01" if count else None for table, count in counts.items()},
        "ingestion_runs_count": 4,
        "latest_success_at": "2026-02-21T00:00:00+00:00" if age is not None else None,
        "latest_success_age_hours": age,
        "is_empty": False,
    }


class TestCheckDBState(unittest.TestCase):
    def _run_main(self, argv, state):
        with patch("scripts.check_db_state._compute_state", return_value=state):
            with patch.object(sys, "argv", ["check_db_state.py", *argv]):
                with patch("sys.stdout", new_callable=io.StringIO):
                    with patch("sys.stderr", new_callable=io.StringIO) as stderr:
                        code = check_db_state.main()
                        return code, stderr.getvalue()

    def test_freshness_gate_passes_at_boundary(self):
        code, stderr = self._run_main(["--require-fresh-max-age-hours", "168"], _state(age=168.0))
        self.assertEqual(code, 0)
        self.assertEqual(stderr, "")

    def test_freshness_gate_fails_when_stale(self):
        code, stderr = self._run_main(["--require-fresh-max-age-hours", "168"], _state(age=170.0))
        self.assertEqual(code, 1)
        self.assertIn("Freshness gate failed", stderr)

    def test_freshness_gate_fails_without_successful_runs(self):
        code, stderr = self._run_main(["--require-fresh-max-age-hours", "168"], _state(age=None))
        self.assertEqual(code, 1)
        self.assertIn("no successful ingestion run", stderr)

    def test_has_data_gate_per_table(self):
        code, _ = self._run_main(["--require-has-data", "ipc", "--require-has-data", "emae"], _state())
        self.assertEqual(code, 0)

        code, stderr = self._run_main(["--require-has-data", "labor_market"], _state())
        self.assertEqual(code, 1)
        self.assertIn("labor_market", stderr)


if __name__ == "__main__":
    unittest.main()
