"""
Case Server Tests
=================
Exercises the local HTTP API against an engine backed by a temporary
database.

Run with: python -m pytest tests/test_case_server.py -v
"""

from __future__ import annotations

import shutil
import sys
import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from case_server import create_app
from fieldtriage.case_engine import TriageEngine
from fieldtriage.case_store import CaseStore
from fieldtriage.location_resolver import LocationResolver, StaticLocationProvider


class TestCaseServer(unittest.TestCase):
    """Test the case server endpoints."""

    def setUp(self):
        tmpdir = tempfile.mkdtemp(prefix="fieldtriage-api-")
        self.addCleanup(shutil.rmtree, tmpdir, True)
        self.engine = TriageEngine(
            store=CaseStore(db_path=str(Path(tmpdir) / "cases.db")),
            location_resolver=LocationResolver(StaticLocationProvider(31.5, 34.46)),
        )
        self.client = TestClient(create_app(self.engine))

    def _create(self, **body) -> dict:
        response = self.client.post("/api/cases", json=body)
        self.assertEqual(response.status_code, 201)
        return response.json()

    def test_create_red_case_broadcasts(self):
        case = self._create(category="public", symptomTags=["severeBleeding"])
        self.assertEqual(case["priority"], "red")
        self.assertTrue(case["broadcasting"])
        self.assertEqual(case["coordinates"], {"lat": 31.5, "lng": 34.46})

        status = self.client.get("/api/broadcast").json()
        self.assertTrue(status["active"])
        self.assertEqual(status["case"]["id"], case["id"])
        self.assertEqual(status["payload"]["app"], "Field Triage")

    def test_invalid_category_rejected(self):
        response = self.client.post("/api/cases", json={"category": "police"})
        self.assertEqual(response.status_code, 422)

    def test_loose_form_input_accepted(self):
        case = self._create(category="medic", age=34, symptomTags=None)
        self.assertEqual(case["age"], "34")
        self.assertEqual(case["symptomTags"], [])

    def test_resolved_case_cannot_broadcast(self):
        case = self._create(category="public", symptomTags=["fever"])
        self.client.post(f"/api/cases/{case['id']}/resolve")
        self.assertEqual(self.client.post(f"/api/broadcast/{case['id']}").status_code, 409)
        self.assertFalse(self.client.get("/api/broadcast").json()["active"])

    def test_resolve_stops_broadcast(self):
        case = self._create(category="medic", symptomTags=["notBreathing"])
        response = self.client.post(f"/api/cases/{case['id']}/resolve")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["resolved"])
        self.assertFalse(self.client.get("/api/broadcast").json()["active"])

    def test_unknown_case_is_404(self):
        self.assertEqual(self.client.get("/api/cases/nope").status_code, 404)
        self.assertEqual(self.client.post("/api/cases/nope/resolve").status_code, 404)
        self.assertEqual(self.client.post("/api/broadcast/nope").status_code, 404)
        self.assertEqual(self.client.post("/api/consult/nope").status_code, 404)

    def test_consult_queue_flow(self):
        case = self._create(category="medic", symptomTags=["fever"], subjectName="Sami")
        first = self.client.post(f"/api/consult/{case['id']}").json()
        second = self.client.post(f"/api/consult/{case['id']}").json()
        self.assertTrue(first["added"])
        self.assertFalse(second["added"])

        queued = self.client.get("/api/consult").json()
        self.assertEqual([c["id"] for c in queued], [case["id"]])

        removed = self.client.delete(f"/api/consult/{case['id']}").json()
        self.assertTrue(removed["removed"])
        self.assertEqual(self.client.get("/api/consult").json(), [])

    def test_manual_broadcast_and_stop(self):
        case = self._create(category="public", symptomTags=["bruise"])
        self.assertFalse(self.client.get("/api/broadcast").json()["active"])

        started = self.client.post(f"/api/broadcast/{case['id']}").json()
        self.assertTrue(started["broadcasting"])

        stopped = self.client.delete("/api/broadcast").json()
        self.assertEqual(stopped["stopped"], case["id"])
        self.assertIsNone(self.client.delete("/api/broadcast").json()["stopped"])

    def test_case_views(self):
        red = self._create(category="public", symptomTags=["unconscious"])
        self._create(category="supply", supplyTags=["water"])
        self.client.post(f"/api/cases/{red['id']}/resolve")

        self.assertEqual(self.client.get("/api/cases?view=red").json(), [])
        self.assertEqual(len(self.client.get("/api/cases?view=blue").json()), 1)
        self.assertEqual(len(self.client.get("/api/cases?view=resolved").json()), 1)
        self.assertEqual(len(self.client.get("/api/cases").json()), 2)
        self.assertEqual(self.client.get("/api/cases?view=bogus").status_code, 400)

    def test_location_and_stats(self):
        location = self.client.get("/api/location").json()
        self.assertTrue(location["available"])
        self.assertEqual(location["coordinates"], {"lat": 31.5, "lng": 34.46})

        self._create(category="medic", symptomTags=["chestPain"])
        stats = self.client.get("/api/stats").json()
        self.assertEqual(stats["total"], 1)
        self.assertEqual(stats["unresolved"]["blue"], 1)

    def test_catalogue(self):
        catalogue = self.client.get("/api/catalogue").json()
        self.assertIn("notBreathing", catalogue["symptoms"])
        self.assertIn("babyFormula", catalogue["supplies"])
        self.assertEqual([p["id"] for p in catalogue["priorities"]], ["red", "blue", "green"])


if __name__ == "__main__":
    unittest.main(verbosity=2)
