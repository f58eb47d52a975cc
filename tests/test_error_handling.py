import unittest

from compras import create_app
from compras.config import Config
from compras.core.event_bus import EventBus
from compras.ui_strings import error_message
from tests.helpers.temp_db import TempDbSandbox


class _ExplodingService:
    def get_requisition(self, db, *, requisition_id):
        raise RuntimeError("disk on fire")


class ErrorHandlingApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="error_api")
        self.app = create_app(
            self._temp_db.make_config(Config, EVENT_BUS=EventBus(), PROPAGATE_EXCEPTIONS=False)
        )
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        self._temp_db.cleanup()

    def test_missing_actor_header_is_unauthorized(self) -> None:
        response = self.client.post("/api/compras/requisitions", json={"description": "Cadeiras"})

        self.assertEqual(response.status_code, 401)
        payload = response.get_json()
        self.assertEqual(payload["error"], "actor_required")
        self.assertEqual(payload["message"], error_message("actor_required"))
        self.assertTrue(payload["request_id"].strip())

    def test_not_found_payload_echoes_request_id(self) -> None:
        response = self.client.get("/api/compras/requisitions/999", headers={"X-Request-Id": "req-abc-123"})

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.headers["X-Request-Id"], "req-abc-123")
        payload = response.get_json()
        self.assertEqual(payload["error"], "requisition_not_found")
        self.assertEqual(payload["request_id"], "req-abc-123")
        self.assertEqual(payload["requisition_id"], 999)

    def test_validation_error_lists_every_field(self) -> None:
        response = self.client.post(
            "/api/compras/requisitions",
            json={"description": "", "items": []},
            headers={"X-User-Id": "1"},
        )

        self.assertEqual(response.status_code, 400)
        payload = response.get_json()
        self.assertEqual(payload["error"], "validation_error")
        self.assertEqual(
            payload["details"],
            [{"field": "description", "error": "required"}, {"field": "items", "error": "required"}],
        )

    def test_invalid_budget_status_filter(self) -> None:
        response = self.client.get("/api/compras/budgets?status=paid")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["details"], [{"field": "status", "error": "invalid_choice"}])

    def test_unexpected_exception_becomes_generic_500(self) -> None:
        self.app.extensions["compras.service"] = _ExplodingService()

        with self.assertLogs(self.app.logger, level="ERROR") as logs:
            response = self.client.get("/api/compras/requisitions/1")

        self.assertEqual(response.status_code, 500)
        payload = response.get_json()
        self.assertEqual(payload["error"], "unexpected_error")
        self.assertEqual(payload["message"], error_message("unexpected_error"))
        self.assertNotIn("Traceback", response.get_data(as_text=True))
        self.assertTrue(any("unexpected_exception" in line for line in logs.output))

    def test_unknown_route_keeps_http_status(self) -> None:
        self.assertEqual(self.client.get("/api/compras/nao-existe").status_code, 404)

    def test_health_reports_database(self) -> None:
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual((payload["status"], payload["db"]), ("ok", "sqlite"))
        self.assertIn("workflow_transitions", payload["metrics"])
        self.assertIn("X-Response-Time-Ms", response.headers)


class HealthDegradedTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="health_degraded")

    def tearDown(self) -> None:
        self._temp_db.cleanup()

    def test_unreachable_database_reports_degraded(self) -> None:
        # A directory cannot be opened as a sqlite file.
        config = self._temp_db.make_config(
            Config,
            DB_PATH=self._temp_db.temp_dir,
            TESTING=False,
            DB_AUTO_INIT=False,
            EVENT_BUS=EventBus(),
        )
        app = create_app(config)

        with self.assertLogs(app.logger, level="ERROR"):
            response = app.test_client().get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["status"], "degraded")


if __name__ == "__main__":
    unittest.main()
