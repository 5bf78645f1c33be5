"""Tests for the HTTP surface: status mapping, envelopes and lifecycle."""

import unittest

from fastapi.testclient import TestClient

from fakes import FakeSpawner
from sqlbridge.supervisor.app import create_app
from sqlbridge.supervisor.settings import default_settings


def _respond(command: str):
    if command == "STALL":
        return None
    if command.startswith("SELECT * FROM missing"):
        return "Error: Table 'missing' does not exist\ndbms> "
    return f"Query Results\n{command}\ndbms> "


class ExecuteApiTests(unittest.TestCase):
    """Validate /execute and /health against a fake DBMS process."""

    def setUp(self) -> None:
        settings = default_settings()
        settings["command_timeout_seconds"] = 0.1
        settings["restart_delay_seconds"] = 60
        self.spawner = FakeSpawner(responder=_respond)
        self.app = create_app(settings, spawn_fn=self.spawner)

    def test_execute_returns_output_without_echo(self) -> None:
        with TestClient(self.app) as client:
            response = client.post("/execute", json={"command": "SELECT * FROM employees"})
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["output"], "Query Results")
        self.assertFalse(payload["error"])
        self.assertIsNone(payload["failure"])
        self.assertEqual(payload["schema_version"], "execute_result.v1")

    def test_error_output_is_still_http_200(self) -> None:
        with TestClient(self.app) as client:
            response = client.post("/execute", json={"command": "SELECT * FROM missing"})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["error"])

    def test_invalid_commands_are_400(self) -> None:
        with TestClient(self.app) as client:
            for body in ({"command": ""}, {"command": 12}, {}, ["SELECT 1"]):
                with self.subTest(body=body):
                    response = client.post("/execute", json=body)
                    self.assertEqual(response.status_code, 400)
                    payload = response.json()
                    self.assertEqual(payload["output"], "Invalid command format")
                    self.assertEqual(payload["failure"]["error_code"], "COMMAND_INVALID")
            response = client.post(
                "/execute",
                content=b"{not json",
                headers={"Content-Type": "application/json"},
            )
            self.assertEqual(response.status_code, 400)
        self.assertEqual(self.spawner.current.stdin.writes, [])

    def test_stalled_command_is_504(self) -> None:
        with TestClient(self.app) as client:
            response = client.post("/execute", json={"command": "STALL"})
            self.assertEqual(response.status_code, 504)
            self.assertEqual(response.json()["output"], "Command timed out")
            follow_up = client.post("/execute", json={"command": "SELECT 1"})
        self.assertEqual(follow_up.status_code, 200)

    def test_write_failure_is_500(self) -> None:
        with TestClient(self.app) as client:
            self.spawner.current.stdin.fail_with = BrokenPipeError("Broken pipe")
            response = client.post("/execute", json={"command": "INSERT INTO t VALUES (1)"})
        self.assertEqual(response.status_code, 500)
        payload = response.json()
        self.assertEqual(payload["output"], "Failed to send command to DBMS")
        self.assertEqual(payload["failure"]["error_code"], "COMMAND_WRITE_FAILED")

    def test_unavailable_dbms_is_503(self) -> None:
        self.spawner.fail_next = 1
        with TestClient(self.app) as client:
            response = client.post("/execute", json={"command": "SELECT 1"})
            health = client.get("/health")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(
            response.json()["output"],
            "DBMS is temporarily unavailable. Please try again shortly.",
        )
        self.assertEqual(health.json()["status"], "unhealthy")
        self.assertFalse(health.json()["live"])

    def test_health_reports_live_process(self) -> None:
        with TestClient(self.app) as client:
            response = client.get("/health")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["status"], "healthy")
        self.assertTrue(payload["live"])
        self.assertEqual(payload["state"], "running")
        self.assertEqual(payload["queue_depth"], 0)
        self.assertEqual(payload["pid"], 1000)

    def test_shutdown_kills_dbms_process(self) -> None:
        with TestClient(self.app):
            process = self.spawner.current
        self.assertTrue(process.killed)
        self.assertFalse(self.app.state.runtime.supervisor.is_live())
        self.assertFalse(self.app.state.runtime.gateway.accepting)


if __name__ == "__main__":
    unittest.main()
