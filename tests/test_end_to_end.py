"""End-to-end tests against a real subprocess speaking the prompt protocol."""

from __future__ import annotations

import asyncio
import sys
import unittest
from pathlib import Path

from fakes import wait_until
from sqlbridge.failures import FailureKind
from sqlbridge.supervisor.app import build_runtime
from sqlbridge.supervisor.settings import default_settings

FAKE_DBMS = Path(__file__).with_name("fake_dbms.py")


class EndToEndTests(unittest.IsolatedAsyncioTestCase):
    """Drive the full runtime: supervisor, channel, queue and gateway."""

    async def asyncSetUp(self) -> None:
        settings = default_settings()
        settings["dbms_command"] = [sys.executable, "-u", str(FAKE_DBMS)]
        settings["command_timeout_seconds"] = 1.0
        settings["restart_delay_seconds"] = 0.1
        self.runtime = build_runtime(settings)
        await self.runtime.start()
        # Let the start-up banner arrive and be discarded before the first command.
        await asyncio.sleep(1.0)

    async def asyncTearDown(self) -> None:
        await self.runtime.stop()

    async def test_commands_round_trip_in_order(self) -> None:
        gateway = self.runtime.gateway
        results = await asyncio.gather(
            gateway.execute("SELECT * FROM t"),
            gateway.execute("USE DATABASE shop"),
            gateway.execute("SELECT name FROM customers"),
            gateway.execute("DELETE EVERYTHING"),
        )

        self.assertEqual(results[0].output, "Query Results")
        self.assertFalse(results[0].error)
        self.assertEqual(results[1].output, "Using database: shop")
        self.assertEqual(results[2].output, "Query Results")
        self.assertTrue(results[3].ok)
        self.assertTrue(results[3].error)

    async def test_steady_output_outlives_inactivity_window(self) -> None:
        result = await self.runtime.gateway.execute("STREAM 15")
        self.assertTrue(result.ok)
        self.assertIn("row 14", result.output)

    async def test_stalled_command_times_out_without_restart(self) -> None:
        result = await self.runtime.gateway.execute("SLEEP 1.5")
        self.assertEqual(result.failure_kind, FailureKind.TIMED_OUT)
        self.assertTrue(self.runtime.supervisor.is_live())
        self.assertEqual(self.runtime.supervisor.restart_count, 0)

    async def test_crash_fails_in_flight_command_and_restarts(self) -> None:
        supervisor = self.runtime.supervisor
        first_pid = supervisor.pid

        result = await self.runtime.gateway.execute("CRASH")

        self.assertEqual(result.failure_kind, FailureKind.UNAVAILABLE)
        await wait_until(lambda: supervisor.is_live() and supervisor.pid != first_pid, timeout=5.0)
        self.assertEqual(supervisor.last_exit_code, 3)
        await asyncio.sleep(1.0)
        follow_up = await self.runtime.gateway.execute("SELECT 1")
        self.assertEqual(follow_up.output, "Query Results")


if __name__ == "__main__":
    unittest.main()
