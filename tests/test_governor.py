import asyncio
import unittest

from scan_kit.governor import Admission, FrameGovernor, GovernorConfig, GovernorState


class _BlockingRun:
    def __init__(self) -> None:
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self.release = asyncio.Event()

    async def __call__(self, generation: int) -> None:
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await self.release.wait()
        finally:
            self.active -= 1


class TestFrameGovernor(unittest.IsolatedAsyncioTestCase):
    async def test_idle_ticks_run_nothing(self) -> None:
        calls = []

        async def run(generation: int) -> None:
            calls.append(generation)

        gov = FrameGovernor(run, GovernorConfig(min_interval_s=0.0))
        self.assertEqual(gov.tick(now=0.0), Admission.IDLE)
        await asyncio.sleep(0)
        self.assertEqual(calls, [])
        self.assertEqual(gov.state, GovernorState.IDLE)

    async def test_single_flight_drops_busy_ticks(self) -> None:
        run = _BlockingRun()
        gov = FrameGovernor(run, GovernorConfig(min_interval_s=0.1))
        gov.start()

        self.assertEqual(gov.tick(now=0.0), Admission.ADMITTED)
        await asyncio.sleep(0)
        for i in range(1, 20):
            self.assertEqual(gov.tick(now=float(i)), Admission.BUSY)
            await asyncio.sleep(0)

        run.release.set()
        await gov.wait_idle()
        self.assertFalse(gov.in_flight)
        self.assertEqual(run.calls, 1)
        self.assertEqual(run.max_active, 1)
        self.assertEqual(gov.stats.max_in_flight, 1)
        self.assertEqual(gov.stats.dropped_busy, 19)

        self.assertEqual(gov.tick(now=100.0), Admission.ADMITTED)
        await gov.wait_idle()
        self.assertEqual(run.calls, 2)

    async def test_min_interval_between_admissions(self) -> None:
        calls = []

        async def run(generation: int) -> None:
            calls.append(generation)

        gov = FrameGovernor(run, GovernorConfig(min_interval_s=0.1))
        gov.start()
        self.assertEqual(gov.tick(now=1.0), Admission.ADMITTED)
        await gov.wait_idle()
        self.assertEqual(gov.tick(now=1.05), Admission.TOO_SOON)
        self.assertEqual(gov.tick(now=1.1), Admission.ADMITTED)
        await gov.wait_idle()
        self.assertEqual(len(calls), 2)
        self.assertEqual(gov.stats.dropped_interval, 1)

    async def test_dropped_ticks_are_not_replayed(self) -> None:
        run = _BlockingRun()
        gov = FrameGovernor(run, GovernorConfig(min_interval_s=0.0))
        gov.start()
        gov.tick(now=0.0)
        await asyncio.sleep(0)
        for i in range(5):
            gov.tick(now=1.0 + i)

        run.release.set()
        await gov.wait_idle()
        for _ in range(5):
            await asyncio.sleep(0)
        self.assertEqual(run.calls, 1)
        self.assertFalse(gov.in_flight)

    async def test_failed_run_clears_in_flight(self) -> None:
        async def run(generation: int) -> None:
            raise RuntimeError("boom")

        gov = FrameGovernor(run, GovernorConfig(min_interval_s=0.0))
        gov.start()
        with self.assertLogs("scan_kit.governor", level="ERROR"):
            self.assertEqual(gov.tick(now=0.0), Admission.ADMITTED)
            await gov.wait_idle()
        self.assertFalse(gov.in_flight)
        self.assertEqual(gov.stats.failed, 1)

        with self.assertLogs("scan_kit.governor", level="ERROR"):
            self.assertEqual(gov.tick(now=1.0), Admission.ADMITTED)
            await gov.wait_idle()
        self.assertEqual(gov.stats.failed, 2)

    async def test_start_stop_callbacks_and_generation(self) -> None:
        started = []
        stopped = []

        async def run(generation: int) -> None:
            return None

        gov = FrameGovernor(
            run,
            GovernorConfig(min_interval_s=0.0),
            on_start=started.append,
            on_stop=lambda: stopped.append(True),
        )
        gov.start()
        gov.start()
        self.assertEqual(started, [1])
        first = gov.generation

        gov.stop()
        self.assertEqual(stopped, [True])
        self.assertFalse(gov.is_current(first))
        self.assertEqual(gov.tick(now=0.0), Admission.IDLE)

        gov.start()
        self.assertEqual(started, [1, 2])
        self.assertFalse(gov.is_current(first))
        self.assertTrue(gov.is_current(gov.generation))

    async def test_stop_does_not_break_single_flight_across_restart(self) -> None:
        run = _BlockingRun()
        gov = FrameGovernor(run, GovernorConfig(min_interval_s=0.0))
        gov.start()
        gov.tick(now=0.0)
        await asyncio.sleep(0)

        gov.stop()
        gov.start()
        self.assertEqual(gov.tick(now=1.0), Admission.BUSY)

        run.release.set()
        await gov.wait_idle()
        self.assertEqual(gov.tick(now=2.0), Admission.ADMITTED)
        await gov.wait_idle()
        self.assertEqual(run.max_active, 1)

    async def test_ticker_runs_until_stopped(self) -> None:
        calls = []

        async def run(generation: int) -> None:
            calls.append(generation)

        gov = FrameGovernor(run, GovernorConfig(min_interval_s=0.0, tick_interval_s=0.001))
        ticker = gov.start_ticker()
        await asyncio.sleep(0.05)
        gov.stop()
        await asyncio.gather(ticker, return_exceptions=True)
        self.assertTrue(ticker.done())
        await gov.wait_idle()

        seen = len(calls)
        self.assertGreater(seen, 0)
        await asyncio.sleep(0.02)
        self.assertEqual(len(calls), seen)


if __name__ == "__main__":
    unittest.main()
