import datetime as dt
import os
import tempfile
import time
import unittest

from pws_ingest.config import Settings
from pws_ingest.errors import ConfigurationError, StorageOpenError
from pws_ingest.ingestion import Normalizer
from pws_ingest.services import EventBus, EventLog, IngestionEngine, SchedulerState
from pws_ingest.tests.helpers import API_KEY, FakeFetcher, day_payload, make_observation, open_store

MAY_1 = dt.date(2025, 5, 1)


class FakeClock:
    def __init__(self, now: dt.datetime) -> None:
        self.now = now

    def __call__(self) -> dt.datetime:
        return self.now


class SlowFetcher(FakeFetcher):
    def __init__(self, responses, delay_s: float) -> None:
        super().__init__(responses)
        self.delay_s = delay_s

    def fetch_day(self, station_id, day):
        time.sleep(self.delay_s)
        return super().fetch_day(station_id, day)


class TestEngineSetup(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.engine = IngestionEngine(fetcher_factory=lambda key: FakeFetcher())

    def tearDown(self) -> None:
        if self.engine.store is not None:
            self.engine.store.close()
        self._tmpdir.cleanup()

    def test_station_id_is_write_once_and_non_empty(self) -> None:
        with self.assertRaises(ConfigurationError):
            self.engine.set_station_id("   ")
        self.engine.set_station_id("XY123")
        with self.assertRaises(ConfigurationError):
            self.engine.set_station_id("AB999")
        self.assertEqual(self.engine.station_id, "XY123")

    def test_api_key_format(self) -> None:
        for bad in ("", "A0" * 16, "a0" * 15, "a0" * 16 + "x", "a0-" * 10 + "ab"):
            with self.assertRaises(ConfigurationError) as ctx:
                self.engine.set_api_key(bad)
            if bad:
                self.assertNotIn(bad, str(ctx.exception))
        self.engine.set_api_key(API_KEY)
        with self.assertRaises(ConfigurationError):
            self.engine.set_api_key(API_KEY)

    def test_store_opens_once(self) -> None:
        self.engine.open_store(os.path.join(self._tmpdir.name, "wu.sqlite"))
        with self.assertRaises(ConfigurationError):
            self.engine.open_store(os.path.join(self._tmpdir.name, "other.sqlite"))

    def test_start_requires_full_configuration(self) -> None:
        with self.assertRaises(ConfigurationError):
            self.engine.start()
        self.engine.set_station_id("XY123")
        self.engine.set_api_key(API_KEY)
        with self.assertRaises(ConfigurationError):
            self.engine.start()
        self.assertFalse(self.engine.configured)
        self.assertEqual(self.engine.state, SchedulerState.UNCONFIGURED)

    def test_startup_reports_store_contents(self) -> None:
        store = open_store(self._tmpdir.name)
        normalizer = Normalizer()
        for local in ("2025-05-01 10:00:00", "2025-05-01 10:05:00", "2025-05-03 09:00:00"):
            store.insert(normalizer.normalize(make_observation(local=local)))
        store.insert(normalizer.normalize(make_observation(station_id="AB999")))

        log = EventLog()
        engine = IngestionEngine(events=EventBus())
        engine.events.subscribe(log)
        engine.attach_store(store)
        try:
            self.assertEqual(len(engine.index), 4)
            self.assertTrue(engine.index.is_known("XY123", "2025-05-03 09:00:00"))
            self.assertEqual(
                log.statuses(),
                [
                    "Database read; 2 stations, 4 records in total.",
                    "Observations range from 2025-05-01 to 2025-05-03. No data for dates 2025-05-02.",
                ],
            )
        finally:
            store.close()

    def test_from_settings_validates(self) -> None:
        settings = Settings(
            _env_file=None,
            station_id="XY123",
            api_key="not-a-key",
            database=os.path.join(self._tmpdir.name, "wu.sqlite"),
        )
        with self.assertRaises(ConfigurationError):
            IngestionEngine.from_settings(settings)

    def test_from_settings_rejects_directory_store(self) -> None:
        settings = Settings(_env_file=None, station_id="XY123", api_key=API_KEY, database=self._tmpdir.name)
        with self.assertRaises(StorageOpenError):
            IngestionEngine.from_settings(settings)


class TestEngineRun(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.clock = FakeClock(dt.datetime(2025, 5, 1, 7, 0))
        self.fetcher = FakeFetcher({MAY_1: day_payload("2025-05-01", ["00:04:59", "12:00:00", "18:39:49"])})
        self.log = EventLog()
        events = EventBus()
        events.subscribe(self.log)
        self.engine = IngestionEngine(events=events, fetcher_factory=lambda key: self.fetcher, clock=self.clock)
        self.engine.set_station_id("XY123")
        self.engine.set_api_key(API_KEY)
        self.engine.open_store(os.path.join(self._tmpdir.name, "wu.sqlite"))

    async def asyncTearDown(self) -> None:
        await self.engine.shutdown(grace_s=5)

    def tearDown(self) -> None:
        self._tmpdir.cleanup()

    async def test_paused_then_polling(self) -> None:
        self.engine.start()
        self.assertEqual(self.engine.state, SchedulerState.IDLE)
        with self.assertRaises(ConfigurationError):
            self.engine.start()

        paused = self.engine.tick(dt.datetime(2025, 5, 1, 23, 0))
        self.assertEqual(paused.state, SchedulerState.PAUSED)
        self.assertEqual(self.fetcher.calls, [])

        result = self.engine.tick(dt.datetime(2025, 5, 1, 8, 0))
        self.assertEqual(result.state, SchedulerState.POLLING)
        await result.task

        self.assertEqual(self.engine.store.count(), 3)
        self.assertEqual(self.log.received_dates(), ["2025-05-01"])
        self.assertTrue(any("3 observations" in s for s in self.log.statuses()))
        self.assertTrue(self.engine.index.is_known("XY123", "2025-05-01 18:39:49"))

    async def test_request_date_ignores_window(self) -> None:
        self.clock.now = dt.datetime(2025, 5, 1, 23, 30)
        summary = await self.engine.request_date(MAY_1)
        self.assertEqual(summary.num_new, 3)
        self.assertEqual(self.fetcher.calls, [MAY_1])

    async def test_uptime_and_stop(self) -> None:
        self.engine.start()
        self.clock.now = dt.datetime(2025, 5, 1, 8, 2, 3)
        self.assertEqual(self.engine.uptime(), "1:02:03")
        self.engine.stop()
        self.assertEqual(self.engine.state, SchedulerState.IDLE)
        self.assertTrue(self.log.statuses()[-1].startswith("Stopped updates from Weather Underground"))
        with self.assertRaises(ConfigurationError):
            self.engine.stop()

    async def test_dispatch_date_and_shutdown_waits(self) -> None:
        task = self.engine.dispatch_date(MAY_1)
        await self.engine.shutdown(grace_s=5)
        self.assertTrue(task.done())
        self.assertEqual(self.fetcher.calls, [MAY_1])

    async def test_stopped_engine_ticks_nothing(self) -> None:
        self.engine.start()
        self.engine.stop()
        result = self.engine.tick(dt.datetime(2025, 5, 1, 8, 0))
        self.assertEqual(result.state, SchedulerState.IDLE)
        self.assertEqual(self.fetcher.calls, [])

    async def test_shutdown_waits_for_scheduled_cycle(self) -> None:
        self.fetcher = SlowFetcher(self.fetcher.responses, delay_s=0.3)
        self.engine.start()
        result = self.engine.tick(dt.datetime(2025, 5, 1, 8, 0))
        await self.engine.shutdown(grace_s=5)
        self.assertTrue(result.task.done())
        self.assertFalse(result.task.cancelled())
        self.assertEqual(self.fetcher.calls, [dt.date(2025, 4, 30), MAY_1])
        self.assertTrue(any("3 observations, 3 new" in s for s in self.log.statuses()))


if __name__ == "__main__":
    unittest.main()
