import datetime as dt
import tempfile
import unittest

from pws_ingest.errors import NetworkError
from pws_ingest.ingestion import DeduplicationIndex, Normalizer
from pws_ingest.services import EventBus, EventLog, IngestionCoordinator
from pws_ingest.tests.helpers import FakeFetcher, day_payload, make_observation, make_payload, open_store

MAY_1 = dt.date(2025, 5, 1)
MAY_2 = dt.date(2025, 5, 2)


class TestIngestionCoordinator(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.store = open_store(self._tmpdir.name)
        self.index = DeduplicationIndex()
        self.events = EventBus()
        self.log = EventLog()
        self.events.subscribe(self.log)
        self.fetcher = FakeFetcher(
            {
                MAY_1: day_payload("2025-05-01", ["00:04:59", "12:00:00", "18:39:49"]),
                MAY_2: day_payload("2025-05-02", ["00:04:59", "00:09:59"]),
            }
        )
        self.coordinator = IngestionCoordinator("XY123", self.fetcher, self.store, self.index, self.events)

    def tearDown(self) -> None:
        self.store.close()
        self._tmpdir.cleanup()

    async def test_poll_persists_and_reports(self) -> None:
        summary = await self.coordinator.poll(MAY_1)
        self.assertTrue(summary.ok)
        self.assertEqual((summary.received, summary.num_new), (3, 3))
        self.assertEqual((summary.min_time, summary.max_time), ("00:04:59", "18:39:49"))
        self.assertEqual(self.store.count(), 3)
        self.assertEqual(len(self.index), 3)
        self.assertEqual(self.log.received_dates(), ["2025-05-01"])
        self.assertEqual(
            self.log.statuses()[-1],
            "Obtained update for 2025-05-01 from WU server (3 observations, 3 new, 00:04:59 to 18:39:49)",
        )

    async def test_repoll_is_idempotent(self) -> None:
        await self.coordinator.poll(MAY_1)
        again = await self.coordinator.poll(MAY_1)
        self.assertEqual((again.received, again.num_new), (3, 0))
        self.assertEqual(self.store.count(), 3)
        # no new rows, no data event
        self.assertEqual(self.log.received_dates(), ["2025-05-01"])

    async def test_out_of_order_dates_give_same_store(self) -> None:
        await self.coordinator.poll_many([MAY_2, MAY_1])
        keys = [(r.station_id, r.observed_at) for r in self.store.scan()]
        self.assertEqual(len(keys), 5)
        self.assertEqual(len(set(keys)), 5)
        self.assertEqual(keys[0], ("XY123", "2025-05-01 00:04:59"))
        self.assertEqual(self.log.received_dates(), ["2025-05-02", "2025-05-01"])

    async def test_missing_station_id_persists_nothing(self) -> None:
        self.fetcher.responses[MAY_1] = make_payload(
            make_observation(local="2025-05-01 00:04:59"),
            make_observation(station_id=None, local="2025-05-01 00:09:59"),
        )
        summary = await self.coordinator.poll(MAY_1)
        self.assertFalse(summary.ok)
        self.assertIn("station_id", summary.error)
        self.assertEqual(self.store.count(), 0)
        self.assertEqual(len(self.index), 0)
        self.assertTrue(self.log.statuses()[-1].startswith("Rejected update for 2025-05-01"))

    async def test_network_error_reports_status(self) -> None:
        self.fetcher.responses[MAY_1] = NetworkError("Request for XY123 on 2025-05-01 failed: Timeout")
        summary = await self.coordinator.poll(MAY_1)
        self.assertFalse(summary.ok)
        self.assertEqual(summary.num_new, 0)
        self.assertEqual(self.store.count(), 0)
        self.assertTrue(self.log.statuses()[-1].startswith("Could not obtain update for 2025-05-01"))

    async def test_row_already_stored_catches_index_up(self) -> None:
        self.store.insert(Normalizer().normalize(make_observation(local="2025-05-01 12:00:00")))
        summary = await self.coordinator.poll(MAY_1)
        self.assertTrue(summary.ok)
        self.assertEqual(summary.num_new, 2)
        self.assertEqual(self.store.count(), 3)
        self.assertTrue(self.index.is_known("XY123", "2025-05-01 12:00:00"))

    async def test_unknown_fields_are_tolerated(self) -> None:
        self.fetcher.responses[MAY_1] = make_payload(
            make_observation(local="2025-05-01 00:04:59", softwareType="WS-2902"),
        )
        summary = await self.coordinator.poll(MAY_1)
        self.assertEqual(summary.num_new, 1)

    async def test_empty_day(self) -> None:
        summary = await self.coordinator.poll(dt.date(2025, 5, 3))
        self.assertTrue(summary.ok)
        self.assertEqual(summary.received, 0)
        self.assertEqual(
            self.log.statuses()[-1], "Obtained update for 2025-05-03 from WU server (0 observations, 0 new)"
        )

    async def test_dispatch_runs_in_background(self) -> None:
        task = self.coordinator.dispatch([MAY_1, MAY_2])
        self.assertTrue(self.coordinator.in_flight)
        await self.coordinator.wait_idle()
        self.assertTrue(task.done())
        self.assertFalse(self.coordinator.in_flight)
        self.assertEqual(self.fetcher.calls, [MAY_1, MAY_2])
        self.assertEqual(self.store.count(), 5)


if __name__ == "__main__":
    unittest.main()
