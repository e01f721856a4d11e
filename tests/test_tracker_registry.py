import asyncio
import copy
import unittest

from tradingbook.errors import InvalidSymbolError, TrackerNotFoundError
from tradingbook.services.credential_store import MemoryCredentialStore
from tradingbook.services.tracker_registry import TrackerRegistry, normalize_symbol

ORDER_BOOK_PAYLOAD = {
    "data": {
        "symbol": "BBCA",
        "lastprice": 9100,
        "change": 50,
        "percentage_change": 0.55,
        "open": 9050,
        "high": 9150,
        "low": 9025,
        "previous": 9050,
        "volume": 123456,
        "value": 1123456789,
        "frequency": 4567,
        "bid": [],
        "offer": [],
    }
}


class ManualTicker:
    def __init__(self) -> None:
        self._waiters: list[asyncio.Future] = []

    async def sleep(self, _seconds: float) -> None:
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        await waiter

    def armed(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())


class StubQuoteClient:
    def __init__(self) -> None:
        self.order_book_calls: list[tuple[str, str]] = []
        self.chart_calls: list[tuple[str, str, int]] = []

    def get_order_book(self, symbol: str, credential: str) -> dict:
        self.order_book_calls.append((symbol, credential))
        payload = copy.deepcopy(ORDER_BOOK_PAYLOAD)
        payload["data"]["symbol"] = symbol
        return payload

    def get_chart_events(self, symbol: str, credential: str, time_interval_min: int = 1) -> dict:
        self.chart_calls.append((symbol, credential, time_interval_min))
        return {"data": {"buy": [], "sell": []}}


async def _settle(registry: TrackerRegistry) -> None:
    for _ in range(3):
        await asyncio.sleep(0)
    await registry.drain()


class TrackerRegistryTest(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.client = StubQuoteClient()
        self.ticker = ManualTicker()
        self.store = MemoryCredentialStore()
        self.registry = TrackerRegistry(
            client=self.client,
            credential_store=self.store,
            sleep_fn=self.ticker.sleep,
        )

    async def asyncTearDown(self):
        await self.registry.aclose()

    async def test_starts_with_one_idle_tracker(self):
        trackers = self.registry.list_trackers()

        self.assertEqual(len(trackers), 1)
        self.assertEqual(trackers[0].tracker_id, 1)
        self.assertEqual(trackers[0].symbol, "")
        self.assertEqual(trackers[0].status, "IDLE")
        self.assertEqual(self.client.order_book_calls, [])

    async def test_add_assigns_fresh_ids_that_are_never_reused(self):
        second = self.registry.add()
        self.assertEqual(second.tracker_id, 2)
        self.assertEqual(second.status, "IDLE")

        self.assertTrue(self.registry.remove(2))
        third = self.registry.add()

        self.assertEqual(third.tracker_id, 3)
        self.assertEqual([t.tracker_id for t in self.registry.list_trackers()], [1, 3])

    async def test_removing_last_tracker_is_noop(self):
        self.assertFalse(self.registry.remove(1))
        self.assertEqual(len(self.registry), 1)
        self.assertEqual(self.registry.get(1).tracker_id, 1)

    async def test_remove_cancels_that_trackers_polling(self):
        self.registry.set_credential("token-a")
        self.registry.select_symbol(1, "BBCA")
        second = self.registry.add()
        self.registry.select_symbol(second.tracker_id, "TLKM")
        await _settle(self.registry)
        self.assertEqual(self.ticker.armed(), 4)

        self.assertTrue(self.registry.remove(second.tracker_id))
        await asyncio.sleep(0)

        self.assertEqual(len(self.registry), 1)
        self.assertEqual(second.status, "IDLE")
        self.assertEqual(self.ticker.armed(), 2)
        with self.assertRaises(TrackerNotFoundError):
            self.registry.get(second.tracker_id)

    async def test_aclose_waits_for_live_and_removed_trackers(self):
        self.registry.set_credential("token-a")
        self.registry.select_symbol(1, "BBCA")
        second = self.registry.add()
        self.registry.select_symbol(second.tracker_id, "TLKM")
        await _settle(self.registry)
        first = self.registry.get(1)
        timers = [feed._timer for task in (first, second) for feed in task.feeds]

        self.registry.remove(second.tracker_id)
        await self.registry.aclose()

        self.assertTrue(all(timer.done() for timer in timers))
        self.assertFalse(first.closing)
        self.assertFalse(second.closing)
        self.assertEqual(first.status, "IDLE")
        self.assertEqual(self.ticker.armed(), 0)
        self.assertEqual(self.registry.metrics()["active_count"], 0)

    async def test_remove_unknown_tracker_raises(self):
        self.registry.add()

        with self.assertRaises(TrackerNotFoundError):
            self.registry.remove(42)

    async def test_select_symbol_normalizes_and_rejects_invalid(self):
        self.registry.set_credential("token-a")

        task = self.registry.select_symbol(1, " bbca ")
        await _settle(self.registry)
        self.assertEqual(task.symbol, "BBCA")
        self.assertEqual(self.client.order_book_calls, [("BBCA", "token-a")])

        with self.assertRaises(InvalidSymbolError):
            self.registry.select_symbol(1, "BB")
        self.assertEqual(task.symbol, "BBCA")
        self.assertEqual(task.status, "ACTIVE")

    async def test_credential_change_restarts_every_active_tracker_before_next_tick(self):
        self.registry.set_credential("token-a")
        self.registry.select_symbol(1, "BBCA")
        second = self.registry.add()
        self.registry.select_symbol(second.tracker_id, "TLKM")
        idle = self.registry.add()
        await _settle(self.registry)

        self.registry.set_credential("token-b")
        await _settle(self.registry)

        # no tick fired: these are the immediate restart fetches
        self.assertIn(("BBCA", "token-b"), self.client.order_book_calls)
        self.assertIn(("TLKM", "token-b"), self.client.order_book_calls)
        self.assertIn(("BBCA", "token-b", 1), self.client.chart_calls)
        self.assertEqual(idle.status, "IDLE")
        self.assertEqual(idle.credential, "token-b")
        self.assertEqual(self.ticker.armed(), 4)
        self.assertEqual(self.store.load(), "token-b")

    async def test_unchanged_credential_does_not_restart(self):
        self.registry.set_credential("token-a")
        self.registry.select_symbol(1, "BBCA")
        await _settle(self.registry)

        self.registry.set_credential("token-a")
        await _settle(self.registry)

        self.assertEqual(len(self.client.order_book_calls), 1)

    async def test_credential_arriving_after_symbol_activates_tracker(self):
        self.registry.select_symbol(1, "BBCA")
        self.assertEqual(self.registry.get(1).status, "IDLE")

        self.registry.set_credential("token-a")
        await _settle(self.registry)

        self.assertEqual(self.registry.get(1).status, "ACTIVE")
        self.assertEqual(self.client.order_book_calls, [("BBCA", "token-a")])

    async def test_clearing_credential_idles_all_and_keeps_snapshots(self):
        self.registry.set_credential("token-a")
        task = self.registry.select_symbol(1, "BBCA")
        await _settle(self.registry)

        self.registry.set_credential("")
        await asyncio.sleep(0)

        self.assertEqual(task.status, "IDLE")
        self.assertEqual(task.order_book.value.symbol, "BBCA")
        self.assertEqual(self.ticker.armed(), 0)
        self.assertEqual(self.store.load(), "")

    async def test_credential_is_loaded_from_store(self):
        registry = TrackerRegistry(
            client=self.client,
            credential_store=MemoryCredentialStore("saved-token"),
            sleep_fn=self.ticker.sleep,
        )

        self.assertEqual(registry.credential, "saved-token")
        self.assertEqual(registry.get(1).credential, "saved-token")

    async def test_metrics(self):
        self.registry.set_credential("token-a")
        self.registry.select_symbol(1, "BBCA")
        self.registry.add()
        await _settle(self.registry)

        metrics = self.registry.metrics()

        self.assertEqual(metrics["tracked_count"], 2)
        self.assertEqual(metrics["active_count"], 1)
        self.assertTrue(metrics["credential_configured"])
        self.assertEqual(metrics["fetches"], 2)
        self.assertEqual(metrics["failures"], 0)
        self.assertEqual(metrics["timers_armed"], 2)


class NormalizeSymbolTest(unittest.TestCase):
    def test_normalize_symbol(self):
        self.assertEqual(normalize_symbol("bbri"), "BBRI")
        self.assertEqual(normalize_symbol("   "), "")
        self.assertEqual(normalize_symbol(None), "")
        with self.assertRaises(InvalidSymbolError):
            normalize_symbol("BBCA1")
        with self.assertRaises(InvalidSymbolError):
            normalize_symbol("BB-A")


if __name__ == "__main__":
    unittest.main()
