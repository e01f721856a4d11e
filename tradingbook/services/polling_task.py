from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable

from tradingbook.schemas.tracker import FeedState, TrackerState
from tradingbook.services.snapshot_reducer import reduce_chart_payload, reduce_order_book

ORDER_BOOK_ERROR = "Failed to fetch data for {symbol}."
CHART_ERROR = "Failed to fetch chart data for {symbol}."


class FeedPoller:
    """Recurring fetch loop for one endpoint of one tracked instrument.

    One timer task and at most one fetch are outstanding at a time. Every
    start/stop bumps ``generation``; a fetch that resolves under an older
    generation is dropped instead of applied.
    """

    def __init__(
        self,
        *,
        name: str,
        tracker_id: int,
        fetch: Callable[[str, str], Any],
        reduce: Callable[[Any, str], Any],
        error_template: str,
        interval_sec: float = 60.0,
        timeout_sec: float | None = None,
        sleep_fn: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.name = name
        self.tracker_id = tracker_id
        self._fetch = fetch
        self._reduce = reduce
        self.error_template = error_template
        self.interval_sec = interval_sec
        self.timeout_sec = timeout_sec
        self._sleep = sleep_fn

        self.state = FeedState()
        self.value: Any = None
        self.generation = 0
        self.timers_armed = 0
        self.symbol = ""
        self._credential = ""
        self._timer: asyncio.Task | None = None
        self._inflight: asyncio.Task | None = None
        self._cancelled: list[asyncio.Task] = []

    @property
    def active(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def closing(self) -> bool:
        return any(not task.done() for task in self._cancelled)

    def start(self, symbol: str, credential: str) -> None:
        """Fetch immediately, then every ``interval_sec``. Any previous timer is cancelled first."""
        self.stop()
        if not symbol or not credential:
            return

        self.symbol = symbol
        self._credential = credential
        generation = self.generation
        loop = asyncio.get_running_loop()

        self._launch(generation)
        self._timer = loop.create_task(
            self._tick_loop(generation),
            name=f"{self.name}-timer-{self.tracker_id}",
        )
        self.timers_armed += 1
        print(
            f"[POLL][timer_armed] feed={self.name} tracker_id={self.tracker_id} "
            f"symbol={symbol} interval_sec={self.interval_sec} generation={generation}",
            flush=True,
        )

    def stop(self) -> None:
        was_active = self.active
        self.generation += 1
        self._cancelled = [task for task in self._cancelled if not task.done()]
        for task in (self._timer, self._inflight):
            if task is not None and not task.done():
                task.cancel()
                self._cancelled.append(task)
        self._timer = None
        self._inflight = None
        self.state.loading = False
        if was_active:
            print(
                f"[POLL][timer_cancelled] feed={self.name} tracker_id={self.tracker_id} symbol={self.symbol}",
                flush=True,
            )

    async def drain(self) -> None:
        task = self._inflight
        if task is not None:
            await asyncio.wait({task})

    async def wait_closed(self) -> None:
        """Wait until every timer and fetch cancelled by ``stop`` has finished."""
        pending, self._cancelled = self._cancelled, []
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _tick_loop(self, generation: int) -> None:
        while generation == self.generation:
            await self._sleep(self.interval_sec)
            if generation != self.generation:
                return
            self._launch(generation)

    def _launch(self, generation: int) -> None:
        if self.in_flight:
            self.state.skipped_ticks += 1
            print(
                f"[POLL][tick_coalesced] feed={self.name} tracker_id={self.tracker_id} symbol={self.symbol}",
                flush=True,
            )
            return
        self._inflight = asyncio.get_running_loop().create_task(
            self._fetch_once(generation, self.symbol, self._credential),
            name=f"{self.name}-fetch-{self.tracker_id}",
        )

    async def _fetch_once(self, generation: int, symbol: str, credential: str) -> None:
        if generation != self.generation:
            self._discard(symbol)
            return
        self.state.loading = True
        self.state.error = None
        self.state.fetches += 1
        try:
            raw = await asyncio.wait_for(
                asyncio.to_thread(self._fetch, symbol, credential),
                timeout=self.timeout_sec,
            )
            value = self._reduce(raw, symbol)
        except Exception as exc:
            if generation != self.generation:
                self._discard(symbol)
                return
            self.state.failures += 1
            self.state.error = self.error_template.format(symbol=symbol)
            self.state.loading = False
            print(
                f"[POLL][fetch_error] feed={self.name} tracker_id={self.tracker_id} "
                f"symbol={symbol} error={exc!r}",
                flush=True,
            )
            return

        if generation != self.generation:
            self._discard(symbol)
            return
        self.value = value
        self.state.last_updated = int(time.time())
        self.state.loading = False

    def _discard(self, symbol: str) -> None:
        self.state.discarded_results += 1
        self.state.loading = self.in_flight
        print(
            f"[POLL][result_discarded] feed={self.name} tracker_id={self.tracker_id} symbol={symbol}",
            flush=True,
        )


class InstrumentPollingTask:
    """Owns the order book and chart polling of one tracked instrument."""

    def __init__(
        self,
        tracker_id: int,
        *,
        client,
        credential: str = "",
        interval_sec: float = 60.0,
        chart_interval_min: int = 1,
        timeout_sec: float | None = None,
        sleep_fn: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.tracker_id = tracker_id
        self.symbol = ""
        self.credential = credential
        self.order_book = FeedPoller(
            name="orderbook",
            tracker_id=tracker_id,
            fetch=client.get_order_book,
            reduce=lambda raw, symbol: reduce_order_book(raw, symbol=symbol),
            error_template=ORDER_BOOK_ERROR,
            interval_sec=interval_sec,
            timeout_sec=timeout_sec,
            sleep_fn=sleep_fn,
        )
        self.chart = FeedPoller(
            name="chart",
            tracker_id=tracker_id,
            fetch=lambda symbol, credential: client.get_chart_events(symbol, credential, chart_interval_min),
            reduce=lambda raw, _symbol: reduce_chart_payload(raw),
            error_template=CHART_ERROR,
            interval_sec=interval_sec,
            timeout_sec=timeout_sec,
            sleep_fn=sleep_fn,
        )

    @property
    def feeds(self) -> tuple[FeedPoller, FeedPoller]:
        return self.order_book, self.chart

    @property
    def status(self) -> str:
        return "ACTIVE" if any(feed.active for feed in self.feeds) else "IDLE"

    @property
    def closing(self) -> bool:
        return any(feed.closing for feed in self.feeds)

    def set_symbol(self, symbol: str) -> None:
        self.symbol = symbol
        self._sync()

    def set_credential(self, credential: str) -> None:
        self.credential = credential
        self._sync()

    def cancel(self) -> None:
        for feed in self.feeds:
            feed.stop()

    async def drain(self) -> None:
        for feed in self.feeds:
            await feed.drain()

    async def wait_closed(self) -> None:
        for feed in self.feeds:
            await feed.wait_closed()

    def _sync(self) -> None:
        if not self.symbol or not self.credential:
            self.cancel()
            return
        for feed in self.feeds:
            feed.start(self.symbol, self.credential)

    def snapshot_state(self) -> TrackerState:
        return TrackerState(
            id=self.tracker_id,
            symbol=self.symbol,
            status=self.status,
            loading=self.order_book.state.loading,
            error=self.order_book.state.error,
            snapshot=self.order_book.value,
            last_updated=self.order_book.state.last_updated,
            chart_loading=self.chart.state.loading,
            chart_error=self.chart.state.error,
            chart_rows=self.chart.value,
            chart_last_updated=self.chart.state.last_updated,
        )
