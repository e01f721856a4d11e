from __future__ import annotations

import asyncio
import itertools
from typing import Any, Awaitable, Callable

from tradingbook.errors import InvalidSymbolError, TrackerNotFoundError
from tradingbook.services.credential_store import MemoryCredentialStore
from tradingbook.services.polling_task import InstrumentPollingTask

SYMBOL_LENGTH = 4


def normalize_symbol(raw: str | None, *, length: int = SYMBOL_LENGTH) -> str:
    """Return the upper-cased ticker, "" for blank input, or raise InvalidSymbolError."""
    value = (raw or "").strip().upper()
    if not value:
        return ""
    if len(value) != length or not value.isalnum():
        raise InvalidSymbolError(f"INVALID_SYMBOL: {value!r}")
    return value


class TrackerRegistry:
    """Set of tracked instruments, each with exactly one polling task.

    Starts with one tracker and never drops below one. The credential is
    shared by every task; changing it restarts every active task.
    """

    def __init__(
        self,
        *,
        client,
        credential_store=None,
        poll_interval_sec: float = 60.0,
        request_timeout_sec: float | None = None,
        chart_interval_min: int = 1,
        symbol_length: int = SYMBOL_LENGTH,
        sleep_fn: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.credential_store = credential_store or MemoryCredentialStore()
        self.poll_interval_sec = poll_interval_sec
        self.request_timeout_sec = request_timeout_sec
        self.chart_interval_min = chart_interval_min
        self.symbol_length = symbol_length
        self._sleep_fn = sleep_fn
        self._credential = self.credential_store.load()
        self._ids = itertools.count(1)
        self._tasks: dict[int, InstrumentPollingTask] = {}
        self._retired: list[InstrumentPollingTask] = []
        self.add()

    @property
    def credential(self) -> str:
        return self._credential

    def __len__(self) -> int:
        return len(self._tasks)

    def add(self) -> InstrumentPollingTask:
        tracker_id = next(self._ids)
        task = InstrumentPollingTask(
            tracker_id,
            client=self.client,
            credential=self._credential,
            interval_sec=self.poll_interval_sec,
            chart_interval_min=self.chart_interval_min,
            timeout_sec=self.request_timeout_sec,
            sleep_fn=self._sleep_fn,
        )
        self._tasks[tracker_id] = task
        print(f"[TRACKER][add] id={tracker_id} count={len(self._tasks)}", flush=True)
        return task

    def get(self, tracker_id: int) -> InstrumentPollingTask:
        task = self._tasks.get(tracker_id)
        if task is None:
            raise TrackerNotFoundError(tracker_id)
        return task

    def list_trackers(self) -> list[InstrumentPollingTask]:
        return list(self._tasks.values())

    def remove(self, tracker_id: int) -> bool:
        if len(self._tasks) <= 1:
            print(f"[TRACKER][remove_skipped] id={tracker_id} reason=last_tracker", flush=True)
            return False
        task = self.get(tracker_id)
        task.cancel()
        del self._tasks[tracker_id]
        self._retired = [retired for retired in self._retired if retired.closing]
        self._retired.append(task)
        print(f"[TRACKER][remove] id={tracker_id} count={len(self._tasks)}", flush=True)
        return True

    def select_symbol(self, tracker_id: int, raw_symbol: str | None) -> InstrumentPollingTask:
        task = self.get(tracker_id)
        symbol = normalize_symbol(raw_symbol, length=self.symbol_length)
        task.set_symbol(symbol)
        print(f"[TRACKER][select_symbol] id={tracker_id} symbol={symbol or '-'} status={task.status}", flush=True)
        return task

    def set_credential(self, value: str | None) -> None:
        credential = (value or "").strip()
        if credential == self._credential:
            return
        self._credential = credential
        self.credential_store.save(credential)
        for task in self._tasks.values():
            task.set_credential(credential)
        active = sum(1 for task in self._tasks.values() if task.status == "ACTIVE")
        print(
            f"[TRACKER][credential_changed] configured={bool(credential)} active_count={active}",
            flush=True,
        )

    def close(self) -> None:
        for task in self._tasks.values():
            task.cancel()

    async def aclose(self) -> None:
        """Cancel every task and wait for the cancelled timers and fetches to finish."""
        self.close()
        retired, self._retired = self._retired, []
        for task in [*self._tasks.values(), *retired]:
            await task.wait_closed()

    async def drain(self) -> None:
        for task in list(self._tasks.values()):
            await task.drain()

    def metrics(self) -> dict[str, int | bool]:
        feeds = [feed for task in self._tasks.values() for feed in task.feeds]
        return {
            "tracked_count": len(self._tasks),
            "active_count": sum(1 for task in self._tasks.values() if task.status == "ACTIVE"),
            "credential_configured": bool(self._credential),
            "timers_armed": sum(feed.timers_armed for feed in feeds),
            "fetches": sum(feed.state.fetches for feed in feeds),
            "failures": sum(feed.state.failures for feed in feeds),
            "skipped_ticks": sum(feed.state.skipped_ticks for feed in feeds),
            "discarded_results": sum(feed.state.discarded_results for feed in feeds),
        }
