from __future__ import annotations

from typing import Any, Iterable

from tradingbook.schemas.quote import ChartRow


def parse_lot(value: Any) -> float:
    """Return the numeric lot count of a raw ``{"raw": "..."}`` field, or 0.0 when unparsable."""
    raw = value.get("raw") if isinstance(value, dict) else value
    try:
        if raw is None or raw == "":
            return 0.0
        parsed = float(raw)
    except (TypeError, ValueError):
        return 0.0
    if parsed != parsed or parsed in (float("inf"), float("-inf")):
        return 0.0
    return parsed


def _apply_side(rows: dict[str, dict], events: Iterable[dict] | None, side: str) -> None:
    for event in events or []:
        if not isinstance(event, dict):
            continue
        time_key = event.get("time")
        if time_key is None:
            continue
        key = str(time_key)
        row = rows.setdefault(key, {"time": key})
        row[side] = parse_lot(event.get("lot"))


def merge_chart_events(buy_events: Iterable[dict] | None, sell_events: Iterable[dict] | None) -> list[ChartRow]:
    """Merge buy and sell trade events into one row per time key, sorted by key.

    A later event with the same key on the same side overwrites the earlier one.
    A side with no event in a bucket is left as None, not zero.
    """
    rows: dict[str, dict] = {}
    _apply_side(rows, buy_events, "buy")
    _apply_side(rows, sell_events, "sell")
    return [ChartRow(**rows[key]) for key in sorted(rows)]
