from __future__ import annotations

import math
from typing import Any, Sequence

from tradingbook.errors import MalformedPayloadError
from tradingbook.schemas.quote import (
    ChartRow,
    OrderBookRow,
    PriceClass,
    QuoteSnapshot,
    SideTotals,
    TotalBidOffer,
)
from tradingbook.services.chart_merge import merge_chart_events

DEFAULT_DEPTH = 10
PLACEHOLDER_ROW = OrderBookRow()

_NUMERIC_FIELDS = (
    "lastprice",
    "change",
    "percentage_change",
    "open",
    "high",
    "low",
    "previous",
    "volume",
    "value",
    "frequency",
)


def _to_float_default(value: Any, default: float = 0.0) -> float:
    try:
        if value is None or value == "":
            return default
        return float(value)
    except (TypeError, ValueError):
        return default


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _require_data(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise MalformedPayloadError("payload must be an object")
    data = payload.get("data")
    if not isinstance(data, dict):
        raise MalformedPayloadError("missing data object in payload")
    return data


def classify_price(price: Any, previous: float) -> PriceClass:
    """Compare an order book price with the previous close for bid/offer coloring."""
    text = _to_text(price).strip()
    if not text:
        return "neutral"
    try:
        value = float(text)
    except ValueError:
        return "neutral"
    if not math.isfinite(value):
        return "neutral"
    if value > previous:
        return "above"
    if value < previous:
        return "below"
    return "equal"


def _reduce_rows(rows: Any, previous: float) -> tuple[OrderBookRow, ...]:
    if not isinstance(rows, list):
        return ()
    out: list[OrderBookRow] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        out.append(
            OrderBookRow(
                price=_to_text(row.get("price")),
                que_num=_to_text(row.get("que_num")),
                volume=_to_text(row.get("volume")),
                change_percentage=_to_text(row.get("change_percentage")),
                price_class=classify_price(row.get("price"), previous),
            )
        )
    return tuple(out)


def _reduce_totals(raw: Any) -> TotalBidOffer:
    if not isinstance(raw, dict):
        return TotalBidOffer()

    def side(value: Any) -> SideTotals:
        if not isinstance(value, dict):
            return SideTotals()
        return SideTotals(freq=_to_text(value.get("freq")), lot=_to_text(value.get("lot")))

    return TotalBidOffer(bid=side(raw.get("bid")), offer=side(raw.get("offer")))


def reduce_order_book(payload: Any, *, symbol: str = "") -> QuoteSnapshot:
    """Normalize a raw order book response into a QuoteSnapshot.

    Raises MalformedPayloadError when the payload has no ``data`` object.
    Numbers are copied through unchanged; unparsable ones become 0.0.
    """
    data = _require_data(payload)
    numbers = {name: _to_float_default(data.get(name)) for name in _NUMERIC_FIELDS}
    previous = numbers["previous"]
    average = data.get("average")

    return QuoteSnapshot(
        symbol=_to_text(data.get("symbol")) or symbol,
        average=None if average in (None, "") else _to_float_default(average),
        bid=_reduce_rows(data.get("bid"), previous),
        offer=_reduce_rows(data.get("offer"), previous),
        total_bid_offer=_reduce_totals(data.get("total_bid_offer")),
        **numbers,
    )


def reduce_chart_payload(payload: Any) -> list[ChartRow]:
    data = _require_data(payload)
    return merge_chart_events(data.get("buy"), data.get("sell"))


def _pad(rows: Sequence[OrderBookRow], depth: int) -> list[OrderBookRow]:
    visible = list(rows[:depth])
    visible.extend(PLACEHOLDER_ROW for _ in range(depth - len(visible)))
    return visible


def align_order_book(
    bids: Sequence[OrderBookRow],
    offers: Sequence[OrderBookRow],
    depth: int = DEFAULT_DEPTH,
) -> tuple[list[OrderBookRow], list[OrderBookRow]]:
    """Truncate or pad both sides to exactly ``depth`` rows, keeping real rows in order."""
    if depth < 0:
        raise ValueError("depth must be >= 0")
    return _pad(bids, depth), _pad(offers, depth)
