from typing import Literal

from pydantic import BaseModel

from tradingbook.schemas.quote import ChartRow, OrderBookRow, QuoteSnapshot, TotalBidOffer


class FeedState(BaseModel):
    loading: bool = False
    error: str | None = None
    last_updated: int | None = None
    fetches: int = 0
    failures: int = 0
    skipped_ticks: int = 0
    discarded_results: int = 0


class TrackerState(BaseModel):
    id: int
    symbol: str
    status: Literal["IDLE", "ACTIVE"]
    loading: bool
    error: str | None = None
    snapshot: QuoteSnapshot | None = None
    last_updated: int | None = None
    chart_loading: bool
    chart_error: str | None = None
    chart_rows: list[ChartRow] | None = None
    chart_last_updated: int | None = None


class OrderBookView(BaseModel):
    symbol: str
    depth: int
    bid: list[OrderBookRow]
    offer: list[OrderBookRow]
    total_bid_offer: TotalBidOffer
    average: float | None = None


class SymbolSelection(BaseModel):
    symbol: str = ""


class CredentialUpdate(BaseModel):
    token: str = ""
