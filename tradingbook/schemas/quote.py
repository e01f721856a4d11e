from typing import Literal

from pydantic import BaseModel, ConfigDict, model_serializer

PriceClass = Literal["above", "below", "equal", "neutral"]


class OrderBookRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    price: str = ""
    que_num: str = ""
    volume: str = ""
    change_percentage: str = ""
    price_class: PriceClass = "neutral"


class SideTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    freq: str = ""
    lot: str = ""


class TotalBidOffer(BaseModel):
    model_config = ConfigDict(frozen=True)

    bid: SideTotals = SideTotals()
    offer: SideTotals = SideTotals()


class QuoteSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    lastprice: float
    change: float
    percentage_change: float
    open: float
    high: float
    low: float
    previous: float
    volume: float
    value: float
    frequency: float
    average: float | None = None
    bid: tuple[OrderBookRow, ...] = ()
    offer: tuple[OrderBookRow, ...] = ()
    total_bid_offer: TotalBidOffer = TotalBidOffer()


class ChartRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    time: str
    buy: float | None = None
    sell: float | None = None

    @model_serializer(mode="wrap")
    def _drop_absent_sides(self, handler):
        data = handler(self)
        for side in ("buy", "sell"):
            if data.get(side) is None:
                data.pop(side, None)
        return data
