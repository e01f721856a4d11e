from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from tradingbook.errors import BadStatusError, MalformedPayloadError, NetworkFailureError

DEFAULT_ORDERBOOK_BASE_URL = "https://exodus.stockbit.com/company-price-feed/v2/orderbook/companies"
DEFAULT_CHART_URL = "https://exodus.stockbit.com/order-trade/trade-book/chart"


class StockbitRestClient:
    """Authenticated order book and trade-chart client for the Stockbit quote service."""

    def __init__(
        self,
        *,
        session: Optional[Any] = None,
        orderbook_base_url: Optional[str] = None,
        chart_url: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        self.session = session or requests
        self.orderbook_base_url = (orderbook_base_url or DEFAULT_ORDERBOOK_BASE_URL).rstrip("/")
        self.chart_url = chart_url or DEFAULT_CHART_URL
        self.timeout = timeout

    @staticmethod
    def _headers(credential: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {credential}",
            "Content-Type": "application/json",
        }

    def _get_json(self, url: str, credential: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = self.session.get(
                url,
                headers=self._headers(credential),
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise NetworkFailureError(f"request failed url={url} error={exc}") from exc

        if response.status_code != 200:
            raise BadStatusError(response.status_code, url)

        try:
            return response.json()
        except ValueError as exc:
            raise MalformedPayloadError(f"response is not JSON url={url}") from exc

    def get_order_book(self, symbol: str, credential: str) -> Dict[str, Any]:
        return self._get_json(f"{self.orderbook_base_url}/{symbol}", credential)

    def get_chart_events(self, symbol: str, credential: str, time_interval_min: int = 1) -> Dict[str, Any]:
        return self._get_json(
            self.chart_url,
            credential,
            params={"symbol": symbol, "time_interval": f"{time_interval_min}m"},
        )
