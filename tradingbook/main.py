from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from tradingbook.api.routes import router
from tradingbook.config.settings import Settings, get_settings
from tradingbook.integrations.stockbit_rest import StockbitRestClient
from tradingbook.services.credential_store import FileCredentialStore, MemoryCredentialStore
from tradingbook.services.tracker_registry import TrackerRegistry


def build_credential_store(settings: Settings):
    if not settings.CREDENTIAL_FILE:
        return MemoryCredentialStore(settings.AUTH_TOKEN)
    store = FileCredentialStore(settings.CREDENTIAL_FILE)
    if settings.AUTH_TOKEN and not store.load():
        store.save(settings.AUTH_TOKEN)
    return store


def build_registry(app: FastAPI) -> TrackerRegistry:
    settings = app.state.get_settings()
    client = getattr(app.state, "quote_client", None) or StockbitRestClient(
        orderbook_base_url=settings.STOCKBIT_ORDERBOOK_BASE_URL,
        chart_url=settings.STOCKBIT_CHART_URL,
        timeout=settings.REQUEST_TIMEOUT_SEC,
    )
    return TrackerRegistry(
        client=client,
        credential_store=build_credential_store(settings),
        poll_interval_sec=settings.POLL_INTERVAL_SEC,
        request_timeout_sec=settings.REQUEST_TIMEOUT_SEC,
        chart_interval_min=settings.CHART_INTERVAL_MIN,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    registry = build_registry(app)
    app.state.tracker_registry = registry
    print(f"[APP][registry_start] trackers={len(registry)} credential_configured={bool(registry.credential)}", flush=True)

    try:
        yield
    finally:
        await registry.aclose()
        print("[APP][registry_stop] timers=cancelled", flush=True)


app = FastAPI(title="Trading Book", version="0.1.0", lifespan=lifespan)
app.include_router(router, prefix="/v1")

# NOTE: lazy-loaded so app import does not require env during tests.
app.state.get_settings = get_settings
app.state.quote_client = None
