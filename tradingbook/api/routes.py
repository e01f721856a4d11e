from fastapi import APIRouter, HTTPException, Query, Request

from tradingbook.errors import InvalidSymbolError, TrackerNotFoundError
from tradingbook.schemas.tracker import CredentialUpdate, OrderBookView, SymbolSelection, TrackerState
from tradingbook.services.snapshot_reducer import align_order_book
from tradingbook.services.tracker_registry import TrackerRegistry

router = APIRouter()


def _registry(request: Request) -> TrackerRegistry:
    return request.app.state.tracker_registry


def _get_task(request: Request, tracker_id: int):
    try:
        return _registry(request).get(tracker_id)
    except TrackerNotFoundError as exc:
        raise HTTPException(status_code=404, detail='TRACKER_NOT_FOUND') from exc


@router.get('/trackers', response_model=list[TrackerState])
async def list_trackers(request: Request):
    return [task.snapshot_state() for task in _registry(request).list_trackers()]


@router.post('/trackers', response_model=TrackerState)
async def add_tracker(request: Request):
    return _registry(request).add().snapshot_state()


@router.get('/trackers/{tracker_id}', response_model=TrackerState)
async def get_tracker(tracker_id: int, request: Request):
    return _get_task(request, tracker_id).snapshot_state()


@router.delete('/trackers/{tracker_id}')
async def remove_tracker(tracker_id: int, request: Request):
    registry = _registry(request)
    try:
        removed = registry.remove(tracker_id)
    except TrackerNotFoundError as exc:
        raise HTTPException(status_code=404, detail='TRACKER_NOT_FOUND') from exc
    return {'removed': removed, 'count': len(registry)}


@router.put('/trackers/{tracker_id}/symbol', response_model=TrackerState)
async def select_symbol(tracker_id: int, body: SymbolSelection, request: Request):
    _get_task(request, tracker_id)
    try:
        task = _registry(request).select_symbol(tracker_id, body.symbol)
    except InvalidSymbolError as exc:
        raise HTTPException(status_code=400, detail='INVALID_SYMBOL') from exc
    return task.snapshot_state()


@router.get('/trackers/{tracker_id}/order-book', response_model=OrderBookView)
async def get_order_book(tracker_id: int, request: Request, depth: int | None = Query(default=None, ge=1, le=50)):
    task = _get_task(request, tracker_id)
    snapshot = task.order_book.value
    if snapshot is None:
        raise HTTPException(status_code=409, detail='NO_SNAPSHOT')

    rows = depth or request.app.state.get_settings().ORDER_BOOK_DEPTH
    bid, offer = align_order_book(snapshot.bid, snapshot.offer, rows)
    return OrderBookView(
        symbol=snapshot.symbol,
        depth=rows,
        bid=bid,
        offer=offer,
        total_bid_offer=snapshot.total_bid_offer,
        average=snapshot.average,
    )


@router.get('/session/credential')
async def get_credential_status(request: Request):
    return {'configured': bool(_registry(request).credential)}


@router.put('/session/credential')
async def set_credential(body: CredentialUpdate, request: Request):
    registry = _registry(request)
    registry.set_credential(body.token)
    return {
        'configured': bool(registry.credential),
        'active_count': registry.metrics()['active_count'],
    }


@router.get('/metrics/polling')
async def polling_metrics(request: Request):
    return _registry(request).metrics()
