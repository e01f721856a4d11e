from __future__ import annotations


class QuoteFeedError(Exception):
    """Base class for failures of a single fetch cycle."""


class NetworkFailureError(QuoteFeedError):
    pass


class BadStatusError(QuoteFeedError):
    def __init__(self, status_code: int | None, url: str = "") -> None:
        super().__init__(f"HTTP error! status: {status_code} url={url}")
        self.status_code = status_code
        self.url = url


class MalformedPayloadError(QuoteFeedError):
    pass


class TrackerNotFoundError(KeyError):
    def __init__(self, tracker_id: int) -> None:
        super().__init__(tracker_id)
        self.tracker_id = tracker_id


class InvalidSymbolError(ValueError):
    pass
