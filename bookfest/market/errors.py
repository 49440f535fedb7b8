from __future__ import annotations


class MarketError(RuntimeError):
    """Base class for every unrecoverable marketplace failure."""


class SessionError(MarketError):
    """The market page could not be reached or did not hand out an XSRF cookie."""


class TransportError(MarketError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PayloadError(MarketError):
    """The response body was not the JSON shape we asked the GraphQL API for."""


class AggregationCancelled(MarketError):
    pass
