"""
Error taxonomy for revenue computation.

Every failure the core can report is a RevenueError carrying a stable ``code``
and the HTTP status the API layer answers with. Database errors are not
wrapped here; they surface as sqlalchemy exceptions.
"""
from typing import Optional


class RevenueError(Exception):
    code = "revenue_error"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message}


class OrderNotFound(RevenueError):
    code = "order_not_found"
    status_code = 404

    def __init__(self, order_id: str, organization_id: str):
        super().__init__(f"order {order_id} not found for organization {organization_id}")
        self.order_id = order_id
        self.organization_id = organization_id


class UnsupportedAsset(RevenueError):
    code = "unsupported_asset"
    status_code = 422

    def __init__(self, ticker: Optional[str]):
        super().__init__(f"no canonical asset for ticker {ticker!r}")
        self.ticker = ticker


class DataUnavailable(RevenueError):
    code = "data_unavailable"
    status_code = 502


class ProviderHttpError(RevenueError):
    code = "provider_http_error"
    status_code = 502

    def __init__(self, provider: str, status: Optional[int] = None, detail: str = ""):
        msg = f"{provider} request failed"
        if status is not None:
            msg += f" with HTTP {status}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
        self.provider = provider
        self.status = status
