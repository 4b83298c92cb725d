import hmac
from typing import Optional
from fastapi import Request
from core.config import logger, REVENUE_API_KEY


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization") or request.headers.get("authorization") or ""
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    return ""


def get_organization_from_request(request: Request) -> Optional[str]:
    """
    Resolve the calling organization.

    The organization is read from the X-Organization-Id header. When
    REVENUE_API_KEY is configured the request must also carry it as a
    bearer token, otherwise None is returned.
    """
    if REVENUE_API_KEY:
        token = _bearer_token(request)
        if not token or not hmac.compare_digest(token, REVENUE_API_KEY):
            logger.warning("[auth] rejected request with missing or invalid api key")
            return None
    org = (request.headers.get("X-Organization-Id") or "").strip()
    return org or None
