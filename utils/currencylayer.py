from typing import Optional
import httpx
from core.config import logger, CURRENCY_LAYER_API_BASE, CURRENCY_LAYER_API_KEY, PROVIDER_TIMEOUT_SEC
from core.errors import DataUnavailable, ProviderHttpError
from utils.currency import Rates

PROVIDER = "currencylayer"


def _positive(v) -> Optional[float]:
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if f > 0 else None


async def fetch_live_quotes(client: Optional[httpx.AsyncClient] = None) -> Rates:
    """
    Fetch live USD->EUR and USD->GBP quotes.
    Raises ProviderHttpError on transport failure or a non-2xx answer and
    DataUnavailable when either quote is missing from the payload.
    """
    url = f"{CURRENCY_LAYER_API_BASE}/live"
    params = {"access_key": CURRENCY_LAYER_API_KEY, "currencies": "EUR,GBP"}
    headers = {"Accept": "application/json", "User-Agent": "StorefrontRevenue/1.0"}

    async def _call(c: httpx.AsyncClient) -> httpx.Response:
        return await c.get(url, params=params, headers=headers, timeout=PROVIDER_TIMEOUT_SEC)

    try:
        if client is not None:
            resp = await _call(client)
        else:
            async with httpx.AsyncClient(timeout=PROVIDER_TIMEOUT_SEC) as c:
                resp = await _call(c)
    except httpx.HTTPError as ex:
        logger.warning(f"[fx] live quote request failed: {ex}")
        raise ProviderHttpError(PROVIDER, detail=str(ex)) from ex

    if resp.status_code < 200 or resp.status_code >= 300:
        logger.warning(f"[fx] live quote request returned HTTP {resp.status_code}")
        raise ProviderHttpError(PROVIDER, status=resp.status_code, detail=(resp.text or "")[:500])

    try:
        data = resp.json()
    except ValueError:
        data = {}
    quotes = data.get("quotes") if isinstance(data, dict) else None
    quotes = quotes if isinstance(quotes, dict) else {}
    usd_eur = _positive(quotes.get("USDEUR"))
    usd_gbp = _positive(quotes.get("USDGBP"))
    if usd_eur is None or usd_gbp is None:
        err = data.get("error") if isinstance(data, dict) else None
        logger.warning(f"[fx] live quote response missing USDEUR/USDGBP: {err}")
        raise DataUnavailable("FX provider response lacks USDEUR/USDGBP quotes")
    logger.info(f"[fx] fetched live quotes USDEUR={usd_eur} USDGBP={usd_gbp}")
    return Rates(usd_eur=usd_eur, usd_gbp=usd_gbp)
