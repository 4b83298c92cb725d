from datetime import datetime
from typing import Optional
import httpx
from core.config import logger, COINGECKO_API_BASE, COINGECKO_API_KEY, PROVIDER_TIMEOUT_SEC
from core.errors import DataUnavailable, ProviderHttpError, UnsupportedAsset

PROVIDER = "coingecko"

# Internal settlement tickers (chain suffix included) -> CoinGecko asset ids
ASSET_IDS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "USDT": "tether",
    "USDT.ERC20": "tether",
    "USDT.TRC20": "tether",
    "USDC": "usd-coin",
    "USDC.ERC20": "usd-coin",
    "USDC.TRC20": "usd-coin",
    "XRP": "ripple",
    "SOL": "solana",
    "ADA": "cardano",
    "LTC": "litecoin",
    "DOT": "polkadot",
    "BCH": "bitcoin-cash",
    "LINK": "chainlink",
    "BNB": "binancecoin",
    "DOGE": "dogecoin",
    "MATIC": "matic-network",
    "XMR": "monero",
}


def resolve_asset_id(ticker: Optional[str]) -> str:
    key = (ticker or "").strip().upper()
    asset_id = ASSET_IDS.get(key)
    if not asset_id:
        raise UnsupportedAsset(ticker)
    return asset_id


def _headers() -> dict:
    h = {"Accept": "application/json", "User-Agent": "StorefrontRevenue/1.0"}
    if COINGECKO_API_KEY:
        h["x-cg-demo-api-key"] = COINGECKO_API_KEY
    return h


async def get_spot_price_usd(
    ticker: str,
    window_start: datetime,
    window_end: datetime,
    client: Optional[httpx.AsyncClient] = None,
) -> float:
    """
    USD price of an asset inside [window_start, window_end].

    The first point of the historical range is used as-is; unsupported
    tickers fail before any network call.
    """
    asset_id = resolve_asset_id(ticker)
    url = f"{COINGECKO_API_BASE}/coins/{asset_id}/market_chart/range"
    params = {
        "vs_currency": "usd",
        "from": int(window_start.timestamp()),
        "to": int(window_end.timestamp()),
    }

    async def _call(c: httpx.AsyncClient) -> httpx.Response:
        return await c.get(url, params=params, headers=_headers(), timeout=PROVIDER_TIMEOUT_SEC)

    try:
        logger.info(f"[coingecko] price range for {asset_id} {params['from']}..{params['to']}")
        if client is not None:
            resp = await _call(client)
        else:
            async with httpx.AsyncClient(timeout=PROVIDER_TIMEOUT_SEC) as c:
                resp = await _call(c)
    except httpx.HTTPError as ex:
        logger.warning(f"[coingecko] request failed for {asset_id}: {ex}")
        raise ProviderHttpError(PROVIDER, detail=str(ex)) from ex

    if resp.status_code < 200 or resp.status_code >= 300:
        logger.warning(f"[coingecko] HTTP {resp.status_code} for {asset_id}")
        raise ProviderHttpError(PROVIDER, status=resp.status_code, detail=(resp.text or "")[:500])

    try:
        data = resp.json()
    except ValueError:
        data = {}
    prices = data.get("prices") if isinstance(data, dict) else None
    if not prices:
        raise DataUnavailable(f"no {asset_id} price points between {params['from']} and {params['to']}")
    try:
        price = float(prices[0][1])
    except (TypeError, ValueError, IndexError) as ex:
        raise DataUnavailable(f"malformed {asset_id} price point: {prices[0]!r}") from ex
    return price
