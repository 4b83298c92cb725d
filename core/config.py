import os
import logging
from dotenv import load_dotenv

# Load .env from project root
try:
    load_dotenv(dotenv_path=os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".env")))
except Exception:
    try:
        load_dotenv()
    except Exception:
        pass

# FX quotes (currencylayer live endpoint)
CURRENCY_LAYER_API_KEY = (os.getenv("CURRENCY_LAYER_API_KEY", "") or "").strip()
CURRENCY_LAYER_API_BASE = os.getenv("CURRENCY_LAYER_API_BASE", "https://api.currencylayer.com").strip().rstrip("/")

# Market data (CoinGecko historical range endpoint)
COINGECKO_API_BASE = os.getenv("COINGECKO_API_BASE", "https://api.coingecko.com/api/v3").strip().rstrip("/")
COINGECKO_API_KEY = (os.getenv("COINGECKO_API_KEY", "") or "").strip()

# Every outbound provider call is bounded by this timeout
PROVIDER_TIMEOUT_SEC = float(os.getenv("PROVIDER_TIMEOUT_SEC", "10"))

# Width of the pricing window ending at the order's paid-like instant
PRICING_WINDOW_SEC = int(os.getenv("PRICING_WINDOW_SEC", "3600"))

# Optional shared secret for the report API
REVENUE_API_KEY = (os.getenv("REVENUE_API_KEY", "") or "").strip()

_default_origins = ",".join([
    "http://localhost:3000",
    "http://127.0.0.1:3000",
])
ALLOWED_ORIGINS = [o.strip() for o in (os.getenv("ALLOWED_ORIGINS") or _default_origins).split(",") if o.strip()]

# Logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger("storefront")
