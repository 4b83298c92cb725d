"""DB-backed cache of hour-window USD->EUR/GBP quotes.

A cached row answers any window that contains its ``date``. On a miss the
live quote is fetched once and stored at the reference instant, so later
computations for the same window reuse it. Rows are never refreshed.
"""
from __future__ import annotations

import asyncio
import weakref
from datetime import datetime
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from core.config import logger
from models.exchange_rate import ExchangeRate
from utils.currency import Rates
from utils.currencylayer import fetch_live_quotes

# Used by reports when nothing has been cached yet
FALLBACK_RATES = Rates(usd_eur=0.92, usd_gbp=0.78)

_MISS_LOCKS: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock]" = weakref.WeakKeyDictionary()


def _miss_lock() -> asyncio.Lock:
    loop = asyncio.get_running_loop()
    lock = _MISS_LOCKS.get(loop)
    if lock is None:
        lock = asyncio.Lock()
        _MISS_LOCKS[loop] = lock
    return lock


def find_cached_rates(db: Session, window_start: datetime, window_end: datetime) -> Optional[Rates]:
    row = (
        db.query(ExchangeRate)
        .filter(ExchangeRate.date >= window_start, ExchangeRate.date <= window_end)
        .order_by(ExchangeRate.date.asc(), ExchangeRate.id.asc())
        .first()
    )
    if row is None:
        return None
    return Rates(usd_eur=float(row.eur), usd_gbp=float(row.gbp))


async def get_rates(
    db: Session,
    window_start: datetime,
    window_end: datetime,
    reference_instant: datetime,
    client: Optional[httpx.AsyncClient] = None,
) -> Rates:
    cached = find_cached_rates(db, window_start, window_end)
    if cached is not None:
        return cached

    async with _miss_lock():
        # Another request may have filled the window while we waited
        cached = find_cached_rates(db, window_start, window_end)
        if cached is not None:
            return cached

        rates = await fetch_live_quotes(client)
        row = ExchangeRate(eur=rates.usd_eur, gbp=rates.usd_gbp, date=reference_instant)
        db.add(row)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info(f"[fx] cached quote at {reference_instant.isoformat()} for window {window_start.isoformat()}..{window_end.isoformat()}")
        return rates


def latest_rates(db: Session) -> Rates:
    row = db.query(ExchangeRate).order_by(ExchangeRate.date.desc(), ExchangeRate.id.desc()).first()
    if row is None or not row.eur or not row.gbp:
        logger.warning("[fx] no cached quotes, using fallback rates")
        return FALLBACK_RATES
    return Rates(usd_eur=float(row.eur), usd_gbp=float(row.gbp))
