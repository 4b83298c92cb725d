"""Country-keyed price/cost maps.

Catalog maps arrive either as already-decoded objects or as JSON text,
depending on the write path. Everything past this module works with a plain
``dict[str, float]``.
"""
from __future__ import annotations

import json
from typing import Any, Mapping, Optional


def parse_country_map(raw: Any) -> Optional[dict[str, float]]:
    """Parse-if-string, identity-if-mapping, None on anything unusable."""
    if raw is None:
        return None
    data = raw
    if isinstance(raw, (bytes, bytearray)):
        try:
            data = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if isinstance(data, str):
        text = data.strip()
        if not text:
            return None
        try:
            data = json.loads(text)
        except (ValueError, TypeError):
            return None
        # Double-encoded JSON text
        if isinstance(data, str):
            return parse_country_map(data)
    if not isinstance(data, Mapping):
        return None
    out: dict[str, float] = {}
    for key, value in data.items():
        if value is None or isinstance(value, bool):
            continue
        try:
            out[str(key).upper()] = float(value)
        except (TypeError, ValueError):
            continue
    return out


def amount_for_country(raw: Any, country: Optional[str]) -> float:
    m = parse_country_map(raw)
    if not m or not country:
        return 0.0
    return m.get(country.upper(), 0.0)
