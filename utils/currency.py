"""Settlement currencies and USD-pivot conversion.

Exactly three settlement currencies exist. An order's native currency follows
from its country: GB settles in GBP, the Eurozone in EUR, everything else in
USD. Conversions always pivot through USD using the two cached quotes
USD->EUR and USD->GBP.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional


class SettlementCurrency(str, Enum):
    USD = "USD"
    GBP = "GBP"
    EUR = "EUR"


EURO_COUNTRIES = frozenset({
    "AT",  # Austria
    "BE",  # Belgium
    "HR",  # Croatia
    "CY",  # Cyprus
    "EE",  # Estonia
    "FI",  # Finland
    "FR",  # France
    "DE",  # Germany
    "GR",  # Greece
    "IE",  # Ireland
    "IT",  # Italy
    "LV",  # Latvia
    "LT",  # Lithuania
    "LU",  # Luxembourg
    "MT",  # Malta
    "NL",  # Netherlands
    "PT",  # Portugal
    "SK",  # Slovakia
    "SI",  # Slovenia
    "ES",  # Spain
})

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class Rates:
    usd_eur: float
    usd_gbp: float


@dataclass(frozen=True)
class CurrencyTriple:
    usd: float
    gbp: float
    eur: float

    def get(self, currency: SettlementCurrency) -> float:
        return {
            SettlementCurrency.USD: self.usd,
            SettlementCurrency.GBP: self.gbp,
            SettlementCurrency.EUR: self.eur,
        }[currency]


def currency_for_country(country: Optional[str]) -> SettlementCurrency:
    code = (country or "").strip().upper()
    if code == "GB":
        return SettlementCurrency.GBP
    if code in EURO_COUNTRIES:
        return SettlementCurrency.EUR
    return SettlementCurrency.USD


def parse_currency(value: Optional[str], default: SettlementCurrency = SettlementCurrency.USD) -> SettlementCurrency:
    try:
        return SettlementCurrency((value or "").strip().upper())
    except ValueError:
        return default


def convert_by_country(amount: float, country: Optional[str], target: SettlementCurrency, rates: Rates) -> float:
    """Convert an amount expressed in the country's native currency into target."""
    native = currency_for_country(country)
    x = float(amount or 0)
    if native == target:
        return x
    if native == SettlementCurrency.GBP:
        if target == SettlementCurrency.USD:
            return x / rates.usd_gbp
        return x * (rates.usd_eur / rates.usd_gbp)
    if native == SettlementCurrency.EUR:
        if target == SettlementCurrency.USD:
            return x / rates.usd_eur
        return x * (rates.usd_gbp / rates.usd_eur)
    if target == SettlementCurrency.GBP:
        return x * rates.usd_gbp
    return x * rates.usd_eur


def triple_from_native(amount: float, country: Optional[str], rates: Rates) -> CurrencyTriple:
    return CurrencyTriple(
        usd=convert_by_country(amount, country, SettlementCurrency.USD, rates),
        gbp=convert_by_country(amount, country, SettlementCurrency.GBP, rates),
        eur=convert_by_country(amount, country, SettlementCurrency.EUR, rates),
    )


def triple_from_usd(amount_usd: float, rates: Rates) -> CurrencyTriple:
    x = float(amount_usd or 0)
    return CurrencyTriple(usd=x, gbp=x * rates.usd_gbp, eur=x * rates.usd_eur)


def to_money(value: float) -> Decimal:
    """Round to cents, half-up. Only applied when a figure is persisted."""
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)
