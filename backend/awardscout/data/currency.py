"""Currency utilities — award co-pay parsing and conversion to USD."""

import re
from typing import Protocol

# Static exchange rates to USD (can be updated periodically)
EXCHANGE_RATES_TO_USD: dict[str, float] = {
    "USD": 1.0,
    "CAD": 0.74,
    "GBP": 1.27,
    "EUR": 1.08,
    "JPY": 0.0067,
    "AUD": 0.65,
    "NZD": 0.60,
    "SGD": 0.75,
    "HKD": 0.13,
    "INR": 0.012,
    "AED": 0.27,
    "QAR": 0.27,
    "TRY": 0.031,
    "KRW": 0.00074,
    "TWD": 0.031,
    "CHF": 1.13,
}

_CURRENCY_CODE = re.compile(r"\b([A-Z]{3})\b")


class CurrencyConverter(Protocol):
    """Anything that can turn an amount in some currency into USD."""

    def to_usd(self, amount: float, currency: str) -> float: ...


class StaticRateConverter:
    """Converter backed by a fixed rate table. Unknown currencies pass through."""

    def __init__(self, rates: dict[str, float] | None = None):
        self._rates = dict(rates if rates is not None else EXCHANGE_RATES_TO_USD)

    def rate(self, currency: str) -> float:
        return self._rates.get(currency.upper(), 1.0)

    def to_usd(self, amount: float, currency: str) -> float:
        return round(amount * self.rate(currency), 2)


default_converter = StaticRateConverter()


def split_amount(value: float | int | str | None) -> tuple[float, str]:
    """
    Split a provider price into (amount, currency).

    Accepts numbers (assumed USD) and strings like ``"AUD 45.20"``,
    ``"45.20 USD"`` or ``"$12"``. Unparseable values are (0.0, "USD").
    """
    if value is None:
        return 0.0, "USD"
    if isinstance(value, bool):
        return 0.0, "USD"
    if isinstance(value, (int, float)):
        return float(value), "USD"
    if not isinstance(value, str):
        return 0.0, "USD"

    match = _CURRENCY_CODE.search(value)
    currency = match.group(1) if match else "USD"
    cleaned = re.sub(r"[^0-9.]", "", value.replace(",", ""))
    try:
        return float(cleaned), currency
    except ValueError:
        return 0.0, currency


def parse_copay(
    value: float | int | str | None,
    converter: CurrencyConverter | None = None,
) -> tuple[float, str]:
    """Parse a co-pay value and convert it to USD. Returns (usd_amount, source_currency)."""
    amount, currency = split_amount(value)
    if currency == "USD":
        return round(amount, 2), currency
    conv = converter or default_converter
    return conv.to_usd(amount, currency), currency
