# Overview: Currency symbols and price formatting for integer-cent amounts.

from __future__ import annotations

DEFAULT_CURRENCY = "USD"

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CAD": "$",
    "AUD": "$",
    "CHF": "Fr",
    "CNY": "¥",
    "SEK": "kr",
    "NZD": "$",
    "MXN": "$",
    "SGD": "$",
    "HKD": "$",
    "NOK": "kr",
    "TRY": "₺",
    "RUB": "₽",
    "INR": "₹",
    "BRL": "R$",
    "ZAR": "R",
    "KRW": "₩",
    "CRC": "₡",
}

# Currencies shown without minor units
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW"}

# Symbol goes after the amount ("12,50 kr")
SUFFIX_SYMBOL_CURRENCIES = {"SEK", "NOK"}


def get_currency_symbol(currency: str | None) -> str:
    return CURRENCY_SYMBOLS.get((currency or DEFAULT_CURRENCY).upper(), "$")


def format_price(cents: int | None, currency: str | None = None) -> str:
    """
    Render an integer-cent amount for display.

    format_price(123456, "USD") -> "$1,234.56"
    format_price(1500, "JPY")   -> "¥15"
    """
    currency = (currency or DEFAULT_CURRENCY).upper()
    if currency not in CURRENCY_SYMBOLS:
        currency = DEFAULT_CURRENCY
    cents = int(cents or 0)
    sign = "-" if cents < 0 else ""
    amount = abs(cents) / 100

    if currency in ZERO_DECIMAL_CURRENCIES:
        number = f"{round(amount):,}"
    else:
        number = f"{amount:,.2f}"

    symbol = get_currency_symbol(currency)
    if currency in SUFFIX_SYMBOL_CURRENCIES:
        return f"{sign}{number} {symbol}"
    return f"{sign}{symbol}{number}"
