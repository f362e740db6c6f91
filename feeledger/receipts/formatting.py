"""Indian currency and date formatting used by the receipt templates."""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from feeledger.core.config import settings
from feeledger.core.schemas import to_decimal

DateLike = Union[date, datetime, None]


def group_indian(digits: str) -> str:
    """'12345678' -> '1,23,45,678' (last three digits, then pairs)."""
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs + [tail])


def format_inr(value, decimals: Optional[int] = None, symbol: Optional[str] = None) -> str:
    """
    en-IN grouping with a rupee prefix.

    decimals=None shows whole rupees and only keeps paise when present
    (5000 -> '₹5,000', 1234.5 -> '₹1,234.5'); decimals=2 always shows two places.
    """
    if symbol is None:
        symbol = settings.currency_symbol
    amount = to_decimal(value)
    places = 2 if decimals is None else decimals
    amount = amount.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    whole, _, frac = f"{abs(amount):f}".partition(".")
    if decimals is None:
        frac = frac.rstrip("0")
    text = group_indian(whole)
    if frac:
        text = f"{text}.{frac}"
    return f"{symbol}{sign}{text}"


def format_signed_inr(value) -> str:
    """Adjustment display: '+₹500', '-₹250' or '₹0'."""
    amount = to_decimal(value)
    if amount > 0:
        return "+" + format_inr(amount)
    if amount < 0:
        return "-" + format_inr(-amount)
    return format_inr(0)


def _as_date(value: DateLike) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    return value


def long_date(value: DateLike) -> str:
    """17 October 2026"""
    d = _as_date(value)
    if d is None:
        return "N/A"
    return f"{d.day} {d.strftime('%B')} {d.year}"


def short_date(value: DateLike) -> str:
    """17/10/2026"""
    d = _as_date(value)
    if d is None:
        return "N/A"
    return f"{d.day}/{d.month}/{d.year}"


def month_year(value: DateLike) -> str:
    """Oct 2026"""
    d = _as_date(value)
    if d is None:
        return "N/A"
    return f"{d.strftime('%b')} {d.year}"


def date_time(value: Optional[datetime]) -> str:
    if value is None:
        return "N/A"
    return f"{short_date(value)}, {value.strftime('%I:%M:%S %p').lower()}"


_ONES = ["", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine"]
_TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]
_TEENS = ["Ten", "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen", "Seventeen", "Eighteen", "Nineteen"]


def _below_hundred(n: int) -> str:
    if n < 10:
        return _ONES[n]
    if n < 20:
        return _TEENS[n - 10]
    t, o = divmod(n, 10)
    return f"{_TENS[t]} {_ONES[o]}".strip()


def _below_thousand(n: int) -> str:
    h, r = divmod(n, 100)
    parts = []
    if h:
        parts.append(f"{_ONES[h]} Hundred")
    if r:
        parts.append(_below_hundred(r))
    return " ".join(parts)


def amount_in_words(value) -> str:
    """52000 -> 'Rupees Fifty Two Thousand Only' (crore/lakh/thousand scale)."""
    n = int(to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if n == 0:
        return "Rupees Zero Only"
    if n < 0:
        return "Rupees (Negative) Only"
    parts = []
    crore, n = divmod(n, 10_000_000)
    lakh, n = divmod(n, 100_000)
    thousand, n = divmod(n, 1000)
    if crore:
        parts.append(f"{amount_in_words(crore)[len('Rupees '):-len(' Only')]} Crore")
    if lakh:
        parts.append(f"{_below_hundred(lakh)} Lakh")
    if thousand:
        parts.append(f"{_below_hundred(thousand)} Thousand")
    if n:
        parts.append(_below_thousand(n))
    return "Rupees " + " ".join(parts) + " Only"
