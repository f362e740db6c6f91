from datetime import date, datetime
from decimal import Decimal

from feeledger.receipts.formatting import (
    amount_in_words,
    format_inr,
    format_signed_inr,
    group_indian,
    long_date,
    month_year,
    short_date,
)


def test_indian_grouping() -> None:
    assert group_indian("999") == "999"
    assert group_indian("4500") == "4,500"
    assert group_indian("125000") == "1,25,000"
    assert group_indian("12345678") == "1,23,45,678"


def test_format_inr() -> None:
    assert format_inr(5000) == "₹5,000"
    assert format_inr(Decimal("1234.50")) == "₹1,234.5"
    assert format_inr(Decimal("1234.5"), 2) == "₹1,234.50"
    assert format_inr(None) == "₹0"
    assert format_inr(-250) == "₹-250"
    assert format_inr(1500000, symbol="Rs. ") == "Rs. 15,00,000"


def test_signed_adjustment() -> None:
    assert format_signed_inr(500) == "+₹500"
    assert format_signed_inr(Decimal("-250.00")) == "-₹250"
    assert format_signed_inr(0) == "₹0"


def test_dates() -> None:
    assert long_date(date(2026, 10, 17)) == "17 October 2026"
    assert long_date(datetime(2026, 4, 5, 9, 30)) == "5 April 2026"
    assert short_date(date(2026, 4, 5)) == "5/4/2026"
    assert month_year(date(2026, 4, 1)) == "Apr 2026"
    assert long_date(None) == "N/A"


def test_amount_in_words() -> None:
    assert amount_in_words(0) == "Rupees Zero Only"
    assert amount_in_words(4500) == "Rupees Four Thousand Five Hundred Only"
    assert amount_in_words(52000) == "Rupees Fifty Two Thousand Only"
    assert amount_in_words(125015) == "Rupees One Lakh Twenty Five Thousand Fifteen Only"
    assert amount_in_words(20000000) == "Rupees Two Crore Only"
