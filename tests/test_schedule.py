from datetime import date

import pytest

from feeledger.core.schedule import base_year, billing_months, due_date_for


def test_base_year_from_label() -> None:
    assert base_year("2026-2027", date(2030, 1, 1)) == 2026
    assert base_year("AY 2026-27", date(2030, 1, 1)) == 2030
    assert base_year(None, date(2030, 1, 1)) == 2030


def test_billing_months() -> None:
    assert billing_months(4, 6, "monthly", 2026) == [date(2026, 4, 1), date(2026, 5, 1), date(2026, 6, 1)]
    assert billing_months(4, 3, "quarterly", 2026) == [
        date(2026, 4, 1),
        date(2026, 7, 1),
        date(2026, 10, 1),
        date(2027, 1, 1),
    ]
    assert billing_months(4, 3, "yearly", 2026) == [date(2026, 4, 1)]
    with pytest.raises(ValueError):
        billing_months(4, 6, "weekly", 2026)


def test_due_date_clamped_to_month() -> None:
    assert due_date_for(date(2026, 2, 1), 31) == date(2026, 2, 28)
    assert due_date_for(date(2028, 2, 1), 30) == date(2028, 2, 29)
    assert due_date_for(date(2026, 4, 1), None) == date(2026, 4, 15)
    assert due_date_for(date(2026, 4, 1), 10) == date(2026, 4, 10)
