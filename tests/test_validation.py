from datetime import date

import pytest

from templevisit.core.errors import ValidationError
from templevisit.services.validation import (
    normalize_time, parse_visit_date, validate_visit_date, validate_visitors, validate_contact,
    validate_payment_method, validate_reason,
)


def test_normalize_time_pads_hour():
    assert normalize_time("9:00") == "09:00"
    assert normalize_time(" 17:30 ") == "17:30"


@pytest.mark.parametrize("value", ["24:00", "9", "09:60", "ab:cd", ""])
def test_normalize_time_rejects_bad_format(value):
    with pytest.raises(ValidationError) as e:
        normalize_time(value)
    assert "timeSlot" in e.value.fields


def test_parse_visit_date():
    assert parse_visit_date("2026-11-20") == date(2026, 11, 20)
    with pytest.raises(ValidationError):
        parse_visit_date("20/11/2026")


def test_past_visit_date_rejected():
    with pytest.raises(ValidationError):
        validate_visit_date(date(2026, 1, 1), date(2026, 1, 2))
    validate_visit_date(date(2026, 1, 2), date(2026, 1, 2))


def test_visitor_bounds():
    validate_visitors(1, 0, 0)
    validate_visitors(20, 10, 10)
    with pytest.raises(ValidationError) as e:
        validate_visitors(0, 11, -1)
    assert set(e.value.fields) == {"adults", "children", "seniors"}


def test_contact_errors_are_collected():
    validate_contact("Asha", "+91 (98765) 43210", "asha@example.com")
    with pytest.raises(ValidationError) as e:
        validate_contact("", "call me", "not-an-email", "x" * 501)
    assert set(e.value.fields) == {"name", "phone", "email", "specialRequests"}


def test_choices_and_reason():
    assert validate_payment_method("upi") == "upi"
    with pytest.raises(ValidationError):
        validate_payment_method("cash")
    with pytest.raises(ValidationError):
        validate_reason("x" * 501)
