"""Input checks for booking requests.

Everything here runs before a session is touched, and every failure is
reported as a :class:`ValidationError` carrying a ``fields`` map so the API
can point at the offending inputs.
"""
import re
from datetime import date, datetime

from templevisit.core.errors import ValidationError
from templevisit.models.enums import PaymentMethod, PaymentStatus, BookingSource

TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
PHONE_RE = re.compile(r"^\+?[\d\s\-()]+$")
EMAIL_RE = re.compile(r"^\S+@\S+\.\S+$")

VISITOR_LIMITS = {
    "adults": (1, 20),
    "children": (0, 10),
    "seniors": (0, 10),
}


def normalize_time(value: str, field: str = "timeSlot") -> str:
    """Validate HH:MM and zero-pad the hour (9:00 -> 09:00)."""
    value = (value or "").strip()
    if not TIME_RE.match(value):
        raise ValidationError("Invalid time format (HH:MM)", {field: value})
    hh, mm = value.split(":")
    return f"{int(hh):02d}:{mm}"


def parse_visit_date(value: str | date) -> date:
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationError("date must be YYYY-MM-DD", {"date": str(value)})


def validate_visit_date(visit_date: date, today: date) -> None:
    if visit_date < today:
        raise ValidationError("Visit date cannot be in the past", {"date": visit_date.isoformat()})


def validate_visitors(adults: int, children: int = 0, seniors: int = 0) -> None:
    counts = {"adults": adults, "children": children, "seniors": seniors}
    errors = {}
    for name, count in counts.items():
        low, high = VISITOR_LIMITS[name]
        if count is None or not low <= count <= high:
            errors[name] = f"must be between {low} and {high}"
    if errors:
        raise ValidationError("Visitor counts out of range", errors)


def validate_contact(name: str, phone: str, email: str, special_requests: str | None = None) -> None:
    errors = {}
    if not (name or "").strip():
        errors["name"] = "Contact name is required"
    elif len(name.strip()) > 100:
        errors["name"] = "Name cannot exceed 100 characters"
    if not PHONE_RE.match(phone or ""):
        errors["phone"] = "Invalid phone number format"
    if not EMAIL_RE.match(email or ""):
        errors["email"] = "Invalid email format"
    if special_requests and len(special_requests) > 500:
        errors["specialRequests"] = "Special requests cannot exceed 500 characters"
    if errors:
        raise ValidationError("Invalid contact information", errors)


def validate_reason(reason: str | None) -> None:
    if reason and len(reason) > 500:
        raise ValidationError("Cancellation reason cannot exceed 500 characters", {"reason": "too long"})


def _check_choice(value: str, choices, field: str) -> str:
    allowed = [c.value for c in choices]
    if value not in allowed:
        raise ValidationError(f"{field} must be one of {', '.join(allowed)}", {field: str(value)})
    return value


def validate_payment_method(value: str) -> str:
    return _check_choice(value, PaymentMethod, "paymentMethod")


def validate_payment_status(value: str) -> str:
    return _check_choice(value, PaymentStatus, "paymentStatus")


def validate_source(value: str) -> str:
    return _check_choice(value, BookingSource, "source")
