import base64
import json
from datetime import datetime, timezone

import pytest

from templevisit.core.errors import ValidationError
from templevisit.services.ticket_service import (
    ticket_payload, read_ticket, issue_ticket, render_ticket_pdf_bytes,
)

ISSUED = datetime(2026, 11, 1, 4, 30, tzinfo=timezone.utc)


def test_payload_is_deterministic():
    assert ticket_payload("b-1", ISSUED) == ticket_payload("b-1", ISSUED.replace(tzinfo=None))
    data = json.loads(ticket_payload("b-1", ISSUED))
    assert data["type"] == "booking"
    assert data["id"] == "b-1"
    assert data["timestamp"] == "2026-11-01T04:30:00Z"
    assert len(data["sig"]) == 16


def test_tampered_payload_rejected():
    data = json.loads(ticket_payload("b-1", ISSUED))
    data["id"] = "b-2"
    with pytest.raises(ValidationError):
        read_ticket(json.dumps(data))
    with pytest.raises(ValidationError):
        read_ticket("not json")


def test_issue_ticket_is_png_data_url():
    url = issue_ticket("b-1", ISSUED)
    prefix = "data:image/png;base64,"
    assert url.startswith(prefix)
    assert base64.b64decode(url[len(prefix):])[:8] == b"\x89PNG\r\n\x1a\n"


def test_ticket_pdf():
    pdf = render_ticket_pdf_bytes(
        booking_id="b-1", booking_ref="DYABCDEF12", issued_at=ISSUED, temple_name="Test Temple",
        visit_date="2026-11-20", start_time="09:00", end_time="10:00", contact_name="Asha Rao",
        adults=2, children=0, seniors=0, final_amount="1000.00", currency="INR",
    )
    assert pdf.startswith(b"%PDF")
