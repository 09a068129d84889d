from __future__ import annotations

import base64
import hashlib
import hmac
import io
import json
from datetime import datetime, timezone

import qrcode
from qrcode import constants
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from templevisit.core.config import settings
from templevisit.core.errors import ValidationError

SIG_LENGTH = 16


def _timestamp(issued_at: datetime) -> str:
    if issued_at.tzinfo is None:
        # SQLite hands back naive UTC values
        issued_at = issued_at.replace(tzinfo=timezone.utc)
    return issued_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _sign(booking_id: str, timestamp: str) -> str:
    msg = f"{booking_id}|{timestamp}".encode("utf-8")
    return hmac.new(settings.ticket_key.encode("utf-8"), msg, hashlib.sha256).hexdigest()[:SIG_LENGTH]


def ticket_payload(booking_id: str, issued_at: datetime) -> str:
    """Canonical QR text. Same inputs always give the same payload."""
    ts = _timestamp(issued_at)
    data = {"type": "booking", "id": booking_id, "timestamp": ts, "sig": _sign(booking_id, ts)}
    return json.dumps(data, separators=(",", ":"), sort_keys=True)


def read_ticket(payload: str) -> str:
    """Return the booking id from a scanned payload, rejecting tampered ones."""
    try:
        data = json.loads(payload)
        booking_id, ts, sig = data["id"], data["timestamp"], data["sig"]
    except (TypeError, ValueError, KeyError):
        raise ValidationError("Unreadable ticket", {"qr": "malformed"})
    if data.get("type") != "booking" or not hmac.compare_digest(_sign(booking_id, ts), str(sig)):
        raise ValidationError("Ticket signature mismatch", {"qr": "invalid"})
    return booking_id


def render_qr_png(data: str) -> bytes:
    qr = qrcode.QRCode(error_correction=constants.ERROR_CORRECT_M, box_size=10, border=1)
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="#000000", back_color="#FFFFFF")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def issue_ticket(booking_id: str, issued_at: datetime) -> str:
    """PNG QR code of the ticket payload as a data URL."""
    png = render_qr_png(ticket_payload(booking_id, issued_at))
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def render_ticket_pdf_bytes(*, booking_id: str, booking_ref: str, issued_at: datetime, temple_name: str,
                            visit_date: str, start_time: str, end_time: str, contact_name: str,
                            adults: int, children: int, seniors: int, final_amount: str,
                            currency: str) -> bytes:
    """Return an A4 PDF bytes. Pure function."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    _, h = A4

    # Header
    c.setFont("Helvetica-Bold", 18)
    c.drawString(40, h - 60, "Temple Visit Ticket")
    c.setFont("Helvetica", 11)
    c.drawString(40, h - 80, f"Booking Reference: {booking_ref}")

    # Visitor block
    c.setFont("Helvetica-Bold", 12)
    c.drawString(40, h - 115, "Visitor")
    c.setFont("Helvetica", 11)
    c.drawString(40, h - 133, contact_name or "(Not provided)")
    c.drawString(40, h - 149, f"Adults: {adults}   Children: {children}   Seniors: {seniors}")

    # Visit block
    c.setFont("Helvetica-Bold", 12)
    c.drawString(40, h - 185, "Visit")
    c.setFont("Helvetica", 11)
    c.drawString(40, h - 203, f"Temple: {temple_name or '-'}")
    c.drawString(40, h - 219, f"Date: {visit_date}")
    c.drawString(40, h - 235, f"Time: {start_time} - {end_time}")

    # Payment
    c.setFont("Helvetica-Bold", 12)
    c.drawString(40, h - 270, "Payment")
    c.setFont("Helvetica", 11)
    c.drawString(40, h - 288, f"Paid: {final_amount} {currency}")

    # Scannable credential
    qr = ImageReader(io.BytesIO(render_qr_png(ticket_payload(booking_id, issued_at))))
    c.drawImage(qr, 360, h - 300, width=180, height=180)

    # Footer
    c.setFont("Helvetica", 9)
    c.drawString(40, 40, "Present this QR code at the temple entrance.")
    c.drawString(40, 26, f"Issued: {_timestamp(issued_at)}")

    c.showPage()
    c.save()
    return buf.getvalue()
