import itertools
import os
import tempfile
from datetime import date, timedelta
from decimal import Decimal

# Settings are read at import time.
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite:///" + os.path.join(tempfile.gettempdir(), "templevisit-import.db"))
os.environ.setdefault("LOG_TO_FILES", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from templevisit.api.deps import get_payment_gateway
from templevisit.core.config import settings
from templevisit.core.errors import GatewayError, PaymentNotFound
from templevisit.core.security import create_access_token
from templevisit.db.session import Base, get_db, make_engine
from templevisit.main import app
from templevisit.services import booking_service
from templevisit.services.payment_gateway import SettlementGateway, expected_signature
from templevisit.services.schedule_service import upsert_schedule

TEMPLE_ID = "temple-1"


class FakeProcessor:
    """In-memory stand-in for the Razorpay client. Amounts are paise."""

    def __init__(self):
        self._ids = itertools.count(1)
        self.orders = {}
        self.payments = {}
        self.refunds = []
        self.fail_refunds = False

    def create_order(self, *, amount, currency, receipt, notes):
        order = {"id": f"order_{next(self._ids)}", "amount": amount, "currency": currency,
                 "receipt": receipt, "notes": notes, "status": "created"}
        self.orders[order["id"]] = order
        return order

    def fetch_payment(self, payment_id):
        if payment_id not in self.payments:
            raise PaymentNotFound("Payment not found")
        return self.payments[payment_id]

    def refund(self, payment_id, *, amount=None, notes=None):
        if self.fail_refunds:
            raise GatewayError("Payment processor unavailable")
        payment = self.fetch_payment(payment_id)
        r = {"id": f"rfnd_{next(self._ids)}", "payment_id": payment_id,
             "amount": amount if amount is not None else payment["amount"],
             "currency": payment["currency"], "status": "processed", "created_at": 1700000000}
        self.refunds.append(r)
        return r

    def pay(self, order_id, method="upi"):
        """Simulate the customer paying ``order_id``; returns (payment_id, signature)."""
        order = self.orders[order_id]
        payment_id = f"pay_{next(self._ids)}"
        self.payments[payment_id] = {
            "id": payment_id, "order_id": order_id, "amount": order["amount"], "currency": order["currency"],
            "status": "captured", "method": method, "captured": True, "created_at": 1700000000,
        }
        return payment_id, expected_signature(order_id, payment_id, settings.RAZORPAY_KEY_SECRET)


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def schedule(db):
    # 2 adults cost 980 + 20 fee = 1000
    return upsert_schedule(
        db, TEMPLE_ID, name="Test Temple", slot_times=["09:00", "10:00"], slot_minutes=60, capacity=50,
        adult_price=Decimal("490.00"), child_price=Decimal("200.00"), senior_price=Decimal("300.00"),
        service_fee=Decimal("20.00"),
    )


@pytest.fixture
def visit_date():
    return date.today() + timedelta(days=10)


@pytest.fixture
def make_booking(db, schedule, visit_date):
    def _make(user_id="user-1", adults=2, children=0, seniors=0, time_slot="09:00", on=None, **kw):
        return booking_service.create_booking(
            db, user_id=user_id, temple_id=TEMPLE_ID, visit_date=on or visit_date, time_slot=time_slot,
            adults=adults, children=children, seniors=seniors,
            contact_name="Asha Rao", contact_phone="+91 98765 43210", contact_email="Asha@Example.com", **kw,
        )
    return _make


@pytest.fixture
def processor():
    return FakeProcessor()


@pytest.fixture
def gateway(processor):
    return SettlementGateway(processor, settings.RAZORPAY_KEY_SECRET)


@pytest.fixture
def client(session_factory, gateway, schedule):
    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth(user_id="user-1", role="customer"):
    return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}
