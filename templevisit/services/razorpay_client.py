from dataclasses import dataclass
from typing import Protocol

import razorpay
import requests
from razorpay.errors import BadRequestError, ServerError, GatewayError as RazorpayGatewayError
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from templevisit.core.errors import GatewayError, PaymentNotFound
from templevisit.core.logging_config import get_logger

log = get_logger("payment")


class PaymentProcessor(Protocol):
    """What the settlement gateway needs from a processor. Amounts are minor units."""

    def create_order(self, *, amount: int, currency: str, receipt: str, notes: dict) -> dict: ...

    def fetch_payment(self, payment_id: str) -> dict: ...

    def refund(self, payment_id: str, *, amount: int | None = None, notes: dict | None = None) -> dict: ...


@dataclass
class RazorpayConfig:
    key_id: str
    key_secret: str
    base_url: str = "https://api.razorpay.com"
    timeout: int = 20
    max_retries: int = 3


class _TimeoutAdapter(HTTPAdapter):
    def __init__(self, *args, timeout: int | None = None, **kwargs):
        self.timeout = timeout
        super().__init__(*args, **kwargs)

    def send(self, request, **kwargs):
        if kwargs.get("timeout") is None:
            kwargs["timeout"] = self.timeout
        return super().send(request, **kwargs)


def _session(cfg: RazorpayConfig) -> requests.Session:
    # Reads are retried with backoff; order creation and refunds are not,
    # so a dropped response never turns into a second charge or refund.
    retry = Retry(
        total=cfg.max_retries,
        backoff_factor=0.5,
        status_forcelist=(502, 503, 504),
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )
    s = requests.Session()
    s.mount("https://", _TimeoutAdapter(max_retries=retry, timeout=cfg.timeout))
    return s


class RazorpayProcessor:
    def __init__(self, cfg: RazorpayConfig):
        self.cfg = cfg
        self.client = razorpay.Client(session=_session(cfg), auth=(cfg.key_id, cfg.key_secret), base_url=cfg.base_url)

    def _call(self, fn, *args, **kwargs) -> dict:
        try:
            return fn(*args, **kwargs)
        except BadRequestError as e:
            if "does not exist" in str(e).lower():
                raise PaymentNotFound("Payment not found") from e
            log.warning(f"Razorpay bad request | {e}")
            err = GatewayError("Payment processor rejected the request")
            err.retryable = False
            raise err from e
        except (ServerError, RazorpayGatewayError) as e:
            raise GatewayError("Payment processor unavailable") from e
        except requests.RequestException as e:
            raise GatewayError("Could not reach payment processor") from e

    def create_order(self, *, amount: int, currency: str, receipt: str, notes: dict) -> dict:
        data = {"amount": amount, "currency": currency, "receipt": receipt, "notes": notes}
        return self._call(self.client.order.create, data=data)

    def fetch_payment(self, payment_id: str) -> dict:
        return self._call(self.client.payment.fetch, payment_id)

    def refund(self, payment_id: str, *, amount: int | None = None, notes: dict | None = None) -> dict:
        data = {}
        if amount is not None:
            data["amount"] = amount
        if notes:
            data["notes"] = notes
        return self._call(self.client.payment.refund, payment_id, data)
