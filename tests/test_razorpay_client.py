import json
from unittest import mock

import pytest
import requests
from requests.adapters import HTTPAdapter
from razorpay.errors import BadRequestError, ServerError

from templevisit.core.config import settings
from templevisit.core.errors import GatewayError, PaymentNotFound
from templevisit.services.razorpay_client import RazorpayConfig, RazorpayProcessor


@pytest.fixture
def rzp():
    return RazorpayProcessor(RazorpayConfig(key_id="rzp_test_key", key_secret="secret"))


def test_only_reads_are_retried(rzp):
    adapter = rzp.client.session.get_adapter("https://api.razorpay.com/v1/orders")
    assert adapter.max_retries.allowed_methods == frozenset({"GET"})
    assert adapter.timeout == 20


def test_create_order_sends_minor_units(rzp):
    with mock.patch.object(rzp.client.order, "create", return_value={"id": "order_1"}) as create:
        assert rzp.create_order(amount=100000, currency="INR", receipt="r1", notes={}) == {"id": "order_1"}
    create.assert_called_once_with(data={"amount": 100000, "currency": "INR", "receipt": "r1", "notes": {}})


@pytest.mark.parametrize(
    "exc, expected",
    [
        (BadRequestError("The id provided does not exist"), PaymentNotFound),
        (BadRequestError("Invalid amount"), GatewayError),
        (ServerError("boom"), GatewayError),
        (requests.ConnectionError("down"), GatewayError),
    ],
)
def test_errors_are_mapped(rzp, exc, expected):
    with mock.patch.object(rzp.client.payment, "fetch", side_effect=exc):
        with pytest.raises(expected):
            rzp.fetch_payment("pay_1")


def test_rejected_request_is_not_retryable(rzp):
    with mock.patch.object(rzp.client.payment, "refund", side_effect=BadRequestError("Invalid amount")):
        with pytest.raises(GatewayError) as e:
            rzp.refund("pay_1", amount=100)
    assert e.value.retryable is False


class _RecordingAdapter(HTTPAdapter):
    def __init__(self):
        super().__init__()
        self.urls = []

    def send(self, request, **kwargs):
        self.urls.append(request.url)
        resp = requests.Response()
        resp.status_code = 200
        resp.headers["Content-Type"] = "application/json"
        resp._content = json.dumps({"id": "pay_1", "status": "captured", "amount": 100000}).encode()
        resp.url = request.url
        resp.request = request
        return resp


def test_requests_go_to_versioned_api_path(rzp):
    adapter = _RecordingAdapter()
    rzp.client.session.mount("https://", adapter)
    assert rzp.fetch_payment("pay_1")["id"] == "pay_1"
    assert adapter.urls == ["https://api.razorpay.com/v1/payments/pay_1"]


def test_default_api_base_has_no_version_suffix():
    assert settings.RAZORPAY_API_BASE == "https://api.razorpay.com"
    assert RazorpayConfig(key_id="k", key_secret="s").base_url == settings.RAZORPAY_API_BASE
