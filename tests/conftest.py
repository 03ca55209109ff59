import hashlib
import hmac
import json
import os
import sys
import time
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("PRINTFUL_API_KEY", "pf_test_key")
os.environ.setdefault("FRONTEND_URL", "https://shop.example.com")

from mock_services import mock_printful  # noqa: E402
from storefront_service.clients import PrintfulClient, StripeGateway  # noqa: E402
from storefront_service.config import Settings  # noqa: E402
from storefront_service.main import create_app  # noqa: E402

WEBHOOK_SECRET = "whsec_test_secret"


class FakeStripeGateway(StripeGateway):
    """Records Stripe calls instead of sending them. Signature checks stay real."""

    def __init__(self, webhook_secret=WEBHOOK_SECRET):
        super().__init__("sk_test_123", webhook_secret)
        self.created_sessions = []
        self.line_items = {}
        self.line_item_calls = []
        self.create_error = None
        self.line_items_error = None

    def create_checkout_session(self, **params):
        if self.create_error is not None:
            raise self.create_error
        self.created_sessions.append(params)
        return {"id": f"cs_test_{len(self.created_sessions)}", "object": "checkout.session", **params}

    def list_line_items(self, session_id):
        self.line_item_calls.append(session_id)
        if self.line_items_error is not None:
            raise self.line_items_error
        return self.line_items.get(session_id, [])


@pytest.fixture()
def settings():
    return Settings(
        _env_file=None,
        STRIPE_SECRET_KEY="sk_test_123",
        STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET,
        PRINTFUL_API_KEY="pf_test_key",
        FRONTEND_URL="https://shop.example.com/",
    )


@pytest.fixture()
def printful_mock():
    return mock_printful.reset()


@pytest.fixture()
def printful(settings, printful_mock):
    return PrintfulClient(settings, transport=httpx.ASGITransport(app=mock_printful.app))


@pytest.fixture()
def stripe_gateway():
    return FakeStripeGateway()


@pytest.fixture()
def api_client(settings, stripe_gateway, printful):
    app = create_app(settings, stripe_gateway=stripe_gateway, printful_client=printful)
    with TestClient(app) as client:
        yield client


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Builds a `stripe-signature` header the way Stripe does (v1 scheme)."""
    ts = timestamp or int(time.time())
    signed = f"{ts}.".encode("utf-8") + payload
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def event_body(event_type: str, data_object: dict, event_id: str = "evt_test_1") -> bytes:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": data_object},
    }).encode("utf-8")


def stripe_line_item(item_id, quantity, variant_id=None, product_id=None, legacy=False):
    """A line item as returned by Stripe with `data.price.product` expanded."""
    metadata = {}
    if variant_id is not None:
        metadata["variant_id"] = str(variant_id)
    if product_id is not None:
        metadata["product_id"] = str(product_id)
    price = {"id": f"price_{item_id}", "metadata": {}, "product": {"id": f"prod_{item_id}", "metadata": {}}}
    if legacy:
        price["metadata"] = metadata
    else:
        price["product"]["metadata"] = metadata
    return {"id": item_id, "object": "item", "quantity": quantity, "price": price}


def completed_session(session_id="cs_test_1", line2=None, customer=True, shipping=True):
    session = {"id": session_id, "object": "checkout.session", "customer_email": "buyer@example.com"}
    address = {
        "line1": "1 Main St",
        "line2": line2,
        "city": "Springfield",
        "state": "IL",
        "country": "US",
        "postal_code": "62701",
    }
    if customer:
        session["customer_details"] = {
            "email": "buyer@example.com",
            "name": "Pat Buyer",
            "phone": None,
            "address": address,
        }
    if shipping:
        session["collected_information"] = {
            "shipping_details": {"name": "Pat Receiver", "address": address},
        }
    return session
