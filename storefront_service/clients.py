"""
This module provides communication clients for the external systems used by the storefront service:
- Printful (REST API): catalog reads and fulfillment order submission
- Stripe (SDK): hosted checkout sessions, line items and webhook verification
Each class encapsulates its protocol logic, error handling, and connection management.
"""

import hashlib
import json
import logging

import httpx
import stripe

from .config import Settings
from .models import FulfillmentOrder

log = logging.getLogger(__name__)

# Printful caps list pages at 100 entries
PRINTFUL_PAGE_LIMIT = 100
STRIPE_LINE_ITEM_LIMIT = 100


class PrintfulApiError(RuntimeError):
    """Raised for every failed Printful call: transport error, 4xx/5xx or unusable payload."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_duplicate_external_id(self) -> bool:
        message = str(self).lower()
        if self.status_code == 409:
            return True
        return self.status_code == 400 and "external" in message and ("exist" in message or "already" in message)


class WebhookVerificationError(ValueError):
    """Raised when an inbound Stripe event cannot be authenticated or parsed."""


# --- Printful Client (REST) ---
class PrintfulClient:
    """
    Client for the Printful REST API.
    Reads the store catalog and submits fulfillment orders.
    """
    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport = None):
        """
        Initializes the async HTTP client with bearer authentication and timeout configuration.

        Args:
            settings (Settings): Application settings (API key, base URL, store id, timeout).
            transport (httpx.AsyncBaseTransport): Optional transport, e.g. an ASGI app in tests.
        """
        headers = {"Authorization": f"Bearer {settings.PRINTFUL_API_KEY}"}
        if settings.PRINTFUL_STORE_ID:
            headers["X-PF-Store-Id"] = settings.PRINTFUL_STORE_ID

        timeout_config = httpx.Timeout(settings.PRINTFUL_TIMEOUT_SECONDS)
        self.client = httpx.AsyncClient(
            base_url=settings.printful_base_url,
            headers=headers,
            timeout=timeout_config,
            transport=transport,
        )

    async def aclose(self):
        """Closes the HTTP client session."""
        await self.client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        """
        Performs a request and returns the decoded JSON envelope.
        Raises:
            PrintfulApiError: On transport errors, 4xx/5xx responses or a body without `result`.
        """
        try:
            response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()  # Raises HTTPStatusError for 4xx/5xx
            payload = response.json()
        except httpx.HTTPStatusError as e:
            message = _error_message(e.response)
            log.error(f"Printful {method} {path} failed with HTTP {e.response.status_code}: {message}")
            raise PrintfulApiError(message, status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            log.error(f"Printful {method} {path} not reachable: {e!r}")
            raise PrintfulApiError(f"Printful not reachable: {e}") from e
        except ValueError as e:
            log.error(f"Printful {method} {path} returned a non-JSON body.")
            raise PrintfulApiError("Malformed response from Printful") from e

        if not isinstance(payload, dict) or "result" not in payload:
            log.error(f"Printful {method} {path} returned an unexpected payload: {payload!r}")
            raise PrintfulApiError("Malformed response from Printful")
        return payload

    async def list_store_products(self) -> list:
        """
        Fetches every sync product of the store, following Printful's offset paging.
        Returns:
            list[dict]: Raw sync product entries (id, name, thumbnail_url, ...).
        """
        products = []
        offset = 0
        while True:
            payload = await self._request(
                "GET", "/store/products", params={"offset": offset, "limit": PRINTFUL_PAGE_LIMIT}
            )
            page = payload["result"]
            if not isinstance(page, list):
                raise PrintfulApiError("Malformed product list from Printful")
            products.extend(page)

            total = (payload.get("paging") or {}).get("total")
            offset += len(page)
            if not page or total is None or offset >= total:
                return products

    async def get_store_product(self, product_id) -> dict:
        """
        Fetches one sync product with its variants.
        Returns:
            dict: `{"sync_product": {...}, "sync_variants": [...]}`
        """
        payload = await self._request("GET", f"/store/products/{product_id}")
        result = payload["result"]
        if not isinstance(result, dict):
            raise PrintfulApiError("Malformed product detail from Printful")
        return result

    async def create_order(self, order: FulfillmentOrder) -> dict:
        """
        Submits a fulfillment order.
        Args:
            order (FulfillmentOrder): Recipient and items; `confirm` is sent as query parameter.
        Returns:
            dict: The created Printful order.
        Raises:
            PrintfulApiError: If Printful rejects the order or is unreachable.
        """
        body = order.model_dump(by_alias=True, exclude={"confirm"})
        params = {"confirm": "true" if order.confirm else "false"}
        payload = await self._request("POST", "/orders", json=body, params=params)
        return payload["result"]


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    if isinstance(body, dict) and isinstance(body.get("result"), str):
        return body["result"]
    return f"HTTP {response.status_code}"


def external_order_id(session_id: str) -> str:
    """Stable 32-char Printful `external_id` for a Stripe checkout session."""
    return hashlib.sha256(session_id.encode("utf-8")).hexdigest()[:32]


# --- Stripe Gateway (SDK) ---
class StripeGateway:
    """
    Thin wrapper around the Stripe SDK.
    The API key is passed on every call, so no global `stripe.api_key` is ever set.
    All methods block and are meant to be run in a worker thread.
    """
    def __init__(self, api_key: str, webhook_secret: str):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def create_checkout_session(self, **params):
        """
        Creates a hosted checkout session.
        Raises:
            stripe.StripeError: If Stripe rejects the request.
        """
        return stripe.checkout.Session.create(api_key=self.api_key, **params)

    def list_line_items(self, session_id: str) -> list:
        """
        Returns all line items of a session with `price.product` expanded,
        so the product metadata written at checkout time is available.
        """
        line_items = stripe.checkout.Session.list_line_items(
            session_id,
            api_key=self.api_key,
            limit=STRIPE_LINE_ITEM_LIMIT,
            expand=["data.price.product"],
        )
        return list(line_items.auto_paging_iter())

    def construct_event(self, payload: bytes, signature: str) -> dict:
        """
        Verifies the signature against the raw body, then decodes the event.
        Returns:
            dict: The event as plain JSON data.
        Raises:
            WebhookVerificationError: If the header is missing, the signature does not match,
                the timestamp is outside Stripe's tolerance, or the body is not a JSON event.
        """
        if not signature:
            raise WebhookVerificationError("Missing stripe-signature header")
        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                body, signature, self.webhook_secret, tolerance=stripe.Webhook.DEFAULT_TOLERANCE
            )
            event = json.loads(body)
        except stripe.SignatureVerificationError as e:
            raise WebhookVerificationError(e.user_message or str(e)) from e
        except ValueError as e:
            raise WebhookVerificationError(f"Invalid payload: {e}") from e

        if not isinstance(event, dict) or "type" not in event:
            raise WebhookVerificationError("Invalid payload: not a Stripe event")
        return event
