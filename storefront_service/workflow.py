"""
workflow.py — Payment-Event Intake and Order Translation

This module turns verified Stripe events into Printful fulfillment orders.

Workflow Overview:
1. Verify the Stripe signature against the raw request body
2. Ignore every event kind except `checkout.session.completed`
3. Re-fetch the session's line items from Stripe (metadata is not part of the event)
4. Translate session + line items into a Printful order
5. Submit the order to Printful

The webhook is acknowledged only after step 5 has finished. A failure in
steps 3 or 5 raises `FulfillmentSubmissionError`, the caller answers with a
5xx and Stripe redelivers the event later. Each order carries an
`external_id` derived from the session id, so a redelivered event cannot
create a second Printful order.
"""

import enum
import logging

import stripe
from fastapi.concurrency import run_in_threadpool

from .clients import (
    PrintfulApiError,
    PrintfulClient,
    StripeGateway,
    external_order_id,
)
from .config import Settings
from .models import FulfillmentOrder, FulfillmentOrderItem, Recipient

log = logging.getLogger(__name__)

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
NO_NAME_PROVIDED = "No Name Provided"


class FulfillmentSubmissionError(RuntimeError):
    """Raised when a paid session could not be forwarded to Printful."""


class WebhookOutcome(str, enum.Enum):
    IGNORED = "ignored"
    SUBMITTED = "submitted"
    ALREADY_SUBMITTED = "already_submitted"
    SKIPPED = "skipped"


def _metadata_source(line_item):
    price = line_item.get("price") or {}
    product = price.get("product")
    sources = []
    # `price.product` is only an object when the line items were fetched with expansion
    if product is not None and not isinstance(product, str):
        sources.append(product.get("metadata") or {})
    sources.append(price.get("metadata") or {})
    return sources


def extract_variant_id(line_item):
    """
    Returns the Printful variant id written as metadata at checkout time.

    Looks at `price.product.metadata` first and falls back to `price.metadata`.
    Returns None if the id is absent or not an integer.
    """
    for metadata in _metadata_source(line_item):
        raw = metadata.get("variant_id")
        if raw in (None, "", "None", "null"):
            continue
        try:
            return int(raw)
        except (TypeError, ValueError):
            log.warning(f"Line item {line_item.get('id')} has a non-numeric variant_id: {raw!r}")
            return None
    return None


def build_order_items(line_items, log_prefix="") -> list:
    """
    Maps Stripe line items to Printful order items.
    Items without usable variant metadata or quantity are dropped and logged.
    """
    items = []
    for line_item in line_items:
        variant_id = extract_variant_id(line_item)
        quantity = line_item.get("quantity") or 0
        if variant_id is None or variant_id <= 0:
            log.warning(f"{log_prefix} Dropping line item {line_item.get('id')}: no variant metadata.")
            continue
        if quantity < 1:
            log.warning(f"{log_prefix} Dropping line item {line_item.get('id')}: quantity {quantity}.")
            continue
        items.append(FulfillmentOrderItem(variant_id=variant_id, quantity=quantity))
    return items


def _shipping_details(session):
    collected = session.get("collected_information") or {}
    return collected.get("shipping_details") or session.get("shipping_details") or {}


def build_recipient(session, default_country_code="US"):
    """
    Builds the Printful recipient from the session's shipping and customer details.

    Shipping details win over the billing data in `customer_details`.

    Returns:
        Recipient | None: None if the session carries no address at all.
    """
    customer = session.get("customer_details") or {}
    shipping = _shipping_details(session)
    address = shipping.get("address") or customer.get("address")
    if not address:
        return None

    return Recipient(
        name=shipping.get("name") or customer.get("name") or NO_NAME_PROVIDED,
        address1=address.get("line1") or "",
        address2=address.get("line2") or "",
        city=address.get("city") or "",
        state_code=address.get("state") or "",
        country_code=address.get("country") or default_country_code,
        zip=address.get("postal_code") or "",
        email=customer.get("email") or session.get("customer_email") or "",
        phone=customer.get("phone") or "",
    )


def translate_session(session, line_items, settings: Settings):
    """
    Translates a completed session into a Printful order.

    Returns:
        FulfillmentOrder | None: None if no line item survives or no address is known.
    """
    log_prefix = f"[Session: {session.get('id')}]"

    items = build_order_items(line_items, log_prefix)
    if not items:
        log.error(f"{log_prefix} No line item carries variant metadata. Order not submitted.")
        return None

    recipient = build_recipient(session, settings.DEFAULT_COUNTRY_CODE)
    if recipient is None:
        log.error(f"{log_prefix} Session has no customer/shipping details. Order not submitted.")
        return None

    return FulfillmentOrder(
        external_id=external_order_id(session["id"]),
        recipient=recipient,
        items=items,
        confirm=settings.PRINTFUL_CONFIRM_ORDERS,
    )


async def fulfill_checkout_session(
        session,
        settings: Settings,
        gateway: StripeGateway,
        printful: PrintfulClient,
) -> WebhookOutcome:
    """
    Executes steps 3 to 5 for a completed checkout session.

    Returns:
        WebhookOutcome: SUBMITTED, ALREADY_SUBMITTED, or SKIPPED when translation yields no order.

    Raises:
        FulfillmentSubmissionError: If Stripe or Printful fail; the event should be redelivered.
    """
    session_id = session.get("id")
    if not session_id:
        log.error("Completed checkout event without session id. Ignored.")
        return WebhookOutcome.SKIPPED
    log_prefix = f"[Session: {session_id}]"
    log.info(f"{log_prefix} Payment successful, building fulfillment order.")

    # --- 3. Stripe: line items ---
    try:
        line_items = await run_in_threadpool(gateway.list_line_items, session_id)
    except stripe.StripeError as e:
        log.error(f"{log_prefix} Could not fetch line items from Stripe: {e}")
        raise FulfillmentSubmissionError(f"Line items unavailable for {session_id}") from e
    log.info(f"{log_prefix} {len(line_items)} line item(s) fetched from Stripe.")

    # --- 4. Translation ---
    order = translate_session(session, line_items, settings)
    if order is None:
        return WebhookOutcome.SKIPPED

    # --- 5. Printful: submission ---
    log.info(f"{log_prefix} Creating Printful order {order.external_id} with {len(order.items)} item(s).")
    try:
        created = await printful.create_order(order)
    except PrintfulApiError as e:
        if e.is_duplicate_external_id:
            log.warning(f"{log_prefix} Printful already has order {order.external_id}. Nothing to do.")
            return WebhookOutcome.ALREADY_SUBMITTED
        log.critical(f"{log_prefix} Printful order submission failed: {e}. Awaiting redelivery.")
        raise FulfillmentSubmissionError(str(e)) from e

    log.info(f"{log_prefix} Printful order created (ID: {created.get('id')}, status: {created.get('status')}).")
    return WebhookOutcome.SUBMITTED


async def process_webhook(
        payload: bytes,
        signature,
        settings: Settings,
        gateway: StripeGateway,
        printful: PrintfulClient,
) -> WebhookOutcome:
    """
    Verifies and dispatches one Stripe webhook delivery.

    Args:
        payload (bytes): Unmodified request body.
        signature (str | None): Value of the `stripe-signature` header.

    Raises:
        WebhookVerificationError: If the signature check fails. Nothing is processed.
        FulfillmentSubmissionError: See `fulfill_checkout_session`.
    """
    event = gateway.construct_event(payload, signature)
    event_type = event["type"]
    log.info(f"Webhook verified: {event.get('id')} ({event_type})")

    if event_type != CHECKOUT_SESSION_COMPLETED:
        return WebhookOutcome.IGNORED

    session = (event.get("data") or {}).get("object") or {}
    return await fulfill_checkout_session(session, settings, gateway, printful)
