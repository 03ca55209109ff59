"""
checkout.py — Stripe Checkout Session Initiator

Turns the storefront cart into a hosted Stripe checkout session.
Cart prices are already in minor units and are forwarded unchanged; the
catalog and variant identifiers travel as product metadata so the webhook
can rebuild the Printful order after payment.
"""

import logging

import stripe

from .clients import StripeGateway
from .config import Settings
from .models import CheckoutRequest

log = logging.getLogger(__name__)

CHECKOUT_SESSION_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"


class CheckoutError(RuntimeError):
    """Raised when Stripe refuses to create the checkout session."""


def build_line_items(cart, currency: str) -> list:
    """
    Builds one Stripe `line_items` entry per cart item.

    Args:
        cart (list[CartItem]): Validated cart.
        currency (str): Lower-case ISO currency code.

    Returns:
        list[dict]: `price_data` + `quantity` entries, in cart order.
    """
    line_items = []
    for item in cart:
        product_data = {
            "name": item.name,
            "metadata": {
                "variant_id": str(item.variant_id),
                "product_id": str(item.id),
            },
        }
        if item.thumbnail_url:
            product_data["images"] = [item.thumbnail_url]

        line_items.append({
            "price_data": {
                "currency": currency,
                "product_data": product_data,
                "unit_amount": item.price,
            },
            "quantity": item.quantity,
        })
    return line_items


def build_session_params(request: CheckoutRequest, settings: Settings) -> dict:
    return {
        "payment_method_types": ["card"],
        "line_items": build_line_items(request.cart, settings.CHECKOUT_CURRENCY),
        "mode": "payment",
        "customer_email": request.customerInfo.email,
        "success_url": f"{settings.frontend_url}/success?session_id={CHECKOUT_SESSION_PLACEHOLDER}",
        "cancel_url": f"{settings.frontend_url}/cancel",
        "shipping_address_collection": {"allowed_countries": settings.allowed_countries},
        "billing_address_collection": "required",
    }


def create_checkout_session(request: CheckoutRequest, settings: Settings, gateway: StripeGateway) -> str:
    """
    Creates the hosted payment session and returns its id.

    Raises:
        CheckoutError: If the Stripe API call fails. The message carries Stripe's error text.
    """
    params = build_session_params(request, settings)
    log.info(
        f"Creating Stripe checkout session for {request.customerInfo.email} "
        f"with {len(params['line_items'])} line item(s)."
    )
    log.debug(f"Line items for Stripe: {params['line_items']}")

    try:
        session = gateway.create_checkout_session(**params)
    except stripe.StripeError as e:
        message = getattr(e, "user_message", None) or str(e)
        log.error(f"Stripe checkout session error: {message}")
        raise CheckoutError(message) from e

    log.info(f"[Session: {session['id']}] Stripe checkout session created.")
    return session["id"]
