"""
models.py — Data Models for Catalog, Checkout and Fulfillment

This module defines the data structures exchanged with the browser client and
the payloads forwarded to Printful. It uses Pydantic models to ensure type
safety and automatic validation of incoming data.

Models:
    - CartItem / CustomerInfo / CheckoutRequest: Checkout payload from the storefront.
    - CheckoutSessionResponse: Identifier of the created Stripe session.
    - ProductSummary / VariantDetail / ProductDetail: Reshaped Printful catalog data.
    - Recipient / FulfillmentOrderItem / FulfillmentOrder: Printful order payload.
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Union


class CartItem(BaseModel):
    """
    Represents a single line of the customer's cart.

    Attributes:
        id (int | str): Catalog (Printful sync product) identifier.
        name (str): Display name shown on the Stripe checkout page.
        price (int): Unit price in minor currency units (e.g., cents). Passed through as-is.
        thumbnail_url (str | None): Product image shown on the checkout page.
        variant_id (int | str): Printful sync variant identifier used for fulfillment.
        quantity (int): Number of units. Must be at least 1.
    """
    id: Union[int, str]
    name: str = Field(..., min_length=1)
    price: int = Field(..., ge=0)
    thumbnail_url: Optional[str] = None
    variant_id: Union[int, str]
    quantity: int = Field(..., ge=1)


class CustomerInfo(BaseModel):
    """
    Customer data collected by the storefront before checkout.

    Attributes:
        email (str): Receipt address forwarded to Stripe.
    """
    email: str = Field(..., min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")


class CheckoutRequest(BaseModel):
    cart: List[CartItem] = Field(..., min_length=1)
    customerInfo: CustomerInfo


class CheckoutSessionResponse(BaseModel):
    id: str


class ProductSummary(BaseModel):
    """
    Catalog list entry enriched with the first variant's price and preview.

    Attributes:
        id (int): Printful sync product identifier.
        name (str): Product name or "No name available".
        thumbnail_url (str): Preview image, product thumbnail or placeholder.
        price (int): First variant's retail price in minor units (0 if unknown).
        variant_id (int | None): First variant's identifier.
    """
    id: int
    name: str
    thumbnail_url: str
    price: int
    variant_id: Optional[int] = None


class VariantDetail(BaseModel):
    id: int
    name: str
    price: int
    thumbnail_url: str


class ProductDetail(BaseModel):
    id: int
    name: str
    description: str
    thumbnail_url: Optional[str] = None
    variants: List[VariantDetail]


class ProductListResponse(BaseModel):
    products: List[ProductSummary]


class Recipient(BaseModel):
    """
    Shipping recipient in the format expected by the Printful Orders API.

    Attributes:
        name (str): Recipient name ("No Name Provided" if Stripe has none).
        address1 (str): First address line.
        address2 (str): Second address line, empty string if absent.
        city (str): City.
        state_code (str): Region / state code.
        country_code (str): ISO 3166-1 alpha-2 country code.
        zip (str): Postal code.
        email (str): Customer email.
        phone (str): Customer phone, empty string if absent.
    """
    name: str
    address1: str
    address2: str = ""
    city: str = ""
    state_code: str = ""
    country_code: str
    zip: str = ""
    email: str = ""
    phone: str = ""


class FulfillmentOrderItem(BaseModel):
    # Catalog variants are store (sync) variants, so Printful needs `sync_variant_id` on the wire
    variant_id: int = Field(..., gt=0, serialization_alias="sync_variant_id")
    quantity: int = Field(..., gt=0)


class FulfillmentOrder(BaseModel):
    """
    Complete order payload submitted to Printful once per paid checkout session.

    Attributes:
        external_id (str): Deterministic id derived from the Stripe session (dedup key at Printful).
        recipient (Recipient): Shipping address.
        items (List[FulfillmentOrderItem]): One entry per purchased variant.
        confirm (bool): Submit the order for fulfillment immediately instead of as a draft.
    """
    external_id: str = Field(..., max_length=32)
    recipient: Recipient
    items: List[FulfillmentOrderItem] = Field(..., min_length=1)
    confirm: bool = True
