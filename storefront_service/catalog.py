"""
catalog.py — Product Catalog Reader

Reshapes Printful store products into the objects the storefront renders.

Workflow Overview:
1. List all sync products of the store
2. Fetch variant-level detail for every product (bounded concurrency)
3. Derive price, preview image and variant id from the first variant

Missing data is replaced by fixed placeholders instead of failing the request.
Any upstream failure propagates as `PrintfulApiError`; partial lists are never returned.
"""

import asyncio
import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from pydantic import ValidationError

from .clients import PrintfulClient, PrintfulApiError
from .models import ProductDetail, ProductSummary, VariantDetail

log = logging.getLogger(__name__)

NO_NAME = "No name available"
NO_DESCRIPTION = "No description available"
PLACEHOLDER_IMAGE = "default_image_url"

_CENT = Decimal("1")


def to_minor_units(retail_price) -> int:
    """
    Converts a decimal major-unit price string to integer minor units.

    "19.99" -> 1999. Rounds half up to the nearest minor unit; missing or
    unparsable prices count as 0.
    """
    if retail_price is None or retail_price == "":
        return 0
    try:
        amount = Decimal(str(retail_price)) * 100
    except InvalidOperation:
        log.warning(f"Unparsable retail price from Printful: {retail_price!r}")
        return 0
    if not amount.is_finite():
        return 0
    return int(amount.quantize(_CENT, rounding=ROUND_HALF_UP))


def preview_url(variant) -> str | None:
    """Returns the URL of the variant's `preview` file, if any."""
    if not variant:
        return None
    for file in variant.get("files") or []:
        if file.get("type") == "preview" and file.get("preview_url"):
            return file["preview_url"]
    return None


def resolve_image(variant, product_thumbnail) -> str:
    return preview_url(variant) or product_thumbnail or PLACEHOLDER_IMAGE


def summarize_product(product: dict, details: dict) -> ProductSummary:
    """Combines a list entry with its detail payload into a catalog summary."""
    try:
        variants = details.get("sync_variants") or []
        first_variant = variants[0] if variants else None

        return ProductSummary(
            id=product["id"],
            name=product.get("name") or NO_NAME,
            thumbnail_url=resolve_image(first_variant, product.get("thumbnail_url")),
            price=to_minor_units(first_variant.get("retail_price")) if first_variant else 0,
            variant_id=first_variant.get("id") if first_variant else None,
        )
    except (KeyError, TypeError, AttributeError, ValidationError) as e:
        log.error(f"[Product: {product.get('id')}] Malformed product payload from Printful: {e!r}")
        raise PrintfulApiError("Malformed product detail from Printful") from e


def build_product_detail(details: dict) -> ProductDetail:
    """Reshapes a Printful `{sync_product, sync_variants}` payload."""
    product = details.get("sync_product")
    if not isinstance(product, dict) or "id" not in product:
        raise PrintfulApiError("Malformed product detail from Printful")

    try:
        thumbnail = product.get("thumbnail_url")
        variants = [
            VariantDetail(
                id=variant["id"],
                name=variant.get("name") or NO_NAME,
                price=to_minor_units(variant.get("retail_price")),
                thumbnail_url=resolve_image(variant, thumbnail),
            )
            for variant in details.get("sync_variants") or []
        ]

        return ProductDetail(
            id=product["id"],
            name=product.get("name") or NO_NAME,
            description=product.get("description") or NO_DESCRIPTION,
            thumbnail_url=thumbnail,
            variants=variants,
        )
    except (KeyError, TypeError, AttributeError, ValidationError) as e:
        log.error(f"[Product: {product.get('id')}] Malformed product payload from Printful: {e!r}")
        raise PrintfulApiError("Malformed product detail from Printful") from e


async def list_products(client: PrintfulClient, max_concurrency: int = 8) -> list:
    """
    Returns the enriched catalog.

    Args:
        client (PrintfulClient): Printful API client.
        max_concurrency (int): Upper bound for simultaneous detail requests.

    Returns:
        list[ProductSummary]: One entry per store product, in Printful's order.

    Raises:
        PrintfulApiError: If the list call or any detail call fails.
    """
    products = await client.list_store_products()
    log.info(f"Number of products fetched from Printful: {len(products)}")

    semaphore = asyncio.Semaphore(max_concurrency)

    async def enrich(product):
        if not isinstance(product, dict) or "id" not in product:
            raise PrintfulApiError("Malformed product entry from Printful")
        async with semaphore:
            details = await client.get_store_product(product["id"])
        return summarize_product(product, details)

    return list(await asyncio.gather(*(enrich(product) for product in products)))


async def get_product(client: PrintfulClient, product_id) -> ProductDetail:
    log.info(f"[Product: {product_id}] Fetching product detail.")
    details = await client.get_store_product(product_id)
    return build_product_detail(details)
