from __future__ import annotations

import asyncio

import pytest

from storefront_service.catalog import (
    NO_DESCRIPTION,
    NO_NAME,
    PLACEHOLDER_IMAGE,
    build_product_detail,
    get_product,
    list_products,
    summarize_product,
    to_minor_units,
)
from storefront_service.clients import PrintfulApiError


@pytest.mark.parametrize(
    ("retail_price", "expected"),
    [
        ("19.99", 1999),
        ("0.29", 29),
        ("21.50", 2150),
        ("24", 2400),
        ("1.005", 101),
        (None, 0),
        ("", 0),
        ("n/a", 0),
    ],
)
def test_to_minor_units(retail_price, expected):
    assert to_minor_units(retail_price) == expected


def test_list_products_enriches_every_product(printful):
    products = asyncio.run(list_products(printful))

    assert [p.id for p in products] == [101, 102, 103]
    hat = products[0]
    assert hat.name == "Classic Dad Hat"
    assert hat.price == 1999
    assert hat.variant_id == 1001
    assert hat.thumbnail_url == "https://files.example/1001-preview.png"


def test_list_products_falls_back_to_thumbnail_then_placeholder(printful):
    products = {p.id: p for p in asyncio.run(list_products(printful))}

    assert products[102].thumbnail_url == "https://files.example/102-thumb.png"
    assert products[103].thumbnail_url == PLACEHOLDER_IMAGE
    assert products[103].thumbnail_url == "default_image_url"
    assert products[103].name == NO_NAME
    assert products[103].price == 29


def test_list_products_follows_paging(printful, printful_mock):
    printful_mock.catalog = {
        product_id: {
            "sync_product": {"id": product_id, "name": f"Hat {product_id}", "thumbnail_url": None},
            "sync_variants": [{"id": product_id * 10, "retail_price": "10.00"}],
        }
        for product_id in range(1, 151)
    }

    products = asyncio.run(list_products(printful))

    assert len(products) == 150
    assert products[-1].id == 150
    assert products[-1].variant_id == 1500


def test_list_products_bounds_concurrent_detail_requests(printful, printful_mock):
    printful_mock.detail_delay = 0.01

    asyncio.run(list_products(printful, max_concurrency=2))

    assert printful_mock.max_in_flight == 2


def test_list_products_fails_whole_request_on_one_detail_failure(printful, printful_mock):
    printful_mock.catalog[500] = {
        "sync_product": {"id": 500, "name": "Broken"},
        "sync_variants": [],
    }

    with pytest.raises(PrintfulApiError) as exc_info:
        asyncio.run(list_products(printful))

    assert exc_info.value.status_code == 500


def test_list_products_fails_when_list_call_fails(printful, printful_mock):
    printful_mock.fail_list = True

    with pytest.raises(PrintfulApiError):
        asyncio.run(list_products(printful))


def test_summarize_product_without_variants():
    summary = summarize_product({"id": 7, "name": "Bare"}, {"sync_product": {"id": 7}, "sync_variants": []})

    assert summary.price == 0
    assert summary.variant_id is None
    assert summary.thumbnail_url == PLACEHOLDER_IMAGE


def test_get_product_reshapes_detail(printful):
    detail = asyncio.run(get_product(printful, "101"))

    assert detail.id == 101
    assert detail.description == "Unstructured six-panel cap."
    assert [v.id for v in detail.variants] == [1001, 1002]
    assert [v.price for v in detail.variants] == [1999, 2150]
    assert detail.variants[0].thumbnail_url == "https://files.example/1001-preview.png"
    # no preview file on the second variant
    assert detail.variants[1].thumbnail_url == "https://files.example/101-thumb.png"


def test_get_product_placeholders(printful):
    detail = asyncio.run(get_product(printful, "103"))

    assert detail.name == NO_NAME
    assert detail.description == NO_DESCRIPTION
    assert detail.variants[0].thumbnail_url == "default_image_url"


def test_get_product_unknown_id_raises(printful):
    with pytest.raises(PrintfulApiError) as exc_info:
        asyncio.run(get_product(printful, "999"))

    assert exc_info.value.status_code == 404


def test_build_product_detail_rejects_malformed_payload():
    with pytest.raises(PrintfulApiError, match="Malformed"):
        build_product_detail({"sync_variants": []})
