from __future__ import annotations

import asyncio

import httpx
import pytest

from storefront_service.clients import PrintfulApiError, _error_message


@pytest.mark.parametrize(
    ("response", "expected"),
    [
        (httpx.Response(502, text="Bad gateway"), "Bad gateway"),
        (httpx.Response(500, json={"code": 500, "result": "Boom"}), "Boom"),
        (
            httpx.Response(400, json={"code": 400, "result": "x", "error": {"message": "Invalid variant"}}),
            "Invalid variant",
        ),
        (httpx.Response(503, json=[]), "HTTP 503"),
        (httpx.Response(504), "HTTP 504"),
    ],
)
def test_error_message(response, expected):
    assert _error_message(response) == expected


def test_html_body_is_reported_as_malformed(printful):
    with pytest.raises(PrintfulApiError, match="Malformed") as exc_info:
        asyncio.run(printful.get_store_product(501))

    assert exc_info.value.status_code == 502


def test_envelope_without_result_is_reported_as_malformed(printful):
    with pytest.raises(PrintfulApiError, match="Malformed"):
        asyncio.run(printful.get_store_product(502))


def test_unknown_product_keeps_upstream_status(printful):
    with pytest.raises(PrintfulApiError, match="Not Found") as exc_info:
        asyncio.run(printful.get_store_product(999))

    assert exc_info.value.status_code == 404


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (PrintfulApiError("Order with External ID abc already exists", status_code=400), True),
        (PrintfulApiError("Conflict", status_code=409), True),
        (PrintfulApiError("Recipient country is not supported", status_code=400), False),
        (PrintfulApiError("Order with External ID abc already exists", status_code=500), False),
    ],
)
def test_duplicate_external_id_detection(error, expected):
    assert error.is_duplicate_external_id is expected
