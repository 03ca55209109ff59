"""
mock_printful.py — Mock Implementation of the Printful API (REST)

This module provides a simulated Printful API for local development and for the
test-suite. It exposes a FastAPI application that mimics the subset of the
Printful endpoints used by the storefront service.

Simulation Scenarios:
    • Catalog with complete, preview-less and image-less products
    • Unknown product id (HTTP 404)
    • Product id 500 → upstream failure (HTTP 500)
    • Product id 501 → HTTP 200 with an HTML body instead of JSON
    • Product id 502 → HTTP 200 JSON envelope without `result`
    • Order for country code "XX" → rejected (HTTP 400)
    • Order with an already used external_id → rejected (HTTP 400)
    • Missing bearer token (HTTP 401)

Endpoints:
    GET  /store/products         — Paged list of sync products.
    GET  /store/products/{id}    — Sync product with its variants.
    POST /orders                 — Creates an order.

Port:
    Default: 8002 (HTTP)
"""

import asyncio
import copy
import itertools
import logging

from fastapi import FastAPI, Header, Query
from fastapi.responses import HTMLResponse, JSONResponse

app = FastAPI(title="Mock Printful API")
log = logging.getLogger(__name__)

FAILING_PRODUCT_ID = 500
NON_JSON_PRODUCT_ID = 501
NO_RESULT_PRODUCT_ID = 502
REJECTED_COUNTRY = "XX"

DEFAULT_CATALOG = {
    101: {
        "sync_product": {
            "id": 101,
            "name": "Classic Dad Hat",
            "description": "Unstructured six-panel cap.",
            "thumbnail_url": "https://files.example/101-thumb.png",
        },
        "sync_variants": [
            {
                "id": 1001,
                "name": "Classic Dad Hat / Black",
                "retail_price": "19.99",
                "files": [
                    {"type": "default", "preview_url": "https://files.example/1001-print.png"},
                    {"type": "preview", "preview_url": "https://files.example/1001-preview.png"},
                ],
            },
            {
                "id": 1002,
                "name": "Classic Dad Hat / Navy",
                "retail_price": "21.50",
                "files": [],
            },
        ],
    },
    102: {
        "sync_product": {
            "id": 102,
            "name": "Trucker Hat",
            "thumbnail_url": "https://files.example/102-thumb.png",
        },
        "sync_variants": [
            {"id": 2001, "name": "Trucker Hat / White", "retail_price": "24.00", "files": []},
        ],
    },
    103: {
        "sync_product": {"id": 103, "name": None, "thumbnail_url": None},
        "sync_variants": [
            {"id": 3001, "name": "Bucket Hat / Olive", "retail_price": "0.29"},
        ],
    },
}


class MockState:
    """In-memory state of the mock, inspected by tests."""

    def __init__(self):
        self.catalog = copy.deepcopy(DEFAULT_CATALOG)
        self.orders = []
        self.order_ids = itertools.count(9000)
        self.detail_delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self.fail_list = False


state = MockState()


def reset(catalog=None):
    """Restores the default catalog (or the given one) and forgets all orders."""
    global state
    state = MockState()
    if catalog is not None:
        state.catalog = copy.deepcopy(catalog)
    return state


def _error(status_code: int, message: str):
    return JSONResponse(
        status_code=status_code,
        content={"code": status_code, "result": message, "error": {"reason": "Error", "message": message}},
    )


def _authorized(authorization):
    return bool(authorization) and authorization.startswith("Bearer ") and len(authorization) > 7


@app.get("/store/products")
def list_products(
        offset: int = Query(0, ge=0),
        limit: int = Query(20, ge=1, le=100),
        authorization: str = Header(None),
):
    if not _authorized(authorization):
        return _error(401, "Unauthorized")
    if state.fail_list:
        return _error(500, "Internal error")

    products = [
        {
            "id": entry["sync_product"]["id"],
            "name": entry["sync_product"].get("name"),
            "thumbnail_url": entry["sync_product"].get("thumbnail_url"),
            "variants": len(entry["sync_variants"]),
        }
        for entry in state.catalog.values()
    ]
    return {
        "code": 200,
        "result": products[offset:offset + limit],
        "paging": {"total": len(products), "offset": offset, "limit": limit},
    }


@app.get("/store/products/{product_id}")
async def get_product(product_id: int, authorization: str = Header(None)):
    if not _authorized(authorization):
        return _error(401, "Unauthorized")

    state.in_flight += 1
    state.max_in_flight = max(state.max_in_flight, state.in_flight)
    try:
        if state.detail_delay:
            await asyncio.sleep(state.detail_delay)
    finally:
        state.in_flight -= 1

    if product_id == NON_JSON_PRODUCT_ID:
        return HTMLResponse("<html><body>Maintenance</body></html>")
    if product_id == NO_RESULT_PRODUCT_ID:
        return {"code": 200}
    if product_id == FAILING_PRODUCT_ID:
        return _error(500, "Internal error")
    entry = state.catalog.get(product_id)
    if entry is None:
        return _error(404, "Not Found")
    return {"code": 200, "result": entry}


@app.post("/orders")
def create_order(order: dict, confirm: bool = Query(False), authorization: str = Header(None)):
    """
    Simulates order creation.

    Outcomes:
        - Recipient country "XX" → HTTP 400 (unsupported destination)
        - external_id already used → HTTP 400
        - Otherwise → HTTP 200 with status "pending" (confirmed) or "draft"
    """
    if not _authorized(authorization):
        return _error(401, "Unauthorized")

    recipient = order.get("recipient") or {}
    if recipient.get("country_code") == REJECTED_COUNTRY:
        return _error(400, "Recipient country is not supported")

    external_id = order.get("external_id")
    if external_id and any(o["external_id"] == external_id for o in state.orders):
        return _error(400, f"Order with External ID {external_id} already exists")

    created = dict(order, id=next(state.order_ids), status="pending" if confirm else "draft")
    state.orders.append(created)
    log.info(f"[Mock Printful] Order {created['id']} created ({created['status']}).")
    return {"code": 200, "result": created}
