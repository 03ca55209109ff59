"""
main.py — FastAPI Entry Point for the Storefront Service

This module provides the REST API between the storefront (browser), Stripe and Printful.

Responsibilities:
    • Serve the Printful catalog to the storefront
    • Create Stripe checkout sessions for the customer's cart
    • Accept signed Stripe webhooks and forward paid orders to Printful
    • Provide system health information

Routing table:
    `api_router`      JSON endpoints; bodies are parsed and validated by FastAPI.
    `webhook_router`  POST /webhook only; reads the raw request body itself so the
                      Stripe signature is checked against the unmodified bytes.

Run with `storefront-service`, or `uvicorn storefront_service.main:create_app --factory`.
"""

import contextlib

from fastapi import APIRouter, Depends, FastAPI, Path, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from .catalog import get_product, list_products
from .checkout import CheckoutError, create_checkout_session
from .clients import PrintfulApiError, PrintfulClient, StripeGateway, WebhookVerificationError
from .config import Settings, load_settings
from .logging_config import get_logger, setup_logging
from .models import CheckoutRequest, CheckoutSessionResponse, ProductDetail, ProductListResponse
from .workflow import FulfillmentSubmissionError, process_webhook

log = get_logger(__name__)

api_router = APIRouter()
webhook_router = APIRouter()

# Printful sync product id, or "@" + the store's external id
PRODUCT_ID_PATTERN = r"^(\d+|@[A-Za-z0-9_-]{1,32})$"


# Dependencies: everything a handler needs lives on app.state
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_printful(request: Request) -> PrintfulClient:
    return request.app.state.printful


def get_stripe(request: Request) -> StripeGateway:
    return request.app.state.stripe


# API Endpoints: Storefront → Storefront Service
@api_router.get("/", response_class=PlainTextResponse)
def banner(settings: Settings = Depends(get_settings)):
    return settings.API_BANNER


@api_router.get("/health")
def health_check():
    """
    Simple health check endpoint for monitoring systems and container orchestrators.

    Returns:
        dict: A basic JSON object indicating service availability.
    """
    return {"status": "ok"}


@api_router.get("/api/products", response_model=ProductListResponse)
async def read_products(
        settings: Settings = Depends(get_settings),
        printful: PrintfulClient = Depends(get_printful),
):
    """
    Returns the complete catalog, enriched with price and preview of each product's first variant.

    Returns:
        dict: `{"products": [...]}`, or HTTP 500 `{"error": ...}` if Printful fails.
    """
    try:
        products = await list_products(printful, settings.PRINTFUL_MAX_CONCURRENCY)
    except PrintfulApiError as e:
        log.error(f"Error fetching products from Printful: {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to fetch products."})
    return {"products": products}


@api_router.get("/api/products/{product_id}", response_model=ProductDetail)
async def read_product(
        product_id: str = Path(..., pattern=PRODUCT_ID_PATTERN),
        printful: PrintfulClient = Depends(get_printful),
):
    try:
        return await get_product(printful, product_id)
    except PrintfulApiError as e:
        log.error(f"[Product: {product_id}] Error fetching product: {e}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


@api_router.post("/api/stripe/create-checkout-session", response_model=CheckoutSessionResponse)
async def start_checkout(
        body: CheckoutRequest,
        settings: Settings = Depends(get_settings),
        gateway: StripeGateway = Depends(get_stripe),
):
    """
    Creates a Stripe checkout session for the submitted cart.

    Args:
        body (CheckoutRequest): Non-empty cart and customer email.

    Returns:
        dict: `{"id": <session id>}` for the storefront's redirect to Stripe.
            HTTP 500 `{"error", "details"}` if Stripe rejects the session.
    """
    try:
        session_id = await run_in_threadpool(create_checkout_session, body, settings, gateway)
    except CheckoutError as e:
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to create Stripe session.", "details": str(e)},
        )
    return {"id": session_id}


# Webhook Endpoint: Stripe → Storefront Service
@webhook_router.post("/webhook", response_class=PlainTextResponse)
async def stripe_webhook(request: Request):
    """
    Receives Stripe events.

    The body is read as raw bytes before anything else touches it. A completed
    checkout is forwarded to Printful before the acknowledgment is sent.

    Returns:
        200 "Webhook received!" for verified events (including ignored kinds),
        400 "Webhook Error: ..." for rejected signatures,
        500 if the order could not be forwarded (Stripe will redeliver).
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    state = request.app.state

    try:
        outcome = await process_webhook(payload, signature, state.settings, state.stripe, state.printful)
    except WebhookVerificationError as e:
        log.warning(f"Webhook signature verification failed: {e}")
        return PlainTextResponse(f"Webhook Error: {e}", status_code=400)
    except FulfillmentSubmissionError as e:
        log.error(f"Webhook processing failed, requesting redelivery: {e}")
        return PlainTextResponse("Fulfillment submission failed.", status_code=500)

    log.info(f"Webhook handled: {outcome.value}")
    return "Webhook received!"


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    log.warning(f"Rejected invalid request to {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request.", "details": jsonable_encoder(exc.errors())},
    )


def create_app(
        settings: Settings = None,
        stripe_gateway: StripeGateway = None,
        printful_client: PrintfulClient = None,
) -> FastAPI:
    """
    Builds the application.

    Settings are loaded (and validated) here, once; a missing secret stops the
    process before it accepts any request. Clients can be injected for tests.

    Args:
        settings (Settings): Preloaded settings; read from the environment if omitted.
        stripe_gateway (StripeGateway): Stripe wrapper; built from settings if omitted.
        printful_client (PrintfulClient): Printful client; built from settings if omitted.

    Returns:
        FastAPI: The configured application.
    """
    settings = settings or load_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("Storefront service starting...")
        log.info(f"Stripe secret key present: {bool(settings.STRIPE_SECRET_KEY)}")
        log.info(f"Stripe webhook secret present: {bool(settings.STRIPE_WEBHOOK_SECRET)}")
        log.info(f"Printful API key present: {bool(settings.PRINTFUL_API_KEY)}")
        yield
        await app.state.printful.aclose()
        log.info("Storefront service stopped.")

    app = FastAPI(title="Storefront Service", lifespan=lifespan)
    app.state.settings = settings
    app.state.stripe = stripe_gateway or StripeGateway(
        settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET
    )
    app.state.printful = printful_client or PrintfulClient(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    app.include_router(webhook_router)
    app.include_router(api_router)
    return app


def run():
    """Console entry point: starts uvicorn on the configured host and port."""
    import uvicorn

    settings = load_settings()
    uvicorn.run(create_app(settings), host=settings.HOST, port=settings.PORT)
