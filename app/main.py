import json
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.collaborators import build_collaborators
from app.config import Settings, get_settings, settings
from app.delivery import DeliveryService
from app.dependencies import (
    get_delivery_service,
    get_message_service,
    get_premium_service,
    get_purchase_service,
    get_store,
)
from app.errors import AppError, ForbiddenError, NotFoundError, ValidationError
from app.generation import MessageService
from app.logging_utils import RequestLoggingMiddleware, log_request_data, setup_logging
from app.metrics import get_metrics, get_metrics_content_type
from app.premium import PremiumService
from app.purchases import CompletionSource, PurchaseService
from app.schemas import (
    CardImageRequest,
    CardImageResponse,
    CompletePurchaseRequest,
    ErrorResponse,
    GenerateMessageRequest,
    GenerateMessageResponse,
    HealthResponse,
    MessageDetailResponse,
    PaymentIntentRequest,
    PaymentIntentResponse,
    PremiumMessageResponse,
    PremiumMessagesRequest,
    PremiumMessagesResponse,
    PurchaseDetail,
    PurchaseDetailsResponse,
    PurchaseRequest,
    PurchaseResponse,
    SendMessageResponse,
    WebhookAck,
)
from app.storage import Store, check_db_health, init_db
from app.utils import verify_stripe_signature


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: create tables, build provider clients (fails fast on bad config)
    - Shutdown: close provider clients
    """
    init_db()
    app.state.collaborators = build_collaborators(get_settings())
    yield
    await app.state.collaborators.aclose()


app = FastAPI(
    title="Birthday Message API",
    description="Personalized AI birthday messages with a premium upsell bundle",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    404: {"model": ErrorResponse, "description": "Not found"},
    500: {"model": ErrorResponse, "description": "Generation or storage failure"},
}


# =============================================================================
# Error Handlers
# =============================================================================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    log_request_data(request, error=type(exc).__name__)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    logger.info(f"Request validation failed: {errors}")
    detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    log_request_data(request, error="ValidationError")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": detail})


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(
    response: Response,
    settings: Settings = Depends(get_settings),
) -> HealthResponse:
    """
    Readiness probe - returns 200 only if:
    1. DB is reachable and schema is applied
    2. Stripe credentials are set when PAYMENT_MODE=stripe

    Otherwise returns 503 (Service Unavailable).
    """
    if settings.PAYMENT_MODE == "stripe" and not settings.stripe_configured:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason="Stripe credentials not configured")

    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Message Routes
# =============================================================================

def message_detail(message) -> MessageDetailResponse:
    return MessageDetailResponse(
        id=message.id,
        content=message.content,
        image_url=message.image_url,
        recipient_name=message.recipient_name,
        relationship_role=message.relationship_role,
    )


@app.post(
    "/api/generate-message",
    response_model=GenerateMessageResponse,
    responses=ERROR_RESPONSES,
)
async def generate_message(
    request: Request,
    data: GenerateMessageRequest,
    service: MessageService = Depends(get_message_service),
) -> GenerateMessageResponse:
    """
    Generate and store a free birthday message for the described recipient.

    A provider failure still returns a (fallback) message; an image is only
    attached when generation succeeds.
    """
    logger.info(f"Generating message for relationship={data.relationship_role!r}")
    message = await service.create_message(data)
    log_request_data(request, message_id=message.id)
    return GenerateMessageResponse(
        id=message.id,
        content=message.content,
        image_url=message.image_url,
    )


@app.get(
    "/api/messages/{message_id}",
    response_model=MessageDetailResponse,
    responses=ERROR_RESPONSES,
)
async def get_message(
    message_id: int,
    store: Store = Depends(get_store),
) -> MessageDetailResponse:
    message = store.get_message(message_id)
    if message is None:
        raise NotFoundError("Message not found")
    return message_detail(message)


@app.post(
    "/api/messages/{message_id}/send",
    response_model=SendMessageResponse,
    responses={**ERROR_RESPONSES, 502: {"model": ErrorResponse}},
)
async def send_message(
    request: Request,
    message_id: int,
    service: DeliveryService = Depends(get_delivery_service),
) -> SendMessageResponse:
    """Deliver a stored message to its recipient by email and/or SMS."""
    log_request_data(request, message_id=message_id)
    channels = await service.send_message(message_id)
    return SendMessageResponse(message_id=message_id, channels=channels)


@app.post(
    "/api/generate-card-image",
    response_model=CardImageResponse,
    responses=ERROR_RESPONSES,
)
async def generate_card_image(
    data: CardImageRequest,
    service: MessageService = Depends(get_message_service),
) -> CardImageResponse:
    image_url = await service.generate_card_image(data.prompt)
    return CardImageResponse(image_url=image_url)


# =============================================================================
# Purchase Routes
# =============================================================================

@app.post(
    "/api/create-purchase",
    response_model=PurchaseResponse,
    responses=ERROR_RESPONSES,
)
async def create_purchase(
    request: Request,
    data: PurchaseRequest,
    service: PurchaseService = Depends(get_purchase_service),
) -> PurchaseResponse:
    """Create a pending purchase of the premium bundle for a message."""
    purchase = service.create_purchase(data.email, data.message_id)
    log_request_data(request, message_id=data.message_id, purchase_id=purchase.id)
    return PurchaseResponse(purchase_id=purchase.id, status=purchase.status)


@app.post(
    "/api/complete-purchase",
    response_model=PurchaseResponse,
    responses={**ERROR_RESPONSES, 403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def complete_purchase(
    request: Request,
    data: CompletePurchaseRequest,
    service: PurchaseService = Depends(get_purchase_service),
    settings: Settings = Depends(get_settings),
) -> PurchaseResponse:
    """
    Complete a purchase without a payment processor.

    Serves the test bypass and the simulated checkout; only available when
    PAYMENT_MODE=simulate. With Stripe, completion arrives via the webhook.
    """
    log_request_data(request, purchase_id=data.purchase_id)
    if settings.PAYMENT_MODE != "simulate":
        raise ForbiddenError("Purchases are completed by the payment provider")

    source = CompletionSource.TEST if data.source == "test" else CompletionSource.SIMULATED
    purchase = service.mark_completed(data.purchase_id, source)
    return PurchaseResponse(purchase_id=purchase.id, status=purchase.status)


@app.post(
    "/api/create-payment-intent",
    response_model=PaymentIntentResponse,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def create_payment_intent(
    request: Request,
    data: PaymentIntentRequest,
    service: PurchaseService = Depends(get_purchase_service),
) -> PaymentIntentResponse:
    """Start a charge for the premium bundle; the client confirms it with the secret."""
    log_request_data(request, purchase_id=data.purchase_id)
    intent = await service.create_payment_intent(data.purchase_id)
    return PaymentIntentResponse(
        client_secret=intent["client_secret"],
        payment_intent_id=intent["id"],
        amount=intent["amount"],
        currency=intent["currency"],
    )


@app.post("/api/webhook/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    service: PurchaseService = Depends(get_purchase_service),
    settings: Settings = Depends(get_settings),
) -> WebhookAck:
    """
    Receive payment events from Stripe.

    - Verifies the Stripe-Signature header against STRIPE_WEBHOOK_SECRET
    - payment_intent.succeeded completes the purchase named in the metadata
    - payment_intent.payment_failed fails it
    - Other events and unknown purchases are acknowledged and ignored
    """
    if not settings.STRIPE_WEBHOOK_SECRET:
        raise ForbiddenError("Payment webhooks are not configured")

    raw_body = await request.body()
    if not verify_stripe_signature(
        raw_body, request.headers.get("Stripe-Signature"), settings.STRIPE_WEBHOOK_SECRET
    ):
        log_request_data(request, result="invalid_signature")
        raise ValidationError("invalid signature")

    try:
        event = json.loads(raw_body)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid webhook JSON: {e}")
        raise ValidationError("Invalid JSON")
    if not isinstance(event, dict):
        raise ValidationError("Invalid event")

    result = service.handle_payment_event(event)
    log_request_data(request, event_type=event.get("type"), result=result)
    return WebhookAck(received=True)


@app.post(
    "/api/generate-premium-messages",
    response_model=PremiumMessagesResponse,
    responses={**ERROR_RESPONSES, 402: {"model": ErrorResponse}},
)
async def generate_premium_messages(
    request: Request,
    data: PremiumMessagesRequest,
    service: PremiumService = Depends(get_premium_service),
) -> PremiumMessagesResponse:
    """
    Expand a completed purchase into its premium messages.

    Safe to call repeatedly: later calls return the stored batch.
    """
    log_request_data(request, message_id=data.message_id, purchase_id=data.purchase_id)
    batch = await service.expand(data.message_id, data.purchase_id)
    return PremiumMessagesResponse(
        messages=[
            PremiumMessageResponse(id=row.id, content=row.content, order_index=row.order_index)
            for row in batch
        ]
    )


@app.get(
    "/api/purchase/{purchase_id}",
    response_model=PurchaseDetailsResponse,
    responses=ERROR_RESPONSES,
)
async def get_purchase(
    purchase_id: int,
    store: Store = Depends(get_store),
) -> PurchaseDetailsResponse:
    """Purchase details with premium messages ordered by orderIndex."""
    purchase = store.get_purchase(purchase_id)
    if purchase is None:
        raise NotFoundError("Purchase not found")

    premium_messages = store.get_premium_messages(purchase_id)
    original = None
    if purchase.original_message_id is not None:
        original = store.get_message(purchase.original_message_id)

    return PurchaseDetailsResponse(
        purchase=PurchaseDetail(
            id=purchase.id,
            email=purchase.email,
            status=purchase.status,
            original_message_id=purchase.original_message_id,
        ),
        premium_messages=[
            PremiumMessageResponse(id=row.id, content=row.content, order_index=row.order_index)
            for row in sorted(premium_messages, key=lambda row: row.order_index)
        ],
        original_message=message_detail(original) if original is not None else None,
    )


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
