import enum
import logging

from app.collaborators import PaymentGateway
from app.errors import ConflictError, NotFoundError, ValidationError
from app.metrics import record_purchase_transition
from app.models import PurchaseStatus
from app.storage import Store
from app.utils import is_valid_email

logger = logging.getLogger(__name__)


class CompletionSource(str, enum.Enum):
    TEST = "test"
    SIMULATED = "simulated"
    PAYMENT_WEBHOOK = "payment_webhook"


class PurchaseService:
    """
    Purchase lifecycle: pending -> completed | failed.

    Both end states are terminal. Completing an already completed purchase
    is a no-op, so duplicate payment confirmations are harmless.
    """

    def __init__(
        self,
        store: Store,
        payments: PaymentGateway,
        price_cents: int = 299,
        currency: str = "usd",
    ):
        self.store = store
        self.payments = payments
        self.price_cents = price_cents
        self.currency = currency

    def create_purchase(self, email: str, message_id: int):
        """
        Raises:
            ValidationError: bad email or message id
            NotFoundError: the message does not exist
        """
        if not isinstance(email, str) or not is_valid_email(email):
            raise ValidationError("Valid email is required")
        if isinstance(message_id, bool) or not isinstance(message_id, int) or message_id <= 0:
            raise ValidationError("Valid message ID is required")
        if self.store.get_message(message_id) is None:
            raise NotFoundError("Original message not found")

        purchase = self.store.create_purchase(email=email, original_message_id=message_id)
        record_purchase_transition(PurchaseStatus.PENDING.value, "created")
        return purchase

    def get_purchase(self, purchase_id: int):
        purchase = self.store.get_purchase(purchase_id)
        if purchase is None:
            raise NotFoundError("Purchase not found")
        return purchase

    def mark_completed(self, purchase_id: int, source: CompletionSource):
        """
        Raises:
            NotFoundError: unknown purchase
            ConflictError: the purchase already failed (unless the payment
                provider itself now reports success)
        """
        purchase = self.get_purchase(purchase_id)

        if purchase.status == PurchaseStatus.COMPLETED.value:
            logger.info(f"Purchase {purchase_id} already completed (source={source.value})")
            return purchase
        if (
            purchase.status == PurchaseStatus.FAILED.value
            and source != CompletionSource.PAYMENT_WEBHOOK
        ):
            raise ConflictError("Purchase has failed and cannot be completed")

        return self._transition(purchase, PurchaseStatus.COMPLETED, source)

    def mark_failed(self, purchase_id: int, source: CompletionSource):
        purchase = self.get_purchase(purchase_id)

        if purchase.status == PurchaseStatus.FAILED.value:
            return purchase
        if purchase.status == PurchaseStatus.COMPLETED.value:
            raise ConflictError("Purchase is already completed")

        return self._transition(purchase, PurchaseStatus.FAILED, source)

    def _transition(self, purchase, status: PurchaseStatus, source: CompletionSource):
        previous = purchase.status
        updated = self.store.update_purchase_status(purchase.id, status.value)
        logger.info(
            f"Purchase {purchase.id} status {previous} -> {status.value} (source={source.value})"
        )
        record_purchase_transition(status.value, source.value)
        return updated

    async def create_payment_intent(self, purchase_id: int) -> dict:
        """
        Start a charge for the premium bundle, tagged with the purchase id.

        Raises:
            NotFoundError: unknown purchase
            ConflictError: the purchase is no longer pending
            PaymentError: the payment provider rejected the request
        """
        purchase = self.get_purchase(purchase_id)
        if purchase.status != PurchaseStatus.PENDING.value:
            raise ConflictError(f"Purchase is already {purchase.status}")

        intent = await self.payments.create_payment_intent(
            amount=self.price_cents,
            currency=self.currency,
            purchase_id=purchase.id,
            email=purchase.email,
        )
        self.store.set_payment_intent(purchase.id, intent["id"])
        return intent

    def handle_payment_event(self, event: dict) -> str:
        """
        Apply a payment provider event to the purchase it refers to.

        Returns:
            Processing result: completed, failed, ignored or unknown_purchase
        """
        event_type = event.get("type")
        data = event.get("data")
        intent = data.get("object") if isinstance(data, dict) else None
        if not isinstance(intent, dict):
            intent = {}
        if event_type not in ("payment_intent.succeeded", "payment_intent.payment_failed"):
            logger.info(f"Ignoring payment event type {event_type}")
            return "ignored"

        purchase = self._purchase_for_intent(intent)
        if purchase is None:
            logger.warning(f"Payment event {event_type} for unknown purchase (intent={intent.get('id')})")
            return "unknown_purchase"

        if event_type == "payment_intent.succeeded":
            self.mark_completed(purchase.id, CompletionSource.PAYMENT_WEBHOOK)
            return "completed"

        try:
            self.mark_failed(purchase.id, CompletionSource.PAYMENT_WEBHOOK)
        except ConflictError:
            # A failure reported after success does not revoke access
            logger.warning(f"Ignoring failure event for completed purchase {purchase.id}")
            return "ignored"
        return "failed"

    def _purchase_for_intent(self, intent: dict):
        metadata = intent.get("metadata") or {}
        raw_id = metadata.get("purchase_id")
        if raw_id is not None and str(raw_id).isdigit():
            purchase = self.store.get_purchase(int(raw_id))
            if purchase is not None:
                return purchase
        if intent.get("id"):
            return self.store.get_purchase_by_payment_intent(intent["id"])
        return None
