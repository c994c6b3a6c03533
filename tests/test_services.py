"""
Service-level tests against the in-memory store.

Tests cover:
- MessageService persistence and fallbacks
- PurchaseService state transitions
- PremiumService idempotency, including concurrent expansion
"""

import asyncio

import pytest

from app.errors import (
    ConflictError,
    GenerationError,
    NotFoundError,
    PaymentRequiredError,
    ValidationError,
)
from app.generation import MessageService
from app.premium import PremiumService
from app.purchases import CompletionSource, PurchaseService
from app.schemas import GenerateMessageRequest

from fakes import FREE_TEXT, FakeGenerator, FakePaymentGateway


def request(**overrides) -> GenerateMessageRequest:
    data = {
        "recipientName": "Sam",
        "relationshipRole": "friend",
        "personality": "sarcastic, loves coffee",
    }
    data.update(overrides)
    return GenerateMessageRequest.model_validate(data)


@pytest.fixture
def message_service(memory_store, generator):
    return MessageService(memory_store, generator, generator)


@pytest.fixture
def purchase_service(memory_store):
    return PurchaseService(memory_store, FakePaymentGateway())


@pytest.fixture
def premium_service(memory_store, generator, email_sender):
    return PremiumService(memory_store, generator, email_sender)


@pytest.fixture
def completed_purchase(memory_store, message_service, purchase_service):
    message = asyncio.run(message_service.create_message(request()))
    purchase = purchase_service.create_purchase("a@b.com", message.id)
    purchase_service.mark_completed(purchase.id, CompletionSource.TEST)
    return message, purchase


class TestMessageService:
    def test_create_message_persists_once(self, memory_store, message_service):
        message = asyncio.run(message_service.create_message(request(quirks="collects mugs")))

        assert memory_store.get_message(message.id) is message
        assert len(memory_store.messages) == 1
        assert message.content == FREE_TEXT
        assert message.quirks == "collects mugs"
        assert message.delivery_method == "email"

    def test_images_disabled(self, memory_store, generator):
        service = MessageService(memory_store, generator, generator, images_enabled=False)

        message = asyncio.run(service.create_message(request()))

        assert message.image_url is None
        assert generator.image_calls == []

    def test_generate_text_rejects_blank_output(self, memory_store):
        service = MessageService(memory_store, FakeGenerator(free_text="  "), FakeGenerator())

        with pytest.raises(GenerationError):
            asyncio.run(service.generate_text(request()))

    def test_blank_output_falls_back(self, memory_store):
        blank = FakeGenerator(free_text="")
        service = MessageService(memory_store, blank, blank)

        message = asyncio.run(service.create_message(request()))

        assert message.content.startswith("Happy Birthday Sam!")


class TestPurchaseService:
    def test_new_purchase_is_pending(self, memory_store, message_service, purchase_service):
        message = asyncio.run(message_service.create_message(request()))

        purchase = purchase_service.create_purchase("a@b.com", message.id)

        assert purchase.status == "pending"
        assert purchase.original_message_id == message.id

    @pytest.mark.parametrize(
        "email,message_id",
        [("", 1), ("@", 1), ("a@b", 1), ("a @b.com", 1), ("a@b.com", 0), ("a@b.com", True)],
    )
    def test_invalid_input(self, purchase_service, email, message_id):
        with pytest.raises(ValidationError):
            purchase_service.create_purchase(email, message_id)

    def test_unknown_message(self, purchase_service):
        with pytest.raises(NotFoundError):
            purchase_service.create_purchase("a@b.com", 7)

    def test_complete_is_idempotent(self, completed_purchase, purchase_service):
        _, purchase = completed_purchase

        again = purchase_service.mark_completed(purchase.id, CompletionSource.PAYMENT_WEBHOOK)

        assert again.status == "completed"

    def test_failed_cannot_be_completed_by_bypass(self, memory_store, message_service, purchase_service):
        message = asyncio.run(message_service.create_message(request()))
        purchase = purchase_service.create_purchase("a@b.com", message.id)
        purchase_service.mark_failed(purchase.id, CompletionSource.PAYMENT_WEBHOOK)

        with pytest.raises(ConflictError):
            purchase_service.mark_completed(purchase.id, CompletionSource.SIMULATED)

    def test_failed_can_be_completed_by_provider(self, memory_store, message_service, purchase_service):
        message = asyncio.run(message_service.create_message(request()))
        purchase = purchase_service.create_purchase("a@b.com", message.id)
        purchase_service.mark_failed(purchase.id, CompletionSource.PAYMENT_WEBHOOK)

        updated = purchase_service.mark_completed(purchase.id, CompletionSource.PAYMENT_WEBHOOK)

        assert updated.status == "completed"

    def test_completed_cannot_fail(self, completed_purchase, purchase_service):
        _, purchase = completed_purchase

        with pytest.raises(ConflictError):
            purchase_service.mark_failed(purchase.id, CompletionSource.PAYMENT_WEBHOOK)

    def test_unknown_purchase(self, purchase_service):
        with pytest.raises(NotFoundError):
            purchase_service.mark_completed(5, CompletionSource.TEST)

    def test_payment_intent_tagged_with_purchase(self, memory_store, message_service):
        gateway = FakePaymentGateway()
        service = PurchaseService(memory_store, gateway, price_cents=499, currency="eur")
        message = asyncio.run(message_service.create_message(request()))
        purchase = service.create_purchase("a@b.com", message.id)

        intent = asyncio.run(service.create_payment_intent(purchase.id))

        assert intent["amount"] == 499
        assert intent["currency"] == "eur"
        assert intent["metadata"] == {"purchase_id": str(purchase.id)}
        assert memory_store.get_purchase_by_payment_intent(intent["id"]) is purchase


class TestPremiumService:
    def test_expand_creates_ordered_batch(self, completed_purchase, premium_service, memory_store):
        message, purchase = completed_purchase

        batch = asyncio.run(premium_service.expand(message.id, purchase.id))

        assert [row.order_index for row in batch] == [1, 2, 3, 4, 5]
        assert len(memory_store.premium_messages) == 5

    def test_sequential_calls_do_not_duplicate(self, completed_purchase, premium_service, memory_store, generator):
        message, purchase = completed_purchase

        first = asyncio.run(premium_service.expand(message.id, purchase.id))
        second = asyncio.run(premium_service.expand(message.id, purchase.id))

        assert [row.id for row in second] == [row.id for row in first]
        assert len(memory_store.premium_messages) == 5
        assert len(generator.premium_calls) == 1

    def test_concurrent_calls_do_not_duplicate(self, completed_purchase, premium_service, memory_store, email_sender):
        message, purchase = completed_purchase

        async def run_both():
            return await asyncio.gather(
                premium_service.expand(message.id, purchase.id),
                premium_service.expand(message.id, purchase.id),
            )

        first, second = asyncio.run(run_both())

        assert [row.id for row in first] == [row.id for row in second]
        assert len(memory_store.premium_messages) == 5
        assert len(email_sender.sent) == 1

    def test_pending_purchase_refused(self, memory_store, message_service, purchase_service, premium_service):
        message = asyncio.run(message_service.create_message(request()))
        purchase = purchase_service.create_purchase("a@b.com", message.id)

        with pytest.raises(PaymentRequiredError):
            asyncio.run(premium_service.expand(message.id, purchase.id))
        assert memory_store.premium_messages == {}

    def test_unknown_message(self, completed_purchase, premium_service):
        _, purchase = completed_purchase

        with pytest.raises(NotFoundError):
            asyncio.run(premium_service.expand(999, purchase.id))

    def test_no_email_sender(self, completed_purchase, memory_store, generator):
        message, purchase = completed_purchase
        service = PremiumService(memory_store, generator)

        batch = asyncio.run(service.expand(message.id, purchase.id))

        assert len(batch) == 5
