"""
Tests for POST /api/generate-premium-messages.

Tests cover:
- Expansion after completion (five ordered, distinct messages)
- Idempotency across repeated calls
- Authorization (purchase must be completed and match the message)
- Degraded provider output
- Bundle email to the buyer
"""

from app.models import PremiumMessage
from app.storage import SessionLocal


def count_premium(purchase_id: int) -> int:
    with SessionLocal() as db:
        return db.query(PremiumMessage).filter(PremiumMessage.purchase_id == purchase_id).count()


def complete(client, purchase_id: int) -> None:
    response = client.post("/api/complete-purchase", json={"purchaseId": purchase_id})
    assert response.status_code == 200


def expand(client, message_id: int, purchase_id: int):
    return client.post(
        "/api/generate-premium-messages",
        json={"messageId": message_id, "purchaseId": purchase_id},
    )


class TestExpansion:
    def test_expand_after_completion(self, client, message_id, purchase_id):
        complete(client, purchase_id)

        response = expand(client, message_id, purchase_id)

        assert response.status_code == 200
        messages = response.json()["messages"]
        assert [m["orderIndex"] for m in messages] == [1, 2, 3, 4, 5]

        details = client.get(f"/api/purchase/{purchase_id}").json()
        premium = details["premiumMessages"]
        assert len(premium) == 5
        assert [m["orderIndex"] for m in premium] == [1, 2, 3, 4, 5]
        contents = [m["content"] for m in premium]
        assert all(contents)
        assert len(set(contents)) == 5
        assert not any(content[0].isdigit() for content in contents)

    def test_expand_twice_returns_same_batch(self, client, generator, message_id, purchase_id):
        complete(client, purchase_id)

        first = expand(client, message_id, purchase_id)
        second = expand(client, message_id, purchase_id)

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json() == first.json()
        assert count_premium(purchase_id) == 5
        assert len(generator.premium_calls) == 1

    def test_prompt_asks_for_five_tones(self, client, generator, message_id, purchase_id):
        complete(client, purchase_id)

        expand(client, message_id, purchase_id)

        system_prompt, user_prompt, _ = generator.premium_calls[0]
        assert "5 different premium birthday messages" in system_prompt
        assert "heartfelt, funny, inspirational, warm, celebratory" in system_prompt
        assert "Sam" in user_prompt

    def test_bundle_emailed_once(self, client, email_sender, message_id, purchase_id):
        complete(client, purchase_id)

        expand(client, message_id, purchase_id)
        expand(client, message_id, purchase_id)

        assert len(email_sender.sent) == 1
        assert email_sender.sent[0]["to"] == "a@b.com"
        assert "<ol>" in email_sender.sent[0]["html"]

    def test_email_failure_does_not_fail_expansion(self, client, email_sender, message_id, purchase_id):
        complete(client, purchase_id)
        email_sender.fail = True

        response = expand(client, message_id, purchase_id)

        assert response.status_code == 200
        assert count_premium(purchase_id) == 5


class TestExpansionAuthorization:
    def test_pending_purchase_rejected(self, client, generator, message_id, purchase_id):
        response = expand(client, message_id, purchase_id)

        assert response.status_code == 402
        assert count_premium(purchase_id) == 0
        assert generator.premium_calls == []

    def test_unknown_message(self, client, purchase_id):
        complete(client, purchase_id)

        response = expand(client, 999, purchase_id)

        assert response.status_code == 404

    def test_unknown_purchase(self, client, message_id):
        response = expand(client, message_id, 999)

        assert response.status_code == 404

    def test_purchase_for_other_message(self, client, recipient_body, message_id, purchase_id):
        complete(client, purchase_id)
        other_id = client.post("/api/generate-message", json=recipient_body).json()["id"]

        response = expand(client, other_id, purchase_id)

        assert response.status_code == 400
        assert count_premium(purchase_id) == 0

    def test_missing_ids(self, client):
        response = client.post("/api/generate-premium-messages", json={"messageId": 1})

        assert response.status_code == 400


class TestDegradedGeneration:
    def test_partial_numbering_is_not_padded(self, client, generator, message_id, purchase_id):
        generator.premium_text = (
            "1. First message\n"
            "2. Second message\n"
            "3. Third message\n"
            "A fourth without a number\n"
            "- and a fifth bullet"
        )
        complete(client, purchase_id)

        response = expand(client, message_id, purchase_id)

        assert response.status_code == 200
        messages = response.json()["messages"]
        assert 0 < len(messages) <= 5
        assert [m["orderIndex"] for m in messages] == list(range(1, len(messages) + 1))
        assert messages[0]["content"] == "First message"
        assert count_premium(purchase_id) == len(messages)

    def test_unparseable_response_is_an_error(self, client, generator, message_id, purchase_id):
        generator.premium_text = "   "
        complete(client, purchase_id)

        response = expand(client, message_id, purchase_id)

        assert response.status_code == 500
        assert count_premium(purchase_id) == 0

    def test_provider_failure(self, client, generator, message_id, purchase_id):
        complete(client, purchase_id)
        generator.fail_text = True

        response = expand(client, message_id, purchase_id)

        assert response.status_code == 500
        assert response.json() == {"detail": "Failed to generate messages. Please try again."}
        assert count_premium(purchase_id) == 0

    def test_retry_after_failure(self, client, generator, message_id, purchase_id):
        complete(client, purchase_id)
        generator.fail_text = True
        expand(client, message_id, purchase_id)
        generator.fail_text = False

        response = expand(client, message_id, purchase_id)

        assert response.status_code == 200
        assert len(response.json()["messages"]) == 5
