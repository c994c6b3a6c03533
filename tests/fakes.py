"""In-process stand-ins for the external providers."""

import asyncio

from app.errors import DeliveryError, GenerationError
from app.prompts import PREMIUM_MESSAGES_MAX_TOKENS

FREE_TEXT = "Happy birthday Sam! ☕ May your coffee be strong and your sarcasm stronger."

PREMIUM_TEXT = """Here are your messages:
1. Sam, you make every day brighter. Happy birthday! 💛
2. Another year older and still the funniest person I know. 😂
3. Dream big this year, Sam, the world is ready for you. 🌟
4. Sending the warmest hugs and the strongest espresso. ☕
5. Let's celebrate you today and every day! 🎉"""

IMAGE_URL = "https://images.example.com/birthday.png"


class FakeGenerator:
    """Text and image generator with scripted responses."""

    def __init__(self, free_text=FREE_TEXT, premium_text=PREMIUM_TEXT, image_url=IMAGE_URL):
        self.free_text = free_text
        self.premium_text = premium_text
        self.image_url = image_url
        self.fail_text = False
        self.fail_image = False
        self.text_calls = []
        self.image_calls = []

    async def generate_text(self, system_prompt, user_prompt, max_tokens):
        self.text_calls.append((system_prompt, user_prompt, max_tokens))
        # Yield like a real network call so concurrent callers interleave
        await asyncio.sleep(0)
        if self.fail_text:
            raise GenerationError()
        if max_tokens == PREMIUM_MESSAGES_MAX_TOKENS:
            return self.premium_text
        return self.free_text

    async def generate_image(self, prompt):
        self.image_calls.append(prompt)
        if self.fail_image:
            raise GenerationError("Failed to generate image. Please try again.")
        return self.image_url

    @property
    def premium_calls(self):
        return [call for call in self.text_calls if call[2] == PREMIUM_MESSAGES_MAX_TOKENS]


class FakeEmailSender:
    def __init__(self):
        self.sent = []
        self.fail = False

    async def send_email(self, to, subject, html):
        if self.fail:
            raise DeliveryError()
        self.sent.append({"to": to, "subject": subject, "html": html})


class FakeSmsSender:
    def __init__(self):
        self.sent = []
        self.fail = False

    async def send_sms(self, to, body):
        if self.fail:
            raise DeliveryError()
        self.sent.append({"to": to, "body": body})


class FakePaymentGateway:
    def __init__(self):
        self.intents = []

    async def create_payment_intent(self, amount, currency, purchase_id, email):
        intent = {
            "id": f"pi_test_{purchase_id}",
            "client_secret": f"pi_test_{purchase_id}_secret",
            "amount": amount,
            "currency": currency,
            "metadata": {"purchase_id": str(purchase_id)},
        }
        self.intents.append(intent)
        return intent
