"""
Clients for the external providers the services talk to.

- Text and image generation: OpenAI (AsyncOpenAI client)
- Payments: Stripe PaymentIntents over its HTTP API
- Email: SendGrid v3 mail/send
- SMS: Twilio Messages

Every client is built once at startup by build_collaborators() and handed to
the services; nothing here is constructed lazily on first use. Provider error
bodies are logged and then wrapped in the application's error types.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx
from openai import AsyncOpenAI, OpenAIError

from app.config import Settings
from app.errors import ConfigurationError, DeliveryError, GenerationError, PaymentError

logger = logging.getLogger(__name__)


# =============================================================================
# Interfaces
# =============================================================================

class TextGenerator(Protocol):
    async def generate_text(
        self, system_prompt: str, user_prompt: str, max_tokens: int
    ) -> str: ...


class ImageGenerator(Protocol):
    async def generate_image(self, prompt: str) -> Optional[str]: ...


class PaymentGateway(Protocol):
    async def create_payment_intent(
        self, amount: int, currency: str, purchase_id: int, email: str
    ) -> dict: ...


class EmailSender(Protocol):
    async def send_email(self, to: str, subject: str, html: str) -> None: ...


class SmsSender(Protocol):
    async def send_sms(self, to: str, body: str) -> None: ...


# =============================================================================
# OpenAI
# =============================================================================

class OpenAIGenerator:
    """Text and image generation through the OpenAI API."""

    def __init__(
        self,
        client: AsyncOpenAI,
        text_model: str = "gpt-4o",
        image_model: str = "dall-e-3",
        temperature: float = 0.9,
    ):
        self.client = client
        self.text_model = text_model
        self.image_model = image_model
        self.temperature = temperature

    async def generate_text(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.text_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=max_tokens,
                temperature=self.temperature,
            )
        except OpenAIError as e:
            logger.error(f"Text generation request failed: {e}")
            raise GenerationError()

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            logger.error("Text generation returned no content")
            raise GenerationError()
        return content.strip()

    async def generate_image(self, prompt: str) -> Optional[str]:
        try:
            response = await self.client.images.generate(
                model=self.image_model,
                prompt=prompt,
                n=1,
                size="1024x1024",
                quality="standard",
            )
        except OpenAIError as e:
            logger.error(f"Image generation request failed: {e}")
            raise GenerationError("Failed to generate image. Please try again.")

        if not response.data:
            return None
        return response.data[0].url or None

    async def aclose(self) -> None:
        await self.client.close()


# =============================================================================
# Stripe
# =============================================================================

class StripePaymentGateway:
    """Creates PaymentIntents tagged with the purchase id in metadata."""

    def __init__(self, http: httpx.AsyncClient, secret_key: str, api_base: str):
        self.http = http
        self.secret_key = secret_key
        self.api_base = api_base.rstrip("/")

    async def create_payment_intent(
        self, amount: int, currency: str, purchase_id: int, email: str
    ) -> dict:
        data = {
            "amount": str(amount),
            "currency": currency,
            "receipt_email": email,
            "metadata[purchase_id]": str(purchase_id),
            "automatic_payment_methods[enabled]": "true",
        }
        try:
            response = await self.http.post(
                f"{self.api_base}/payment_intents",
                data=data,
                auth=(self.secret_key, ""),
                headers={"Idempotency-Key": f"purchase-{purchase_id}"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Stripe rejected payment intent for purchase {purchase_id}: "
                f"{e.response.status_code} {e.response.text}"
            )
            raise PaymentError()
        except httpx.HTTPError as e:
            logger.error(f"Stripe request failed for purchase {purchase_id}: {e}")
            raise PaymentError()

        intent = response.json()
        logger.info(f"Payment intent created: {intent.get('id')} for purchase {purchase_id}")
        return intent


class SimulatedPaymentGateway:
    """Stand-in used when PAYMENT_MODE=simulate; nothing leaves the process."""

    async def create_payment_intent(
        self, amount: int, currency: str, purchase_id: int, email: str
    ) -> dict:
        intent_id = f"pi_simulated_{purchase_id}"
        return {
            "id": intent_id,
            "client_secret": f"{intent_id}_secret_simulated",
            "amount": amount,
            "currency": currency,
            "metadata": {"purchase_id": str(purchase_id)},
        }


# =============================================================================
# Email / SMS
# =============================================================================

class SendGridEmailSender:
    def __init__(self, http: httpx.AsyncClient, api_key: str, from_address: str, api_base: str):
        self.http = http
        self.api_key = api_key
        self.from_address = from_address
        self.api_base = api_base.rstrip("/")

    async def send_email(self, to: str, subject: str, html: str) -> None:
        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.from_address},
            "subject": subject,
            "content": [{"type": "text/html", "value": html}],
        }
        try:
            response = await self.http.post(
                f"{self.api_base}/mail/send",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"SendGrid rejected email: {e.response.status_code} {e.response.text}")
            raise DeliveryError()
        except httpx.HTTPError as e:
            logger.error(f"SendGrid request failed: {e}")
            raise DeliveryError()


class TwilioSmsSender:
    def __init__(
        self,
        http: httpx.AsyncClient,
        account_sid: str,
        auth_token: str,
        from_number: str,
        api_base: str,
    ):
        self.http = http
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.api_base = api_base.rstrip("/")

    async def send_sms(self, to: str, body: str) -> None:
        try:
            response = await self.http.post(
                f"{self.api_base}/Accounts/{self.account_sid}/Messages.json",
                data={"To": to, "From": self.from_number, "Body": body},
                auth=(self.account_sid, self.auth_token),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Twilio rejected SMS: {e.response.status_code} {e.response.text}")
            raise DeliveryError()
        except httpx.HTTPError as e:
            logger.error(f"Twilio request failed: {e}")
            raise DeliveryError()


# =============================================================================
# Wiring
# =============================================================================

@dataclass
class Collaborators:
    text: TextGenerator
    image: ImageGenerator
    payments: PaymentGateway
    email: Optional[EmailSender] = None
    sms: Optional[SmsSender] = None
    http: Optional[httpx.AsyncClient] = None

    async def aclose(self) -> None:
        if self.http is not None:
            await self.http.aclose()
        close = getattr(self.text, "aclose", None)
        if close is not None:
            await close()


def build_collaborators(settings: Settings) -> Collaborators:
    """
    Build every provider client from settings.

    Raises:
        ConfigurationError: configuration is incomplete for the selected mode
    """
    if settings.PAYMENT_MODE == "stripe" and not settings.stripe_configured:
        raise ConfigurationError(
            "PAYMENT_MODE=stripe requires STRIPE_SECRET_KEY and STRIPE_WEBHOOK_SECRET"
        )

    openai_client = AsyncOpenAI(
        api_key=settings.OPENAI_API_KEY,
        timeout=settings.OPENAI_TIMEOUT_SECONDS,
    )
    generator = OpenAIGenerator(
        openai_client,
        text_model=settings.OPENAI_TEXT_MODEL,
        image_model=settings.OPENAI_IMAGE_MODEL,
    )

    http = httpx.AsyncClient(timeout=settings.COLLABORATOR_TIMEOUT_SECONDS)

    if settings.PAYMENT_MODE == "stripe":
        payments = StripePaymentGateway(http, settings.STRIPE_SECRET_KEY, settings.STRIPE_API_BASE)
    else:
        payments = SimulatedPaymentGateway()

    email = None
    if settings.SENDGRID_API_KEY:
        email = SendGridEmailSender(
            http, settings.SENDGRID_API_KEY, settings.EMAIL_FROM_ADDRESS, settings.SENDGRID_API_BASE
        )
    else:
        logger.warning("SENDGRID_API_KEY not set, email delivery disabled")

    sms = None
    if settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN and settings.TWILIO_FROM_NUMBER:
        sms = TwilioSmsSender(
            http,
            settings.TWILIO_ACCOUNT_SID,
            settings.TWILIO_AUTH_TOKEN,
            settings.TWILIO_FROM_NUMBER,
            settings.TWILIO_API_BASE,
        )
    else:
        logger.warning("Twilio credentials not set, SMS delivery disabled")

    logger.info(f"Collaborators ready: payment_mode={settings.PAYMENT_MODE}")
    return Collaborators(
        text=generator,
        image=generator,
        payments=payments,
        email=email,
        sms=sms,
        http=http,
    )
