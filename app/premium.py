import html
import logging
import re

from app.collaborators import EmailSender, TextGenerator
from app.errors import (
    DeliveryError,
    GenerationError,
    NotFoundError,
    PaymentRequiredError,
    ValidationError,
)
from app.generation import recipient_from_message
from app.metrics import record_delivery, record_premium_expansion
from app.models import PurchaseStatus
from app.prompts import PREMIUM_MESSAGE_COUNT, PREMIUM_MESSAGES_MAX_TOKENS, build_premium_prompts
from app.storage import Store

logger = logging.getLogger(__name__)

NUMBERED_LINE = re.compile(r"^\d+\.\s*(.*)$")


def _find_marker(text: str, number: int, start: int):
    # A marker at the start of a line wins over one inside a sentence
    for pattern in (rf"(?m)^[ \t]*{number}\.", rf"(?<!\S){number}\."):
        match = re.compile(pattern).search(text, start)
        if match:
            return match.start(), match.end()
    return None


def _split_sequential(text: str, count: int) -> list[str]:
    """Split on "1.", "2.", ... in order; text before "1." is dropped."""
    segments = []
    marker = _find_marker(text, 1, 0)
    number = 1
    while marker is not None and len(segments) < count:
        following = _find_marker(text, number + 1, marker[1])
        end = following[0] if following else len(text)
        segment = text[marker[1]:end].strip()
        if segment:
            segments.append(segment)
        marker = following
        number += 1
    return segments


def parse_numbered_messages(text: str, count: int = PREMIUM_MESSAGE_COUNT) -> list[str]:
    """
    Split a numbered list ("1. ...\\n2. ...") into at most `count` messages.

    Lines starting with "N." are taken first. If that yields fewer than
    `count` entries, the text is split on sequential "1.", "2.", ...
    markers instead, and that result is used only if it recovers more.
    Unnumbered text is kept whole. Nothing is ever invented to pad the
    result.
    """
    numbered = []
    for line in text.splitlines():
        match = NUMBERED_LINE.match(line.strip())
        if match and match.group(1).strip():
            numbered.append(match.group(1).strip())
    if len(numbered) >= count:
        return numbered[:count]

    segments = _split_sequential(text, count)
    if len(segments) > len(numbered):
        return segments
    if not numbered and _find_marker(text, 1, 0) is None and text.strip():
        return [text.strip()]
    return numbered


def render_bundle_email(recipient_name: str, contents: list[str]) -> str:
    items = "".join(f"<li>{html.escape(content)}</li>" for content in contents)
    return (
        f"<h2>Your premium birthday messages for {html.escape(recipient_name)}</h2>"
        f"<ol>{items}</ol>"
        "<p>Thank you for your purchase!</p>"
    )


class PremiumService:
    """
    Expands a completed purchase into its batch of premium messages.

    A purchase owns at most one batch. Repeated or concurrent calls return
    the stored batch instead of generating again.
    """

    def __init__(
        self,
        store: Store,
        text_generator: TextGenerator,
        email_sender: EmailSender | None = None,
    ):
        self.store = store
        self.text_generator = text_generator
        self.email_sender = email_sender

    async def expand(self, message_id: int, purchase_id: int) -> list:
        """
        Returns:
            Premium messages ordered by order_index

        Raises:
            NotFoundError: unknown message or purchase
            ValidationError: the purchase belongs to a different message
            PaymentRequiredError: the purchase is not completed
            GenerationError: the provider returned nothing usable
            PersistenceError: the batch could not be stored
        """
        message = self.store.get_message(message_id)
        if message is None:
            raise NotFoundError("Original message not found")

        purchase = self.store.get_purchase(purchase_id)
        if purchase is None:
            raise NotFoundError("Purchase not found")
        if purchase.original_message_id is not None and purchase.original_message_id != message_id:
            raise ValidationError("Purchase does not belong to this message")
        if purchase.status != PurchaseStatus.COMPLETED.value:
            raise PaymentRequiredError()

        existing = self.store.get_premium_messages(purchase_id)
        if existing:
            logger.info(f"Premium messages already generated for purchase {purchase_id}")
            record_premium_expansion("existing")
            return existing

        system_prompt, user_prompt = build_premium_prompts(recipient_from_message(message))
        try:
            raw = await self.text_generator.generate_text(
                system_prompt, user_prompt, PREMIUM_MESSAGES_MAX_TOKENS
            )
        except GenerationError:
            record_premium_expansion("error")
            raise

        contents = parse_numbered_messages(raw or "")
        if not contents:
            logger.error(f"No premium messages could be parsed for purchase {purchase_id}")
            record_premium_expansion("error")
            raise GenerationError()
        if len(contents) < PREMIUM_MESSAGE_COUNT:
            logger.warning(
                f"Recovered only {len(contents)} premium messages for purchase {purchase_id}"
            )

        batch, created = self.store.create_premium_messages(purchase_id, contents)
        record_premium_expansion("created" if created else "existing")
        if created:
            await self.send_bundle(purchase.email, message.recipient_name, [row.content for row in batch])
        return batch

    async def send_bundle(self, email: str, recipient_name: str, contents: list[str]) -> None:
        """Email the bundle to the buyer; failures are logged only."""
        if self.email_sender is None:
            logger.info("Email delivery disabled, premium bundle not emailed")
            return
        try:
            await self.email_sender.send_email(
                to=email,
                subject=f"Your premium birthday messages for {recipient_name}",
                html=render_bundle_email(recipient_name, contents),
            )
            record_delivery("email", "ok")
        except DeliveryError:
            logger.warning("Failed to email premium bundle")
            record_delivery("email", "error")
