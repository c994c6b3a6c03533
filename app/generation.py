import logging
from typing import Optional

from app.collaborators import ImageGenerator, TextGenerator
from app.errors import GenerationError
from app.metrics import record_generation
from app.prompts import (
    FREE_MESSAGE_MAX_TOKENS,
    RecipientDescription,
    build_image_prompt,
    build_message_prompts,
    fallback_message,
)
from app.schemas import GenerateMessageRequest
from app.storage import Store

logger = logging.getLogger(__name__)


def recipient_from_request(data: GenerateMessageRequest) -> RecipientDescription:
    return RecipientDescription(
        name=data.recipient_name,
        relationship_role=data.relationship_role,
        personality=data.personality,
        quirks=data.quirks,
        gender=data.recipient_gender,
    )


def recipient_from_message(message) -> RecipientDescription:
    return RecipientDescription(
        name=message.recipient_name,
        relationship_role=message.relationship_role,
        personality=message.personality,
        quirks=message.quirks,
        gender=message.recipient_gender,
    )


class MessageService:
    """
    Generates and stores the free birthday message.

    One text generation call, at most one image generation call, exactly one
    Message row per call. Text failures fall back to a static message; image
    failures leave image_url empty.
    """

    def __init__(
        self,
        store: Store,
        text_generator: TextGenerator,
        image_generator: ImageGenerator,
        images_enabled: bool = True,
    ):
        self.store = store
        self.text_generator = text_generator
        self.image_generator = image_generator
        self.images_enabled = images_enabled

    async def generate_text(self, recipient: RecipientDescription) -> str:
        """
        Raises:
            GenerationError: the provider failed or returned nothing usable
        """
        system_prompt, user_prompt = build_message_prompts(recipient)
        content = await self.text_generator.generate_text(
            system_prompt, user_prompt, FREE_MESSAGE_MAX_TOKENS
        )
        if not content or not content.strip():
            raise GenerationError()
        return content.strip()

    async def generate_image(self, recipient: RecipientDescription) -> Optional[str]:
        """Image URL, or None when generation fails."""
        prompt = build_image_prompt(recipient)
        try:
            image_url = await self.image_generator.generate_image(prompt)
        except GenerationError as e:
            logger.warning(f"Image generation failed, continuing without image: {e}")
            record_generation("image", "error")
            return None
        record_generation("image", "ok" if image_url else "empty")
        return image_url

    async def create_message(self, data: GenerateMessageRequest):
        recipient = recipient_from_request(data)

        try:
            content = await self.generate_text(recipient)
            record_generation("text", "ok")
        except GenerationError:
            logger.warning(f"Text generation failed for {recipient.name!r}, using fallback message")
            record_generation("text", "fallback")
            content = fallback_message(recipient.name)

        image_url = None
        if data.include_image and self.images_enabled:
            image_url = await self.generate_image(recipient)

        return self.store.create_message(
            recipient_name=data.recipient_name,
            relationship_role=data.relationship_role,
            personality=data.personality,
            quirks=data.quirks,
            recipient_gender=data.recipient_gender,
            recipient_email=data.recipient_email,
            recipient_phone=data.recipient_phone,
            content=content,
            image_url=image_url,
            sender_email=data.sender_email,
            sender_phone=data.sender_phone,
            delivery_method=data.delivery_method.value,
        )

    async def generate_card_image(self, prompt: str) -> str:
        """
        Raises:
            GenerationError: the provider failed or returned no image
        """
        image_url = await self.image_generator.generate_image(prompt)
        if not image_url:
            record_generation("image", "empty")
            raise GenerationError("Failed to generate card image. Please try again.")
        record_generation("image", "ok")
        return image_url
