import html
import logging
from typing import Optional

from app.collaborators import EmailSender, SmsSender
from app.errors import DeliveryError, NotFoundError, ValidationError
from app.metrics import record_delivery
from app.models import DeliveryMethod
from app.storage import Store

logger = logging.getLogger(__name__)


class DeliveryService:
    """Sends a stored message to its recipient over email, SMS or both."""

    def __init__(
        self,
        store: Store,
        email_sender: Optional[EmailSender] = None,
        sms_sender: Optional[SmsSender] = None,
    ):
        self.store = store
        self.email_sender = email_sender
        self.sms_sender = sms_sender

    def channels_for(self, message) -> list[str]:
        """
        Channels a message will be sent over.

        Raises:
            ValidationError: a channel lacks a contact or is not configured
        """
        method = DeliveryMethod(message.delivery_method)
        channels = []
        if method in (DeliveryMethod.EMAIL, DeliveryMethod.BOTH):
            if not message.recipient_email:
                raise ValidationError("Recipient email is required for email delivery")
            if self.email_sender is None:
                raise ValidationError("Email delivery is not configured")
            channels.append("email")
        if method in (DeliveryMethod.SMS, DeliveryMethod.BOTH):
            if not message.recipient_phone:
                raise ValidationError("Recipient phone is required for SMS delivery")
            if self.sms_sender is None:
                raise ValidationError("SMS delivery is not configured")
            channels.append("sms")
        return channels

    async def send_message(self, message_id: int) -> list[str]:
        """
        Deliver the message; all channels are checked before anything is sent.

        Raises:
            NotFoundError: unknown message
            ValidationError: missing contact details or channel
            DeliveryError: a provider rejected the send
        """
        message = self.store.get_message(message_id)
        if message is None:
            raise NotFoundError("Message not found")

        channels = self.channels_for(message)
        subject = f"Happy Birthday, {message.recipient_name}! 🎂"

        for channel in channels:
            try:
                if channel == "email":
                    await self.email_sender.send_email(
                        to=message.recipient_email,
                        subject=subject,
                        html=self._render_email(message),
                    )
                else:
                    await self.sms_sender.send_sms(to=message.recipient_phone, body=message.content)
            except DeliveryError:
                record_delivery(channel, "error")
                raise
            record_delivery(channel, "ok")
            logger.info(f"Message {message_id} delivered via {channel}")

        return channels

    @staticmethod
    def _render_email(message) -> str:
        body = html.escape(message.content).replace("\n", "<br>")
        parts = [f"<p>{body}</p>"]
        if message.image_url:
            parts.append(f'<img src="{html.escape(message.image_url)}" alt="Birthday card" width="512">')
        if message.sender_email:
            parts.append(f"<p>From: {html.escape(message.sender_email)}</p>")
        return "".join(parts)
