"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming data validation
- Response models for API responses

JSON bodies use camelCase keys (recipientName, orderIndex, ...); the models
accept either camelCase or the snake_case field names on input.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.models import DeliveryMethod
from app.utils import is_valid_e164, is_valid_email


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Pydantic Request Models
# =============================================================================

class GenerateMessageRequest(CamelModel):
    """
    Recipient description used to generate a free birthday message.

    Validates:
    - recipientName/relationshipRole/personality: required, not blank
    - email fields: syntactically valid when present
    - phone fields: E.164-like format (starts with +, then digits only)
    """
    recipient_name: str = Field(..., min_length=1, max_length=200)
    relationship_role: str = Field(..., min_length=1, max_length=200)
    personality: str = Field(..., min_length=1, max_length=2000)
    quirks: Optional[str] = Field(None, max_length=2000)
    recipient_gender: Optional[str] = Field(None, max_length=50)
    recipient_email: Optional[str] = None
    recipient_phone: Optional[str] = None
    sender_email: Optional[str] = None
    sender_phone: Optional[str] = None
    delivery_method: DeliveryMethod = DeliveryMethod.EMAIL
    include_image: bool = Field(
        True,
        description="Also generate a themed birthday image",
    )

    @field_validator("recipient_name", "relationship_role", "personality")
    @classmethod
    def validate_not_blank(cls, v: str, info) -> str:
        v = v.strip()
        if not v:
            raise ValueError(f"{info.field_name} is required")
        return v

    @field_validator(
        "quirks", "recipient_gender", "recipient_email",
        "recipient_phone", "sender_email", "sender_phone",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v

    @field_validator("recipient_email", "sender_email")
    @classmethod
    def validate_email(cls, v: Optional[str], info) -> Optional[str]:
        if v is not None and not is_valid_email(v):
            raise ValueError(f"{info.field_name} must be a valid email address")
        return v

    @field_validator("recipient_phone", "sender_phone")
    @classmethod
    def validate_e164_format(cls, v: Optional[str], info) -> Optional[str]:
        if v is not None and not is_valid_e164(v):
            raise ValueError(f"{info.field_name} must start with '+' followed by digits")
        return v

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "recipientName": "Sam",
                    "relationshipRole": "friend",
                    "personality": "sarcastic, loves coffee",
                    "quirks": "collects mugs",
                    "senderEmail": "me@example.com",
                    "deliveryMethod": "email",
                }
            ]
        },
    )


class PurchaseRequest(CamelModel):
    email: str = Field(..., min_length=1)
    message_id: int = Field(..., gt=0, strict=True)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip()
        if not is_valid_email(v):
            raise ValueError("Valid email is required")
        return v


class CompletePurchaseRequest(CamelModel):
    purchase_id: int = Field(..., gt=0, strict=True)
    source: Literal["test", "simulated"] = "simulated"


class PremiumMessagesRequest(CamelModel):
    message_id: int = Field(..., gt=0, strict=True)
    purchase_id: int = Field(..., gt=0, strict=True)


class PaymentIntentRequest(CamelModel):
    purchase_id: int = Field(..., gt=0, strict=True)


class CardImageRequest(CamelModel):
    prompt: str = Field(..., min_length=1, max_length=4000)

    @field_validator("prompt")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Prompt is required")
        return v


# =============================================================================
# Pydantic Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")


class GenerateMessageResponse(CamelModel):
    id: int
    content: str
    image_url: Optional[str] = None


class MessageDetailResponse(CamelModel):
    """Message projection used by the card designer and thank-you page."""
    id: int
    content: str
    image_url: Optional[str] = None
    recipient_name: str
    relationship_role: str


class PurchaseResponse(CamelModel):
    purchase_id: int
    status: str


class PremiumMessageResponse(CamelModel):
    id: int
    content: str
    order_index: int


class PremiumMessagesResponse(CamelModel):
    messages: list[PremiumMessageResponse] = Field(default_factory=list)


class PurchaseDetail(CamelModel):
    id: int
    email: str
    status: str
    original_message_id: Optional[int] = None


class PurchaseDetailsResponse(CamelModel):
    """
    Purchase with its premium bundle.

    premiumMessages is always ordered by orderIndex ascending.
    """
    purchase: PurchaseDetail
    premium_messages: list[PremiumMessageResponse] = Field(default_factory=list)
    original_message: Optional[MessageDetailResponse] = None


class PaymentIntentResponse(CamelModel):
    client_secret: str
    payment_intent_id: str
    amount: int
    currency: str


class WebhookAck(BaseModel):
    received: bool = True


class SendMessageResponse(CamelModel):
    message_id: int
    channels: list[str]


class CardImageResponse(CamelModel):
    image_url: str
