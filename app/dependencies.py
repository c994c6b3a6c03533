"""
FastAPI dependencies that assemble the services for each request.

Collaborators live on ``app.state`` (built once in the lifespan handler);
the store wraps the per-request database session.
"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.collaborators import Collaborators
from app.config import Settings, get_settings
from app.delivery import DeliveryService
from app.generation import MessageService
from app.premium import PremiumService
from app.purchases import PurchaseService
from app.storage import SqlStore, Store, get_db


def get_store(db: Session = Depends(get_db)) -> Store:
    return SqlStore(db)


def get_collaborators(request: Request) -> Collaborators:
    return request.app.state.collaborators


def get_message_service(
    store: Store = Depends(get_store),
    collaborators: Collaborators = Depends(get_collaborators),
    settings: Settings = Depends(get_settings),
) -> MessageService:
    return MessageService(
        store,
        collaborators.text,
        collaborators.image,
        images_enabled=settings.IMAGE_GENERATION_ENABLED,
    )


def get_purchase_service(
    store: Store = Depends(get_store),
    collaborators: Collaborators = Depends(get_collaborators),
    settings: Settings = Depends(get_settings),
) -> PurchaseService:
    return PurchaseService(
        store,
        collaborators.payments,
        price_cents=settings.PREMIUM_PRICE_CENTS,
        currency=settings.PREMIUM_CURRENCY,
    )


def get_premium_service(
    store: Store = Depends(get_store),
    collaborators: Collaborators = Depends(get_collaborators),
) -> PremiumService:
    return PremiumService(store, collaborators.text, collaborators.email)


def get_delivery_service(
    store: Store = Depends(get_store),
    collaborators: Collaborators = Depends(get_collaborators),
) -> DeliveryService:
    return DeliveryService(store, collaborators.email, collaborators.sms)
