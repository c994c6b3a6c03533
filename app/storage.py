import logging
from typing import Generator, Iterable, List, Optional, Protocol, Tuple

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.config import settings
from app.errors import PersistenceError

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("messages", "purchases", "premium_messages")

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

# check_same_thread=False is required for SQLite to work with FastAPI's async
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
    echo=False,
)

if _is_sqlite:
    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        # SQLite leaves foreign key enforcement off unless asked per connection
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db(bind: Engine = engine) -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {bind.url!r}")
    try:
        # Import models to register them with Base.metadata
        import app.models  # noqa: F401

        Base.metadata.create_all(bind=bind)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and all tables exist, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        tables = set(inspect(engine).get_table_names())
        missing = [name for name in REQUIRED_TABLES if name not in tables]
        if missing:
            logger.error(f"Database schema not applied, missing tables: {missing}")
            return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Store Interface
# =============================================================================

class Store(Protocol):
    """
    Persistence operations the services depend on.

    SqlStore is the only implementation shipped with the application; tests
    provide an in-process one with the same surface.
    """

    def create_message(self, **fields) -> "Message": ...

    def get_message(self, message_id: int) -> Optional["Message"]: ...

    def create_purchase(self, email: str, original_message_id: int) -> "Purchase": ...

    def get_purchase(self, purchase_id: int) -> Optional["Purchase"]: ...

    def get_purchase_by_payment_intent(self, payment_intent_id: str) -> Optional["Purchase"]: ...

    def update_purchase_status(self, purchase_id: int, status: str) -> Optional["Purchase"]: ...

    def set_payment_intent(self, purchase_id: int, payment_intent_id: str) -> Optional["Purchase"]: ...

    def get_premium_messages(self, purchase_id: int) -> List["PremiumMessage"]: ...

    def create_premium_messages(
        self, purchase_id: int, contents: Iterable[str]
    ) -> Tuple[List["PremiumMessage"], bool]: ...


# =============================================================================
# SQLAlchemy Store
# =============================================================================

class SqlStore:
    """Store backed by a SQLAlchemy session (one per request)."""

    def __init__(self, db: Session):
        self.db = db

    def _commit(self, what: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to persist {what}: {e}")
            raise PersistenceError()

    # -- messages ------------------------------------------------------------

    def create_message(self, **fields):
        from app.models import Message

        message = Message(**fields)
        self.db.add(message)
        self._commit("message")
        self.db.refresh(message)
        logger.info(f"Message created: id={message.id}")
        return message

    def get_message(self, message_id: int):
        from app.models import Message

        return self.db.get(Message, message_id)

    # -- purchases -----------------------------------------------------------

    def create_purchase(self, email: str, original_message_id: int):
        from app.models import Purchase, PurchaseStatus

        purchase = Purchase(
            email=email,
            original_message_id=original_message_id,
            status=PurchaseStatus.PENDING.value,
        )
        self.db.add(purchase)
        self._commit("purchase")
        self.db.refresh(purchase)
        logger.info(f"Purchase created: id={purchase.id}, message_id={original_message_id}")
        return purchase

    def get_purchase(self, purchase_id: int):
        from app.models import Purchase

        return self.db.get(Purchase, purchase_id)

    def get_purchase_by_payment_intent(self, payment_intent_id: str):
        from app.models import Purchase

        return (
            self.db.query(Purchase)
            .filter(Purchase.payment_intent_id == payment_intent_id)
            .first()
        )

    def update_purchase_status(self, purchase_id: int, status: str):
        purchase = self.get_purchase(purchase_id)
        if purchase is None:
            return None
        purchase.status = status
        self._commit("purchase status")
        self.db.refresh(purchase)
        return purchase

    def set_payment_intent(self, purchase_id: int, payment_intent_id: str):
        purchase = self.get_purchase(purchase_id)
        if purchase is None:
            return None
        purchase.payment_intent_id = payment_intent_id
        self._commit("payment intent")
        self.db.refresh(purchase)
        return purchase

    # -- premium messages ----------------------------------------------------

    def get_premium_messages(self, purchase_id: int):
        from app.models import PremiumMessage

        return (
            self.db.query(PremiumMessage)
            .filter(PremiumMessage.purchase_id == purchase_id)
            .order_by(PremiumMessage.order_index.asc())
            .all()
        )

    def create_premium_messages(self, purchase_id: int, contents: Iterable[str]):
        """
        Insert one premium batch for a purchase (idempotent).

        Returns:
            Tuple of (messages ordered by order_index, created: bool)
            - (batch, True): this call inserted the batch
            - (batch, False): a batch already existed and is returned unchanged
        """
        from app.models import PremiumMessage

        existing = self.get_premium_messages(purchase_id)
        if existing:
            logger.info(f"Premium batch already exists for purchase {purchase_id}")
            return existing, False

        rows = [
            PremiumMessage(purchase_id=purchase_id, content=content, order_index=index)
            for index, content in enumerate(contents, start=1)
        ]
        try:
            self.db.add_all(rows)
            self.db.commit()
        except IntegrityError as e:
            # Either a concurrent expansion inserted first (unique constraint)
            # or the purchase does not exist (foreign key)
            self.db.rollback()
            existing = self.get_premium_messages(purchase_id)
            if existing:
                logger.info(f"Concurrent premium batch detected for purchase {purchase_id}")
                return existing, False
            logger.error(f"Failed to insert premium batch for purchase {purchase_id}: {e}")
            raise PersistenceError()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to insert premium batch for purchase {purchase_id}: {e}")
            raise PersistenceError()

        logger.info(f"Premium batch created: purchase={purchase_id}, count={len(rows)}")
        return self.get_premium_messages(purchase_id), True
