from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    Integer,
    String,
    create_engine,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from .config import get_settings
from .sms import InboundMessageEvent, utcnow

log = logging.getLogger("sms_gateway.db")


class Base(DeclarativeBase):
    pass


class InboundMessage(Base):
    __tablename__ = "inbound_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Twilio retries a webhook with the same MessageSid; one row per message.
    message_sid: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    from_number: Mapped[str] = mapped_column(String, nullable=False)
    to_number: Mapped[str] = mapped_column(String, nullable=False)
    body: Mapped[str] = mapped_column(String, nullable=False)
    media_urls: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    channel: Mapped[str] = mapped_column(String(16), nullable=False)  # "sms" / "whatsapp"
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class RecordStore(Protocol):
    def store(self, event: InboundMessageEvent) -> int: ...


class SqlRecordStore:
    """Persist inbound events through a caller-owned SQLAlchemy session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def existing_id(self, message_sid: str) -> int | None:
        return self.session.scalar(
            select(InboundMessage.id).where(InboundMessage.message_sid == message_sid)
        )

    def store(self, event: InboundMessageEvent) -> int:
        existing = self.existing_id(event.message_sid)
        if existing is not None:
            log.info("Duplicate delivery of %s, keeping row %s", event.message_sid, existing)
            return existing

        row = InboundMessage(
            message_sid=event.message_sid,
            from_number=event.from_number,
            to_number=event.to_number,
            body=event.body,
            media_urls=list(event.media_urls),
            latitude=event.latitude,
            longitude=event.longitude,
            channel=event.channel.value,
            received_at=event.received_at,
        )
        self.session.add(row)
        try:
            self.session.commit()
        except IntegrityError:
            # A concurrent delivery of the same MessageSid committed first.
            self.session.rollback()
            winner = self.existing_id(event.message_sid)
            if winner is None:
                raise
            log.info("Concurrent delivery of %s, keeping row %s", event.message_sid, winner)
            return winner
        self.session.refresh(row)
        return row.id


# --- Engine & Session factory ---

settings = get_settings()

engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if settings.database_url.startswith("sqlite") else {},
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def init_db() -> None:
    """Create tables if they don't exist."""
    Base.metadata.create_all(bind=engine)
