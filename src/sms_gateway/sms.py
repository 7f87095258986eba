from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Final

from pydantic import BaseModel, ConfigDict, Field

from .errors import InvalidArgument, ProviderError

# Twilio rejects bodies above 1600 characters (10 concatenated segments).
MAX_BODY_CHARS: Final[int] = 1600

WHATSAPP_PREFIX: Final[str] = "whatsapp:"

E164_RE = re.compile(r"^\+[1-9]\d{1,14}$")


class Channel(str, Enum):
    SMS = "sms"
    WHATSAPP = "whatsapp"


def channel_for(number: str) -> Channel:
    return Channel.WHATSAPP if number.startswith(WHATSAPP_PREFIX) else Channel.SMS


def is_valid_number(number: str) -> bool:
    """
    True for an E.164 number, optionally carrying the WhatsApp channel prefix.

    Examples: "+15551234567", "whatsapp:+27123456789".
    """
    if number.startswith(WHATSAPP_PREFIX):
        number = number[len(WHATSAPP_PREFIX) :]
    return bool(E164_RE.match(number))


@dataclass(frozen=True)
class OutboundMessageRequest:
    to: str
    body: str
    from_: str | None = None

    def __post_init__(self) -> None:
        if not self.to or not self.to.strip():
            raise InvalidArgument("recipient number is required")
        if not is_valid_number(self.to):
            raise InvalidArgument(f"recipient is not a valid phone number: {self.to!r}")
        if self.from_ is not None and not is_valid_number(self.from_):
            raise InvalidArgument(f"sender is not a valid phone number: {self.from_!r}")
        if not self.body or not self.body.strip():
            raise InvalidArgument("message body must not be empty")
        if len(self.body) > MAX_BODY_CHARS:
            raise InvalidArgument(
                f"message body is {len(self.body)} characters; the limit is {MAX_BODY_CHARS}"
            )


@dataclass(frozen=True)
class ProviderResponse:
    """
    Outcome of one callout that reached the provider.

    success is True only for a 2xx status whose body parsed into a message
    resource; error is set exactly when success is False.
    """

    success: bool
    status_code: int
    raw_body: str
    message_id: str | None = None
    message_status: str | None = None
    error: str | None = None

    @classmethod
    def ok(
        cls,
        status_code: int,
        raw_body: str,
        message_id: str,
        message_status: str | None,
    ) -> ProviderResponse:
        return cls(
            success=True,
            status_code=status_code,
            raw_body=raw_body,
            message_id=message_id,
            message_status=message_status,
        )

    @classmethod
    def failed(cls, status_code: int, raw_body: str, error: str) -> ProviderResponse:
        return cls(success=False, status_code=status_code, raw_body=raw_body, error=error)

    def raise_for_error(self) -> None:
        if not self.success:
            raise ProviderError(
                self.error or "provider request failed", self.status_code, self.raw_body
            )


def utcnow() -> datetime:
    return datetime.now(UTC)


class InboundMessageEvent(BaseModel):
    """A message the provider delivered to our webhook."""

    model_config = ConfigDict(frozen=True)

    message_sid: str
    from_number: str
    to_number: str
    body: str
    media_urls: tuple[str, ...] = ()
    latitude: float | None = None
    longitude: float | None = None
    channel: Channel = Channel.SMS
    received_at: datetime = Field(default_factory=utcnow)

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None
