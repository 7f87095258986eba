from __future__ import annotations

import logging
from collections.abc import Mapping

from twilio.twiml.messaging_response import MessagingResponse

from .db import RecordStore
from .errors import MissingField
from .sms import InboundMessageEvent, channel_for

log = logging.getLogger("sms_gateway.webhook")

REQUIRED_FIELDS = ("MessageSid", "From", "To", "Body")


def empty_reply() -> str:
    return str(MessagingResponse())


def _media_urls(form: Mapping[str, str]) -> tuple[str, ...]:
    # NumMedia is authoritative when Twilio sends it; otherwise read MediaUrl0, 1, ...
    # until the first gap.
    try:
        limit: int | None = int(form["NumMedia"])
    except (KeyError, ValueError):
        limit = None

    urls: list[str] = []
    index = 0
    while limit is None or index < limit:
        url = form.get(f"MediaUrl{index}")
        if not url:
            break
        urls.append(url)
        index += 1
    return tuple(urls)


def _location(form: Mapping[str, str]) -> tuple[float | None, float | None]:
    try:
        return float(form["Latitude"]), float(form["Longitude"])
    except (KeyError, ValueError):
        return None, None


class WebhookHandler:
    """
    Inbound side of the Twilio integration.

    Every call ends in a well-formed TwiML document, even when the payload is
    unusable: Twilio treats anything else as a failed delivery and retries.
    """

    def __init__(self, store: RecordStore | None = None, auto_reply: str | None = None) -> None:
        self.store = store
        self.auto_reply = auto_reply

    def parse(self, form: Mapping[str, str]) -> InboundMessageEvent:
        for name in REQUIRED_FIELDS:
            if form.get(name) is None:
                raise MissingField(name)

        latitude, longitude = _location(form)
        return InboundMessageEvent(
            message_sid=form["MessageSid"],
            from_number=form["From"],
            to_number=form["To"],
            body=form["Body"],
            media_urls=_media_urls(form),
            latitude=latitude,
            longitude=longitude,
            channel=channel_for(form["From"]),
        )

    def reply(self) -> str:
        twiml = MessagingResponse()
        if self.auto_reply:
            twiml.message(self.auto_reply)
        return str(twiml)

    def handle_incoming(self, form: Mapping[str, str]) -> str:
        try:
            event = self.parse(form)
        except MissingField as e:
            log.warning("Dropping webhook call (%s); sid=%s", e, form.get("MessageSid"))
            return empty_reply()

        if self.store is not None:
            record_id = self.store.store(event)
            log.info(
                "Stored %s message %s as %s", event.channel.value, event.message_sid, record_id
            )
        return self.reply()
