from __future__ import annotations

import json
import logging
import re
from typing import Any, cast

import requests
from twilio.http import HttpClient
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from .config import Settings, get_settings
from .errors import InvalidArgument, TransportError
from .sms import OutboundMessageRequest, ProviderResponse

log = logging.getLogger("sms_gateway.provider")

API_VERSION = "2010-04-01"
MESSAGE_SID_RE = re.compile(r"^[A-Za-z0-9]+$")


def parse_provider_response(status_code: int, raw_body: str) -> ProviderResponse:
    """
    Turn a raw Twilio reply into a ProviderResponse without ever raising.

    Twilio answers both successes and errors with JSON; error bodies carry a
    human readable "message" which we prefer over the bare status code.
    """
    payload: Any = None
    parse_error: str | None = None
    if not raw_body.strip():
        parse_error = "empty response body"
    else:
        try:
            payload = json.loads(raw_body)
        except ValueError as e:
            parse_error = f"unparseable response body: {e}"

    if not 200 <= status_code < 300:
        detail = payload.get("message") if isinstance(payload, dict) else None
        if not isinstance(detail, str) or not detail:
            detail = f"HTTP {status_code}"
        return ProviderResponse.failed(status_code, raw_body, detail)

    if parse_error is not None:
        return ProviderResponse.failed(status_code, raw_body, parse_error)

    if not isinstance(payload, dict):
        return ProviderResponse.failed(
            status_code, raw_body, f"unexpected response shape: {type(payload).__name__}"
        )

    sid = payload.get("sid")
    if not isinstance(sid, str) or not sid:
        return ProviderResponse.failed(
            status_code, raw_body, "unexpected response shape: no 'sid'"
        )

    status = payload.get("status")
    return ProviderResponse.ok(
        status_code, raw_body, sid, status if isinstance(status, str) else None
    )


class ProviderClient:
    """
    Outbound side of the Twilio integration: send a message, look one up.

    The SDK's pluggable HttpClient is the network boundary. Pass a
    CalloutSimulator as http_client in tests; in production a non-pooling
    TwilioHttpClient is created with the caller's timeout (seconds).
    """

    def __init__(
        self,
        account_sid: str | None,
        auth_token: str | None,
        from_number: str | None = None,
        *,
        http_client: HttpClient | None = None,
        timeout: float | None = None,
        base_url: str = "https://api.twilio.com",
    ) -> None:
        if not account_sid or not auth_token:
            raise RuntimeError(
                "Twilio credentials are not configured (TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN)"
            )
        self.account_sid = account_sid
        self.from_number = from_number
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        if http_client is None:
            http_client = TwilioHttpClient(pool_connections=False, timeout=timeout)
        self._client = Client(account_sid, auth_token, http_client=http_client)

    @property
    def messages_url(self) -> str:
        return f"{self.base_url}/{API_VERSION}/Accounts/{self.account_sid}/Messages"

    def send(self, request: OutboundMessageRequest) -> ProviderResponse:
        sender = request.from_ or self.from_number
        if not sender:
            raise InvalidArgument("no sender number: set TWILIO_FROM_NUMBER or pass from_")

        data = {"To": request.to, "From": sender, "Body": request.body}
        response = self._callout("POST", f"{self.messages_url}.json", data=data)
        if response.success:
            log.info(
                "Sent message %s to %s (%s)",
                response.message_id,
                request.to,
                response.message_status,
            )
        else:
            log.warning(
                "Send to %s failed with HTTP %s: %s",
                request.to,
                response.status_code,
                response.error,
            )
        return response

    def fetch_status(self, message_id: str) -> ProviderResponse:
        if not message_id or not MESSAGE_SID_RE.match(message_id):
            raise InvalidArgument(f"invalid message id: {message_id!r}")
        return self._callout("GET", f"{self.messages_url}/{message_id}.json")

    def _callout(
        self, method: str, url: str, data: dict[str, str] | None = None
    ) -> ProviderResponse:
        try:
            raw = self._client.request(method, url, data=data, timeout=self.timeout)
        except requests.RequestException as e:
            log.warning("Twilio callout %s %s failed: %s", method, url, e)
            raise TransportError(str(e)) from e
        return parse_provider_response(raw.status_code, raw.text or "")


def get_provider_client(settings: Settings | None = None) -> ProviderClient:
    settings = settings or get_settings()
    return ProviderClient(
        settings.twilio_account_sid,
        settings.twilio_auth_token,
        settings.twilio_from_number,
        timeout=settings.twilio_timeout_seconds,
        base_url=settings.twilio_api_base_url,
    )


def send_sms(to: str, body: str) -> str:
    """
    Send an SMS using the configured Twilio account and return its SID.

    Unlike ProviderClient.send this raises ProviderError when Twilio refuses
    the message, for callers that only care about the happy path.
    """
    response = get_provider_client().send(OutboundMessageRequest(to=to, body=body))
    response.raise_for_error()
    return cast(str, response.message_id)
