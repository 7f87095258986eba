from __future__ import annotations

import json
from collections.abc import Callable

import pytest

from sms_gateway.errors import InvalidArgument, ProviderError, TransportError
from sms_gateway.sms import MAX_BODY_CHARS, OutboundMessageRequest
from sms_gateway.testing import MockConfiguration
from sms_gateway.twilio_client import ProviderClient, parse_provider_response

MakeClient = Callable[[MockConfiguration], ProviderClient]

SID = "SM0123456789abcdef0123456789abcdef"
QUEUED_BODY = json.dumps({"sid": SID, "status": "queued", "to": "+15551234567"})


@pytest.mark.parametrize(
    "request_",
    [
        OutboundMessageRequest(to="+15551234567", body="Hello"),
        OutboundMessageRequest(to="+27123456789", body="Dumela", from_="+17775553333"),
        OutboundMessageRequest(to="whatsapp:+447700900123", body="x" * MAX_BODY_CHARS),
    ],
)
def test_send_success_returns_message_id(make_client: MakeClient, request_) -> None:
    client = make_client(MockConfiguration(status_code=200, body=QUEUED_BODY))

    result = client.send(request_)

    assert result.success is True
    assert result.status_code == 200
    assert result.message_id == SID
    assert SID in result.raw_body
    assert result.message_status == "queued"
    assert result.error is None


def test_send_accepts_201_created(make_client: MakeClient) -> None:
    client = make_client(MockConfiguration(status_code=201, body=QUEUED_BODY))

    result = client.send(OutboundMessageRequest(to="+15551234567", body="Hello"))

    assert result.success is True


@pytest.mark.parametrize("message", ["Connection refused", "Read timed out.", ""])
def test_send_transport_failure_raises(make_client: MakeClient, message: str) -> None:
    client = make_client(MockConfiguration.failing(message))

    with pytest.raises(TransportError) as exc_info:
        client.send(OutboundMessageRequest(to="+15551234567", body="Hello"))

    assert exc_info.value.message == message


@pytest.mark.parametrize("status_code", [199, 300, 400, 401, 404, 429, 500, 503])
@pytest.mark.parametrize("body", [QUEUED_BODY, "not json", "", '{"code": 21211}'])
def test_send_non_2xx_is_failure(make_client: MakeClient, status_code: int, body: str) -> None:
    client = make_client(MockConfiguration(status_code=status_code, body=body))

    result = client.send(OutboundMessageRequest(to="+15551234567", body="Hello"))

    assert result.success is False
    assert result.status_code == status_code
    assert result.raw_body == body
    assert result.message_id is None
    assert result.error


def test_send_error_uses_twilio_message(make_client: MakeClient) -> None:
    body = json.dumps(
        {
            "code": 21211,
            "message": "The 'To' number +15551234567 is not a valid phone number.",
            "status": 400,
        }
    )
    client = make_client(MockConfiguration(status_code=400, body=body))

    result = client.send(OutboundMessageRequest(to="+15551234567", body="Hello"))

    assert result.success is False
    assert result.error == "The 'To' number +15551234567 is not a valid phone number."


def test_send_error_without_message_falls_back_to_status(make_client: MakeClient) -> None:
    client = make_client(MockConfiguration(status_code=500, body="<html>oops</html>"))

    result = client.send(OutboundMessageRequest(to="+15551234567", body="Hello"))

    assert result.error == "HTTP 500"
    assert result.raw_body == "<html>oops</html>"


@pytest.mark.parametrize(
    "body",
    ["not json", "", "   ", "[1, 2, 3]", '"queued"', '{"status": "queued"}', '{"sid": 42}'],
)
def test_send_unparseable_2xx_body_is_failure(make_client: MakeClient, body: str) -> None:
    client = make_client(MockConfiguration(status_code=200, body=body))

    result = client.send(OutboundMessageRequest(to="+15551234567", body="Hello"))

    assert result.success is False
    assert result.status_code == 200
    assert result.raw_body == body
    assert result.error


def test_send_without_sender_is_invalid() -> None:
    from sms_gateway.testing import CalloutSimulator

    client = ProviderClient(
        "AC123",
        "token",
        from_number=None,
        http_client=CalloutSimulator(MockConfiguration.failing("must not be called")),
    )

    # InvalidArgument rather than TransportError proves no callout happened.
    with pytest.raises(InvalidArgument):
        client.send(OutboundMessageRequest(to="+15551234567", body="Hello"))


def test_fetch_status_is_idempotent(make_client: MakeClient) -> None:
    body = json.dumps({"sid": SID, "status": "delivered"})
    client = make_client(MockConfiguration(status_code=200, body=body))

    first = client.fetch_status(SID)
    second = client.fetch_status(SID)

    assert first == second
    assert first.success is True
    assert first.message_status == "delivered"


def test_fetch_status_not_found(make_client: MakeClient) -> None:
    body = json.dumps({"code": 20404, "message": "The requested resource was not found"})
    client = make_client(MockConfiguration(status_code=404, body=body))

    result = client.fetch_status(SID)

    assert result.success is False
    assert result.error == "The requested resource was not found"


@pytest.mark.parametrize("message_id", ["", "SM../../Calls", "SM 123", "SM123?x=1"])
def test_fetch_status_rejects_bad_ids(make_client: MakeClient, message_id: str) -> None:
    client = make_client(MockConfiguration.failing("must not be called"))

    with pytest.raises(InvalidArgument):
        client.fetch_status(message_id)


def test_fetch_status_transport_failure(make_client: MakeClient) -> None:
    client = make_client(MockConfiguration.failing("Name or service not known"))

    with pytest.raises(TransportError, match="Name or service not known"):
        client.fetch_status(SID)


def test_missing_credentials_is_configuration_error() -> None:
    with pytest.raises(RuntimeError, match="TWILIO_ACCOUNT_SID"):
        ProviderClient(None, "token")


def test_raise_for_error() -> None:
    failed = parse_provider_response(401, '{"message": "Authenticate"}')

    with pytest.raises(ProviderError) as exc_info:
        failed.raise_for_error()

    assert exc_info.value.status_code == 401
    assert exc_info.value.raw_body == '{"message": "Authenticate"}'
    assert str(exc_info.value) == "Authenticate"

    parse_provider_response(200, QUEUED_BODY).raise_for_error()


def test_send_sms_uses_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    from sms_gateway import twilio_client
    from sms_gateway.testing import CalloutSimulator

    monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC123")
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "token")
    monkeypatch.setenv("TWILIO_FROM_NUMBER", "+17775553333")

    simulator = CalloutSimulator(MockConfiguration(status_code=201, body=QUEUED_BODY))
    original = twilio_client.ProviderClient

    def with_simulator(*args, **kwargs) -> ProviderClient:
        kwargs["http_client"] = simulator
        return original(*args, **kwargs)

    monkeypatch.setattr(twilio_client, "ProviderClient", with_simulator)

    assert twilio_client.send_sms("+15551234567", "Hello") == SID


def test_send_sms_raises_provider_error(monkeypatch: pytest.MonkeyPatch) -> None:
    from sms_gateway import twilio_client
    from sms_gateway.testing import CalloutSimulator

    monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC123")
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "token")
    monkeypatch.setenv("TWILIO_FROM_NUMBER", "+17775553333")

    simulator = CalloutSimulator(MockConfiguration(status_code=400, body='{"message": "bad"}'))
    original = twilio_client.ProviderClient

    def with_simulator(*args, **kwargs) -> ProviderClient:
        kwargs["http_client"] = simulator
        return original(*args, **kwargs)

    monkeypatch.setattr(twilio_client, "ProviderClient", with_simulator)

    with pytest.raises(ProviderError, match="bad"):
        twilio_client.send_sms("+15551234567", "Hello")
