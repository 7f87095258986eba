from __future__ import annotations


class SmsGatewayError(Exception):
    """Base class for all errors raised by sms_gateway."""


class InvalidArgument(SmsGatewayError, ValueError):
    """A request was malformed; raised before any network I/O."""


class TransportError(SmsGatewayError):
    """The callout never produced an HTTP response (network or simulated failure)."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ProviderError(SmsGatewayError):
    """
    The provider answered, but not with a usable success.

    ProviderClient never raises this itself: failures are captured in
    ProviderResponse and only turned into an exception by
    ProviderResponse.raise_for_error().
    """

    def __init__(self, message: str, status_code: int, raw_body: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.raw_body = raw_body


class MissingField(SmsGatewayError, KeyError):
    """A required webhook form field was absent."""

    def __init__(self, field: str) -> None:
        super().__init__(field)
        self.field = field

    def __str__(self) -> str:
        return f"missing required field: {self.field}"
