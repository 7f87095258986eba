"""Test double for the Twilio network boundary."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests
from twilio.http import HttpClient
from twilio.http.request import Request
from twilio.http.response import Response


@dataclass(frozen=True)
class MockConfiguration:
    status_code: int = 200
    body: str = ""
    # When set, every callout fails at the transport level with this message.
    failure_message: str | None = None

    @classmethod
    def failing(cls, message: str) -> MockConfiguration:
        return cls(failure_message=message)


class CalloutSimulator(HttpClient):
    """
    Stands in for TwilioHttpClient so ProviderClient can be tested offline.

    Replies are driven entirely by the MockConfiguration: the request is never
    inspected and nothing is recorded between calls.
    """

    def __init__(self, config: MockConfiguration) -> None:
        super().__init__(logger=logging.getLogger("sms_gateway.testing"), is_async=False)
        self.config = config

    def respond(self, request: Request) -> Response:
        if self.config.failure_message is not None:
            raise requests.ConnectionError(self.config.failure_message)
        return Response(self.config.status_code, self.config.body)

    def request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        auth: tuple[str, str] | None = None,
        timeout: float | None = None,
        allow_redirects: bool = False,
    ) -> Response:
        return self.respond(
            Request(method=method, url=url, auth=auth, params=params, data=data, headers=headers)
        )
