from __future__ import annotations

import dataclasses
from collections.abc import Generator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from twilio.request_validator import RequestValidator

from .config import configure_logging, get_settings
from .db import InboundMessage, SessionLocal, SqlRecordStore, init_db
from .errors import InvalidArgument, TransportError
from .sms import OutboundMessageRequest, ProviderResponse
from .twilio_client import ProviderClient, get_provider_client
from .webhook import WebhookHandler, empty_reply


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: runs once before the app starts serving requests
    configure_logging()
    init_db()
    yield
    # Shutdown: runs once when the app is shutting down (nothing to do yet)


app = FastAPI(title="sms-gateway", version="0.1.0", lifespan=lifespan)

ALLOWED_ADMIN_IPS = {"127.0.0.1", "::1"}


def verify_admin(request: Request) -> None:
    """
    Simple protection for /admin endpoints:
    - only allow requests from ALLOWED_ADMIN_IPS
    - require X-Admin-Token header that matches ADMIN_TOKEN env var
    """
    client_host = request.client.host if request.client else None

    if client_host not in ALLOWED_ADMIN_IPS:
        raise HTTPException(status_code=403, detail="Forbidden")

    admin_token = get_settings().admin_token
    if not admin_token:
        # Misconfiguration; safer to refuse access than to expose data.
        raise HTTPException(status_code=500, detail="ADMIN_TOKEN not configured")

    header_token = request.headers.get("X-Admin-Token")
    if header_token != admin_token:
        raise HTTPException(status_code=401, detail="Invalid admin token")


# --- Dependencies ---


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_client() -> ProviderClient:
    try:
        return get_provider_client()
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e


def _xml(content: str, status_code: int = 200) -> Response:
    return Response(content=content, media_type="application/xml", status_code=status_code)


def _provider_json(result: ProviderResponse) -> JSONResponse:
    return JSONResponse(dataclasses.asdict(result))


# --- Routes ---


@app.post("/sms/inbound")
async def sms_inbound(request: Request, db: Session = Depends(get_db)) -> Response:
    """
    Twilio messaging webhook.

    Twilio posts application/x-www-form-urlencoded fields (MessageSid, From,
    To, Body, MediaUrlN, Latitude/Longitude). We store the message and answer
    with TwiML: the configured auto reply, or an empty <Response /> so Twilio
    sends nothing back.
    """
    settings = get_settings()
    form = {key: str(value) for key, value in (await request.form()).items()}

    if settings.validate_signatures:
        # Behind a proxy Twilio signs the public URL, not the one we see.
        proto = request.headers.get("X-Forwarded-Proto", request.url.scheme)
        host = request.headers.get("X-Forwarded-Host", request.url.netloc)
        url = f"{proto}://{host}{request.url.path}"
        if request.url.query:
            url = f"{url}?{request.url.query}"
        signature = request.headers.get("X-Twilio-Signature", "")
        validator = RequestValidator(settings.twilio_auth_token or "")
        if not validator.validate(url, form, signature):
            return _xml(empty_reply(), status_code=403)

    handler = WebhookHandler(store=SqlRecordStore(db), auto_reply=settings.auto_reply_text)
    # Storing the message is blocking database I/O; keep it off the event loop.
    return _xml(await run_in_threadpool(handler.handle_incoming, form))


class OutboundSms(BaseModel):
    # Accept both "from" (wire name) and "from_" (field name).
    model_config = ConfigDict(populate_by_name=True)

    to: str
    body: str
    from_: str | None = Field(default=None, alias="from")


@app.post("/sms/outbound")
def sms_outbound(
    payload: OutboundSms, client: ProviderClient = Depends(get_client)
) -> JSONResponse:
    """
    Send one message through Twilio.

    A refusal by Twilio is still a 200 here with "success": false; only
    malformed requests (422) and unreachable provider (502) are HTTP errors.
    """
    try:
        request = OutboundMessageRequest(to=payload.to, body=payload.body, from_=payload.from_)
        result = client.send(request)
    except InvalidArgument as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except TransportError as e:
        raise HTTPException(status_code=502, detail=e.message) from e
    return _provider_json(result)


@app.get("/sms/outbound/{message_id}")
def sms_status(message_id: str, client: ProviderClient = Depends(get_client)) -> JSONResponse:
    try:
        result = client.fetch_status(message_id)
    except InvalidArgument as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except TransportError as e:
        raise HTTPException(status_code=502, detail=e.message) from e
    return _provider_json(result)


@app.get("/admin/messages")
def admin_messages(
    limit: int = 50,
    db: Session = Depends(get_db),
    _: None = Depends(verify_admin),
) -> JSONResponse:
    """
    Very small admin endpoint to inspect recent inbound messages.

    Example:
      GET /admin/messages
      GET /admin/messages?limit=10
    """
    # Clamp limit to a reasonable range
    safe_limit = max(1, min(limit, 200))
    rows = (
        db.query(InboundMessage)
        .order_by(InboundMessage.received_at.desc())
        .limit(safe_limit)
        .all()
    )

    payload = [
        {
            "id": m.id,
            "message_sid": m.message_sid,
            "from_number": m.from_number,
            "to_number": m.to_number,
            "body": m.body,
            "media_urls": m.media_urls,
            "latitude": m.latitude,
            "longitude": m.longitude,
            "channel": m.channel,
            "received_at": m.received_at.isoformat(),
        }
        for m in rows
    ]
    return JSONResponse(payload)
