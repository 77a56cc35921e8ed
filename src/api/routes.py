"""Telnyx Call Control webhook and health endpoints.

Telnyx retries webhooks that are not answered quickly, so the webhook always
returns 200 as soon as the body is verified and decoded. The call router runs
afterwards as a background task and its outcome is only visible in the logs.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from api.dependencies import get_call_router, get_signature_verifier
from api.schemas import HealthResponse
from coach.events import decode_event
from coach.router import CallRouter
from coach.schemas import WebhookEnvelope
from telephony.signature import SIGNATURE_HEADER, TIMESTAMP_HEADER, SignatureVerifier

LOGGER = logging.getLogger(__name__)

router = APIRouter()


def _ack() -> PlainTextResponse:
    return PlainTextResponse("OK", status_code=200)


@router.get("/", response_class=PlainTextResponse)
async def root() -> PlainTextResponse:
    return _ack()


@router.get("/health", response_model=HealthResponse)
async def health(call_router: CallRouter = Depends(get_call_router)) -> HealthResponse:
    return HealthResponse(active_sessions=len(call_router.store))


@router.post("/telnyx/voice", response_class=PlainTextResponse)
async def telnyx_voice_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    signature: Annotated[str | None, Header(alias=SIGNATURE_HEADER)] = None,
    timestamp: Annotated[str | None, Header(alias=TIMESTAMP_HEADER)] = None,
    call_router: CallRouter = Depends(get_call_router),
    verifier: SignatureVerifier = Depends(get_signature_verifier),
) -> PlainTextResponse:
    raw_body = await request.body()

    if not verifier(raw_body, signature, timestamp):
        LOGGER.warning(
            "Invalid Telnyx signature from %s; check TELNYX_PUBLIC_KEY",
            request.client.host if request.client else "unknown",
        )
        return _ack()

    try:
        envelope = WebhookEnvelope.model_validate_json(raw_body)
    except ValidationError as exc:
        LOGGER.debug("Ignoring undecodable webhook body (%d bytes): %s", len(raw_body), exc.errors()[:1])
        return _ack()

    event = decode_event(envelope)
    background_tasks.add_task(call_router.dispatch, event)
    return _ack()
