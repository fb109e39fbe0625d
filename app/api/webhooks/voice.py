"""Twilio voice webhook endpoints."""
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import Response

from app.core.config import settings
from app.core.dependencies import get_call_services, get_datastore
from app.services.agent.constants import ACCESS_DENIED_MESSAGES, CONFIGURATION_ERROR_MESSAGE
from app.services.call_session.manager import CallServices, MediaStreamSession
from app.services.persistence.datastore import Datastore
from app.services.telephony.twilio import (
    build_dial_twiml,
    build_reject_twiml,
    build_stream_twiml,
    select_transfer_target,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def get_stream_url(request: Request) -> str:
    """
    Get the WebSocket URL Twilio should stream call audio to.

    Uses BASE_URL if set (e.g., behind a proxy), otherwise the request host.
    """
    if settings.base_url:
        host = settings.base_url.rstrip("/").split("://", 1)[-1]
    else:
        host = request.headers.get("host") or request.url.netloc
    return f"wss://{host}/webhooks/voice/media-stream"


def xml_response(twiml: str) -> Response:
    return Response(content=twiml, media_type="application/xml")


async def _call_parameters(request: Request) -> dict:
    params = dict(request.query_params)
    if request.method == "POST":
        form = await request.form()
        params.update({key: str(value) for key, value in form.items()})
    return params


@router.api_route("/voice/incoming", methods=["GET", "POST"])
async def handle_incoming_call(request: Request, datastore: Datastore = Depends(get_datastore)):
    """
    Handle incoming call from Twilio.

    Connects a media stream for tenants with access; otherwise forwards the
    call to the tenant's handoff number or rejects it with a spoken message.
    """
    params = await _call_parameters(request)
    tenant_id: Optional[str] = params.get("tenant_id")
    call_sid = params.get("CallSid")
    caller_phone = params.get("From")
    bot_phone = params.get("To")
    forwarded_from = params.get("ForwardedFrom")

    logger.info(
        f"[INCOMING CALL] CallSid: {call_sid}, tenant: {tenant_id}, From: {caller_phone}, To: {bot_phone}"
    )

    if not tenant_id:
        logger.error(f"[INCOMING CALL] Missing tenant_id - CallSid: {call_sid}")
        return xml_response(build_reject_twiml(CONFIGURATION_ERROR_MESSAGE))

    try:
        decision = await datastore.check_access(tenant_id)
    except Exception as e:
        logger.error(
            f"[INCOMING CALL] Access check failed - CallSid: {call_sid}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        return xml_response(build_reject_twiml(CONFIGURATION_ERROR_MESSAGE))

    if not decision.allowed:
        logger.warning(f"[INCOMING CALL] Access denied ({decision.reason}) - tenant: {tenant_id}")
        if decision.reason == "not_found":
            return xml_response(build_reject_twiml(CONFIGURATION_ERROR_MESSAGE))
        if decision.settings is not None:
            target = select_transfer_target(
                decision.settings.handoff_numbers, bot_number=bot_phone, forwarded_from=forwarded_from
            )
            if target:
                logger.info(f"[INCOMING CALL] Forwarding {call_sid} to {target}")
                return xml_response(build_dial_twiml(target))
        message = ACCESS_DENIED_MESSAGES.get(decision.reason or "", ACCESS_DENIED_MESSAGES["default"])
        return xml_response(build_reject_twiml(message))

    twiml = build_stream_twiml(
        get_stream_url(request),
        {
            "tenant_id": tenant_id,
            "caller_phone": caller_phone,
            "bot_phone": bot_phone,
            "forwarded_from": forwarded_from,
        },
    )
    logger.info(f"[INCOMING CALL] Connecting media stream - CallSid: {call_sid}")
    return xml_response(twiml)


@router.websocket("/voice/media-stream")
async def handle_media_stream(websocket: WebSocket, services: CallServices = Depends(get_call_services)):
    """Bidirectional Twilio media stream for one call."""
    await websocket.accept()
    session = MediaStreamSession(websocket.send_text, services)
    try:
        while not session.closed:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                logger.warning("[MEDIA STREAM] Ignoring non-JSON frame")
                continue
            await session.handle_event(message)
    except WebSocketDisconnect:
        logger.info(f"[MEDIA STREAM] {session.stream_sid} websocket disconnected")
    finally:
        await session.stop()


@router.post("/voice/status")
async def handle_call_status(request: Request):
    """
    Handle call status updates from Twilio.

    Sessions end on the media stream's stop event; this only acknowledges.
    """
    form = await request.form()
    logger.info(
        f"[CALL STATUS] Received status update - CallSid: {form.get('CallSid')}, "
        f"CallStatus: {form.get('CallStatus')}"
    )
    return Response(content="OK", media_type="text/plain")
