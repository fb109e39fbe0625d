"""Twilio call control: TwiML markup and in-progress call updates."""
import logging
import re
from typing import Dict, Iterable, Optional
from xml.sax.saxutils import escape

import httpx
from pydantic import BaseModel

from app.core.config import settings

logger = logging.getLogger(__name__)

_XML_ATTR_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def _attr(value: str) -> str:
    return escape(value, _XML_ATTR_ENTITIES)


def normalize_phone(number: Optional[str]) -> str:
    """Digits of a phone number, with a leading 00 treated like +."""
    digits = re.sub(r"\D", "", number or "")
    if digits.startswith("00"):
        digits = digits[2:]
    return digits


def select_transfer_target(
    candidates: Iterable[str],
    bot_number: Optional[str] = None,
    forwarded_from: Optional[str] = None,
) -> Optional[str]:
    """First candidate that is neither our own number nor the forwarding source."""
    excluded = {normalize_phone(n) for n in (bot_number, forwarded_from) if normalize_phone(n)}
    for number in candidates:
        normalized = normalize_phone(number)
        if normalized and normalized not in excluded:
            return number.strip()
    return None


def build_stream_twiml(stream_url: str, parameters: Dict[str, Optional[str]]) -> str:
    """Connect the call to our bidirectional media stream."""
    params = "".join(
        f'\n            <Parameter name="{_attr(name)}" value="{_attr(value or "")}" />'
        for name, value in parameters.items()
    )
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<Response>
    <Connect>
        <Stream url="{_attr(stream_url)}">{params}
        </Stream>
    </Connect>
</Response>"""


def build_dial_twiml(phone_number: str) -> str:
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<Response>
    <Dial>{escape(phone_number.strip())}</Dial>
</Response>"""


def build_reject_twiml(message: str) -> str:
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<Response>
    <Say language="de-DE">{escape(message)}</Say>
    <Hangup/>
</Response>"""


def build_hangup_twiml() -> str:
    return """<?xml version="1.0" encoding="UTF-8"?>
<Response>
    <Hangup/>
</Response>"""


class TelephonyResult(BaseModel):
    ok: bool
    error: Optional[str] = None


class TelephonyClient:
    """Updates in-progress calls through the Twilio Calls REST resource."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        api_base_url: Optional[str] = None,
    ):
        self.client = client
        self.account_sid = account_sid or settings.twilio_account_sid
        self.auth_token = auth_token or settings.twilio_auth_token
        self.api_base_url = (api_base_url or settings.twilio_api_base_url).rstrip("/")

    async def _update_call(self, call_sid: Optional[str], twiml: str) -> TelephonyResult:
        if not self.account_sid or not self.auth_token:
            return TelephonyResult(ok=False, error="Missing Twilio credentials")
        if not call_sid:
            return TelephonyResult(ok=False, error="Missing call sid")

        url = f"{self.api_base_url}/Accounts/{self.account_sid}/Calls/{call_sid}.json"
        try:
            response = await self.client.post(
                url,
                data={"Twiml": twiml},
                auth=(self.account_sid, self.auth_token),
                timeout=10.0,
            )
        except httpx.HTTPError as e:
            logger.error(f"[TELEPHONY] Call update failed for {call_sid}: {type(e).__name__}: {e}")
            return TelephonyResult(ok=False, error=str(e) or type(e).__name__)

        if response.status_code >= 400:
            logger.error(f"[TELEPHONY] Call update for {call_sid} returned {response.status_code}")
            return TelephonyResult(ok=False, error=response.text or f"HTTP {response.status_code}")
        return TelephonyResult(ok=True)

    async def transfer_call(self, call_sid: Optional[str], phone_number: Optional[str]) -> TelephonyResult:
        if not phone_number:
            return TelephonyResult(ok=False, error="Missing phone number")
        logger.info(f"[TELEPHONY] Transferring {call_sid} to {phone_number}")
        return await self._update_call(call_sid, build_dial_twiml(phone_number))

    async def hangup_call(self, call_sid: Optional[str]) -> TelephonyResult:
        logger.info(f"[TELEPHONY] Hanging up {call_sid}")
        return await self._update_call(call_sid, build_hangup_twiml())
