"""Execution of the reservation tools the language model may call."""
import json
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ValidationError

from app.services.capacity.engine import (
    format_minutes,
    is_closed_day,
    is_past_date,
    parse_iso_date,
    parse_time_to_minutes,
    peak_occupancy,
    resolve_date,
)
from app.services.capacity.models import AvailabilityQuery, AvailabilityResult, ReservationRequest
from app.services.persistence.datastore import Datastore
from app.services.persistence.models import TenantSettings
from app.services.reliability.notifications import ReservationNotifier

logger = logging.getLogger(__name__)


class ToolCallResult(BaseModel):
    """Result of one tool call, appended to the conversation as a tool message."""

    tool_call_id: str
    name: str
    payload: Dict[str, Any]
    # Datastore or unexpected failure, as opposed to a domain-rule rejection
    system_error: bool = False
    reservation_id: Optional[int] = None

    @property
    def content(self) -> str:
        return json.dumps(self.payload, ensure_ascii=False)


class SystemToolError(Exception):
    """A tool could not reach the datastore."""


class ToolExecutor:
    """Runs check_availability and create_reservation for one call."""

    def __init__(
        self,
        datastore: Datastore,
        tenant: TenantSettings,
        caller_phone: Optional[str] = None,
        slot_duration_minutes: int = 60,
        notifier: Optional[ReservationNotifier] = None,
    ):
        self.datastore = datastore
        self.tenant = tenant
        self.caller_phone = caller_phone
        self.slot_duration_minutes = slot_duration_minutes
        self.notifier = notifier

    async def execute(self, tool_call: Dict[str, Any], last_user_text: str, today: date) -> ToolCallResult:
        """Run a single tool call. Never raises."""
        call_id = tool_call.get("id", "")
        function = tool_call.get("function") or {}
        name = function.get("name", "")
        logger.info(f"[TOOLS] {name} {function.get('arguments')}")

        try:
            arguments = json.loads(function.get("arguments") or "{}")
        except ValueError:
            return ToolCallResult(tool_call_id=call_id, name=name, payload={"error": "Invalid arguments"})

        try:
            if name == "check_availability":
                result = await self.check_availability(arguments, last_user_text, today)
                return ToolCallResult(tool_call_id=call_id, name=name, payload=result.model_dump(exclude_none=True))
            if name == "create_reservation":
                payload, reservation_id = await self.create_reservation(arguments, last_user_text, today)
                return ToolCallResult(
                    tool_call_id=call_id, name=name, payload=payload, reservation_id=reservation_id
                )
            return ToolCallResult(tool_call_id=call_id, name=name, payload={"error": f"Unknown tool {name}"})
        except SystemToolError as e:
            logger.error(f"[TOOLS] {name} failed: {e}")
            return ToolCallResult(
                tool_call_id=call_id, name=name, payload={"success": False, "error": str(e)}, system_error=True
            )
        except Exception as e:
            logger.error(f"[TOOLS] {name} raised {type(e).__name__}: {e}", exc_info=True)
            return ToolCallResult(
                tool_call_id=call_id,
                name=name,
                payload={"success": False, "error": "Internal error"},
                system_error=True,
            )

    def _parse_query(self, arguments: Dict[str, Any], last_user_text: str, today: date) -> AvailabilityQuery:
        resolved = resolve_date(str(arguments.get("date", "")), last_user_text, today)
        return AvailabilityQuery(
            date=resolved,
            time=str(arguments.get("time", "")),
            party_size=int(float(arguments.get("party_size") or 0)),
        )

    async def _booked_slots(self, day: date) -> List[Tuple[int, int]]:
        listing = await self.datastore.list_confirmed_reservations(self.tenant.id, day)
        if not listing.ok:
            raise SystemToolError(listing.error or "Database error")
        slots = []
        for time_value, party_size in listing.data:
            start = parse_time_to_minutes(time_value)
            if start is not None:
                slots.append((start, int(party_size or 0)))
        return slots

    async def check_availability(
        self, arguments: Dict[str, Any], last_user_text: str, today: date
    ) -> AvailabilityResult:
        try:
            query = self._parse_query(arguments, last_user_text, today)
        except (TypeError, ValueError, ValidationError):
            return AvailabilityResult(
                date=str(arguments.get("date", "")),
                time=str(arguments.get("time", "")),
                party_size=0,
                available=False,
                error="Invalid arguments",
            )
        return await self._evaluate(query, today)

    async def _evaluate(self, query: AvailabilityQuery, today: date) -> AvailabilityResult:
        result = AvailabilityResult(
            date=query.date, time=query.time, party_size=query.party_size, available=False
        )
        day = parse_iso_date(query.date)
        if day is None:
            result.error = "Invalid date"
            return result
        if is_past_date(day, today):
            logger.warning(f"[TOOLS] Past date rejected: {query.date}")
            result.is_past_date = True
            result.error = "Past date"
            return result
        if is_closed_day(day, self.tenant.closed_days):
            logger.info(f"[TOOLS] Closed day rejected: {query.date}")
            result.is_closed_day = True
            result.error = "Closed day"
            return result
        start = parse_time_to_minutes(query.time)
        if start is None:
            result.error = "Invalid time"
            return result
        if query.party_size <= 0:
            result.error = "Invalid party size"
            return result

        result.time = format_minutes(start)
        peak = peak_occupancy(await self._booked_slots(day), start, query.party_size, self.slot_duration_minutes)
        result.peak_occupancy = peak
        result.available = peak <= self.tenant.max_capacity
        result.remaining = self.tenant.max_capacity - peak
        logger.info(
            f"[TOOLS] {query.date} {result.time} ({query.party_size} guests): "
            f"{'FREE' if result.available else 'FULL'} ({peak}/{self.tenant.max_capacity})"
        )
        return result

    async def create_reservation(
        self, arguments: Dict[str, Any], last_user_text: str, today: date
    ) -> Tuple[Dict[str, Any], Optional[int]]:
        try:
            query = self._parse_query(arguments, last_user_text, today)
            request = ReservationRequest(
                **query.model_dump(),
                name=(str(arguments.get("name") or "").strip() or None),
                phone=self.caller_phone,
            )
        except (TypeError, ValueError, ValidationError):
            return {"success": False, "error": "Invalid arguments"}, None

        if not request.name:
            return {"success": False, "error": "Missing name"}, None

        check = await self._evaluate(request, today)
        if check.error or not check.available:
            payload = {"success": False, **check.model_dump(exclude_none=True)}
            payload.setdefault("error", "No capacity")
            return payload, None

        created = await self.datastore.create_reservation(
            self.tenant.id,
            parse_iso_date(request.date),
            check.time,
            request.party_size,
            customer_name=request.name,
            phone_number=request.phone,
        )
        if not created.ok:
            raise SystemToolError(created.error or "Database error")

        if self.notifier is not None:
            self.notifier.schedule(
                {
                    "reservation_id": created.data,
                    "restaurant_id": self.tenant.id,
                    "date": request.date,
                    "time": check.time,
                    "party_size": request.party_size,
                    "name": request.name,
                    "phone": request.phone,
                }
            )

        return {
            "success": True,
            "id": created.data,
            "date": request.date,
            "time": check.time,
            "party_size": request.party_size,
            "name": request.name,
        }, created.data
