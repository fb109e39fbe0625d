"""Unit tests for transcript logging and reservation notifications."""
import json
from unittest.mock import AsyncMock

import httpx
import pytest

from app.services.persistence.models import StoreResult
from app.services.reliability.notifications import ReservationNotifier
from app.services.reliability.transcripts import TranscriptWriter


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TestTranscriptWriter:
    """Test inline and queued transcript writes."""

    @pytest.mark.asyncio
    async def test_inline_write(self, mock_datastore):
        writer = TranscriptWriter(mock_datastore)

        await writer.write(7, "user", "Hallo")

        mock_datastore.add_transcript_entry.assert_awaited_once_with(7, "user", "Hallo")

    @pytest.mark.asyncio
    async def test_skips_without_call_log_or_content(self, mock_datastore):
        writer = TranscriptWriter(mock_datastore)

        await writer.write(None, "user", "Hallo")
        await writer.write(7, "user", "")

        mock_datastore.add_transcript_entry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_inline_failure_is_swallowed(self, mock_datastore):
        mock_datastore.add_transcript_entry.side_effect = RuntimeError("connection reset")
        writer = TranscriptWriter(mock_datastore)

        await writer.write(7, "assistant", "Gerne")

        assert mock_datastore.add_transcript_entry.await_count == 1

    @pytest.mark.asyncio
    async def test_queued_write_retries_until_success(self, mock_datastore):
        mock_datastore.add_transcript_entry.side_effect = [
            StoreResult.failure("Database error"),
            StoreResult.failure("Database error"),
            StoreResult.success(),
        ]
        sleep = RecordingSleep()
        writer = TranscriptWriter(mock_datastore, retry_delays=[0.2, 0.5, 1.0], sleep=sleep)

        await writer.write(7, "user", "Freitag", queued=True)
        await writer.drain()
        await writer.stop()

        assert mock_datastore.add_transcript_entry.await_count == 3
        assert sleep.delays == [0.2, 0.5]

    @pytest.mark.asyncio
    async def test_queued_write_dropped_after_retries(self, mock_datastore):
        mock_datastore.add_transcript_entry.return_value = StoreResult.failure("Database error")
        sleep = RecordingSleep()
        writer = TranscriptWriter(mock_datastore, retry_delays=[0.2, 0.5], sleep=sleep)

        await writer.write(7, "user", "eins", queued=True)
        await writer.write(7, "user", "zwei", queued=True)
        await writer.drain()
        await writer.stop()

        assert mock_datastore.add_transcript_entry.await_count == 6
        assert sleep.delays == [0.2, 0.5, 0.2, 0.5]


def recording_transport(statuses):
    """MockTransport answering with the given status codes in order."""
    requests = []
    remaining = list(statuses)

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        status = remaining.pop(0)
        if isinstance(status, Exception):
            raise status
        return httpx.Response(status)

    return httpx.MockTransport(handler), requests


PAYLOAD = {"reservation_id": 42, "restaurant_id": "rest-1", "date": "2025-06-13", "time": "19:00", "party_size": 4}


class TestReservationNotifier:
    """Test webhook delivery with backoff."""

    @pytest.mark.asyncio
    async def test_delivers_once(self):
        transport, requests = recording_transport([200])
        async with httpx.AsyncClient(transport=transport) as client:
            notifier = ReservationNotifier("https://hooks.example.com/res", client, sleep=RecordingSleep())

            assert await notifier.deliver(PAYLOAD)

        assert requests == [PAYLOAD]

    @pytest.mark.asyncio
    async def test_server_errors_back_off_exponentially(self):
        transport, requests = recording_transport([503, httpx.ConnectError("refused"), 502, 201])
        sleep = RecordingSleep()
        async with httpx.AsyncClient(transport=transport) as client:
            notifier = ReservationNotifier("https://hooks.example.com/res", client, max_attempts=4, sleep=sleep)

            assert await notifier.deliver(PAYLOAD)

        assert len(requests) == 4
        assert sleep.delays == [0.5, 1.0, 2.0]

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        transport, requests = recording_transport([422])
        sleep = RecordingSleep()
        async with httpx.AsyncClient(transport=transport) as client:
            notifier = ReservationNotifier("https://hooks.example.com/res", client, sleep=sleep)

            assert not await notifier.deliver(PAYLOAD)

        assert len(requests) == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        transport, requests = recording_transport([500, 500, 500])
        async with httpx.AsyncClient(transport=transport) as client:
            notifier = ReservationNotifier(
                "https://hooks.example.com/res", client, max_attempts=3, sleep=RecordingSleep()
            )

            assert not await notifier.deliver(PAYLOAD)

        assert len(requests) == 3

    @pytest.mark.asyncio
    async def test_schedule_runs_in_background(self):
        transport, requests = recording_transport([200])
        async with httpx.AsyncClient(transport=transport) as client:
            notifier = ReservationNotifier("https://hooks.example.com/res", client, sleep=RecordingSleep())

            task = notifier.schedule(PAYLOAD)
            await notifier.wait_idle()

        assert task.result() is True
        assert requests == [PAYLOAD]

    def test_schedule_without_url_is_noop(self):
        notifier = ReservationNotifier("", AsyncMock())

        assert notifier.schedule(PAYLOAD) is None
