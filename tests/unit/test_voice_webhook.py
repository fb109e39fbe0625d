"""Unit tests for the Twilio voice webhooks."""
import pytest

from app.services.agent.constants import ACCESS_DENIED_MESSAGES, CONFIGURATION_ERROR_MESSAGE
from app.services.persistence.models import AccessDecision

CALL_FORM = {
    "CallSid": "CA123",
    "From": "+4917000000",
    "To": "+4930999999",
}


class TestIncomingCall:
    """Test the incoming call webhook."""

    def test_connects_media_stream(self, test_client, mock_datastore):
        response = test_client.post("/webhooks/voice/incoming?tenant_id=rest-1", data=CALL_FORM)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        body = response.text
        assert '<Stream url="wss://testserver/webhooks/voice/media-stream">' in body
        assert '<Parameter name="tenant_id" value="rest-1" />' in body
        assert '<Parameter name="caller_phone" value="+4917000000" />' in body
        assert '<Parameter name="bot_phone" value="+4930999999" />' in body
        mock_datastore.check_access.assert_awaited_once_with("rest-1")

    def test_get_request_supported(self, test_client):
        response = test_client.get("/webhooks/voice/incoming", params={"tenant_id": "rest-1", **CALL_FORM})

        assert response.status_code == 200
        assert "<Connect>" in response.text

    def test_missing_tenant_rejected(self, test_client, mock_datastore):
        response = test_client.post("/webhooks/voice/incoming", data=CALL_FORM)

        assert CONFIGURATION_ERROR_MESSAGE in response.text
        assert "<Hangup/>" in response.text
        mock_datastore.check_access.assert_not_awaited()

    def test_unknown_tenant_rejected(self, test_client, mock_datastore):
        mock_datastore.check_access.return_value = AccessDecision(allowed=False, reason="not_found")

        response = test_client.post("/webhooks/voice/incoming?tenant_id=ghost", data=CALL_FORM)

        assert CONFIGURATION_ERROR_MESSAGE in response.text

    def test_expired_forwards_to_handoff_number(self, test_client, mock_datastore, tenant):
        mock_datastore.check_access.return_value = AccessDecision(allowed=False, reason="expired", settings=tenant)

        response = test_client.post("/webhooks/voice/incoming?tenant_id=rest-1", data=CALL_FORM)

        assert "<Dial>+4930222222</Dial>" in response.text
        assert "<Stream" not in response.text

    def test_forwarding_skips_source_number(self, test_client, mock_datastore, tenant):
        mock_datastore.check_access.return_value = AccessDecision(allowed=False, reason="expired", settings=tenant)

        response = test_client.post(
            "/webhooks/voice/incoming?tenant_id=rest-1", data={**CALL_FORM, "ForwardedFrom": "+4930222222"}
        )

        assert "<Dial>+4930111111</Dial>" in response.text

    def test_limit_exceeded_without_target_rejected(self, test_client, mock_datastore, tenant):
        no_numbers = tenant.model_copy(update={"handoff_numbers": []})
        mock_datastore.check_access.return_value = AccessDecision(
            allowed=False, reason="limit_exceeded", settings=no_numbers, calls_count=100
        )

        response = test_client.post("/webhooks/voice/incoming?tenant_id=rest-1", data=CALL_FORM)

        assert ACCESS_DENIED_MESSAGES["limit_exceeded"] in response.text
        assert "<Hangup/>" in response.text

    def test_access_check_exception_rejected(self, test_client, mock_datastore):
        mock_datastore.check_access.side_effect = RuntimeError("pool exhausted")

        response = test_client.post("/webhooks/voice/incoming?tenant_id=rest-1", data=CALL_FORM)

        assert response.status_code == 200
        assert CONFIGURATION_ERROR_MESSAGE in response.text


class TestStatusAndHealth:
    """Test the status callback and health endpoints."""

    def test_status_callback(self, test_client):
        response = test_client.post("/webhooks/voice/status", data={"CallSid": "CA123", "CallStatus": "completed"})

        assert response.status_code == 200
        assert response.text == "OK"

    @pytest.mark.usefixtures("clean_call_sessions")
    def test_health(self, test_client):
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "active_calls": 0}
