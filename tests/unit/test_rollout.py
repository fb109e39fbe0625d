"""Unit tests for the low-latency rollout bucket."""
import pytest

from app.services.reliability.rollout import is_enrolled, rollout_bucket

TENANTS = [f"restaurant-{n}" for n in range(200)]


class TestRollout:
    """Test deterministic percentage enrollment."""

    def test_bucket_is_stable_and_in_range(self):
        for tenant_id in TENANTS:
            bucket = rollout_bucket(tenant_id)
            assert 0 <= bucket < 100
            assert rollout_bucket(tenant_id) == bucket

    def test_known_bucket(self):
        assert rollout_bucket("rest-1") == 5
        assert not is_enrolled("rest-1", 5)
        assert is_enrolled("rest-1", 6)

    @pytest.mark.parametrize("lower,higher", [(0, 10), (10, 50), (50, 90), (90, 100)])
    def test_enrollment_grows_monotonically(self, lower, higher):
        for tenant_id in TENANTS:
            if is_enrolled(tenant_id, lower):
                assert is_enrolled(tenant_id, higher)

    def test_edges(self):
        assert not any(is_enrolled(tenant_id, 0) for tenant_id in TENANTS)
        assert all(is_enrolled(tenant_id, 100) for tenant_id in TENANTS)
        assert all(is_enrolled(tenant_id, 250) for tenant_id in TENANTS)
        assert not is_enrolled(None, 100)
        assert not is_enrolled("", 100)
