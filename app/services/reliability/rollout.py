"""Percentage rollout of the low-latency call configuration."""
import hashlib
from typing import Optional


def rollout_bucket(tenant_id: str) -> int:
    """Stable bucket 0-99 for a tenant, identical across processes and restarts."""
    digest = hashlib.sha256(tenant_id.encode("utf-8")).hexdigest()
    return int(digest, 16) % 100


def is_enrolled(tenant_id: Optional[str], rollout_percent: int) -> bool:
    """Whether a tenant gets the low-latency configuration.

    A tenant enrolled at some percentage stays enrolled at every higher one.
    """
    if not tenant_id:
        return False
    percent = max(0, min(100, int(rollout_percent)))
    return rollout_bucket(tenant_id) < percent
