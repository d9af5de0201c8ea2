"""Tests for pending subscription resolution."""

import pytest
from api_mock import MockCloudIQ

from provisioner.billing import APIError, BillingClient
from provisioner.resolver import STILL_PENDING, PendingStateResolver

PLAN_ID = 873834
GUID = "11111111-1111-1111-1111-111111111111"


class TestPendingStateResolver:
    def test_still_pending_when_not_listed(self, billing: BillingClient) -> None:
        assert PendingStateResolver(billing).resolve(PLAN_ID, "sub-a") is STILL_PENDING

    def test_repeated_resolve_of_missing_record_only_reads(
        self, billing: BillingClient, api: MockCloudIQ
    ) -> None:
        resolver = PendingStateResolver(billing)

        assert resolver.resolve(PLAN_ID, "sub-a") is STILL_PENDING
        assert resolver.resolve(PLAN_ID, "sub-a") is STILL_PENDING

        assert len(api.api_requests) == 2
        assert {r.method for r in api.api_requests} == {"GET"}

    def test_resolves_synced_record(self, billing: BillingClient, api: MockCloudIQ) -> None:
        api.add_subscription(PLAN_ID, 42, "sub-a", GUID)

        resolved = PendingStateResolver(billing).resolve(PLAN_ID, "sub-a")

        assert resolved is not STILL_PENDING
        assert resolved.id == 42
        assert resolved.subscription_id == GUID
        assert resolved.status == "active"

    def test_record_without_id_is_still_pending(
        self, billing: BillingClient, api: MockCloudIQ
    ) -> None:
        api.add_subscription(PLAN_ID, 0, "sub-a", GUID)

        assert PendingStateResolver(billing).resolve(PLAN_ID, "sub-a") is STILL_PENDING

    def test_idempotent(self, billing: BillingClient, api: MockCloudIQ) -> None:
        """Test that resolving twice yields the same record and changes nothing."""
        api.add_subscription(PLAN_ID, 42, "sub-a", GUID)
        resolver = PendingStateResolver(billing)

        first = resolver.resolve(PLAN_ID, "sub-a")
        second = resolver.resolve(PLAN_ID, "sub-a")

        assert first == second
        assert {r.method for r in api.api_requests} == {"GET"}

    def test_list_failure_propagates(self, billing: BillingClient, api: MockCloudIQ) -> None:
        api.inject_failure("GET", f"/api/v1/azureplans/{PLAN_ID}/azuresubscriptions", 500)

        with pytest.raises(APIError) as exc_info:
            PendingStateResolver(billing).resolve(PLAN_ID, "sub-a")

        assert exc_info.value.status == 500
