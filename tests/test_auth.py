"""Tests for the Cloud-iQ and Azure Resource Manager token cache."""

import threading
from urllib.parse import parse_qs

import pytest
from api_mock import BASE_URL, FakeClock, MockCloudIQ, MockTokenCredential

from provisioner.auth import AuthError, BearerToken, CachedCloudCredential, TokenCache
from provisioner.config import ARM_SCOPE, Config


class TestBearerToken:
    def test_fresh_until_margin(self) -> None:
        token = BearerToken(value="t", expires_at=1000.0)

        assert token.is_fresh(939.0)
        assert not token.is_fresh(940.0)
        assert not token.is_fresh(1001.0)


class TestBillingToken:
    """Tests for the Cloud-iQ token slot."""

    def test_client_credentials_request(self, tokens: TokenCache, api: MockCloudIQ) -> None:
        """Test the token request shape for the client-credentials grant."""
        assert tokens.get_billing_token() == "billing-token-1"

        request = api.token_requests[0]
        assert request.url == f"{BASE_URL}/api/v1/connect/token"
        assert request.headers["Authorization"].startswith("Basic ")
        form = parse_qs(request.content.decode())
        assert form["grant_type"] == ["client_credentials"]
        assert form["scope"] == ["CustomerApi"]
        assert "username" not in form

    def test_password_grant_request(
        self, api: MockCloudIQ, credential: MockTokenCredential, clock: FakeClock
    ) -> None:
        config = Config(
            client_id="id",
            client_secret="secret",
            base_url=BASE_URL,
            username="user@example.com",
            password="pw",
        )
        cache = TokenCache(config, http_client=api.client(), cloud_credential=credential, clock=clock)

        cache.get_billing_token()

        form = parse_qs(api.token_requests[0].content.decode())
        assert form["grant_type"] == ["password"]
        assert form["username"] == ["user@example.com"]
        assert form["password"] == ["pw"]

    def test_token_is_cached_within_margin(
        self, tokens: TokenCache, api: MockCloudIQ, clock: FakeClock
    ) -> None:
        """Test that a second call inside the validity window makes no request."""
        first = tokens.get_billing_token()
        clock.advance(3600 - 61)
        second = tokens.get_billing_token()

        assert first == second
        assert len(api.token_requests) == 1

    def test_token_refreshed_inside_margin(
        self, tokens: TokenCache, api: MockCloudIQ, clock: FakeClock
    ) -> None:
        tokens.get_billing_token()
        clock.advance(3600 - 60)

        assert tokens.get_billing_token() == "billing-token-2"
        assert len(api.token_requests) == 2

    def test_rejected_request_raises_auth_error(self, tokens: TokenCache, api: MockCloudIQ) -> None:
        api.inject_failure("POST", "/api/v1/connect/token", 400, body='{"error":"invalid_client"}')

        with pytest.raises(AuthError) as exc_info:
            tokens.get_billing_token()

        assert exc_info.value.status == 400
        assert "invalid_client" in exc_info.value.body

    def test_failed_acquisition_is_not_cached(self, tokens: TokenCache, api: MockCloudIQ) -> None:
        api.inject_failure("POST", "/api/v1/connect/token", 500)

        with pytest.raises(AuthError):
            tokens.get_billing_token()

        assert tokens.get_billing_token() == "billing-token-1"
        assert api.calls("POST", "/api/v1/connect/token") == 2

    def test_concurrent_callers_share_one_acquisition(
        self, tokens: TokenCache, api: MockCloudIQ
    ) -> None:
        results: list[str] = []

        def fetch() -> None:
            results.append(tokens.get_billing_token())

        threads = [threading.Thread(target=fetch) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results == ["billing-token-1"] * 8
        assert len(api.token_requests) == 1


class TestCloudToken:
    """Tests for the Azure Resource Manager token slot."""

    def test_acquires_management_scope(
        self, tokens: TokenCache, credential: MockTokenCredential
    ) -> None:
        assert tokens.get_cloud_token() == "mock-arm-token-1"
        assert credential.get_token_calls[0]["scopes"] == (ARM_SCOPE,)

    def test_session_token_uses_fixed_lifetime(
        self, tokens: TokenCache, credential: MockTokenCredential, clock: FakeClock
    ) -> None:
        """Test that CLI session tokens expire 50 minutes after acquisition."""
        token = tokens.get_cloud_bearer_token()
        assert token.expires_at == clock() + 50 * 60

        clock.advance(50 * 60 - 61)
        tokens.get_cloud_token()
        assert credential.get_token_call_count == 1

        clock.advance(1)
        tokens.get_cloud_token()
        assert credential.get_token_call_count == 2

    def test_service_principal_uses_reported_expiry(
        self, api: MockCloudIQ, clock: FakeClock
    ) -> None:
        config = Config(
            client_id="id",
            client_secret="secret",
            base_url=BASE_URL,
            azure_client_id="app",
            azure_client_secret="app-secret",
            azure_tenant_id="tenant",
        )
        credential = MockTokenCredential(clock, validity_seconds=7200)
        cache = TokenCache(config, http_client=api.client(), cloud_credential=credential, clock=clock)

        token = cache.get_cloud_bearer_token()

        assert token.expires_at == int(clock()) + 7200

    def test_authentication_failure_raises_auth_error(
        self, tokens: TokenCache, credential: MockTokenCredential
    ) -> None:
        credential.set_failure(True, "Please run 'az login'")

        with pytest.raises(AuthError) as exc_info:
            tokens.get_cloud_token()

        assert "az login" in str(exc_info.value)

    def test_slots_are_independent(
        self, tokens: TokenCache, api: MockCloudIQ, credential: MockTokenCredential
    ) -> None:
        """Test that a cloud failure leaves the billing slot usable."""
        credential.set_failure(True)

        with pytest.raises(AuthError):
            tokens.get_cloud_token()

        assert tokens.get_billing_token() == "billing-token-1"


class TestCachedCloudCredential:
    def test_serves_cached_token(
        self, tokens: TokenCache, credential: MockTokenCredential, clock: FakeClock
    ) -> None:
        adapter = CachedCloudCredential(tokens)

        first = adapter.get_token(ARM_SCOPE)
        second = adapter.get_token(ARM_SCOPE)

        assert first.token == second.token == "mock-arm-token-1"
        assert first.expires_on == int(clock() + 50 * 60)
        assert credential.get_token_call_count == 1
