"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for api_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from api_mock import BASE_URL, FakeClock, MockCloudIQ, MockTokenCredential  # noqa: E402

from provisioner.auth import TokenCache  # noqa: E402
from provisioner.billing import BillingClient  # noqa: E402
from provisioner.config import Config  # noqa: E402

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> Config:
    return Config(client_id="client-id", client_secret="client-secret", base_url=BASE_URL)


@pytest.fixture
def api() -> MockCloudIQ:
    return MockCloudIQ()


@pytest.fixture
def credential(clock: FakeClock) -> MockTokenCredential:
    return MockTokenCredential(clock)


@pytest.fixture
def tokens(
    config: Config, api: MockCloudIQ, credential: MockTokenCredential, clock: FakeClock
) -> TokenCache:
    return TokenCache(config, http_client=api.client(), cloud_credential=credential, clock=clock)


@pytest.fixture
def billing(tokens: TokenCache, api: MockCloudIQ) -> BillingClient:
    return BillingClient(
        tokens, base_url=BASE_URL, organization_id=4051878, http_client=api.client()
    )
