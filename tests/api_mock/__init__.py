"""Cloud-iQ and Azure API mocks for testing.

Provides in-memory stand-ins for both backends the provisioner talks to,
so every operation can be exercised without network access or an Azure
login.

Usage:
    from api_mock import FakeClock, MockCloudIQ, MockSubscriptionClient

    api = MockCloudIQ()
    api.add_subscription(873834, 42, "sub-a", "1111-...")
    billing = BillingClient(tokens, base_url=BASE_URL, organization_id=1,
                            http_client=api.client())
"""

from .arm import MockArmSubscription, MockSubscriptionClient, MockSubscriptionState
from .clock import FakeClock
from .cloudiq import BASE_URL, MockCloudIQ, MockSubscription
from .credential import MockTokenCredential

__all__ = [
    "BASE_URL",
    "FakeClock",
    "MockArmSubscription",
    "MockCloudIQ",
    "MockSubscription",
    "MockSubscriptionClient",
    "MockSubscriptionState",
    "MockTokenCredential",
]
