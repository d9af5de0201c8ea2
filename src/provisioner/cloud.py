"""Azure Resource Manager discovery of newly ordered subscriptions.

Azure usually materializes a subscription well before Cloud-iQ
synchronizes it. Listing the subscriptions visible to the configured
identity and matching on display name is the fastest way to learn the
new subscription's GUID.

The poller sleeps first and lists second: a subscription never exists
in Azure immediately after the order is accepted, so an immediate check
would only spend a rate-limited call.
"""

from __future__ import annotations

import asyncio
import logging

from azure.core.exceptions import AzureError
from azure.mgmt.resource import SubscriptionClient

from .auth import AuthError, CachedCloudCredential, TokenCache
from .config import DEFAULT_POLL_INTERVAL_SECONDS
from .deadline import Deadline, Sleeper
from .models import CloudSubscription

logger = logging.getLogger(__name__)


class DiscoveryTimeoutError(TimeoutError):
    """Raised when a discovery loop exceeds its deadline."""

    pass


class CloudPoller:
    """Finds subscriptions in Azure Resource Manager by display name."""

    def __init__(
        self,
        tokens: TokenCache,
        *,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        subscription_client: SubscriptionClient | None = None,
        sleeper: Sleeper = asyncio.sleep,
    ) -> None:
        """Initialize the poller.

        Args:
            tokens: Token cache providing the Resource Manager token.
            poll_interval_seconds: Pause before each listing.
            subscription_client: Pre-built client; by default one is created
                on first use with the cache as its credential.
            sleeper: Coroutine used to wait between attempts.
        """
        self._tokens = tokens
        self._poll_interval = poll_interval_seconds
        self._client = subscription_client
        self._sleeper = sleeper

    def _subscription_client(self) -> SubscriptionClient:
        if self._client is None:
            self._client = SubscriptionClient(credential=CachedCloudCredential(self._tokens))
        return self._client

    def list_subscriptions(self) -> list[CloudSubscription]:
        """List every subscription visible to the Resource Manager identity."""
        subscriptions: list[CloudSubscription] = []
        for sub in self._subscription_client().subscriptions.list():
            state = getattr(sub.state, "value", sub.state)
            subscriptions.append(
                CloudSubscription(
                    subscription_id=sub.subscription_id or "",
                    display_name=sub.display_name or "",
                    state=state or "",
                )
            )
        return subscriptions

    async def find_subscription_guid_by_name(self, name: str, deadline: Deadline) -> str:
        """Poll until a subscription named ``name`` appears.

        Errors on individual attempts are logged and treated as "not found
        yet"; only the deadline ends the loop.

        Returns:
            The subscription GUID.

        Raises:
            AuthError: If no Resource Manager token can be acquired up front.
            DiscoveryTimeoutError: If the deadline passes first.
        """
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._tokens.get_cloud_token)

        logger.info(
            "Polling Azure Resource Manager for subscription",
            extra={
                "subscription_name": name,
                "timeout_seconds": deadline.timeout_seconds,
                "poll_interval_seconds": self._poll_interval,
            },
        )

        attempt = 0

        while await deadline.sleep(self._poll_interval, self._sleeper):
            attempt += 1
            try:
                subscriptions = await loop.run_in_executor(None, self.list_subscriptions)
            except (AzureError, AuthError) as e:
                # Transient failures are expected while polling
                logger.warning(
                    f"Failed to list Azure subscriptions: {e}",
                    extra={"attempt": attempt, "error_type": type(e).__name__},
                )
                continue

            for sub in subscriptions:
                if sub.display_name == name:
                    logger.info(
                        "Found subscription in Azure",
                        extra={
                            "subscription_name": name,
                            "subscription_id": sub.subscription_id,
                            "state": sub.state,
                            "attempt": attempt,
                        },
                    )
                    return sub.subscription_id

            logger.info(
                f"Subscription '{name}' not found in Azure yet",
                extra={"attempt": attempt, "remaining_seconds": round(deadline.remaining(), 1)},
            )

        raise DiscoveryTimeoutError(
            f"timeout waiting for subscription '{name}' to appear in Azure "
            f"after {deadline.timeout_seconds:g}s"
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
