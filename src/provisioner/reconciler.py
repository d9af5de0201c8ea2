"""Provisioning reconciler for fire-and-forget subscription orders.

Cloud-iQ accepts a subscription order (HTTP 202) long before the
subscription exists in either Cloud-iQ or Azure. "The order succeeded"
and "the subscription is ready" are therefore different events, and the
reconciler bridges them:

1. Place the order. A synchronous answer is returned verbatim.
2. On 202, discover the subscription within a bounded time budget:
   - cloud discovery polls Azure Resource Manager by display name and
     yields the GUID; the Cloud-iQ numeric id is left unknown and filled
     in later by the read path;
   - billing discovery polls Cloud-iQ by name and yields the full record.
3. If discovery does not succeed in time, return a pending record
   (GUID "pending", status provisioning) instead of failing.

Only the order itself can fail the operation. It is attempted exactly
once; retries happen only inside the discovery loops.
"""

from __future__ import annotations

import asyncio
import logging
import time

from .auth import AuthError
from .billing import ACCEPTED, APIError, BillingClient, NotFoundError
from .cloud import CloudPoller, DiscoveryTimeoutError
from .config import DEFAULT_POLL_INTERVAL_SECONDS, DiscoverySource
from .deadline import Clock, Deadline, Sleeper
from .models import PENDING_SUBSCRIPTION_ID, Subscription, SubscriptionStatus

logger = logging.getLogger(__name__)


def pending_subscription(plan_id: int, name: str) -> Subscription:
    """Record for an accepted order that neither backend has confirmed."""
    return Subscription(
        id=None,
        friendly_name=name,
        subscription_id=PENDING_SUBSCRIPTION_ID,
        status=SubscriptionStatus.PROVISIONING.value,
        azure_plan_id=plan_id,
    )


class ProvisioningReconciler:
    """Creates subscriptions and reconciles them across Cloud-iQ and Azure."""

    def __init__(
        self,
        billing: BillingClient,
        cloud: CloudPoller,
        *,
        discovery_source: DiscoverySource = DiscoverySource.CLOUD,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        sleeper: Sleeper = asyncio.sleep,
        clock: Clock = time.monotonic,
    ) -> None:
        self._billing = billing
        self._cloud = cloud
        self._discovery_source = discovery_source
        self._poll_interval = poll_interval_seconds
        self._sleeper = sleeper
        self._clock = clock

    async def create(self, plan_id: int, name: str, timeout_seconds: float) -> Subscription:
        """Order a subscription and wait up to ``timeout_seconds`` for it.

        Returns:
            The Cloud-iQ record, an Azure-confirmed record (status active,
            real GUID, unknown id) or a pending record.

        Raises:
            APIError: If Cloud-iQ rejects the order.
            AuthError: If no Cloud-iQ token can be acquired for the order.
            ValueError: If ``timeout_seconds`` is negative. Nothing is ordered.
        """
        # Built before the order so an invalid timeout never places one
        deadline = Deadline(timeout_seconds, clock=self._clock)

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, self._billing.create_subscription, plan_id, name)

        if result is not ACCEPTED:
            logger.info(
                "Subscription created synchronously",
                extra={"azure_plan_id": plan_id, "id": result.id, "status": result.status},
            )
            return result

        logger.info(
            f"Subscription creation request accepted (HTTP 202). "
            f"The subscription '{name}' is being provisioned.",
            extra={"discovery_source": self._discovery_source.value},
        )

        if self._discovery_source is DiscoverySource.BILLING:
            return await self._discover_in_billing(plan_id, name, deadline)
        return await self._discover_in_cloud(plan_id, name, deadline)

    async def _discover_in_cloud(self, plan_id: int, name: str, deadline: Deadline) -> Subscription:
        try:
            guid = await self._cloud.find_subscription_guid_by_name(name, deadline)
        except (DiscoveryTimeoutError, AuthError) as e:
            logger.warning(
                f"Failed to confirm subscription in Azure: {e}. Falling back to pending state.",
                extra={"subscription_name": name, "error_type": type(e).__name__},
            )
            logger.info(
                "It may take several minutes for the subscription to appear in Cloud-iQ "
                "after Azure provisions it. Synchronize in the Cloud-iQ portal or read the "
                "subscription again later to update the state."
            )
            return pending_subscription(plan_id, name)

        logger.info(
            "Confirmed subscription creation in Azure",
            extra={"subscription_name": name, "subscription_id": guid},
        )
        # The Cloud-iQ id stays unknown until the read path resolves it
        return Subscription(
            id=None,
            friendly_name=name,
            subscription_id=guid,
            status=SubscriptionStatus.ACTIVE.value,
            azure_plan_id=plan_id,
        )

    async def _discover_in_billing(
        self, plan_id: int, name: str, deadline: Deadline
    ) -> Subscription:
        loop = asyncio.get_running_loop()
        attempt = 0

        while True:
            attempt += 1
            try:
                found = await loop.run_in_executor(
                    None, self._billing.find_subscription_by_name, plan_id, name
                )
            except NotFoundError:
                logger.info(
                    f"Subscription '{name}' not in Cloud-iQ yet",
                    extra={"attempt": attempt, "remaining_seconds": round(deadline.remaining(), 1)},
                )
            except (APIError, AuthError) as e:
                logger.warning(
                    f"Failed to list Cloud-iQ subscriptions: {e}",
                    extra={"attempt": attempt, "error_type": type(e).__name__},
                )
            else:
                if found.id:
                    logger.info(
                        "Found subscription in Cloud-iQ",
                        extra={"id": found.id, "subscription_id": found.subscription_id},
                    )
                    return found

            if not await deadline.sleep(self._poll_interval, self._sleeper):
                break

        logger.warning(
            f"Timeout waiting for subscription '{name}' in Cloud-iQ after "
            f"{deadline.timeout_seconds:g}s. Falling back to pending state.",
            extra={"attempts": attempt},
        )
        return pending_subscription(plan_id, name)
