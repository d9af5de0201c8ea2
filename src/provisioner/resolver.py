"""Resolution of pending subscriptions on later reads.

A pending record only knows the display name it was ordered with. Once
Cloud-iQ synchronizes the subscription, the full record (numeric id,
GUID, status) can be found by that name and replaces the pending one.
Resolution only reads; it never changes anything in Cloud-iQ.
"""

from __future__ import annotations

import enum
import logging

from .billing import BillingClient, NotFoundError
from .models import Subscription

logger = logging.getLogger(__name__)


class ResolveOutcome(enum.Enum):
    STILL_PENDING = "still_pending"


STILL_PENDING = ResolveOutcome.STILL_PENDING


class PendingStateResolver:
    def __init__(self, billing: BillingClient) -> None:
        self._billing = billing

    def resolve(self, plan_id: int, name: str) -> Subscription | ResolveOutcome:
        """Look up a pending subscription by name.

        Returns:
            The synchronized Cloud-iQ record, or STILL_PENDING.

        Raises:
            APIError: If listing the plan's subscriptions fails.
        """
        logger.debug(
            "Checking for pending subscription sync",
            extra={"subscription_name": name, "azure_plan_id": plan_id},
        )
        try:
            subscription = self._billing.find_subscription_by_name(plan_id, name)
        except NotFoundError:
            logger.info("Subscription not yet synced to Cloud-iQ", extra={"subscription_name": name})
            return STILL_PENDING

        if not subscription.id:
            # Listed but without a usable id; treat as not yet synchronized
            logger.info(
                "Subscription listed without an id, still pending",
                extra={"subscription_name": name},
            )
            return STILL_PENDING

        logger.info(
            "Subscription synced to Cloud-iQ",
            extra={"id": subscription.id, "subscription_id": subscription.subscription_id},
        )
        return subscription
