"""Caller-facing lifecycle operations for an Azure subscription.

The caller owns durable state: every operation takes the previously
stored SubscriptionState (where there is one) and returns the state to
store next, together with advisory warnings. "Still provisioning" is
always a successful outcome carrying a warning, never an error.

Records whose Cloud-iQ id is unknown (pending) can only be read. Rename,
cancel and enable fail with PendingSubscriptionError before any request
is sent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .billing import BillingClient
from .config import DEFAULT_CREATE_TIMEOUT_MINUTES, MAX_SUBSCRIPTION_NAME_LENGTH
from .models import SubscriptionState
from .reconciler import ProvisioningReconciler
from .resolver import STILL_PENDING, PendingStateResolver

logger = logging.getLogger(__name__)

CREATION_IN_PROGRESS_WARNING = (
    "The subscription creation request was accepted but is being provisioned asynchronously. "
    "The subscription will appear in Cloud-iQ after Azure provisions it and Cloud-iQ syncs. "
    "Synchronize in the Cloud-iQ portal or read the subscription again later to update the state."
)


class PendingSubscriptionError(Exception):
    """Raised when an operation needs a Cloud-iQ id the record does not have yet."""

    pass


class ImportKeyError(ValueError):
    """Raised for an import key not in 'azure_plan_id:subscription_id' form."""

    pass


@dataclass
class Outcome:
    """State to persist after an operation, plus advisory warnings."""

    state: SubscriptionState
    warnings: list[str] = field(default_factory=list)


def validate_name(name: str) -> None:
    if not name or not name.strip():
        raise ValueError("subscription name must not be empty")
    if len(name) > MAX_SUBSCRIPTION_NAME_LENGTH:
        raise ValueError(
            f"subscription name exceeds maximum length of {MAX_SUBSCRIPTION_NAME_LENGTH}"
        )


def parse_import_key(key: str) -> tuple[int, int]:
    """Split an import key such as ``"873834:12345"``.

    Returns:
        (azure_plan_id, subscription_id)

    Raises:
        ImportKeyError: If the key does not have exactly two integer parts.
    """
    parts = key.split(":")
    if len(parts) != 2:
        raise ImportKeyError(
            f"Import ID must be in format 'azure_plan_id:subscription_id'. Got: {key}"
        )
    plan_part, id_part = parts
    try:
        plan_id = int(plan_part)
    except ValueError as e:
        raise ImportKeyError(f"Could not parse azure_plan_id: {plan_part!r}") from e
    try:
        subscription_id = int(id_part)
    except ValueError as e:
        raise ImportKeyError(f"Could not parse subscription_id: {id_part!r}") from e
    return plan_id, subscription_id


class SubscriptionResource:
    """Create, read, rename, cancel, enable and import subscriptions."""

    def __init__(
        self,
        billing: BillingClient,
        reconciler: ProvisioningReconciler,
        resolver: PendingStateResolver,
        *,
        default_timeout_minutes: int = DEFAULT_CREATE_TIMEOUT_MINUTES,
    ) -> None:
        self._billing = billing
        self._reconciler = reconciler
        self._resolver = resolver
        self._default_timeout_minutes = default_timeout_minutes

    async def create(
        self, plan_id: int, name: str, timeout_minutes: float | None = None
    ) -> Outcome:
        validate_name(name)
        minutes = timeout_minutes if timeout_minutes is not None else self._default_timeout_minutes
        if minutes < 0:
            raise ValueError("timeout_minutes must not be negative")
        logger.debug(
            "Creating Azure subscription",
            extra={"azure_plan_id": plan_id, "subscription_name": name},
        )

        subscription = await self._reconciler.create(plan_id, name, minutes * 60)
        state = SubscriptionState.from_subscription(subscription, plan_id, name)

        warnings: list[str] = []
        if state.is_pending:
            warnings.append(CREATION_IN_PROGRESS_WARNING)

        logger.info(
            "Created Azure subscription",
            extra={
                "id": state.id,
                "subscription_id": state.subscription_id,
                "status": state.status,
            },
        )
        return Outcome(state=state, warnings=warnings)

    def read(self, state: SubscriptionState) -> Outcome:
        if state.is_pending:
            resolved = self._resolver.resolve(state.azure_plan_id, state.name)
            if resolved is STILL_PENDING:
                return Outcome(
                    state=state,
                    warnings=[
                        f"The subscription '{state.name}' has not yet appeared in Cloud-iQ. "
                        "Synchronize in the Cloud-iQ portal or wait for automatic sync, "
                        "then read it again."
                    ],
                )
            merged = SubscriptionState.from_subscription(resolved, state.azure_plan_id, state.name)
            # Cloud-iQ can list the record before it knows the GUID Azure already confirmed
            return Outcome(
                state=merged.model_copy(
                    update={
                        "subscription_id": resolved.subscription_id or state.subscription_id,
                        "status": resolved.status or state.status,
                    }
                )
            )

        logger.debug(
            "Reading Azure subscription",
            extra={"id": state.id, "azure_plan_id": state.azure_plan_id},
        )
        subscription = self._billing.get_subscription(state.azure_plan_id, state.id)
        refreshed = state.model_copy(
            update={
                "name": subscription.friendly_name or state.name,
                "subscription_id": subscription.subscription_id or state.subscription_id,
                "status": subscription.status or state.status,
            }
        )
        return Outcome(state=refreshed)

    def rename(self, state: SubscriptionState, new_name: str) -> Outcome:
        self._require_id(
            state,
            "Cannot rename pending subscription: it has not yet synced to Cloud-iQ. "
            "Read the subscription again after synchronizing in the Cloud-iQ portal, "
            "then retry the rename.",
        )
        validate_name(new_name)

        if new_name == state.name:
            return Outcome(state=state)

        logger.debug(
            "Renaming Azure subscription",
            extra={"id": state.id, "old_name": state.name, "new_name": new_name},
        )
        subscription = self._billing.rename_subscription(state.azure_plan_id, state.id, new_name)

        # The rename response may omit the GUID and status
        renamed = state.model_copy(
            update={
                "name": new_name,
                "subscription_id": subscription.subscription_id or state.subscription_id,
                "status": subscription.status or state.status,
            }
        )
        logger.info("Renamed Azure subscription", extra={"id": state.id, "new_name": new_name})
        return Outcome(state=renamed)

    def cancel(self, state: SubscriptionState) -> None:
        self._require_id(
            state,
            "Cannot cancel pending subscription: no Cloud-iQ id is known yet. "
            "Read the subscription again once Cloud-iQ has synchronized it, then retry.",
        )
        logger.debug(
            "Cancelling Azure subscription",
            extra={"id": state.id, "azure_plan_id": state.azure_plan_id},
        )
        self._billing.cancel_subscription(state.azure_plan_id, state.id)
        logger.info("Cancelled Azure subscription", extra={"id": state.id})

    def enable(self, state: SubscriptionState) -> Outcome:
        """Re-enable a cancelled subscription and return its refreshed state."""
        self._require_id(
            state,
            "Cannot enable pending subscription: no Cloud-iQ id is known yet.",
        )
        self._billing.enable_subscription(state.azure_plan_id, state.id)
        logger.info("Enabled Azure subscription", extra={"id": state.id})
        return self.read(state)

    def import_state(self, key: str) -> tuple[int, int]:
        return parse_import_key(key)

    @staticmethod
    def _require_id(state: SubscriptionState, message: str) -> None:
        if state.is_pending:
            logger.warning(
                "Operation refused for pending subscription",
                extra={"subscription_name": state.name},
            )
            raise PendingSubscriptionError(message)
