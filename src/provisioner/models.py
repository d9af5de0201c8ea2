"""Pydantic models for Cloud-iQ and Azure Resource Manager records.

Wire models accept the API's PascalCase (Cloud-iQ subscriptions) or
camelCase (tenants, plans) field names through aliases and expose
snake_case attributes. SubscriptionState is the record the caller
persists between invocations.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# GUID placeholder for subscriptions not yet seen in either backend
PENDING_SUBSCRIPTION_ID = "pending"


class SubscriptionStatus(str, Enum):
    """Lifecycle status of a subscription.

    PENDING is synthetic: it is the effective status of any record whose
    Cloud-iQ numeric id is still unknown.
    """

    PROVISIONING = "provisioning"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    PENDING = "pending"


# =============================================================================
# Cloud-iQ wire models
# =============================================================================


class Subscription(BaseModel):
    """An Azure subscription as Cloud-iQ reports it."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int | None = Field(None, alias="Id")
    friendly_name: str = Field("", alias="FriendlyName")
    subscription_id: str = Field("", alias="PublisherSubscriptionId")
    status: str = Field("", alias="Status")
    azure_plan_id: int | None = Field(None, alias="AzurePlanId")


class SubscriptionList(BaseModel):
    """List envelope: {"Items": [...], "TotalHits": N}."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    items: list[Subscription] = Field(default_factory=list, alias="Items")
    total_count: int = Field(0, alias="TotalHits")


class CustomerTenant(BaseModel):
    """A Cloud-iQ customer tenant."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int
    domain: str = ""
    name: str = ""


class CustomerTenantList(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    items: list[CustomerTenant] = Field(default_factory=list)
    total_count: int = Field(0, alias="totalCount")


class AzurePlan(BaseModel):
    """The Azure plan that owns a customer tenant's subscriptions."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int
    customer_tenant_id: int | None = Field(None, alias="customerTenantId")
    subscription_id: str = Field("", alias="subscriptionId")


# =============================================================================
# Azure Resource Manager
# =============================================================================


class CloudSubscription(BaseModel):
    """A subscription as listed by Azure Resource Manager."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    subscription_id: str = Field(alias="subscriptionId")
    display_name: str = Field("", alias="displayName")
    state: str = ""


# =============================================================================
# Caller-owned state
# =============================================================================


class SubscriptionState(BaseModel):
    """Reconciled subscription record handed to the caller's state store.

    ``id`` is the Cloud-iQ numeric id, or None while Cloud-iQ has not yet
    synchronized the subscription. Only records with a known id can be
    renamed, cancelled or enabled.
    """

    model_config = ConfigDict(extra="ignore")

    id: int | None = None
    azure_plan_id: int
    name: str
    subscription_id: str = PENDING_SUBSCRIPTION_ID
    status: str = SubscriptionStatus.PROVISIONING.value

    @property
    def is_pending(self) -> bool:
        return self.id is None

    @property
    def effective_status(self) -> str:
        if self.is_pending:
            return SubscriptionStatus.PENDING.value
        return self.status

    @classmethod
    def from_subscription(
        cls, subscription: Subscription, azure_plan_id: int, name: str | None = None
    ) -> SubscriptionState:
        """Build state from a Cloud-iQ record.

        An id of 0 is Cloud-iQ's "unknown" and maps to None.
        """
        return cls(
            id=subscription.id or None,
            azure_plan_id=subscription.azure_plan_id or azure_plan_id,
            name=subscription.friendly_name or name or "",
            subscription_id=subscription.subscription_id or PENDING_SUBSCRIPTION_ID,
            status=subscription.status or SubscriptionStatus.PROVISIONING.value,
        )
