"""Synchronous client for the Crayon Cloud-iQ API.

Covers the Azure subscription resource and its parents (customer tenants
and Azure plans). Every call takes a bearer token from the TokenCache.
Non-2xx responses raise APIError with the raw body; nothing is retried
here. A 401 is surfaced as-is: the cache's expiry margin is relied on
instead of refresh-and-retry.

Subscription creation is fire-and-forget: Cloud-iQ answers 202 with an
empty body before the subscription exists anywhere. That outcome is
returned as ACCEPTED rather than raised.
"""

from __future__ import annotations

import enum
import logging
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from .auth import TokenCache
from .models import (
    AzurePlan,
    CustomerTenant,
    CustomerTenantList,
    Subscription,
    SubscriptionList,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
LIST_PAGE_SIZE = 1000


class CreateOutcome(enum.Enum):
    ACCEPTED = "accepted"


# Returned by create_subscription for a 202 with an empty body
ACCEPTED = CreateOutcome.ACCEPTED


class APIError(Exception):
    """Non-2xx (or unusable) response from Cloud-iQ.

    A status of 0 means no response was received.
    """

    def __init__(self, status: int, body: str = "", message: str | None = None) -> None:
        self.status = status
        self.body = body
        super().__init__(message or f"API error (status {status}): {body}")


class NotFoundError(APIError):
    """A subscription lookup by name found nothing."""

    def __init__(self, message: str) -> None:
        super().__init__(404, "", message)


class BillingClient:
    """Cloud-iQ API client for Azure subscriptions."""

    def __init__(
        self,
        tokens: TokenCache,
        *,
        base_url: str,
        organization_id: int,
        http_client: httpx.Client | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._tokens = tokens
        self._base_url = base_url.rstrip("/")
        self._organization_id = organization_id
        self._client = http_client or httpx.Client(timeout=timeout_seconds)

    @property
    def organization_id(self) -> int:
        return self._organization_id

    def _request(self, method: str, path: str, *, json: Any | None = None) -> httpx.Response:
        token = self._tokens.get_billing_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        url = f"{self._base_url}{API_PREFIX}{path}"
        try:
            response = self._client.request(method, url, headers=headers, json=json)
        except httpx.HTTPError as e:
            raise APIError(0, str(e), f"Request {method} {path} failed: {e}") from e

        if not response.is_success:
            logger.warning(
                "Cloud-iQ request failed",
                extra={"method": method, "path": path, "status_code": response.status_code},
            )
            raise APIError(response.status_code, response.text)
        return response

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            raise APIError(
                response.status_code,
                "",
                f"Response body is empty (status {response.status_code})",
            )
        try:
            return response.json()
        except ValueError as e:
            raise APIError(
                response.status_code,
                response.text,
                f"Failed to parse response: {e} (body: {response.text})",
            ) from e

    def _parse(self, model: type[BaseModel], response: httpx.Response) -> Any:
        payload = self._decode(response)
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise APIError(
                response.status_code,
                response.text,
                f"Unexpected response shape: {e}",
            ) from e

    # -------------------------------------------------------------------------
    # Azure subscriptions
    # -------------------------------------------------------------------------

    def list_subscriptions(self, plan_id: int) -> list[Subscription]:
        """List all subscriptions under an Azure plan."""
        response = self._request(
            "GET", f"/azureplans/{plan_id}/azuresubscriptions?pageSize={LIST_PAGE_SIZE}"
        )
        envelope: SubscriptionList = self._parse(SubscriptionList, response)
        return envelope.items

    def get_subscription(self, plan_id: int, subscription_id: int) -> Subscription:
        response = self._request("GET", f"/azureplans/{plan_id}/azuresubscriptions/{subscription_id}")
        return self._parse(Subscription, response)

    def create_subscription(self, plan_id: int, name: str) -> Subscription | CreateOutcome:
        """Order a new subscription.

        Returns:
            The created record when Cloud-iQ answers synchronously, or
            ACCEPTED for a 202 with an empty body.
        """
        response = self._request(
            "POST", f"/azureplans/{plan_id}/azuresubscriptions", json={"name": name}
        )
        if response.status_code == 202 and not response.content:
            logger.info(
                "Subscription creation accepted",
                extra={"azure_plan_id": plan_id, "subscription_name": name},
            )
            return ACCEPTED
        return self._parse(Subscription, response)

    def rename_subscription(self, plan_id: int, subscription_id: int, new_name: str) -> Subscription:
        response = self._request(
            "PATCH",
            f"/azureplans/{plan_id}/azuresubscriptions/{subscription_id}/rename",
            json={"name": new_name},
        )
        return self._parse(Subscription, response)

    def cancel_subscription(self, plan_id: int, subscription_id: int) -> None:
        self._request("POST", f"/azureplans/{plan_id}/azuresubscriptions/{subscription_id}/cancel")

    def enable_subscription(self, plan_id: int, subscription_id: int) -> None:
        """Re-enable a cancelled subscription."""
        self._request("POST", f"/azureplans/{plan_id}/azuresubscriptions/{subscription_id}/enable")

    def find_subscription_by_name(self, plan_id: int, name: str) -> Subscription:
        """Return the first subscription in list order whose name matches exactly.

        Duplicate names are not arbitrated.

        Raises:
            NotFoundError: If no subscription has that name.
        """
        for subscription in self.list_subscriptions(plan_id):
            if subscription.friendly_name == name:
                return subscription
        raise NotFoundError(f"subscription '{name}' not found in Azure Plan {plan_id}")

    # -------------------------------------------------------------------------
    # Parents
    # -------------------------------------------------------------------------

    def get_customer_tenants(self) -> list[CustomerTenant]:
        response = self._request(
            "GET", f"/CustomerTenants?OrganizationId={self._organization_id}"
        )
        envelope: CustomerTenantList = self._parse(CustomerTenantList, response)
        return envelope.items

    def get_azure_plan(self, customer_tenant_id: int) -> AzurePlan:
        response = self._request("GET", f"/CustomerTenants/{customer_tenant_id}/azureplan")
        return self._parse(AzurePlan, response)

    def close(self) -> None:
        self._client.close()
