"""Token cache for the two independent bearer tokens.

The provisioner talks to two systems with unrelated identity providers:

- Cloud-iQ issues its own OAuth tokens from ``/api/v1/connect/token``
  (client id/secret as Basic auth, plus either the password grant or the
  client-credentials grant).
- Azure Resource Manager accepts Entra ID tokens, obtained either with a
  service principal (ClientSecretCredential) or from an existing Azure
  CLI login (AzureCliCredential).

Each token lives in its own slot with its own lock. A cached token is
served until 60 seconds before its expiry; after that the next caller
acquires a fresh one while holding the slot's lock, so concurrent callers
never observe a half-written entry and never race two refreshes.

Azure CLI session tokens are cached for a fixed 50 minutes from
acquisition instead of the expiry the CLI reports. The approximation is
deliberate for short-lived CLI-driven runs; a long-running service should
use a service principal.

Failures are raised as AuthError and never retried here.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx
from azure.core.credentials import AccessToken, TokenCredential
from azure.core.exceptions import AzureError, ClientAuthenticationError
from azure.identity import AzureCliCredential, ClientSecretCredential

from .config import (
    ARM_SCOPE,
    BILLING_TOKEN_SCOPE,
    SESSION_TOKEN_LIFETIME_SECONDS,
    TOKEN_EXPIRY_MARGIN_SECONDS,
    BillingGrant,
    CloudAuthMode,
    Config,
)

logger = logging.getLogger(__name__)

TOKEN_PATH = "/api/v1/connect/token"


class AuthError(Exception):
    """Raised when a token cannot be acquired.

    Attributes:
        status: HTTP status of the token endpoint, if one was received.
        body: Raw response body (or the underlying error text).
    """

    def __init__(self, message: str, *, status: int | None = None, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(message)


@dataclass(frozen=True)
class BearerToken:
    """An access token and its absolute expiry (epoch seconds)."""

    value: str
    expires_at: float

    def is_fresh(self, now: float, margin: float = TOKEN_EXPIRY_MARGIN_SECONDS) -> bool:
        return now < self.expires_at - margin


class TokenCache:
    """Caches and refreshes the Cloud-iQ and Azure Resource Manager tokens."""

    def __init__(
        self,
        config: Config,
        *,
        http_client: httpx.Client | None = None,
        cloud_credential: TokenCredential | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache.

        Args:
            config: Validated provisioner configuration.
            http_client: Client used for the Cloud-iQ token endpoint.
            cloud_credential: Credential for Azure Resource Manager. Built
                from the configured auth mode when omitted.
            clock: Wall clock returning epoch seconds.
        """
        self._config = config
        self._http = http_client or httpx.Client(timeout=config.http_timeout_seconds)
        self._cloud_credential = cloud_credential
        self._clock = clock

        self._billing_token: BearerToken | None = None
        self._cloud_token: BearerToken | None = None
        self._billing_lock = threading.Lock()
        self._cloud_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Cloud-iQ
    # -------------------------------------------------------------------------

    def get_billing_token(self) -> str:
        """Return a valid Cloud-iQ access token.

        Raises:
            AuthError: If the token endpoint rejects the request.
        """
        with self._billing_lock:
            cached = self._billing_token
            if cached is not None and cached.is_fresh(self._clock()):
                return cached.value
            token = self._acquire_billing_token()
            self._billing_token = token
            return token.value

    def _acquire_billing_token(self) -> BearerToken:
        grant = self._config.billing_grant
        data = {"grant_type": grant.value, "scope": BILLING_TOKEN_SCOPE}
        if grant is BillingGrant.PASSWORD:
            data["username"] = self._config.username
            data["password"] = self._config.password

        url = self._config.base_url.rstrip("/") + TOKEN_PATH
        logger.debug("Requesting Cloud-iQ token", extra={"grant_type": grant.value})

        try:
            response = self._http.post(
                url,
                data=data,
                auth=(self._config.client_id, self._config.client_secret),
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise AuthError(f"Cloud-iQ token request failed: {e}", body=str(e)) from e

        body = response.text
        if not response.is_success:
            raise AuthError(
                f"Cloud-iQ token request failed (status {response.status_code}): {body}",
                status=response.status_code,
                body=body,
            )

        try:
            payload = response.json()
            access_token = payload["AccessToken"]
            expires_in = int(payload["ExpiresIn"])
        except (ValueError, KeyError, TypeError) as e:
            raise AuthError(
                f"Failed to parse Cloud-iQ token response: {e}",
                status=response.status_code,
                body=body,
            ) from e

        if not access_token:
            raise AuthError(
                "Cloud-iQ token response did not contain an access token",
                status=response.status_code,
                body=body,
            )

        logger.info(
            "Acquired Cloud-iQ token",
            extra={"grant_type": grant.value, "expires_in": expires_in},
        )
        return BearerToken(value=access_token, expires_at=self._clock() + expires_in)

    # -------------------------------------------------------------------------
    # Azure Resource Manager
    # -------------------------------------------------------------------------

    def get_cloud_token(self) -> str:
        """Return a valid Azure Resource Manager access token.

        Raises:
            AuthError: If neither the service principal nor the CLI session
                can produce a token.
        """
        return self.get_cloud_bearer_token().value

    def get_cloud_bearer_token(self) -> BearerToken:
        with self._cloud_lock:
            cached = self._cloud_token
            if cached is not None and cached.is_fresh(self._clock()):
                return cached
            token = self._acquire_cloud_token()
            self._cloud_token = token
            return token

    def _credential(self) -> TokenCredential:
        if self._cloud_credential is None:
            if self._config.cloud_auth_mode is CloudAuthMode.SERVICE_PRINCIPAL:
                client_id = self._config.azure_client_id
                logger.info(
                    "Using Azure service principal",
                    extra={"client_id": client_id[:8] + "..." if len(client_id) > 8 else client_id},
                )
                self._cloud_credential = ClientSecretCredential(
                    tenant_id=self._config.azure_tenant_id,
                    client_id=client_id,
                    client_secret=self._config.azure_client_secret,
                )
            else:
                logger.info("No Azure service principal configured, using Azure CLI session")
                self._cloud_credential = AzureCliCredential()
        return self._cloud_credential

    def _acquire_cloud_token(self) -> BearerToken:
        mode = self._config.cloud_auth_mode
        try:
            access = self._credential().get_token(ARM_SCOPE)
        except ClientAuthenticationError as e:
            hint = " (run 'az login' first)" if mode is CloudAuthMode.SESSION else ""
            raise AuthError(
                f"Azure authentication failed{hint}: {e.message}",
                status=e.status_code,
                body=str(e),
            ) from e
        except AzureError as e:
            raise AuthError(f"Azure authentication failed: {e}", body=str(e)) from e

        now = self._clock()
        if mode is CloudAuthMode.SESSION:
            expires_at = now + SESSION_TOKEN_LIFETIME_SECONDS
        else:
            expires_at = float(access.expires_on)

        logger.info(
            "Acquired Azure Resource Manager token",
            extra={"auth_mode": mode.value, "expires_in": int(expires_at - now)},
        )
        return BearerToken(value=access.token, expires_at=expires_at)

    def close(self) -> None:
        self._http.close()
        close = getattr(self._cloud_credential, "close", None)
        if close is not None:
            close()


class CachedCloudCredential:
    """TokenCredential that serves the cache's Resource Manager token.

    Lets Azure SDK clients share the cached token instead of running
    their own acquisition.
    """

    def __init__(self, cache: TokenCache) -> None:
        self._cache = cache

    def get_token(
        self,
        *scopes: str,
        claims: str | None = None,
        tenant_id: str | None = None,
        **kwargs: Any,
    ) -> AccessToken:
        token = self._cache.get_cloud_bearer_token()
        return AccessToken(token.value, int(token.expires_at))

    def close(self) -> None:
        pass
