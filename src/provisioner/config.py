"""Configuration management with validation.

Credentials and discovery settings are validated at load time so that
the provisioner fails fast on a broken setup instead of halfway through
a subscription order.
"""

from __future__ import annotations

import base64
import binascii
import os
from dataclasses import dataclass
from enum import Enum


class BillingGrant(str, Enum):
    """OAuth grant used against the Cloud-iQ token endpoint."""

    PASSWORD = "password"
    CLIENT_CREDENTIALS = "client_credentials"


class CloudAuthMode(str, Enum):
    """How the Azure Resource Manager token is obtained."""

    SERVICE_PRINCIPAL = "servicePrincipal"
    SESSION = "session"


class DiscoverySource(str, Enum):
    """Which backend is polled after an accepted (202) create."""

    CLOUD = "cloud"
    BILLING = "billing"


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_BASE_URL = "https://api.crayon.com"
DEFAULT_ORGANIZATION_ID = 4051878

DEFAULT_POLL_INTERVAL_SECONDS = 30
MIN_POLL_INTERVAL_SECONDS = 1
MAX_POLL_INTERVAL_SECONDS = 300

DEFAULT_CREATE_TIMEOUT_MINUTES = 20
MIN_CREATE_TIMEOUT_MINUTES = 1
MAX_CREATE_TIMEOUT_MINUTES = 120

DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0

# Tokens are treated as expired this long before their reported expiry
TOKEN_EXPIRY_MARGIN_SECONDS = 60

# Azure CLI session tokens are assumed valid for this long after acquisition
SESSION_TOKEN_LIFETIME_SECONDS = 50 * 60

BILLING_TOKEN_SCOPE = "CustomerApi"
ARM_SCOPE = "https://management.azure.com/.default"

MAX_SUBSCRIPTION_NAME_LENGTH = 64


@dataclass(frozen=True)
class Config:
    """Provisioner configuration.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    # Cloud-iQ API client (always required)
    client_id: str
    client_secret: str

    base_url: str = DEFAULT_BASE_URL
    organization_id: int = DEFAULT_ORGANIZATION_ID

    # Optional user credentials switch the billing token to the password grant
    username: str = ""
    password: str = ""

    # Optional Azure service principal; anything less than all three falls
    # back to the Azure CLI session
    azure_client_id: str = ""
    azure_client_secret: str = ""
    azure_tenant_id: str = ""

    # Discovery
    discovery_source: DiscoverySource = DiscoverySource.CLOUD
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS
    create_timeout_minutes: int = DEFAULT_CREATE_TIMEOUT_MINUTES

    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.client_id:
            errors.append("CRAYON_CLIENT_ID is required")
        if not self.client_secret:
            errors.append("CRAYON_SECRET is required")

        if not self.base_url.startswith(("https://", "http://")):
            errors.append(f"CRAYON_BASE_URL must be an http(s) URL: {self.base_url}")

        if self.organization_id < 1:
            errors.append("CRAYON_ORGANIZATION_ID must be a positive integer")

        if not (
            MIN_POLL_INTERVAL_SECONDS <= self.poll_interval_seconds <= MAX_POLL_INTERVAL_SECONDS
        ):
            errors.append(
                f"POLL_INTERVAL must be between {MIN_POLL_INTERVAL_SECONDS} "
                f"and {MAX_POLL_INTERVAL_SECONDS} seconds"
            )

        if not (
            MIN_CREATE_TIMEOUT_MINUTES <= self.create_timeout_minutes <= MAX_CREATE_TIMEOUT_MINUTES
        ):
            errors.append(
                f"CREATE_TIMEOUT_MINUTES must be between {MIN_CREATE_TIMEOUT_MINUTES} "
                f"and {MAX_CREATE_TIMEOUT_MINUTES}"
            )

        if self.http_timeout_seconds <= 0:
            errors.append("HTTP_TIMEOUT must be positive")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def billing_grant(self) -> BillingGrant:
        if self.username and self.password:
            return BillingGrant.PASSWORD
        return BillingGrant.CLIENT_CREDENTIALS

    @property
    def cloud_auth_mode(self) -> CloudAuthMode:
        if self.azure_client_id and self.azure_client_secret and self.azure_tenant_id:
            return CloudAuthMode.SERVICE_PRINCIPAL
        return CloudAuthMode.SESSION

    @property
    def partial_service_principal(self) -> bool:
        """True when one or two of the three ARM_* fields are set."""
        fields = (self.azure_client_id, self.azure_client_secret, self.azure_tenant_id)
        return any(fields) and not all(fields)

    def config_warnings(self) -> list[str]:
        """Non-fatal configuration issues worth surfacing to the operator."""
        warnings: list[str] = []
        if self.partial_service_principal:
            warnings.append(
                "Incomplete Azure configuration: azure_client_id, azure_client_secret and "
                "azure_tenant_id (ARM_CLIENT_ID, ARM_CLIENT_SECRET, ARM_TENANT_ID) must all "
                "be set for service principal authentication. Falling back to the Azure CLI "
                "session."
            )
        return warnings

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            CRAYON_BASE_URL: Cloud-iQ API base URL (default: https://api.crayon.com)
            CRAYON_CLIENT_ID: API client id (required)
            CRAYON_SECRET: API client secret (required)
            CRAYON_USERNAME: Optional user for the password grant
            CRAYON_PASSWORD: Optional password for the password grant
            CRAYON_PASSWORD_BASE64_ENCODED: Base64 password, read when
                CRAYON_PASSWORD is unset
            CRAYON_ORGANIZATION_ID: Organization for tenant lookups (default: 4051878)

        Azure Variables:
            ARM_CLIENT_ID, ARM_CLIENT_SECRET, ARM_TENANT_ID: Service principal
                used to poll Azure Resource Manager. Without all three the
                Azure CLI session (az login) is used.

        Discovery Variables:
            DISCOVERY_SOURCE: "cloud" or "billing" (default: cloud)
            POLL_INTERVAL: Seconds between discovery polls (default: 30)
            CREATE_TIMEOUT_MINUTES: Discovery timeout after create (default: 20)
            HTTP_TIMEOUT: Per-request timeout in seconds (default: 30)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None or value == "":
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_float(key: str, default: float) -> float:
            value = os.environ.get(key)
            if value is None or value == "":
                return default
            try:
                return float(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a number: {value}") from e

        def get_password() -> str:
            password = os.environ.get("CRAYON_PASSWORD", "")
            if password:
                return password
            encoded = os.environ.get("CRAYON_PASSWORD_BASE64_ENCODED", "")
            if not encoded:
                return ""
            try:
                return base64.b64decode(encoded, validate=True).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as e:
                raise ConfigurationError(
                    "CRAYON_PASSWORD_BASE64_ENCODED is not valid base64"
                ) from e

        def get_discovery(value: str | None) -> DiscoverySource:
            if not value:
                return DiscoverySource.CLOUD
            try:
                return DiscoverySource(value.lower())
            except ValueError as e:
                valid = [s.value for s in DiscoverySource]
                raise ConfigurationError(f"DISCOVERY_SOURCE must be one of {valid}: {value}") from e

        return cls(
            client_id=os.environ.get("CRAYON_CLIENT_ID", ""),
            client_secret=os.environ.get("CRAYON_SECRET", ""),
            base_url=os.environ.get("CRAYON_BASE_URL") or DEFAULT_BASE_URL,
            organization_id=get_int("CRAYON_ORGANIZATION_ID", DEFAULT_ORGANIZATION_ID),
            username=os.environ.get("CRAYON_USERNAME", ""),
            password=get_password(),
            azure_client_id=os.environ.get("ARM_CLIENT_ID", ""),
            azure_client_secret=os.environ.get("ARM_CLIENT_SECRET", ""),
            azure_tenant_id=os.environ.get("ARM_TENANT_ID", ""),
            discovery_source=get_discovery(os.environ.get("DISCOVERY_SOURCE")),
            poll_interval_seconds=get_int("POLL_INTERVAL", DEFAULT_POLL_INTERVAL_SECONDS),
            create_timeout_minutes=get_int(
                "CREATE_TIMEOUT_MINUTES", DEFAULT_CREATE_TIMEOUT_MINUTES
            ),
            http_timeout_seconds=get_float("HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT_SECONDS),
        )
