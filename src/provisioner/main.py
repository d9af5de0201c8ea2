"""Logging setup and component wiring for the subscription provisioner.

Builds the token cache, the Cloud-iQ and Azure clients, the reconciler
and the resolver from one validated Config, in dependency order.
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from datetime import UTC, datetime

from .auth import TokenCache
from .billing import BillingClient
from .cloud import CloudPoller
from .config import Config
from .reconciler import ProvisioningReconciler
from .resolver import PendingStateResolver
from .resource import SubscriptionResource

# LogRecord attributes that are not user-supplied extras
_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: int = logging.INFO) -> None:
    """Configure structured JSON logging on stderr.

    stdout is reserved for command output.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if any(isinstance(h.formatter, JsonFormatter) for h in root_logger.handlers):
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    # Reduce noise from the HTTP and Azure SDK stacks
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


@dataclass
class Provisioner:
    """All components for one configuration, closed together."""

    config: Config
    tokens: TokenCache
    billing: BillingClient
    cloud: CloudPoller
    resource: SubscriptionResource

    def close(self) -> None:
        self.cloud.close()
        self.billing.close()
        self.tokens.close()


def build_provisioner(config: Config) -> Provisioner:
    """Wire every component from a validated configuration."""
    logger = logging.getLogger(__name__)

    for warning in config.config_warnings():
        logger.warning(warning)

    logger.debug(
        "Creating Cloud-iQ client",
        extra={
            "base_url": config.base_url,
            "organization_id": config.organization_id,
            "billing_grant": config.billing_grant.value,
            "cloud_auth_mode": config.cloud_auth_mode.value,
            "discovery_source": config.discovery_source.value,
        },
    )

    tokens = TokenCache(config)
    billing = BillingClient(
        tokens,
        base_url=config.base_url,
        organization_id=config.organization_id,
        timeout_seconds=config.http_timeout_seconds,
    )
    cloud = CloudPoller(tokens, poll_interval_seconds=config.poll_interval_seconds)
    reconciler = ProvisioningReconciler(
        billing,
        cloud,
        discovery_source=config.discovery_source,
        poll_interval_seconds=config.poll_interval_seconds,
    )
    resource = SubscriptionResource(
        billing,
        reconciler,
        PendingStateResolver(billing),
        default_timeout_minutes=config.create_timeout_minutes,
    )
    return Provisioner(
        config=config, tokens=tokens, billing=billing, cloud=cloud, resource=resource
    )
