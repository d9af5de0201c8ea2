"""Azure subscription provisioner CLI (azsub).

Thin caller around SubscriptionResource. Prior state is read from a JSON
file and the resulting state is printed to stdout as JSON; persisting it
is up to the caller. Warnings go to stderr.

Usage:
    azsub create 873834 sub-a                 # Order and wait for a subscription
    azsub read --state sub-a.json             # Refresh (and resolve pending) state
    azsub rename --state sub-a.json sub-b     # Rename
    azsub cancel --state sub-a.json           # Cancel
    azsub enable --state sub-a.json           # Re-enable a cancelled subscription
    azsub import 873834:12345                 # Build state for an existing subscription
    azsub tenants                             # List customer tenants
    azsub plan 1234                           # Show a tenant's Azure plan
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError

from .auth import AuthError
from .billing import APIError
from .config import Config, ConfigurationError
from .main import Provisioner, build_provisioner, setup_logging
from .models import SubscriptionState
from .resource import ImportKeyError, Outcome, PendingSubscriptionError

# Errors reported as a clean CLI failure instead of a traceback
OPERATION_ERRORS = (
    APIError,
    AuthError,
    PendingSubscriptionError,
    ImportKeyError,
    ValueError,
)


def load_state(path: Path) -> SubscriptionState:
    """Read a previously printed SubscriptionState from a JSON file."""
    try:
        return SubscriptionState.model_validate_json(path.read_text(encoding="utf-8"))
    except ValidationError as e:
        raise click.ClickException(f"Invalid state file {path}: {e}") from e


def emit(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2))


def emit_outcome(outcome: Outcome) -> None:
    for warning in outcome.warnings:
        click.secho(f"Warning: {warning}", fg="yellow", err=True)
    emit(outcome.state.model_dump())


@contextmanager
def provisioner_from(ctx: click.Context) -> Iterator[Provisioner]:
    """Build components from the environment, translating failures for click."""
    factory: Callable[[Config], Provisioner] = ctx.obj["factory"]
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    provisioner = factory(config)
    try:
        yield provisioner
    except OPERATION_ERRORS as e:
        raise click.ClickException(str(e)) from e
    finally:
        provisioner.close()


state_option = click.option(
    "--state",
    "state_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="JSON file holding the subscription's current state.",
)


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="azsub")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Azure subscription provisioner (azsub).

    Orders Azure subscriptions through Crayon Cloud-iQ and reconciles them
    with Azure Resource Manager.

    \b
    Configuration is read from the environment:
        CRAYON_CLIENT_ID, CRAYON_SECRET      Cloud-iQ API client (required)
        CRAYON_USERNAME, CRAYON_PASSWORD     Optional password grant
        ARM_CLIENT_ID, ARM_CLIENT_SECRET,
        ARM_TENANT_ID                        Optional Azure service principal
    """
    ctx.ensure_object(dict)
    ctx.obj.setdefault("factory", build_provisioner)
    setup_logging(logging.DEBUG if verbose else logging.WARNING)


# =============================================================================
# Subscription Commands
# =============================================================================


@cli.command()
@click.argument("plan_id", type=int)
@click.argument("name")
@click.option(
    "--timeout-minutes",
    type=click.IntRange(min=1),
    default=None,
    help="Minutes to wait for the subscription to appear (default: CREATE_TIMEOUT_MINUTES).",
)
@click.pass_context
def create(ctx: click.Context, plan_id: int, name: str, timeout_minutes: int | None) -> None:
    """Order subscription NAME under Azure plan PLAN_ID."""
    with provisioner_from(ctx) as provisioner:
        outcome = asyncio.run(provisioner.resource.create(plan_id, name, timeout_minutes))
    emit_outcome(outcome)


@cli.command()
@state_option
@click.pass_context
def read(ctx: click.Context, state_path: Path) -> None:
    """Refresh a subscription's state, resolving it if still pending."""
    state = load_state(state_path)
    with provisioner_from(ctx) as provisioner:
        outcome = provisioner.resource.read(state)
    emit_outcome(outcome)


@cli.command()
@state_option
@click.argument("new_name")
@click.pass_context
def rename(ctx: click.Context, state_path: Path, new_name: str) -> None:
    """Rename a subscription to NEW_NAME."""
    state = load_state(state_path)
    with provisioner_from(ctx) as provisioner:
        outcome = provisioner.resource.rename(state, new_name)
    emit_outcome(outcome)


@cli.command()
@state_option
@click.pass_context
def cancel(ctx: click.Context, state_path: Path) -> None:
    """Cancel a subscription."""
    state = load_state(state_path)
    with provisioner_from(ctx) as provisioner:
        provisioner.resource.cancel(state)
    click.secho(f"Cancelled subscription {state.id} ({state.name})", fg="green", err=True)


@cli.command()
@state_option
@click.pass_context
def enable(ctx: click.Context, state_path: Path) -> None:
    """Re-enable a cancelled subscription."""
    state = load_state(state_path)
    with provisioner_from(ctx) as provisioner:
        outcome = provisioner.resource.enable(state)
    emit_outcome(outcome)


@cli.command("import")
@click.argument("key")
@click.pass_context
def import_(ctx: click.Context, key: str) -> None:
    """Build state for an existing subscription from KEY (azure_plan_id:subscription_id)."""
    with provisioner_from(ctx) as provisioner:
        plan_id, subscription_id = provisioner.resource.import_state(key)
        subscription = provisioner.billing.get_subscription(plan_id, subscription_id)
    state = SubscriptionState.from_subscription(subscription, plan_id)
    if state.id is None:
        state = state.model_copy(update={"id": subscription_id})
    emit(state.model_dump())


# =============================================================================
# Parent Commands
# =============================================================================


@cli.command()
@click.pass_context
def tenants(ctx: click.Context) -> None:
    """List the organization's customer tenants."""
    with provisioner_from(ctx) as provisioner:
        items = provisioner.billing.get_customer_tenants()
    emit([tenant.model_dump() for tenant in items])


@cli.command()
@click.argument("customer_tenant_id", type=int)
@click.pass_context
def plan(ctx: click.Context, customer_tenant_id: int) -> None:
    """Show the Azure plan of CUSTOMER_TENANT_ID."""
    with provisioner_from(ctx) as provisioner:
        azure_plan = provisioner.billing.get_azure_plan(customer_tenant_id)
    emit(azure_plan.model_dump())


def run() -> None:
    """Entry point for the azsub CLI."""
    cli(obj={})


if __name__ == "__main__":
    run()
