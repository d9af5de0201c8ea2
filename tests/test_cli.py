"""Tests for the azsub CLI."""

import json
from pathlib import Path

import pytest
from api_mock import FakeClock, MockCloudIQ, MockSubscriptionClient
from click.testing import CliRunner

from provisioner import cli as cli_module
from provisioner.auth import TokenCache
from provisioner.billing import BillingClient
from provisioner.cli import cli
from provisioner.cloud import CloudPoller
from provisioner.config import Config
from provisioner.main import Provisioner
from provisioner.reconciler import ProvisioningReconciler
from provisioner.resolver import PendingStateResolver
from provisioner.resource import SubscriptionResource

PLAN_ID = 873834
GUID = "11111111-1111-1111-1111-111111111111"
ENV = {"CRAYON_CLIENT_ID": "client-id", "CRAYON_SECRET": "client-secret"}


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the CLI from installing handlers on the captured stderr."""
    monkeypatch.setattr(cli_module, "setup_logging", lambda level: None)


@pytest.fixture
def arm() -> MockSubscriptionClient:
    return MockSubscriptionClient([])


@pytest.fixture
def invoke(
    tokens: TokenCache, billing: BillingClient, arm: MockSubscriptionClient, clock: FakeClock
):
    def factory(config: Config) -> Provisioner:
        cloud = CloudPoller(
            tokens, poll_interval_seconds=30, subscription_client=arm, sleeper=clock.sleep
        )
        reconciler = ProvisioningReconciler(
            billing, cloud, poll_interval_seconds=30, sleeper=clock.sleep, clock=clock
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

    def run(*args: str, env: dict[str, str] | None = None):
        return CliRunner().invoke(cli, list(args), obj={"factory": factory}, env=env or ENV)

    return run


def write_state(tmp_path: Path, **values) -> Path:
    state = {"azure_plan_id": PLAN_ID, "name": "sub-a", **values}
    path = tmp_path / "state.json"
    path.write_text(json.dumps(state), encoding="utf-8")
    return path


class TestCreateCommand:
    def test_create_pending(self, invoke, arm: MockSubscriptionClient) -> None:
        result = invoke("create", str(PLAN_ID), "sub-a", "--timeout-minutes", "1")

        assert result.exit_code == 0, result.output
        assert "Warning:" in result.output
        assert '"subscription_id": "pending"' in result.output
        assert arm.list_call_count == 1

    def test_create_synchronous(self, invoke, api: MockCloudIQ) -> None:
        api.accept_creates = False

        result = invoke("create", str(PLAN_ID), "sub-a")

        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["id"] == 1001

    def test_create_rejected(self, invoke, api: MockCloudIQ) -> None:
        api.inject_failure(
            "POST", f"/api/v1/azureplans/{PLAN_ID}/azuresubscriptions", 400, "quota exceeded"
        )

        result = invoke("create", str(PLAN_ID), "sub-a")

        assert result.exit_code == 1
        assert "quota exceeded" in result.output

    def test_missing_configuration(self, invoke) -> None:
        result = invoke("create", str(PLAN_ID), "sub-a", env={"CRAYON_CLIENT_ID": "", "CRAYON_SECRET": ""})

        assert result.exit_code == 1
        assert "CRAYON_CLIENT_ID is required" in result.output


class TestStateCommands:
    def test_read_resolves_pending(self, invoke, api: MockCloudIQ, tmp_path: Path) -> None:
        api.add_subscription(PLAN_ID, 42, "sub-a", GUID)

        result = invoke("read", "--state", str(write_state(tmp_path)))

        assert result.exit_code == 0, result.output
        state = json.loads(result.output)
        assert state["id"] == 42
        assert state["subscription_id"] == GUID

    def test_rename_pending_fails(self, invoke, api: MockCloudIQ, tmp_path: Path) -> None:
        result = invoke("rename", "--state", str(write_state(tmp_path)), "sub-b")

        assert result.exit_code == 1
        assert "Cannot rename pending subscription" in result.output
        assert api.requests == []

    def test_cancel(self, invoke, api: MockCloudIQ, tmp_path: Path) -> None:
        api.add_subscription(PLAN_ID, 42, "sub-a", GUID)
        path = write_state(tmp_path, id=42, subscription_id=GUID, status="active")

        result = invoke("cancel", "--state", str(path))

        assert result.exit_code == 0, result.output
        assert api.subscriptions[42].status == "cancelled"

    def test_invalid_state_file(self, invoke, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text('{"name": "sub-a"}', encoding="utf-8")

        result = invoke("read", "--state", str(path))

        assert result.exit_code == 1
        assert "Invalid state file" in result.output


class TestLookupCommands:
    def test_import(self, invoke, api: MockCloudIQ) -> None:
        api.add_subscription(PLAN_ID, 42, "sub-a", GUID)

        result = invoke("import", f"{PLAN_ID}:42")

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {
            "id": 42,
            "azure_plan_id": PLAN_ID,
            "name": "sub-a",
            "subscription_id": GUID,
            "status": "active",
        }

    def test_import_bad_key(self, invoke, api: MockCloudIQ) -> None:
        result = invoke("import", "873834")

        assert result.exit_code == 1
        assert "azure_plan_id:subscription_id" in result.output
        assert api.requests == []

    def test_tenants(self, invoke, api: MockCloudIQ) -> None:
        api.tenants = [{"id": 7, "domain": "contoso.onmicrosoft.com", "name": "Contoso"}]

        result = invoke("tenants")

        assert result.exit_code == 0, result.output
        assert json.loads(result.output)[0]["name"] == "Contoso"
