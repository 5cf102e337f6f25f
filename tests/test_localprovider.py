import pytest

from managedupgrade.localprovider import (
    LocalProvider,
    LocalProviderConfig,
    fetch_upgrade_configs,
    read_spec_from_config,
)
from managedupgrade.upgradeconfig import (
    Update,
    UpgradeConfig,
    UpgradeConfigSpec,
    UpgradeHistory,
    UpgradePhase,
)

NAME = "managed-upgrade-config"
VERSION = "4.7.11"
NAMESPACE = "test-managed-upgrade-operator"


class FakeClient:
    def __init__(self, configs, error=None):
        self.configs = configs
        self.error = error
        self.calls = []

    def list_upgrade_configs(self, namespace, name):
        self.calls.append((namespace, name))
        if self.error:
            raise self.error
        return list(self.configs)


@pytest.fixture
def spec():
    return UpgradeConfigSpec(
        desired=Update(version=VERSION, channel="stable-4.7"),
        upgrade_at="2021-06-03T00:00:00Z",
        pdb_force_drain_timeout=60,
        type="OSD",
        capacity_reservation=True,
    )


@pytest.fixture
def configs(spec):
    return [
        UpgradeConfig(
            name="uc1",
            spec=spec,
            history=[
                UpgradeHistory(version=VERSION, phase=UpgradePhase.PENDING),
                UpgradeHistory(version=VERSION, phase=UpgradePhase.UPGRADED),
            ],
        )
    ]


def test_get_returns_specs(configs, spec):
    client = FakeClient(configs)
    provider = LocalProvider(client, NAME, NAMESPACE)
    assert spec in provider.get()
    assert client.calls == [(NAMESPACE, NAME)]


def test_fetch_returns_configs(configs):
    client = FakeClient(configs)
    assert fetch_upgrade_configs(client, NAMESPACE) == configs
    assert client.calls == [(NAMESPACE, NAME)]


def test_fetch_error_propagates(configs):
    client = FakeClient(configs, error=RuntimeError("some error"))
    with pytest.raises(RuntimeError, match="some error"):
        fetch_upgrade_configs(client, NAMESPACE)


def test_get_error_propagates(configs):
    provider = LocalProvider(FakeClient(configs, error=RuntimeError("some error")), NAME, NAMESPACE)
    with pytest.raises(RuntimeError):
        provider.get()


def test_read_spec_with_history(configs, spec):
    assert read_spec_from_config(configs) == [spec]


def test_read_spec_empty_history(spec):
    assert read_spec_from_config([UpgradeConfig(name="uc1", spec=spec)]) == []


def test_read_spec_upgraded_history(spec):
    config = UpgradeConfig(
        name="uc1",
        spec=spec,
        history=[UpgradeHistory(version=VERSION, phase=UpgradePhase.UPGRADED)],
    )
    assert read_spec_from_config([config]) == []


def test_config_accepts_managed_name():
    config = LocalProviderConfig(local_config_name=NAME)
    config.validate()
    assert config.local_config_name == NAME


def test_config_rejects_other_name():
    with pytest.raises(ValueError, match="managed-upgrade-config"):
        LocalProviderConfig(local_config_name="other").validate()