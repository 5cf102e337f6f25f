"""Reads upgrade specs straight from the UpgradeConfig resources on the cluster."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from .upgradeconfig import UpgradeConfig, UpgradeConfigSpec, UpgradePhase

UPGRADECONFIG_CR_NAME = "managed-upgrade-config"

logger = logging.getLogger("upgradeconfig-localprovider")


class _UpgradeConfigClient(Protocol):
    def list_upgrade_configs(self, namespace: str, name: str) -> list[UpgradeConfig]: ...


@dataclass
class LocalProviderConfig:
    """Configuration of the local upgrade config provider."""

    local_config_name: str = ""

    def validate(self) -> None:
        """Raise ValueError unless the configured name is the managed one."""
        if self.local_config_name != UPGRADECONFIG_CR_NAME:
            raise ValueError(
                f"please use {UPGRADECONFIG_CR_NAME} as the upgrade config name"
            )


def read_spec_from_config(configs: Iterable[UpgradeConfig]) -> list[UpgradeConfigSpec]:
    """Return the specs of configs whose upgrade is recorded but not finished."""
    specs = []
    for config in configs:
        history = config.get_history(config.spec.desired.version)
        if history is not None and history.phase != UpgradePhase.UPGRADED:
            specs.append(config.spec)
    return specs


def fetch_upgrade_configs(
    client: _UpgradeConfigClient, namespace: str
) -> list[UpgradeConfig]:
    """List the managed UpgradeConfig resources in the namespace."""
    try:
        return client.list_upgrade_configs(namespace, UPGRADECONFIG_CR_NAME)
    except Exception:
        logger.exception(
            "Failed to list the upgrade config with name %s", UPGRADECONFIG_CR_NAME
        )
        raise


class LocalProvider:
    """Provides upgrade specs read from the cluster itself."""

    def __init__(self, client: _UpgradeConfigClient, name: str, namespace: str) -> None:
        self.client = client
        self.name = name
        self.namespace = namespace

    def get(self) -> list[UpgradeConfigSpec]:
        """Return the specs of the pending upgrade configs on the cluster."""
        logger.info("Read the upgrade config from the cluster directly")
        return read_spec_from_config(fetch_upgrade_configs(self.client, self.namespace))