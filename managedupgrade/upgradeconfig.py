"""The UpgradeConfig resource: its spec, history and conditions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional


class UpgradePhase(str, Enum):
    """Phases an upgrade passes through."""

    NEW = "New"
    PENDING = "Pending"
    UPGRADING = "Upgrading"
    UPGRADED = "Upgraded"
    FAILED = "Failed"


class ConditionType(str, Enum):
    """Steps of an upgrade that are recorded as conditions."""

    IS_CLUSTER_UPGRADABLE = "IsClusterUpgradable"
    UPGRADE_PRE_HEALTH_CHECK = "UpgradePreHealthCheck"
    EXT_DEP_AVAILABILITY_CHECK = "ExtDepAvailabilityCheck"
    UPGRADE_SCALE_UP_EXTRA_NODES = "UpgradeScaleUpExtraNodes"
    COMMENCE_UPGRADE = "CommenceUpgrade"


@dataclass
class UpgradeCondition:
    """The state of one upgrade step."""

    type: ConditionType
    status: str = "Unknown"
    reason: str = ""
    message: str = ""

    def is_false(self) -> bool:
        """True when the step has not completed."""
        return self.status == "False"


@dataclass
class UpgradeHistory:
    """The record of an upgrade to one version."""

    version: str
    phase: UpgradePhase = UpgradePhase.NEW
    conditions: list[UpgradeCondition] = field(default_factory=list)
    start_time: Optional[datetime] = None
    complete_time: Optional[datetime] = None
    worker_start_time: Optional[datetime] = None
    worker_complete_time: Optional[datetime] = None


@dataclass
class Update:
    """The desired version and channel."""

    version: str = ""
    channel: str = ""


@dataclass
class UpgradeConfigSpec:
    """What upgrade should happen, and when."""

    desired: Update = field(default_factory=Update)
    upgrade_at: str = ""
    pdb_force_drain_timeout: int = 0
    type: str = ""
    capacity_reservation: bool = False


@dataclass
class UpgradeConfig:
    """An upgrade request together with its status history."""

    name: str = ""
    namespace: str = ""
    spec: UpgradeConfigSpec = field(default_factory=UpgradeConfigSpec)
    history: list[UpgradeHistory] = field(default_factory=list)

    def get_history(self, version: str) -> Optional[UpgradeHistory]:
        """Return the first history entry for the version, if there is one."""
        return next((h for h in self.history if h.version == version), None)

    def pdb_drain_timeout(self) -> timedelta:
        """How long to wait before forcing drains of budget-protected pods."""
        return timedelta(minutes=self.spec.pdb_force_drain_timeout)