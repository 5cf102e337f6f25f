"""Upgrade state notifications, sent to the cluster services API or to the log."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Union

from .ocm import ClusterInfo, OcmClientConfig, UpgradePolicyList, UpgradePolicyState
from .upgradeconfig import UpgradeConfig

logger = logging.getLogger("event-notifier")


class NotifierError(Exception):
    """A notification could not be configured or delivered."""


class MuoState(str, Enum):
    """Upgrade states the operator reports."""

    PENDING = "StatePending"
    STARTED = "StateStarted"
    COMPLETED = "StateCompleted"
    DELAYED = "StateDelayed"
    FAILED = "StateFailed"
    CANCELLED = "StateCancelled"
    SCHEDULED = "StateScheduled"
    SKIPPED = "StateSkipped"


class OcmState(str, Enum):
    """Upgrade policy states known to the cluster services API."""

    PENDING = "pending"
    STARTED = "started"
    DELAYED = "delayed"
    FAILED = "failed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    SCHEDULED = "scheduled"


_STATE_MAP: dict[MuoState, OcmState] = {
    MuoState.PENDING: OcmState.PENDING,
    MuoState.CANCELLED: OcmState.CANCELLED,
    MuoState.STARTED: OcmState.STARTED,
    MuoState.COMPLETED: OcmState.COMPLETED,
    MuoState.DELAYED: OcmState.DELAYED,
    MuoState.FAILED: OcmState.FAILED,
    MuoState.SCHEDULED: OcmState.SCHEDULED,
    MuoState.SKIPPED: OcmState.DELAYED,
}

_ALLOWED_TRANSITIONS: dict[MuoState, frozenset[MuoState]] = {
    MuoState.SCHEDULED: frozenset({MuoState.STARTED}),
    MuoState.STARTED: frozenset(
        {MuoState.DELAYED, MuoState.COMPLETED, MuoState.FAILED}
    ),
    MuoState.DELAYED: frozenset(
        {MuoState.COMPLETED, MuoState.FAILED, MuoState.SKIPPED}
    ),
    MuoState.SKIPPED: frozenset({MuoState.COMPLETED, MuoState.FAILED}),
}

_SOURCE_OCM = "OCM"
_SOURCE_LOCAL = "LOCAL"


@dataclass
class NotifierConfig:
    """Names the source the notifier is configured from."""

    source: str = ""

    def validate(self) -> None:
        """Raise NotifierError if a source is given but not supported."""
        if self.source == "":
            return
        if self.source.upper() not in (_SOURCE_OCM, _SOURCE_LOCAL):
            raise NotifierError("no valid configured notifier")


@dataclass
class OcmNotifierConfig:
    """The API base URL used by the OCM notifier."""

    ocm_base_url: str = ""

    def validate(self) -> None:
        """Raise ValueError unless the base URL can be parsed."""
        OcmClientConfig(self.ocm_base_url).validate()

    def base_url(self) -> Optional[str]:
        """The parsed base URL, or None if it cannot be parsed."""
        return OcmClientConfig(self.ocm_base_url).base_url()


def validate_state_transition(
    from_state: Union[MuoState, str], to_state: Union[MuoState, str]
) -> bool:
    """Tell whether a notification may move from one state to another."""
    try:
        source = MuoState(from_state)
        target = MuoState(to_state)
    except ValueError:
        return False
    return target in _ALLOWED_TRANSITIONS.get(source, frozenset())


def map_state(ocm_state: Union[OcmState, str]) -> Optional[MuoState]:
    """Return the first operator state that maps to the given API state."""
    return next(
        (muo for muo, ocm in _STATE_MAP.items() if ocm == ocm_state),
        None,
    )


class _OcmApi(Protocol):
    def get_cluster(self) -> ClusterInfo: ...

    def get_cluster_upgrade_policies(self, cluster_id: str) -> UpgradePolicyList: ...

    def get_cluster_upgrade_policy_state(
        self, policy_id: str, cluster_id: str
    ) -> UpgradePolicyState: ...

    def set_state(
        self, value: str, description: str, policy_id: str, cluster_id: str
    ) -> None: ...


class _UpgradeConfigSource(Protocol):
    def get(self) -> UpgradeConfig: ...


class LogNotifier:
    """A notifier that only writes to the log."""

    def notify_state(self, state: Union[MuoState, str], description: str) -> None:
        logger.info(
            "Upgrade-State: %s Description: %s", MuoState(state).value, description
        )


class OcmNotifier:
    """Reports upgrade state on the matching cluster services upgrade policy."""

    def __init__(
        self, ocm_client: _OcmApi, upgrade_config_manager: _UpgradeConfigSource
    ) -> None:
        self.ocm_client = ocm_client
        self.upgrade_config_manager = upgrade_config_manager

    def notify_state(self, state: Union[MuoState, str], description: str) -> None:
        """Set the policy state, if moving to it is a valid transition."""
        state = MuoState(state)
        try:
            cluster = self.ocm_client.get_cluster()
        except Exception as exc:
            raise NotifierError(
                f"failed to retrieve internal ocm cluster ID: {exc}"
            ) from exc

        try:
            policy_id = self._policy_id_for_upgrade_config(cluster.id)
        except Exception as exc:
            raise NotifierError(
                f"can't determine policy ID to notify for: {exc}"
            ) from exc

        try:
            current = self.ocm_client.get_cluster_upgrade_policy_state(
                policy_id, cluster.id
            )
        except Exception as exc:
            raise NotifierError(f"can't determine policy state: {exc}") from exc

        if current.value == OcmState.DELAYED:
            # The API has one delayed state; a retry description marks a real delay.
            if "retry" in current.description:
                current_state = MuoState.DELAYED
            else:
                current_state = MuoState.SKIPPED
        else:
            mapped = map_state(current.value)
            if mapped is None:
                raise NotifierError("failed to convert OCM state")
            current_state = mapped

        if not validate_state_transition(current_state, state):
            return

        try:
            self.ocm_client.set_state(
                _STATE_MAP[state].value, description, policy_id, cluster.id
            )
        except Exception as exc:
            raise NotifierError(f"can't send notification: {exc}") from exc

    def _policy_id_for_upgrade_config(self, cluster_id: str) -> str:
        upgrade_config = self.upgrade_config_manager.get()
        policies = self.ocm_client.get_cluster_upgrade_policies(cluster_id)
        matches = [
            policy.id
            for policy in policies.items
            if policy.version == upgrade_config.spec.desired.version
            and policy.next_run == upgrade_config.spec.upgrade_at
        ]
        if not matches:
            raise NotifierError("no policy matches the current UpgradeConfig")
        return matches[-1]


def new_notifier(
    config: NotifierConfig,
    ocm_client: Optional[_OcmApi],
    upgrade_config_manager: _UpgradeConfigSource,
) -> Union[OcmNotifier, LogNotifier]:
    """Create the notifier the configuration asks for, logging as a fallback."""
    config.validate()
    if config.source.upper() == _SOURCE_OCM:
        if ocm_client is None:
            raise NotifierError("an OCM client is required for the OCM notifier")
        return OcmNotifier(ocm_client, upgrade_config_manager)
    return LogNotifier()