"""Sends upgrade state notifications once per upgrade config, state and version."""

from __future__ import annotations

from typing import Protocol, Union

from .notifier import MuoState
from .upgradeconfig import ConditionType, UpgradeCondition, UpgradeConfig

UPGRADE_PRECHECK_FAILED_DESC = (
    "Cluster upgrade to version {version} was cancelled as the cluster did not pass "
    "its pre-upgrade verification checks. Automated upgrades will be retried on their "
    "next scheduling cycle. If you have manually scheduled an upgrade instead, it must "
    "now be rescheduled"
)
UPGRADE_PREHEALTHCHECK_FAILED_DESC = (
    "Cluster upgrade to version {version} was cancelled during the Pre-Health Check "
    "step. Health alerts are firing in the cluster which could impact the upgrade's "
    "operation, so the upgrade did not proceed. Automated upgrades will be retried on "
    "their next scheduling cycle. If you have manually scheduled an upgrade instead, "
    "it must now be rescheduled"
)
UPGRADE_EXTDEPCHECK_FAILED_DESC = (
    "Cluster upgrade to version {version} was cancelled during the External "
    "Dependency Availability Check step. A required external dependency of the "
    "upgrade was unavailable, so the upgrade did not proceed. Automated upgrades will "
    "be retried on their next scheduling cycle. If you have manually scheduled an "
    "upgrade instead, it must now be rescheduled"
)
UPGRADE_SCALE_FAILED_DESC = (
    "Cluster upgrade to version {version} was cancelled during the Scale-Up Worker "
    "Node step. A temporary additional worker node was unable to be created to "
    "temporarily house workloads, so the upgrade did not proceed. Automated upgrades "
    "will be retried on their next scheduling cycle. If you have manually scheduled "
    "an upgrade instead, it must now be rescheduled"
)

UPGRADE_DEFAULT_DELAY_DESC = (
    "Cluster upgrade to version {version} is experiencing a delay whilst it performs "
    "necessary pre-upgrade procedures. The upgrade will continue to retry. This is an "
    "informational notification and no action is required"
)
UPGRADE_PREHEALTHCHECK_DELAY_DESC = (
    "Cluster upgrade to version {version} is experiencing a delay as health alerts "
    "are firing in the cluster which could impact the upgrade's operation. The "
    "upgrade will continue to retry. This is an informational notification and no "
    "action is required by you"
)
UPGRADE_EXTDEPCHECK_DELAY_DESC = (
    "Cluster upgrade to version {version} is experiencing a delay as an external "
    "dependency of the upgrade is currently unavailable. The upgrade will continue to "
    "retry. This is an informational notification and no action is required by you"
)
UPGRADE_SCALE_DELAY_DESC = (
    "Cluster upgrade to version {version} is experiencing a delay attempting to scale "
    "up an additional worker node. The upgrade will continue to retry. This is an "
    "informational notification and no action is required by you"
)
UPGRADE_SCALE_DELAY_SKIP_DESC = (
    "Cluster upgrade to version {version} has experienced an issue during capacity "
    "reservation efforts. This could be caused by cloud service provider quota "
    "limitations or temporary connectivity issues to/from the new worker node. The "
    "upgrade will continue without extra compute. This is an informational "
    "notification and no action is required by you"
)

_FAILURE_DESCRIPTIONS = {
    ConditionType.UPGRADE_PRE_HEALTH_CHECK: UPGRADE_PREHEALTHCHECK_FAILED_DESC,
    ConditionType.EXT_DEP_AVAILABILITY_CHECK: UPGRADE_EXTDEPCHECK_FAILED_DESC,
    ConditionType.UPGRADE_SCALE_UP_EXTRA_NODES: UPGRADE_SCALE_FAILED_DESC,
}

_DELAY_DESCRIPTIONS = {
    ConditionType.UPGRADE_PRE_HEALTH_CHECK: UPGRADE_PREHEALTHCHECK_DELAY_DESC,
    ConditionType.EXT_DEP_AVAILABILITY_CHECK: UPGRADE_EXTDEPCHECK_DELAY_DESC,
    ConditionType.UPGRADE_SCALE_UP_EXTRA_NODES: UPGRADE_SCALE_DELAY_DESC,
}


class _UpgradeConfigSource(Protocol):
    def get(self) -> UpgradeConfig: ...


class _NotificationMetrics(Protocol):
    def is_metric_notification_event_sent_set(
        self, name: str, state: str, version: str
    ) -> bool: ...

    def update_metric_notification_event_sent(
        self, name: str, state: str, version: str
    ) -> None: ...


class _StateNotifier(Protocol):
    def notify_state(self, state: MuoState, description: str) -> None: ...


def _first_incomplete_condition(upgrade_config: UpgradeConfig) -> UpgradeCondition | None:
    history = upgrade_config.get_history(upgrade_config.spec.desired.version)
    if history is None:
        return None
    return next((c for c in history.conditions if c.is_false()), None)


def create_failure_description(upgrade_config: UpgradeConfig) -> str:
    """Describe a failure by the step the upgrade last failed to complete."""
    version = upgrade_config.spec.desired.version
    condition = _first_incomplete_condition(upgrade_config)
    if condition is None:
        return UPGRADE_PRECHECK_FAILED_DESC.format(version=version)
    if condition.type == ConditionType.IS_CLUSTER_UPGRADABLE:
        return condition.message
    template = _FAILURE_DESCRIPTIONS.get(condition.type, UPGRADE_PRECHECK_FAILED_DESC)
    return template.format(version=version)


def create_delayed_description(upgrade_config: UpgradeConfig) -> str:
    """Describe a delay by the step the upgrade has not yet completed."""
    version = upgrade_config.spec.desired.version
    condition = _first_incomplete_condition(upgrade_config)
    if condition is None:
        return UPGRADE_DEFAULT_DELAY_DESC.format(version=version)
    template = _DELAY_DESCRIPTIONS.get(condition.type, UPGRADE_DEFAULT_DELAY_DESC)
    return template.format(version=version)


class EventManager:
    """Notifies upgrade states, each at most once per config, state and version.

    The upgrade config manager signals a missing UpgradeConfig by raising
    LookupError; nothing is notified in that case.
    """

    def __init__(
        self,
        upgrade_config_manager: _UpgradeConfigSource,
        metrics: _NotificationMetrics,
        notifier: _StateNotifier,
    ) -> None:
        self.upgrade_config_manager = upgrade_config_manager
        self.metrics = metrics
        self.notifier = notifier

    def notify(self, state: Union[MuoState, str]) -> None:
        """Send a notification for the state unless one was already sent."""
        try:
            upgrade_config = self.upgrade_config_manager.get()
        except LookupError:
            return
        except Exception as exc:
            raise RuntimeError(f"unable to find UpgradeConfig: {exc}") from exc

        try:
            muo_state = MuoState(state)
        except ValueError:
            raise ValueError(f"state {state} not yet implemented") from None

        name = upgrade_config.name
        version = upgrade_config.spec.desired.version
        try:
            already_sent = self.metrics.is_metric_notification_event_sent_set(
                name, muo_state.value, version
            )
        except Exception as exc:
            raise RuntimeError(
                f"can't check cluster metric NotificationSent: {exc}"
            ) from exc
        if already_sent:
            return

        if muo_state is MuoState.STARTED:
            description = f"Cluster is currently being upgraded to version {version}"
        elif muo_state is MuoState.DELAYED:
            description = create_delayed_description(upgrade_config)
        elif muo_state is MuoState.SKIPPED:
            description = UPGRADE_SCALE_DELAY_SKIP_DESC.format(version=version)
        elif muo_state is MuoState.COMPLETED:
            description = f"Cluster has been successfully upgraded to version {version}"
        elif muo_state is MuoState.FAILED:
            description = create_failure_description(upgrade_config)
        else:
            raise ValueError(f"state {muo_state.value} not yet implemented")

        try:
            self.notifier.notify_state(muo_state, description)
        except Exception as exc:
            raise RuntimeError(
                f"can't send notification '{muo_state.value}': {exc}"
            ) from exc
        self.metrics.update_metric_notification_event_sent(
            name, muo_state.value, version
        )