# managedupgrade

A library of pieces used while running a managed cluster upgrade. It holds the
upgrade's records, silences alerts during maintenance, reports upgrade state
to the cluster management service, and sends each state notification once.

## Modules

- `managedupgrade.upgradeconfig`: the `UpgradeConfig` record. It holds its spec
  (`UpgradeConfigSpec`, `Update`), its history (`UpgradeHistory`) and its
  per-step conditions (`UpgradeCondition`, `ConditionType`, `UpgradePhase`).
  `UpgradeConfig.get_history(version)` returns the first history entry for a
  version. `UpgradeConfig.pdb_drain_timeout()` returns the force-drain timeout
  as a `timedelta`.
- `managedupgrade.localprovider`: `LocalProvider.get()` returns the specs of
  upgrade configs that have a history entry for their desired version whose
  phase is not `Upgraded`. It asks a client you supply for them through
  `list_upgrade_configs(namespace, name)`. `read_spec_from_config` does the
  same selection on a list you already hold. `LocalProviderConfig.validate()`
  raises `ValueError` unless the configured name is `managed-upgrade-config`.
- `managedupgrade.maintenance`: `AlertManagerMaintenance` creates and ends
  Alertmanager silences for the control plane and for the workers. Its
  methods are `start_control_plane`, `set_worker`, `end_control_plane`,
  `end_worker`, `end_silences` and `is_active`. It works through a silence
  client you supply, which has `filter(*predicates)`,
  `create(matchers, starts_at, ends_at, creator, comment)` and
  `delete(silence_id)`. `create_default_matchers()` returns the matchers for
  warning and info alerts in platform namespaces.
- `managedupgrade.ocm`: `OcmClient` talks to the cluster management service
  over HTTP with `requests`. `get_cluster` looks the cluster up by the
  external ID that a supplied object returns from `get_cluster_id()`.
  `get_cluster_upgrade_policies` and `get_cluster_upgrade_policy_state` read
  the cluster's policies and a policy's state, and `set_state` records a new
  state. Failures raise `OcmError`. A cluster that cannot be found raises
  `ClusterIdNotFoundError`. `get_proxy()` reads `HTTPS_PROXY` from the
  environment.
- `managedupgrade.notifier`: the operator's states (`MuoState`) and the
  service's states (`OcmState`). `validate_state_transition` allows only valid
  moves, and `map_state` maps a service state back to an operator state.
  `OcmNotifier` sets the state on the upgrade policy that matches the current
  upgrade config, and `LogNotifier` only logs. `new_notifier` picks one of the
  two from a `NotifierConfig`.
- `managedupgrade.eventmanager`: `EventManager.notify(state)` sends a state
  once per upgrade config, state and version. It checks and updates a
  metrics object you supply to know what was already sent. The description
  names the upgrade step that caused a delay or a failure
  (`create_delayed_description`, `create_failure_description`).

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Examples

State transitions can be checked without touching any service:

```python
from managedupgrade.notifier import MuoState, validate_state_transition

assert validate_state_transition(MuoState.SCHEDULED, MuoState.STARTED)
assert not validate_state_transition(MuoState.COMPLETED, MuoState.FAILED)
```

Describing a failed upgrade from its recorded conditions:

```python
from managedupgrade.eventmanager import create_failure_description
from managedupgrade.upgradeconfig import (
    ConditionType, Update, UpgradeCondition, UpgradeConfig,
    UpgradeConfigSpec, UpgradeHistory,
)

config = UpgradeConfig(
    name="managed-upgrade-config",
    spec=UpgradeConfigSpec(desired=Update(version="4.4.4")),
    history=[
        UpgradeHistory(
            version="4.4.4",
            conditions=[UpgradeCondition(ConditionType.UPGRADE_PRE_HEALTH_CHECK, status="False")],
        )
    ],
)
print(create_failure_description(config))
```

## What this package does not do

It does not connect to a cluster by itself. Listing upgrade configs, reading
the cluster ID, keeping notification metrics and managing Alertmanager
silences all go through objects the caller supplies. It does not inspect
nodes, drain pods or watch machine config rollouts. It has no command-line
program and no long-running controller. It is a library to build those on.