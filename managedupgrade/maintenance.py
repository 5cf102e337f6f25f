"""Alertmanager silences that cover the maintenance windows of an upgrade."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol

OPERATOR_NAME = "managed-upgrade-operator"
CONTROL_PLANE_SILENCE_COMMENT_ID = "OSD control plane"
WORKER_SILENCE_COMMENT_ID = "OSD worker node"
SILENCE_STATE_ACTIVE = "active"


@dataclass(frozen=True)
class Matcher:
    """An alert label matcher."""

    name: str
    value: str
    is_regex: bool


@dataclass
class Silence:
    """An Alertmanager silence as returned by the API."""

    comment: str
    created_by: str
    id: Optional[str] = None
    state: str = SILENCE_STATE_ACTIVE
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    matchers: list[Matcher] = field(default_factory=list)


SilencePredicate = Callable[[Silence], bool]


class _Silencer(Protocol):
    def filter(self, *predicates: SilencePredicate) -> list[Silence]: ...

    def create(
        self,
        matchers: Sequence[Matcher],
        starts_at: datetime,
        ends_at: datetime,
        creator: str,
        comment: str,
    ) -> None: ...

    def delete(self, silence_id: str) -> None: ...


def create_matcher(name: str, value: str, is_regex: bool) -> Matcher:
    return Matcher(name=name, value=value, is_regex=is_regex)


def create_default_matchers() -> list[Matcher]:
    """Matchers for non-critical alerts in platform namespaces."""
    # Upgrades can impact availability and fire info/warning alerts; those are ignored.
    return [
        create_matcher("severity", "(warning|info)", True),
        create_matcher("namespace", "(^openshift.*|^kube.*|^redhat.*|^default$)", True),
    ]


def _active(silence: Silence) -> bool:
    return silence.state == SILENCE_STATE_ACTIVE


def _created_by_operator(silence: Silence) -> bool:
    return silence.created_by == OPERATOR_NAME


def _equals_comment(comment: str) -> SilencePredicate:
    return lambda silence: silence.comment == comment


def _contains_comment(comment: str) -> SilencePredicate:
    return lambda silence: comment in silence.comment


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AlertManagerMaintenance:
    """Maintenance windows expressed as silences in Alertmanager."""

    def __init__(self, client: _Silencer) -> None:
        self._client = client

    def start_control_plane(
        self, ends_at: datetime, version: str, ignored_critical_alerts: Sequence[str]
    ) -> None:
        """Silence alerts for a control plane upgrade to version, ending at ends_at (UTC)."""
        default_comment = (
            f"Silence for {CONTROL_PLANE_SILENCE_COMMENT_ID} upgrade to version {version}"
        )
        default_exists = bool(self._client.filter(_equals_comment(default_comment)))

        critical_comment = (
            f"Silence for critical alerts during {CONTROL_PLANE_SILENCE_COMMENT_ID} "
            f"upgrade to version {version}"
        )
        critical_exists = bool(self._client.filter(_equals_comment(critical_comment)))

        if default_exists and critical_exists:
            return

        now = _utc_now()
        end = ends_at.astimezone(timezone.utc)
        if not default_exists:
            self._client.create(
                create_default_matchers(), now, end, OPERATOR_NAME, default_comment
            )

        if not critical_exists and ignored_critical_alerts:
            pattern = "(" + "|".join(ignored_critical_alerts) + ")"
            self._client.create(
                [create_matcher("alertname", pattern, True)],
                now,
                end,
                OPERATOR_NAME,
                critical_comment,
            )

    def set_worker(self, ends_at: datetime, version: str, count: int) -> None:
        """Ensure a worker silence naming the remaining node count exists."""
        comment = f"Silence for {WORKER_SILENCE_COMMENT_ID} upgrade to version {version}"
        full_comment = f"{comment} with remaining {count} nodes"
        if self._client.filter(_equals_comment(full_comment)):
            return

        end = ends_at.astimezone(timezone.utc)
        old_silences = self._client.filter(_active, _contains_comment(comment))
        if old_silences:
            self._client.delete(old_silences[0].id)
        self._client.create(
            create_default_matchers(), _utc_now(), end, OPERATOR_NAME, full_comment
        )

    def end_control_plane(self) -> None:
        self.end_silences(CONTROL_PLANE_SILENCE_COMMENT_ID)

    def end_worker(self) -> None:
        self.end_silences(WORKER_SILENCE_COMMENT_ID)

    def end_silences(self, comment: str) -> None:
        """Expire the operator's active silences whose comment contains comment."""
        silences = self._client.filter(
            _created_by_operator, _active, _contains_comment(comment)
        )
        errors: list[Exception] = []
        for silence in silences:
            try:
                self._client.delete(silence.id)
            except Exception as exc:  # collected so every silence is attempted
                errors.append(exc)
        if errors:
            details = "\n\t".join(f"* {error}" for error in errors)
            raise RuntimeError(
                f"{len(errors)} silence(s) could not be deleted:\n\t{details}"
            ) from errors[0]

    def is_active(self) -> bool:
        """True when the operator has any active silence."""
        return bool(self._client.filter(_active, _created_by_operator))