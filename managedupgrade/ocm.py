"""Client for the cluster services API: cluster info and upgrade policies."""

from __future__ import annotations

import logging
import os
import posixpath
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol
from urllib.parse import urlsplit, urlunsplit

import requests

OPERATION_ID_HEADER = "X-Operation-Id"
CLUSTERS_V1_PATH = "/api/clusters_mgmt/v1/clusters"
UPGRADEPOLICIES_V1_PATH = "upgrade_policies"
STATE_V1_PATH = "state"
UPGRADE_TYPE_OSD = "OSD"

_CONNECT_TIMEOUT_SECONDS = 5

logger = logging.getLogger("ocm-client")


class OcmError(Exception):
    """A request to the cluster services API failed."""


class ClusterIdNotFoundError(OcmError):
    """The cluster could not be found by its external ID."""

    def __init__(self, message: str = "cluster ID can't be found") -> None:
        super().__init__(message)


@dataclass
class UpgradePolicy:
    """One upgrade policy of a cluster."""

    id: str = ""
    kind: str = ""
    href: str = ""
    schedule: str = ""
    schedule_type: str = ""
    upgrade_type: str = ""
    version: str = ""
    next_run: str = ""
    prev_run: str = ""
    cluster_id: str = ""
    capacity_reservation: Optional[bool] = None

    @classmethod
    def _from_json(cls, data: dict[str, Any]) -> UpgradePolicy:
        return cls(
            id=data.get("id", ""),
            kind=data.get("kind", ""),
            href=data.get("href", ""),
            schedule=data.get("schedule", ""),
            schedule_type=data.get("schedule_type", ""),
            upgrade_type=data.get("upgrade_type", ""),
            version=data.get("version", ""),
            next_run=data.get("next_run", ""),
            prev_run=data.get("prev_run", ""),
            cluster_id=data.get("cluster_id", ""),
            capacity_reservation=data.get("capacity_reservation"),
        )


@dataclass
class UpgradePolicyList:
    """A page of upgrade policies."""

    kind: str = ""
    page: int = 0
    size: int = 0
    total: int = 0
    items: list[UpgradePolicy] = field(default_factory=list)

    @classmethod
    def _from_json(cls, data: dict[str, Any]) -> UpgradePolicyList:
        return cls(
            kind=data.get("kind", ""),
            page=data.get("page", 0),
            size=data.get("size", 0),
            total=data.get("total", 0),
            items=[UpgradePolicy._from_json(item) for item in data.get("items") or []],
        )


@dataclass
class ClusterVersion:
    """A cluster's version and channel group."""

    id: str = ""
    channel_group: str = ""

    @classmethod
    def _from_json(cls, data: dict[str, Any]) -> ClusterVersion:
        return cls(id=data.get("id", ""), channel_group=data.get("channel_group", ""))


@dataclass
class NodeDrainGracePeriod:
    """The grace period allowed for node drains."""

    value: int = 0
    unit: str = ""

    @classmethod
    def _from_json(cls, data: dict[str, Any]) -> NodeDrainGracePeriod:
        return cls(value=data.get("value", 0), unit=data.get("unit", ""))


@dataclass
class ClusterInfo:
    """The parts of a cluster record the operator uses."""

    id: str = ""
    version: ClusterVersion = field(default_factory=ClusterVersion)
    node_drain_grace_period: NodeDrainGracePeriod = field(
        default_factory=NodeDrainGracePeriod
    )

    @classmethod
    def _from_json(cls, data: dict[str, Any]) -> ClusterInfo:
        return cls(
            id=data.get("id", ""),
            version=ClusterVersion._from_json(data.get("version") or {}),
            node_drain_grace_period=NodeDrainGracePeriod._from_json(
                data.get("node_drain_grace_period") or {}
            ),
        )


@dataclass
class ClusterList:
    """A page of clusters."""

    kind: str = ""
    page: int = 0
    size: int = 0
    total: int = 0
    items: list[ClusterInfo] = field(default_factory=list)

    @classmethod
    def _from_json(cls, data: dict[str, Any]) -> ClusterList:
        return cls(
            kind=data.get("kind", ""),
            page=data.get("page", 0),
            size=data.get("size", 0),
            total=data.get("total", 0),
            items=[ClusterInfo._from_json(item) for item in data.get("items") or []],
        )


@dataclass
class UpgradePolicyState:
    """The notification state of an upgrade policy."""

    kind: str = ""
    href: str = ""
    value: str = ""
    description: str = ""

    @classmethod
    def _from_json(cls, data: dict[str, Any]) -> UpgradePolicyState:
        return cls(
            kind=data.get("kind", ""),
            href=data.get("href", ""),
            value=data.get("value", ""),
            description=data.get("description", ""),
        )


def _parse_url(text: str):
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in text):
        raise ValueError("URL contains a control character")
    return urlsplit(text)


@dataclass
class OcmClientConfig:
    """Configuration naming the API base URL."""

    ocm_base_url: str = ""

    def validate(self) -> None:
        """Raise ValueError unless the base URL can be parsed."""
        try:
            _parse_url(self.ocm_base_url)
        except ValueError as exc:
            raise ValueError("OCM Base URL is not a parseable URL") from exc

    def base_url(self) -> Optional[str]:
        """The parsed base URL, or None if it cannot be parsed."""
        try:
            return urlunsplit(_parse_url(self.ocm_base_url))
        except ValueError:
            return None


def get_proxy() -> str:
    """The HTTPS proxy from the environment, or an empty string."""
    return os.environ.get("HTTPS_PROXY", "")


def _join_path(*parts: str) -> str:
    joined = "/".join(part for part in parts if part)
    return posixpath.normpath(joined) if joined else ""


class _ClusterIdSource(Protocol):
    def get_cluster_id(self) -> str: ...


class OcmClient:
    """Queries and updates a cluster's upgrade policies."""

    def __init__(
        self,
        cluster_client: _ClusterIdSource,
        base_url: str,
        cluster_id: str,
        pull_secret: str,
        *,
        session: Optional[requests.Session] = None,
        proxy: Optional[str] = None,
    ) -> None:
        if proxy is None:
            proxy = get_proxy()
        if proxy:
            try:
                _parse_url(proxy)
            except ValueError as exc:
                raise OcmError(f"invalid-formatted proxy: {exc}") from exc
        self.proxy: Optional[str] = proxy or None
        self.base_url = base_url
        self._cluster_client = cluster_client
        self._session = session if session is not None else requests.Session()
        self._session.headers["Authorization"] = f"AccessToken {cluster_id}:{pull_secret}"
        if self.proxy:
            self._session.proxies.update({"http": self.proxy, "https": self.proxy})

    def _endpoint(self, *parts: str) -> str:
        try:
            base = _parse_url(self.base_url)
        except ValueError as exc:
            raise OcmError(f"can't read OCM API url: {exc}") from exc
        path = _join_path(base.path, *parts)
        return urlunsplit((base.scheme, base.netloc, path, base.query, base.fragment))

    def _send(self, method: str, url: str, failure: str, **kwargs: Any) -> requests.Response:
        try:
            return self._session.request(
                method, url, timeout=(_CONNECT_TIMEOUT_SECONDS, None), **kwargs
            )
        except requests.RequestException as exc:
            raise OcmError(
                f"{failure}: request to '{url}' returned error '{exc}'"
            ) from exc

    @staticmethod
    def _json(response: requests.Response, url: str) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise OcmError(f"response from '{url}' is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise OcmError(f"response from '{url}' is not a JSON object")
        return data

    def get_cluster(self) -> ClusterInfo:
        """Look up this cluster by its external ID."""
        try:
            external_id = self._cluster_client.get_cluster_id()
        except Exception as exc:
            raise OcmError(f"can't get clusterversion: {exc}") from exc

        url = self._endpoint(CLUSTERS_V1_PATH)
        response = self._send(
            "GET",
            url,
            "can't query OCM cluster service",
            params={
                "page": "1",
                "size": "1",
                "search": f"external_id = '{external_id}'",
            },
        )
        operation_id = response.headers.get(OPERATION_ID_HEADER, "")
        if not response.ok:
            raise OcmError(
                f"request to '{url}' received error code {response.status_code}, "
                f"operation id '{operation_id}'"
            )
        logger.info(
            "request to '%s' received response code %s, operation id: '%s'",
            url,
            response.status_code,
            operation_id,
        )
        clusters = ClusterList._from_json(self._json(response, url))
        if clusters.size != 1 or len(clusters.items) != 1:
            raise ClusterIdNotFoundError()
        return clusters.items[0]

    def get_cluster_upgrade_policies(self, cluster_id: str) -> UpgradePolicyList:
        """Return the cluster's OSD upgrade policies."""
        url = self._endpoint(CLUSTERS_V1_PATH, cluster_id, UPGRADEPOLICIES_V1_PATH)
        response = self._send(
            "GET",
            url,
            "can't pull upgrade policies",
            params={
                "page": "1",
                "size": "1",
                "search": f"upgrade_type = '{UPGRADE_TYPE_OSD}'",
            },
        )
        operation_id = response.headers.get(OPERATION_ID_HEADER, "")
        if not response.ok:
            raise OcmError(
                f"request to '{url}' received error code '{response.status_code}' "
                f"from OCM upgrade policy service, operation id '{operation_id}'"
            )
        logger.info(
            "request to '%s' received response code '%s' from OCM upgrade policy "
            "service, operation id: '%s'",
            url,
            response.status_code,
            operation_id,
        )
        return UpgradePolicyList._from_json(self._json(response, url))

    def set_state(
        self, value: str, description: str, policy_id: str, cluster_id: str
    ) -> None:
        """Record a new notification state on an upgrade policy."""
        url = self._endpoint(
            CLUSTERS_V1_PATH, cluster_id, UPGRADEPOLICIES_V1_PATH, policy_id, STATE_V1_PATH
        )
        response = self._send(
            "PATCH",
            url,
            "can't set upgrade policy state",
            json={"value": value, "description": description},
        )
        operation_id = response.headers.get(OPERATION_ID_HEADER, "")
        if not response.ok:
            raise OcmError(
                f"request to '{url}' received error code {response.status_code}, "
                f"operation id '{operation_id}'"
            )

    def get_cluster_upgrade_policy_state(
        self, policy_id: str, cluster_id: str
    ) -> UpgradePolicyState:
        """Return the notification state of an upgrade policy."""
        url = self._endpoint(
            CLUSTERS_V1_PATH, cluster_id, UPGRADEPOLICIES_V1_PATH, policy_id, STATE_V1_PATH
        )
        response = self._send("GET", url, "can't pull upgrade policy state")
        operation_id = response.headers.get(OPERATION_ID_HEADER, "")
        if not response.ok:
            raise OcmError(
                f"received error code '{response.status_code}' from OCM upgrade "
                f"policy service, operation id '{operation_id}'"
            )
        return UpgradePolicyState._from_json(self._json(response, url))