from datetime import datetime, timedelta, timezone

import pytest

from managedupgrade.maintenance import (
    OPERATOR_NAME,
    AlertManagerMaintenance,
    Matcher,
    Silence,
    create_default_matchers,
    create_matcher,
)

TEST_VERSION = "V-1.million.25"
TEST_WORKER_COUNT = 5
TEST_NEW_WORKER_COUNT = 4
IGNORED_CRITICALS = ["ignoredAlertSRE"]


class ScriptedSilencer:
    """Returns queued filter results in order and records calls."""

    def __init__(self, filter_results=(), create_error=None, delete_error=None):
        self.filter_results = list(filter_results)
        self.create_error = create_error
        self.delete_error = delete_error
        self.filter_calls = 0
        self.created = []
        self.deleted = []

    def filter(self, *predicates):
        self.filter_calls += 1
        return self.filter_results.pop(0)

    def create(self, matchers, starts_at, ends_at, creator, comment):
        if self.create_error is not None:
            raise self.create_error
        self.created.append(
            {"matchers": list(matchers), "starts_at": starts_at, "ends_at": ends_at,
             "creator": creator, "comment": comment}
        )

    def delete(self, silence_id):
        self.deleted.append(silence_id)
        if self.delete_error is not None:
            raise self.delete_error


class StoreSilencer(ScriptedSilencer):
    """Applies the predicates to a stored list of silences."""

    def __init__(self, silences, delete_error=None):
        super().__init__(delete_error=delete_error)
        self.silences = silences

    def filter(self, *predicates):
        self.filter_calls += 1
        return [s for s in self.silences if all(p(s) for p in predicates)]


def end_time():
    return datetime.now(timezone.utc) + timedelta(minutes=90)


def active_silence():
    return Silence(
        id="test-id",
        comment=f"Silence for OSD with {TEST_WORKER_COUNT} worker node upgrade to version {TEST_VERSION}",
        created_by=OPERATOR_NAME,
        matchers=create_default_matchers(),
    )


def test_control_plane_start_creates_two_silences():
    client = ScriptedSilencer([[], []])
    ends = end_time()
    AlertManagerMaintenance(client).start_control_plane(ends, TEST_VERSION, IGNORED_CRITICALS)
    assert client.filter_calls == 2
    assert len(client.created) == 2
    assert client.created[0]["comment"] == "Silence for OSD control plane upgrade to version V-1.million.25"
    assert client.created[0]["matchers"] == create_default_matchers()
    assert client.created[1]["matchers"] == [Matcher("alertname", "(ignoredAlertSRE)", True)]
    assert client.created[1]["creator"] == OPERATOR_NAME
    assert client.created[1]["ends_at"] == ends


def test_control_plane_start_fails_on_create_error():
    client = ScriptedSilencer([[], []], create_error=RuntimeError("fake error"))
    with pytest.raises(RuntimeError, match="fake error"):
        AlertManagerMaintenance(client).start_control_plane(end_time(), TEST_VERSION, IGNORED_CRITICALS)


def test_control_plane_without_ignored_alerts_creates_default_only():
    client = ScriptedSilencer([[], []])
    AlertManagerMaintenance(client).start_control_plane(end_time(), TEST_VERSION, [])
    assert len(client.created) == 1


def test_control_plane_existing_silences_creates_nothing():
    client = ScriptedSilencer([[active_silence()], [active_silence()]])
    AlertManagerMaintenance(client).start_control_plane(end_time(), TEST_VERSION, IGNORED_CRITICALS)
    assert client.created == []


def test_worker_silence_created():
    client = ScriptedSilencer([[], []])
    AlertManagerMaintenance(client).set_worker(end_time(), TEST_VERSION, TEST_WORKER_COUNT)
    assert client.filter_calls == 2
    assert [c["comment"] for c in client.created] == [
        "Silence for OSD worker node upgrade to version V-1.million.25 with remaining 5 nodes"
    ]
    assert client.deleted == []


def test_worker_silence_create_error():
    client = ScriptedSilencer([[], []], create_error=RuntimeError("fake error"))
    with pytest.raises(RuntimeError, match="fake error"):
        AlertManagerMaintenance(client).set_worker(end_time(), TEST_VERSION, TEST_WORKER_COUNT)


def test_worker_silence_not_recreated_when_same_comment_exists():
    client = ScriptedSilencer([[active_silence()]])
    AlertManagerMaintenance(client).set_worker(end_time(), TEST_VERSION, TEST_WORKER_COUNT)
    assert client.filter_calls == 1
    assert client.created == []


def test_worker_silence_recreated_when_count_changes():
    client = ScriptedSilencer([[], [active_silence()]])
    AlertManagerMaintenance(client).set_worker(end_time(), TEST_VERSION, TEST_NEW_WORKER_COUNT)
    assert client.deleted == ["test-id"]
    assert len(client.created) == 1


def test_end_silences_with_none_found():
    client = ScriptedSilencer([[]])
    AlertManagerMaintenance(client).end_silences("")
    assert client.deleted == []
    assert client.filter_calls == 1


def test_end_silences_deletes_operator_silences():
    silence = Silence(id="testId", comment="test comment", created_by=OPERATOR_NAME, state="active")
    client = ScriptedSilencer([[silence]])
    AlertManagerMaintenance(client).end_silences("")
    assert client.deleted == ["testId"]


def test_end_silences_filters_by_owner_state_and_comment():
    silences = [
        Silence(id="mine", comment="Silence for OSD worker node upgrade", created_by=OPERATOR_NAME),
        Silence(id="other", comment="Silence for OSD worker node upgrade", created_by="Tester the Creator"),
        Silence(id="expired", comment="Silence for OSD worker node upgrade", created_by=OPERATOR_NAME, state="expired"),
        Silence(id="cp", comment="Silence for OSD control plane upgrade", created_by=OPERATOR_NAME),
    ]
    client = StoreSilencer(silences)
    AlertManagerMaintenance(client).end_worker()
    assert client.deleted == ["mine"]


def test_end_control_plane_targets_control_plane_silences():
    silences = [
        Silence(id="w", comment="Silence for OSD worker node upgrade", created_by=OPERATOR_NAME),
        Silence(id="cp", comment="Silence for OSD control plane upgrade", created_by=OPERATOR_NAME),
    ]
    client = StoreSilencer(silences)
    AlertManagerMaintenance(client).end_control_plane()
    assert client.deleted == ["cp"]


def test_end_silences_attempts_all_and_raises():
    silences = [
        Silence(id="a", comment="x", created_by=OPERATOR_NAME),
        Silence(id="b", comment="x", created_by=OPERATOR_NAME),
    ]
    client = StoreSilencer(silences, delete_error=RuntimeError("fake error"))
    with pytest.raises(RuntimeError, match="could not be deleted"):
        AlertManagerMaintenance(client).end_silences("x")
    assert client.deleted == ["a", "b"]


def test_is_active():
    active = StoreSilencer([Silence(id="a", comment="c", created_by=OPERATOR_NAME)])
    assert AlertManagerMaintenance(active).is_active() is True
    inactive = StoreSilencer([
        Silence(id="a", comment="c", created_by=OPERATOR_NAME, state="expired"),
        Silence(id="b", comment="c", created_by="Tester the Creator"),
    ])
    assert AlertManagerMaintenance(inactive).is_active() is False


def test_default_matchers():
    assert create_default_matchers() == [
        Matcher("severity", "(warning|info)", True),
        Matcher("namespace", "(^openshift.*|^kube.*|^redhat.*|^default$)", True),
    ]
    assert create_matcher("alertname", "x", False) == Matcher("alertname", "x", False)