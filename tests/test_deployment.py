import datetime as dt

import pytest

from arckit.deployment import (
    ReconcileResult,
    RunnerDeployment,
    RunnerDeploymentReconciler,
    RunnerReplicaSet,
    RunnerTemplate,
    compute_hash,
    get_int_or_default,
    get_selector,
    get_template_hash,
    new_runner_replica_set,
)
from arckit.labels import (
    LABEL_KEY_RUNNER_DEPLOYMENT_NAME,
    LABEL_KEY_RUNNER_TEMPLATE_HASH,
    LabelSelector,
)
from arckit.store import ObjectStore

NS = "testns"


def _deployment(name="example", replicas=1, selector=True, runner_labels=None):
    return RunnerDeployment(
        name=name,
        namespace=NS,
        replicas=replicas,
        selector=LabelSelector(match_labels={"foo": "bar"}) if selector else None,
        template=RunnerTemplate(
            labels={"foo": "bar"} if selector else None,
            runner_labels=list(runner_labels or []),
            spec={"repository": "test/valid", "image": "bar", "env": {"FOO": "FOOVALUE"}},
        ),
    )


def _sets(store):
    return [RunnerReplicaSet.from_resource(r) for r in store.list("RunnerReplicaSet", NS)]


def _get_deployment(store, name):
    return RunnerDeployment.from_resource(store.get("RunnerDeployment", NS, name))


def _save_deployment(store, rd):
    store.update(rd.to_resource())


def _save_set(store, rs):
    store.update(rs.to_resource())


def test_new_runner_replica_set():
    rd = RunnerDeployment(
        name="example",
        selector=LabelSelector(match_labels={"foo": "bar"}),
        template=RunnerTemplate(labels={"foo": "bar"}, runner_labels=["project1"]),
    )
    rs = new_runner_replica_set(rd, ["dev"])

    assert rs.labels["foo"] == "bar"
    hash1 = rs.labels[LABEL_KEY_RUNNER_TEMPLATE_HASH]
    assert rs.template.runner_labels == ["project1", "dev"]

    rd2 = RunnerDeployment(
        name="example",
        selector=LabelSelector(match_labels={"foo": "bar"}),
        template=RunnerTemplate(labels={"foo": "bar"}, runner_labels=["project2"]),
    )
    hash2 = new_runner_replica_set(rd2, ["dev"]).labels[LABEL_KEY_RUNNER_TEMPLATE_HASH]
    assert hash1 != hash2

    rd3 = RunnerDeployment(
        name="example",
        selector=LabelSelector(match_labels={"foo": "bar"}),
        template=RunnerTemplate(labels={"foo": "baz"}, runner_labels=["project1"]),
    )
    hash3 = new_runner_replica_set(rd3, ["dev"]).labels[LABEL_KEY_RUNNER_TEMPLATE_HASH]
    assert hash1 != hash3


def test_new_runner_replica_set_metadata_and_selector():
    rd = _deployment(name="web")
    rs = new_runner_replica_set(rd)
    template_hash = rs.labels[LABEL_KEY_RUNNER_TEMPLATE_HASH]
    assert rs.generate_name == "web-"
    assert rs.namespace == NS
    assert rs.labels[LABEL_KEY_RUNNER_DEPLOYMENT_NAME] == "web"
    assert rs.selector.match_labels == {
        "foo": "bar",
        LABEL_KEY_RUNNER_TEMPLATE_HASH: template_hash,
    }
    assert rd.selector.match_labels == {"foo": "bar"}
    assert rd.template.runner_labels == []


def test_new_runner_replica_set_is_deterministic():
    first = new_runner_replica_set(_deployment(), ["dev"])
    second = new_runner_replica_set(_deployment(), ["dev"])
    assert get_template_hash(first) == get_template_hash(second)


def test_compute_hash_changes_with_content():
    assert compute_hash(RunnerTemplate(runner_labels=["a"])) == compute_hash(
        RunnerTemplate(runner_labels=["a"])
    )
    assert compute_hash(RunnerTemplate(runner_labels=["a"])) != compute_hash(
        RunnerTemplate(runner_labels=["b"])
    )


def test_get_int_or_default():
    assert get_int_or_default(None, 1) == 1
    assert get_int_or_default(0, 1) == 0
    assert get_int_or_default(3, 1) == 3


def test_get_template_hash_missing():
    assert get_template_hash(RunnerReplicaSet()) is None
    assert get_template_hash(RunnerReplicaSet(labels={LABEL_KEY_RUNNER_TEMPLATE_HASH: "x"})) == "x"


def test_get_selector_defaults_to_name():
    rd = _deployment(name="abc", selector=False)
    assert get_selector(rd) == LabelSelector(
        match_labels={LABEL_KEY_RUNNER_DEPLOYMENT_NAME: "abc"}
    )
    rd2 = _deployment(name="abc")
    assert get_selector(rd2).match_labels == {"foo": "bar"}


def test_reconcile_missing_deployment():
    reconciler = RunnerDeploymentReconciler(ObjectStore())
    assert reconciler.reconcile(NS, "nothing") == ReconcileResult()


def test_reconcile_deleted_deployment_does_nothing():
    store = ObjectStore()
    rd = _deployment()
    rd.deletion_timestamp = dt.datetime.now(dt.timezone.utc)
    store.create(rd.to_resource())
    RunnerDeploymentReconciler(store).reconcile(NS, rd.name)
    assert _sets(store) == []


@pytest.mark.parametrize("with_selector", [True, False])
def test_creates_and_scales_replica_set(with_selector):
    store = ObjectStore()
    name = "example-runnerdeploy-1"
    store.create(_deployment(name=name, selector=with_selector).to_resource())
    reconciler = RunnerDeploymentReconciler(store)

    reconciler.reconcile(NS, name)
    sets = _sets(store)
    assert len(sets) == 1
    assert sets[0].replicas == 1

    rd = _get_deployment(store, name)
    rd.replicas = 2
    _save_deployment(store, rd)

    assert reconciler.reconcile(NS, name) == ReconcileResult()
    sets = _sets(store)
    assert len(sets) == 1
    assert sets[0].replicas == 2


def test_adopts_replica_set_without_selector():
    store = ObjectStore()
    name = "example-runnerdeploy-2"
    store.create(_deployment(name=name, selector=False).to_resource())
    reconciler = RunnerDeploymentReconciler(store)
    reconciler.reconcile(NS, name)

    (rs,) = _sets(store)
    assert rs.selector is not None
    rs.selector = None
    _save_set(store, rs)

    result = reconciler.reconcile(NS, name)
    assert result.requeue_after == dt.timedelta(seconds=5)
    (rs,) = _sets(store)
    assert rs.selector is not None
    assert rs.selector.match_labels[LABEL_KEY_RUNNER_DEPLOYMENT_NAME] == name


def test_status_is_recorded():
    store = ObjectStore()
    store.create(_deployment().to_resource())
    reconciler = RunnerDeploymentReconciler(store)
    reconciler.reconcile(NS, "example")

    (rs,) = _sets(store)
    rs.status = {"replicas": 1, "available_replicas": 1, "ready_replicas": 1}
    _save_set(store, rs)

    reconciler.reconcile(NS, "example")
    assert _get_deployment(store, "example").status == {
        "available_replicas": 1,
        "ready_replicas": 1,
        "desired_replicas": 1,
        "replicas": 1,
        "updated_replicas": 1,
    }


def _rollout(store, reconciler, old_status):
    store.create(_deployment(runner_labels=["v1"]).to_resource())
    reconciler.reconcile(NS, "example")
    (old,) = _sets(store)

    rd = _get_deployment(store, "example")
    rd.template.runner_labels = ["v2"]
    _save_deployment(store, rd)
    result = reconciler.reconcile(NS, "example")
    assert result.requeue_after == dt.timedelta(seconds=5)

    old = RunnerReplicaSet.from_resource(store.get("RunnerReplicaSet", NS, old.name))
    old.creation_timestamp = dt.datetime(2000, 1, 1, tzinfo=dt.timezone.utc)
    old.status = old_status
    _save_set(store, old)
    (new,) = [s for s in _sets(store) if s.name != old.name]
    return old, new


def test_template_change_deletes_old_set_once_new_is_ready():
    store = ObjectStore()
    reconciler = RunnerDeploymentReconciler(store)
    old, new = _rollout(store, reconciler, {"replicas": 0})
    assert get_template_hash(old) != get_template_hash(new)

    new.status = {"ready_replicas": 1, "replicas": 1, "available_replicas": 1}
    _save_set(store, new)

    reconciler.reconcile(NS, "example")
    assert [s.name for s in _sets(store)] == [new.name]
    assert reconciler.events == [
        ("RunnerReplicaSetDeleted", f"Deleted runnerreplicaset '{old.name}'")
    ]


def test_template_change_waits_for_new_set():
    store = ObjectStore()
    reconciler = RunnerDeploymentReconciler(store)
    old, new = _rollout(store, reconciler, {"replicas": 0})

    reconciler.reconcile(NS, "example")
    assert sorted(s.name for s in _sets(store)) == sorted([old.name, new.name])
    assert reconciler.events == []


def test_template_change_scales_busy_old_set_to_zero():
    store = ObjectStore()
    reconciler = RunnerDeploymentReconciler(store)
    old, new = _rollout(store, reconciler, {"replicas": 2})

    new.status = {"ready_replicas": 1, "replicas": 1}
    _save_set(store, new)

    reconciler.reconcile(NS, "example")
    still_old = RunnerReplicaSet.from_resource(store.get("RunnerReplicaSet", NS, old.name))
    assert still_old.replicas == 0
    assert reconciler.events == []