import datetime as dt

import pytest

from arckit.deployment import ReconcileResult
from arckit.store import NotFoundError, ObjectStore, Resource
from arckit.volumes import (
    LABEL_KEY_CLEANUP,
    LABEL_KEY_RUNNER_STATEFUL_SET_NAME,
    PV_KIND,
    PVC_KIND,
    STATEFUL_SET_KIND,
    sync_pv,
    sync_pvc,
    sync_volumes,
)

NS = "default"


def _pvc(name, labels=None, volume_name=""):
    return Resource(
        kind=PVC_KIND,
        name=name,
        namespace=NS,
        labels=dict(labels or {}),
        spec={"volume_name": volume_name},
    )


def _pv(name, labels=None, claim_ref="claim", phase="Bound"):
    return Resource(
        kind=PV_KIND,
        name=name,
        namespace=NS,
        labels=dict(labels or {}),
        spec={"claim_ref": claim_ref},
        status={"phase": phase},
    )


def test_sync_volumes_labels_existing_claims():
    store = ObjectStore([_pvc("work-sts1-0")])
    result = sync_volumes(store, NS, ["work"], ["sts1", "sts2"])
    assert result is None
    pvc = store.get(PVC_KIND, NS, "work-sts1-0")
    assert pvc.labels[LABEL_KEY_RUNNER_STATEFUL_SET_NAME] == "sts1"
    with pytest.raises(NotFoundError):
        store.get(PVC_KIND, NS, "work-sts2-0")


def test_sync_volumes_keeps_existing_label():
    store = ObjectStore(
        [_pvc("work-sts1-0", {LABEL_KEY_RUNNER_STATEFUL_SET_NAME: "other"})]
    )
    sync_volumes(store, NS, ["work"], ["sts1"])
    pvc = store.get(PVC_KIND, NS, "work-sts1-0")
    assert pvc.labels[LABEL_KEY_RUNNER_STATEFUL_SET_NAME] == "other"


def test_sync_pvc_without_label_does_nothing():
    pvc = _pvc("work-sts1-0")
    store = ObjectStore([pvc])
    assert sync_pvc(store, NS, pvc) is None
    assert store.get(PVC_KIND, NS, "work-sts1-0").name == "work-sts1-0"


def test_sync_pvc_retries_while_statefulset_exists():
    pvc = _pvc("work-sts1-0", {LABEL_KEY_RUNNER_STATEFUL_SET_NAME: "sts1"}, "pv1")
    store = ObjectStore(
        [pvc, Resource(kind=STATEFUL_SET_KIND, name="sts1", namespace=NS), _pv("pv1")]
    )
    result = sync_pvc(store, NS, pvc)
    assert result == ReconcileResult(requeue_after=dt.timedelta(seconds=10))
    assert store.get(PVC_KIND, NS, "work-sts1-0").name == "work-sts1-0"


def test_sync_pvc_marks_volume_and_deletes_claim():
    pvc = _pvc("work-sts1-0", {LABEL_KEY_RUNNER_STATEFUL_SET_NAME: "sts1"}, "pv1")
    store = ObjectStore([pvc, _pv("pv1")])
    assert sync_pvc(store, NS, pvc) is None
    assert store.get(PV_KIND, NS, "pv1").labels[LABEL_KEY_CLEANUP] == "sts1"
    with pytest.raises(NotFoundError):
        store.get(PVC_KIND, NS, "work-sts1-0")


def test_sync_pvc_with_missing_volume_keeps_claim():
    pvc = _pvc("work-sts1-0", {LABEL_KEY_RUNNER_STATEFUL_SET_NAME: "sts1"}, "pv1")
    store = ObjectStore([pvc])
    assert sync_pvc(store, NS, pvc) is None
    assert store.get(PVC_KIND, NS, "work-sts1-0").spec["volume_name"] == "pv1"


def test_sync_pv_without_claim_ref_does_nothing():
    pv = _pv("pv1", claim_ref=None)
    store = ObjectStore([pv])
    assert sync_pv(store, NS, pv) is None
    assert store.get(PV_KIND, NS, "pv1").labels == {}


def test_sync_pv_without_cleanup_label_retries():
    pv = _pv("pv1", phase="Released")
    store = ObjectStore([pv])
    assert sync_pv(store, NS, pv) == ReconcileResult(
        requeue_after=dt.timedelta(seconds=10)
    )
    assert store.get(PV_KIND, NS, "pv1").spec["claim_ref"] == "claim"


def test_sync_pv_waits_for_release():
    pv = _pv("pv1", {LABEL_KEY_CLEANUP: "sts1"}, phase="Bound")
    store = ObjectStore([pv])
    result = sync_pv(store, NS, pv)
    assert result.requeue_after == dt.timedelta(seconds=10)
    assert store.get(PV_KIND, NS, "pv1").labels[LABEL_KEY_CLEANUP] == "sts1"


def test_sync_pv_unsets_claim_ref_of_released_volume():
    pv = _pv("pv1", {LABEL_KEY_CLEANUP: "sts1", "keep": "me"}, phase="Released")
    store = ObjectStore([pv])
    assert sync_pv(store, NS, pv) is None
    stored = store.get(PV_KIND, NS, "pv1")
    assert stored.spec["claim_ref"] is None
    assert stored.labels == {"keep": "me"}