"""Bookkeeping for the persistent volumes and claims of runner stateful sets."""

from __future__ import annotations

import copy
import datetime as _dt
import logging
from typing import Iterable

from .deployment import ReconcileResult
from .store import NotFoundError, ObjectStore, Resource

PVC_KIND = "PersistentVolumeClaim"
PV_KIND = "PersistentVolume"
STATEFUL_SET_KIND = "StatefulSet"

LABEL_KEY_CLEANUP = "pending-cleanup"
LABEL_KEY_RUNNER_STATEFUL_SET_NAME = "runner-statefulset-name"

VOLUME_RELEASED = "Released"
RETRY_DELAY = _dt.timedelta(seconds=10)

_log = logging.getLogger(__name__)


def _spec(resource: Resource) -> dict:
    return resource.spec or {}


def sync_volumes(
    store: ObjectStore,
    namespace: str,
    claim_template_names: Iterable[str],
    statefulset_names: Iterable[str],
) -> ReconcileResult | None:
    """Label every existing claim of the given stateful sets with the name
    of the stateful set it belongs to."""
    statefulset_names = list(statefulset_names)
    for template_name in claim_template_names:
        for sts_name in statefulset_names:
            pvc_name = f"{template_name}-{sts_name}-0"
            try:
                pvc = store.get(PVC_KIND, namespace, pvc_name)
            except NotFoundError:
                continue

            if not pvc.labels.get(LABEL_KEY_RUNNER_STATEFUL_SET_NAME):
                updated = copy.deepcopy(pvc)
                updated.labels[LABEL_KEY_RUNNER_STATEFUL_SET_NAME] = sts_name
                store.update(updated)
                _log.debug(
                    "Added runner-statefulset-name label to PVC sts=%s pvc=%s ns=%s",
                    sts_name,
                    pvc_name,
                    namespace,
                )
    return None


def sync_pvc(
    store: ObjectStore, namespace: str, pvc: Resource
) -> ReconcileResult | None:
    """Release a claim whose stateful set is gone.

    The bound volume is first marked for cleanup, then the claim is deleted.
    While the stateful set still exists, a retry is requested.
    """
    sts_name = pvc.labels.get(LABEL_KEY_RUNNER_STATEFUL_SET_NAME, "")
    if not sts_name:
        return None

    _log.debug("Reconciling runner PVC %s", pvc.name)

    try:
        store.get(STATEFUL_SET_KIND, namespace, sts_name)
    except NotFoundError:
        pass
    else:
        _log.debug(
            "Retrying sync until statefulset gets removed requeueAfter=%s", RETRY_DELAY
        )
        return ReconcileResult(requeue_after=RETRY_DELAY)

    pv_name = _spec(pvc).get("volume_name") or ""
    if not pv_name:
        return None

    try:
        pv = store.get(PV_KIND, namespace, pv_name)
    except NotFoundError:
        return None

    pv_copy = copy.deepcopy(pv)
    pv_copy.labels = dict(pv_copy.labels or {})
    pv_copy.labels[LABEL_KEY_CLEANUP] = sts_name

    _log.debug("Scheduling to unset PV's claimRef pv=%s sts=%s", pv.name, sts_name)
    store.update(pv_copy)
    _log.info("Updated PV to unset claimRef sts=%s", sts_name)

    _log.debug("Deleting unused PVC sts=%s", sts_name)
    store.delete(pvc.kind, pvc.namespace, pvc.name)
    _log.info("Deleted unused PVC sts=%s", sts_name)

    return None


def sync_pv(store: ObjectStore, namespace: str, pv: Resource) -> ReconcileResult | None:
    """Unset the claim reference of a released volume marked for cleanup,
    making it available again."""
    spec = _spec(pv)
    if spec.get("claim_ref") is None:
        return None

    _log.debug("Reconciling PV %s in %s", pv.name, namespace)

    if not pv.labels.get(LABEL_KEY_CLEANUP):
        _log.debug(
            "Retrying sync to see if this PV needs to be managed requeueAfter=%s",
            RETRY_DELAY,
        )
        return ReconcileResult(requeue_after=RETRY_DELAY)

    phase = (pv.status or {}).get("phase")
    _log.debug("checking pv phase phase=%s", phase)

    if phase != VOLUME_RELEASED:
        _log.debug("Retrying sync until pvc gets released requeueAfter=%s", RETRY_DELAY)
        return ReconcileResult(requeue_after=RETRY_DELAY)

    pv_copy = copy.deepcopy(pv)
    pv_copy.labels.pop(LABEL_KEY_CLEANUP, None)
    new_spec = dict(spec)
    new_spec["claim_ref"] = None
    pv_copy.spec = new_spec

    _log.debug("Unsetting PV's claimRef pv=%s", pv.name)
    store.update(pv_copy)
    _log.info("PV should be Available now")

    return None