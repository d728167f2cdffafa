"""Reconciliation of runner deployments into runner replica sets."""

from __future__ import annotations

import copy
import datetime as _dt
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from .hashing import fnv_hash_string_objects
from .labels import (
    LABEL_KEY_RUNNER_DEPLOYMENT_NAME,
    LABEL_KEY_RUNNER_TEMPLATE_HASH,
    LabelSelector,
    clone_and_add_label,
    clone_selector_and_add_label,
)
from .store import NotFoundError, ObjectStore, Resource

RUNNER_DEPLOYMENT_KIND = "RunnerDeployment"
RUNNER_REPLICA_SET_KIND = "RunnerReplicaSet"

DEFAULT_REPLICAS = 1
REQUEUE_DELAY = _dt.timedelta(seconds=5)

_log = logging.getLogger(__name__)

_EARLIEST = _dt.datetime.min.replace(tzinfo=_dt.timezone.utc)


def _owner_ref(kind: str, name: str) -> str:
    return f"{kind}/{name}"


@dataclass
class RunnerTemplate:
    """Metadata and runner settings shared by the runners of a set."""

    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None
    runner_labels: list[str] = field(default_factory=list)
    spec: dict[str, Any] = field(default_factory=dict)


@dataclass
class RunnerDeployment:
    """A desired number of runners built from one template."""

    name: str
    namespace: str = ""
    replicas: int | None = None
    selector: LabelSelector | None = None
    template: RunnerTemplate = field(default_factory=RunnerTemplate)
    effective_time: _dt.datetime | None = None
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    creation_timestamp: _dt.datetime | None = None
    deletion_timestamp: _dt.datetime | None = None
    status: dict[str, int] = field(default_factory=dict)

    def to_resource(self) -> Resource:
        return Resource(
            kind=RUNNER_DEPLOYMENT_KIND,
            name=self.name,
            namespace=self.namespace,
            labels=dict(self.labels),
            annotations=dict(self.annotations),
            creation_timestamp=self.creation_timestamp,
            deletion_timestamp=self.deletion_timestamp,
            spec={
                "replicas": self.replicas,
                "selector": copy.deepcopy(self.selector),
                "template": copy.deepcopy(self.template),
                "effective_time": self.effective_time,
            },
            status=dict(self.status),
        )

    @classmethod
    def from_resource(cls, resource: Resource) -> "RunnerDeployment":
        spec = resource.spec or {}
        return cls(
            name=resource.name,
            namespace=resource.namespace,
            replicas=spec.get("replicas"),
            selector=copy.deepcopy(spec.get("selector")),
            template=copy.deepcopy(spec.get("template")) or RunnerTemplate(),
            effective_time=spec.get("effective_time"),
            labels=dict(resource.labels),
            annotations=dict(resource.annotations),
            creation_timestamp=resource.creation_timestamp,
            deletion_timestamp=resource.deletion_timestamp,
            status=dict(resource.status or {}),
        )


@dataclass
class RunnerReplicaSet:
    """A fixed number of identical runners, owned by a deployment."""

    name: str = ""
    namespace: str = ""
    generate_name: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    owner: str | None = None
    replicas: int | None = None
    selector: LabelSelector | None = None
    template: RunnerTemplate = field(default_factory=RunnerTemplate)
    effective_time: _dt.datetime | None = None
    creation_timestamp: _dt.datetime | None = None
    deletion_timestamp: _dt.datetime | None = None
    status: dict[str, int] = field(default_factory=dict)

    def to_resource(self) -> Resource:
        return Resource(
            kind=RUNNER_REPLICA_SET_KIND,
            name=self.name,
            namespace=self.namespace,
            labels=dict(self.labels),
            annotations=dict(self.annotations),
            generate_name=self.generate_name,
            creation_timestamp=self.creation_timestamp,
            deletion_timestamp=self.deletion_timestamp,
            owner=self.owner,
            spec={
                "replicas": self.replicas,
                "selector": copy.deepcopy(self.selector),
                "template": copy.deepcopy(self.template),
                "effective_time": self.effective_time,
            },
            status=dict(self.status),
        )

    @classmethod
    def from_resource(cls, resource: Resource) -> "RunnerReplicaSet":
        spec = resource.spec or {}
        return cls(
            name=resource.name,
            namespace=resource.namespace,
            generate_name=resource.generate_name,
            labels=dict(resource.labels),
            annotations=dict(resource.annotations),
            owner=resource.owner,
            replicas=spec.get("replicas"),
            selector=copy.deepcopy(spec.get("selector")),
            template=copy.deepcopy(spec.get("template")) or RunnerTemplate(),
            effective_time=spec.get("effective_time"),
            creation_timestamp=resource.creation_timestamp,
            deletion_timestamp=resource.deletion_timestamp,
            status=dict(resource.status or {}),
        )


@dataclass(frozen=True)
class ReconcileResult:
    """Whether and when a reconciliation should run again."""

    requeue: bool = False
    requeue_after: _dt.timedelta | None = None


def compute_hash(template: Any) -> str:
    """Return a short, word-safe hash of a template's full contents."""
    return fnv_hash_string_objects(template)


def get_int_or_default(value: int | None, default: int) -> int:
    """Return ``value``, or ``default`` when it is None."""
    return default if value is None else value


def get_template_hash(replica_set: RunnerReplicaSet) -> str | None:
    """Return the template hash label of a replica set, if it has one."""
    return (replica_set.labels or {}).get(LABEL_KEY_RUNNER_TEMPLATE_HASH)


def get_selector(deployment: RunnerDeployment) -> LabelSelector:
    """Return the deployment's selector, defaulting to one on its name."""
    if deployment.selector is not None:
        return deployment.selector
    return LabelSelector(
        match_labels={LABEL_KEY_RUNNER_DEPLOYMENT_NAME: deployment.name}
    )


def new_runner_replica_set(
    deployment: RunnerDeployment, common_runner_labels: Iterable[str] = ()
) -> RunnerReplicaSet:
    """Build the replica set that the deployment currently asks for."""
    template = copy.deepcopy(deployment.template)
    template.runner_labels = [*template.runner_labels, *common_runner_labels]

    template_hash = compute_hash(template)

    template.labels = clone_and_add_label(
        template.labels, LABEL_KEY_RUNNER_TEMPLATE_HASH, template_hash
    )
    template.labels = clone_and_add_label(
        template.labels, LABEL_KEY_RUNNER_DEPLOYMENT_NAME, deployment.name
    )

    selector = clone_selector_and_add_label(
        get_selector(deployment), LABEL_KEY_RUNNER_TEMPLATE_HASH, template_hash
    )

    return RunnerReplicaSet(
        generate_name=deployment.name + "-",
        namespace=deployment.namespace,
        labels=dict(template.labels or {}),
        owner=_owner_ref(RUNNER_DEPLOYMENT_KIND, deployment.name),
        replicas=deployment.replicas,
        selector=selector,
        template=template,
        effective_time=deployment.effective_time,
    )


class RunnerDeploymentReconciler:
    """Drives the replica sets of a deployment towards its template."""

    def __init__(
        self,
        store: ObjectStore,
        common_runner_labels: Iterable[str] = (),
        name: str = "runnerdeployment-controller",
    ) -> None:
        self.store = store
        self.common_runner_labels = list(common_runner_labels)
        self.name = name
        self.events: list[tuple[str, str]] = []

    def _owned_replica_sets(self, namespace: str, name: str) -> list[RunnerReplicaSet]:
        owner = _owner_ref(RUNNER_DEPLOYMENT_KIND, name)
        sets = [
            RunnerReplicaSet.from_resource(resource)
            for resource in self.store.list(RUNNER_REPLICA_SET_KIND, namespace)
            if resource.owner == owner
        ]
        sets.sort(key=lambda rs: rs.creation_timestamp or _EARLIEST, reverse=True)
        return sets

    def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        """Bring the replica sets of one deployment in line with it."""
        try:
            rd = RunnerDeployment.from_resource(
                self.store.get(RUNNER_DEPLOYMENT_KIND, namespace, name)
            )
        except NotFoundError:
            return ReconcileResult()

        if rd.deletion_timestamp is not None:
            return ReconcileResult()

        replica_sets = self._owned_replica_sets(namespace, name)
        newest = replica_sets[0] if replica_sets else None
        old_sets = replica_sets[1:]

        desired = new_runner_replica_set(rd, self.common_runner_labels)

        if newest is None:
            created = self.store.create(desired.to_resource())
            _log.info("Created runnerreplicaset %s", created.name)
            return ReconcileResult()

        newest_hash = get_template_hash(newest)
        if newest_hash is None:
            _log.info(
                "Failed to get template hash of newest runnerreplicaset resource. "
                "Please manually delete the runnerreplicaset so that it is recreated"
            )
            return ReconcileResult()

        desired_hash = get_template_hash(desired)
        if desired_hash is None:
            _log.info(
                "Failed to get template hash of desired runnerreplicaset resource. "
                "Please manually delete the runnerreplicaset so that it is recreated"
            )
            return ReconcileResult()

        if newest_hash != desired_hash:
            created = self.store.create(desired.to_resource())
            _log.info("Created runnerreplicaset %s", created.name)
            return ReconcileResult(requeue_after=REQUEUE_DELAY)

        if newest.selector != desired.selector:
            updated = copy.deepcopy(newest)
            updated.replicas = desired.replicas
            updated.selector = copy.deepcopy(desired.selector)
            updated.template = copy.deepcopy(desired.template)
            updated.effective_time = desired.effective_time
            self.store.update(updated.to_resource())
            _log.debug("Updated runnerreplicaset due to selector change")
            return ReconcileResult(requeue_after=REQUEUE_DELAY)

        current_desired = get_int_or_default(newest.replicas, DEFAULT_REPLICAS)
        new_desired = get_int_or_default(desired.replicas, DEFAULT_REPLICAS)

        if current_desired != new_desired or newest.effective_time != rd.effective_time:
            newest.replicas = new_desired
            newest.effective_time = rd.effective_time
            self.store.update(newest.to_resource())
            _log.debug(
                "Updated runnerreplicaset due to spec change: replicas %d -> %d",
                current_desired,
                new_desired,
            )
            return ReconcileResult()

        if old_sets:
            ready = newest.status.get("ready_replicas", 0)
            if ready < current_desired:
                _log.info(
                    "Waiting until the newest runnerreplicaset to be 100%% available"
                )
                return ReconcileResult()

            _log.info(
                "The newest runnerreplicaset is 100%% available. "
                "Deleting old runnerreplicasets"
            )

            for old in old_sets:
                if old.status.get("replicas", 0) > 0:
                    if old.replicas == 0:
                        _log.debug("Waiting for %s to scale to zero", old.name)
                        continue
                    scaled = copy.deepcopy(old)
                    scaled.replicas = 0
                    self.store.update(scaled.to_resource())
                    _log.info("Scaled runnerreplicaset %s to zero", old.name)
                    continue

                self.store.delete(RUNNER_REPLICA_SET_KIND, old.namespace, old.name)
                self.events.append(
                    (
                        "RunnerReplicaSetDeleted",
                        f"Deleted runnerreplicaset '{old.name}'",
                    )
                )
                _log.info("Deleted runnerreplicaset %s", old.name)

        total_current = sum(rs.status.get("replicas", 0) for rs in [newest, *old_sets])
        total_available = sum(
            rs.status.get("available_replicas", 0) for rs in [newest, *old_sets]
        )
        status = {
            "available_replicas": total_available,
            "ready_replicas": total_available,
            "desired_replicas": new_desired,
            "replicas": total_current,
            "updated_replicas": newest.status.get("replicas", 0),
        }

        if rd.status != status:
            try:
                resource = self.store.get(RUNNER_DEPLOYMENT_KIND, namespace, name)
                resource.status = dict(status)
                self.store.update(resource)
            except NotFoundError as err:
                _log.info(
                    "Failed to patch runnerdeployment status. Retrying immediately: %s",
                    err,
                )
                return ReconcileResult(requeue=True)

        return ReconcileResult()