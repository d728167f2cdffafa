"""An in-memory object store keyed by kind, namespace and name."""

from __future__ import annotations

import copy
import datetime as _dt
import random
from dataclasses import dataclass, field
from typing import Any, Iterable

_NAME_SUFFIX_ALPHABET = "bcdfghjklmnpqrstvwxz2456789"
_NAME_SUFFIX_LENGTH = 5


class NotFoundError(LookupError):
    """Raised when no object exists under the requested key."""

    def __init__(self, kind: str, namespace: str, name: str) -> None:
        super().__init__(f'{kind} "{namespace}/{name}" not found')
        self.kind = kind
        self.namespace = namespace
        self.name = name


@dataclass
class Resource:
    """A stored object with metadata and free-form content."""

    kind: str
    name: str = ""
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    generate_name: str = ""
    creation_timestamp: _dt.datetime | None = None
    deletion_timestamp: _dt.datetime | None = None
    owner: str | None = None
    spec: Any = None
    status: Any = None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.kind, self.namespace, self.name)


class ObjectStore:
    """Holds resources and hands out independent copies of them."""

    def __init__(self, objects: Iterable[Resource] = ()) -> None:
        self._objects: dict[tuple[str, str, str], Resource] = {}
        for resource in objects:
            self._objects[resource.key] = copy.deepcopy(resource)

    def get(self, kind: str, namespace: str, name: str) -> Resource:
        """Return a copy of the stored resource or raise NotFoundError."""
        try:
            stored = self._objects[(kind, namespace, name)]
        except KeyError:
            raise NotFoundError(kind, namespace, name) from None
        return copy.deepcopy(stored)

    def list(self, kind: str, namespace: str | None = None) -> list[Resource]:
        """Return copies of all resources of ``kind``, optionally limited
        to one namespace, ordered by namespace and name."""
        matches = (
            resource
            for (res_kind, res_ns, _), resource in self._objects.items()
            if res_kind == kind and (namespace is None or res_ns == namespace)
        )
        return [
            copy.deepcopy(resource)
            for resource in sorted(matches, key=lambda r: (r.namespace, r.name))
        ]

    def _generated_name(self, resource: Resource) -> str:
        while True:
            suffix = "".join(
                random.choice(_NAME_SUFFIX_ALPHABET) for _ in range(_NAME_SUFFIX_LENGTH)
            )
            candidate = resource.generate_name + suffix
            if (resource.kind, resource.namespace, candidate) not in self._objects:
                return candidate

    def create(self, resource: Resource) -> Resource:
        """Store a new resource and return a copy of what was stored.

        A missing name is generated from ``generate_name``.
        """
        stored = copy.deepcopy(resource)
        if not stored.name:
            if not stored.generate_name:
                raise ValueError("resource needs a name or a generate_name")
            stored.name = self._generated_name(stored)
        if stored.key in self._objects:
            raise ValueError(
                f'{stored.kind} "{stored.namespace}/{stored.name}" already exists'
            )
        if stored.creation_timestamp is None:
            stored.creation_timestamp = _dt.datetime.now(_dt.timezone.utc)
        self._objects[stored.key] = stored
        return copy.deepcopy(stored)

    def update(self, resource: Resource) -> Resource:
        """Replace an existing resource and return a copy of it."""
        if resource.key not in self._objects:
            raise NotFoundError(resource.kind, resource.namespace, resource.name)
        stored = copy.deepcopy(resource)
        self._objects[stored.key] = stored
        return copy.deepcopy(stored)

    def delete(self, kind: str, namespace: str, name: str) -> None:
        """Remove a resource or raise NotFoundError."""
        try:
            del self._objects[(kind, namespace, name)]
        except KeyError:
            raise NotFoundError(kind, namespace, name) from None