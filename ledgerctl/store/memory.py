"""In-process ResourceStore with Kubernetes-like optimistic concurrency.

Backs the test suite. Objects are deep-copied on the way in and out so
callers never share state with the store, and every write bumps a
monotonically increasing resource version.
"""

from __future__ import annotations

import copy
import itertools
from collections.abc import Iterable

from ledgerctl.errors import ConflictError, NotFoundError
from ledgerctl.models.resources import ConfigMapObject, ManagedResource, PodInfo, ResourceKind, SecretObject
from ledgerctl.models.status import Status
from ledgerctl.store.base import ResourceStore


class MemoryStore(ResourceStore):
    def __init__(self) -> None:
        self._resources: dict[tuple[ResourceKind, str, str], ManagedResource] = {}
        self._secrets: dict[tuple[str, str], SecretObject] = {}
        self._config_maps: dict[tuple[str, str], ConfigMapObject] = {}
        self._pods: dict[tuple[str, str], list[PodInfo]] = {}
        self._missing_workloads: set[tuple[str, str]] = set()
        self._versions = itertools.count(1)
        # (kind, namespace, name) of every workload restart, in order
        self.restarts: list[tuple[ResourceKind, str, str]] = []

    def _next_version(self) -> str:
        return str(next(self._versions))

    @staticmethod
    def _check_version(current: str, incoming: str, what: str) -> None:
        if incoming and incoming != current:
            raise ConflictError(f"{what}: resource version {incoming} is stale (current {current})")

    # -- managed resources ------------------------------------------------

    async def get(self, kind: ResourceKind, namespace: str, name: str) -> ManagedResource:
        try:
            return copy.deepcopy(self._resources[(kind, namespace, name)])
        except KeyError:
            raise NotFoundError(kind.value, namespace, name) from None

    async def list(
        self,
        kind: ResourceKind,
        namespace: str,
        labels: dict[str, str] | None = None,
    ) -> list[ManagedResource]:
        wanted = labels or {}
        found = []
        for (k, ns, _), resource in sorted(self._resources.items()):
            if k != kind or ns != namespace:
                continue
            if all(resource.labels.get(key) == value for key, value in wanted.items()):
                found.append(copy.deepcopy(resource))
        return found

    async def create(self, resource: ManagedResource) -> ManagedResource:
        key = (resource.kind, resource.namespace, resource.name)
        if key in self._resources:
            raise ConflictError(f"{resource.kind} '{resource.namespace}/{resource.name}' already exists")
        stored = copy.deepcopy(resource)
        stored.resource_version = self._next_version()
        self._resources[key] = stored
        return copy.deepcopy(stored)

    async def update(self, resource: ManagedResource) -> ManagedResource:
        key = (resource.kind, resource.namespace, resource.name)
        current = self._resources.get(key)
        if current is None:
            raise NotFoundError(resource.kind.value, resource.namespace, resource.name)
        self._check_version(current.resource_version, resource.resource_version, resource.name)
        stored = copy.deepcopy(resource)
        stored.status = current.status
        stored.resource_version = self._next_version()
        self._resources[key] = stored
        return copy.deepcopy(stored)

    async def delete(self, kind: ResourceKind, namespace: str, name: str) -> None:
        if self._resources.pop((kind, namespace, name), None) is None:
            raise NotFoundError(kind.value, namespace, name)

    async def patch_status(self, resource: ManagedResource, status: Status) -> ManagedResource:
        key = (resource.kind, resource.namespace, resource.name)
        current = self._resources.get(key)
        if current is None:
            raise NotFoundError(resource.kind.value, resource.namespace, resource.name)
        self._check_version(current.resource_version, resource.resource_version, resource.name)
        current.status = copy.deepcopy(status)
        current.resource_version = self._next_version()
        return copy.deepcopy(current)

    # -- secrets ----------------------------------------------------------

    async def get_secret(self, namespace: str, name: str) -> SecretObject:
        try:
            return copy.deepcopy(self._secrets[(namespace, name)])
        except KeyError:
            raise NotFoundError("Secret", namespace, name) from None

    async def put_secret(self, secret: SecretObject) -> SecretObject:
        key = (secret.namespace, secret.name)
        current = self._secrets.get(key)
        if current is not None:
            self._check_version(current.resource_version, secret.resource_version, secret.name)
        stored = copy.deepcopy(secret)
        stored.resource_version = self._next_version()
        self._secrets[key] = stored
        return copy.deepcopy(stored)

    async def delete_secret(self, namespace: str, name: str) -> None:
        if self._secrets.pop((namespace, name), None) is None:
            raise NotFoundError("Secret", namespace, name)

    # -- config maps ------------------------------------------------------

    async def get_config_map(self, namespace: str, name: str) -> ConfigMapObject:
        try:
            return copy.deepcopy(self._config_maps[(namespace, name)])
        except KeyError:
            raise NotFoundError("ConfigMap", namespace, name) from None

    async def put_config_map(self, config_map: ConfigMapObject) -> ConfigMapObject:
        key = (config_map.namespace, config_map.name)
        current = self._config_maps.get(key)
        if current is not None:
            self._check_version(current.resource_version, config_map.resource_version, config_map.name)
        stored = copy.deepcopy(config_map)
        stored.resource_version = self._next_version()
        self._config_maps[key] = stored
        return copy.deepcopy(stored)

    async def delete_config_map(self, namespace: str, name: str) -> None:
        if self._config_maps.pop((namespace, name), None) is None:
            raise NotFoundError("ConfigMap", namespace, name)

    # -- workloads --------------------------------------------------------

    def set_pods(self, namespace: str, name: str, pods: Iterable[PodInfo]) -> None:
        """Replace the pods reported for the workload of ``name``."""
        self._pods[(namespace, name)] = list(pods)

    def remove_workload(self, namespace: str, name: str) -> None:
        """Make later restarts of the workload of ``name`` fail as not found."""
        self._missing_workloads.add((namespace, name))

    async def list_pods(self, namespace: str, name: str) -> list[PodInfo]:
        return list(self._pods.get((namespace, name), []))

    async def restart_workload(self, kind: ResourceKind, namespace: str, name: str) -> None:
        if (namespace, name) in self._missing_workloads:
            raise NotFoundError("Deployment", namespace, name)
        self.restarts.append((kind, namespace, name))
