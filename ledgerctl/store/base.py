"""Resource store interface.

Every operation is a coroutine. Reads raise :class:`NotFoundError` for
missing objects; writes that carry a stale ``resource_version`` raise
:class:`ConflictError`. An empty ``resource_version`` skips the check.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ledgerctl.errors import NotFoundError
from ledgerctl.models.resources import ConfigMapObject, ManagedResource, PodInfo, ResourceKind, SecretObject
from ledgerctl.models.status import Status


class ResourceStore(ABC):
    """Typed access to managed resources and their dependent objects."""

    # -- managed resources ------------------------------------------------

    @abstractmethod
    async def get(self, kind: ResourceKind, namespace: str, name: str) -> ManagedResource: ...

    @abstractmethod
    async def list(
        self,
        kind: ResourceKind,
        namespace: str,
        labels: dict[str, str] | None = None,
    ) -> list[ManagedResource]:
        """List resources of ``kind``; ``labels`` filters by exact label match."""

    @abstractmethod
    async def create(self, resource: ManagedResource) -> ManagedResource: ...

    @abstractmethod
    async def update(self, resource: ManagedResource) -> ManagedResource:
        """Replace metadata and spec; status is left untouched."""

    @abstractmethod
    async def delete(self, kind: ResourceKind, namespace: str, name: str) -> None: ...

    @abstractmethod
    async def patch_status(self, resource: ManagedResource, status: Status) -> ManagedResource:
        """Merge-patch the status subresource, guarded by ``resource.resource_version``."""

    # -- secrets ----------------------------------------------------------

    @abstractmethod
    async def get_secret(self, namespace: str, name: str) -> SecretObject: ...

    @abstractmethod
    async def put_secret(self, secret: SecretObject) -> SecretObject:
        """Create the secret or replace the existing one."""

    @abstractmethod
    async def delete_secret(self, namespace: str, name: str) -> None: ...

    async def secret_exists(self, namespace: str, name: str) -> bool:
        try:
            await self.get_secret(namespace, name)
        except NotFoundError:
            return False
        return True

    # -- config maps ------------------------------------------------------

    @abstractmethod
    async def get_config_map(self, namespace: str, name: str) -> ConfigMapObject: ...

    @abstractmethod
    async def put_config_map(self, config_map: ConfigMapObject) -> ConfigMapObject:
        """Create the config map or replace the existing one."""

    @abstractmethod
    async def delete_config_map(self, namespace: str, name: str) -> None: ...

    # -- workloads --------------------------------------------------------

    @abstractmethod
    async def list_pods(self, namespace: str, name: str) -> list[PodInfo]:
        """Pods belonging to the workload of the resource called ``name``."""

    @abstractmethod
    async def restart_workload(self, kind: ResourceKind, namespace: str, name: str) -> None:
        """Trigger a rolling restart of the resource's workload."""
