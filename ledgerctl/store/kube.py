"""ResourceStore backed by the Kubernetes API via kubernetes-asyncio.

Managed resources are custom objects (``CustomObjectsApi``); credentials
and side records are core Secrets and ConfigMaps (``CoreV1Api``); workload
restarts patch the Deployment pod template (``AppsV1Api``). API status
codes 404 and 409 map onto :class:`NotFoundError` and :class:`ConflictError`.
"""

from __future__ import annotations

import base64
from datetime import UTC, datetime
from typing import Any, NoReturn

from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio.client.rest import ApiException  # type: ignore[import-untyped]

from ledgerctl.errors import ConflictError, NotFoundError
from ledgerctl.models.resources import (
    ConfigMapObject,
    ManagedResource,
    OwnerReference,
    PodInfo,
    ResourceKind,
    SecretObject,
)
from ledgerctl.models.status import Status
from ledgerctl.observability.logging import get_logger
from ledgerctl.store.base import ResourceStore

_log = get_logger("store.kube")

RESTARTED_AT_ANNOTATION = "kubectl.kubernetes.io/restartedAt"


def _reraise(exc: ApiException, kind: str, namespace: str, name: str) -> NoReturn:
    if exc.status == 404:
        raise NotFoundError(kind, namespace, name) from exc
    if exc.status == 409:
        raise ConflictError(f"{kind} '{namespace}/{name}': {exc.reason}") from exc
    raise exc


def _label_selector(labels: dict[str, str] | None) -> str:
    return ",".join(f"{k}={v}" for k, v in sorted((labels or {}).items()))


class KubernetesStore(ResourceStore):
    """Store implementation for a live cluster.

    The kubernetes-asyncio configuration must already be loaded (in-cluster
    or kubeconfig) before the store is constructed.
    """

    def __init__(
        self,
        api_group: str = "ibp.com",
        api_version: str = "v1beta1",
        api_client: Any = None,
    ) -> None:
        self._group = api_group
        self._version = api_version
        self._custom = k8s_client.CustomObjectsApi(api_client)
        self._core = k8s_client.CoreV1Api(api_client)
        self._apps = k8s_client.AppsV1Api(api_client)

    @staticmethod
    def plural(kind: ResourceKind) -> str:
        return f"ibp{kind.short}s"

    def _object_args(self, kind: ResourceKind, namespace: str) -> dict[str, str]:
        return {
            "group": self._group,
            "version": self._version,
            "namespace": namespace,
            "plural": self.plural(kind),
        }

    # -- managed resources ------------------------------------------------

    async def get(self, kind: ResourceKind, namespace: str, name: str) -> ManagedResource:
        try:
            raw = await self._custom.get_namespaced_custom_object(name=name, **self._object_args(kind, namespace))
        except ApiException as exc:
            _reraise(exc, kind.value, namespace, name)
        return ManagedResource.from_dict(kind, raw)

    async def list(
        self,
        kind: ResourceKind,
        namespace: str,
        labels: dict[str, str] | None = None,
    ) -> list[ManagedResource]:
        try:
            raw = await self._custom.list_namespaced_custom_object(
                label_selector=_label_selector(labels),
                **self._object_args(kind, namespace),
            )
        except ApiException as exc:
            _reraise(exc, kind.value, namespace, "")
        return [ManagedResource.from_dict(kind, item) for item in raw.get("items", [])]

    def _body(self, resource: ManagedResource) -> dict[str, Any]:
        body = resource.to_dict()
        body["apiVersion"] = f"{self._group}/{self._version}"
        body["kind"] = resource.kind.api_kind
        if not resource.resource_version:
            del body["metadata"]["resourceVersion"]
        return body

    async def create(self, resource: ManagedResource) -> ManagedResource:
        body = self._body(resource)
        body.pop("status", None)
        try:
            raw = await self._custom.create_namespaced_custom_object(
                body=body, **self._object_args(resource.kind, resource.namespace)
            )
        except ApiException as exc:
            _reraise(exc, resource.kind.value, resource.namespace, resource.name)
        return ManagedResource.from_dict(resource.kind, raw)

    async def update(self, resource: ManagedResource) -> ManagedResource:
        body = self._body(resource)
        body.pop("status", None)
        try:
            raw = await self._custom.replace_namespaced_custom_object(
                name=resource.name, body=body, **self._object_args(resource.kind, resource.namespace)
            )
        except ApiException as exc:
            _reraise(exc, resource.kind.value, resource.namespace, resource.name)
        return ManagedResource.from_dict(resource.kind, raw)

    async def delete(self, kind: ResourceKind, namespace: str, name: str) -> None:
        try:
            await self._custom.delete_namespaced_custom_object(name=name, **self._object_args(kind, namespace))
        except ApiException as exc:
            _reraise(exc, kind.value, namespace, name)

    async def patch_status(self, resource: ManagedResource, status: Status) -> ManagedResource:
        body: dict[str, Any] = {"status": status.to_dict()}
        if resource.resource_version:
            # The API server rejects the merge patch with 409 when this is stale.
            body["metadata"] = {"resourceVersion": resource.resource_version}
        try:
            raw = await self._custom.patch_namespaced_custom_object_status(
                name=resource.name, body=body, **self._object_args(resource.kind, resource.namespace)
            )
        except ApiException as exc:
            _reraise(exc, resource.kind.value, resource.namespace, resource.name)
        return ManagedResource.from_dict(resource.kind, raw)

    # -- secrets ----------------------------------------------------------

    async def _owner_references(self, namespace: str, owner: OwnerReference | None) -> list[Any] | None:
        if owner is None:
            return None
        kind = ResourceKind(owner.kind)
        try:
            raw = await self._custom.get_namespaced_custom_object(name=owner.name, **self._object_args(kind, namespace))
        except ApiException as exc:
            _reraise(exc, owner.kind, namespace, owner.name)
        return [
            k8s_client.V1OwnerReference(
                api_version=f"{self._group}/{self._version}",
                kind=raw.get("kind", owner.kind),
                name=owner.name,
                uid=raw["metadata"]["uid"],
            )
        ]

    @staticmethod
    def _owner_from(metadata: Any) -> OwnerReference | None:
        refs = getattr(metadata, "owner_references", None) or []
        if not refs:
            return None
        ref = refs[0]
        for kind in ResourceKind:
            if ref.kind == kind.api_kind:
                return OwnerReference(kind=kind.value, name=ref.name)
        return OwnerReference(kind=str(ref.kind), name=ref.name)

    @classmethod
    def secret_from_api(cls, secret: Any) -> SecretObject:
        """Convert a ``V1Secret`` (from a read or a watch event)."""
        return SecretObject(
            name=secret.metadata.name,
            namespace=secret.metadata.namespace,
            data={k: base64.b64decode(v) for k, v in (secret.data or {}).items()},
            owner=cls._owner_from(secret.metadata),
            labels=dict(secret.metadata.labels or {}),
            resource_version=secret.metadata.resource_version or "",
        )

    @classmethod
    def config_map_from_api(cls, cm: Any) -> ConfigMapObject:
        binary = {k: base64.b64decode(v) for k, v in (cm.binary_data or {}).items()}
        binary.update({k: v.encode("utf-8") for k, v in (cm.data or {}).items()})
        return ConfigMapObject(
            name=cm.metadata.name,
            namespace=cm.metadata.namespace,
            binary_data=binary,
            labels=dict(cm.metadata.labels or {}),
            owner=cls._owner_from(cm.metadata),
            resource_version=cm.metadata.resource_version or "",
        )

    async def get_secret(self, namespace: str, name: str) -> SecretObject:
        try:
            secret = await self._core.read_namespaced_secret(name=name, namespace=namespace)
        except ApiException as exc:
            _reraise(exc, "Secret", namespace, name)
        return self.secret_from_api(secret)

    async def put_secret(self, secret: SecretObject) -> SecretObject:
        body = k8s_client.V1Secret(
            metadata=k8s_client.V1ObjectMeta(
                name=secret.name,
                namespace=secret.namespace,
                labels=secret.labels or None,
                owner_references=await self._owner_references(secret.namespace, secret.owner),
                resource_version=secret.resource_version or None,
            ),
            data={k: base64.b64encode(v).decode("ascii") for k, v in secret.data.items()},
        )
        try:
            try:
                await self._core.replace_namespaced_secret(name=secret.name, namespace=secret.namespace, body=body)
            except ApiException as exc:
                if exc.status != 404:
                    raise
                await self._core.create_namespaced_secret(namespace=secret.namespace, body=body)
        except ApiException as exc:
            _reraise(exc, "Secret", secret.namespace, secret.name)
        return await self.get_secret(secret.namespace, secret.name)

    async def delete_secret(self, namespace: str, name: str) -> None:
        try:
            await self._core.delete_namespaced_secret(name=name, namespace=namespace)
        except ApiException as exc:
            _reraise(exc, "Secret", namespace, name)

    # -- config maps ------------------------------------------------------

    async def get_config_map(self, namespace: str, name: str) -> ConfigMapObject:
        try:
            cm = await self._core.read_namespaced_config_map(name=name, namespace=namespace)
        except ApiException as exc:
            _reraise(exc, "ConfigMap", namespace, name)
        return self.config_map_from_api(cm)

    async def put_config_map(self, config_map: ConfigMapObject) -> ConfigMapObject:
        body = k8s_client.V1ConfigMap(
            metadata=k8s_client.V1ObjectMeta(
                name=config_map.name,
                namespace=config_map.namespace,
                labels=config_map.labels or None,
                owner_references=await self._owner_references(config_map.namespace, config_map.owner),
                resource_version=config_map.resource_version or None,
            ),
            binary_data={k: base64.b64encode(v).decode("ascii") for k, v in config_map.binary_data.items()},
        )
        try:
            try:
                await self._core.replace_namespaced_config_map(
                    name=config_map.name, namespace=config_map.namespace, body=body
                )
            except ApiException as exc:
                if exc.status != 404:
                    raise
                await self._core.create_namespaced_config_map(namespace=config_map.namespace, body=body)
        except ApiException as exc:
            _reraise(exc, "ConfigMap", config_map.namespace, config_map.name)
        return await self.get_config_map(config_map.namespace, config_map.name)

    async def delete_config_map(self, namespace: str, name: str) -> None:
        try:
            await self._core.delete_namespaced_config_map(name=name, namespace=namespace)
        except ApiException as exc:
            _reraise(exc, "ConfigMap", namespace, name)

    # -- workloads --------------------------------------------------------

    async def list_pods(self, namespace: str, name: str) -> list[PodInfo]:
        try:
            pods = await self._core.list_namespaced_pod(namespace=namespace, label_selector=f"app={name}")
        except ApiException as exc:
            _reraise(exc, "Pod", namespace, name)

        found = []
        for pod in pods.items or []:
            conditions = getattr(pod.status, "conditions", None) or []
            ready = any(c.type == "Ready" and c.status == "True" for c in conditions)
            found.append(PodInfo(name=pod.metadata.name, phase=pod.status.phase or "", ready=ready))
        return found

    async def restart_workload(self, kind: ResourceKind, namespace: str, name: str) -> None:
        timestamp = datetime.now(tz=UTC).isoformat()
        body = {"spec": {"template": {"metadata": {"annotations": {RESTARTED_AT_ANNOTATION: timestamp}}}}}
        try:
            await self._apps.patch_namespaced_deployment(name=name, namespace=namespace, body=body)
        except ApiException as exc:
            _reraise(exc, "Deployment", namespace, name)
        _log.info("workload_restarted", kind=kind.value, namespace=namespace, deployment=name, at=timestamp)
