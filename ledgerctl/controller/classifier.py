"""Change Classifier.

Turns watch notifications for a managed kind and its dependent objects
(credential secrets, the restart coordination config map, workloads) into
Intents on the shared queue, and decides whether each notification should
trigger a reconcile pass at all.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ledgerctl.controller import diff
from ledgerctl.controller.queue import IntentQueue
from ledgerctl.controller.snapshot import load_spec_snapshot
from ledgerctl.controller.status import StatusArbitrator
from ledgerctl.controller.validation import validate_unique_name
from ledgerctl.errors import NotFoundError, ValidationError
from ledgerctl.fabricversion.transition import analyze_transition
from ledgerctl.models.intent import Intent
from ledgerctl.models.resources import ConfigMapObject, ManagedResource, OwnerReference, ResourceKind, SecretObject
from ledgerctl.models.status import TERMINAL_CLUSTER_TYPES
from ledgerctl.observability.logging import get_logger
from ledgerctl.observability.metrics import intents_pushed_total
from ledgerctl.store.base import ResourceStore

_log = get_logger("controller.classifier")

INIT_ROOTCERT_SUFFIX = "-init-rootcert"
CA_CRYPTO_SUFFIXES = ("-ca-crypto", "-tlsca-crypto")
WARNING_PERIOD_KINDS = frozenset({ResourceKind.PEER, ResourceKind.ORDERER})


@dataclass(frozen=True)
class Admission:
    """Whether a notification triggers a reconcile pass, and the Intent it produced."""

    admit: bool
    intent: Intent = field(default_factory=Intent)


REJECT = Admission(admit=False)


def is_tls_cert_secret(name: str) -> bool:
    if name.endswith("-signcert"):
        return name.startswith("tls")
    return name.endswith("-ca-crypto")


def is_ecert_secret(name: str) -> bool:
    return name.endswith("-signcert") and name.startswith("ecert")


def instance_name_from_secret(name: str) -> str | None:
    """Resource name encoded in a dependent secret's name.

    Recognised forms are ``<instance>-ca-crypto``, ``<instance>-tlsca-crypto``,
    ``<instance>-init-rootcert`` and ``<prefix>-<instance>-<type>``. Instance
    names may themselves contain hyphens.
    """
    items = name.split("-")
    if len(items) < 3:
        return None
    if name.endswith(CA_CRYPTO_SUFFIXES) or INIT_ROOTCERT_SUFFIX in name:
        return "-".join(items[:-2])
    return "-".join(items[1:-1])


class ChangeClassifier:
    def __init__(
        self,
        kind: ResourceKind,
        store: ResourceStore,
        queue: IntentQueue,
        arbitrator: StatusArbitrator,
    ) -> None:
        self.kind = kind
        self._store = store
        self._queue = queue
        self._arbitrator = arbitrator

    def _push(self, namespace: str, name: str, intent: Intent) -> Admission:
        if self._queue.push((namespace, name), intent):
            intents_pushed_total.labels(kind=self.kind.value).inc()
        _log.info(
            "intent_queued",
            kind=self.kind.value,
            namespace=namespace,
            name=name,
            intent=intent.describe(),
            queue=self._queue.describe((namespace, name)),
        )
        return Admission(admit=True, intent=intent)

    # -- primary resource -------------------------------------------------

    async def on_create(self, resource: ManagedResource) -> Admission:
        if resource.status.has_type:
            return await self._catch_up(resource)

        try:
            await validate_unique_name(self._store, self.kind, resource.namespace, resource.name)
        except ValidationError as err:
            _log.error("invalid_resource_name", kind=self.kind.value, name=resource.name, error=str(err))
            await self._arbitrator.force_error(resource, err)
            return REJECT

        _log.info("resource_created", kind=self.kind.value, namespace=resource.namespace, name=resource.name)
        return Admission(admit=True)

    async def _catch_up(self, resource: ManagedResource) -> Admission:
        """Classify edits made while the controller was not running."""
        saved = await load_spec_snapshot(self._store, resource.namespace, resource.name)
        if saved is None:
            return Admission(admit=True)

        new = resource.spec
        flags: dict[str, bool] = {}
        if diff.spec_changed(saved, new):
            flags["spec_changed"] = True
        if diff.overrides_changed(saved, new):
            flags["overrides_changed"] = True
        if saved.images is not None and diff.images_changed(saved, new):
            flags["images_changed"] = True

        intent = Intent(**flags)
        if diff.fabric_version_changed(saved, new):
            intent = intent.merge(analyze_transition(saved.fabric_version, new.fabric_version))

        _log.info("changed_while_down", kind=self.kind.value, name=resource.name, intent=intent.describe())
        return self._push(resource.namespace, resource.name, intent)

    async def on_update(self, old: ManagedResource, new: ManagedResource) -> Admission:
        if diff.placement_changed(old.spec, new.spec):
            _log.error(
                "invalid_spec_update",
                kind=self.kind.value,
                name=new.name,
                error="zone and region cannot be changed",
                old_zone=old.spec.zone,
                new_zone=new.spec.zone,
                old_region=old.spec.region,
                new_region=new.spec.region,
            )
            return REJECT

        if old.is_cluster and old.status.type in TERMINAL_CLUSTER_TYPES:
            _log.info("cluster_update_ignored", name=old.name, status=old.status.type)
            return REJECT

        old_spec, new_spec = old.spec, new.spec
        flags: dict[str, bool] = {}
        if diff.status_changed(old.status, new.status):
            flags["status_changed"] = True
        if diff.spec_changed(old_spec, new_spec):
            flags["spec_changed"] = True
        if diff.overrides_changed(old_spec, new_spec):
            flags["overrides_changed"] = True
        if diff.images_changed(old_spec, new_spec):
            flags["images_changed"] = True
        if diff.msp_changed(old_spec.msp, new_spec.msp):
            flags["msp_changed"] = True
        if old_spec.node_ou_disabled != new_spec.node_ou_disabled:
            flags["node_ou_updated"] = True
        flags.update(diff.action_flags(old_spec, new_spec))
        if self.kind in WARNING_PERIOD_KINDS and diff.warning_period_changed(old_spec, new_spec):
            flags["tls_cert_updated"] = True
            flags["ecert_updated"] = True

        intent = Intent(**flags)
        if diff.fabric_version_changed(old_spec, new_spec):
            intent = intent.merge(analyze_transition(old_spec.fabric_version, new_spec.fabric_version))

        if intent.empty:
            return REJECT
        return self._push(new.namespace, new.name, intent)

    async def on_delete(self, resource: ManagedResource) -> None:
        """Cascade a deletion through the cluster/node relationship."""
        if resource.is_cluster:
            children = await self._store.list(self.kind, resource.namespace, {"parent": resource.name})
            for child in children:
                await self._delete_quietly(child.namespace, child.name)
            return

        try:
            await self._store.delete_config_map(resource.namespace, f"{resource.name}-init-config")
        except NotFoundError:
            pass
        except Exception as exc:
            _log.warning("init_config_delete_failed", name=resource.name, error=str(exc))

        parent = resource.parent_name
        if not parent:
            return
        siblings = await self._store.list(self.kind, resource.namespace, {"parent": parent})
        if not [s for s in siblings if s.name != resource.name]:
            _log.info("last_node_deleted", name=resource.name, cluster=parent)
            await self._delete_quietly(resource.namespace, parent)

    async def _delete_quietly(self, namespace: str, name: str) -> None:
        try:
            await self._store.delete(self.kind, namespace, name)
            _log.info("cascade_deleted", kind=self.kind.value, namespace=namespace, name=name)
        except NotFoundError:
            pass
        except Exception as exc:
            _log.warning("cascade_delete_failed", kind=self.kind.value, name=name, error=str(exc))

    # -- dependent objects ------------------------------------------------

    async def _owning_instance(self, secret: SecretObject) -> str | None:
        """Name of the resource of this kind that owns ``secret``, adopting unowned secrets."""
        if secret.owner is not None:
            return secret.owner.name if secret.owner.kind == self.kind.value else None

        instance = instance_name_from_secret(secret.name)
        if instance is None:
            return None
        existing = await self._store.list(self.kind, secret.namespace)
        if instance not in {r.name for r in existing}:
            return None

        secret.owner = OwnerReference(kind=self.kind.value, name=instance)
        await self._store.put_secret(secret)
        _log.info("secret_adopted", kind=self.kind.value, secret=secret.name, owner=instance)
        return instance

    async def on_secret_create(self, secret: SecretObject) -> Admission:
        instance = await self._owning_instance(secret)
        if instance is None:
            return REJECT

        if is_tls_cert_secret(secret.name):
            intent = Intent(tls_cert_created=True)
        elif is_ecert_secret(secret.name):
            intent = Intent(ecert_created=True)
        else:
            return REJECT
        return self._push(secret.namespace, instance, intent)

    async def on_secret_update(self, old: SecretObject, new: SecretObject) -> Admission:
        if new.owner is None and old.owner is not None:
            new.owner = old.owner
        instance = await self._owning_instance(new)
        if instance is None:
            return REJECT
        if old.data == new.data:
            return REJECT

        if is_tls_cert_secret(new.name):
            intent = Intent(tls_cert_updated=True)
        elif is_ecert_secret(new.name):
            intent = Intent(ecert_updated=True)
        else:
            return REJECT
        return self._push(new.namespace, instance, intent)

    def on_config_map_event(self, config_map: ConfigMapObject) -> Admission:
        if config_map.name == self.kind.restart_config_name:
            _log.info("restart_config_changed", kind=self.kind.value, namespace=config_map.namespace)
            return Admission(admit=True)
        return REJECT

    def on_workload_event(self, namespace: str, name: str) -> Admission:
        _log.debug("workload_event", kind=self.kind.value, namespace=namespace, name=name)
        return Admission(admit=True)
