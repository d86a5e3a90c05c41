"""Managed resources and the dependent objects the controller watches."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ledgerctl.models.status import Status


class ResourceKind(StrEnum):
    """Managed component kinds."""

    CA = "CA"
    PEER = "Peer"
    ORDERER = "Orderer"
    CONSOLE = "Console"

    @property
    def short(self) -> str:
        """Lower-case component name used in object names (``peer-restart-config``)."""
        return self.value.lower()

    @property
    def restart_config_name(self) -> str:
        return f"{self.short}-restart-config"

    @property
    def api_kind(self) -> str:
        """Kind name of the custom resource (``IBPPeer``)."""
        return f"IBP{self.value}"


@dataclass
class ReenrollAction:
    ecert: bool = False
    tls_cert: bool = False
    ecert_new_key: bool = False
    tls_cert_new_key: bool = False


@dataclass
class EnrollAction:
    ecert: bool = False
    tls_cert: bool = False


@dataclass
class ActionSpec:
    """User-requested one-shot actions."""

    restart: bool = False
    reenroll: ReenrollAction = field(default_factory=ReenrollAction)
    enroll: EnrollAction = field(default_factory=EnrollAction)
    upgrade_dbs: bool = False


@dataclass
class MSPSpec:
    """Membership credential sections; each is an opaque mapping or None."""

    component: dict[str, Any] | None = None
    tls: dict[str, Any] | None = None
    client_auth: dict[str, Any] | None = None

    def sections(self) -> dict[str, dict[str, Any] | None]:
        return {"component": self.component, "tls": self.tls, "clientAuth": self.client_auth}


@dataclass
class ResourceSpec:
    """The subset of a resource's desired state that drives classification."""

    fabric_version: str = ""
    images: dict[str, str] | None = None
    config_override: Any = None
    zone: str = ""
    region: str = ""
    mspid: str = ""
    node_number: int | None = None
    msp: MSPSpec | None = None
    node_ou_disabled: bool = False
    num_seconds_warning_period: int | None = None
    action: ActionSpec = field(default_factory=ActionSpec)
    bootstrapless: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "version": self.fabric_version,
            "images": copy.deepcopy(self.images),
            "configoverride": copy.deepcopy(self.config_override),
            "zone": self.zone,
            "region": self.region,
            "mspID": self.mspid,
            "disablenodeou": self.node_ou_disabled,
            "action": {
                "restart": self.action.restart,
                "reenroll": {
                    "ecert": self.action.reenroll.ecert,
                    "tlscert": self.action.reenroll.tls_cert,
                    "ecertNewKey": self.action.reenroll.ecert_new_key,
                    "tlscertNewKey": self.action.reenroll.tls_cert_new_key,
                },
                "enroll": {"ecert": self.action.enroll.ecert, "tlscert": self.action.enroll.tls_cert},
                "upgradedbs": self.action.upgrade_dbs,
            },
            "channelless": self.bootstrapless,
        }
        if self.num_seconds_warning_period is not None:
            out["numSecondsWarningPeriod"] = self.num_seconds_warning_period
        if self.node_number is not None:
            out["nodeNumber"] = self.node_number
        if self.msp is not None:
            out["secret"] = {"msp": copy.deepcopy(self.msp.sections())}
        out.update(copy.deepcopy(self.extra))
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ResourceSpec:
        data = dict(data or {})
        action = data.pop("action", None) or {}
        reenroll = action.get("reenroll") or {}
        enroll = action.get("enroll") or {}
        secret = data.pop("secret", None) or {}
        msp_data = secret.get("msp")
        msp = None
        if msp_data is not None:
            msp = MSPSpec(
                component=msp_data.get("component"),
                tls=msp_data.get("tls"),
                client_auth=msp_data.get("clientAuth"),
            )
        node_number = data.pop("nodeNumber", None)
        warning_period = data.pop("numSecondsWarningPeriod", None)
        spec = cls(
            fabric_version=str(data.pop("version", "") or ""),
            images=data.pop("images", None),
            config_override=data.pop("configoverride", None),
            zone=str(data.pop("zone", "") or ""),
            region=str(data.pop("region", "") or ""),
            mspid=str(data.pop("mspID", "") or ""),
            node_number=int(node_number) if node_number is not None else None,
            msp=msp,
            node_ou_disabled=bool(data.pop("disablenodeou", False)),
            num_seconds_warning_period=int(warning_period) if warning_period is not None else None,
            action=ActionSpec(
                restart=bool(action.get("restart", False)),
                reenroll=ReenrollAction(
                    ecert=bool(reenroll.get("ecert", False)),
                    tls_cert=bool(reenroll.get("tlscert", False)),
                    ecert_new_key=bool(reenroll.get("ecertNewKey", False)),
                    tls_cert_new_key=bool(reenroll.get("tlscertNewKey", False)),
                ),
                enroll=EnrollAction(
                    ecert=bool(enroll.get("ecert", False)),
                    tls_cert=bool(enroll.get("tlscert", False)),
                ),
                upgrade_dbs=bool(action.get("upgradedbs", False)),
            ),
            bootstrapless=bool(data.pop("channelless", False)),
        )
        spec.extra = data
        return spec


@dataclass
class ManagedResource:
    """A CA, peer, orderer or console custom resource.

    A resource without a node number is a *cluster* resource; its members
    carry a node number and a ``parent`` label naming the cluster.
    """

    kind: ResourceKind
    namespace: str
    name: str
    spec: ResourceSpec = field(default_factory=ResourceSpec)
    status: Status = field(default_factory=Status)
    labels: dict[str, str] = field(default_factory=dict)
    resource_version: str = ""
    declared_kind: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.namespace, self.name)

    @property
    def is_cluster(self) -> bool:
        return self.kind == ResourceKind.ORDERER and self.spec.node_number is None

    @property
    def parent_name(self) -> str:
        return self.labels.get("parent", "")

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.declared_kind or self.kind.value,
            "metadata": {
                "name": self.name,
                "namespace": self.namespace,
                "labels": dict(self.labels),
                "resourceVersion": self.resource_version,
            },
            "spec": self.spec.to_dict(),
            "status": self.status.to_dict(),
        }

    @classmethod
    def from_dict(cls, kind: ResourceKind, raw: dict[str, Any]) -> ManagedResource:
        metadata = raw.get("metadata") or {}
        return cls(
            kind=kind,
            namespace=str(metadata.get("namespace", "")),
            name=str(metadata.get("name", "")),
            spec=ResourceSpec.from_dict(raw.get("spec")),
            status=Status.from_dict(raw.get("status")),
            labels=dict(metadata.get("labels") or {}),
            resource_version=str(metadata.get("resourceVersion", "")),
            declared_kind=str(raw.get("kind", "")),
        )


@dataclass(frozen=True)
class OwnerReference:
    kind: str
    name: str


@dataclass
class SecretObject:
    """A credential secret; ``data`` values are raw (already base64-decoded) bytes."""

    name: str
    namespace: str
    data: dict[str, bytes] = field(default_factory=dict)
    owner: OwnerReference | None = None
    labels: dict[str, str] = field(default_factory=dict)
    resource_version: str = ""


@dataclass
class ConfigMapObject:
    name: str
    namespace: str
    binary_data: dict[str, bytes] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    owner: OwnerReference | None = None
    resource_version: str = ""


@dataclass(frozen=True)
class PodInfo:
    """Minimal view of a workload pod used for readiness decisions."""

    name: str
    phase: str
    ready: bool = False
