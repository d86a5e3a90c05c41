"""Core data structures for ledgerctl."""

from ledgerctl.models.config import LedgerctlConfig
from ledgerctl.models.intent import CredentialType, Intent
from ledgerctl.models.resources import (
    ActionSpec,
    ConfigMapObject,
    EnrollAction,
    ManagedResource,
    MSPSpec,
    OwnerReference,
    PodInfo,
    ReenrollAction,
    ResourceKind,
    ResourceSpec,
    SecretObject,
)
from ledgerctl.models.restart import AdmissionDecision, RestartLogEntry, RestartReason, RestartRecord, RestartStatus
from ledgerctl.models.status import TERMINAL_CLUSTER_TYPES, Status, StatusType

__all__ = [
    "ActionSpec",
    "AdmissionDecision",
    "ConfigMapObject",
    "CredentialType",
    "EnrollAction",
    "Intent",
    "LedgerctlConfig",
    "MSPSpec",
    "ManagedResource",
    "OwnerReference",
    "PodInfo",
    "ReenrollAction",
    "ResourceKind",
    "ResourceSpec",
    "RestartLogEntry",
    "RestartReason",
    "RestartRecord",
    "RestartStatus",
    "SecretObject",
    "Status",
    "StatusType",
    "TERMINAL_CLUSTER_TYPES",
]
