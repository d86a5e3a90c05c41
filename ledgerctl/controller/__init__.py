"""Reconciliation core: classification, queueing, dispatch and status arbitration."""

from ledgerctl.controller.classifier import Admission, ChangeClassifier
from ledgerctl.controller.dispatcher import ReconcileDispatcher
from ledgerctl.controller.queue import IntentQueue
from ledgerctl.controller.result import BusinessReconciler, DispatchOutcome, PassthroughReconciler, ReconcileResult
from ledgerctl.controller.runner import KindController
from ledgerctl.controller.status import StatusArbitrator

__all__ = [
    "Admission",
    "BusinessReconciler",
    "ChangeClassifier",
    "DispatchOutcome",
    "IntentQueue",
    "KindController",
    "PassthroughReconciler",
    "ReconcileDispatcher",
    "ReconcileResult",
    "StatusArbitrator",
]
