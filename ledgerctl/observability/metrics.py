"""Prometheus metrics for the reconciliation core."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

intents_pushed_total = Counter(
    "ledgerctl_intents_pushed_total",
    "Intents accepted onto the per-resource queue (duplicates excluded).",
    ["kind"],
)

reconcile_total = Counter(
    "ledgerctl_reconcile_total",
    "Dispatcher passes by outcome.",
    ["kind", "outcome"],
)

status_updates_total = Counter(
    "ledgerctl_status_updates_total",
    "Status writes persisted by the arbitrator.",
    ["kind", "type"],
)

restart_decisions_total = Counter(
    "ledgerctl_restart_decisions_total",
    "Staggered restart admission decisions.",
    ["kind", "decision"],
)

intent_queue_depth = Gauge(
    "ledgerctl_intent_queue_depth",
    "Total Intents waiting across all resources.",
)
