"""Version Transition Analyzer.

Maps an ``(old, new)`` release version pair onto the remediation flags a
reconciler must act on: forced TLS re-enrollment at the 1.4.9 and 2.2.1
boundaries, and the v2 / v2.4 / v2.5 migration steps.

An empty ``old`` version means the resource never reported one and is
treated as an epoch-1 release older than every threshold.
"""

from __future__ import annotations

from ledgerctl.fabricversion.version import V1, V1_4_9, V2, V2_2_1, V2_4_1, V2_5_1, Version
from ledgerctl.models.intent import Intent


def requires_tls_reenroll(old: str, new: str) -> bool:
    """True when crossing the 1.4.9 or 2.2.1 line mandates a new TLS certificate."""
    old_v = Version.parse(old)
    new_v = Version.parse(new)
    old_epoch = old_v.major_release()
    new_epoch = new_v.major_release()

    if not old or (old_epoch == V1 and old_v.less_than(V1_4_9)):
        if new_epoch == V1 and new_v.at_least(V1_4_9):
            return True
        if new_epoch == V2 and new_v.at_least(V2_2_1):
            return True

    if old_epoch == V2 and old_v.less_than(V2_2_1) and new_v.at_least(V2_2_1):
        return True

    return False


def migration_flags(old: str, new: str) -> dict[str, bool]:
    """Migration steps required when moving from ``old`` to ``new``."""
    old_v = Version.parse(old)
    new_v = Version.parse(new)
    flags: dict[str, bool] = {}

    if new_v.major_release() != V2:
        return flags

    if not old or old_v.major_release() == V1:
        flags["migrate_to_v2"] = True
        if new_v.at_least(V2_5_1):
            flags.update(migrate_to_v25=True, tls_cert_updated=True)
        elif new_v.at_least(V2_4_1):
            flags.update(migrate_to_v24=True, tls_cert_updated=True)
        return flags

    if old_v.less_than(V2_4_1):
        if new_v.at_least(V2_5_1):
            flags.update(migrate_to_v25=True, tls_cert_updated=True)
        elif new_v.at_least(V2_4_1):
            flags.update(migrate_to_v24=True, tls_cert_updated=True)
    elif old_v.less_than(V2_5_1) and new_v.at_least(V2_5_1):
        # 2.4.x -> 2.5.x keeps the existing TLS certificate
        flags["migrate_to_v25"] = True

    return flags


def analyze_transition(old: str, new: str) -> Intent:
    """Return the Intent a release change from ``old`` to ``new`` calls for.

    The result always carries ``fabric_version_changed`` when the two strings
    differ; an unchanged version yields an empty Intent.
    """
    if old == new:
        return Intent()

    flags = migration_flags(old, new)
    if requires_tls_reenroll(old, new):
        flags["tls_cert_updated"] = True
    flags["fabric_version_changed"] = True
    return Intent(**flags)
