"""Field-level comparators used by the Change Classifier.

Each comparator names exactly which fields it looks at, so adding a field
to :class:`ResourceSpec` never silently changes what counts as a spec
change.
"""

from __future__ import annotations

import json
from typing import Any

from ledgerctl.models.resources import MSPSpec, ResourceSpec
from ledgerctl.models.status import Status

ZONE_PLACEHOLDER = "select"

# Everything except config_override, which is tracked separately.
SPEC_FIELDS = (
    "fabric_version",
    "images",
    "zone",
    "region",
    "mspid",
    "node_number",
    "msp",
    "node_ou_disabled",
    "num_seconds_warning_period",
    "action",
    "bootstrapless",
    "extra",
)


def _placement_set(value: str) -> bool:
    return bool(value) and value.lower() != ZONE_PLACEHOLDER


def zone_or_region_updated(old: str, new: str) -> bool:
    """A placement value changed from one real value to another.

    Moving from or to an empty value or the ``select`` placeholder is allowed.
    """
    return _placement_set(old) and _placement_set(new) and old != new


def placement_changed(old: ResourceSpec, new: ResourceSpec) -> bool:
    return zone_or_region_updated(old.zone, new.zone) or zone_or_region_updated(old.region, new.region)


def spec_changed(old: ResourceSpec, new: ResourceSpec) -> bool:
    return any(getattr(old, f) != getattr(new, f) for f in SPEC_FIELDS)


def _normalize_override(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        if not value.strip():
            return None
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value or None


def overrides_changed(old: ResourceSpec, new: ResourceSpec) -> bool:
    """Compare overrides by content; JSON text and the equivalent mapping are equal."""
    return _normalize_override(old.config_override) != _normalize_override(new.config_override)


def images_changed(old: ResourceSpec, new: ResourceSpec) -> bool:
    if new.images is None:
        return False
    if old.images is None:
        return True
    return old.images != new.images


def fabric_version_changed(old: ResourceSpec, new: ResourceSpec) -> bool:
    return old.fabric_version != new.fabric_version


def status_changed(old: Status, new: Status) -> bool:
    return not old.same_as(new)


def _without_admin_certs(section: dict[str, Any] | None, keep_as_is: bool) -> dict[str, Any] | None:
    if section is None or keep_as_is:
        return section
    return {k: v for k, v in section.items() if k != "admincerts"}


def msp_changed(old: MSPSpec | None, new: MSPSpec | None) -> bool:
    """New MSP material was supplied.

    Admin certificates are ignored when both sides carry the same section;
    they are rolled out without re-enrollment.
    """
    if new is None:
        return False
    new_sections = new.sections()
    if old is None:
        return any(section is not None for section in new_sections.values())

    old_sections = old.sections()
    for name, new_section in new_sections.items():
        old_section = old_sections[name]
        one_sided = old_section is None or new_section is None
        if _without_admin_certs(old_section, one_sided) != _without_admin_certs(new_section, one_sided):
            return True
    return False


def action_flags(old: ResourceSpec, new: ResourceSpec) -> dict[str, bool]:
    """Action requests in ``new``.

    Restart, enroll and database upgrade requests count while they are set;
    re-enroll requests count only on the edge where they turn on.
    """
    flags = {
        "restart_requested": new.action.restart,
        "enroll_ecert": new.action.enroll.ecert,
        "enroll_tls_cert": new.action.enroll.tls_cert,
        "upgrade_dbs": new.action.upgrade_dbs,
    }
    old_re, new_re = old.action.reenroll, new.action.reenroll
    flags["reenroll_ecert"] = new_re.ecert and not old_re.ecert
    flags["reenroll_tls_cert"] = new_re.tls_cert and not old_re.tls_cert
    flags["reenroll_ecert_new_key"] = new_re.ecert_new_key and not old_re.ecert_new_key
    flags["reenroll_tls_cert_new_key"] = new_re.tls_cert_new_key and not old_re.tls_cert_new_key
    return {name: value for name, value in flags.items() if value}


def warning_period_changed(old: ResourceSpec, new: ResourceSpec) -> bool:
    """The certificate expiry warning window differs."""
    return old.num_seconds_warning_period != new.num_seconds_warning_period
