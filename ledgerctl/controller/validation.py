"""Structural validation of managed resources."""

from __future__ import annotations

import json
from typing import Any

from ledgerctl.errors import ErrorCode, ValidationError
from ledgerctl.models.resources import ManagedResource, ResourceKind
from ledgerctl.store.base import ResourceStore

DEFAULT_MAX_NAME_LENGTH = 32

_MAX_NAME_KEYS = ("maxnamelength", "maxNameLength")


def parse_overrides(resource: ManagedResource) -> dict[str, Any]:
    """Return the config override payload as a mapping.

    Raises ValidationError when the payload is not a JSON object.
    """
    raw = resource.spec.config_override
    if raw is None or raw == "" or raw == b"":
        return {}
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise ValidationError(f"config override of '{resource.name}' is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValidationError(f"config override of '{resource.name}' must be a JSON object")
    return raw


def max_name_length(overrides: dict[str, Any], default: int = DEFAULT_MAX_NAME_LENGTH) -> int:
    for key in _MAX_NAME_KEYS:
        value = overrides.get(key)
        if value is not None:
            try:
                return int(value)
            except (TypeError, ValueError) as exc:
                raise ValidationError(f"override '{key}' must be an integer, got {value!r}") from exc
    return default


def validate_resource(resource: ManagedResource, default_max_name_length: int = DEFAULT_MAX_NAME_LENGTH) -> None:
    """Check override payload, name length and declared kind.

    Raises ValidationError on the first violation.
    """
    overrides = parse_overrides(resource)
    limit = max_name_length(overrides, default_max_name_length)
    if len(resource.name) > limit:
        raise ValidationError(
            f"The instance name '{resource.name}' is too long, "
            f"the name must be less than or equal to {limit} characters"
        )

    declared = resource.declared_kind
    if declared and declared not in (resource.kind.value, resource.kind.api_kind):
        raise ValidationError(
            f"The instance '{resource.name}' is of kind {declared} not an {resource.kind.api_kind} kind resource, "
            "please check to make sure there are no name collisions across resources"
        )


async def validate_unique_name(store: ResourceStore, kind: ResourceKind, namespace: str, name: str) -> None:
    """Names are unique across every managed kind in a namespace.

    The resource being created is itself listed, so one match of its own kind
    is expected; a second one, or any match of another kind, is a collision.
    """
    same_kind = 0
    for candidate in ResourceKind:
        for existing in await store.list(candidate, namespace):
            if existing.name != name:
                continue
            if candidate != kind:
                raise ValidationError(
                    f"custom resource with name '{name}' already exists as {candidate.api_kind}",
                    code=ErrorCode.INVALID_CUSTOM_RESOURCE_CREATE_REQUEST,
                )
            same_kind += 1

    if same_kind > 1:
        raise ValidationError(
            f"custom resource with name '{name}' already exists",
            code=ErrorCode.INVALID_CUSTOM_RESOURCE_CREATE_REQUEST,
        )
