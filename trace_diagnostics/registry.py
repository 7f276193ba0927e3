"""Type registration table used by the model builder."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from trace_diagnostics.model import GenericObjectInstance, ObjectInstance, ObjectSnapshot

logger = logging.getLogger(__name__)

SnapshotFactory = Callable[..., ObjectSnapshot]
InstanceFactory = Callable[..., ObjectInstance]


@dataclass
class TypeRegistration:
    type_name: str
    snapshot_factory: SnapshotFactory
    instance_factory: InstanceFactory
    view_metadata: dict = field(default_factory=dict)


GENERIC_REGISTRATION = TypeRegistration(
    type_name="",
    snapshot_factory=ObjectSnapshot,
    instance_factory=GenericObjectInstance,
    view_metadata={"name": "object", "pluralName": "objects"}
)


class TypeRegistry:
    """
    Maps object type names to construction factories and display metadata.

    Re-registering a type name replaces the earlier registration
    (last registration wins); the replacement is logged.
    """

    def __init__(self):
        self._registrations: dict[str, TypeRegistration] = {}

    def register(
        self,
        type_name: str,
        snapshot_factory: SnapshotFactory,
        instance_factory: InstanceFactory,
        view_metadata: dict | None = None
    ) -> TypeRegistration:
        if not type_name:
            raise ValueError("type_name must be a non-empty string")
        if type_name in self._registrations:
            logger.warning("Type %s registered twice; keeping the latest registration", type_name)
        registration = TypeRegistration(
            type_name=type_name,
            snapshot_factory=snapshot_factory,
            instance_factory=instance_factory,
            view_metadata=dict(view_metadata or {})
        )
        self._registrations[type_name] = registration
        return registration

    def get(self, type_name: str) -> TypeRegistration | None:
        return self._registrations.get(type_name)

    def lookup(self, type_name: str) -> TypeRegistration:
        """Return the registration for ``type_name`` or the generic fallback."""
        return self._registrations.get(type_name, GENERIC_REGISTRATION)

    def __contains__(self, type_name: str) -> bool:
        return type_name in self._registrations

    def type_names(self) -> list[str]:
        return list(self._registrations)


_default_registry: TypeRegistry | None = None


def default_type_registry() -> TypeRegistry:
    """Process-wide registry with the built-in types registered."""
    global _default_registry
    if _default_registry is None:
        from trace_diagnostics.types import register_builtin_types

        registry = TypeRegistry()
        register_builtin_types(registry)
        _default_registry = registry
    return _default_registry
