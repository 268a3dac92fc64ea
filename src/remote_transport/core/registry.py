"""
Entity metadata and the registry that holds it.

Each remote entity type is described once by an :class:`EntityInformation`:
where its resource lives, which field carries its identifier and how to read
that identifier from an instance. Identifier accessors are supplied explicitly
when the type is registered; nothing is discovered by scanning classes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, MutableMapping, Optional, TypeVar

E = TypeVar("E", bound=type)

IdentifierAccessor = Callable[[Any], Any]


class RegistryError(RuntimeError):
    """Raised when an entity registration is inconsistent."""


def attribute_accessor(name: str) -> IdentifierAccessor:
    """
    Return an accessor reading ``name`` from an entity.

    Mappings are read by key and objects by attribute; a missing value reads as
    ``None``.
    """

    def _read(entity: Any) -> Any:
        if entity is None:
            return None
        if isinstance(entity, dict):
            return entity.get(name)
        return getattr(entity, name, None)

    _read.__name__ = f"read_{name}"
    return _read


def derive_resource_path(entity_type: type) -> str:
    """``Order`` -> ``/orders``."""

    return "/" + entity_type.__name__.lower() + "s"


@dataclass(slots=True)
class EntityInformation:
    """
    Metadata for one remote entity type.

    Parameters
    ----------
    entity_type:
        Python class instances are decoded into.
    resource_path:
        Path segment appended to the transport's base address. Derived from
        the class name when omitted.
    base_url:
        Optional base URL override for this entity.
    id_field:
        Name of the identifier field in the JSON representation.
    id_accessor:
        Callable returning an entity's identifier. Defaults to reading
        ``id_field``.
    """

    entity_type: type
    resource_path: str = ""
    base_url: Optional[str] = None
    id_field: str = "id"
    id_accessor: Optional[IdentifierAccessor] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.resource_path:
            self.resource_path = derive_resource_path(self.entity_type)
        if self.base_url is not None and not self.base_url.strip():
            self.base_url = None
        if self.id_accessor is None:
            self.id_accessor = attribute_accessor(self.id_field)

    @property
    def resource_name(self) -> str:
        """Resource path without its leading slash."""

        return self.resource_path[1:] if self.resource_path.startswith("/") else self.resource_path

    @property
    def has_base_url_override(self) -> bool:
        return bool(self.base_url)

    def identifier_of(self, entity: Any) -> Any:
        return self.id_accessor(entity) if entity is not None else None

    def validate(self) -> None:
        if not isinstance(self.entity_type, type):
            raise RegistryError(f"Entity type must be a class, got {self.entity_type!r}")
        if not self.resource_name.strip():
            raise RegistryError(f"Entity '{self.entity_type.__name__}' has an empty resource path.")
        if not self.id_field:
            raise RegistryError(f"Entity '{self.entity_type.__name__}' has no identifier field.")


class EntityRegistry:
    """In-memory catalogue of :class:`EntityInformation` keyed by entity type."""

    def __init__(self) -> None:
        self._entries: MutableMapping[type, EntityInformation] = {}

    def register(self, information: EntityInformation) -> EntityInformation:
        """Register or overwrite the metadata for ``information.entity_type``."""

        information.validate()
        self._entries[information.entity_type] = information
        return information

    def register_type(
        self,
        entity_type: type,
        *,
        path: Optional[str] = None,
        base_url: Optional[str] = None,
        id_field: str = "id",
        id_accessor: Optional[IdentifierAccessor] = None,
    ) -> EntityInformation:
        return self.register(
            EntityInformation(
                entity_type=entity_type,
                resource_path=path or "",
                base_url=base_url,
                id_field=id_field,
                id_accessor=id_accessor,
            )
        )

    def resource(
        self,
        path: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        id_field: str = "id",
        id_accessor: Optional[IdentifierAccessor] = None,
    ) -> Callable[[E], E]:
        """
        Class decorator registering the decorated type.

        Example::

            @registry.resource("/people", id_field="person_id")
            @dataclass
            class Person:
                person_id: int
                name: str
        """

        def _decorate(entity_type: E) -> E:
            self.register_type(entity_type, path=path, base_url=base_url, id_field=id_field, id_accessor=id_accessor)
            return entity_type

        return _decorate

    def unregister(self, entity_type: type) -> None:
        self._entries.pop(entity_type, None)

    def get(self, entity_type: type) -> Optional[EntityInformation]:
        return self._entries.get(entity_type)

    def require(self, entity_type: type) -> EntityInformation:
        """Retrieve metadata or raise an informative error."""

        information = self.get(entity_type)
        if information is None:
            raise KeyError(f"Entity type '{entity_type.__name__}' is not registered.")
        return information

    def find_by_resource(self, resource_name: str) -> Optional[EntityInformation]:
        wanted = resource_name.lstrip("/")
        for information in self._entries.values():
            if information.resource_name == wanted:
                return information
        return None

    def list(self) -> List[EntityInformation]:
        return list(self._entries.values())

    def __contains__(self, entity_type: object) -> bool:
        return entity_type in self._entries

    def __len__(self) -> int:
        return len(self._entries)
