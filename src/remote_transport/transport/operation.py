"""Closed vocabulary of abstract operations every transport adapter understands."""

from __future__ import annotations

from enum import Enum


class TransportOperation(str, Enum):
    """CRUD-style operations carried by a :class:`TransportRequest`."""

    FIND_BY_ID = "find-by-id"
    FIND_ALL = "find-all"
    QUERY = "query"
    SAVE = "save"
    DELETE = "delete"
    EXISTS = "exists"
    COUNT = "count"

    @property
    def is_list_operation(self) -> bool:
        """Operations answered through ``execute_for_list``."""

        return self in (TransportOperation.FIND_ALL, TransportOperation.QUERY)

    @property
    def requires_identifier(self) -> bool:
        return self in (TransportOperation.FIND_BY_ID, TransportOperation.DELETE, TransportOperation.EXISTS)

    @property
    def bus_slug(self) -> str:
        """Address suffix used on the event bus (``{prefix}.{slug}``)."""

        return _BUS_SLUGS[self]


_BUS_SLUGS = {
    TransportOperation.FIND_BY_ID: "get-by-id",
    TransportOperation.FIND_ALL: "get-all",
    TransportOperation.QUERY: "get-all",
    TransportOperation.SAVE: "save",
    TransportOperation.DELETE: "delete",
    TransportOperation.EXISTS: "exists",
    TransportOperation.COUNT: "count",
}
