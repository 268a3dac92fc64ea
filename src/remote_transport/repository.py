"""
CRUD facade over any transport adapter.

:class:`RemoteRepository` turns repository calls into transport requests for
one entity type. It is where "absent" is interpreted: a 404 on lookup becomes
``None``, a 404 on delete is ignored, and other remote failures on writes are
raised as :class:`~remote_transport.transport.errors.TransportError`.
"""

from __future__ import annotations

import logging
from typing import Any, Generic, Iterable, List, Mapping, Optional, TypeVar

from .core.logging import get_logger, log_event
from .core.registry import EntityInformation
from .transport.base import TransportClient
from .transport.errors import ErrorKind, TransportError
from .transport.operation import TransportOperation
from .transport.request import TransportRequest
from .transport.response import TransportResponse

T = TypeVar("T")


class RemoteRepository(Generic[T]):
    """
    Repository for the entity type described by ``information``.

    Parameters
    ----------
    information:
        Entity metadata, typically from :class:`~remote_transport.core.registry.EntityRegistry`.
    client:
        A configured transport adapter.
    """

    def __init__(self, information: EntityInformation, client: TransportClient[Any]) -> None:
        self.information = information
        self.client = client
        self.logger = get_logger(
            f"{__name__}.{self.__class__.__name__}",
            extra={"resource": information.resource_name},
        )

    @property
    def resource_name(self) -> str:
        return self.information.resource_name

    def _request(
        self,
        operation: TransportOperation,
        *,
        identifier: Any = None,
        payload: Any = None,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> TransportRequest:
        return TransportRequest(
            operation=operation,
            resource_name=self.resource_name,
            entity_type=self.information.entity_type,
            identifier=identifier,
            payload=payload,
            parameters=parameters or {},
        )

    def _raise_failure(self, response: TransportResponse[Any], operation: TransportOperation, default: str) -> None:
        raise TransportError(
            response.error_message or default,
            response.status_code,
            self.resource_name,
            operation,
            kind=ErrorKind.PROTOCOL,
        )

    # ------------------------------------------------------------------ writes

    def save(self, entity: T) -> T:
        """Insert ``entity`` when it has no identifier, update it otherwise; return the stored copy."""

        request = self._request(
            TransportOperation.SAVE,
            identifier=self.information.identifier_of(entity),
            payload=entity,
        )
        response = self.client.execute(request, self.information.entity_type)
        if not response.success:
            self._raise_failure(response, TransportOperation.SAVE, "save failed")
        if response.body is None:
            raise TransportError(
                "Expected non-null response for save",
                response.status_code,
                self.resource_name,
                TransportOperation.SAVE,
            )
        return response.body

    def save_all(self, entities: Iterable[T]) -> List[T]:
        return [self.save(entity) for entity in entities]

    def delete_by_id(self, identifier: Any) -> None:
        response = self.client.execute(self._request(TransportOperation.DELETE, identifier=identifier))
        if not response.success and response.status_code != 404:
            self._raise_failure(response, TransportOperation.DELETE, "Delete failed")
        if response.status_code == 404:
            log_event(self.logger, logging.DEBUG, "Delete target already absent", operation="delete", status_code=404)

    def delete(self, entity: T) -> None:
        """Delete ``entity`` by its identifier; entities without one are ignored."""

        identifier = self.information.identifier_of(entity)
        if identifier is not None and identifier != "":
            self.delete_by_id(identifier)

    def delete_all_by_id(self, identifiers: Iterable[Any]) -> None:
        for identifier in identifiers:
            self.delete_by_id(identifier)

    def delete_all(self, entities: Optional[Iterable[T]] = None) -> None:
        """
        Delete ``entities``, or every entity of the resource when omitted.

        Without arguments this fetches the full collection and deletes entries
        one at a time.
        """

        for entity in list(self.find_all() if entities is None else entities):
            self.delete(entity)

    # ------------------------------------------------------------------ reads

    def find_by_id(self, identifier: Any) -> Optional[T]:
        response = self.client.execute(
            self._request(TransportOperation.FIND_BY_ID, identifier=identifier),
            self.information.entity_type,
        )
        if not response.success:
            return None
        return response.body

    def find_all_by_id(self, identifiers: Iterable[Any]) -> List[T]:
        found: List[T] = []
        for identifier in identifiers:
            entity = self.find_by_id(identifier)
            if entity is not None:
                found.append(entity)
        return found

    def exists_by_id(self, identifier: Any) -> bool:
        response = self.client.execute(self._request(TransportOperation.EXISTS, identifier=identifier), bool)
        return bool(response.body_or(False))

    def find_all(self) -> List[T]:
        response = self.client.execute_for_list(self._request(TransportOperation.FIND_ALL), self.information.entity_type)
        return list(response.body_or([]))

    def query(self, parameters: Mapping[str, Any]) -> List[T]:
        response = self.client.execute_for_list(
            self._request(TransportOperation.QUERY, parameters=parameters),
            self.information.entity_type,
        )
        return list(response.body_or([]))

    def count(self) -> int:
        response = self.client.execute(self._request(TransportOperation.COUNT), int)
        return int(response.body_or(0))

    def refresh(self, entity: T) -> T:
        """Reload ``entity`` from the remote end. Raises a 404 error when it no longer exists."""

        identifier = self.information.identifier_of(entity)
        if identifier is None or identifier == "":
            raise ValueError("Entity must have an identifier to be refreshed")
        found = self.find_by_id(identifier)
        if found is None:
            raise TransportError(
                "Entity not found for refresh",
                404,
                self.resource_name,
                TransportOperation.FIND_BY_ID,
            )
        return found
