from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from unittest.mock import MagicMock

import pytest

from remote_transport.core.registry import EntityInformation
from remote_transport.repository import RemoteRepository
from remote_transport.transport import ErrorKind, TransportError, TransportOperation, TransportResponse


@dataclass
class Order:
    id: Optional[int]
    item: str


@pytest.fixture()
def client():
    return MagicMock()


@pytest.fixture()
def repository(client):
    return RemoteRepository(EntityInformation(Order), client)


def sent_request(client, method: str = "execute", index: int = -1):
    return getattr(client, method).call_args_list[index].args[0]


def test_find_by_id_returns_body(repository, client):
    client.execute.return_value = TransportResponse.ok(Order(1, "book"))

    assert repository.find_by_id(1) == Order(1, "book")

    request = sent_request(client)
    assert request.operation is TransportOperation.FIND_BY_ID
    assert request.resource_name == "orders"
    assert request.identifier == 1
    assert client.execute.call_args.args[1] is Order


def test_find_by_id_missing_is_none(repository, client):
    client.execute.return_value = TransportResponse.failure(404, "Not Found")

    assert repository.find_by_id(99) is None


def test_find_all_by_id_skips_missing(repository, client):
    client.execute.side_effect = [
        TransportResponse.ok(Order(1, "a")),
        TransportResponse.failure(404, "Not Found"),
        TransportResponse.ok(Order(3, "c")),
    ]

    assert repository.find_all_by_id([1, 2, 3]) == [Order(1, "a"), Order(3, "c")]


def test_save_sends_identifier_and_payload(repository, client):
    stored = Order(5, "lamp")
    client.execute.return_value = TransportResponse.ok(stored)

    assert repository.save(Order(5, "lamp")) is stored

    request = sent_request(client)
    assert request.operation is TransportOperation.SAVE
    assert request.identifier == 5
    assert request.payload == Order(5, "lamp")


def test_save_new_entity_has_no_identifier(repository, client):
    client.execute.return_value = TransportResponse.ok(Order(6, "desk"))

    assert repository.save(Order(None, "desk")).id == 6
    assert sent_request(client).has_identifier is False


def test_save_failure_raises(repository, client):
    client.execute.return_value = TransportResponse.failure(422, "invalid item")

    with pytest.raises(TransportError) as excinfo:
        repository.save(Order(None, ""))

    assert excinfo.value.status_code == 422
    assert excinfo.value.kind is ErrorKind.PROTOCOL
    assert str(excinfo.value) == "invalid item"


def test_save_empty_body_raises(repository, client):
    client.execute.return_value = TransportResponse.empty()

    with pytest.raises(TransportError, match="Expected non-null response for save"):
        repository.save(Order(1, "x"))


def test_save_all(repository, client):
    client.execute.side_effect = lambda request, target: TransportResponse.ok(request.payload)

    assert repository.save_all([Order(1, "a"), Order(2, "b")]) == [Order(1, "a"), Order(2, "b")]


def test_delete_tolerates_missing(repository, client):
    client.execute.return_value = TransportResponse.failure(404, "gone")

    repository.delete_by_id(3)

    assert sent_request(client).operation is TransportOperation.DELETE


def test_delete_failure_raises(repository, client):
    client.execute.return_value = TransportResponse.failure(500, "boom")

    with pytest.raises(TransportError) as excinfo:
        repository.delete_by_id(3)
    assert excinfo.value.is_server_error


def test_delete_entity_without_identifier_is_ignored(repository, client):
    repository.delete(Order(None, "draft"))

    client.execute.assert_not_called()


def test_delete_all_without_arguments_deletes_every_entity(repository, client):
    client.execute_for_list.return_value = TransportResponse.ok([Order(1, "a"), Order(2, "b")])
    client.execute.return_value = TransportResponse.empty()

    repository.delete_all()

    assert [request.identifier for request in (call.args[0] for call in client.execute.call_args_list)] == [1, 2]


def test_delete_all_by_id(repository, client):
    client.execute.return_value = TransportResponse.empty()

    repository.delete_all_by_id(["x", "y"])

    assert client.execute.call_count == 2


def test_exists_and_count(repository, client):
    client.execute.side_effect = [TransportResponse.ok(True), TransportResponse.ok(42)]

    assert repository.exists_by_id(1) is True
    assert repository.count() == 42

    exists_request = sent_request(client, index=0)
    count_request = sent_request(client, index=1)
    assert exists_request.operation is TransportOperation.EXISTS
    assert count_request.operation is TransportOperation.COUNT


def test_exists_without_body_is_false(repository, client):
    client.execute.return_value = TransportResponse.failure(500, "boom")

    assert repository.exists_by_id(1) is False


def test_query_passes_parameters(repository, client):
    client.execute_for_list.return_value = TransportResponse.ok([Order(1, "a")])

    assert repository.query({"item": "a"}) == [Order(1, "a")]

    request = sent_request(client, "execute_for_list")
    assert request.operation is TransportOperation.QUERY
    assert dict(request.parameters) == {"item": "a"}


def test_find_all_without_body_is_empty(repository, client):
    client.execute_for_list.return_value = TransportResponse.empty()

    assert repository.find_all() == []


def test_refresh(repository, client):
    client.execute.return_value = TransportResponse.ok(Order(1, "fresh"))
    assert repository.refresh(Order(1, "stale")).item == "fresh"

    client.execute.return_value = TransportResponse.failure(404, "Not Found")
    with pytest.raises(TransportError) as excinfo:
        repository.refresh(Order(1, "stale"))
    assert excinfo.value.is_not_found

    with pytest.raises(ValueError):
        repository.refresh(Order(None, "new"))
