from __future__ import annotations

import json
from concurrent import futures
from dataclasses import dataclass
from typing import Dict, Optional
from unittest.mock import MagicMock

import grpc
import pytest

from remote_transport.adapters.grpc import (
    GrpcTransportClient,
    GrpcTransportConfig,
    RemoteDataServiceServicer,
    add_remote_data_service_to_server,
)
from remote_transport.protocol import messages
from remote_transport.transport import ErrorKind, TransportError, TransportOperation, TransportRequest, UnsupportedOperationError


@dataclass
class Book:
    id: Optional[str]
    title: str


class InMemoryBooks(RemoteDataServiceServicer):
    def __init__(self) -> None:
        self.rows: Dict[str, dict] = {"1": {"id": "1", "title": "Dune"}}
        self.last_metadata: Dict[str, str] = {}

    def GetById(self, request, context):
        self.last_metadata = dict(context.invocation_metadata())
        if request.id == "forbidden":
            context.abort(grpc.StatusCode.PERMISSION_DENIED, "not yours")
        row = self.rows.get(request.id)
        if row is None:
            return messages.EntityResponse(success=False, status_code=404, error_message=f"{request.id} not found")
        return messages.EntityResponse(success=True, status_code=200, entity_json=json.dumps(row), metadata={"shard": "a"})

    def GetAll(self, request, context):
        rows = [row for row in self.rows.values() if request.parameters.get("title", row["title"]) == row["title"]]
        return messages.EntityListResponse(success=True, status_code=200, entities_json=[json.dumps(row) for row in rows])

    def Save(self, request, context):
        row = json.loads(request.entity_json)
        row["id"] = request.id or str(len(self.rows) + 1)
        self.rows[row["id"]] = row
        return messages.EntityResponse(success=True, status_code=201 if not request.id else 200, entity_json=json.dumps(row))

    def Delete(self, request, context):
        if self.rows.pop(request.id, None) is None:
            return messages.DeleteResponse(success=False, status_code=404, error_message="missing")
        return messages.DeleteResponse(success=True, status_code=204)

    def Exists(self, request, context):
        return messages.ExistsResponse(success=True, status_code=200, exists=request.id in self.rows)

    def Count(self, request, context):
        return messages.CountResponse(success=True, status_code=200, count=2**40 + len(self.rows))


@pytest.fixture()
def books_server():
    servicer = InMemoryBooks()
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=2))
    add_remote_data_service_to_server(servicer, server)
    port = server.add_insecure_port("localhost:0")
    server.start()
    try:
        yield servicer, port
    finally:
        server.stop(None)


@pytest.fixture()
def grpc_client(books_server):
    _, port = books_server
    client = GrpcTransportClient(GrpcTransportConfig(host="localhost", port=port, deadline_ms=5000, metadata={"X-Tenant": "acme"}))
    try:
        yield client
    finally:
        client.shutdown()


def request(operation: TransportOperation, **kwargs) -> TransportRequest:
    return TransportRequest(operation=operation, resource_name="books", **kwargs)


def test_find_by_id_round_trip(grpc_client, books_server):
    servicer, _ = books_server

    response = grpc_client.execute(request(TransportOperation.FIND_BY_ID, identifier="1"), Book)

    assert response.success is True
    assert response.body == Book(id="1", title="Dune")
    assert response.metadata == {"shard": "a"}
    assert servicer.last_metadata["x-tenant"] == "acme"


def test_remote_failure_status_passed_through(grpc_client):
    response = grpc_client.execute(request(TransportOperation.FIND_BY_ID, identifier="404"), Book)

    assert response.success is False
    assert response.status_code == 404
    assert response.error_message == "404 not found"
    assert response.body is None


def test_error_status_becomes_failure_response(grpc_client):
    response = grpc_client.execute(request(TransportOperation.FIND_BY_ID, identifier="forbidden"))

    assert response.success is False
    assert response.status_code == grpc.StatusCode.PERMISSION_DENIED.value[0]
    assert response.error_message == "not yours"


def test_save_insert_and_update(grpc_client, books_server):
    servicer, _ = books_server

    created = grpc_client.execute(request(TransportOperation.SAVE, payload=Book(id=None, title="Emma")), Book)
    updated = grpc_client.execute(request(TransportOperation.SAVE, identifier="1", payload=Book(id="1", title="Dune II")), Book)

    assert created.status_code == 201
    assert created.body == Book(id="2", title="Emma")
    assert updated.status_code == 200
    assert servicer.rows["1"]["title"] == "Dune II"


def test_list_exists_delete_and_count(grpc_client):
    listed = grpc_client.execute_for_list(request(TransportOperation.QUERY, parameters={"title": "Dune"}), Book)
    exists = grpc_client.execute(request(TransportOperation.EXISTS, identifier="1"))
    deleted = grpc_client.execute(request(TransportOperation.DELETE, identifier="1"))
    missing = grpc_client.execute(request(TransportOperation.DELETE, identifier="1"))
    count = grpc_client.execute(request(TransportOperation.COUNT))

    assert listed.body == [Book(id="1", title="Dune")]
    assert exists.body is True
    assert deleted.success and deleted.status_code == 204 and deleted.body is None
    assert missing.success is False and missing.status_code == 404
    assert count.body == 2**40


def test_unreachable_server_is_connection_failure():
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=1))
    port = server.add_insecure_port("localhost:0")
    server.stop(None)
    client = GrpcTransportClient(GrpcTransportConfig(host="localhost", port=port, deadline_ms=500))

    with client, pytest.raises(TransportError) as excinfo:
        client.execute(request(TransportOperation.COUNT))

    assert excinfo.value.is_connection_failure
    assert excinfo.value.status_code == 0


class FakeRpcError(grpc.RpcError):
    def __init__(self, code: grpc.StatusCode, details: str) -> None:
        super().__init__(details)
        self._code = code
        self._details = details

    def code(self) -> grpc.StatusCode:
        return self._code

    def details(self) -> str:
        return self._details


@pytest.fixture()
def mock_stub(monkeypatch):
    stub = MagicMock()
    monkeypatch.setattr("remote_transport.adapters.grpc.client.RemoteDataServiceStub", lambda channel: stub)
    return stub


def test_count_invokes_stub_once_with_deadline_and_metadata(mock_stub):
    mock_stub.Count.return_value = messages.CountResponse(success=True, status_code=200, count=9_007_199_254_740_993)
    client = GrpcTransportClient(GrpcTransportConfig(host="svc", metadata={"X-Tenant": "acme"}), channel=MagicMock())

    response = client.execute(request(TransportOperation.COUNT))

    assert response.body == 9_007_199_254_740_993
    mock_stub.Count.assert_called_once()
    message = mock_stub.Count.call_args.args[0]
    assert message.resource_name == "books"
    assert mock_stub.Count.call_args.kwargs == {"timeout": 30.0, "metadata": (("x-tenant", "acme"),)}


def test_deadline_can_be_disabled(mock_stub):
    mock_stub.Exists.return_value = messages.ExistsResponse(success=True, status_code=200, exists=False)
    client = GrpcTransportClient(GrpcTransportConfig(host="svc", deadline_ms=0), channel=MagicMock())

    response = client.execute(request(TransportOperation.EXISTS, identifier=3))

    assert response.body is False
    assert "timeout" not in mock_stub.Exists.call_args.kwargs
    assert mock_stub.Exists.call_args.args[0].id == "3"


@pytest.mark.parametrize("code", [grpc.StatusCode.UNAVAILABLE, grpc.StatusCode.DEADLINE_EXCEEDED])
def test_transient_statuses_raise_connection_failure(mock_stub, code):
    mock_stub.GetById.side_effect = FakeRpcError(code, "down")
    client = GrpcTransportClient(GrpcTransportConfig(host="svc"), channel=MagicMock())

    with pytest.raises(TransportError) as excinfo:
        client.execute(request(TransportOperation.FIND_BY_ID, identifier=1))

    assert excinfo.value.kind is ErrorKind.CONNECTION


def test_other_status_becomes_failure(mock_stub):
    mock_stub.Delete.side_effect = FakeRpcError(grpc.StatusCode.NOT_FOUND, "gone")
    client = GrpcTransportClient(GrpcTransportConfig(host="svc"), channel=MagicMock())

    response = client.execute(request(TransportOperation.DELETE, identifier=1))

    assert response.success is False
    assert response.status_code == 5
    assert response.error_message == "gone"


def test_unexpected_exception_is_connection_failure(mock_stub):
    mock_stub.GetAll.side_effect = OSError("socket closed")
    client = GrpcTransportClient(GrpcTransportConfig(host="svc"), channel=MagicMock())

    with pytest.raises(TransportError) as excinfo:
        client.execute_for_list(request(TransportOperation.FIND_ALL))

    assert excinfo.value.is_connection_failure
    assert isinstance(excinfo.value.__cause__, OSError)


def test_malformed_entity_json_is_serialization_failure(mock_stub):
    mock_stub.GetById.return_value = messages.EntityResponse(success=True, status_code=200, entity_json="{oops")
    client = GrpcTransportClient(GrpcTransportConfig(host="svc"), channel=MagicMock())

    with pytest.raises(TransportError) as excinfo:
        client.execute(request(TransportOperation.FIND_BY_ID, identifier=1))

    assert excinfo.value.kind is ErrorKind.SERIALIZATION


def test_execute_for_list_rejects_non_list_operations(mock_stub):
    client = GrpcTransportClient(GrpcTransportConfig(host="svc"), channel=MagicMock())

    with pytest.raises(UnsupportedOperationError):
        client.execute_for_list(request(TransportOperation.COUNT))
    mock_stub.Count.assert_not_called()


def test_shutdown_closes_owned_channel_once(monkeypatch):
    channel = MagicMock()
    monkeypatch.setattr(grpc, "insecure_channel", lambda target, options: channel)
    client = GrpcTransportClient(GrpcTransportConfig(host="svc", port=7000))

    client.shutdown()
    client.shutdown()

    channel.close.assert_called_once()


def test_injected_channel_is_not_closed():
    channel = MagicMock()
    client = GrpcTransportClient(GrpcTransportConfig(host="svc"), channel=channel)

    client.shutdown()

    channel.close.assert_not_called()


def test_config_from_mapping_and_validation():
    config = GrpcTransportConfig.from_mapping({"host": "svc", "deadline-ms": 100, "metadata": {"Authorization": "t"}})

    assert config.target == "svc:9090"
    assert config.deadline_ms == 100
    assert config.max_inbound_message_size == 4 * 1024 * 1024
    assert dict(config.metadata) == {"authorization": "t"}
    with pytest.raises(ValueError):
        GrpcTransportConfig(host="").validate()


def test_config_mapping_reads_string_flags():
    assert GrpcTransportConfig.from_mapping({"host": "svc", "use_tls": "false"}).use_tls is False
    assert GrpcTransportConfig.from_mapping({"host": "svc", "use-tls": "TRUE"}).use_tls is True
    with pytest.raises(ValueError):
        GrpcTransportConfig.from_mapping({"host": "svc", "use_tls": "sometimes"})
