from __future__ import annotations

import struct

import pytest

from remote_transport.protocol import BINDINGS, CodecError, ProtobufMessageCodec, binding_for, codec_for
from remote_transport.protocol import messages
from remote_transport.protocol.messages import SERVICE_METHODS
from remote_transport.transport import TransportOperation, TransportRequest


def test_codec_frames_with_big_endian_length():
    codec = codec_for(messages.GetByIdRequest)
    message = messages.GetByIdRequest(resource_name="users", id="123", parameters={"expand": "roles"})

    frame = codec.encode_to_wire(message)

    (length,) = struct.unpack(">I", frame[:4])
    assert length == len(frame) - 4
    assert frame[4:] == message.SerializeToString()
    assert codec.decode_from_wire(frame) == message


def test_codec_decodes_from_offset():
    codec = ProtobufMessageCodec(messages.CountResponse)
    frame = codec.encode_to_wire(messages.CountResponse(success=True, status_code=200, count=2**40))

    decoded = codec.decode_from_wire(b"\x00\x00junk" + frame, position=6)

    assert decoded.count == 2**40


def test_codec_rejects_truncated_frames():
    codec = codec_for(messages.EntityResponse)
    frame = codec.encode_to_wire(messages.EntityResponse(success=True, status_code=200, entity_json="{}"))

    with pytest.raises(CodecError):
        codec.decode_from_wire(frame[:3])
    with pytest.raises(CodecError):
        codec.decode_from_wire(frame[:-1])


def test_codec_rejects_foreign_messages():
    with pytest.raises(CodecError):
        codec_for(messages.SaveRequest).encode_to_wire(messages.DeleteRequest())


def test_descriptor_matches_service_contract():
    service = messages.FILE_DESCRIPTOR.services_by_name["RemoteDataService"]

    assert [method.name for method in service.methods] == list(SERVICE_METHODS)
    assert service.methods_by_name["Count"].output_type.fields_by_name["count"].type == 3  # TYPE_INT64


def test_every_operation_has_a_binding():
    assert set(BINDINGS) == set(TransportOperation)
    assert BINDINGS[TransportOperation.QUERY].method == "GetAll"


def test_save_request_without_identifier_sends_empty_id():
    request = TransportRequest(
        operation=TransportOperation.SAVE,
        resource_name="users",
        payload={"name": "Ada"},
        parameters={"dry_run": True},
    )

    message = binding_for(request).build_request(request)

    assert message.id == ""
    assert message.entity_json == '{"name":"Ada"}'
    assert dict(message.parameters) == {"dry_run": "true"}


def test_entity_response_skips_body_on_failure():
    binding = BINDINGS[TransportOperation.FIND_BY_ID]
    reply = messages.EntityResponse(success=False, status_code=404, entity_json='{"id":1}', error_message="missing")

    response = binding.to_response(reply, None)

    assert response.success is False
    assert response.status_code == 404
    assert response.body is None
    assert response.error_message == "missing"


def test_entity_response_passes_status_and_metadata_through():
    binding = BINDINGS[TransportOperation.SAVE]
    reply = messages.EntityResponse(success=True, status_code=201, entity_json='{"id":9}', metadata={"etag": "v1"})

    response = binding.to_response(reply, None)

    assert response.status_code == 201
    assert response.body == {"id": 9}
    assert response.error_message is None
    assert response.metadata == {"etag": "v1"}


def test_count_and_exists_bodies():
    count = BINDINGS[TransportOperation.COUNT].to_response(messages.CountResponse(success=True, status_code=200, count=5_000_000_000), None)
    exists = BINDINGS[TransportOperation.EXISTS].to_response(messages.ExistsResponse(success=True, status_code=200, exists=True), None)

    assert count.body == 5_000_000_000
    assert exists.body is True


def test_binding_for_list_method_name():
    request = TransportRequest(operation=TransportOperation.FIND_ALL, resource_name="users")

    assert binding_for(request, method="execute_for_list").response_class is messages.EntityListResponse
