"""Protobuf schema for the proxy's ``SendRequest`` RPC.

The message classes are built at import time from a ``FileDescriptorProto``
equivalent to::

    syntax = "proto3";
    package proxy;

    service Proxy {
      rpc SendRequest (ProxyRequest) returns (ProxyResponse);
    }

    message ProxyRequest {
      string url = 1;
      optional int64 priority = 2;
      repeated int32 retry_on_codes = 3;
    }

    message ProxyResponseSuccess {
      bytes body = 1;
      int32 status = 2;
      map<string, string> headers = 3;
    }

    message ProxyResponseError {
      enum ErrorType {
        INVALID_URL = 0;
        PROXY_ERROR = 1;
        REMOTE_HOST_TIMED_OUT = 2;
        REMOTE_HOST_UNREACHABLE = 3;
      }
      ErrorType error_type = 1;
    }

    message ProxyResponse {
      oneof response {
        ProxyResponseSuccess success = 1;
        ProxyResponseError error = 2;
      }
    }
"""

from __future__ import annotations

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

from .models import ProxyEnvelope, ProxyErrorKind, ProxyRequest, ProxyResponse

SEND_REQUEST_METHOD = "/proxy.Proxy/SendRequest"

_Field = descriptor_pb2.FieldDescriptorProto


def _build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    proto = descriptor_pb2.FileDescriptorProto(
        name="fwdproxy/service.proto",
        package="proxy",
        syntax="proto3",
    )

    request = proto.message_type.add(name="ProxyRequest")
    request.field.add(name="url", number=1, type=_Field.TYPE_STRING, label=_Field.LABEL_OPTIONAL)
    request.oneof_decl.add(name="_priority")
    request.field.add(
        name="priority",
        number=2,
        type=_Field.TYPE_INT64,
        label=_Field.LABEL_OPTIONAL,
        oneof_index=0,
        proto3_optional=True,
    )
    request.field.add(name="retry_on_codes", number=3, type=_Field.TYPE_INT32, label=_Field.LABEL_REPEATED)

    success = proto.message_type.add(name="ProxyResponseSuccess")
    success.field.add(name="body", number=1, type=_Field.TYPE_BYTES, label=_Field.LABEL_OPTIONAL)
    success.field.add(name="status", number=2, type=_Field.TYPE_INT32, label=_Field.LABEL_OPTIONAL)
    headers_entry = success.nested_type.add(name="HeadersEntry")
    headers_entry.options.map_entry = True
    headers_entry.field.add(name="key", number=1, type=_Field.TYPE_STRING, label=_Field.LABEL_OPTIONAL)
    headers_entry.field.add(name="value", number=2, type=_Field.TYPE_STRING, label=_Field.LABEL_OPTIONAL)
    success.field.add(
        name="headers",
        number=3,
        type=_Field.TYPE_MESSAGE,
        label=_Field.LABEL_REPEATED,
        type_name=".proxy.ProxyResponseSuccess.HeadersEntry",
    )

    error = proto.message_type.add(name="ProxyResponseError")
    error_type = error.enum_type.add(name="ErrorType")
    for kind in ProxyErrorKind:
        if kind is not ProxyErrorKind.UNKNOWN:
            error_type.value.add(name=kind.name, number=kind.value)
    error.field.add(
        name="error_type",
        number=1,
        type=_Field.TYPE_ENUM,
        label=_Field.LABEL_OPTIONAL,
        type_name=".proxy.ProxyResponseError.ErrorType",
    )

    response = proto.message_type.add(name="ProxyResponse")
    response.oneof_decl.add(name="response")
    response.field.add(
        name="success",
        number=1,
        type=_Field.TYPE_MESSAGE,
        label=_Field.LABEL_OPTIONAL,
        type_name=".proxy.ProxyResponseSuccess",
        oneof_index=0,
    )
    response.field.add(
        name="error",
        number=2,
        type=_Field.TYPE_MESSAGE,
        label=_Field.LABEL_OPTIONAL,
        type_name=".proxy.ProxyResponseError",
        oneof_index=0,
    )

    service = proto.service.add(name="Proxy")
    service.method.add(
        name="SendRequest",
        input_type=".proxy.ProxyRequest",
        output_type=".proxy.ProxyResponse",
    )
    return proto


_POOL = descriptor_pool.DescriptorPool()
_POOL.AddSerializedFile(_build_file_descriptor().SerializeToString())

ProxyRequestMessage = message_factory.GetMessageClass(_POOL.FindMessageTypeByName("proxy.ProxyRequest"))
ProxyResponseMessage = message_factory.GetMessageClass(_POOL.FindMessageTypeByName("proxy.ProxyResponse"))


def encode_request(request: ProxyRequest) -> bytes:
    """Serialize a request for the wire."""

    message = ProxyRequestMessage(url=request.url, retry_on_codes=list(request.retry_on_codes))
    if request.priority is not None:
        message.priority = request.priority
    return message.SerializeToString()


def decode_response(data: bytes) -> ProxyEnvelope:
    """Parse a ``ProxyResponse`` into an envelope."""

    message = ProxyResponseMessage.FromString(data)
    branch = message.WhichOneof("response")
    if branch == "success":
        success = message.success
        return ProxyEnvelope(
            success=ProxyResponse(
                body=bytes(success.body),
                status_code=int(success.status),
                headers=dict(success.headers),
            )
        )
    if branch == "error":
        return ProxyEnvelope(error_kind=ProxyErrorKind.from_wire(int(message.error.error_type)))
    return ProxyEnvelope()


__all__ = [
    "ProxyRequestMessage",
    "ProxyResponseMessage",
    "SEND_REQUEST_METHOD",
    "decode_response",
    "encode_request",
]
