"""Descriptor of the ``grpc.testing`` messages and ``TestService``.

Built in code so the interop service is available without running protoc.
Field numbers follow ``src/proto/grpc/testing/{empty,messages,test}.proto``.
"""
from google.protobuf import descriptor_pb2


TEST_PROTO = "grpc/testing/test.proto"

_F = descriptor_pb2.FieldDescriptorProto


def _json_name(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _field(
    name: str, number: int, type_: int, type_name: str = ""
) -> descriptor_pb2.FieldDescriptorProto:
    field = _F(
        name=name,
        number=number,
        type=type_,  # type: ignore[arg-type]
        label=_F.LABEL_OPTIONAL,
        json_name=_json_name(name),
    )
    if type_name:
        field.type_name = type_name
    return field


def _message(
    name: str, *fields: descriptor_pb2.FieldDescriptorProto
) -> descriptor_pb2.DescriptorProto:
    return descriptor_pb2.DescriptorProto(name=name, field=list(fields))


def _method(name: str, input_type: str, output_type: str) -> descriptor_pb2.MethodDescriptorProto:
    return descriptor_pb2.MethodDescriptorProto(
        name=name,
        input_type=".grpc.testing." + input_type,
        output_type=".grpc.testing." + output_type,
    )


def build_test_proto() -> descriptor_pb2.FileDescriptorProto:
    payload_type = descriptor_pb2.EnumDescriptorProto(
        name="PayloadType",
        value=[descriptor_pb2.EnumValueDescriptorProto(name="COMPRESSABLE", number=0)],
    )
    messages = [
        _message("Empty"),
        _message(
            "Payload",
            _field("type", 1, _F.TYPE_ENUM, ".grpc.testing.PayloadType"),
            _field("body", 2, _F.TYPE_BYTES),
        ),
        _message(
            "EchoStatus",
            _field("code", 1, _F.TYPE_INT32),
            _field("message", 2, _F.TYPE_STRING),
        ),
        _message(
            "SimpleRequest",
            _field("response_type", 1, _F.TYPE_ENUM, ".grpc.testing.PayloadType"),
            _field("response_size", 2, _F.TYPE_INT32),
            _field("payload", 3, _F.TYPE_MESSAGE, ".grpc.testing.Payload"),
            _field("fill_username", 4, _F.TYPE_BOOL),
            _field("fill_oauth_scope", 5, _F.TYPE_BOOL),
            _field("response_status", 7, _F.TYPE_MESSAGE, ".grpc.testing.EchoStatus"),
        ),
        _message(
            "SimpleResponse",
            _field("payload", 1, _F.TYPE_MESSAGE, ".grpc.testing.Payload"),
            _field("username", 2, _F.TYPE_STRING),
            _field("oauth_scope", 3, _F.TYPE_STRING),
        ),
    ]
    service = descriptor_pb2.ServiceDescriptorProto(
        name="TestService",
        method=[
            _method("EmptyCall", "Empty", "Empty"),
            _method("UnaryCall", "SimpleRequest", "SimpleResponse"),
        ],
    )
    return descriptor_pb2.FileDescriptorProto(
        name=TEST_PROTO,
        package="grpc.testing",
        syntax="proto3",
        message_type=messages,
        enum_type=[payload_type],
        service=[service],
    )
