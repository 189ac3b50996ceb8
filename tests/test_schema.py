"""Tests for schema loading."""
import pathlib

import pytest
from google.protobuf import descriptor_pb2
from google.protobuf import json_format
from grpclib.const import Cardinality

from grpc_harness._test_proto import build_test_proto
from grpc_harness.schema import PackageDefinition
from grpc_harness.schema import SchemaError
from grpc_harness.schema import load_package


def test_builtin_test_service(package: PackageDefinition) -> None:
    service = package.service("grpc.testing.TestService")
    assert set(service.methods) == {"EmptyCall", "UnaryCall"}
    unary = service.methods["UnaryCall"]
    assert unary.path == "/grpc.testing.TestService/UnaryCall"
    assert unary.cardinality is Cardinality.UNARY_UNARY
    assert unary.request_type is package.message("grpc.testing.SimpleRequest")
    assert unary.reply_type is package.message("grpc.testing.SimpleResponse")


def test_unknown_names(package: PackageDefinition) -> None:
    with pytest.raises(SchemaError):
        package.service("grpc.testing.Missing")
    with pytest.raises(SchemaError):
        package.message("grpc.testing.Missing")


def test_build_request(package: PackageDefinition) -> None:
    method = package.service("grpc.testing.TestService").methods["UnaryCall"]
    request = method.build_request({"response_size": 3, "fill_username": True})
    assert request.response_size == 3
    assert request.fill_username

    message = method.request_type(response_size=5)
    assert method.build_request(message) is message
    assert method.build_request({}) == method.request_type()


def test_build_request_rejects_invalid_values(package: PackageDefinition) -> None:
    method = package.service("grpc.testing.TestService").methods["UnaryCall"]
    with pytest.raises(json_format.ParseError):
        method.build_request({"no_such_field": 1})
    with pytest.raises(TypeError):
        method.build_request("request")
    with pytest.raises(TypeError):
        method.build_request(package.message("grpc.testing.Empty")())


def test_convert_reply_with_options(package: PackageDefinition) -> None:
    method = package.service("grpc.testing.TestService").methods["UnaryCall"]
    reply = method.reply_type()
    reply.payload.body = b"\x00\x00"
    reply.oauth_scope = "scope"
    assert method.convert_reply(reply) == {
        "payload": {"type": "COMPRESSABLE", "body": "AAA="},
        "username": "",
        "oauth_scope": "scope",
    }


def test_convert_reply_without_options() -> None:
    package = load_package("grpc/testing/test.proto")
    method = package.service("grpc.testing.TestService").methods["UnaryCall"]
    reply = method.reply_type()
    reply.payload.body = b"\x00\x00"
    reply.oauth_scope = "scope"
    assert method.convert_reply(reply) == {
        "payload": {"body": "AAA="},
        "oauthScope": "scope",
    }


def test_enum_numbers(package: PackageDefinition) -> None:
    numeric = load_package("grpc/testing/test.proto", defaults=True)
    method = numeric.service("grpc.testing.TestService").methods["UnaryCall"]
    reply = method.reply_type()
    reply.payload.SetInParent()
    assert method.convert_reply(reply)["payload"]["type"] == 0


def test_load_descriptor_set_from_include_dirs(tmp_path: pathlib.Path) -> None:
    descriptor_set = descriptor_pb2.FileDescriptorSet(file=[build_test_proto()])
    (tmp_path / "protos").mkdir()
    (tmp_path / "protos" / "test.desc").write_bytes(descriptor_set.SerializeToString())

    package = load_package("test.desc", include_dirs=[tmp_path / "protos"])
    assert "grpc.testing.TestService" in package.services
    assert "grpc.testing.Payload" in package.messages


def test_missing_schema(tmp_path: pathlib.Path) -> None:
    with pytest.raises(SchemaError, match="not found"):
        load_package("missing.desc", include_dirs=[tmp_path])


def test_invalid_descriptor_set(tmp_path: pathlib.Path) -> None:
    (tmp_path / "broken.desc").write_bytes(b"not a descriptor set")
    with pytest.raises(SchemaError):
        load_package("broken.desc", include_dirs=[tmp_path])
