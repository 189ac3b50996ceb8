import logging
import pathlib
import typing as t
from dataclasses import dataclass
from dataclasses import field

from google.protobuf import descriptor_pb2
from google.protobuf import descriptor_pool
from google.protobuf import json_format
from google.protobuf import message as _message
from google.protobuf import message_factory
from grpclib.const import Cardinality

from ._test_proto import build_test_proto


if t.TYPE_CHECKING:
    from .client import ServiceClient
    from .credentials import ChannelCredentials


log = logging.getLogger(__name__)

_BUILTINS: t.Dict[str, t.Callable[[], descriptor_pb2.FileDescriptorProto]] = {
    "grpc/testing/test.proto": build_test_proto,
}


class SchemaError(Exception):
    pass


@dataclass(frozen=True)
class LoadOptions:
    #: Keep proto field names in converted replies instead of lowerCamelCase
    keep_case: bool = False
    #: Include fields set to their default value in converted replies
    defaults: bool = False
    #: Render enum values by name instead of by number
    enums_as_strings: bool = False
    include_dirs: t.Tuple[pathlib.Path, ...] = ()


@dataclass(frozen=True)
class MethodDefinition:
    name: str
    path: str
    cardinality: Cardinality
    request_type: t.Type[_message.Message]
    reply_type: t.Type[_message.Message]
    options: LoadOptions = field(default_factory=LoadOptions)

    def build_request(self, value: t.Any) -> _message.Message:
        """Accepts a message of the request type or a mapping of its fields."""
        if isinstance(value, self.request_type):
            return value
        if isinstance(value, t.Mapping):
            return json_format.ParseDict(value, self.request_type())
        raise TypeError(
            "Request for {} must be {} or a mapping, not {!r}".format(
                self.path, self.request_type.__name__, type(value)
            )
        )

    def convert_reply(self, reply: _message.Message) -> t.Dict[str, t.Any]:
        return json_format.MessageToDict(
            reply,
            always_print_fields_with_no_presence=self.options.defaults,
            preserving_proto_field_name=self.options.keep_case,
            use_integers_for_enums=not self.options.enums_as_strings,
        )


@dataclass(frozen=True)
class ServiceDefinition:
    name: str
    methods: t.Mapping[str, MethodDefinition]

    def client(
        self,
        address: str,
        credentials: "ChannelCredentials",
        options: t.Any = None,
    ) -> "ServiceClient":
        from .client import ServiceClient

        return ServiceClient(address, credentials, options, service=self)


class PackageDefinition:
    """Services and message classes loaded from one schema file."""

    def __init__(
        self,
        pool: descriptor_pool.DescriptorPool,
        files: t.Sequence[descriptor_pb2.FileDescriptorProto],
        options: LoadOptions,
    ) -> None:
        self._pool = pool
        self._options = options
        self.services: t.Dict[str, ServiceDefinition] = {}
        self.messages: t.Dict[str, t.Type[_message.Message]] = {}
        for file_proto in files:
            prefix = file_proto.package + "." if file_proto.package else ""
            self._collect_messages(prefix, file_proto.message_type)
            for service_proto in file_proto.service:
                service = self._service(prefix + service_proto.name, service_proto)
                self.services[service.name] = service

    def _collect_messages(
        self, prefix: str, protos: t.Iterable[descriptor_pb2.DescriptorProto]
    ) -> None:
        for proto in protos:
            full_name = prefix + proto.name
            descriptor = self._pool.FindMessageTypeByName(full_name)
            self.messages[full_name] = message_factory.GetMessageClass(descriptor)
            self._collect_messages(full_name + ".", proto.nested_type)

    def _service(
        self, full_name: str, proto: descriptor_pb2.ServiceDescriptorProto
    ) -> ServiceDefinition:
        methods = {}
        for method in proto.method:
            methods[method.name] = MethodDefinition(
                name=method.name,
                path="/{}/{}".format(full_name, method.name),
                cardinality=Cardinality(
                    (method.client_streaming, method.server_streaming)
                ),
                request_type=self.messages[method.input_type.lstrip(".")],
                reply_type=self.messages[method.output_type.lstrip(".")],
                options=self._options,
            )
        return ServiceDefinition(name=full_name, methods=methods)

    def service(self, name: str) -> ServiceDefinition:
        try:
            return self.services[name]
        except KeyError:
            raise SchemaError("Unknown service: {!r}".format(name)) from None

    def message(self, name: str) -> t.Type[_message.Message]:
        try:
            return self.messages[name]
        except KeyError:
            raise SchemaError("Unknown message: {!r}".format(name)) from None


def _read_descriptor_set(
    path: str, include_dirs: t.Sequence[pathlib.Path]
) -> t.List[descriptor_pb2.FileDescriptorProto]:
    candidates = [pathlib.Path(path)]
    candidates.extend(directory / path for directory in include_dirs)
    for candidate in candidates:
        if candidate.is_file():
            log.debug("Loading descriptor set from %s", candidate)
            descriptor_set = descriptor_pb2.FileDescriptorSet()
            try:
                descriptor_set.ParseFromString(candidate.read_bytes())
            except _message.DecodeError as exc:
                raise SchemaError(
                    "{} is not a serialized FileDescriptorSet".format(candidate)
                ) from exc
            return list(descriptor_set.file)
    raise SchemaError(
        "Schema {!r} not found in {}".format(
            path, [str(directory) for directory in include_dirs]
        )
    )


def load_package(
    path: str,
    *,
    keep_case: bool = False,
    defaults: bool = False,
    enums_as_strings: bool = False,
    include_dirs: t.Iterable[t.Union[str, pathlib.Path]] = (),
) -> PackageDefinition:
    """Loads services and messages described by ``path``.

    ``path`` names either a built-in schema (``grpc/testing/test.proto``) or
    a serialized ``FileDescriptorSet`` (``protoc --include_imports
    --descriptor_set_out``), looked up as is and then in ``include_dirs``.
    """
    options = LoadOptions(
        keep_case=keep_case,
        defaults=defaults,
        enums_as_strings=enums_as_strings,
        include_dirs=tuple(pathlib.Path(d) for d in include_dirs),
    )
    if path in _BUILTINS:
        files = [_BUILTINS[path]()]
    else:
        files = _read_descriptor_set(path, options.include_dirs)

    pool = descriptor_pool.DescriptorPool()
    for file_proto in files:
        try:
            pool.AddSerializedFile(file_proto.SerializeToString())
        except TypeError as exc:
            raise SchemaError(
                "Cannot load {}: {}".format(file_proto.name, exc)
            ) from exc
    return PackageDefinition(pool, files, options)
