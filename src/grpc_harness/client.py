import logging
import re
import typing as t
from dataclasses import dataclass

import grpclib.client
from grpclib.config import Configuration

from .call import CompletionCallback
from .call import PendingCall
from .credentials import CallCredentials
from .credentials import ChannelCredentials
from .metadata import Metadata
from .schema import MethodDefinition
from .schema import ServiceDefinition


log = logging.getLogger(__name__)

SSL_TARGET_NAME_OVERRIDE = "grpc.ssl_target_name_override"
DEFAULT_AUTHORITY = "grpc.default_authority"

_ADDRESS_RE = re.compile(r"^(?:\[(?P<ipv6>[^\]]+)\]|(?P<host>[^:]+)):(?P<port>\d+)$")


@dataclass(frozen=True)
class ClientOptions:
    #: Name the server certificate is matched against instead of the host
    ssl_target_name_override: t.Optional[str] = None
    #: Value of the ``:authority`` header instead of ``host:port``
    default_authority: t.Optional[str] = None

    @classmethod
    def from_channel_options(
        cls,
        options: t.Union[None, "ClientOptions", t.Mapping[str, t.Any], t.Iterable[t.Tuple[str, t.Any]]],
    ) -> "ClientOptions":
        if options is None:
            return cls()
        if isinstance(options, ClientOptions):
            return options
        if isinstance(options, t.Mapping):
            options = list(options.items())
        values: t.Dict[str, t.Any] = {}
        for key, value in options:
            if key == SSL_TARGET_NAME_OVERRIDE:
                values["ssl_target_name_override"] = value
            elif key == DEFAULT_AUTHORITY:
                values["default_authority"] = value
            else:
                log.debug("Ignoring unsupported channel option %r", key)
        return cls(**values)


def parse_address(address: str) -> t.Tuple[str, int]:
    match = _ADDRESS_RE.fullmatch(address)
    if match is None:
        raise ValueError("Invalid address, host:port expected: {!r}".format(address))
    host = match.group("ipv6") or match.group("host")
    return host, int(match.group("port"))


class Channel(grpclib.client.Channel):
    """grpclib channel honouring the default authority option."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        credentials: ChannelCredentials,
        options: ClientOptions,
    ) -> None:
        super().__init__(
            host,
            port,
            ssl=credentials.ssl,
            config=Configuration(
                ssl_target_name_override=options.ssl_target_name_override,
            ),
        )
        if options.default_authority is not None:
            self._authority = options.default_authority


class ServiceClient:
    """Client for one service, issuing calls as :class:`PendingCall` handles.

    Methods are reachable by their proto name and by their snake_case name,
    i.e. ``client.UnaryCall(...)`` and ``client.unary_call(...)``.
    """

    def __init__(
        self,
        address: str,
        credentials: ChannelCredentials,
        options: t.Any = None,
        *,
        service: ServiceDefinition,
    ) -> None:
        host, port = parse_address(address)
        self._service = service
        self._credentials = credentials
        self._options = ClientOptions.from_channel_options(options)
        self._channel = Channel(
            host, port, credentials=credentials, options=self._options
        )
        authority = self._options.default_authority or self._channel._authority
        self._service_url = "{}://{}/{}".format(
            self._channel._scheme, authority, service.name
        )
        self._aliases = {_snake_case(name): name for name in service.methods}

    @property
    def service(self) -> ServiceDefinition:
        return self._service

    @property
    def channel(self) -> Channel:
        return self._channel

    def _method(self, name: str) -> MethodDefinition:
        name = self._aliases.get(name, name)
        try:
            return self._service.methods[name]
        except KeyError:
            raise AttributeError(
                "{} has no method {!r}".format(self._service.name, name)
            ) from None

    def invoke(
        self,
        method: str,
        request: t.Any,
        metadata: t.Optional[Metadata] = None,
        *,
        credentials: t.Optional[CallCredentials] = None,
        timeout: t.Optional[float] = None,
        callback: t.Optional[CompletionCallback] = None,
        convert_reply: bool = True,
    ) -> PendingCall:
        definition = self._method(method)
        if definition.cardinality.client_streaming or definition.cardinality.server_streaming:
            raise TypeError("{} is not a unary method".format(definition.path))
        message = definition.build_request(request)

        call_credentials = self._credentials.call_credentials
        if credentials is not None:
            if call_credentials is not None:
                call_credentials = call_credentials.compose(credentials)
            else:
                call_credentials = credentials

        return PendingCall(
            self._channel,
            definition,
            message,
            service_url=self._service_url,
            metadata=metadata,
            credentials=call_credentials,
            timeout=timeout,
            callback=callback,
            convert_reply=convert_reply,
        )

    def __getattr__(self, name: str) -> t.Callable[..., PendingCall]:
        if name.startswith("_"):
            raise AttributeError(name)
        definition = self._method(name)

        def method(request: t.Any, metadata: t.Optional[Metadata] = None, **kwargs: t.Any) -> PendingCall:
            return self.invoke(definition.name, request, metadata, **kwargs)

        method.__name__ = definition.name
        return method

    def close(self) -> None:
        """Closes connection to the server."""
        self._channel.close()

    async def __aenter__(self) -> "ServiceClient":
        return self

    async def __aexit__(self, *args: t.Any) -> None:
        self.close()


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()
