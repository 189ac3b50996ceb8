import logging
import pathlib
import ssl as _ssl
import tempfile
import typing as t

import grpclib.const
import grpclib.server
from grpclib.const import Cardinality
from grpclib.const import Status
from grpclib.exceptions import GRPCError

from .schema import PackageDefinition
from .schema import load_package
from .tls import ensure_test_certificates
from .tls import server_ssl_context


log = logging.getLogger(__name__)

ECHO_INITIAL_KEY = "x-grpc-test-echo-initial"
ECHO_TRAILING_KEY = "x-grpc-test-echo-trailing-bin"

TEST_SERVICE = "grpc.testing.TestService"


class TestService:
    """Interop ``grpc.testing.TestService`` echoing test metadata.

    Values of ``x-grpc-test-echo-initial`` are sent back as initial metadata
    and values of ``x-grpc-test-echo-trailing-bin`` as trailing metadata.
    """

    __test__ = False

    def __init__(self, package: PackageDefinition) -> None:
        self._service = package.service(TEST_SERVICE)
        self._empty = package.message("grpc.testing.Empty")
        self._response = package.message("grpc.testing.SimpleResponse")
        self._payload = package.message("grpc.testing.Payload")

    @staticmethod
    def _echo(metadata: t.Any, key: str) -> t.List[t.Tuple[str, t.Any]]:
        if metadata is None:
            return []
        return [(key, value) for value in metadata.getall(key, [])]

    async def EmptyCall(self, stream: grpclib.server.Stream[t.Any, t.Any]) -> None:
        await stream.recv_message()
        await stream.send_initial_metadata(
            metadata=self._echo(stream.metadata, ECHO_INITIAL_KEY),
        )
        await stream.send_message(self._empty())
        await stream.send_trailing_metadata(
            metadata=self._echo(stream.metadata, ECHO_TRAILING_KEY),
        )

    async def UnaryCall(self, stream: grpclib.server.Stream[t.Any, t.Any]) -> None:
        request = await stream.recv_message()
        if request is None:
            raise GRPCError(Status.INVALID_ARGUMENT, "Request message expected")
        await stream.send_initial_metadata(
            metadata=self._echo(stream.metadata, ECHO_INITIAL_KEY),
        )
        trailing = self._echo(stream.metadata, ECHO_TRAILING_KEY)

        if request.response_status.code != 0:
            await stream.send_trailing_metadata(
                status=Status(request.response_status.code),
                status_message=request.response_status.message,
                metadata=trailing,
            )
            return

        response = self._response(
            payload=self._payload(
                type=request.response_type,
                body=b"\x00" * request.response_size,
            ),
        )
        await stream.send_message(response)
        await stream.send_trailing_metadata(metadata=trailing)

    def __mapping__(self) -> t.Dict[str, grpclib.const.Handler]:
        handlers = {
            "EmptyCall": self.EmptyCall,
            "UnaryCall": self.UnaryCall,
        }
        return {
            method.path: grpclib.const.Handler(
                handlers[name],
                Cardinality.UNARY_UNARY,
                method.request_type,
                method.reply_type,
            )
            for name, method in self._service.methods.items()
        }


class InteropServer:
    def __init__(
        self,
        *,
        host: t.Optional[str] = "127.0.0.1",
        port: int = 0,
        ssl: t.Optional[_ssl.SSLContext] = None,
        package: t.Optional[PackageDefinition] = None,
    ) -> None:
        if package is None:
            package = load_package("grpc/testing/test.proto")
        self._host = host
        self._requested_port = port
        self._ssl = ssl
        self._server = grpclib.server.Server([TestService(package)])
        self._port: t.Optional[int] = None

    @property
    def secure(self) -> bool:
        return self._ssl is not None

    @property
    def port(self) -> int:
        if self._port is None:
            raise RuntimeError("Server is not started")
        return self._port

    async def start(self) -> None:
        if self._port is not None:
            return
        await self._server.start(self._host, self._requested_port, ssl=self._ssl)
        sockets = self._server._server.sockets  # type: ignore[union-attr]
        self._port = int(sockets[0].getsockname()[1])
        log.info(
            "Interop server listening on %s:%d (tls=%s)",
            self._host, self.port, self.secure,
        )

    def force_shutdown(self) -> None:
        """Stops accepting connections and cancels running requests."""
        if self._port is None:
            return
        self._server.close()
        log.debug("Interop server on port %d shut down", self.port)

    def close(self) -> None:
        self.force_shutdown()

    async def wait_closed(self) -> None:
        await self._server.wait_closed()

    async def __aenter__(self) -> "InteropServer":
        await self.start()
        return self

    async def __aexit__(self, *args: t.Any) -> None:
        self.force_shutdown()
        await self.wait_closed()


async def get_server(
    port: int = 0,
    secure: bool = False,
    *,
    host: t.Optional[str] = "127.0.0.1",
    data_dir: t.Union[None, str, pathlib.Path] = None,
) -> InteropServer:
    """Starts an interop server; with ``secure`` it serves TLS using the
    certificates in ``data_dir``, generating them when missing."""
    ssl = None
    if secure:
        if data_dir is None:
            data_dir = tempfile.mkdtemp(prefix="grpc-harness-")
        ssl = server_ssl_context(ensure_test_certificates(data_dir))
    server = InteropServer(host=host, port=port, ssl=ssl)
    await server.start()
    return server
