"""Shared fixtures: test certificates, a TLS interop server and a client."""
import socket
import typing as t

import pytest
import pytest_asyncio

from grpc_harness import InteropServer
from grpc_harness import ServiceClient
from grpc_harness import create_ssl
from grpc_harness import get_server
from grpc_harness import load_credential_file
from grpc_harness import load_package
from grpc_harness.client import DEFAULT_AUTHORITY
from grpc_harness.client import SSL_TARGET_NAME_OVERRIDE
from grpc_harness.schema import PackageDefinition
from grpc_harness.tls import TEST_HOST_OVERRIDE
from grpc_harness.tls import CertificatePaths
from grpc_harness.tls import generate_test_certificates


TEST_PROTO = "grpc/testing/test.proto"
TEST_SERVICE = "grpc.testing.TestService"


@pytest.fixture(scope="session")
def certificates(tmp_path_factory: pytest.TempPathFactory) -> CertificatePaths:
    return generate_test_certificates(tmp_path_factory.mktemp("certs"))


@pytest.fixture(scope="session")
def package() -> PackageDefinition:
    return load_package(
        TEST_PROTO,
        keep_case=True,
        defaults=True,
        enums_as_strings=True,
    )


@pytest.fixture
def client_options() -> t.Dict[str, str]:
    return {
        SSL_TARGET_NAME_OVERRIDE: TEST_HOST_OVERRIDE,
        DEFAULT_AUTHORITY: TEST_HOST_OVERRIDE,
    }


@pytest.fixture
def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


@pytest_asyncio.fixture
async def server(certificates: CertificatePaths) -> t.AsyncIterator[InteropServer]:
    server = await get_server(0, True, data_dir=certificates.ca.parent)
    yield server
    server.force_shutdown()
    await server.wait_closed()


@pytest_asyncio.fixture
async def client(
    server: InteropServer,
    certificates: CertificatePaths,
    package: PackageDefinition,
    client_options: t.Dict[str, str],
) -> t.AsyncIterator[ServiceClient]:
    credentials = create_ssl(load_credential_file(certificates.ca))
    client = package.service(TEST_SERVICE).client(
        "localhost:{}".format(server.port), credentials, client_options,
    )
    yield client
    client.close()
