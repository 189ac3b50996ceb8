"""Tests for call and channel credentials."""
import pathlib
import ssl

import pytest

from grpc_harness.credentials import CallCredentials
from grpc_harness.credentials import MetadataContext
from grpc_harness.credentials import MetadataGeneratorError
from grpc_harness.credentials import create_insecure
from grpc_harness.credentials import create_ssl
from grpc_harness.credentials import load_credential_file
from grpc_harness.metadata import Metadata
from grpc_harness.tls import CertificatePaths


CONTEXT = MetadataContext(
    service_url="https://foo.test.google.fr/grpc.testing.TestService",
    method_name="UnaryCall",
)


class CountingGenerator:
    def __init__(self, key: str = "x-token") -> None:
        self.key = key
        self.contexts = []

    async def __call__(self, context: MetadataContext) -> Metadata:
        self.contexts.append(context)
        return Metadata({self.key: "value-{}".format(len(self.contexts))})


@pytest.mark.asyncio
async def test_generator_is_invoked_for_every_call() -> None:
    generator = CountingGenerator()
    credentials = CallCredentials.from_metadata_generator(generator)
    first = await credentials.generate_metadata(CONTEXT)
    second = await credentials.generate_metadata(CONTEXT)
    assert first.get("x-token") == ["value-1"]
    assert second.get("x-token") == ["value-2"]
    assert generator.contexts == [CONTEXT, CONTEXT]


@pytest.mark.asyncio
async def test_composed_credentials_concatenate_metadata() -> None:
    credentials = CallCredentials.from_metadata_generator(CountingGenerator()).compose(
        CallCredentials.from_metadata_generator(CountingGenerator()),
        CallCredentials.from_metadata_generator(CountingGenerator("x-other")),
    )
    metadata = await credentials.generate_metadata(CONTEXT)
    assert metadata.get("x-token") == ["value-1", "value-1"]
    assert metadata.get("x-other") == ["value-1"]


@pytest.mark.asyncio
async def test_generator_failure_is_wrapped() -> None:
    async def failing(context: MetadataContext) -> Metadata:
        raise RuntimeError("token expired")

    credentials = CallCredentials.from_metadata_generator(failing)
    with pytest.raises(MetadataGeneratorError, match="token expired") as exc_info:
        await credentials.generate_metadata(CONTEXT)
    assert isinstance(exc_info.value.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_generator_must_return_metadata() -> None:
    async def wrong(context: MetadataContext) -> Metadata:
        return {"x-token": "value"}  # type: ignore[return-value]

    credentials = CallCredentials.from_metadata_generator(wrong)
    with pytest.raises(MetadataGeneratorError):
        await credentials.generate_metadata(CONTEXT)


def test_call_credentials_require_generator() -> None:
    with pytest.raises(ValueError):
        CallCredentials([])


def test_create_ssl_with_root_certificates(certificates: CertificatePaths) -> None:
    credentials = create_ssl(load_credential_file(certificates.ca))
    assert credentials.secure
    assert credentials.ssl is not None
    assert credentials.ssl.verify_mode == ssl.CERT_REQUIRED
    assert credentials.ssl.check_hostname
    assert credentials.call_credentials is None


def test_create_ssl_with_default_roots() -> None:
    assert create_ssl().secure


def test_channel_credentials_compose() -> None:
    first = CallCredentials.from_metadata_generator(CountingGenerator())
    second = CallCredentials.from_metadata_generator(CountingGenerator())
    credentials = create_ssl().compose(first).compose(second)
    assert credentials.call_credentials is not None
    assert credentials.call_credentials._generators == (
        first._generators + second._generators
    )


def test_insecure_channel_cannot_carry_call_credentials() -> None:
    credentials = create_insecure()
    assert not credentials.secure
    with pytest.raises(ValueError):
        credentials.compose(CallCredentials.from_metadata_generator(CountingGenerator()))


def test_load_credential_file(tmp_path: pathlib.Path) -> None:
    path = tmp_path / "ca.pem"
    path.write_bytes(b"raw bytes")
    assert load_credential_file(path) == b"raw bytes"
    assert load_credential_file(str(path)) == b"raw bytes"
    with pytest.raises(FileNotFoundError):
        load_credential_file(tmp_path / "missing.pem")
