import logging
import pathlib
import ssl as _ssl
import typing as t
from dataclasses import dataclass

import certifi

from .metadata import Metadata


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetadataContext:
    """Describes the call a generator produces metadata for."""

    service_url: str
    method_name: str


MetadataGenerator = t.Callable[[MetadataContext], t.Awaitable[Metadata]]


class MetadataGeneratorError(Exception):
    """Raised when call credentials could not produce metadata."""


class CallCredentials:
    """Per-call credentials backed by one or more metadata generators.

    Generators are invoked every time a call using these credentials is
    about to be sent; results are never cached between calls.
    """

    def __init__(self, generators: t.Sequence[MetadataGenerator]) -> None:
        if not generators:
            raise ValueError("At least one metadata generator is required")
        self._generators = tuple(generators)

    @classmethod
    def from_metadata_generator(
        cls, generator: MetadataGenerator
    ) -> "CallCredentials":
        return cls([generator])

    def compose(self, *others: "CallCredentials") -> "CallCredentials":
        generators = list(self._generators)
        for other in others:
            generators.extend(other._generators)
        return CallCredentials(generators)

    async def generate_metadata(self, context: MetadataContext) -> Metadata:
        result = Metadata()
        for generator in self._generators:
            try:
                metadata = await generator(context)
            except Exception as exc:
                raise MetadataGeneratorError(str(exc) or repr(exc)) from exc
            if not isinstance(metadata, Metadata):
                raise MetadataGeneratorError(
                    "Metadata generator returned {!r} instead of Metadata".format(
                        metadata
                    )
                )
            result.merge(metadata)
        return result


@dataclass(frozen=True)
class ChannelCredentials:
    """Connection-level credentials, optionally carrying call credentials
    applied to every call on the channel."""

    ssl: t.Optional[_ssl.SSLContext] = None
    call_credentials: t.Optional[CallCredentials] = None

    @property
    def secure(self) -> bool:
        return self.ssl is not None

    def compose(self, call_credentials: CallCredentials) -> "ChannelCredentials":
        if not self.secure:
            raise ValueError("Call credentials require a secure channel")
        if self.call_credentials is not None:
            call_credentials = self.call_credentials.compose(call_credentials)
        return ChannelCredentials(ssl=self.ssl, call_credentials=call_credentials)


# https://python-hyper.org/projects/h2/en/stable/negotiating-http2.html
def create_ssl(root_certificates: t.Optional[bytes] = None) -> ChannelCredentials:
    """Builds TLS channel credentials trusting ``root_certificates`` (PEM),
    or the certifi bundle when omitted."""
    if root_certificates is None:
        ctx = _ssl.create_default_context(
            purpose=_ssl.Purpose.SERVER_AUTH,
            cafile=certifi.where(),
        )
    else:
        ctx = _ssl.create_default_context(
            purpose=_ssl.Purpose.SERVER_AUTH,
            cadata=root_certificates.decode("ascii"),
        )
    ctx.minimum_version = _ssl.TLSVersion.TLSv1_2
    ctx.set_ciphers("ECDHE+AESGCM:ECDHE+CHACHA20:DHE+AESGCM:DHE+CHACHA20")
    ctx.set_alpn_protocols(["h2"])
    return ChannelCredentials(ssl=ctx)


def create_insecure() -> ChannelCredentials:
    return ChannelCredentials()


def load_credential_file(path: t.Union[str, pathlib.Path]) -> bytes:
    path = pathlib.Path(path)
    log.debug("Loading credential file %s", path)
    return path.read_bytes()
