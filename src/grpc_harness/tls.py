"""Certificate material for running the interop server over TLS.

The server certificate matches ``*.test.google.fr`` as the certificates
shipped with gRPC's interop tests do, so clients connect to ``localhost``
with ``grpc.ssl_target_name_override`` set to ``foo.test.google.fr``.
"""
import datetime
import ipaddress
import logging
import pathlib
import ssl as _ssl
import typing as t
from dataclasses import dataclass

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID
from cryptography.x509.oid import NameOID


log = logging.getLogger(__name__)

CA_FILE = "ca.pem"
SERVER_CERT_FILE = "server1.pem"
SERVER_KEY_FILE = "server1.key"

TEST_HOST_OVERRIDE = "foo.test.google.fr"
DEFAULT_SERVER_NAMES = ("*.test.google.fr", "localhost", "127.0.0.1", "::1")


@dataclass(frozen=True)
class CertificatePaths:
    ca: pathlib.Path
    server_cert: pathlib.Path
    server_key: pathlib.Path

    @classmethod
    def in_directory(cls, directory: t.Union[str, pathlib.Path]) -> "CertificatePaths":
        directory = pathlib.Path(directory)
        return cls(
            ca=directory / CA_FILE,
            server_cert=directory / SERVER_CERT_FILE,
            server_key=directory / SERVER_KEY_FILE,
        )

    def exist(self) -> bool:
        return all(p.is_file() for p in (self.ca, self.server_cert, self.server_key))


def _private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def _name(common_name: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


def _subject_alternative_names(names: t.Iterable[str]) -> x509.SubjectAlternativeName:
    entries: t.List[x509.GeneralName] = []
    for name in names:
        try:
            entries.append(x509.IPAddress(ipaddress.ip_address(name)))
        except ValueError:
            entries.append(x509.DNSName(name))
    return x509.SubjectAlternativeName(entries)


def _pem_key(key: rsa.RSAPrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def generate_test_certificates(
    directory: t.Union[str, pathlib.Path],
    *,
    server_names: t.Sequence[str] = DEFAULT_SERVER_NAMES,
    valid_days: int = 30,
) -> CertificatePaths:
    """Writes a test CA and a server certificate signed by it."""
    paths = CertificatePaths.in_directory(directory)
    paths.ca.parent.mkdir(parents=True, exist_ok=True)

    now = datetime.datetime.now(datetime.timezone.utc)
    not_after = now + datetime.timedelta(days=valid_days)

    ca_key = _private_key()
    ca_cert = (
        x509.CertificateBuilder()
        .subject_name(_name("testca"))
        .issuer_name(_name("testca"))
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(not_after)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(ca_key.public_key()),
            critical=False,
        )
        .sign(ca_key, hashes.SHA256())
    )

    server_key = _private_key()
    server_cert = (
        x509.CertificateBuilder()
        .subject_name(_name(server_names[0]))
        .issuer_name(ca_cert.subject)
        .public_key(server_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(not_after)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()),
            critical=False,
        )
        .add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]),
            critical=False,
        )
        .add_extension(_subject_alternative_names(server_names), critical=False)
        .sign(ca_key, hashes.SHA256())
    )

    paths.ca.write_bytes(ca_cert.public_bytes(serialization.Encoding.PEM))
    paths.server_cert.write_bytes(server_cert.public_bytes(serialization.Encoding.PEM))
    paths.server_key.write_bytes(_pem_key(server_key))
    log.info("Wrote test certificates to %s", paths.ca.parent)
    return paths


def ensure_test_certificates(directory: t.Union[str, pathlib.Path]) -> CertificatePaths:
    paths = CertificatePaths.in_directory(directory)
    if paths.exist():
        return paths
    return generate_test_certificates(directory)


def server_ssl_context(paths: CertificatePaths) -> _ssl.SSLContext:
    ctx = _ssl.create_default_context(purpose=_ssl.Purpose.CLIENT_AUTH)
    ctx.minimum_version = _ssl.TLSVersion.TLSv1_2
    ctx.load_cert_chain(str(paths.server_cert), str(paths.server_key))
    ctx.set_ciphers("ECDHE+AESGCM:ECDHE+CHACHA20:DHE+AESGCM:DHE+CHACHA20")
    ctx.set_alpn_protocols(["h2"])
    return ctx
