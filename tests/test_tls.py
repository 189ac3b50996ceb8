import ipaddress
import ssl

from cryptography import x509
from cryptography.x509.oid import NameOID

from grpc_harness.tls import DEFAULT_SERVER_NAMES
from grpc_harness.tls import TEST_HOST_OVERRIDE
from grpc_harness.tls import CertificatePaths
from grpc_harness.tls import ensure_test_certificates
from grpc_harness.tls import generate_test_certificates
from grpc_harness.tls import server_ssl_context


def _load(path) -> x509.Certificate:
    return x509.load_pem_x509_certificate(path.read_bytes())


def test_server_certificate_names(certificates: CertificatePaths) -> None:
    cert = _load(certificates.server_cert)
    san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    assert san.get_values_for_type(x509.DNSName) == ["*.test.google.fr", "localhost"]
    assert san.get_values_for_type(x509.IPAddress) == [
        ipaddress.ip_address("127.0.0.1"),
        ipaddress.ip_address("::1"),
    ]
    assert TEST_HOST_OVERRIDE.endswith(DEFAULT_SERVER_NAMES[0].lstrip("*"))


def test_server_certificate_signed_by_ca(certificates: CertificatePaths) -> None:
    ca = _load(certificates.ca)
    cert = _load(certificates.server_cert)
    assert cert.issuer == ca.subject
    assert ca.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value == "testca"
    basic = ca.extensions.get_extension_for_class(x509.BasicConstraints).value
    assert basic.ca
    cert.verify_directly_issued_by(ca)


def test_custom_server_names(tmp_path) -> None:
    paths = generate_test_certificates(tmp_path, server_names=["example.test"])
    san = _load(paths.server_cert).extensions.get_extension_for_class(
        x509.SubjectAlternativeName
    ).value
    assert san.get_values_for_type(x509.DNSName) == ["example.test"]
    assert san.get_values_for_type(x509.IPAddress) == []


def test_ensure_keeps_existing(tmp_path) -> None:
    paths = ensure_test_certificates(tmp_path)
    assert paths.exist()
    before = paths.server_cert.read_bytes()
    assert ensure_test_certificates(tmp_path) == paths
    assert paths.server_cert.read_bytes() == before


def test_missing_certificates(tmp_path) -> None:
    assert not CertificatePaths.in_directory(tmp_path).exist()


def test_server_ssl_context(certificates: CertificatePaths) -> None:
    ctx = server_ssl_context(certificates)
    assert ctx.minimum_version == ssl.TLSVersion.TLSv1_2
