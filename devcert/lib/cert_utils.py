"""Certificate utility functions for key generation, serialization and chain verification."""

import os
from datetime import UTC, datetime

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.verification import PolicyBuilder, Store, VerificationError

from .errors import CryptoFailureError

SERIAL_NUMBER_BYTES = 16


def generate_private_key(key_size: int = 2048) -> RSAPrivateKey:
    """Generate RSA private key with specified size."""
    return rsa.generate_private_key(
        public_exponent=65537,
        key_size=key_size,
    )


def serialize_private_key(key: RSAPrivateKey) -> bytes:
    """Serialize private key to PEM format (PKCS8, no encryption)."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def deserialize_private_key(pem_data: bytes) -> RSAPrivateKey:
    """Deserialize private key from PEM bytes."""
    key = serialization.load_pem_private_key(pem_data, password=None)
    if not isinstance(key, RSAPrivateKey):
        raise CryptoFailureError("expected RSA private key")
    return key


def serialize_certificate(cert: x509.Certificate) -> bytes:
    """Serialize certificate to PEM format."""
    return cert.public_bytes(serialization.Encoding.PEM)


def deserialize_certificate(pem_data: bytes) -> x509.Certificate:
    """Deserialize certificate from PEM bytes."""
    return x509.load_pem_x509_certificate(pem_data)


def serialize_csr(csr: x509.CertificateSigningRequest) -> bytes:
    """Serialize CSR to PEM format."""
    return csr.public_bytes(serialization.Encoding.PEM)


def serial_number_bytes(length: int = SERIAL_NUMBER_BYTES) -> bytes:
    """Draw random serial number bytes with the top bit of byte 0 cleared.

    ASN.1 INTEGER is two's complement, so a set high bit would encode a
    negative serial. An all-zero draw is rejected since serials must be
    positive.
    """
    while True:
        raw = bytearray(os.urandom(length))
        raw[0] &= 0x7F
        if any(raw):
            return bytes(raw)


def generate_serial_number() -> int:
    """Generate a positive certificate serial number from a CSPRNG.

    Returns:
        Integer serial number for x509.CertificateBuilder.serial_number()
    """
    return int.from_bytes(serial_number_bytes(), "big")


def get_certificate_serial_hex(cert: x509.Certificate) -> str:
    """Return certificate serial number as upper-case hex with an even digit count."""
    serial_hex = f"{cert.serial_number:X}"
    if len(serial_hex) % 2 != 0:
        serial_hex = "0" + serial_hex
    return serial_hex


def get_common_name(cert: x509.Certificate) -> str:
    """Return the subject CN of a certificate."""
    cn = cert.subject.get_attributes_for_oid(x509.NameOID.COMMON_NAME)[0].value
    if not isinstance(cn, str):
        raise CryptoFailureError("CN must be string")
    return cn


def format_index_entry(cert: x509.Certificate) -> str:
    """Format an OpenSSL ca-style index.txt line for an issued certificate."""
    expiry = cert.not_valid_after_utc.strftime("%y%m%d%H%M%SZ")
    return f"V\t{expiry}\t\t{get_certificate_serial_hex(cert)}\tunknown\t/CN={get_common_name(cert)}\n"


def verify_certificate_chain(
    leaf_cert: x509.Certificate,
    root_cert: x509.Certificate,
    domain: str,
    at: datetime | None = None,
) -> None:
    """Verify leaf -> root the way a TLS client would.

    Builds a trust store containing only the root and runs server
    verification for the domain, covering signature, validity window,
    CA constraints, key usage and the subject alternative name.

    Args:
        leaf_cert: Domain certificate to verify
        root_cert: Trusted root CA certificate
        domain: DNS name the leaf must be valid for
        at: Verification time, defaults to now

    Raises:
        CryptoFailureError: If the chain does not verify
    """
    verifier = (
        PolicyBuilder()
        .store(Store([root_cert]))
        .time(at or datetime.now(UTC))
        .build_server_verifier(x509.DNSName(domain))
    )
    try:
        verifier.verify(leaf_cert, [])
    except VerificationError as e:
        raise CryptoFailureError(f"certificate for {domain} failed chain verification: {e}") from e
