"""Certificate builder for X.509 certificate construction."""

from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from .cert_utils import generate_serial_number
from .config import DistinguishedName
from .errors import CryptoFailureError


def _sign(builder: x509.CertificateBuilder, private_key: RSAPrivateKey) -> x509.Certificate:
    try:
        return builder.sign(private_key, hashes.SHA256())
    except (ValueError, TypeError) as e:
        raise CryptoFailureError(f"certificate signing failed: {e}") from e


class CertificateBuilder:
    """Builds the self-signed root CA and the domain certificates it signs."""

    @staticmethod
    def build_root_ca(
        subject_dn: DistinguishedName,
        private_key: RSAPrivateKey,
        validity_days: int,
    ) -> x509.Certificate:
        """Build self-signed Root CA certificate.

        Args:
            subject_dn: Distinguished name for certificate subject
            private_key: RSA private key for signing
            validity_days: Certificate validity period in days

        Returns:
            Self-signed X.509 certificate with CA extensions and pathlen:0

        Raises:
            CryptoFailureError: If signing fails
        """
        subject = subject_dn.to_x509_name()
        public_key = private_key.public_key()
        not_before = datetime.now(timezone.utc)
        not_after = not_before + timedelta(days=validity_days)

        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(public_key)
            .serial_number(generate_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(
                x509.BasicConstraints(ca=True, path_length=0),
                critical=True,
            )
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=True,
                    key_encipherment=True,
                    data_encipherment=True,
                    key_agreement=False,
                    key_cert_sign=True,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(public_key),
                critical=False,
            )
        )

        return _sign(builder, private_key)

    @staticmethod
    def build_domain_csr(domain: str, private_key: RSAPrivateKey) -> x509.CertificateSigningRequest:
        """Build CSR with the domain as subject CN."""
        try:
            return (
                x509.CertificateSigningRequestBuilder()
                .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domain)]))
                .sign(private_key, hashes.SHA256())
            )
        except (ValueError, TypeError) as e:
            raise CryptoFailureError(f"CSR signing failed for {domain}: {e}") from e

    @staticmethod
    def build_domain_certificate(
        csr: x509.CertificateSigningRequest,
        issuer_cert: x509.Certificate,
        issuer_key: RSAPrivateKey,
        validity_days: int,
    ) -> x509.Certificate:
        """Build server certificate for the CSR's domain, signed by the root CA.

        The CSR's CN is the domain. The SAN covers the domain itself, its
        wildcard subdomains and the https URI for it.

        Args:
            csr: Certificate signing request with CN=<domain>
            issuer_cert: Root CA certificate (issuer)
            issuer_key: Root CA private key for signing
            validity_days: Certificate validity period in days

        Returns:
            X.509 end-entity certificate signed by the root CA

        Raises:
            CryptoFailureError: If the CSR signature is invalid or signing fails
        """
        if not csr.is_signature_valid:
            raise CryptoFailureError("CSR signature validation failed")

        public_key = csr.public_key()
        if not isinstance(public_key, rsa.RSAPublicKey):
            raise CryptoFailureError("CSR public key must be RSA type")

        domain = csr.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value
        if not isinstance(domain, str):
            raise CryptoFailureError("CSR CN must be string")

        not_before = datetime.now(timezone.utc)
        not_after = not_before + timedelta(days=validity_days)

        builder = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(issuer_cert.subject)
            .public_key(public_key)
            .serial_number(generate_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(
                x509.BasicConstraints(ca=False, path_length=None),
                critical=True,
            )
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
                critical=False,
            )
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]),
                critical=False,
            )
            .add_extension(
                x509.SubjectAlternativeName(
                    [
                        x509.DNSName(domain),
                        x509.DNSName(f"*.{domain}"),
                        x509.UniformResourceIdentifier(f"https://{domain}/"),
                    ]
                ),
                critical=False,
            )
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(public_key),
                critical=False,
            )
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_key.public_key()),
                critical=False,
            )
        )

        return _sign(builder, issuer_key)
