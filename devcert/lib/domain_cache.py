"""Per-domain certificate cache signed by the devcert root CA."""

import logging
import os
import re
import shutil
from collections.abc import Iterator
from pathlib import Path

from cryptography import x509

from .ca_manager import CAManager
from .cert_utils import (
    deserialize_certificate,
    deserialize_private_key,
    generate_private_key,
    serialize_certificate,
    serialize_private_key,
    verify_certificate_chain,
)
from .certificate_builder import CertificateBuilder
from .config import DOMAIN_CERT_FILE, DOMAIN_KEY_FILE, DevcertConfig
from .errors import InvalidDomainError
from .models import CertificateResult, Options, TrustStore

logger = logging.getLogger(__name__)

_LABEL = r"(?!-)[A-Za-z0-9-]{1,63}(?<!-)"
DOMAIN_PATTERN = re.compile(rf"\A{_LABEL}(?:\.{_LABEL})*\Z")
# Upper bound of the X.509 commonName attribute, which carries the domain
MAX_DOMAIN_LENGTH = 64


def validate_domain(domain: str) -> str:
    """Reject anything that is not a plain DNS hostname.

    Labels are 1-63 letters, digits or hyphens without a leading or trailing
    hyphen, and the whole name is at most 64 characters so it fits the
    certificate CN. Wildcards, trailing dots, underscores and path separators
    are rejected, which also keeps the domain safe to use as a directory name.

    Raises:
        InvalidDomainError: If the domain is not acceptable
    """
    if not isinstance(domain, str) or len(domain) > MAX_DOMAIN_LENGTH or not DOMAIN_PATTERN.match(domain):
        raise InvalidDomainError(f'"{domain}" is not a valid domain name')
    return domain


def write_new_file(path: Path, data: bytes, mode: int) -> None:
    """Replace path with a freshly created file that has mode from the start."""
    path.unlink(missing_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
    with os.fdopen(fd, "wb") as handle:
        handle.write(data)


class DomainCertificateCache:
    """Generates domain certificates on first request and reuses them afterwards."""

    def __init__(self, config: DevcertConfig, ca_manager: CAManager, trust_store: TrustStore) -> None:
        self.config = config
        self.ca_manager = ca_manager
        self.trust_store = trust_store

    def key_path(self, domain: str) -> Path:
        return self.config.path_for_domain(domain, DOMAIN_KEY_FILE)

    def cert_path(self, domain: str) -> Path:
        return self.config.path_for_domain(domain, DOMAIN_CERT_FILE)

    def has_certificate_for(self, domain: str) -> bool:
        validate_domain(domain)
        return self.cert_path(domain).exists() and self.key_path(domain).exists()

    def configured_domains(self) -> Iterator[str]:
        """Yield domains that have a cache directory."""
        if not self.config.domains_dir.is_dir():
            return
        for entry in self.config.domains_dir.iterdir():
            if entry.is_dir():
                yield entry.name

    def remove_domain(self, domain: str) -> None:
        """Delete the domain's cached key and certificate."""
        validate_domain(domain)
        domain_dir = self.config.path_for_domain(domain)
        if not domain_dir.exists():
            return
        # Read-only key files block deletion on Windows
        for entry in domain_dir.iterdir():
            entry.chmod(0o600)
        shutil.rmtree(domain_dir)
        logger.info("Removed cached certificate for %s", domain)

    def remove_all_domains(self) -> None:
        for domain in list(self.configured_domains()):
            self.remove_domain(domain)

    def certificate_for(self, domain: str, options: Options | None = None) -> CertificateResult:
        """Return the key and certificate for domain, generating them if needed.

        Args:
            domain: DNS hostname
            options: Caller options (hosts file, CA buffer/path, certutil policy)

        Returns:
            CertificateResult with PEM key and certificate bytes

        Raises:
            InvalidDomainError: Before touching disk, if domain is invalid
        """
        options = options or Options()
        validate_domain(domain)

        self.ca_manager.ensure_installed(options)

        if self.has_certificate_for(domain):
            logger.debug("Using cached certificate for %s", domain)
        else:
            logger.info("No certificate cached for %s, generating one", domain)
            self.generate_domain_certificate(domain)

        if not options.skip_hosts_file:
            self.trust_store.add_domain_to_host_file_if_missing(domain)

        result = CertificateResult(
            key=self.key_path(domain).read_bytes(),
            cert=self.cert_path(domain).read_bytes(),
        )
        if options.get_ca_buffer:
            result.ca = self.ca_manager.root_certificate_pem()
        if options.get_ca_path:
            result.ca_path = self.config.root_cert_path
        return result

    def generate_domain_certificate(self, domain: str) -> x509.Certificate:
        """Generate, sign, verify and cache a certificate for domain.

        Nothing is written until the signed certificate has verified against
        the root CA. Key and certificate are written as a pair; if writing the
        pair fails, neither file is left behind.
        """
        domain_key = generate_private_key(self.config.key_size)
        csr = CertificateBuilder.build_domain_csr(domain, domain_key)

        with self.ca_manager.borrow_credentials() as (ca_key_path, ca_cert_path):
            ca_key = deserialize_private_key(ca_key_path.read_bytes())
            ca_cert = deserialize_certificate(ca_cert_path.read_bytes())
            domain_cert = CertificateBuilder.build_domain_certificate(
                csr=csr,
                issuer_cert=ca_cert,
                issuer_key=ca_key,
                validity_days=self.config.domain_validity_days,
            )

        verify_certificate_chain(domain_cert, ca_cert, domain)

        self.config.path_for_domain(domain).mkdir(parents=True, exist_ok=True)
        key_path = self.key_path(domain)
        cert_path = self.cert_path(domain)
        try:
            write_new_file(key_path, serialize_private_key(domain_key), 0o400)
            write_new_file(cert_path, serialize_certificate(domain_cert), 0o644)
        except BaseException:
            for path in (cert_path, key_path):
                if path.exists():
                    path.chmod(0o600)
                    path.unlink()
            raise

        self.ca_manager.record_issued_certificate(domain_cert)
        logger.info("Generated certificate for %s", domain)
        return domain_cert
