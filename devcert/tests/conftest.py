"""Test fixtures for devcert tests."""

from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from devcert.lib.ca_manager import CAManager
from devcert.lib.cert_utils import generate_private_key
from devcert.lib.certificate_builder import CertificateBuilder
from devcert.lib.config import DevcertConfig, DistinguishedName
from devcert.lib.credential_store import WindowsEncryptedFileStore
from devcert.lib.domain_cache import DomainCertificateCache
from devcert.lib.models import Platform

TEST_PASSWORD = "correct horse battery staple"


class FakeUserInterface:
    """Scripted UserInterface.

    Hands out passwords in order (repeating the last one), records every
    message shown and runs on_wait when the flow blocks for the operator.
    """

    def __init__(self, passwords: list[str] | None = None) -> None:
        self.passwords = list(passwords or [TEST_PASSWORD])
        self.password_prompts = 0
        self.messages: list[str] = []
        self.on_wait: Callable[[], None] | None = None

    def get_windows_encryption_password(self) -> str:
        self.password_prompts += 1
        if len(self.passwords) > 1:
            return self.passwords.pop(0)
        return self.passwords[0]

    def wait_for_user(self) -> None:
        if self.on_wait is not None:
            self.on_wait()

    def show(self, message: str) -> None:
        self.messages.append(message)


@pytest.fixture
def ui() -> FakeUserInterface:
    """Return scripted user interface with a fixed password."""
    return FakeUserInterface()


@pytest.fixture
def devcert_config(tmp_path: Path) -> DevcertConfig:
    """Return config with every path inside tmp_path."""
    hosts_file = tmp_path / "hosts"
    hosts_file.write_text("127.0.0.1 localhost\n")
    return DevcertConfig(
        config_root=tmp_path / "config",
        legacy_config_root=tmp_path / "legacy",
        hosts_file_path=hosts_file,
        home_dir=tmp_path / "home",
        key_size=2048,  # Faster for tests
        domain_validity_days=30,
        browser_poll_interval=0,
    )


@pytest.fixture
def trust_store() -> MagicMock:
    """Return mocked trust store installer."""
    return MagicMock()


@pytest.fixture
def platform(devcert_config: DevcertConfig, ui: FakeUserInterface, trust_store: MagicMock) -> Platform:
    """Return platform with a mocked trust store and a real encrypted credential store."""
    return Platform(
        name="test",
        trust_store=trust_store,
        credentials=WindowsEncryptedFileStore(devcert_config.config_root, ui),
    )


@pytest.fixture
def ca_manager(devcert_config: DevcertConfig, platform: Platform) -> CAManager:
    """Return CA manager for the isolated config root."""
    return CAManager(devcert_config, platform)


@pytest.fixture
def domain_cache(
    devcert_config: DevcertConfig,
    ca_manager: CAManager,
    trust_store: MagicMock,
) -> DomainCertificateCache:
    """Return domain certificate cache wired to the test CA manager."""
    return DomainCertificateCache(devcert_config, ca_manager, trust_store)


@pytest.fixture
def root_key() -> RSAPrivateKey:
    """Generate RSA private key for the root CA."""
    return generate_private_key(key_size=2048)


@pytest.fixture
def root_dn() -> DistinguishedName:
    """Return test root CA distinguished name."""
    return DistinguishedName(
        common_name="devcert",
        organization="devcert",
        organizational_unit="Development",
    )


@pytest.fixture
def root_cert(root_key: RSAPrivateKey, root_dn: DistinguishedName) -> x509.Certificate:
    """Generate self-signed root CA certificate."""
    return CertificateBuilder.build_root_ca(
        subject_dn=root_dn,
        private_key=root_key,
        validity_days=30,
    )


@pytest.fixture
def domain_key() -> RSAPrivateKey:
    """Generate RSA private key for a domain certificate."""
    return generate_private_key(key_size=2048)


@pytest.fixture
def domain_csr(domain_key: RSAPrivateKey) -> x509.CertificateSigningRequest:
    """Generate CSR for my-app.test."""
    return CertificateBuilder.build_domain_csr("my-app.test", domain_key)


@pytest.fixture
def domain_cert(
    domain_csr: x509.CertificateSigningRequest,
    root_cert: x509.Certificate,
    root_key: RSAPrivateKey,
) -> x509.Certificate:
    """Generate my-app.test certificate signed by the root CA."""
    return CertificateBuilder.build_domain_certificate(
        csr=domain_csr,
        issuer_cert=root_cert,
        issuer_key=root_key,
        validity_days=30,
    )
