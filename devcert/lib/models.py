"""Option, result and strategy models for devcert operations."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol


@dataclass
class Options:
    """Caller options recognised by certificate_for() and CA install.

    skip_certutil_install: never install NSS tooling, fall back to the manual
        browser flow instead
    skip_hosts_file: leave the hosts file untouched
    get_ca_buffer: include the root CA certificate bytes in the result
    get_ca_path: include the root CA certificate path in the result
    """

    skip_certutil_install: bool = False
    skip_hosts_file: bool = False
    get_ca_buffer: bool = False
    get_ca_path: bool = False


@dataclass
class CertificateResult:
    """Result from certificate_for().

    Contains PEM bytes for the domain key and certificate, and the root CA
    certificate bytes/path when requested.
    """

    key: bytes
    cert: bytes
    ca: bytes | None = None
    ca_path: Path | None = None


class CAState(Enum):
    """Lifecycle state of the machine's root certificate authority."""

    NO_CA = "no-ca"
    LEGACY_INSECURE_CA = "legacy-insecure-ca"
    CURRENT_CA = "current-ca"


class TrustStore(Protocol):
    """Registers a root certificate as trusted on one platform."""

    def add_to_trust_stores(self, certificate_path: Path, options: Options) -> None: ...

    def remove_from_trust_stores(self, certificate_path: Path) -> None: ...

    def add_domain_to_host_file_if_missing(self, domain: str) -> None: ...


class CredentialStore(Protocol):
    """Stores secrets so unprivileged users cannot read them."""

    def read_protected_file(self, path: Path) -> bytes: ...

    def write_protected_file(self, path: Path, contents: bytes) -> None: ...

    def delete_protected_files(self, path: Path) -> None: ...


@dataclass
class Platform:
    """Strategy pair selected for the host platform."""

    name: str
    trust_store: TrustStore
    credentials: CredentialStore
