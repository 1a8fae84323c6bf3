"""Devcert configuration dataclasses and filesystem layout."""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from cryptography import x509
from cryptography.x509 import oid

CURRENT_CA_VERSION = 1

CA_DIR_NAME = "certificate-authority"
DOMAINS_DIR_NAME = "domains"
CA_VERSION_FILE = "devcert-ca-version"
DOMAIN_KEY_FILE = "private-key.key"
DOMAIN_CERT_FILE = "certificate.crt"


def default_config_root() -> Path:
    """Resolve the per-user devcert configuration directory."""
    if sys.platform == "win32":
        local_app_data = os.environ.get("LOCALAPPDATA")
        if local_app_data:
            return Path(local_app_data) / "devcert"
        return Path.home() / "AppData" / "Local" / "devcert"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "devcert"
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config_home:
        return Path(xdg_config_home) / "devcert"
    return Path.home() / ".config" / "devcert"


def legacy_config_root() -> Path:
    """Resolve the configuration directory used by insecure pre-1 installs.

    The old rule put root's files under /usr/local/share on Linux and used
    %LOCALAPPDATA%/devcert/config on Windows.
    """
    local_app_data = os.environ.get("LOCALAPPDATA")
    if sys.platform == "win32" and local_app_data:
        return Path(local_app_data) / "devcert" / "config"
    getuid = getattr(os, "getuid", None)
    if sys.platform.startswith("linux") and getuid is not None and getuid() == 0:
        return Path("/usr/local/share") / ".config" / "devcert"
    return Path.home() / ".config" / "devcert"


@dataclass
class DevcertConfig:
    """Devcert configuration, threaded explicitly into every component."""

    config_root: Path = field(default_factory=default_config_root)
    legacy_config_root: Path | None = None
    hosts_file_path: Path | None = None
    home_dir: Path = field(default_factory=Path.home)
    organization: str = "devcert"
    organizational_unit: str = "Development"
    ca_common_name: str = "devcert"
    key_size: int = 2048
    root_validity_days: int = 7000
    domain_validity_days: int = 825
    browser_poll_interval: float = 0.5
    browser_close_timeout: float | None = None
    max_password_attempts: int = 3

    @property
    def ca_dir(self) -> Path:
        return self.config_root / CA_DIR_NAME

    @property
    def root_key_path(self) -> Path:
        return self.ca_dir / "private-key.key"

    @property
    def root_cert_path(self) -> Path:
        return self.ca_dir / "certificate.cert"

    @property
    def ca_serial_path(self) -> Path:
        return self.ca_dir / "serial"

    @property
    def ca_index_path(self) -> Path:
        return self.ca_dir / "index.txt"

    @property
    def ca_version_path(self) -> Path:
        return self.config_root / CA_VERSION_FILE

    @property
    def domains_dir(self) -> Path:
        return self.config_root / DOMAINS_DIR_NAME

    def path_for_domain(self, domain: str, *parts: str) -> Path:
        """Return path under the domain's cache directory."""
        return self.domains_dir.joinpath(domain, *parts)

    def resolved_legacy_config_root(self) -> Path:
        """Return legacy directory override, or the old resolution rule."""
        if self.legacy_config_root is not None:
            return self.legacy_config_root
        return legacy_config_root()

    def ca_subject(self) -> "DistinguishedName":
        """Build the root CA distinguished name."""
        return DistinguishedName(
            organization=self.organization,
            organizational_unit=self.organizational_unit,
            common_name=self.ca_common_name,
        )


@dataclass
class DistinguishedName:
    """X.509 Subject Distinguished Name."""

    common_name: str
    organization: str | None = None
    organizational_unit: str | None = None

    def to_x509_name(self) -> x509.Name:
        """Convert to cryptography x509.Name for certificate generation."""
        attributes = []
        if self.organization:
            attributes.append(x509.NameAttribute(oid.NameOID.ORGANIZATION_NAME, self.organization))
        if self.organizational_unit:
            attributes.append(
                x509.NameAttribute(oid.NameOID.ORGANIZATIONAL_UNIT_NAME, self.organizational_unit)
            )
        attributes.append(x509.NameAttribute(oid.NameOID.COMMON_NAME, self.common_name))
        return x509.Name(attributes)
