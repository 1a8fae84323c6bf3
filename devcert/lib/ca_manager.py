"""CA manager for the machine's root certificate authority lifecycle."""

import logging
import os
import shutil
import tempfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar

from cryptography import x509

from .cert_utils import (
    format_index_entry,
    generate_private_key,
    get_certificate_serial_hex,
    serialize_certificate,
    serialize_private_key,
)
from .certificate_builder import CertificateBuilder
from .config import CURRENT_CA_VERSION, DevcertConfig
from .errors import DevcertError
from .models import CAState, Options, Platform

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Files written by installs that kept the CA key world-readable
LEGACY_FILES = (
    "openssl.conf",
    "devcert-ca-root.key",
    "devcert-ca-root.crt",
    "devcert-ca-version",
    "index.txt",
    "serial",
)
LEGACY_DIRS = ("certs",)
LEGACY_APP_CERT_SUFFIXES = (".key", ".crt", ".csr")


class CAManager:
    """Root CA lifecycle: NO_CA -> CURRENT_CA, legacy scrub, scoped key access."""

    def __init__(self, config: DevcertConfig, platform: Platform) -> None:
        """Initialize CA manager.

        Args:
            config: Devcert configuration with paths and validity periods
            platform: Trust store and credential store strategies for this host
        """
        self.config = config
        self.platform = platform

    def installed_version(self) -> int | None:
        """Return the CA version marker, or None if absent or unreadable."""
        try:
            return int(self.config.ca_version_path.read_text().strip())
        except (FileNotFoundError, ValueError):
            return None

    def _legacy_files_present(self) -> bool:
        legacy_root = self.config.resolved_legacy_config_root()
        return (legacy_root / "devcert-ca-root.key").exists() or (legacy_root / "devcert-ca-root.crt").exists()

    def state(self) -> CAState:
        """Derive the lifecycle state from what is on disk."""
        version = self.installed_version()
        if self.config.root_cert_path.exists() and version == CURRENT_CA_VERSION:
            return CAState.CURRENT_CA
        if self._legacy_files_present() or (version is not None and version < CURRENT_CA_VERSION):
            return CAState.LEGACY_INSECURE_CA
        return CAState.NO_CA

    def is_installed(self) -> bool:
        return self.state() is CAState.CURRENT_CA

    def ensure_installed(self, options: Options | None = None) -> None:
        """Install the root CA unless a current one already exists."""
        state = self.state()
        if state is CAState.CURRENT_CA:
            return
        logger.info("Root CA not installed (state=%s), installing", state.value)
        self.install(options)

    def install(self, options: Options | None = None) -> x509.Certificate:
        """Create the root CA and register it with the host's trust stores.

        Steps:
            1. Scrub files left by legacy insecure installs
            2. Seed signing bookkeeping and write the CA version marker
            3. Generate the root key and self-signed certificate
            4. Store the key in the credential store, the certificate in plain
            5. Add the certificate to the OS and browser trust stores

        Any failure removes everything written so far before re-raising.

        Args:
            options: Caller options (certutil install policy)

        Returns:
            The new root CA certificate
        """
        options = options or Options()
        self.scrub_legacy_install()
        try:
            self._seed_bookkeeping()

            logger.info("Generating devcert root certificate authority")
            root_key = generate_private_key(self.config.key_size)
            root_cert = CertificateBuilder.build_root_ca(
                subject_dn=self.config.ca_subject(),
                private_key=root_key,
                validity_days=self.config.root_validity_days,
            )

            logger.debug("Saving certificate authority credentials")
            self.platform.credentials.write_protected_file(
                self.config.root_key_path, serialize_private_key(root_key)
            )
            self.config.root_cert_path.write_bytes(serialize_certificate(root_cert))

            logger.info("Adding devcert root CA to trust stores")
            self.platform.trust_store.add_to_trust_stores(self.config.root_cert_path, options)
        except BaseException:
            logger.error("Root CA installation failed, removing partial state")
            self._rollback()
            raise

        logger.info("Root CA installed, serial %s", get_certificate_serial_hex(root_cert))
        return root_cert

    def _seed_bookkeeping(self) -> None:
        self.config.ca_dir.mkdir(parents=True, exist_ok=True)
        self.config.ca_index_path.write_text("")
        self.config.ca_serial_path.write_text("01\n")
        self.config.ca_version_path.write_text(str(CURRENT_CA_VERSION))

    def _rollback(self) -> None:
        for path in (self.config.ca_version_path, self.config.root_cert_path):
            path.unlink(missing_ok=True)
        try:
            self.platform.credentials.delete_protected_files(self.config.ca_dir)
        except DevcertError as e:
            logger.warning("Unable to remove %s during rollback: %s", self.config.ca_dir, e)
            shutil.rmtree(self.config.ca_dir, ignore_errors=True)

    def scrub_legacy_install(self) -> list[Path]:
        """Delete CA keys and cached certificates left by legacy installs.

        The legacy layout stored the CA key world-readable directly in the
        config directory. Missing files are skipped, so re-running is a no-op.

        Returns:
            Paths that were removed
        """
        legacy_root = self.config.resolved_legacy_config_root()
        logger.debug("Checking %s for legacy files", legacy_root)
        if not legacy_root.is_dir():
            return []

        candidates = [legacy_root / name for name in LEGACY_FILES]
        candidates += [legacy_root / name for name in LEGACY_DIRS]
        candidates += [
            entry
            for entry in sorted(legacy_root.iterdir())
            if entry.is_file() and entry.suffix in LEGACY_APP_CERT_SUFFIXES
        ]

        removed = []
        for path in candidates:
            # A shared config root keeps the current marker next to legacy files
            if path == self.config.ca_version_path:
                continue
            if path.is_dir():
                logger.info("Removing legacy directory: %s", path)
                shutil.rmtree(path, ignore_errors=True)
                removed.append(path)
            elif path.exists():
                logger.info("Removing legacy file: %s", path)
                path.unlink(missing_ok=True)
                removed.append(path)
        return removed

    def root_certificate_pem(self) -> bytes:
        """Return the root CA certificate PEM bytes."""
        return self.config.root_cert_path.read_bytes()

    @contextmanager
    def borrow_credentials(self) -> Iterator[tuple[Path, Path]]:
        """Decrypt the CA key into a temporary file for the duration of a block.

        Yields:
            (ca_key_path, ca_cert_path), the key path being a 0600 temp file
            that is deleted on every exit path
        """
        logger.debug("Decrypting devcert certificate authority credentials")
        key_pem = self.platform.credentials.read_protected_file(self.config.root_key_path)
        fd, name = tempfile.mkstemp(prefix="devcert-ca-", suffix=".key")
        key_path = Path(name)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(key_pem)
            yield key_path, self.config.root_cert_path
        finally:
            key_path.unlink(missing_ok=True)
            logger.debug("Removed decrypted CA key %s", key_path)

    def with_credentials(self, callback: Callable[[Path, Path], T]) -> T:
        """Call callback(ca_key_path, ca_cert_path) with borrowed credentials."""
        with self.borrow_credentials() as (key_path, cert_path):
            return callback(key_path, cert_path)

    def record_issued_certificate(self, cert: x509.Certificate) -> None:
        """Append an issued certificate to the CA's index and serial files."""
        with self.config.ca_index_path.open("a") as index:
            index.write(format_index_entry(cert))
        self.config.ca_serial_path.write_text(get_certificate_serial_hex(cert) + "\n")

    def uninstall(self) -> None:
        """Remove the root CA from trust stores and delete its files."""
        if self.config.root_cert_path.exists():
            try:
                self.platform.trust_store.remove_from_trust_stores(self.config.root_cert_path)
            except DevcertError as e:
                logger.warning("Unable to remove devcert root CA from trust stores: %s", e)
        self.platform.credentials.delete_protected_files(self.config.ca_dir)
        self.config.ca_version_path.unlink(missing_ok=True)
        logger.info("Root CA uninstalled")
