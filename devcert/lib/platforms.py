"""Trust store installers for macOS, Linux and Windows.

Each strategy registers the root CA with the operating system (fatal on
failure) and, best-effort, with browsers that keep their own NSS database.
select_platform() picks one strategy and pairs it with the matching
credential store.
"""

import logging
import sys
from pathlib import Path

from . import commands
from .config import DevcertConfig
from .credential_store import PosixPrivilegedFileStore, WindowsEncryptedFileStore
from .errors import DevcertError, UnsupportedPlatformError
from .hosts import host_file_entry, is_domain_in_host_file
from .models import Options, Platform
from .nss import (
    add_certificate_to_nss_cert_db,
    open_certificate_in_browser,
    remove_certificate_from_nss_cert_db,
    wait_for_browser_to_close,
)
from .ui import CHROME_WITHOUT_CERTUTIL_WARNING, UserInterface

logger = logging.getLogger(__name__)

POSIX_HOSTS_FILE = Path("/etc/hosts")
WINDOWS_HOSTS_FILE = Path("C:/Windows/System32/Drivers/etc/hosts")


def _read_hosts_file(hosts_file: Path) -> str:
    """Return hosts file contents, empty when the file does not exist yet."""
    try:
        return hosts_file.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug("%s does not exist, it will be created", hosts_file)
        return ""


def _append_posix_hosts_entry(hosts_file: Path, domain: str) -> None:
    if is_domain_in_host_file(_read_hosts_file(hosts_file), domain):
        return
    logger.info("Adding %s to %s", domain, hosts_file)
    commands.sudo(
        ["tee", "-a", str(hosts_file)],
        input=f"\n{host_file_entry(domain)}\n".encode(),
        reason=f"add {domain} to {hosts_file}",
    )


class MacOSTrustStore:
    """System keychain plus Firefox's NSS databases.

    Most macOS applications delegate to the system keychain. Firefox keeps
    its own store, updated with certutil from Homebrew's nss package, or by
    hand through Firefox's import wizard when certutil is unavailable.
    """

    SYSTEM_KEYCHAIN = "/Library/Keychains/System.keychain"
    FIREFOX_BUNDLE_PATH = Path("/Applications/Firefox.app")
    FIREFOX_BIN_PATH = FIREFOX_BUNDLE_PATH / "Contents" / "MacOS" / "firefox"

    def __init__(self, config: DevcertConfig, ui: UserInterface) -> None:
        self.config = config
        self.ui = ui
        self.firefox_nss_dir = str(config.home_dir / "Library/Application Support/Firefox/Profiles/*")
        self.hosts_file = config.hosts_file_path or POSIX_HOSTS_FILE

    def add_to_trust_stores(self, certificate_path: Path, options: Options) -> None:
        logger.info("Adding devcert root CA to macOS system keychain")
        commands.sudo(
            [
                "security",
                "add-trusted-cert",
                "-d",
                "-r",
                "trustRoot",
                "-k",
                self.SYSTEM_KEYCHAIN,
                "-p",
                "ssl",
                "-p",
                "basic",
                str(certificate_path),
            ],
            reason="add the devcert root CA to the system keychain",
        )

        if not self.FIREFOX_BUNDLE_PATH.exists():
            logger.debug("Firefox does not appear to be installed, skipping Firefox-specific steps")
            return

        logger.info("Firefox install detected, adding devcert root CA to Firefox trust store")
        try:
            certutil_path = self._certutil_path(options)
            if certutil_path is None:
                open_certificate_in_browser([str(self.FIREFOX_BIN_PATH)], certificate_path, self.ui)
                return
            wait_for_browser_to_close(
                "firefox",
                self.ui,
                poll_interval=self.config.browser_poll_interval,
                timeout=self.config.browser_close_timeout,
            )
            add_certificate_to_nss_cert_db(self.firefox_nss_dir, certificate_path, certutil_path)
        except (DevcertError, OSError) as e:
            logger.warning("Unable to add devcert root CA to Firefox, Firefox will not trust it: %s", e)

    def _certutil_path(self, options: Options) -> str | None:
        """Return certutil from Homebrew's nss, installing it when allowed."""
        if not self._is_nss_installed():
            if options.skip_certutil_install:
                logger.debug("certutil not installed and skip_certutil_install set, using manual install")
                return None
            if not commands.command_exists("brew"):
                logger.debug("Homebrew isn't installed, so certutil can't be installed, using manual install")
                return None
            logger.info("Installing NSS tooling (certutil) via Homebrew")
            commands.run(["brew", "install", "nss"])
        prefix = commands.run_text(["brew", "--prefix", "nss"])
        return str(Path(prefix) / "bin" / "certutil")

    def _is_nss_installed(self) -> bool:
        if not commands.command_exists("brew"):
            return False
        listing = commands.run_text(["brew", "list", "-1"], check=False)
        return "nss" in listing.splitlines()

    def remove_from_trust_stores(self, certificate_path: Path) -> None:
        logger.info("Removing devcert root CA from macOS system keychain")
        commands.sudo(
            ["security", "remove-trusted-cert", "-d", str(certificate_path)],
            reason="remove the devcert root CA from the system keychain",
        )
        if self.FIREFOX_BUNDLE_PATH.exists() and self._is_nss_installed():
            prefix = commands.run_text(["brew", "--prefix", "nss"])
            remove_certificate_from_nss_cert_db(self.firefox_nss_dir, str(Path(prefix) / "bin" / "certutil"))

    def add_domain_to_host_file_if_missing(self, domain: str) -> None:
        _append_posix_hosts_entry(self.hosts_file, domain)


class LinuxTrustStore:
    """System CA bundle plus the Firefox and Chrome NSS databases.

    Firefox uses per-profile Mozilla databases, Chrome uses the user's
    ~/.pki/nssdb. Chrome has no import wizard, so without certutil it cannot
    be configured at all.
    """

    SYSTEM_CERT_PATHS = (
        Path("/usr/local/share/ca-certificates/devcert.crt"),
        Path("/etc/ssl/certs/devcert.pem"),
    )
    FIREFOX_BIN_PATH = Path("/usr/bin/firefox")
    CHROME_BIN_PATH = Path("/usr/bin/google-chrome")

    def __init__(self, config: DevcertConfig, ui: UserInterface) -> None:
        self.config = config
        self.ui = ui
        self.firefox_nss_dir = str(config.home_dir / ".mozilla/firefox/*")
        self.chrome_nss_dir = str(config.home_dir / ".pki/nssdb")
        self.hosts_file = config.hosts_file_path or POSIX_HOSTS_FILE

    def add_to_trust_stores(self, certificate_path: Path, options: Options) -> None:
        logger.info("Adding devcert root CA to Linux system-wide trust stores")
        for target in self.SYSTEM_CERT_PATHS:
            commands.sudo(
                ["cp", str(certificate_path), str(target)],
                reason="add the devcert root CA to the system trust store",
            )
        commands.sudo(["update-ca-certificates"], reason="refresh the system trust store")

        if self.FIREFOX_BIN_PATH.exists():
            logger.info("Firefox install detected, adding devcert root CA to Firefox trust stores")
            try:
                self._add_to_firefox(certificate_path, options)
            except (DevcertError, OSError) as e:
                logger.warning("Unable to add devcert root CA to Firefox, Firefox will not trust it: %s", e)
        else:
            logger.debug("Firefox does not appear to be installed, skipping Firefox-specific steps")

        if self.CHROME_BIN_PATH.exists():
            logger.info("Chrome install detected, adding devcert root CA to Chrome trust store")
            try:
                self._add_to_chrome(certificate_path)
            except (DevcertError, OSError) as e:
                logger.warning("Unable to add devcert root CA to Chrome, Chrome will not trust it: %s", e)
        else:
            logger.debug("Chrome does not appear to be installed, skipping Chrome-specific steps")

    def _add_to_firefox(self, certificate_path: Path, options: Options) -> None:
        if not commands.command_exists("certutil"):
            if options.skip_certutil_install:
                logger.debug("certutil not installed and skip_certutil_install set, using manual install")
                open_certificate_in_browser([str(self.FIREFOX_BIN_PATH)], certificate_path, self.ui)
                return
            if not commands.command_exists("apt"):
                logger.debug("apt isn't available, so certutil can't be installed, using manual install")
                open_certificate_in_browser([str(self.FIREFOX_BIN_PATH)], certificate_path, self.ui)
                return
            self._install_certutil()
        wait_for_browser_to_close(
            "firefox",
            self.ui,
            poll_interval=self.config.browser_poll_interval,
            timeout=self.config.browser_close_timeout,
        )
        add_certificate_to_nss_cert_db(self.firefox_nss_dir, certificate_path, "certutil")

    def _add_to_chrome(self, certificate_path: Path) -> None:
        if not commands.command_exists("certutil"):
            logger.warning(CHROME_WITHOUT_CERTUTIL_WARNING)
            return
        wait_for_browser_to_close(
            "chrome",
            self.ui,
            poll_interval=self.config.browser_poll_interval,
            timeout=self.config.browser_close_timeout,
        )
        add_certificate_to_nss_cert_db(self.chrome_nss_dir, certificate_path, "certutil")

    def _install_certutil(self) -> None:
        logger.info("Installing NSS tooling (libnss3-tools) with apt")
        commands.sudo(["apt", "install", "-y", "libnss3-tools"], reason="install NSS tooling (certutil)")

    def remove_from_trust_stores(self, certificate_path: Path) -> None:
        logger.info("Removing devcert root CA from Linux system-wide trust stores")
        for target in self.SYSTEM_CERT_PATHS:
            commands.sudo(["rm", "-f", str(target)], reason="remove the devcert root CA")
        commands.sudo(["update-ca-certificates", "--fresh"], reason="refresh the system trust store")
        if commands.command_exists("certutil"):
            remove_certificate_from_nss_cert_db(self.firefox_nss_dir, "certutil")
            remove_certificate_from_nss_cert_db(self.chrome_nss_dir, "certutil")

    def add_domain_to_host_file_if_missing(self, domain: str) -> None:
        _append_posix_hosts_entry(self.hosts_file, domain)


class WindowsTrustStore:
    """Current user's root store plus Firefox's import wizard.

    The Windows certutil.exe is unrelated to NSS certutil, and NSS tooling
    has no practical install path on Windows, so Firefox always goes manual.
    """

    FIREFOX_COMMAND = ("cmd", "/c", "start", "", "firefox")

    def __init__(self, config: DevcertConfig, ui: UserInterface) -> None:
        self.config = config
        self.ui = ui
        self.hosts_file = config.hosts_file_path or WINDOWS_HOSTS_FILE

    def add_to_trust_stores(self, certificate_path: Path, options: Options) -> None:
        logger.info("Adding devcert root CA to Windows user trust store")
        commands.run(["certutil", "-addstore", "-user", "root", str(certificate_path)])

        logger.info("Adding devcert root CA to Firefox trust store")
        try:
            open_certificate_in_browser(list(self.FIREFOX_COMMAND), certificate_path, self.ui)
        except (DevcertError, OSError) as e:
            logger.debug("Error opening Firefox, most likely Firefox is not installed: %s", e)

    def remove_from_trust_stores(self, certificate_path: Path) -> None:
        logger.info("Removing devcert root CA from Windows user trust store")
        self.ui.show(
            "Removing old certificates from trust stores. You may be prompted to grant "
            "permission for this. It's safe to delete old devcert certificates."
        )
        commands.run(["certutil", "-delstore", "-user", "root", "devcert"])

    def add_domain_to_host_file_if_missing(self, domain: str) -> None:
        if is_domain_in_host_file(_read_hosts_file(self.hosts_file), domain):
            return
        logger.info("Adding %s to %s", domain, self.hosts_file)
        commands.elevated_windows(
            f'echo {host_file_entry(domain)} >> "{self.hosts_file}"',
            reason=f"add {domain} to the hosts file",
        )


def select_platform(config: DevcertConfig, ui: UserInterface, system: str | None = None) -> Platform:
    """Select trust store and credential store strategies for the host.

    Args:
        config: Devcert configuration
        ui: Operator prompts
        system: Platform identifier, defaults to sys.platform

    Raises:
        UnsupportedPlatformError: If no strategy exists for the platform
    """
    system = system or sys.platform
    if system == "darwin":
        return Platform(
            name=system,
            trust_store=MacOSTrustStore(config, ui),
            credentials=PosixPrivilegedFileStore(config.config_root),
        )
    if system.startswith("linux"):
        return Platform(
            name="linux",
            trust_store=LinuxTrustStore(config, ui),
            credentials=PosixPrivilegedFileStore(config.config_root),
        )
    if system == "win32":
        return Platform(
            name=system,
            trust_store=WindowsTrustStore(config, ui),
            credentials=WindowsEncryptedFileStore(
                config.config_root, ui, max_password_attempts=config.max_password_attempts
            ),
        )
    raise UnsupportedPlatformError(f'devcert: "{system}" platform not supported')
