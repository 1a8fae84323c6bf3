"""NSS certificate database and browser helpers shared by platform strategies."""

import glob
import logging
import sys
import threading
import time
from collections.abc import Callable, Sequence
from functools import partial
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

from . import commands
from .errors import BrowserStillRunningError
from .ui import UserInterface, close_browser_message, firefox_wizard_instructions

logger = logging.getLogger(__name__)

NSS_NICKNAME = "devcert"
LEGACY_NSS_DB = "cert8.db"
MODERN_NSS_DB = "cert9.db"
CA_CERT_CONTENT_TYPE = "application/x-x509-ca-cert"


def nss_database_argument(directory: Path) -> str | None:
    """Return certutil's -d argument for an NSS database directory.

    Legacy Berkeley DB databases (cert8.db) are addressed by plain path,
    modern SQLite ones (cert9.db) need the sql: prefix. Returns None when the
    directory holds neither.
    """
    if (directory / LEGACY_NSS_DB).exists():
        return str(directory)
    if (directory / MODERN_NSS_DB).exists():
        return f"sql:{directory}"
    return None


def _nss_databases(nss_dir_glob: str) -> list[str]:
    databases = []
    for candidate in sorted(glob.glob(nss_dir_glob)):
        database = nss_database_argument(Path(candidate))
        if database is None:
            logger.debug("%s doesn't look like an NSS database directory, skipping", candidate)
            continue
        databases.append(database)
    return databases


def add_certificate_to_nss_cert_db(nss_dir_glob: str, cert_path: Path, certutil_path: str) -> int:
    """Import the CA certificate into every NSS database matching the glob.

    Args:
        nss_dir_glob: Directory or glob pattern of profile directories
        cert_path: Root CA certificate to trust
        certutil_path: NSS certutil executable

    Returns:
        Number of databases updated
    """
    logger.debug("Installing certificate into NSS databases in %s", nss_dir_glob)
    databases = _nss_databases(nss_dir_glob)
    for database in databases:
        logger.debug("Adding devcert root CA to NSS database %s", database)
        commands.run(
            [certutil_path, "-A", "-d", database, "-t", "C,,", "-i", str(cert_path), "-n", NSS_NICKNAME]
        )
    return len(databases)


def remove_certificate_from_nss_cert_db(nss_dir_glob: str, certutil_path: str) -> int:
    """Delete the devcert certificate from every NSS database matching the glob.

    Databases that never had the certificate are ignored.
    """
    databases = _nss_databases(nss_dir_glob)
    for database in databases:
        logger.debug("Removing devcert root CA from NSS database %s", database)
        commands.run([certutil_path, "-D", "-d", database, "-n", NSS_NICKNAME], check=False)
    return len(databases)


def is_process_running(name: str) -> bool:
    """Return True if a process whose executable name contains name is running."""
    if sys.platform == "win32":
        output = commands.run_text(["tasklist", "/fo", "csv", "/nh"], check=False)
        names = [line.split(",", 1)[0].strip('"') for line in output.splitlines()]
    else:
        output = commands.run_text(["ps", "-A", "-o", "comm="], check=False)
        names = [Path(line.strip()).name for line in output.splitlines()]
    needle = name.lower()
    return any(needle in process.lower() for process in names)


def wait_for_browser_to_close(
    process_name: str,
    ui: UserInterface,
    poll_interval: float = 0.5,
    timeout: float | None = None,
    is_running: Callable[[str], bool] = is_process_running,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    """Block until the browser process exits.

    Firefox and Chrome load their NSS database at startup and overwrite it
    on exit, so writes made while they run are lost.

    Raises:
        BrowserStillRunningError: If timeout elapses with the browser still running
    """
    if not is_running(process_name):
        return
    ui.show(close_browser_message(process_name))
    deadline = None if timeout is None else clock() + timeout
    while is_running(process_name):
        if deadline is not None and clock() >= deadline:
            raise BrowserStillRunningError(
                f"{process_name} is still running after {timeout:g}s; close it and re-run devcert"
            )
        sleep(poll_interval)


class _CertificateHandler(BaseHTTPRequestHandler):
    """Serve the root CA certificate on every GET."""

    def __init__(self, *args, certificate: bytes, **kwargs) -> None:
        self.certificate = certificate
        super().__init__(*args, **kwargs)

    def do_GET(self) -> None:
        self.send_response(200)
        self.send_header("Content-Type", CA_CERT_CONTENT_TYPE)
        self.send_header("Content-Length", str(len(self.certificate)))
        self.end_headers()
        self.wfile.write(self.certificate)

    def log_message(self, format: str, *args) -> None:
        logger.debug("certificate server: " + format, *args)


def open_certificate_in_browser(
    browser_command: Sequence[str],
    cert_path: Path,
    ui: UserInterface,
    launch: Callable[[Sequence[str], str], None] = commands.open_url,
) -> None:
    """Walk the operator through trusting the certificate in the browser UI.

    Browsers prompt to import a CA when a page is served with the CA
    certificate content type, so the certificate is hosted on a loopback
    server and the browser is pointed at it. Blocks until the operator
    confirms, then stops the server.

    Args:
        browser_command: Command that launches the browser, URL is appended
        cert_path: Root CA certificate to host
        ui: Prompts and confirmation
        launch: Browser launcher
    """
    handler = partial(_CertificateHandler, certificate=cert_path.read_bytes())
    server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
    port = server.server_address[1]
    thread = threading.Thread(target=server.serve_forever, name="devcert-cert-server", daemon=True)
    thread.start()
    logger.debug("Certificate server is up on port %d", port)
    try:
        ui.show(firefox_wizard_instructions(port))
        launch(browser_command, f"http://127.0.0.1:{port}")
        ui.wait_for_user()
    finally:
        server.shutdown()
        server.server_close()
        thread.join()
