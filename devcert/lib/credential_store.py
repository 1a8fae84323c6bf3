"""Protected storage for the root CA private key.

Two strategies share the CredentialStore surface:

- PosixPrivilegedFileStore keeps the key in a root-owned, mode 600 file that
  only an elevated `sudo cat` can read.
- WindowsEncryptedFileStore encrypts the key with a password-derived key
  (PBKDF2-HMAC-SHA256 + AES-256-GCM), since there is no root-owned file
  equivalent reachable without a UAC prompt per read.
"""

import base64
import binascii
import logging
import os
import shutil
from collections.abc import Sequence
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from . import commands
from .errors import BadPasswordError, CorruptedDataError, ReportableError
from .ui import UserInterface

logger = logging.getLogger(__name__)

SALT_SIZE = 16
NONCE_SIZE = 16
TAG_SIZE = 16
KEY_SIZE = 32
PBKDF2_ITERATIONS = 32767


def _assert_inside(root: Path, path: Path, operation: str) -> None:
    """Refuse to touch protected files outside the devcert config root."""
    resolved_root = root.resolve()
    resolved = path.resolve()
    if resolved != resolved_root and resolved_root not in resolved.parents:
        raise ReportableError(
            f"devcert attempted to {operation} a protected file outside its config directory: {path}"
        )


class PosixPrivilegedFileStore:
    """Root-owned, permission-600 files read and written through sudo."""

    def __init__(
        self,
        config_root: Path,
        elevate: Sequence[str] = commands.SUDO_PREFIX,
        owner: str = "0",
    ) -> None:
        """Initialize store.

        Args:
            config_root: Only files below this directory may be touched
            elevate: Privilege escalation prefix (empty when already root)
            owner: Account that ends up owning protected files
        """
        self.config_root = config_root
        self.elevate = tuple(elevate)
        self.owner = owner

    def _sudo(self, command: list[str], reason: str) -> bytes:
        return commands.sudo(command, prefix=self.elevate, reason=reason)

    def read_protected_file(self, path: Path) -> bytes:
        _assert_inside(self.config_root, path, "read")
        return self._sudo(["cat", str(path)], reason="read the devcert root CA key")

    def write_protected_file(self, path: Path, contents: bytes) -> None:
        _assert_inside(self.config_root, path, "write")
        # chown of an existing file owned by root would fail unprivileged
        if path.exists():
            self._sudo(["rm", "-f", str(path)], reason="replace the devcert root CA key")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(contents)
        self._sudo(["chown", self.owner, str(path)], reason="protect the devcert root CA key")
        self._sudo(["chmod", "600", str(path)], reason="protect the devcert root CA key")

    def delete_protected_files(self, path: Path) -> None:
        _assert_inside(self.config_root, path, "delete")
        if path.exists():
            self._sudo(["rm", "-rf", str(path)], reason="delete the devcert root CA files")


class WindowsEncryptedFileStore:
    """Password-encrypted files: base64(salt | nonce | ciphertext | tag)."""

    def __init__(
        self,
        config_root: Path,
        ui: UserInterface,
        max_password_attempts: int = 3,
    ) -> None:
        self.config_root = config_root
        self.ui = ui
        self.max_password_attempts = max_password_attempts
        self._password: str | None = None

    def _get_password(self) -> str:
        if self._password is None:
            self._password = self.ui.get_windows_encryption_password()
        return self._password

    def forget_password(self) -> None:
        """Drop the cached password so the next access prompts again."""
        self._password = None

    def read_protected_file(self, path: Path) -> bytes:
        """Decrypt a protected file, re-prompting on a wrong password.

        Raises:
            BadPasswordError: If every attempt used a wrong password
            CorruptedDataError: If the file is structurally invalid
        """
        _assert_inside(self.config_root, path, "read")
        encrypted = path.read_bytes()
        for attempt in range(1, self.max_password_attempts + 1):
            try:
                return decrypt(encrypted, self._get_password())
            except BadPasswordError:
                logger.warning(
                    "Wrong password for devcert CA key (attempt %d of %d)",
                    attempt,
                    self.max_password_attempts,
                )
                self.forget_password()
        raise BadPasswordError(
            f"unable to decrypt {path}: wrong password after {self.max_password_attempts} attempts"
        )

    def write_protected_file(self, path: Path, contents: bytes) -> None:
        _assert_inside(self.config_root, path, "write")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(encrypt(contents, self._get_password()))

    def delete_protected_files(self, path: Path) -> None:
        _assert_inside(self.config_root, path, "delete")
        if path.is_dir():
            shutil.rmtree(path)
        elif path.exists():
            path.unlink()


def derive_key(password: str, salt: bytes) -> bytes:
    """Derive an AES-256 key from a password with PBKDF2-HMAC-SHA256."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(password.encode("utf-8"))


def encrypt(plaintext: bytes, password: str) -> bytes:
    """Encrypt with a fresh salt and nonce; returns base64 text as bytes."""
    salt = os.urandom(SALT_SIZE)
    nonce = os.urandom(NONCE_SIZE)
    # AESGCM appends the 16-byte tag to the ciphertext
    sealed = AESGCM(derive_key(password, salt)).encrypt(nonce, plaintext, None)
    return base64.b64encode(salt + nonce + sealed)


def decrypt(encoded: bytes, password: str) -> bytes:
    """Decrypt output of encrypt().

    Raises:
        CorruptedDataError: If the payload is not valid base64 or too short
        BadPasswordError: If authentication fails
    """
    try:
        payload = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CorruptedDataError("protected file is not valid base64") from e

    if len(payload) < SALT_SIZE + NONCE_SIZE + TAG_SIZE:
        raise CorruptedDataError("protected file is too short to contain salt, nonce and tag")

    salt = payload[:SALT_SIZE]
    nonce = payload[SALT_SIZE : SALT_SIZE + NONCE_SIZE]
    sealed = payload[SALT_SIZE + NONCE_SIZE :]
    try:
        return AESGCM(derive_key(password, salt)).decrypt(nonce, sealed, None)
    except InvalidTag as e:
        raise BadPasswordError("authentication failed, the password is probably wrong") from e
