"""Operator-facing prompts and messages."""

import getpass
import sys
from typing import Protocol


class UserInterface(Protocol):
    """Interactive collaborator used by platform strategies."""

    def get_windows_encryption_password(self) -> str: ...

    def wait_for_user(self) -> None: ...

    def show(self, message: str) -> None: ...


class ConsoleUserInterface:
    """Terminal implementation of UserInterface."""

    def get_windows_encryption_password(self) -> str:
        return getpass.getpass("devcert password (protects the root CA key on this machine): ")

    def wait_for_user(self) -> None:
        """Block until the operator presses Enter."""
        sys.stdin.readline()

    def show(self, message: str) -> None:
        print(message, file=sys.stderr)


def firefox_wizard_instructions(port: int) -> str:
    return f"""
    devcert was unable to automatically configure Firefox. You'll need to
    complete this process manually. Don't worry though - Firefox will walk
    you through it.

    Firefox will launch and display a wizard to walk you through how to
    trust the devcert certificate. When you are finished, come back here
    and we'll finish up.

    (If Firefox doesn't start, go ahead and start it and navigate to
    http://127.0.0.1:{port} in a new tab.)

    <Press Enter once you have finished the Firefox wizard>
    """


def close_browser_message(browser: str) -> str:
    return f"Please close {browser} before continuing, devcert is waiting for it to exit ..."


CHROME_WITHOUT_CERTUTIL_WARNING = (
    "It looks like you have Chrome installed, but NSS tooling (certutil) is not "
    "available. Without certutil Chrome cannot be told to trust devcert's "
    "certificates. The certificates will work, but Chrome will continue to warn "
    "you that they are untrusted. Install libnss3-tools, or re-run without "
    "skip_certutil_install, to fix this."
)
