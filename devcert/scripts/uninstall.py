#!/usr/bin/env python3
"""Remove the devcert root CA from trust stores and delete all devcert files."""

import argparse
import sys
from pathlib import Path

from devcert.lib.devcert import Devcert
from devcert.lib.errors import DevcertError
from devcert.lib.logging_config import LOGGER
from devcert.scripts.generate_cert import build_config


def main() -> int:
    """Uninstall devcert from this machine.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = argparse.ArgumentParser(description="Uninstall the devcert root CA and cached certificates")
    parser.add_argument(
        "--config-root",
        type=Path,
        help="devcert configuration directory (default: per-user config directory)",
    )
    args = parser.parse_args()

    try:
        devcert = Devcert(config=build_config(args.config_root))
        LOGGER.info("Uninstalling devcert from %s", devcert.config.config_root)
        devcert.uninstall()
        LOGGER.info("Note: entries added to the hosts file are left in place")
        return 0

    except DevcertError as e:
        LOGGER.error("Uninstall failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
