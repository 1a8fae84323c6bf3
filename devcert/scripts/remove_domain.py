#!/usr/bin/env python3
"""Delete the cached certificate for a domain."""

import argparse
import sys
from pathlib import Path

from devcert.lib.devcert import Devcert
from devcert.lib.errors import DevcertError
from devcert.lib.logging_config import LOGGER
from devcert.scripts.generate_cert import build_config


def main() -> int:
    """Remove a domain's key and certificate from the cache.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = argparse.ArgumentParser(description="Remove a cached domain certificate")
    parser.add_argument("domain", help="Domain whose certificate should be deleted")
    parser.add_argument(
        "--config-root",
        type=Path,
        help="devcert configuration directory (default: per-user config directory)",
    )
    args = parser.parse_args()

    try:
        devcert = Devcert(config=build_config(args.config_root))
        if not devcert.has_certificate_for(args.domain):
            LOGGER.warning("No certificate cached for %s", args.domain)
        devcert.remove_domain(args.domain)
        return 0

    except DevcertError as e:
        LOGGER.error("Domain removal failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
