#!/usr/bin/env python3
"""List domains with a cached devcert certificate."""

import argparse
import sys
from pathlib import Path

from devcert.lib.devcert import Devcert
from devcert.lib.errors import DevcertError
from devcert.lib.logging_config import LOGGER
from devcert.scripts.generate_cert import build_config


def main() -> int:
    """Print one configured domain per line.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = argparse.ArgumentParser(description="List domains with cached certificates")
    parser.add_argument(
        "--config-root",
        type=Path,
        help="devcert configuration directory (default: per-user config directory)",
    )
    args = parser.parse_args()

    try:
        devcert = Devcert(config=build_config(args.config_root))
        domains = sorted(devcert.configured_domains())
    except DevcertError as e:
        LOGGER.error("Unable to list domains: %s", e)
        return 1

    for domain in domains:
        print(domain)
    LOGGER.info("%d domain(s) configured in %s", len(domains), devcert.config.domains_dir)
    return 0


if __name__ == "__main__":
    sys.exit(main())
