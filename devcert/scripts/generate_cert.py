#!/usr/bin/env python3
"""Issue (or fetch the cached) locally-trusted certificate for a domain."""

import argparse
import sys
from pathlib import Path

from devcert.lib.config import DevcertConfig
from devcert.lib.devcert import Devcert
from devcert.lib.domain_cache import write_new_file
from devcert.lib.errors import DevcertError
from devcert.lib.logging_config import LOGGER, set_verbose
from devcert.lib.models import Options


def build_config(config_root: Path | None) -> DevcertConfig:
    """Return config rooted at config_root, or the per-user default."""
    if config_root is None:
        return DevcertConfig()
    return DevcertConfig(config_root=config_root)


def main() -> int:
    """Generate a certificate for the given domain.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = argparse.ArgumentParser(description="Generate a locally-trusted development certificate")
    parser.add_argument("domain", help="Domain to issue the certificate for (e.g. my-app.test)")
    parser.add_argument(
        "--output-dir",
        type=Path,
        help="Also copy <domain>.key, <domain>.crt and devcert-ca.crt to this directory",
    )
    parser.add_argument(
        "--skip-certutil-install",
        action="store_true",
        help="Never install NSS tooling; configure Firefox by hand instead",
    )
    parser.add_argument(
        "--skip-hosts-file",
        action="store_true",
        help="Do not add the domain to the hosts file",
    )
    parser.add_argument(
        "--config-root",
        type=Path,
        help="devcert configuration directory (default: per-user config directory)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()
    set_verbose(args.verbose)

    try:
        devcert = Devcert(config=build_config(args.config_root))
        options = Options(
            skip_certutil_install=args.skip_certutil_install,
            skip_hosts_file=args.skip_hosts_file,
            get_ca_buffer=args.output_dir is not None,
            get_ca_path=True,
        )

        LOGGER.info("Requesting certificate for: %s", args.domain)
        result = devcert.certificate_for(args.domain, options)

        LOGGER.info("Certificate ready:")
        LOGGER.info("  Key: %s", devcert.domains.key_path(args.domain))
        LOGGER.info("  Cert: %s", devcert.domains.cert_path(args.domain))
        LOGGER.info("  CA: %s", result.ca_path)

        if args.output_dir is not None:
            args.output_dir.mkdir(parents=True, exist_ok=True)
            write_new_file(args.output_dir / f"{args.domain}.key", result.key, 0o600)
            (args.output_dir / f"{args.domain}.crt").write_bytes(result.cert)
            (args.output_dir / "devcert-ca.crt").write_bytes(result.ca or b"")
            LOGGER.info("Copied certificate files to %s", args.output_dir)
        return 0

    except DevcertError as e:
        LOGGER.error("Certificate generation failed: %s", e)
        return 1
    except KeyboardInterrupt:
        LOGGER.error("Aborted")
        return 1


if __name__ == "__main__":
    sys.exit(main())
