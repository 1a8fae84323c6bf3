"""Hosts file matching."""

LOOPBACK_ADDRESS = "127.0.0.1"


def is_domain_in_host_file(contents: str, domain: str) -> bool:
    """Return True if any hosts entry maps a hostname token equal to domain.

    Matching is on whole whitespace-delimited hostname tokens, ignoring
    comments, so foo.test never matches foo.test.test.
    """
    for line in contents.splitlines():
        tokens = line.split("#", 1)[0].split()
        if domain in tokens[1:]:
            return True
    return False


def host_file_entry(domain: str) -> str:
    """Return the line appended to the hosts file for domain."""
    return f"{LOOPBACK_ADDRESS} {domain}"
