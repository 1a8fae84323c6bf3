"""Public entry point: certificates for local development domains."""

import logging
from collections.abc import Iterator

from .ca_manager import CAManager
from .config import DevcertConfig
from .domain_cache import DomainCertificateCache
from .models import CertificateResult, Options, Platform
from .platforms import select_platform
from .ui import ConsoleUserInterface, UserInterface

logger = logging.getLogger(__name__)


class Devcert:
    """Wires configuration, platform strategies, CA manager and domain cache.

    Example:
        devcert = Devcert()
        result = devcert.certificate_for("my-app.test")
        ssl_context.load_cert_chain(...)  # result.cert / result.key
    """

    def __init__(
        self,
        config: DevcertConfig | None = None,
        ui: UserInterface | None = None,
        platform: Platform | None = None,
    ) -> None:
        self.config = config or DevcertConfig()
        self.ui = ui or ConsoleUserInterface()
        self.platform = platform or select_platform(self.config, self.ui)
        self.ca_manager = CAManager(self.config, self.platform)
        self.domains = DomainCertificateCache(self.config, self.ca_manager, self.platform.trust_store)

    def certificate_for(self, domain: str, options: Options | None = None) -> CertificateResult:
        """Return a trusted key and certificate for domain.

        The first call on a machine installs the root CA, which may prompt
        for elevation or a password and may open a browser.
        """
        return self.domains.certificate_for(domain, options)

    def has_certificate_for(self, domain: str) -> bool:
        return self.domains.has_certificate_for(domain)

    def configured_domains(self) -> Iterator[str]:
        return self.domains.configured_domains()

    def remove_domain(self, domain: str) -> None:
        self.domains.remove_domain(domain)

    def uninstall(self) -> None:
        """Remove the root CA from trust stores and delete all devcert files."""
        self.ca_manager.uninstall()
        self.domains.remove_all_domains()
        logger.info("devcert uninstalled")
