"""Tests for DomainCertificateCache and domain validation."""

import sys
import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from devcert.lib.ca_manager import CAManager
from devcert.lib.cert_utils import (
    deserialize_certificate,
    deserialize_private_key,
    get_certificate_serial_hex,
    verify_certificate_chain,
)
from devcert.lib.certificate_builder import CertificateBuilder
from devcert.lib.config import DevcertConfig
from devcert.lib.domain_cache import DomainCertificateCache, validate_domain
from devcert.lib.errors import CryptoFailureError, InvalidDomainError
from devcert.lib.models import CAState, Options


class TestValidateDomain:
    """Tests for validate_domain()."""

    @pytest.mark.parametrize(
        "domain",
        ["my-app.test", "localhost", "a.b.c.example", "x1.dev", "A-B.Test", "a" * 59 + ".test", "a" * 63],
    )
    def test_accepts_hostnames(self, domain: str) -> None:
        """Plain DNS hostnames are accepted unchanged."""
        assert validate_domain(domain) == domain

    @pytest.mark.parametrize(
        "domain",
        [
            "",
            "*.my-app.test",
            "-leading.test",
            "trailing-.test",
            "double..dot",
            "trailing.dot.",
            "under_score.test",
            "../etc",
            "my-app.test/evil",
            "white space.test",
            "a" * 64 + ".test",
            "a" * 60 + ".test",
            "a" * 63 + "." + "b" * 63 + "." + "c" * 63 + "." + "d" * 61,
            ".".join(["abcdefgh"] * 30),
        ],
    )
    def test_rejects_invalid(self, domain: str) -> None:
        """Anything outside the hostname grammar is rejected."""
        with pytest.raises(InvalidDomainError):
            validate_domain(domain)


class TestCertificateFor:
    """Tests for certificate_for()."""

    def test_fresh_machine(
        self,
        domain_cache: DomainCertificateCache,
        ca_manager: CAManager,
        devcert_config: DevcertConfig,
        trust_store: MagicMock,
    ) -> None:
        """First request installs the CA and returns a certificate that verifies."""
        result = domain_cache.certificate_for("my-app.test")

        assert ca_manager.state() is CAState.CURRENT_CA
        trust_store.add_to_trust_stores.assert_called_once()
        trust_store.add_domain_to_host_file_if_missing.assert_called_once_with("my-app.test")

        cert = deserialize_certificate(result.cert)
        root = deserialize_certificate(devcert_config.root_cert_path.read_bytes())
        verify_certificate_chain(cert, root, "my-app.test")
        key = deserialize_private_key(result.key)
        assert key.public_key().public_numbers() == cert.public_key().public_numbers()  # type: ignore[union-attr]

    def test_files_written(self, domain_cache: DomainCertificateCache, devcert_config: DevcertConfig) -> None:
        """Key and certificate are cached under domains/<domain>/."""
        result = domain_cache.certificate_for("my-app.test")

        assert devcert_config.path_for_domain("my-app.test", "private-key.key").read_bytes() == result.key
        assert devcert_config.path_for_domain("my-app.test", "certificate.crt").read_bytes() == result.cert

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_domain_key_is_owner_read_only(
        self,
        domain_cache: DomainCertificateCache,
        devcert_config: DevcertConfig,
    ) -> None:
        """Domain key file is mode 400."""
        domain_cache.certificate_for("my-app.test")
        key_path = devcert_config.path_for_domain("my-app.test", "private-key.key")
        assert key_path.stat().st_mode & 0o777 == 0o400

    def test_second_call_is_cached(self, domain_cache: DomainCertificateCache) -> None:
        """Second request returns identical bytes and signs nothing."""
        first = domain_cache.certificate_for("my-app.test")

        with patch.object(
            CertificateBuilder,
            "build_domain_certificate",
            wraps=CertificateBuilder.build_domain_certificate,
        ) as spy:
            second = domain_cache.certificate_for("my-app.test")

        spy.assert_not_called()
        assert second.key == first.key
        assert second.cert == first.cert

    def test_new_domain_only_touches_ca_bookkeeping(
        self,
        domain_cache: DomainCertificateCache,
        devcert_config: DevcertConfig,
        trust_store: MagicMock,
    ) -> None:
        """A new domain on an existing CA only appends to index.txt and bumps serial.

        The CA key and certificate stay byte-identical, as does the version marker.
        """
        domain_cache.certificate_for("first.test")
        version = devcert_config.ca_version_path.read_bytes()
        before = {path: path.read_bytes() for path in devcert_config.ca_dir.iterdir()}

        domain_cache.certificate_for("second.test")

        after = {path: path.read_bytes() for path in devcert_config.ca_dir.iterdir()}
        assert after.keys() == before.keys()
        changed = {path for path in after if after[path] != before[path]}
        assert changed == {devcert_config.ca_index_path, devcert_config.ca_serial_path}
        assert after[devcert_config.ca_index_path].startswith(before[devcert_config.ca_index_path])
        assert devcert_config.ca_version_path.read_bytes() == version
        assert trust_store.add_to_trust_stores.call_count == 1

    def test_bookkeeping_recorded(self, domain_cache: DomainCertificateCache, devcert_config: DevcertConfig) -> None:
        """Each generated certificate is appended to index.txt and sets serial."""
        domain_cache.certificate_for("first.test")
        second = deserialize_certificate(domain_cache.certificate_for("second.test").cert)

        lines = devcert_config.ca_index_path.read_text().splitlines()
        assert [line.rsplit("/CN=", 1)[1] for line in lines] == ["first.test", "second.test"]
        assert devcert_config.ca_serial_path.read_text().strip() == get_certificate_serial_hex(second)

    def test_invalid_domain_touches_nothing(
        self,
        domain_cache: DomainCertificateCache,
        devcert_config: DevcertConfig,
        trust_store: MagicMock,
    ) -> None:
        """Invalid domain fails before any filesystem or trust store activity."""
        with pytest.raises(InvalidDomainError):
            domain_cache.certificate_for("../../etc/passwd")

        assert not devcert_config.config_root.exists()
        trust_store.add_to_trust_stores.assert_not_called()

    def test_domain_longer_than_cn_limit_rejected_up_front(
        self,
        domain_cache: DomainCertificateCache,
        devcert_config: DevcertConfig,
        trust_store: MagicMock,
    ) -> None:
        """A 65+ character domain is an InvalidDomainError, raised before the CA is installed."""
        domain = "a" * 63 + "." + "b" * 63 + "." + "c" * 63 + "." + "d" * 61

        with pytest.raises(InvalidDomainError):
            domain_cache.certificate_for(domain)

        assert not devcert_config.config_root.exists()
        trust_store.add_to_trust_stores.assert_not_called()

    def test_domain_at_cn_limit(self, domain_cache: DomainCertificateCache, devcert_config: DevcertConfig) -> None:
        """A 64 character domain fits the CN and verifies with its wildcard SAN."""
        domain = "a" * 59 + ".test"

        result = domain_cache.certificate_for(domain)

        cert = deserialize_certificate(result.cert)
        root = deserialize_certificate(devcert_config.root_cert_path.read_bytes())
        verify_certificate_chain(cert, root, domain)
        verify_certificate_chain(cert, root, "www." + domain)

    def test_skip_hosts_file(self, domain_cache: DomainCertificateCache, trust_store: MagicMock) -> None:
        """skip_hosts_file leaves the hosts file alone."""
        domain_cache.certificate_for("my-app.test", Options(skip_hosts_file=True))
        trust_store.add_domain_to_host_file_if_missing.assert_not_called()

    def test_ca_buffer_and_path(self, domain_cache: DomainCertificateCache, devcert_config: DevcertConfig) -> None:
        """get_ca_buffer/get_ca_path include the root certificate."""
        result = domain_cache.certificate_for("my-app.test", Options(get_ca_buffer=True, get_ca_path=True))

        assert result.ca == devcert_config.root_cert_path.read_bytes()
        assert result.ca_path == devcert_config.root_cert_path

    def test_ca_omitted_by_default(self, domain_cache: DomainCertificateCache) -> None:
        """CA bytes and path are only returned on request."""
        result = domain_cache.certificate_for("my-app.test")
        assert result.ca is None
        assert result.ca_path is None

    def test_options_passed_to_install(self, domain_cache: DomainCertificateCache, trust_store: MagicMock) -> None:
        """Install honours the caller's certutil policy."""
        options = Options(skip_certutil_install=True, skip_hosts_file=True)
        domain_cache.certificate_for("my-app.test", options)
        assert trust_store.add_to_trust_stores.call_args.args[1] is options

    def test_failed_verification_writes_nothing(
        self,
        domain_cache: DomainCertificateCache,
        devcert_config: DevcertConfig,
    ) -> None:
        """A leaf that fails chain verification is never cached."""
        with (
            patch(
                "devcert.lib.domain_cache.verify_certificate_chain",
                side_effect=CryptoFailureError("bad chain"),
            ),
            pytest.raises(CryptoFailureError),
        ):
            domain_cache.certificate_for("my-app.test")

        assert not devcert_config.path_for_domain("my-app.test", "private-key.key").exists()
        assert not devcert_config.path_for_domain("my-app.test", "certificate.crt").exists()
        assert devcert_config.ca_index_path.read_text() == ""

    def test_failed_write_removes_partial_pair(
        self,
        domain_cache: DomainCertificateCache,
        devcert_config: DevcertConfig,
    ) -> None:
        """If the certificate cannot be written the key is removed too."""
        with (
            patch("devcert.lib.domain_cache.serialize_certificate", side_effect=OSError("disk full")),
            pytest.raises(OSError, match="disk full"),
        ):
            domain_cache.certificate_for("my-app.test")

        assert not domain_cache.has_certificate_for("my-app.test")
        assert not devcert_config.path_for_domain("my-app.test", "private-key.key").exists()

        # Next request regenerates cleanly
        result = domain_cache.certificate_for("my-app.test")
        assert result.cert.startswith(b"-----BEGIN CERTIFICATE-----")

    def test_temp_ca_key_removed_after_signing(self, domain_cache: DomainCertificateCache) -> None:
        """Borrowed CA key does not outlive generation."""
        created: list[Path] = []
        real_mkstemp = tempfile.mkstemp

        def recording_mkstemp(*args, **kwargs):
            fd, name = real_mkstemp(*args, **kwargs)
            created.append(Path(name))
            return fd, name

        with patch("devcert.lib.ca_manager.tempfile.mkstemp", side_effect=recording_mkstemp):
            domain_cache.certificate_for("my-app.test")

        assert len(created) == 1
        assert not created[0].exists()


class TestDomainListing:
    """Tests for has_certificate_for, configured_domains and removal."""

    def test_has_certificate_for(self, domain_cache: DomainCertificateCache) -> None:
        """has_certificate_for reflects the cache."""
        assert not domain_cache.has_certificate_for("my-app.test")
        domain_cache.certificate_for("my-app.test")
        assert domain_cache.has_certificate_for("my-app.test")

    def test_configured_domains_empty(self, domain_cache: DomainCertificateCache) -> None:
        """No domains directory yields nothing."""
        assert list(domain_cache.configured_domains()) == []

    def test_configured_domains(self, domain_cache: DomainCertificateCache) -> None:
        """Every generated domain is listed."""
        domain_cache.certificate_for("first.test")
        domain_cache.certificate_for("second.test")
        assert sorted(domain_cache.configured_domains()) == ["first.test", "second.test"]

    def test_remove_domain(self, domain_cache: DomainCertificateCache, devcert_config: DevcertConfig) -> None:
        """remove_domain deletes the domain directory, read-only key included."""
        domain_cache.certificate_for("my-app.test")

        domain_cache.remove_domain("my-app.test")

        assert not devcert_config.path_for_domain("my-app.test").exists()
        assert list(domain_cache.configured_domains()) == []

    def test_remove_missing_domain(self, domain_cache: DomainCertificateCache) -> None:
        """Removing a domain that was never generated is a no-op."""
        domain_cache.remove_domain("never.test")

    def test_remove_invalid_domain(self, domain_cache: DomainCertificateCache, devcert_config: DevcertConfig) -> None:
        """remove_domain validates before deleting anything."""
        devcert_config.config_root.mkdir(parents=True)
        with pytest.raises(InvalidDomainError):
            domain_cache.remove_domain("..")
        assert devcert_config.config_root.exists()

    def test_remove_all_domains(self, domain_cache: DomainCertificateCache) -> None:
        """remove_all_domains empties the cache."""
        domain_cache.certificate_for("first.test")
        domain_cache.certificate_for("second.test")

        domain_cache.remove_all_domains()

        assert list(domain_cache.configured_domains()) == []
