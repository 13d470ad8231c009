"""Tests for analytics_xray.policy.domains — allow/deny matching."""

from __future__ import annotations

from analytics_xray.models.policy import AllowlistEntry
from analytics_xray.policy.domains import (
    allowlist_changed,
    find_subdomain_parent,
    is_domain_allowed,
    is_domain_denied,
    matches_domain,
)


class TestMatchesDomain:
    def test_exact(self) -> None:
        assert matches_domain("example.com", "example.com", False)

    def test_www_insensitive(self) -> None:
        assert matches_domain("www.example.com", "example.com", False)
        assert matches_domain("example.com", "www.example.com", False)

    def test_case_insensitive(self) -> None:
        assert matches_domain("Example.COM", "example.com", False)

    def test_subdomain_requires_flag(self) -> None:
        assert not matches_domain("app.example.com", "example.com", False)
        assert matches_domain("app.example.com", "example.com", True)
        assert matches_domain("a.b.example.com", "example.com", True)

    def test_suffix_without_dot_does_not_match(self) -> None:
        assert not matches_domain("badexample.com", "example.com", True)

    def test_empty(self) -> None:
        assert not matches_domain("", "example.com", True)
        assert not matches_domain("example.com", "", True)


class TestIsDomainAllowed:
    def test_closed_by_default(self) -> None:
        assert not is_domain_allowed("example.com", [])

    def test_any_entry_matches(self) -> None:
        entries = [AllowlistEntry(domain="other.com"), AllowlistEntry(domain="example.com", allow_subdomains=True)]
        assert is_domain_allowed("shop.example.com", entries)
        assert not is_domain_allowed("shop.other.com", entries)


class TestIsDomainDenied:
    def test_exact_after_normalisation(self) -> None:
        assert is_domain_denied("www.Example.com", ["example.com"])

    def test_subdomain_not_denied_by_parent(self) -> None:
        assert not is_domain_denied("app.example.com", ["example.com"])

    def test_empty(self) -> None:
        assert not is_domain_denied("", ["example.com"])


class TestFindSubdomainParent:
    def test_finds_base_without_subdomains(self) -> None:
        entry = AllowlistEntry(domain="example.com")
        assert find_subdomain_parent("app.example.com", [entry]) == entry

    def test_ignores_entries_allowing_subdomains(self) -> None:
        entry = AllowlistEntry(domain="example.com", allow_subdomains=True)
        assert find_subdomain_parent("app.example.com", [entry]) is None

    def test_base_domain_has_no_parent(self) -> None:
        assert find_subdomain_parent("example.com", [AllowlistEntry(domain="example.com")]) is None

    def test_two_part_tld(self) -> None:
        entry = AllowlistEntry(domain="example.co.uk")
        assert find_subdomain_parent("shop.example.co.uk", [entry]) == entry


class TestAllowlistChanged:
    def test_same_lists(self) -> None:
        a = [AllowlistEntry(domain="a.com")]
        assert not allowlist_changed(a, [AllowlistEntry(domain="a.com")])

    def test_length_change(self) -> None:
        assert allowlist_changed([], [AllowlistEntry(domain="a.com")])

    def test_subdomain_flag_change(self) -> None:
        assert allowlist_changed(
            [AllowlistEntry(domain="a.com")], [AllowlistEntry(domain="a.com", allow_subdomains=True)]
        )

    def test_positional(self) -> None:
        a, b = AllowlistEntry(domain="a.com"), AllowlistEntry(domain="b.com")
        assert allowlist_changed([a, b], [b, a])
