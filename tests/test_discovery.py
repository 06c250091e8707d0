"""Tests for DNS autodiscovery and realm to base DN conversion."""
from types import SimpleNamespace

import dns.name
import dns.resolver

from ldap_realm.ldap.discovery import Autodiscovery, realm_to_base_dn


def srv(priority, weight, port, target):
    return SimpleNamespace(priority=priority, weight=weight, port=port, target=dns.name.from_text(target))


class FakeResolver:
    def __init__(self, answers=None, error=None):
        self.answers = answers or []
        self.error = error
        self.queries = []

    def resolve(self, qname, rdtype):
        self.queries.append((qname, rdtype))
        if self.error:
            raise self.error
        return self.answers


def test_realm_to_base_dn():
    assert realm_to_base_dn("example.org") == "dc=example,dc=org"
    assert realm_to_base_dn("corp.example.co.uk") == "dc=corp,dc=example,dc=co,dc=uk"


def test_realm_to_base_dn_ignores_empty_labels():
    assert realm_to_base_dn(" example.org. ") == "dc=example,dc=org"


def test_get_dns_domain_dn():
    assert Autodiscovery.get_dns_domain_dn("example.org") == "dc=example,dc=org"


def test_urls_sorted_by_priority_then_weight():
    resolver = FakeResolver([
        srv(10, 0, 389, "backup.example.org."),
        srv(0, 10, 389, "light.example.org."),
        srv(0, 100, 3268, "heavy.example.org."),
    ])
    urls = Autodiscovery(resolver=resolver).get_ldap_server_urls("example.org")
    assert urls == [
        "ldap://heavy.example.org:3268",
        "ldap://light.example.org:389",
        "ldap://backup.example.org:389",
    ]
    assert resolver.queries == [("_ldap._tcp.example.org", "SRV")]


def test_service_not_offered_target_is_skipped():
    resolver = FakeResolver([srv(0, 0, 389, "."), srv(1, 0, 389, "dc1.example.org.")])
    assert Autodiscovery(resolver=resolver).get_ldap_server_urls("example.org") == ["ldap://dc1.example.org:389"]


def test_lookup_failure_returns_empty_list():
    resolver = FakeResolver(error=dns.resolver.NXDOMAIN())
    assert Autodiscovery(resolver=resolver).get_ldap_server_urls("example.invalid") == []


def test_no_answer_returns_empty_list():
    resolver = FakeResolver(error=dns.resolver.NoAnswer())
    assert Autodiscovery(resolver=resolver).get_ldap_server_urls("example.org") == []
