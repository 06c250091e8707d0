"""Directory autodiscovery from a DNS realm name."""

import logging
from typing import Any, List, Optional

import dns.exception
import dns.resolver

from ..constants import LDAP_SRV_PREFIX

logger = logging.getLogger(__name__)


def realm_to_base_dn(realm: str) -> str:
    """Convert a DNS realm to a base DN (e.g., 'example.org' -> 'dc=example,dc=org')"""
    labels = [label for label in realm.strip().split(".") if label]
    return ",".join(f"dc={label}" for label in labels)


class Autodiscovery:
    """
    Locates directory servers for a DNS realm using SRV records.

    Attributes:
        resolver: The dnspython resolver used for lookups. Tests may inject any
            object exposing ``resolve(qname, rdtype)``.

    Example:
        discovery = Autodiscovery()
        urls = discovery.get_ldap_server_urls('example.org')
        base_dn = discovery.get_dns_domain_dn('example.org')
    """

    def __init__(self, resolver: Optional[Any] = None, lifetime: Optional[float] = None):
        """
        Args:
            resolver: Resolver to use (default: a system-configured dns.resolver.Resolver)
            lifetime: Override the total time allowed for one query, in seconds
        """
        if resolver is None:
            resolver = dns.resolver.Resolver()
            if lifetime is not None:
                resolver.lifetime = lifetime
        self.resolver = resolver

    @staticmethod
    def get_dns_domain_dn(realm: str) -> str:
        """Base DN derived from the realm labels, in order."""
        return realm_to_base_dn(realm)

    def get_ldap_server_urls(self, realm: str) -> List[str]:
        """
        Look up the LDAP servers advertised for a realm.

        Queries the ``_ldap._tcp.<realm>`` SRV record. Records are ordered by
        priority (lowest first), then by weight (highest first).

        Returns:
            List of ``ldap://host:port`` URLs, empty when nothing is advertised
            or the lookup fails.
        """
        qname = LDAP_SRV_PREFIX + realm.strip().strip(".")
        try:
            answers = self.resolver.resolve(qname, "SRV")
        except dns.exception.DNSException as e:
            logger.debug("No LDAP SRV records for %s: %s", qname, e)
            return []

        records = sorted(answers, key=lambda r: (r.priority, -r.weight))
        urls = []
        for record in records:
            host = record.target.to_text(omit_final_dot=True)
            # A target of "." means the service is explicitly not offered
            if not host or host in (".", "@"):
                continue
            urls.append(f"ldap://{host}:{record.port}")
        logger.debug("Discovered LDAP servers for %s: %s", realm, urls)
        return urls
