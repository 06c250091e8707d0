"""Assembly of per-server configurations from flat settings."""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional

from .config import PrefixedSettings
from .constants import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_READ_TIMEOUT,
    DEFAULT_SERVER_KEY,
    SASL_METHODS,
    SERVERS_KEY,
    SETTINGS_PREFIX,
    SIMPLE_METHOD,
)
from .ldap.connection import ContextFactory
from .ldap.discovery import Autodiscovery
from .ldap.errors import ConfigurationError
from .ldap.groups import build_group_mapping
from .ldap.users import build_user_mapping
from .models import GroupMapping, ServerConfig, UserMapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerBundle:
    """One configured server with the factory opening its contexts."""
    config: ServerConfig
    context_factory: ContextFactory

    @property
    def key(self) -> str:
        return self.config.key

    @property
    def user_mapping(self) -> UserMapping:
        return self.config.user_mapping

    @property
    def group_mapping(self) -> Optional[GroupMapping]:
        return self.config.group_mapping

    @property
    def search_limits(self) -> Dict[str, int]:
        """Directory-side limits passed to every search."""
        return {
            "size_limit": self.config.size_limit,
            "time_limit": self.config.time_limit,
            "page_size": self.config.page_size,
        }


def _normalize_authentication(value: Optional[str]) -> str:
    if not value or value.lower() == SIMPLE_METHOD:
        return SIMPLE_METHOD
    upper = value.upper()
    return upper if upper in SASL_METHODS else value


class LdapSettingsManager:
    """
    Builds the ordered server configurations from flat settings.

    Single server mode reads keys under 'ldap.'. When 'ldap.servers' lists
    server keys (comma separated), each server reads keys under
    'ldap.<key>.' and servers are kept in the listed order.

    Example:
        manager = LdapSettingsManager({'ldap.url': 'ldap://host', 'ldap.user.baseDn': 'dc=example,dc=org'})
        bundles = manager.get_bundles()
    """

    def __init__(
        self,
        settings: Mapping[str, str],
        autodiscovery: Optional[Autodiscovery] = None,
        context_factory: Callable[[ServerConfig], ContextFactory] = ContextFactory,
    ):
        """
        Args:
            settings: Flat 'ldap.*' settings
            autodiscovery: Used to find servers when no URL is configured
            context_factory: Builds the ContextFactory of each server configuration
        """
        self.settings = dict(settings)
        self.autodiscovery = autodiscovery
        self.context_factory = context_factory
        self._configs: Optional[List[ServerConfig]] = None

    def server_keys(self) -> List[str]:
        raw = PrefixedSettings(self.settings, SETTINGS_PREFIX).get_string("servers")
        if raw is None:
            return [DEFAULT_SERVER_KEY]

        keys = [k.strip() for k in raw.split(",")]
        if not all(keys):
            raise ConfigurationError(f"The property '{SERVERS_KEY}' contains an empty server key: '{raw}'")
        seen = set()
        for key in keys:
            if key in seen:
                raise ConfigurationError(f"The property '{SERVERS_KEY}' lists server '{key}' twice")
            seen.add(key)
        return keys

    def get_server_configs(self) -> List[ServerConfig]:
        """
        Server configurations in configured order, built once.

        Raises:
            ConfigurationError: A mandatory setting is missing or invalid
        """
        if self._configs is None:
            self._configs = [self._build_config(key) for key in self.server_keys()]
        return list(self._configs)

    def get_bundles(self) -> List[ServerBundle]:
        return [ServerBundle(config, self.context_factory(config)) for config in self.get_server_configs()]

    def _discover_urls(self, view: PrefixedSettings, realm: Optional[str]) -> List[str]:
        if not realm:
            raise ConfigurationError(
                f"The property '{view.key('url')}' is empty and no realm is configured "
                f"in '{view.key('realm')}' to discover it"
            )
        discovery = self.autodiscovery or Autodiscovery()
        urls = discovery.get_ldap_server_urls(realm)
        if not urls:
            raise ConfigurationError(
                f"The property '{view.key('url')}' is empty and no LDAP server was found for realm {realm}"
            )
        logger.info("Discovered LDAP servers for realm %s: %s", realm, " ".join(urls))
        return urls

    def _build_config(self, key: str) -> ServerConfig:
        prefix = SETTINGS_PREFIX if key == DEFAULT_SERVER_KEY else f"{SETTINGS_PREFIX}.{key}"
        view = PrefixedSettings(self.settings, prefix)

        realm = view.get_string("realm")
        url = view.get_string("url")
        urls = url.split() if url else self._discover_urls(view, realm)

        config = ServerConfig(
            key=key,
            urls=tuple(urls),
            user_mapping=build_user_mapping(view),
            group_mapping=build_group_mapping(view),
            realm=realm,
            authentication=_normalize_authentication(view.get_string("authentication")),
            bind_dn=view.get_string("bindDn"),
            bind_password=view.get_string("bindPassword"),
            start_tls=view.get_bool("StartTLS", False),
            sasl_realm=realm,
            connect_timeout=view.get_float("connectTimeout", DEFAULT_CONNECT_TIMEOUT),
            read_timeout=view.get_float("readTimeout", DEFAULT_READ_TIMEOUT),
            size_limit=view.get_int("sizeLimit", 0),
            time_limit=view.get_int("timeLimit", 0),
            page_size=view.get_int("pageSize", 0),
            follow_referrals=view.get_bool("followReferrals", True),
            tls_verify=view.get_bool("tls.verify", True),
            ca_certs_file=view.get_string("tls.caCertsFile"),
        )
        logger.debug("LDAP server %s: %s", key, config)
        return config
