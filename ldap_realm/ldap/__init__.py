"""LDAP layer: connections, searches, user and group mappings."""

from .errors import (
    AD_ERROR_CODES,
    ConfigurationError,
    ConnectivityError,
    InvalidCredentialsError,
    LdapRealmError,
    NoSuchEntryError,
    UnreadableEntryError,
    NotFoundError,
    RealmNotReadyError,
    RetrievalError,
    SearchError,
    TlsNegotiationError,
    describe_ad_error_code,
    parse_ad_error_code,
)
from .connection import ContextFactory, ContextHandle
from .discovery import Autodiscovery, realm_to_base_dn
from .search import LdapEntry, find_unique, format_filter, read_entry, search
from .users import LdapUsersProvider, build_user_mapping
from .groups import LdapGroupsProvider, build_group_mapping, parse_group_request
from .auth import LdapAuthenticator, check_auth

__all__ = [
    # Errors
    "AD_ERROR_CODES",
    "ConfigurationError",
    "ConnectivityError",
    "InvalidCredentialsError",
    "LdapRealmError",
    "NoSuchEntryError",
    "UnreadableEntryError",
    "NotFoundError",
    "RealmNotReadyError",
    "RetrievalError",
    "SearchError",
    "TlsNegotiationError",
    "describe_ad_error_code",
    "parse_ad_error_code",
    # Connections
    "ContextFactory",
    "ContextHandle",
    "Autodiscovery",
    "realm_to_base_dn",
    # Search
    "LdapEntry",
    "find_unique",
    "format_filter",
    "read_entry",
    "search",
    # Providers
    "LdapUsersProvider",
    "build_user_mapping",
    "LdapGroupsProvider",
    "build_group_mapping",
    "parse_group_request",
    "LdapAuthenticator",
    "check_auth",
]
