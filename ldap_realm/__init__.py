"""
ldap-realm - LDAP / Active Directory realm

Authenticates users of a host application against one or more directory
servers and resolves their details and group memberships.
"""

__version__ = "1.0.0"

from .constants import Colors, REALM_NAME
from .models import AuthResult, BindAttempt, GroupMapping, ServerConfig, UserDetails, UserMapping
from .ldap import (
    Autodiscovery,
    ConfigurationError,
    ConnectivityError,
    ContextFactory,
    ContextHandle,
    InvalidCredentialsError,
    LdapAuthenticator,
    LdapGroupsProvider,
    LdapRealmError,
    LdapUsersProvider,
    NotFoundError,
    RealmNotReadyError,
    RetrievalError,
    SearchError,
    TlsNegotiationError,
)
from .settings import LdapSettingsManager, ServerBundle
from .realm import LdapRealm, RealmState
from .config import load_config, apply_overrides, generate_config_file
from .cli import main

__all__ = [
    # Version
    "__version__",
    # Constants
    "Colors",
    "REALM_NAME",
    # Models
    "AuthResult",
    "BindAttempt",
    "GroupMapping",
    "ServerConfig",
    "UserDetails",
    "UserMapping",
    # LDAP
    "Autodiscovery",
    "ContextFactory",
    "ContextHandle",
    "LdapAuthenticator",
    "LdapGroupsProvider",
    "LdapUsersProvider",
    # Errors
    "ConfigurationError",
    "ConnectivityError",
    "InvalidCredentialsError",
    "LdapRealmError",
    "NotFoundError",
    "RealmNotReadyError",
    "RetrievalError",
    "SearchError",
    "TlsNegotiationError",
    # Realm
    "LdapSettingsManager",
    "ServerBundle",
    "LdapRealm",
    "RealmState",
    # Config
    "load_config",
    "apply_overrides",
    "generate_config_file",
    # CLI
    "main",
]
