"""The LDAP realm exposed to the host application."""

import logging
from typing import List, Optional

from .constants import REALM_NAME
from .ldap.auth import LdapAuthenticator
from .ldap.errors import ConnectivityError, LdapRealmError, RealmNotReadyError
from .ldap.groups import LdapGroupsProvider
from .ldap.users import LdapUsersProvider
from .models import UserDetails
from .settings import LdapSettingsManager, ServerBundle

logger = logging.getLogger(__name__)


class RealmState:
    UNINITIALIZED = "UNINITIALIZED"
    INITIALIZING = "INITIALIZING"
    READY = "READY"
    FAILED = "FAILED"


class LdapRealm:
    """
    Authenticator, users provider and groups provider backed by directory servers.

    The host holds the three capability handles returned by the ``get_*``
    methods; the groups provider is None when no server maps groups.

    Example:
        realm = LdapRealm(LdapSettingsManager(settings))
        realm.init()
        if realm.authenticate('jdoe', password):
            groups = realm.fetch_groups('jdoe')
    """

    name = REALM_NAME

    def __init__(self, settings_manager: LdapSettingsManager):
        self.settings_manager = settings_manager
        self.state = RealmState.UNINITIALIZED
        self._bundles: List[ServerBundle] = []
        self._authenticator: Optional[LdapAuthenticator] = None
        self._users_provider: Optional[LdapUsersProvider] = None
        self._groups_provider: Optional[LdapGroupsProvider] = None

    def init(self) -> None:
        """
        Build every server bundle and test its bind context.

        Raises:
            ConfigurationError: A server is misconfigured
            ConnectivityError: A server could not be reached or rejected the bind
        """
        self.state = RealmState.INITIALIZING
        try:
            bundles = self.settings_manager.get_bundles()
            for bundle in bundles:
                bundle.context_factory.test_connection()
        except LdapRealmError as e:
            self.state = RealmState.FAILED
            logger.error("%s realm initialization failed: %s", self.name, e)
            raise

        self._bundles = bundles
        self._authenticator = LdapAuthenticator(bundles)
        self._users_provider = LdapUsersProvider(bundles)
        if any(b.group_mapping is not None for b in bundles):
            self._groups_provider = LdapGroupsProvider(bundles)
        self.state = RealmState.READY
        logger.info("%s realm ready with %d server(s)", self.name, len(bundles))

    def _check_ready(self) -> None:
        if self.state != RealmState.READY:
            raise RealmNotReadyError(f"{self.name} realm is {self.state}")

    @property
    def bundles(self) -> List[ServerBundle]:
        return list(self._bundles)

    def get_authenticator(self) -> LdapAuthenticator:
        self._check_ready()
        return self._authenticator

    def get_users_provider(self) -> LdapUsersProvider:
        self._check_ready()
        return self._users_provider

    def get_groups_provider(self) -> Optional[LdapGroupsProvider]:
        self._check_ready()
        return self._groups_provider

    def authenticate(self, login: str, password: str) -> bool:
        """
        Verify a login and password.

        Returns:
            True when one server accepted the credentials; False for an
            unknown login or a wrong password

        Raises:
            ConnectivityError: No server could give an answer for the login
        """
        result = self.get_authenticator().authenticate(login, password)
        if result.success:
            return True
        if result.attempts and not result.reached_directory:
            raise ConnectivityError(f"Unable to authenticate user {login}: no LDAP server could be reached")
        return False

    def fetch_user_details(self, login: str) -> UserDetails:
        return self.get_users_provider().fetch_user_details(login)

    def fetch_groups(self, login: str) -> List[str]:
        """Groups of a user, empty when no server maps groups."""
        provider = self.get_groups_provider()
        if provider is None:
            return []
        return provider.fetch_groups(login)
