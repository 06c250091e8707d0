"""User mapping and user details lookup."""

import logging
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence, TypeVar

from ..constants import (
    DEFAULT_EMAIL_ATTRIBUTE,
    DEFAULT_LOGIN_ATTRIBUTE,
    DEFAULT_NAME_ATTRIBUTE,
    DEFAULT_USER_OBJECT_CLASS,
    DEFAULT_USER_REQUEST,
    LOGIN_PLACEHOLDER,
)
from ..models import UserDetails, UserMapping
from .connection import ContextHandle
from .discovery import realm_to_base_dn
from .errors import ConfigurationError, ConnectivityError, NotFoundError, RetrievalError, SearchError
from .search import LdapEntry, find_unique

if TYPE_CHECKING:
    from ..config import PrefixedSettings
    from ..settings import ServerBundle

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_user_mapping(settings: "PrefixedSettings") -> UserMapping:
    """
    Build the user mapping of one server.

    The base DN comes from 'user.baseDn', or is derived from 'realm'. The legacy
    'user.objectClass' / 'user.loginAttribute' pair takes precedence over
    'user.request' when present.

    Raises:
        ConfigurationError: No base DN can be determined
    """
    base_dn = settings.get_string("user.baseDn")
    if base_dn is None:
        realm = settings.get_string("realm")
        if realm:
            base_dn = realm_to_base_dn(realm)
    if not base_dn:
        raise ConfigurationError(
            f"The property '{settings.key('user.baseDn')}' is empty while it is mandatory "
            f"(or set '{settings.key('realm')}' to derive it)"
        )

    object_class = settings.get_string("user.objectClass")
    login_attribute = settings.get_string("user.loginAttribute")
    if object_class or login_attribute:
        object_class = object_class or DEFAULT_USER_OBJECT_CLASS
        login_attribute = login_attribute or DEFAULT_LOGIN_ATTRIBUTE
        request = f"(&(objectClass={object_class})({login_attribute}={LOGIN_PLACEHOLDER}))"
        # Kept for configurations written before user.request existed
        logger.warning(
            "Properties '%s' and '%s' are deprecated and should be replaced by single property '%s' with value: %s",
            settings.key("user.objectClass"),
            settings.key("user.loginAttribute"),
            settings.key("user.request"),
            request,
        )
    else:
        request = settings.get_string("user.request", DEFAULT_USER_REQUEST)

    return UserMapping(
        base_dn=base_dn,
        request=request.replace(LOGIN_PLACEHOLDER, "{0}"),
        real_name_attribute=settings.get_string("user.realNameAttribute", DEFAULT_NAME_ATTRIBUTE),
        email_attribute=settings.get_string("user.emailAttribute", DEFAULT_EMAIL_ATTRIBUTE),
    )


def find_user(
    bundle: "ServerBundle",
    context: ContextHandle,
    login: str,
    attributes: Sequence[str] = (),
) -> Optional[LdapEntry]:
    """Find the entry of a login with the bundle's user mapping."""
    mapping = bundle.user_mapping
    return find_unique(context, mapping.base_dn, mapping.request, [login], attributes, **bundle.search_limits)


def lookup_user(
    bundles: Sequence["ServerBundle"],
    login: str,
    attributes: Callable[["ServerBundle"], Sequence[str]],
    action: Callable[["ServerBundle", ContextHandle, LdapEntry], T],
) -> T:
    """
    Run ``action`` on the first server where the login resolves.

    Servers are tried in order with a fresh bind context each. A server that
    cannot be reached or cannot be searched is skipped; if no server knows
    the login, the last failure is reported. Once a server has resolved the
    login, the answer comes from that server only: a failure while running
    ``action`` there is raised, never masked by a later server.

    Raises:
        RetrievalError: The login was not found and a server failed, or
            ``action`` failed on the server that resolved it
        NotFoundError: No server knows the login
    """
    failure = None
    for bundle in bundles:
        try:
            context = bundle.context_factory.create_bind_context()
        except ConnectivityError as e:
            logger.debug("Lookup of user %s failed in %s: %s", login, bundle.key, e)
            failure = (bundle.key, e)
            continue

        with context:
            try:
                entry = find_user(bundle, context, login, attributes(bundle))
            except SearchError as e:
                logger.debug("Lookup of user %s failed in %s: %s", login, bundle.key, e)
                failure = (bundle.key, e)
                continue
            if entry is None:
                logger.debug("User %s not found in %s", login, bundle.key)
                continue

            try:
                return action(bundle, context, entry)
            except (ConnectivityError, SearchError) as e:
                logger.warning("Unable to retrieve details for user %s in %s: %s", login, bundle.key, e)
                raise RetrievalError(f"Unable to retrieve details for user {login} in {bundle.key}", login) from e

    if failure is not None:
        key, cause = failure
        raise RetrievalError(f"Unable to retrieve details for user {login} in {key}", login) from cause
    raise NotFoundError(login)


class LdapUsersProvider:
    """Provides display name and email of users."""

    def __init__(self, bundles: Sequence["ServerBundle"]):
        self.bundles = list(bundles)

    def fetch_user_details(self, login: str) -> UserDetails:
        """
        Details of a user from the first server where the login resolves.

        Raises:
            NotFoundError: No server knows the login
            RetrievalError: A server failed before the login was found, or
                the server that resolved it failed afterwards
        """
        logger.debug("Requesting details for user %s", login)

        def details(bundle: "ServerBundle", context: ContextHandle, entry: LdapEntry) -> UserDetails:
            mapping = bundle.user_mapping
            return UserDetails(
                name=entry.get(mapping.real_name_attribute, ""),
                email=entry.get(mapping.email_attribute, ""),
            )

        def attributes(bundle: "ServerBundle") -> List[str]:
            return [bundle.user_mapping.real_name_attribute, bundle.user_mapping.email_attribute]

        return lookup_user(self.bundles, login, attributes, details)
