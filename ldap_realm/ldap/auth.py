"""Authentication checking functions."""

import logging
from typing import TYPE_CHECKING, Sequence

from ..constants import (
    AUTH_INVALID_CREDENTIALS,
    AUTH_LOOKUP_FAILED,
    AUTH_NO_SUCH_USER,
    AUTH_SUCCESS,
    AUTH_TLS_FAILURE,
    AUTH_UNREACHABLE,
)
from ..models import AuthResult, BindAttempt
from .errors import (
    ConnectivityError,
    InvalidCredentialsError,
    SearchError,
    TlsNegotiationError,
    describe_ad_error_code,
)
from .users import find_user

if TYPE_CHECKING:
    from ..settings import ServerBundle

logger = logging.getLogger(__name__)


def _failed_connection(bundle: "ServerBundle", login: str, e: ConnectivityError) -> BindAttempt:
    if isinstance(e, TlsNegotiationError):
        logger.warning("StartTLS failed on %s while authenticating %s: %s", bundle.key, login, e)
        return BindAttempt(bundle.key, AUTH_TLS_FAILURE)
    logger.warning("Unable to reach %s while authenticating %s: %s", bundle.key, login, e)
    return BindAttempt(bundle.key, AUTH_UNREACHABLE)


def check_auth(bundle: "ServerBundle", login: str, password: str) -> BindAttempt:
    """
    Verify a login and password against one configured server.

    The user entry is first resolved with the bind context, then a user
    context is opened with the password. For SASL mechanisms the login itself
    is the principal; otherwise the user DN is.

    Args:
        bundle: The server to check against
        login: Login of the user
        password: Password to verify (never logged)

    Returns:
        BindAttempt whose status is one of SUCCESS, NO_SUCH_USER,
        INVALID_CREDENTIALS, UNREACHABLE, TLS_FAILURE or LOOKUP_FAILED. For
        rejected AD binds, ad_status carries the decoded sub-error
        (e.g., 'ERROR_ACCOUNT_LOCKED_OUT').
    """
    try:
        with bundle.context_factory.create_bind_context() as context:
            entry = find_user(bundle, context, login)
    except ConnectivityError as e:
        return _failed_connection(bundle, login, e)
    except SearchError as e:
        logger.warning("Unable to look up %s in %s: %s", login, bundle.key, e)
        return BindAttempt(bundle.key, AUTH_LOOKUP_FAILED)

    if entry is None:
        logger.debug("User %s not found in %s", login, bundle.key)
        return BindAttempt(bundle.key, AUTH_NO_SUCH_USER)

    principal = login if bundle.context_factory.is_sasl else entry.dn
    try:
        with bundle.context_factory.create_user_context(principal, password):
            pass
    except InvalidCredentialsError as e:
        ad_status = describe_ad_error_code(e.ad_code)
        logger.debug("Password rejected for %s in %s %s", login, bundle.key, ad_status)
        return BindAttempt(bundle.key, AUTH_INVALID_CREDENTIALS, ad_status)
    except ConnectivityError as e:
        return _failed_connection(bundle, login, e)

    logger.debug("User %s authenticated in %s", login, bundle.key)
    return BindAttempt(bundle.key, AUTH_SUCCESS)


class LdapAuthenticator:
    """Verifies logins and passwords across the configured servers, in order."""

    def __init__(self, bundles: Sequence["ServerBundle"]):
        self.bundles = list(bundles)

    def authenticate(self, login: str, password: str) -> AuthResult:
        """
        Try every server until one accepts the credentials.

        A blank password is rejected without contacting any server, since
        most directories treat it as an unauthenticated bind.
        """
        result = AuthResult(login=login)
        if not password:
            logger.debug("Blank password rejected for %s", login)
            return result

        for bundle in self.bundles:
            attempt = check_auth(bundle, login, password)
            result.attempts.append(attempt)
            if attempt.status == AUTH_SUCCESS:
                break
        return result
