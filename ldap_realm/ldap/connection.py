"""Context factory for opening authenticated directory connections."""

import logging
import ssl
from typing import Any, Dict, Optional, Union

from ldap3 import (
    ANONYMOUS,
    DIGEST_MD5,
    FIRST,
    KERBEROS,
    NONE,
    SASL,
    SIMPLE,
    SYNC,
    Connection,
    Server,
    ServerPool,
    Tls,
)
from ldap3.core.exceptions import LDAPException

from ..constants import CRAM_MD5_METHOD, DIGEST_MD5_METHOD, GSSAPI_METHOD, SASL_METHODS, SIMPLE_METHOD
from ..models import ServerConfig
from .errors import (
    ConfigurationError,
    ConnectivityError,
    InvalidCredentialsError,
    TlsNegotiationError,
    parse_ad_error_code,
)

logger = logging.getLogger(__name__)

# ldap3 mechanism names for the supported SASL methods
_SASL_MECHANISMS = {
    DIGEST_MD5_METHOD: DIGEST_MD5,
    GSSAPI_METHOD: KERBEROS,
}

# krb5 error table: "Cannot contact any KDC for requested realm"
KRB5_KDC_UNREACH = -1765328228


def acquire_kerberos_credentials(principal: str, password: Optional[str]) -> Any:
    """
    Obtain initiator credentials for a principal from its password.

    The process ticket cache is neither read nor written, so the returned
    credentials prove that this password is valid for this principal.

    Raises:
        ConfigurationError: The gssapi package is not installed
        InvalidCredentialsError: The KDC rejected the principal or password
        ConnectivityError: No KDC could be reached
    """
    if not password:
        raise InvalidCredentialsError(f"No password given for Kerberos principal {principal}")
    try:
        import gssapi
        import gssapi.raw as gssapi_raw
    except ImportError as e:
        raise ConfigurationError(
            "GSSAPI authentication requires the 'gssapi' package (pip install ldap-realm[kerberos])"
        ) from e

    try:
        name = gssapi.Name(principal, gssapi.NameType.kerberos_principal)
        result = gssapi_raw.acquire_cred_with_password(name, password.encode("utf-8"), usage="initiate")
    except gssapi.exceptions.GSSError as e:
        min_code = getattr(e, "min_code", None)
        if min_code is not None and (min_code & 0xFFFFFFFF) == (KRB5_KDC_UNREACH & 0xFFFFFFFF):
            raise ConnectivityError(f"Unable to reach a KDC for {principal}: {e}") from e
        raise InvalidCredentialsError(f"Kerberos login rejected for {principal}: {e}") from e
    return result.creds


class ContextHandle:
    """
    An open, bound connection owned by a single operation.

    The handle closes its connection exactly once, whichever of ``close()`` or
    the context manager exit comes first.

    Example:
        with factory.create_bind_context() as ctx:
            entries = list(search(ctx, base_dn, request, [login]))
    """

    def __init__(self, connection: Connection, server_key: str):
        self.connection = connection
        self.server_key = server_key
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Unbind and release the connection."""
        if self._closed:
            return
        self._closed = True
        try:
            self.connection.unbind()
        except (LDAPException, OSError) as e:
            logger.debug("Error while closing LDAP context on %s: %s", self.server_key, e)

    def __enter__(self) -> "ContextHandle":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False


class ContextFactory:
    """
    Builds authenticated contexts for one configured directory server.

    Attributes:
        config: The server configuration
        server: The ldap3 Server (or ServerPool) connections are opened against
        client_strategy: ldap3 client strategy used for every connection
    """

    def __init__(
        self,
        config: ServerConfig,
        server: Optional[Union[Server, ServerPool]] = None,
        client_strategy: str = SYNC,
    ):
        """
        Args:
            config: Server configuration
            server: Use this ldap3 server instead of building one from the URLs
            client_strategy: ldap3 client strategy (MOCK_SYNC in tests)
        """
        if config.authentication == CRAM_MD5_METHOD:
            raise ConfigurationError(
                f"Authentication method {CRAM_MD5_METHOD} configured in "
                f"'{config.settings_prefix}.authentication' is not supported by the directory client"
            )
        if config.authentication != SIMPLE_METHOD and config.authentication not in SASL_METHODS:
            raise ConfigurationError(
                f"Unknown authentication method '{config.authentication}' in "
                f"'{config.settings_prefix}.authentication'"
            )
        self.config = config
        self.client_strategy = client_strategy
        self.server = server if server is not None else self._build_server()

    def _build_tls(self) -> Tls:
        """TLS settings shared by LDAPS and StartTLS."""
        tls_kwargs: Dict[str, Any] = {
            "validate": ssl.CERT_REQUIRED if self.config.tls_verify else ssl.CERT_NONE,
        }
        if self.config.tls_verify and self.config.ca_certs_file:
            tls_kwargs["ca_certs_file"] = self.config.ca_certs_file
        return Tls(**tls_kwargs)

    def _build_server(self) -> Union[Server, ServerPool]:
        """One Server per URL; several URLs are tried in order, once."""
        tls = self._build_tls()
        servers = [
            Server(url, get_info=NONE, tls=tls, connect_timeout=self.config.connect_timeout)
            for url in self.config.urls
        ]
        if len(servers) == 1:
            return servers[0]
        return ServerPool(servers, pool_strategy=FIRST, active=1, exhaust=False)

    @property
    def provider_url(self) -> str:
        return self.config.url

    @property
    def is_sasl(self) -> bool:
        return self.config.is_sasl

    @property
    def is_gssapi(self) -> bool:
        return self.config.is_gssapi

    def create_bind_context(self) -> ContextHandle:
        """Open a context bound as the configured service account (or anonymously)."""
        return self._create_context(self.config.bind_dn, self.config.bind_password, user_context=False)

    def create_user_context(self, principal: str, credentials: str) -> ContextHandle:
        """
        Open a context bound as an end user.

        Raises:
            InvalidCredentialsError: The directory rejected the credentials
            TlsNegotiationError: StartTLS failed
            ConnectivityError: The directory could not be reached
        """
        return self._create_context(principal, credentials, user_context=True)

    def test_connection(self) -> None:
        """
        Open and immediately close a bind context.

        Raises:
            ConfigurationError: A SASL mechanism is configured without a bind DN
            TlsNegotiationError: StartTLS failed
            ConnectivityError: The directory is unreachable or rejected the bind
        """
        if self.is_sasl and not self.config.bind_dn:
            raise ConfigurationError(
                f"When using SASL - property {self.config.settings_prefix}.bindDn is required"
            )
        try:
            with self.create_bind_context():
                pass
        except ConnectivityError:
            logger.info("Test LDAP connection on %s: FAIL", self.provider_url)
            raise
        logger.info("Test LDAP connection on %s: OK", self.provider_url)

    def _kerberos_principal(self, principal: str) -> str:
        if "@" not in principal and self.config.sasl_realm:
            return f"{principal}@{self.config.sasl_realm.upper()}"
        return principal

    def _kerberos_credentials(self, principal: str, credentials: Optional[str], user_context: bool) -> Any:
        """Ticket for the principal, so the GSSAPI bind proves its password."""
        try:
            return acquire_kerberos_credentials(self._kerberos_principal(principal), credentials)
        except InvalidCredentialsError as e:
            if user_context:
                raise
            raise ConnectivityError(f"Kerberos login as {principal} failed for {self.provider_url}: {e}") from e

    def _environment(
        self,
        principal: Optional[str],
        credentials: Optional[str],
        kerberos_credentials: Any = None,
    ) -> Dict[str, Any]:
        """Build Connection() parameters."""
        env: Dict[str, Any] = {
            "client_strategy": self.client_strategy,
            "read_only": True,
            "auto_referrals": self.config.follow_referrals,
            "receive_timeout": self.config.read_timeout,
            "raise_exceptions": False,
        }
        if self.is_sasl:
            env["authentication"] = SASL
            env["sasl_mechanism"] = _SASL_MECHANISMS[self.config.authentication]
            if self.config.authentication == DIGEST_MD5_METHOD:
                env["sasl_credentials"] = (self.config.sasl_realm, principal, credentials, None)
            elif kerberos_credentials is not None:
                env["sasl_credentials"] = (None, None, kerberos_credentials)
        elif principal:
            env["authentication"] = SIMPLE
            env["user"] = principal
            env["password"] = credentials
        else:
            env["authentication"] = ANONYMOUS

        # Only non-secret values are logged
        logger.debug(
            "Initializing LDAP context url=%s authentication=%s principal=%s realm=%s startTLS=%s",
            self.provider_url,
            self.config.authentication,
            principal,
            self.config.sasl_realm,
            self.config.start_tls,
        )
        return env

    def _create_context(self, principal: Optional[str], credentials: Optional[str], user_context: bool) -> ContextHandle:
        kerberos_credentials = None
        if self.is_gssapi and principal:
            kerberos_credentials = self._kerberos_credentials(principal, credentials, user_context)
        elif self.is_gssapi and user_context:
            raise InvalidCredentialsError("GSSAPI bind requires a principal")

        connection = Connection(self.server, **self._environment(principal, credentials, kerberos_credentials))
        handle = ContextHandle(connection, self.config.key)
        try:
            self._open(connection)
            self._bind(connection, principal, user_context)
        except BaseException:
            handle.close()
            raise
        return handle

    def _open(self, connection: Connection) -> None:
        """Open the socket, upgrading it with StartTLS when configured."""
        try:
            connection.open(read_server_info=False)
        except LDAPException as e:
            raise ConnectivityError(f"Unable to open LDAP connection to {self.provider_url}: {e}") from e

        if not self.config.start_tls:
            return
        try:
            started = connection.start_tls(read_server_info=False)
        except LDAPException as e:
            raise TlsNegotiationError(f"StartTLS failed on {self.provider_url}: {e}") from e
        if not started:
            description = (connection.result or {}).get("description", "unknown error")
            raise TlsNegotiationError(f"StartTLS failed on {self.provider_url}: {description}")

    def _bind(self, connection: Connection, principal: Optional[str], user_context: bool) -> None:
        try:
            bound = connection.bind()
        except LDAPException as e:
            raise ConnectivityError(f"Unable to bind to {self.provider_url}: {e}") from e
        if bound:
            return

        result = dict(connection.result or {})
        message = result.get("message") or ""
        description = result.get("description") or "unknown error"
        if user_context:
            raise InvalidCredentialsError(
                f"Bind rejected for {principal}: {description}",
                ad_code=parse_ad_error_code(message),
            )
        raise ConnectivityError(f"Bind as {principal or 'anonymous'} rejected by {self.provider_url}: {description}")

    def __repr__(self) -> str:
        return (
            f"ContextFactory(url={self.provider_url!r}, authentication={self.config.authentication!r}, "
            f"bindDn={self.config.bind_dn!r}, realm={self.config.sasl_realm!r})"
        )
