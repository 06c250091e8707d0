"""Constants used throughout the application."""


class Colors:
    """ANSI color codes for terminal output."""
    NC = '\033[0m'
    RED = '\033[0;31m'
    BLUE = '\033[0;34m'
    GREEN = '\033[0;32m'
    LBLUE = '\033[1;34m'
    ORANGE = '\033[0;33m'

    @classmethod
    def disable(cls):
        """Disable colors (for non-TTY output)."""
        cls.NC = cls.RED = cls.BLUE = cls.GREEN = cls.LBLUE = cls.ORANGE = ''


REALM_NAME = "LDAP"

# Settings namespace
SETTINGS_PREFIX = "ldap"
SERVERS_KEY = "ldap.servers"
DEFAULT_SERVER_KEY = "default"

# Authentication mechanisms
SIMPLE_METHOD = "simple"
DIGEST_MD5_METHOD = "DIGEST-MD5"
CRAM_MD5_METHOD = "CRAM-MD5"
GSSAPI_METHOD = "GSSAPI"
SASL_METHODS = (DIGEST_MD5_METHOD, CRAM_MD5_METHOD, GSSAPI_METHOD)

# Connection defaults (seconds)
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 30.0

# User mapping defaults
DEFAULT_USER_OBJECT_CLASS = "inetOrgPerson"
DEFAULT_LOGIN_ATTRIBUTE = "uid"
DEFAULT_NAME_ATTRIBUTE = "cn"
DEFAULT_EMAIL_ATTRIBUTE = "mail"
DEFAULT_USER_REQUEST = "(&(objectClass=inetOrgPerson)(uid={login}))"
LOGIN_PLACEHOLDER = "{login}"

# Group mapping defaults
DEFAULT_GROUP_OBJECT_CLASS = "groupOfUniqueNames"
DEFAULT_GROUP_MEMBER_ATTRIBUTE = "uniqueMember"
DEFAULT_GROUP_ID_ATTRIBUTE = "cn"
DEFAULT_GROUP_REQUEST = "(&(objectClass=groupOfUniqueNames)(uniqueMember={dn}))"
DN_PLACEHOLDER = "dn"

# DNS service name used for directory autodiscovery
LDAP_SRV_PREFIX = "_ldap._tcp."

# Per-bundle authentication outcomes
AUTH_SUCCESS = "SUCCESS"
AUTH_NO_SUCH_USER = "NO_SUCH_USER"
AUTH_INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
AUTH_UNREACHABLE = "UNREACHABLE"
AUTH_TLS_FAILURE = "TLS_FAILURE"
AUTH_LOOKUP_FAILED = "LOOKUP_FAILED"

# Outcomes where the directory gave a definitive answer about the login
DEFINITIVE_AUTH_STATUSES = {
    AUTH_SUCCESS,
    AUTH_NO_SUCH_USER,
    AUTH_INVALID_CREDENTIALS,
}
