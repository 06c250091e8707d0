"""Error types and AD bind error code parsing."""

import re
from typing import Optional


class LdapRealmError(Exception):
    """Base class for every error raised by the realm."""


class ConfigurationError(LdapRealmError):
    """A mandatory setting is missing or a setting has an invalid value."""


class ConnectivityError(LdapRealmError):
    """A directory connection could not be opened or bound."""


class TlsNegotiationError(ConnectivityError):
    """The StartTLS extended operation or its TLS handshake failed."""


class InvalidCredentialsError(LdapRealmError):
    """The directory rejected the credentials of a user bind."""

    def __init__(self, message: str, ad_code: Optional[int] = None):
        super().__init__(message)
        self.ad_code = ad_code


class SearchError(LdapRealmError):
    """A search failed at the protocol level or returned an ambiguous result."""


class UnreadableEntryError(SearchError):
    """The directory will not hand out the entry or search base from this context."""


class NoSuchEntryError(UnreadableEntryError):
    """The search base or the entry being read does not exist."""


class NotFoundError(LdapRealmError):
    """No directory entry matches the login."""

    def __init__(self, login: str):
        super().__init__(f"User {login} not found")
        self.login = login


class RetrievalError(LdapRealmError):
    """User details or groups could not be retrieved for a login."""

    def __init__(self, message: str, login: str):
        super().__init__(message)
        self.login = login


class RealmNotReadyError(LdapRealmError):
    """An operation was requested before the realm finished initializing."""


# AD sub-error codes extracted from LDAP error messages (hex values after "data")
# These are Windows System Error Codes (Win32)
# Reference: https://docs.microsoft.com/en-us/windows/win32/debug/system-error-codes
AD_ERROR_CODES = {
    0x525: "ERROR_NO_SUCH_USER",           # 1317 - The specified account does not exist
    0x52e: "ERROR_LOGON_FAILURE",          # 1326 - Unknown user name or bad password
    0x530: "ERROR_INVALID_LOGON_HOURS",    # 1328 - Account logon time restriction violation
    0x531: "ERROR_INVALID_WORKSTATION",    # 1329 - Account not allowed to log on from this computer
    0x532: "ERROR_PASSWORD_EXPIRED",       # 1330 - The password has expired
    0x533: "ERROR_ACCOUNT_DISABLED",       # 1331 - Account currently disabled
    0x534: "ERROR_LOGON_TYPE_NOT_GRANTED", # 1332 - Logon type not granted
    0x701: "ERROR_ACCOUNT_EXPIRED",        # 1793 - The user's account has expired
    0x773: "ERROR_PASSWORD_MUST_CHANGE",   # 1907 - User must change password before first logon
    0x775: "ERROR_ACCOUNT_LOCKED_OUT",     # 1909 - Account is currently locked out
}

# Matches patterns like: "data 52e," or "data 775,"
AD_ERROR_CODE_RE = re.compile(r"data\s+([0-9a-fA-F]+)")


def parse_ad_error_code(error_message: str) -> Optional[int]:
    """Extract the AD-specific error code from an LDAP error message."""
    match = AD_ERROR_CODE_RE.search(error_message or "")
    return int(match.group(1), 16) if match else None


def describe_ad_error_code(ad_code: Optional[int]) -> str:
    """Return the Win32 status name for an AD sub-code, or an empty string."""
    if ad_code is None:
        return ""
    return AD_ERROR_CODES.get(ad_code, f"0x{ad_code:x}")
