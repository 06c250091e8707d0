"""Data models for directory configuration and lookup results."""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple

from .constants import (
    AUTH_SUCCESS,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_EMAIL_ATTRIBUTE,
    DEFAULT_GROUP_ID_ATTRIBUTE,
    DEFAULT_NAME_ATTRIBUTE,
    DEFAULT_READ_TIMEOUT,
    DEFAULT_SERVER_KEY,
    DEFINITIVE_AUTH_STATUSES,
    GSSAPI_METHOD,
    SASL_METHODS,
    SETTINGS_PREFIX,
    SIMPLE_METHOD,
)


@dataclass(frozen=True)
class UserMapping:
    """Where and how to find the entry of a user."""
    base_dn: str
    request: str  # filter template with a single {0} marker for the login
    real_name_attribute: str = DEFAULT_NAME_ATTRIBUTE
    email_attribute: str = DEFAULT_EMAIL_ATTRIBUTE

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GroupMapping:
    """
    How group memberships are resolved for a user.

    Two schema styles are supported and may be combined:

    - group lists members: ``base_dn`` is set and ``request`` is searched below it,
      with ``{0}``, ``{1}`` ... substituted by the member's DN or attributes
      named in ``required_user_attributes``
    - user lists groups: ``member_of_attribute`` names a multi-valued attribute
      of the user entry holding group DNs
    """
    base_dn: Optional[str] = None
    request: Optional[str] = None
    required_user_attributes: Tuple[str, ...] = ()
    id_attribute: str = DEFAULT_GROUP_ID_ATTRIBUTE
    member_of_attribute: Optional[str] = None
    nested: bool = False

    @property
    def lists_members(self) -> bool:
        return bool(self.base_dn and self.request)

    @property
    def user_lists_groups(self) -> bool:
        return bool(self.member_of_attribute)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ServerConfig:
    """Connection settings and mappings of one configured directory server."""
    key: str
    urls: Tuple[str, ...]
    user_mapping: UserMapping
    group_mapping: Optional[GroupMapping] = None
    realm: Optional[str] = None
    authentication: str = SIMPLE_METHOD
    bind_dn: Optional[str] = None
    bind_password: Optional[str] = field(default=None, repr=False)
    start_tls: bool = False
    sasl_realm: Optional[str] = None
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    size_limit: int = 0
    time_limit: int = 0
    page_size: int = 0
    follow_referrals: bool = True
    tls_verify: bool = True
    ca_certs_file: Optional[str] = None

    @property
    def url(self) -> str:
        """Space separated URLs, as configured."""
        return " ".join(self.urls)

    @property
    def settings_prefix(self) -> str:
        """Prefix of this server's keys in the flat settings."""
        if self.key == DEFAULT_SERVER_KEY:
            return SETTINGS_PREFIX
        return f"{SETTINGS_PREFIX}.{self.key}"

    @property
    def is_sasl(self) -> bool:
        return self.authentication in SASL_METHODS

    @property
    def is_gssapi(self) -> bool:
        return self.authentication == GSSAPI_METHOD

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view of the configuration, without the bind password."""
        data = asdict(self)
        data.pop("bind_password", None)
        data["urls"] = list(self.urls)
        return data


@dataclass(frozen=True)
class UserDetails:
    """Display name and email of a directory user."""
    name: str
    email: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BindAttempt:
    """Outcome of trying one configured server during authentication."""
    server_key: str
    status: str
    ad_status: str = ""  # Win32 status name decoded from an AD bind error

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AuthResult:
    """Outcome of an authentication across all configured servers."""
    login: str
    attempts: List[BindAttempt] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return any(a.status == AUTH_SUCCESS for a in self.attempts)

    @property
    def server_key(self) -> Optional[str]:
        """Key of the server that accepted the credentials."""
        for attempt in self.attempts:
            if attempt.status == AUTH_SUCCESS:
                return attempt.server_key
        return None

    @property
    def reached_directory(self) -> bool:
        """True when at least one server answered definitively for the login."""
        return any(a.status in DEFINITIVE_AUTH_STATUSES for a in self.attempts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "login": self.login,
            "success": self.success,
            "server_key": self.server_key,
            "attempts": [a.to_dict() for a in self.attempts],
        }
