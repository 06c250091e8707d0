"""Configuration file handling and typed access to flat settings."""

import configparser
from typing import Dict, Iterable, Mapping, Optional

from .constants import SETTINGS_PREFIX
from .ldap.errors import ConfigurationError


DEFAULT_CONFIG_TEMPLATE = """\
# ldap-realm Configuration File
# -----------------------------
# Keys of the [ldap] section become 'ldap.<key>' settings.
# For several directory servers, list their keys in 'servers' and configure
# each one in its own [ldap.<key>] section; they are tried in that order.

[ldap]
# Directory server URL(s), space separated. Leave empty to discover the
# servers from the DNS SRV records of 'realm'.
url = ldap://ldap.example.org:389
# DNS realm, used for autodiscovery and as the SASL realm
realm =
# Service account used for searches (leave empty for anonymous searches)
bindDn = cn=sonar,ou=users,dc=example,dc=org
bindPassword = secret
# simple (default), DIGEST-MD5 or GSSAPI
authentication = simple
# Upgrade the connection with StartTLS before binding
StartTLS = false
# Verify the server certificate for LDAPS and StartTLS
tls.verify = true
tls.caCertsFile =
# Timeouts in seconds
connectTimeout = 10
readTimeout = 30
# Search limits (0 = server default). pageSize enables paged results.
sizeLimit = 0
timeLimit = 0
pageSize = 0

# User mapping
user.baseDn = ou=users,dc=example,dc=org
# {login} is replaced by the (escaped) login
user.request = (&(objectClass=inetOrgPerson)(uid={login}))
user.realNameAttribute = cn
user.emailAttribute = mail

# Group mapping (optional)
# Groups listing their members: {dn} is replaced by the member DN, any other
# {attribute} by that attribute of the user entry
group.baseDn = ou=groups,dc=example,dc=org
group.request = (&(objectClass=groupOfUniqueNames)(uniqueMember={dn}))
group.idAttribute = cn
# Users listing their groups, e.g. memberOf
group.memberOfAttribute =
# Also resolve groups of groups
group.nested = false

# Multiple servers example:
# [ldap]
# servers = primary, backup
#
# [ldap.primary]
# url = ldap://ldap1.example.org
# user.baseDn = ou=users,dc=example,dc=org
#
# [ldap.backup]
# url = ldap://ldap2.example.org
# user.baseDn = ou=users,dc=example,dc=org
"""

TRUE_VALUES = {"true", "yes", "on", "1"}
FALSE_VALUES = {"false", "no", "off", "0"}


class PrefixedSettings:
    """
    Typed read access to the keys sharing one prefix in the flat settings.

    Blank values are treated as absent.

    Example:
        view = PrefixedSettings({'ldap.url': 'ldap://host'}, 'ldap')
        view.get_string('url')  # 'ldap://host'
    """

    def __init__(self, settings: Mapping[str, str], prefix: str):
        self.settings = settings
        self.prefix = prefix

    def key(self, name: str) -> str:
        return f"{self.prefix}.{name}"

    def get_string(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = self.settings.get(self.key(name))
        if value is None:
            return default
        value = str(value).strip()
        return value if value else default

    def get_bool(self, name: str, default: bool = False) -> bool:
        value = self.get_string(name)
        if value is None:
            return default
        lowered = value.lower()
        if lowered in TRUE_VALUES:
            return True
        if lowered in FALSE_VALUES:
            return False
        raise ConfigurationError(f"Property '{self.key(name)}' must be a boolean, got '{value}'")

    def get_int(self, name: str, default: int = 0) -> int:
        value = self.get_string(name)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            raise ConfigurationError(f"Property '{self.key(name)}' must be an integer, got '{value}'")

    def get_float(self, name: str, default: float = 0.0) -> float:
        value = self.get_string(name)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            raise ConfigurationError(f"Property '{self.key(name)}' must be a number, got '{value}'")


def load_config(config_path: str) -> Dict[str, str]:
    """
    Load settings from an INI file.

    The [ldap] section maps to 'ldap.<key>' settings and every [ldap.<server>]
    section to 'ldap.<server>.<key>'. Other sections are ignored.
    """
    config = configparser.ConfigParser(interpolation=None)
    # Keys such as bindDn and StartTLS are case sensitive
    config.optionxform = str
    if not config.read(config_path):
        raise ConfigurationError(f"Configuration file '{config_path}' does not exist or is unreadable")

    result: Dict[str, str] = {}
    for section in config.sections():
        if section != SETTINGS_PREFIX and not section.startswith(SETTINGS_PREFIX + "."):
            continue
        for key, value in config.items(section):
            result[f"{section}.{key}"] = value
    return result


def apply_overrides(settings: Mapping[str, str], overrides: Iterable[str]) -> Dict[str, str]:
    """
    Apply 'key=value' overrides on top of the settings. Overrides take precedence.
    """
    result = dict(settings)
    for override in overrides or ():
        key, sep, value = override.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ConfigurationError(f"Invalid override '{override}', expected key=value")
        result[key] = value.strip()
    return result


def generate_config_file(output_path: Optional[str] = None) -> str:
    """Generate a template configuration file."""
    if output_path:
        with open(output_path, 'w') as f:
            f.write(DEFAULT_CONFIG_TEMPLATE)
        return f"Configuration template written to: {output_path}"
    else:
        return DEFAULT_CONFIG_TEMPLATE
