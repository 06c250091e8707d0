"""
Pytest configuration with an in-memory ldap3 directory (MOCK_SYNC) shared by
every connection opened against the same Server object.
"""
import pytest
from ldap3 import MOCK_SYNC, NONE, Connection, Server

from ldap_realm.ldap.connection import ContextFactory, ContextHandle
from ldap_realm.settings import LdapSettingsManager

BASE_DN = "dc=example,dc=org"
USERS_DN = f"ou=users,{BASE_DN}"
GROUPS_DN = f"ou=groups,{BASE_DN}"
SERVICE_DN = f"cn=service,{BASE_DN}"
SERVICE_PASSWORD = "service-secret"

JDOE_DN = f"uid=jdoe,{USERS_DN}"
LONER_DN = f"uid=loner,{USERS_DN}"
CYCLIST_DN = f"uid=cyclist,{USERS_DN}"


def user_dn(uid: str) -> str:
    return f"uid={uid},{USERS_DN}"


def group_dn(cn: str) -> str:
    return f"cn={cn},{GROUPS_DN}"


def _populate(connection: Connection) -> None:
    add = connection.strategy.add_entry
    add(BASE_DN, {"objectClass": ["top", "domain"], "dc": "example"})
    add(USERS_DN, {"objectClass": ["top", "organizationalUnit"], "ou": "users"})
    add(GROUPS_DN, {"objectClass": ["top", "organizationalUnit"], "ou": "groups"})
    add(SERVICE_DN, {"objectClass": ["person"], "cn": "service", "sn": "service", "userPassword": SERVICE_PASSWORD})

    add(JDOE_DN, {
        "objectClass": ["inetOrgPerson"],
        "uid": "jdoe",
        "cn": "John Doe",
        "sn": "Doe",
        "mail": "jdoe@example.org",
        "userPassword": "jdoe-secret",
        "memberOf": [group_dn("devs"), group_dn("ghosts")],
    })
    add(LONER_DN, {
        "objectClass": ["inetOrgPerson"],
        "uid": "loner",
        "cn": "Lone Ranger",
        "sn": "Ranger",
        "userPassword": "loner-secret",
    })
    add(CYCLIST_DN, {
        "objectClass": ["inetOrgPerson"],
        "uid": "cyclist",
        "cn": "Cy Clist",
        "sn": "Clist",
        "mail": "cyclist@example.org",
        "userPassword": "cyclist-secret",
    })

    # jdoe -> G1 -> G2
    add(group_dn("G1"), {"objectClass": ["groupOfUniqueNames"], "cn": "G1", "uniqueMember": [JDOE_DN]})
    add(group_dn("G2"), {"objectClass": ["groupOfUniqueNames"], "cn": "G2", "uniqueMember": [group_dn("G1")]})
    # cyclist -> C1 <-> C2
    add(group_dn("C1"), {
        "objectClass": ["groupOfUniqueNames"],
        "cn": "C1",
        "uniqueMember": [CYCLIST_DN, group_dn("C2")],
    })
    add(group_dn("C2"), {"objectClass": ["groupOfUniqueNames"], "cn": "C2", "uniqueMember": [group_dn("C1")]})
    # Read through jdoe's memberOf; "ghosts" has no entry
    add(group_dn("devs"), {"objectClass": ["groupOfNames"], "cn": "devs", "member": [JDOE_DN]})


@pytest.fixture
def directory():
    """A populated fake directory server."""
    server = Server("my_fake_server", get_info=NONE)
    connection = Connection(server, client_strategy=MOCK_SYNC)
    _populate(connection)
    return server


@pytest.fixture
def base_settings():
    return {
        "ldap.url": "ldap://my_fake_server",
        "ldap.bindDn": SERVICE_DN,
        "ldap.bindPassword": SERVICE_PASSWORD,
        "ldap.user.baseDn": USERS_DN,
        "ldap.group.baseDn": GROUPS_DN,
    }


@pytest.fixture
def mock_factory(directory):
    """Builds ContextFactory objects bound to the fake directory."""
    def factory(config):
        return ContextFactory(config, server=directory, client_strategy=MOCK_SYNC)
    return factory


@pytest.fixture
def make_manager(mock_factory):
    """LdapSettingsManager over the fake directory."""
    def make(settings):
        return LdapSettingsManager(settings, context_factory=mock_factory)
    return make


@pytest.fixture
def opened_handles(monkeypatch):
    """Records every ContextHandle created during the test."""
    handles = []
    original_init = ContextHandle.__init__

    def recording_init(self, connection, server_key):
        original_init(self, connection, server_key)
        handles.append(self)

    monkeypatch.setattr(ContextHandle, "__init__", recording_init)
    return handles


UNREACHABLE_URL = "ldap://127.0.0.1:1"


@pytest.fixture
def unreachable_settings():
    return {
        "ldap.url": UNREACHABLE_URL,
        "ldap.connectTimeout": "1",
        "ldap.readTimeout": "1",
        "ldap.bindDn": SERVICE_DN,
        "ldap.bindPassword": SERVICE_PASSWORD,
        "ldap.user.baseDn": USERS_DN,
        "ldap.group.baseDn": GROUPS_DN,
    }
