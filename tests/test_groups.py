"""Tests for group mapping and membership resolution."""
import logging

import pytest

from ldap_realm.config import PrefixedSettings
from ldap_realm.ldap.errors import NotFoundError, RetrievalError
from ldap_realm.ldap.groups import LdapGroupsProvider, build_group_mapping, parse_group_request
from ldap_realm.settings import LdapSettingsManager

from tests.conftest import GROUPS_DN, SERVICE_DN, SERVICE_PASSWORD, USERS_DN


def groups_of(make_manager, settings, login):
    return LdapGroupsProvider(make_manager(settings).get_bundles()).fetch_groups(login)


def test_parse_group_request():
    request, names = parse_group_request("(&(objectClass=posixGroup)(|(memberUid={uid})(member={dn})(x={UID})))")
    assert request == "(&(objectClass=posixGroup)(|(memberUid={0})(member={1})(x={0})))"
    assert names == ("uid", "dn")


def test_no_group_mapping_without_base_dn():
    assert build_group_mapping(PrefixedSettings({"ldap.url": "ldap://host"}, "ldap")) is None


def test_default_group_mapping():
    mapping = build_group_mapping(PrefixedSettings({"ldap.group.baseDn": GROUPS_DN}, "ldap"))
    assert mapping.request == "(&(objectClass=groupOfUniqueNames)(uniqueMember={0}))"
    assert mapping.required_user_attributes == ("dn",)
    assert mapping.id_attribute == "cn"
    assert mapping.lists_members
    assert not mapping.user_lists_groups
    assert not mapping.nested


def test_legacy_group_keys(caplog):
    with caplog.at_level(logging.WARNING):
        mapping = build_group_mapping(PrefixedSettings({
            "ldap.group.baseDn": GROUPS_DN,
            "ldap.group.objectClass": "group",
            "ldap.group.memberAttribute": "member",
        }, "ldap"))
    assert mapping.request == "(&(objectClass=group)(member={0}))"
    assert "deprecated" in caplog.text


def test_member_of_only_mapping():
    mapping = build_group_mapping(PrefixedSettings({"ldap.group.memberOfAttribute": "memberOf"}, "ldap"))
    assert mapping.user_lists_groups
    assert not mapping.lists_members


def test_direct_groups(make_manager, base_settings):
    assert groups_of(make_manager, base_settings, "jdoe") == ["G1"]


def test_nested_groups(make_manager, base_settings):
    settings = dict(base_settings, **{"ldap.group.nested": "true"})
    assert groups_of(make_manager, settings, "jdoe") == ["G1", "G2"]


def test_nested_cycle_terminates(make_manager, base_settings):
    settings = dict(base_settings, **{"ldap.group.nested": "true"})
    assert groups_of(make_manager, settings, "cyclist") == ["C1", "C2"]


def test_user_without_groups(make_manager, base_settings):
    assert groups_of(make_manager, base_settings, "loner") == []


def test_group_request_with_user_attribute(make_manager, base_settings):
    settings = dict(base_settings, **{"ldap.group.request": "(&(objectClass=groupOfNames)(member=uid={uid},ou=users,dc=example,dc=org))"})
    assert groups_of(make_manager, settings, "jdoe") == ["devs"]


def test_member_of_groups(make_manager, base_settings):
    settings = dict(base_settings, **{"ldap.group.memberOfAttribute": "memberOf"})
    settings.pop("ldap.group.baseDn")
    # "ghosts" has no entry: its id comes from the DN
    assert groups_of(make_manager, settings, "jdoe") == ["devs", "ghosts"]


def test_both_styles_are_merged(make_manager, base_settings):
    settings = dict(base_settings, **{"ldap.group.memberOfAttribute": "memberOf"})
    assert groups_of(make_manager, settings, "jdoe") == ["G1", "devs", "ghosts"]


def test_unknown_user(make_manager, base_settings):
    with pytest.raises(NotFoundError):
        groups_of(make_manager, base_settings, "nobody")


def test_no_group_mapping_returns_no_groups(make_manager, base_settings):
    settings = dict(base_settings)
    settings.pop("ldap.group.baseDn")
    assert groups_of(make_manager, settings, "jdoe") == []


def test_unreachable_directory_names_login(unreachable_settings):
    provider = LdapGroupsProvider(LdapSettingsManager(unreachable_settings).get_bundles())
    with pytest.raises(RetrievalError, match="jdoe"):
        provider.fetch_groups("jdoe")


def test_contexts_closed(make_manager, base_settings, opened_handles):
    settings = dict(base_settings, **{"ldap.group.nested": "true"})
    provider = LdapGroupsProvider(make_manager(settings).get_bundles())
    provider.fetch_groups("cyclist")
    provider.fetch_groups("loner")
    assert len(opened_handles) == 2
    assert all(h.closed for h in opened_handles)


def two_servers(first_group_base):
    settings = {"ldap.servers": "first, second"}
    for key, group_base in (("first", first_group_base), ("second", GROUPS_DN)):
        settings.update({
            f"ldap.{key}.url": "ldap://my_fake_server",
            f"ldap.{key}.bindDn": SERVICE_DN,
            f"ldap.{key}.bindPassword": SERVICE_PASSWORD,
            f"ldap.{key}.user.baseDn": USERS_DN,
            f"ldap.{key}.group.baseDn": group_base,
        })
    return settings


def test_failure_after_user_resolved_is_not_masked(make_manager, opened_handles):
    provider = LdapGroupsProvider(make_manager(two_servers("ou=missing,dc=example,dc=org")).get_bundles())
    with pytest.raises(RetrievalError, match="jdoe") as excinfo:
        provider.fetch_groups("jdoe")
    assert "first" in str(excinfo.value)
    assert excinfo.value.login == "jdoe"
    # the second server is never asked
    assert len(opened_handles) == 1
    assert opened_handles[0].closed


def test_first_resolving_server_answers(make_manager):
    provider = LdapGroupsProvider(make_manager(two_servers(GROUPS_DN)).get_bundles())
    assert provider.fetch_groups("jdoe") == ["G1"]
