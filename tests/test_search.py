"""Tests for filter escaping and directory searches."""
import pytest
from ldap3 import BASE

from ldap_realm.ldap.connection import ContextHandle
from ldap_realm.ldap.errors import NoSuchEntryError, SearchError, UnreadableEntryError
from ldap_realm.ldap.search import find_unique, format_filter, read_entry, search

from tests.conftest import BASE_DN, GROUPS_DN, JDOE_DN, USERS_DN

USER_REQUEST = "(&(objectClass=inetOrgPerson)(uid={0}))"


@pytest.fixture
def context(make_manager, base_settings):
    bundle = make_manager(base_settings).get_bundles()[0]
    with bundle.context_factory.create_bind_context() as ctx:
        yield ctx


def test_format_filter_escapes_metacharacters():
    assert format_filter("(uid={0})", ["*"]) == r"(uid=\2a)"
    assert format_filter("(cn={0})", ["a(b)c\\d"]) == r"(cn=a\28b\29c\5cd)"
    assert format_filter("(cn={0})", ["nul\x00"]) == r"(cn=nul\00)"


def test_format_filter_reuses_parameters():
    assert format_filter("(|(uid={0})(mail={1})(cn={0}))", ["jdoe", "j@x"]) == "(|(uid=jdoe)(mail=j@x)(cn=jdoe))"


def test_format_filter_missing_parameter():
    with pytest.raises(SearchError):
        format_filter("(uid={1})", ["jdoe"])


def test_search_returns_entries_with_attributes(context):
    entries = list(search(context, USERS_DN, USER_REQUEST, ["jdoe"], ["cn", "mail"]))
    assert len(entries) == 1
    assert entries[0].dn == JDOE_DN
    assert entries[0].get("CN") == "John Doe"
    assert entries[0].values("mail") == ["jdoe@example.org"]


def test_wildcard_login_matches_nothing(context):
    assert list(search(context, USERS_DN, USER_REQUEST, ["*"])) == []


def test_injected_filter_matches_nothing(context):
    assert list(search(context, USERS_DN, USER_REQUEST, ["jdoe)(uid=*"])) == []


def test_search_is_lazy(context):
    entries = search(context, "ou=missing," + BASE_DN, USER_REQUEST, ["jdoe"])
    # Nothing is sent until iteration starts
    with pytest.raises(NoSuchEntryError):
        next(entries)


def test_closed_context_invalidates_pending_search(context):
    entries = search(context, USERS_DN, "(objectClass=inetOrgPerson)")
    context.close()
    with pytest.raises(SearchError):
        list(entries)


def test_find_unique(context):
    assert find_unique(context, USERS_DN, USER_REQUEST, ["jdoe"]).dn == JDOE_DN
    assert find_unique(context, USERS_DN, USER_REQUEST, ["nobody"]) is None


def test_find_unique_rejects_several_entries(context):
    with pytest.raises(SearchError):
        find_unique(context, USERS_DN, "(objectClass=inetOrgPerson)")


def test_read_entry(context):
    entry = read_entry(context, f"cn=G1,{GROUPS_DN}", ["cn"])
    assert entry.get("cn") == "G1"
    assert read_entry(context, f"cn=nothing,{GROUPS_DN}", ["cn"]) is None


def test_base_scope_search(context):
    entries = list(search(context, JDOE_DN, "(objectClass=*)", attributes=["uid"], scope=BASE))
    assert [e.get("uid") for e in entries] == ["jdoe"]


class RefusingConnection:
    """Answers every search with the same non-success result and no entries."""

    def __init__(self, code, description):
        self.result = None
        self.response = None
        self._answer = {"result": code, "description": description}

    def search(self, **kwargs):
        self.result = dict(self._answer)
        self.response = []
        return False

    def unbind(self):
        return True


@pytest.mark.parametrize("code, description", [
    (50, "insufficientAccessRights"),
    (10, "referral"),
])
def test_read_entry_hidden_from_context(code, description):
    with ContextHandle(RefusingConnection(code, description), "default") as context:
        assert read_entry(context, f"cn=secret,{GROUPS_DN}", ["cn"]) is None


def test_search_hidden_base_is_unreadable():
    with ContextHandle(RefusingConnection(50, "insufficientAccessRights"), "default") as context:
        with pytest.raises(UnreadableEntryError):
            list(search(context, GROUPS_DN, "(cn={0})", ["G1"]))


def test_search_other_failures_still_raise():
    with ContextHandle(RefusingConnection(51, "busy"), "default") as context:
        with pytest.raises(SearchError) as info:
            read_entry(context, f"cn=G1,{GROUPS_DN}")
    assert not isinstance(info.value, UnreadableEntryError)
