"""Group mapping and group membership resolution."""

import logging
import re
from collections import deque
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Sequence, Tuple

from ldap3.core.exceptions import LDAPException
from ldap3.utils.dn import parse_dn

from ..constants import (
    DEFAULT_GROUP_ID_ATTRIBUTE,
    DEFAULT_GROUP_MEMBER_ATTRIBUTE,
    DEFAULT_GROUP_OBJECT_CLASS,
    DEFAULT_GROUP_REQUEST,
    DN_PLACEHOLDER,
)
from ..models import GroupMapping
from .connection import ContextHandle
from .search import LdapEntry, read_entry, search
from .users import lookup_user

if TYPE_CHECKING:
    from ..config import PrefixedSettings
    from ..settings import ServerBundle

logger = logging.getLogger(__name__)

# Named markers: {dn}, {uid}, {sAMAccountName}, ...
NAMED_PLACEHOLDER_RE = re.compile(r"\{([A-Za-z][\w.-]*)\}")


def parse_group_request(template: str) -> Tuple[str, Tuple[str, ...]]:
    """
    Turn named markers into positional ones.

    Each distinct name (compared case-insensitively) gets the next index, in
    order of first appearance.

    Example:
        parse_group_request('(&(memberUid={uid})(x={dn})(y={UID}))')
        # ('(&(memberUid={0})(x={1})(y={0}))', ('uid', 'dn'))
    """
    names: List[str] = []
    indexes: Dict[str, int] = {}

    def replace(match) -> str:
        name = match.group(1)
        lowered = name.lower()
        if lowered not in indexes:
            indexes[lowered] = len(names)
            names.append(name)
        return "{%d}" % indexes[lowered]

    request = NAMED_PLACEHOLDER_RE.sub(replace, template)
    return request, tuple(names)


def build_group_mapping(settings: "PrefixedSettings") -> Optional[GroupMapping]:
    """
    Build the group mapping of one server.

    Returns:
        The mapping, or None when neither 'group.baseDn' nor
        'group.memberOfAttribute' is configured
    """
    base_dn = settings.get_string("group.baseDn")
    member_of_attribute = settings.get_string("group.memberOfAttribute")
    if not base_dn and not member_of_attribute:
        return None

    request = None
    required: Tuple[str, ...] = ()
    if base_dn:
        object_class = settings.get_string("group.objectClass")
        member_attribute = settings.get_string("group.memberAttribute")
        if object_class or member_attribute:
            object_class = object_class or DEFAULT_GROUP_OBJECT_CLASS
            member_attribute = member_attribute or DEFAULT_GROUP_MEMBER_ATTRIBUTE
            template = f"(&(objectClass={object_class})({member_attribute}={{{DN_PLACEHOLDER}}}))"
            logger.warning(
                "Properties '%s' and '%s' are deprecated and should be replaced by single property '%s' with value: %s",
                settings.key("group.objectClass"),
                settings.key("group.memberAttribute"),
                settings.key("group.request"),
                template,
            )
        else:
            template = settings.get_string("group.request", DEFAULT_GROUP_REQUEST)
        request, required = parse_group_request(template)

    return GroupMapping(
        base_dn=base_dn,
        request=request,
        required_user_attributes=required,
        id_attribute=settings.get_string("group.idAttribute", DEFAULT_GROUP_ID_ATTRIBUTE),
        member_of_attribute=member_of_attribute,
        nested=settings.get_bool("group.nested", False),
    )


def _attribute_names(mapping: GroupMapping) -> List[str]:
    """Attributes of a member (user or group) needed to find its groups."""
    names = [n for n in mapping.required_user_attributes if n.lower() != DN_PLACEHOLDER]
    if mapping.member_of_attribute:
        names.append(mapping.member_of_attribute)
    return names


def user_attributes(mapping: GroupMapping) -> List[str]:
    return _attribute_names(mapping)


def group_attributes(mapping: GroupMapping) -> List[str]:
    names = [mapping.id_attribute]
    if mapping.nested:
        names.extend(_attribute_names(mapping))
    return names


def _member_parameters(mapping: GroupMapping, member: LdapEntry) -> Optional[List[str]]:
    parameters = []
    for name in mapping.required_user_attributes:
        if name.lower() == DN_PLACEHOLDER:
            parameters.append(member.dn)
            continue
        value = member.get(name)
        if value is None:
            logger.debug("Entry %s has no attribute %s, skipping group search", member.dn, name)
            return None
        parameters.append(value)
    return parameters


def _rdn_value(dn: str) -> str:
    try:
        return parse_dn(dn, escape=False)[0][1]
    except (LDAPException, IndexError):
        return dn


def group_id(mapping: GroupMapping, group: LdapEntry) -> str:
    """Group identifier: the id attribute, else the value of the first RDN."""
    return group.get(mapping.id_attribute) or _rdn_value(group.dn)


def _groups_listing(bundle: "ServerBundle", context: ContextHandle, member: LdapEntry) -> Iterator[LdapEntry]:
    mapping = bundle.group_mapping
    parameters = _member_parameters(mapping, member)
    if parameters is None:
        return
    yield from search(
        context,
        mapping.base_dn,
        mapping.request,
        parameters,
        group_attributes(mapping),
        **bundle.search_limits,
    )


def _groups_listed_by(bundle: "ServerBundle", context: ContextHandle, member: LdapEntry) -> Iterator[LdapEntry]:
    mapping = bundle.group_mapping
    for dn in member.values(mapping.member_of_attribute):
        entry = read_entry(context, dn, group_attributes(mapping))
        yield entry if entry is not None else LdapEntry(dn, {})


def direct_groups(bundle: "ServerBundle", context: ContextHandle, member: LdapEntry) -> List[LdapEntry]:
    """Groups the member belongs to directly, through both schema styles."""
    mapping = bundle.group_mapping
    found: List[LdapEntry] = []
    if mapping.lists_members:
        found.extend(_groups_listing(bundle, context, member))
    if mapping.user_lists_groups:
        found.extend(_groups_listed_by(bundle, context, member))
    return found


def resolve_groups(bundle: "ServerBundle", context: ContextHandle, user: LdapEntry) -> List[str]:
    """
    Resolve the groups of a user entry.

    Groups of groups are followed breadth-first when the mapping is nested.
    Each group DN is visited at most once, so membership cycles terminate.

    Returns:
        Group ids in discovery order, without duplicates
    """
    mapping = bundle.group_mapping
    ids: Dict[str, None] = {}
    visited = {user.dn.lower()}
    queue = deque([user])
    while queue:
        member = queue.popleft()
        for group in direct_groups(bundle, context, member):
            key = group.dn.lower()
            if key in visited:
                continue
            visited.add(key)
            ids.setdefault(group_id(mapping, group), None)
            if mapping.nested:
                queue.append(group)
    return list(ids)


class LdapGroupsProvider:
    """Provides the group ids of users."""

    def __init__(self, bundles: Sequence["ServerBundle"]):
        self.bundles = [b for b in bundles if b.group_mapping is not None]

    def fetch_groups(self, login: str) -> List[str]:
        """
        Groups of a user from the first server where the login resolves.

        Raises:
            NotFoundError: No server knows the login
            RetrievalError: A server failed before the login was found, or
                the server that resolved it failed afterwards
        """
        logger.debug("Requesting groups for user %s", login)
        if not self.bundles:
            return []

        def attributes(bundle: "ServerBundle") -> List[str]:
            return user_attributes(bundle.group_mapping)

        groups = lookup_user(self.bundles, login, attributes, resolve_groups)
        logger.debug("Groups of %s: %s", login, groups)
        return groups
