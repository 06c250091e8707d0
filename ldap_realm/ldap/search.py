"""Parameterized directory searches."""

import logging
import re
from typing import Any, Dict, Iterator, List, Optional, Sequence

from ldap3 import BASE, SUBTREE
from ldap3.core.exceptions import LDAPException
from ldap3.core.results import (
    RESULT_INSUFFICIENT_ACCESS_RIGHTS,
    RESULT_NO_SUCH_OBJECT,
    RESULT_REFERRAL,
    RESULT_SIZE_LIMIT_EXCEEDED,
    RESULT_SUCCESS,
)
from ldap3.utils.ciDict import CaseInsensitiveDict
from ldap3.utils.conv import escape_filter_chars

from .connection import ContextHandle
from .errors import NoSuchEntryError, SearchError, UnreadableEntryError

logger = logging.getLogger(__name__)

# Positional markers: {0}, {1}, ...
PARAMETER_RE = re.compile(r"\{(\d+)\}")

# Result codes after which the returned entries are usable
_USABLE_RESULTS = (RESULT_SUCCESS, RESULT_SIZE_LIMIT_EXCEEDED)

# Result codes for an entry that exists but cannot be read from this context
_UNREADABLE_RESULTS = (RESULT_INSUFFICIENT_ACCESS_RIGHTS, RESULT_REFERRAL)


class LdapEntry:
    """
    One directory entry: its DN and a case-insensitive map of attribute values.

    Every attribute maps to a list of strings, in the order returned by the
    directory.
    """

    def __init__(self, dn: str, attributes: Dict[str, List[str]]):
        self.dn = dn
        self.attributes = CaseInsensitiveDict(attributes)

    def values(self, name: str) -> List[str]:
        return list(self.attributes.get(name) or [])

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of an attribute."""
        values = self.attributes.get(name)
        return values[0] if values else default

    def __repr__(self) -> str:
        return f"LdapEntry({self.dn!r})"


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _to_entry(response_item: Dict[str, Any]) -> LdapEntry:
    """Translate an ldap3 response item, using raw values to stay schema independent."""
    raw = response_item.get("raw_attributes") or {}
    attributes = {name: [_decode(v) for v in values] for name, values in raw.items()}
    return LdapEntry(response_item.get("dn", ""), attributes)


def format_filter(request: str, parameters: Sequence[str]) -> str:
    """
    Substitute escaped parameters into a filter template.

    Each ``{n}`` marker is replaced by ``parameters[n]`` with the filter
    metacharacters ``\\ * ( )`` and NUL escaped, so the value is always matched
    literally.

    Raises:
        SearchError: A marker refers to a missing parameter
    """
    def replace(match) -> str:
        index = int(match.group(1))
        if index >= len(parameters):
            raise SearchError(f"No parameter {index} for filter {request}")
        return escape_filter_chars(str(parameters[index]))

    return PARAMETER_RE.sub(replace, request)


def search(
    context: ContextHandle,
    base_dn: str,
    request: str,
    parameters: Sequence[str] = (),
    attributes: Optional[Sequence[str]] = None,
    scope=SUBTREE,
    size_limit: int = 0,
    time_limit: int = 0,
    page_size: int = 0,
) -> Iterator[LdapEntry]:
    """
    Perform a parameterized LDAP search.

    Args:
        context: Open context to search with
        base_dn: Search base
        request: Filter template with positional markers
        parameters: Values substituted (escaped) into the template
        attributes: Attributes to retrieve (default: none, DN only)
        scope: Search scope (SUBTREE, BASE, LEVEL)
        size_limit: Directory-side entry limit (0 = server default)
        time_limit: Directory-side time limit in seconds (0 = server default)
        page_size: Use the simple paged results control with this page size

    Returns:
        Lazy iterator of LdapEntry objects. It can be consumed once; closing the
        context before it is exhausted makes the next step raise SearchError.
    """
    search_filter = format_filter(request, parameters)
    attribute_list = list(attributes) if attributes else None
    logger.debug("Search base=%s filter=%s attributes=%s", base_dn, search_filter, attribute_list)

    if page_size:
        return _paged_search(
            context, base_dn, search_filter, attribute_list, scope, size_limit, time_limit, page_size
        )
    return _simple_search(context, base_dn, search_filter, attribute_list, scope, size_limit, time_limit)


def _check_open(context: ContextHandle, base_dn: str) -> None:
    if context.closed:
        raise SearchError(f"LDAP context on {context.server_key} closed during search in {base_dn}")


def _simple_search(context, base_dn, search_filter, attributes, scope, size_limit, time_limit) -> Iterator[LdapEntry]:
    _check_open(context, base_dn)
    connection = context.connection
    try:
        connection.search(
            search_base=base_dn,
            search_filter=search_filter,
            search_scope=scope,
            attributes=attributes,
            size_limit=size_limit,
            time_limit=time_limit,
        )
    except LDAPException as e:
        raise SearchError(f"Search failed in {base_dn} with filter {search_filter}: {e}") from e

    result = connection.result or {}
    code = result.get("result", RESULT_SUCCESS)
    if code == RESULT_NO_SUCH_OBJECT:
        raise NoSuchEntryError(f"Search base {base_dn} does not exist")
    if code in _UNREADABLE_RESULTS:
        raise UnreadableEntryError(f"Unable to read {base_dn}: {result.get('description')}")
    if code not in _USABLE_RESULTS:
        raise SearchError(
            f"Search failed in {base_dn} with filter {search_filter}: {result.get('description')}"
        )
    if code == RESULT_SIZE_LIMIT_EXCEEDED:
        logger.warning("Size limit exceeded searching %s with filter %s", base_dn, search_filter)

    for item in list(connection.response or []):
        _check_open(context, base_dn)
        if item.get("type") == "searchResEntry":
            yield _to_entry(item)


def _paged_search(context, base_dn, search_filter, attributes, scope, size_limit, time_limit, page_size) -> Iterator[LdapEntry]:
    _check_open(context, base_dn)
    pages = context.connection.extend.standard.paged_search(
        search_base=base_dn,
        search_filter=search_filter,
        search_scope=scope,
        attributes=attributes,
        size_limit=size_limit,
        time_limit=time_limit,
        paged_size=page_size,
        generator=True,
    )
    try:
        for item in pages:
            _check_open(context, base_dn)
            if item.get("type") == "searchResEntry":
                yield _to_entry(item)
    except LDAPException as e:
        raise SearchError(f"Paged search failed in {base_dn} with filter {search_filter}: {e}") from e
    finally:
        pages.close()


def find_unique(
    context: ContextHandle,
    base_dn: str,
    request: str,
    parameters: Sequence[str] = (),
    attributes: Optional[Sequence[str]] = None,
    **limits,
) -> Optional[LdapEntry]:
    """
    Search for a single entry.

    Returns:
        The entry, or None when nothing matches

    Raises:
        SearchError: More than one entry matches
    """
    entries = search(context, base_dn, request, parameters, attributes, **limits)
    try:
        found = next(entries, None)
        if found is not None and next(entries, None) is not None:
            raise SearchError(f"Non unique result for {format_filter(request, parameters)} in {base_dn}")
    finally:
        entries.close()
    return found


def read_entry(context: ContextHandle, dn: str, attributes: Optional[Sequence[str]] = None) -> Optional[LdapEntry]:
    """Read one entry by DN, None when it does not exist or cannot be read."""
    try:
        return find_unique(context, dn, "(objectClass=*)", (), attributes, scope=BASE)
    except UnreadableEntryError as e:
        logger.debug("Unable to read %s: %s", dn, e)
        return None
