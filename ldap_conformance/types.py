from dataclasses import dataclass, field
from enum import Enum, IntEnum

import ldap
from case_insensitive_dict import CaseInsensitiveDict

# ====================================
# Types
# ====================================

# LDAP records, as our search returns them
CILDAPData = CaseInsensitiveDict[str, list[bytes]]
CILDAPRecord = tuple[str, CILDAPData]

# Attributes for an add request, as the suites write them
Attributes = dict[str, list[str]]


class Scope(IntEnum):
    """
    Search scopes, valued as python-ldap's ``SCOPE_*`` constants.
    """

    BASE = ldap.SCOPE_BASE  # type: ignore[attr-defined]
    ONELEVEL = ldap.SCOPE_ONELEVEL  # type: ignore[attr-defined]
    SUBTREE = ldap.SCOPE_SUBTREE  # type: ignore[attr-defined]

    @property
    def label(self) -> str:
        return {Scope.BASE: "base", Scope.ONELEVEL: "one", Scope.SUBTREE: "sub"}[self]


class ModKind(Enum):
    """
    The kind of change in a :py:class:`Modification`.
    """

    ADD = ldap.MOD_ADD  # type: ignore[attr-defined]
    REPLACE = ldap.MOD_REPLACE  # type: ignore[attr-defined]
    DELETE = ldap.MOD_DELETE  # type: ignore[attr-defined]


@dataclass(frozen=True)
class Modification:
    """
    One change inside a modify request.

    An empty ``values`` list on a :py:attr:`ModKind.DELETE` removes the whole
    attribute.
    """

    kind: ModKind
    attribute: str
    values: list[str] = field(default_factory=list)

    def to_modlist_item(self) -> tuple[int, str, list[bytes] | None]:
        values: list[bytes] | None = [v.encode("utf-8") for v in self.values]
        if self.kind is ModKind.DELETE and not values:
            values = None
        return (self.kind.value, self.attribute, values)


@dataclass
class SearchPage:
    """
    One round trip of a search.  ``cookie`` is the paging continuation
    cursor; it is empty when the server has no more pages (or paging was not
    requested).
    """

    entries: list[CILDAPRecord]
    cookie: bytes = b""

    @property
    def has_more(self) -> bool:
        return bool(self.cookie)
