"""
An in-memory stand-in for :py:class:`ldap_conformance.connection.Directory`.

:py:class:`FakeServer` holds the entries and records every call made by any
of its connections; :py:class:`FakeDirectory` is one connection to it.  The
server enforces enough directory semantics for our suites to behave as they
would against a real server: parents must exist, entries must be unique,
``inetOrgPerson`` needs ``sn``, only leaves can be deleted.  Failures can be
injected per operation and DN with :py:meth:`FakeServer.fail`, and
:py:meth:`FakeServer.accept` turns those semantics off for an operation so
that requests a real server refuses go through.
"""

from __future__ import annotations

import re
from typing import Any

from case_insensitive_dict import CaseInsensitiveDict

from ldap_conformance.exceptions import ConnectError, DirectoryError, ResultCode
from ldap_conformance.types import Attributes, ModKind, Modification, Scope, SearchPage

BASE_DN = "dc=example,dc=com"
ADMIN_DN = f"cn=admin,{BASE_DN}"
ADMIN_PASSWORD = "secret"

_COMPONENT_RE = re.compile(r"\(([^()=&|!]+)=([^()]*)\)")


def _key(dn: str) -> str:
    return dn.strip().lower()


def _parent(dn: str) -> str:
    return dn.split(",", 1)[1] if "," in dn else ""


def _matches(filterstr: str, attrs: dict[str, list[str]]) -> bool:
    """
    Understands the filters our code sends: a single ``(attr=value)`` or an
    AND of them, where ``value`` may be ``*`` (presence) or end in ``*``
    (prefix).
    """
    lowered = {name.lower(): [v.lower() for v in values] for name, values in attrs.items()}
    for name, value in _COMPONENT_RE.findall(filterstr):
        values = lowered.get(name.strip().lower(), [])
        value = value.lower()
        if value == "*":
            if not values:
                return False
        elif value.endswith("*"):
            if not any(v.startswith(value[:-1]) for v in values):
                return False
        elif value not in values:
            return False
    return True


class FakeServer:
    """
    Keyword Args:
        anonymous_bind: whether anonymous binds succeed
    """

    def __init__(self, anonymous_bind: bool = True) -> None:
        self.entries: dict[str, tuple[str, dict[str, list[str]]]] = {}
        self.passwords: dict[str, str] = {}
        self.failures: dict[tuple[str, str | None], ResultCode] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.connections: list[FakeDirectory] = []
        self.anonymous_bind = anonymous_bind
        self.next_msgid = 1
        #: Operations for which the server skips its directory semantics
        self.lenient: set[str] = set()
        self.load(BASE_DN, {"objectClass": ["dcObject", "organization"], "dc": ["example"]})
        self.load(ADMIN_DN, {"objectClass": ["person"], "cn": ["admin"], "sn": ["Admin"]})
        self.passwords[_key(ADMIN_DN)] = ADMIN_PASSWORD

    def load(self, dn: str, attributes: Attributes) -> None:
        self.entries[_key(dn)] = (dn, {name: list(values) for name, values in attributes.items()})

    def exists(self, dn: str) -> bool:
        return _key(dn) in self.entries

    def get(self, dn: str) -> dict[str, list[str]]:
        return self.entries[_key(dn)][1]

    def children(self, dn: str) -> list[str]:
        key = _key(dn)
        return [real for k, (real, _) in self.entries.items() if _key(_parent(k)) == key]

    def accept(self, *operations: str) -> None:
        """
        Make ``operations`` succeed where a real server would refuse them:
        adds overwrite and skip schema checks, deletes ignore children, and
        operations on missing entries do nothing.
        """
        self.lenient.update(operations)

    def fail(self, operation: str, code: ResultCode, dn: str | None = None) -> None:
        """
        Make ``operation`` fail with ``code``, on ``dn`` only if given.
        """
        self.failures[(operation, _key(dn) if dn is not None else None)] = code

    def check(self, operation: str, dn: str | None = None) -> None:
        code = self.failures.get((operation, _key(dn) if dn is not None else None))
        if code is None:
            code = self.failures.get((operation, None))
        if code is not None:
            raise DirectoryError(operation, code, dn=dn)

    def connection(self, **kwargs: Any) -> FakeDirectory:
        conn = FakeDirectory(self, **kwargs)
        self.connections.append(conn)
        return conn

    def calls_for(self, operation: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == operation]


class FakeDirectory:

    def __init__(
        self,
        server: FakeServer,
        uri: str = "ldap://fake.example.com:389",
        bind_dn: str = ADMIN_DN,
        bind_password: str = ADMIN_PASSWORD,
    ) -> None:
        self.server = server
        self.uri = uri
        self.bind_dn = bind_dn
        self.bind_password = bind_password
        self.connected = False
        self.closed = False
        self.bound_dn: str | None = None

    def _record(self, *call: Any) -> None:
        self.server.calls.append(call)

    def _require(self, operation: str, dn: str) -> dict[str, list[str]]:
        if not self.connected:
            raise ConnectError(operation, ResultCode.SERVER_DOWN, description="not connected")
        self.server.check(operation, dn)
        if not self.server.exists(dn):
            if operation in self.server.lenient:
                return {}
            raise DirectoryError(operation, ResultCode.NO_SUCH_OBJECT, dn=dn)
        return self.server.get(dn)

    # Connection lifecycle

    def spawn(self) -> FakeDirectory:
        return self.server.connection(
            uri=self.uri, bind_dn=self.bind_dn, bind_password=self.bind_password
        )

    def connect(self) -> None:
        self._record("connect", self.uri)
        if self.server.failures.get(("connect", None)):
            raise ConnectError("connect", self.server.failures[("connect", None)])
        self.connected = True
        self.closed = False

    def open(self) -> FakeDirectory:
        self.connect()
        self.bind()
        return self

    def close(self) -> None:
        self._record("close", self.uri)
        self.connected = False
        self.closed = True
        self.bound_dn = None

    def bind(self, dn: str | None = None, password: str | None = None) -> None:
        if dn is None:
            dn, password = self.bind_dn, self.bind_password
        self._record("bind", dn)
        if not self.connected:
            raise ConnectError("bind", ResultCode.SERVER_DOWN, description="not connected")
        self.server.check("bind", dn)
        if dn == "":
            if not self.server.anonymous_bind:
                raise DirectoryError("bind", ResultCode.UNWILLING_TO_PERFORM, dn=dn)
        elif self.server.passwords.get(_key(dn)) != password:
            raise DirectoryError("bind", ResultCode.INVALID_CREDENTIALS, dn=dn)
        self.bound_dn = dn

    def unbind(self) -> None:
        self._record("unbind", self.uri)
        self.server.check("unbind")
        self.connected = False
        self.bound_dn = None

    def health_check(self) -> tuple[str, CaseInsensitiveDict] | None:
        self._record("health_check", self.uri)
        self.server.check("health_check")
        return ("", CaseInsensitiveDict({"namingContexts": [BASE_DN.encode("utf-8")]}))

    # Reads

    def search(
        self,
        base: str,
        scope: Scope,
        filterstr: str = "(objectClass=*)",
        attributes: list[str] | None = None,
        page_size: int | None = None,
        cookie: bytes = b"",
    ) -> SearchPage:
        self._record("search", base, scope, filterstr, page_size, cookie)
        self._require("search", base)
        base_key = _key(base)
        found = []
        for key, (dn, attrs) in list(self.server.entries.items()):
            if scope is Scope.BASE:
                inside = key == base_key
            elif scope is Scope.ONELEVEL:
                inside = _key(_parent(key)) == base_key
            else:
                inside = key == base_key or key.endswith("," + base_key)
            if inside and _matches(filterstr, attrs):
                found.append((dn, attrs))
        next_cookie = b""
        if page_size:
            offset = int(cookie) if cookie else 0
            if offset + page_size < len(found):
                next_cookie = str(offset + page_size).encode("utf-8")
            found = found[offset : offset + page_size]
        entries = []
        for dn, attrs in found:
            if attributes == ["1.1"]:
                selected: dict[str, list[str]] = {}
            elif attributes is None or "*" in attributes:
                selected = attrs
            else:
                wanted = {name.lower() for name in attributes}
                selected = {n: v for n, v in attrs.items() if n.lower() in wanted}
            entries.append(
                (
                    dn,
                    CaseInsensitiveDict(
                        {n: [x.encode("utf-8") for x in v] for n, v in selected.items()}
                    ),
                )
            )
        return SearchPage(entries=entries, cookie=next_cookie)

    def start_search(
        self,
        base: str,
        scope: Scope,
        filterstr: str = "(objectClass=*)",
        attributes: list[str] | None = None,
    ) -> int:
        self._record("start_search", base, scope, filterstr)
        self._require("search", base)
        msgid = self.server.next_msgid
        self.server.next_msgid += 1
        return msgid

    def abandon(self, msgid: int) -> None:
        self._record("abandon", msgid)
        self.server.check("abandon")

    def compare(self, dn: str, attribute: str, value: str) -> bool:
        self._record("compare", dn, attribute, value)
        attrs = self._require("compare", dn)
        for name, values in attrs.items():
            if name.lower() == attribute.lower():
                return value.lower() in [v.lower() for v in values]
        return False

    # Writes

    def add(self, dn: str, attributes: Attributes) -> None:
        self._record("add", dn)
        if not self.connected:
            raise ConnectError("add", ResultCode.SERVER_DOWN, description="not connected")
        self.server.check("add", dn)
        if "add" in self.server.lenient:
            self.server.load(dn, attributes)
            return
        if self.server.exists(dn):
            raise DirectoryError("add", ResultCode.ALREADY_EXISTS, dn=dn)
        if not self.server.exists(_parent(dn)):
            raise DirectoryError("add", ResultCode.NO_SUCH_OBJECT, dn=dn)
        classes = [value.lower() for value in attributes.get("objectClass", [])]
        if "inetorgperson" in classes and "sn" not in attributes:
            raise DirectoryError("add", ResultCode.OBJECT_CLASS_VIOLATION, dn=dn)
        self.server.load(dn, attributes)

    def modify(self, dn: str, changes: list[Modification]) -> None:
        self._record("modify", dn, changes)
        attrs = self._require("modify", dn)
        for change in changes:
            current = attrs.setdefault(change.attribute, [])
            if change.kind is ModKind.ADD:
                current.extend(change.values)
            elif change.kind is ModKind.REPLACE:
                attrs[change.attribute] = list(change.values)
            elif change.values:
                attrs[change.attribute] = [v for v in current if v not in change.values]
            else:
                del attrs[change.attribute]

    def delete(self, dn: str) -> None:
        self._record("delete", dn)
        self._require("delete", dn)
        if "delete" in self.server.lenient:
            self.server.entries.pop(_key(dn), None)
            return
        if self.server.children(dn):
            raise DirectoryError("delete", ResultCode.NOT_ALLOWED_ON_NONLEAF, dn=dn)
        del self.server.entries[_key(dn)]

    def rename(
        self,
        dn: str,
        new_rdn: str,
        delete_old_rdn: bool = True,
        new_superior: str | None = None,
    ) -> None:
        self._record("rename", dn, new_rdn, new_superior)
        attrs = self._require("modifydn", dn)
        new_dn = f"{new_rdn},{new_superior or _parent(dn)}"
        if self.server.exists(new_dn) and "modifydn" not in self.server.lenient:
            raise DirectoryError("modifydn", ResultCode.ALREADY_EXISTS, dn=dn)
        if not self.server.exists(_parent(new_dn)):
            raise DirectoryError("modifydn", ResultCode.NO_SUCH_OBJECT, dn=dn)
        name, value = new_rdn.split("=", 1)
        if delete_old_rdn:
            attrs[name] = [value]
        else:
            attrs.setdefault(name, []).append(value)
        del self.server.entries[_key(dn)]
        self.server.load(new_dn, attrs)
