from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

import ldap
import ldap.modlist
from case_insensitive_dict import CaseInsensitiveDict
from ldap.controls import SimplePagedResultsControl

from .exceptions import ConnectError, DirectoryError, ResultCode
from .logging import get_logger, trace
from .types import Attributes, CILDAPRecord, Modification, Scope, SearchPage

if TYPE_CHECKING:
    from .config import Config


class Directory:
    """
    Our handle on the directory under test: a thin wrapper around a
    python-ldap ``LDAPObject`` that speaks in our types and raises
    :py:class:`DirectoryError` (with a named :py:class:`ResultCode`) instead
    of the python-ldap exception zoo.

    A :py:class:`Directory` is created unconnected; call :py:meth:`connect`
    and then :py:meth:`bind` (or :py:meth:`open` to do both).  It is a
    context manager that closes the connection on exit.

    Args:
        uri: the LDAP URI of the server, e.g. ``ldap://localhost:389``

    Keyword Args:
        bind_dn: the DN to bind as when :py:meth:`bind` is called without one
        bind_password: the password for ``bind_dn``
        timeout: network and operation timeout, in seconds.  0 means none.
        start_tls: if ``True``, negotiate StartTLS after connecting
        tls_ca_file: PEM file of CA certificates to trust
        tls_cert_file: PEM client certificate
        tls_key_file: PEM private key for ``tls_cert_file``
        insecure_skip_verify: if ``True``, don't verify the server's certificate
        logger: the logger to use

    """

    def __init__(
        self,
        uri: str,
        bind_dn: str = "",
        bind_password: str = "",
        timeout: int = 30,
        start_tls: bool = False,
        tls_ca_file: str = "",
        tls_cert_file: str = "",
        tls_key_file: str = "",
        insecure_skip_verify: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self.uri = uri
        self.bind_dn = bind_dn
        self.bind_password = bind_password
        self.timeout = timeout
        self.start_tls = start_tls
        self.tls_ca_file = tls_ca_file
        self.tls_cert_file = tls_cert_file
        self.tls_key_file = tls_key_file
        self.insecure_skip_verify = insecure_skip_verify
        self.logger: logging.Logger = logger or get_logger("directory")
        self._conn: ldap.ldapobject.LDAPObject | None = None  # type: ignore[name-defined]

    @classmethod
    def from_config(
        cls, config: Config, logger: logging.Logger | None = None
    ) -> Directory:
        return cls(
            config.uri,
            bind_dn=config.bind_dn,
            bind_password=config.bind_password,
            timeout=config.timeout,
            start_tls=config.start_tls,
            tls_ca_file=config.tls_ca_file,
            tls_cert_file=config.tls_cert_file,
            tls_key_file=config.tls_key_file,
            insecure_skip_verify=config.insecure_skip_verify,
            logger=logger,
        )

    def spawn(self) -> Directory:
        """
        Return a new, unconnected :py:class:`Directory` with our settings.
        Use this when you need a spare connection that must not disturb this
        one.
        """
        return self.__class__(
            self.uri,
            bind_dn=self.bind_dn,
            bind_password=self.bind_password,
            timeout=self.timeout,
            start_tls=self.start_tls,
            tls_ca_file=self.tls_ca_file,
            tls_cert_file=self.tls_cert_file,
            tls_key_file=self.tls_key_file,
            insecure_skip_verify=self.insecure_skip_verify,
            logger=self.logger,
        )

    # Connection lifecycle

    @property
    def connected(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]
        """
        The live python-ldap connection.

        Raises:
            ConnectError: we are not connected

        """
        if self._conn is None:
            msg = "not connected"
            raise ConnectError("connect", ResultCode.SERVER_DOWN, description=msg)
        return self._conn

    def _check_file(self, label: str, filename: str) -> None:
        path = Path(filename)
        if not path.is_file():
            raise ConnectError(
                "connect",
                ResultCode.LOCAL_ERROR,
                description=f"{label} file does not exist or is not a file",
                info=filename,
            )

    def connect(self) -> None:
        """
        Open the connection to :py:attr:`uri`, set our options and, if
        configured, negotiate StartTLS.  This does not bind.

        Raises:
            ConnectError: the connection could not be established or secured

        """
        self.close()
        start = time.monotonic()
        try:
            conn = ldap.initialize(self.uri)
            conn.set_option(ldap.OPT_REFERRALS, 0)  # type: ignore[attr-defined]
            conn.set_option(ldap.OPT_PROTOCOL_VERSION, ldap.VERSION3)  # type: ignore[attr-defined]
            if self.timeout:
                conn.set_option(ldap.OPT_NETWORK_TIMEOUT, float(self.timeout))  # type: ignore[attr-defined]
                conn.set_option(ldap.OPT_TIMEOUT, float(self.timeout))  # type: ignore[attr-defined]
            if self.insecure_skip_verify:
                conn.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_NEVER)  # type: ignore[attr-defined]
            else:
                conn.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_DEMAND)  # type: ignore[attr-defined]
            if self.tls_ca_file:
                self._check_file("CA certificate", self.tls_ca_file)
                conn.set_option(ldap.OPT_X_TLS_CACERTFILE, self.tls_ca_file)  # type: ignore[attr-defined]
            if self.tls_cert_file:
                self._check_file("TLS certificate", self.tls_cert_file)
                conn.set_option(ldap.OPT_X_TLS_CERTFILE, self.tls_cert_file)  # type: ignore[attr-defined]
            if self.tls_key_file:
                self._check_file("TLS key", self.tls_key_file)
                conn.set_option(ldap.OPT_X_TLS_KEYFILE, self.tls_key_file)  # type: ignore[attr-defined]
            # This must be the last TLS option we set
            conn.set_option(ldap.OPT_X_TLS_NEWCTX, 0)  # type: ignore[attr-defined]
            if self.start_tls:
                conn.start_tls_s()
        except ldap.LDAPError as exc:  # type: ignore[attr-defined]
            error = ConnectError.from_ldap_error("connect", exc)
            self.logger.error("directory.connect.failed uri=%s error=%s", self.uri, error)
            raise error from exc
        self._conn = conn
        self.logger.debug(
            "directory.connect uri=%s start_tls=%s elapsed=%.3fs",
            self.uri,
            self.start_tls,
            time.monotonic() - start,
        )

    def open(self) -> Directory:
        """
        :py:meth:`connect`, then :py:meth:`bind` with our configured
        credentials.

        Returns:
            ``self``
        """
        self.connect()
        self.bind()
        return self

    def close(self) -> None:
        """
        Drop our connection, if we have one.  Safe to call more than once.
        """
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            conn.unbind_s()
        except ldap.LDAPError as exc:  # type: ignore[attr-defined]
            self.logger.debug("directory.close.unbind_failed error=%s", exc)
        self.logger.debug("directory.close uri=%s", self.uri)

    def __enter__(self) -> Directory:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # Operations

    def _call(
        self, operation: str, dn: str | None, func: Callable[..., Any], *args: Any
    ) -> Any:
        """
        Run ``func(*args)``, translating python-ldap exceptions into
        :py:class:`DirectoryError` and logging how long it took.
        """
        start = time.monotonic()
        try:
            result = func(*args)
        except ldap.LDAPError as exc:  # type: ignore[attr-defined]
            error = DirectoryError.from_ldap_error(operation, exc, dn=dn)
            self.logger.debug(
                "directory.%s.failed dn=%s code=%s elapsed=%.3fs",
                operation,
                dn,
                error.code.name,
                time.monotonic() - start,
            )
            raise error from exc
        self.logger.debug(
            "directory.%s dn=%s elapsed=%.3fs", operation, dn, time.monotonic() - start
        )
        return result

    def bind(self, dn: str | None = None, password: str | None = None) -> None:
        """
        Do a simple bind.  With no arguments, bind with our configured
        credentials; ``bind("", "")`` is an anonymous bind.

        Raises:
            DirectoryError: the server rejected the bind

        """
        if dn is None:
            dn = self.bind_dn
            password = self.bind_password
        self._call("bind", dn, self.connection.simple_bind_s, dn, password or "")

    def unbind(self) -> None:
        """
        Send an unbind and drop the connection.  Unlike :py:meth:`close`, a
        failure here is reported.

        Raises:
            DirectoryError: the unbind failed

        """
        conn = self.connection
        self._conn = None
        self._call("unbind", None, conn.unbind_s)

    def search(
        self,
        base: str,
        scope: Scope,
        filterstr: str = "(objectClass=*)",
        attributes: list[str] | None = None,
        page_size: int | None = None,
        cookie: bytes = b"",
    ) -> SearchPage:
        """
        Do one search round trip.  If ``page_size`` is given, ask for a page of
        that size with the RFC 2696 paged results control, continuing from
        ``cookie``.

        Args:
            base: the DN at which to start the search
            scope: the scope of the search

        Keyword Args:
            filterstr: the search filter
            attributes: the attributes to return; ``None`` means all of them
            page_size: the page size, if we want paging
            cookie: the continuation cookie from the previous page

        Raises:
            DirectoryError: the search failed

        Returns:
            The entries found, and the cookie for the next page (empty if
            there are no more pages).

        """
        conn = self.connection
        controls = []
        if page_size:
            controls.append(
                SimplePagedResultsControl(True, size=page_size, cookie=cookie)  # noqa: FBT003
            )
        trace(
            self.logger,
            "directory.search.request base=%s scope=%s filter=%s attributes=%s",
            base,
            scope.label,
            filterstr,
            attributes,
        )

        def _search() -> tuple[list, list]:
            msgid = conn.search_ext(
                base, int(scope), filterstr, attributes, serverctrls=controls
            )
            _, rdata, _, serverctrls = conn.result3(msgid)
            return rdata, serverctrls or []

        rdata, serverctrls = self._call("search", base, _search)
        entries: list[CILDAPRecord] = []
        for dn, attrs in rdata:
            # Referrals come back as entries with no attribute dict
            if isinstance(attrs, dict):
                entries.append((dn, CaseInsensitiveDict(attrs)))
        next_cookie = b""
        for ctrl in serverctrls:
            if ctrl.controlType == SimplePagedResultsControl.controlType:
                next_cookie = ctrl.cookie or b""
                break
        return SearchPage(entries=entries, cookie=next_cookie)

    def start_search(
        self,
        base: str,
        scope: Scope,
        filterstr: str = "(objectClass=*)",
        attributes: list[str] | None = None,
    ) -> int:
        """
        Send a search without waiting for its results.

        Returns:
            The message id of the search, for :py:meth:`abandon`.

        """
        conn = self.connection
        return self._call(
            "search", base, conn.search_ext, base, int(scope), filterstr, attributes
        )

    def abandon(self, msgid: int) -> None:
        """
        Ask the server to abandon the operation with message id ``msgid``.
        The server sends no response to an abandon.
        """
        self._call("abandon", None, self.connection.abandon, msgid)

    def add(self, dn: str, attributes: Attributes) -> None:
        """
        Add an entry.

        Raises:
            DirectoryError: the server rejected the add

        """
        record = {
            attr: [value.encode("utf-8") for value in values]
            for attr, values in attributes.items()
        }
        modlist = ldap.modlist.addModlist(record)
        self._call("add", dn, self.connection.add_s, dn, modlist)

    def modify(self, dn: str, changes: list[Modification]) -> None:
        """
        Apply ``changes`` to ``dn`` in one modify request.

        Raises:
            DirectoryError: the server rejected the modify

        """
        modlist = [change.to_modlist_item() for change in changes]
        self._call("modify", dn, self.connection.modify_s, dn, modlist)

    def compare(self, dn: str, attribute: str, value: str) -> bool:
        """
        Ask the server whether ``dn`` has ``value`` among the values of
        ``attribute``.

        Raises:
            DirectoryError: the server could not do the comparison

        Returns:
            ``True`` if it does, ``False`` if not.

        """
        return bool(
            self._call(
                "compare",
                dn,
                self.connection.compare_s,
                dn,
                attribute,
                value.encode("utf-8"),
            )
        )

    def delete(self, dn: str) -> None:
        """
        Delete a leaf entry.

        Raises:
            DirectoryError: the server rejected the delete

        """
        self._call("delete", dn, self.connection.delete_s, dn)

    def rename(
        self,
        dn: str,
        new_rdn: str,
        delete_old_rdn: bool = True,
        new_superior: str | None = None,
    ) -> None:
        """
        Rename ``dn`` to ``new_rdn``, and move it under ``new_superior`` if
        that is given.

        Raises:
            DirectoryError: the server rejected the modify DN

        """
        self._call(
            "modifydn",
            dn,
            self.connection.rename_s,
            dn,
            new_rdn,
            new_superior,
            1 if delete_old_rdn else 0,
        )

    def health_check(self) -> CILDAPRecord | None:
        """
        Read the root DSE.

        Raises:
            DirectoryError: the search failed

        Returns:
            The root DSE, or ``None`` if the server would not show it to us.

        """
        page = self.search(
            "",
            Scope.BASE,
            "(objectClass=*)",
            ["namingContexts", "supportedLDAPVersion"],
        )
        if not page.entries:
            return None
        return page.entries[0]
