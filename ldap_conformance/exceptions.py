from __future__ import annotations

from enum import IntEnum
from typing import Any

import ldap


class ResultCode(IntEnum):
    """
    The LDAP result codes we know how to name.  Server result codes are as
    defined in RFC 4511; the client-side codes at the end are the ones
    libldap (and thus python-ldap) reports for local failures, renumbered
    into their RFC 3377 slots.
    """

    SUCCESS = 0
    OPERATIONS_ERROR = 1
    PROTOCOL_ERROR = 2
    TIME_LIMIT_EXCEEDED = 3
    SIZE_LIMIT_EXCEEDED = 4
    COMPARE_FALSE = 5
    COMPARE_TRUE = 6
    AUTH_METHOD_NOT_SUPPORTED = 7
    STRONG_AUTH_REQUIRED = 8
    REFERRAL = 10
    ADMIN_LIMIT_EXCEEDED = 11
    UNAVAILABLE_CRITICAL_EXTENSION = 12
    CONFIDENTIALITY_REQUIRED = 13
    NO_SUCH_ATTRIBUTE = 16
    UNDEFINED_ATTRIBUTE_TYPE = 17
    INAPPROPRIATE_MATCHING = 18
    CONSTRAINT_VIOLATION = 19
    TYPE_OR_VALUE_EXISTS = 20
    INVALID_ATTRIBUTE_SYNTAX = 21
    NO_SUCH_OBJECT = 32
    ALIAS_PROBLEM = 33
    INVALID_DN_SYNTAX = 34
    INAPPROPRIATE_AUTHENTICATION = 48
    INVALID_CREDENTIALS = 49
    INSUFFICIENT_ACCESS = 50
    BUSY = 51
    UNAVAILABLE = 52
    UNWILLING_TO_PERFORM = 53
    LOOP_DETECT = 54
    NAMING_VIOLATION = 64
    OBJECT_CLASS_VIOLATION = 65
    NOT_ALLOWED_ON_NONLEAF = 66
    NOT_ALLOWED_ON_RDN = 67
    ALREADY_EXISTS = 68
    OBJECT_CLASS_MODS_PROHIBITED = 69
    AFFECTS_MULTIPLE_DSAS = 71
    OTHER = 80
    # client side
    SERVER_DOWN = 81
    LOCAL_ERROR = 82
    ENCODING_ERROR = 83
    DECODING_ERROR = 84
    TIMEOUT = 85
    AUTH_UNKNOWN = 86
    FILTER_ERROR = 87
    USER_CANCELLED = 88
    PARAM_ERROR = 89
    NO_MEMORY = 90
    CONNECT_ERROR = 91

    @classmethod
    def from_int(cls, value: int | None) -> ResultCode:
        """
        Map a numeric code to a :py:class:`ResultCode`.  libldap reports its
        client-side failures with negative numbers; those are folded into the
        RFC 3377 client range.  Anything we can't name is
        :py:attr:`ResultCode.OTHER`.
        """
        if value is None:
            return cls.OTHER
        if value < 0:
            value = _CLIENT_CODES.get(value, cls.OTHER.value)
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER

    @property
    def is_ambiguous(self) -> bool:
        """
        ``True`` for failures where we can't tell whether the server applied
        a write before the error happened.
        """
        return self in (
            ResultCode.SERVER_DOWN,
            ResultCode.TIMEOUT,
            ResultCode.USER_CANCELLED,
            ResultCode.CONNECT_ERROR,
            ResultCode.BUSY,
            ResultCode.UNAVAILABLE,
        )

    @property
    def label(self) -> str:
        return self.name.lower().replace("_", " ")


# libldap LDAP_SERVER_DOWN, LDAP_LOCAL_ERROR, ... as they come back from
# python-ldap
_CLIENT_CODES: dict[int, int] = {
    -1: ResultCode.SERVER_DOWN.value,
    -2: ResultCode.LOCAL_ERROR.value,
    -3: ResultCode.ENCODING_ERROR.value,
    -4: ResultCode.DECODING_ERROR.value,
    -5: ResultCode.TIMEOUT.value,
    -6: ResultCode.AUTH_UNKNOWN.value,
    -7: ResultCode.FILTER_ERROR.value,
    -8: ResultCode.USER_CANCELLED.value,
    -9: ResultCode.PARAM_ERROR.value,
    -10: ResultCode.NO_MEMORY.value,
    -11: ResultCode.CONNECT_ERROR.value,
}


class LDAPConformanceError(Exception):
    """
    Base class for everything this package raises.
    """


class ConfigError(LDAPConformanceError):
    """
    The configuration is unusable.
    """


class DirectoryError(LDAPConformanceError):
    """
    A directory operation failed.

    Args:
        operation: the operation that failed, e.g. ``"add"``
        code: the result code the server (or the client library) reported

    Keyword Args:
        description: the short description of the failure
        info: the diagnostic message from the server, if any
        dn: the DN the operation was working on, if any
        raw_code: the numeric code as reported, before mapping

    """

    def __init__(
        self,
        operation: str,
        code: ResultCode,
        description: str = "",
        info: str = "",
        dn: str | None = None,
        raw_code: int | None = None,
    ) -> None:
        #: The operation that failed, e.g. ``add``
        self.operation: str = operation
        #: The named result code
        self.code: ResultCode = code
        #: The numeric code as reported by python-ldap
        self.raw_code: int = code.value if raw_code is None else raw_code
        #: Short description of the failure
        self.description: str = description or code.label
        #: Server diagnostic message
        self.info: str = info
        #: DN the operation was acting upon
        self.dn: str | None = dn
        super().__init__(str(self))

    def __str__(self) -> str:
        msg = f"{self.operation} failed: {self.description} (result {self.raw_code})"
        if self.info:
            msg += f": {self.info}"
        return msg

    @classmethod
    def from_ldap_error(
        cls, operation: str, exc: ldap.LDAPError, dn: str | None = None  # type: ignore[name-defined]
    ) -> DirectoryError:
        """
        Build a :py:class:`DirectoryError` (or subclass) out of a python-ldap
        exception.  python-ldap puts the details of the failure in a dict as
        the first argument of the exception.

        Args:
            operation: the name of the failed operation
            exc: the python-ldap exception

        Keyword Args:
            dn: the DN the operation was working on

        Returns:
            A new exception of type ``cls``.

        """
        details: dict[str, Any] = {}
        if exc.args and isinstance(exc.args[0], dict):
            details = exc.args[0]
        raw = details.get("result", getattr(exc, "errnum", None))
        if isinstance(raw, int):
            code = ResultCode.from_int(raw)
        else:
            # python-ldap names its exception classes after the result codes
            code = ResultCode.__members__.get(exc.__class__.__name__, ResultCode.OTHER)
        info = details.get("info", "")
        if isinstance(info, (tuple, list)):
            info = " ".join(str(i) for i in info)
        return cls(
            operation,
            code,
            description=str(details.get("desc", "")) or exc.__class__.__name__,
            info=str(info).strip(),
            dn=dn,
            raw_code=raw if isinstance(raw, int) else None,
        )


class ConnectError(DirectoryError):
    """
    We could not establish (or secure) a connection to the directory.
    """


class SetupError(LDAPConformanceError):
    """
    A fatal failure in the connect or setup phase of a run.  Nothing useful
    can happen after this, so the run is aborted.
    """
