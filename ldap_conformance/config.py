from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError
from .logging import LEVELS

#: Our suites, in the order they must run: later suites use entries that
#: earlier suites created
SUITE_ORDER: list[str] = [
    "bind",
    "add",
    "search",
    "compare",
    "modify",
    "modifydn",
    "delete",
    "abandon",
]
REPORT_FORMATS: list[str] = ["console", "json", "xml"]

_TYPE_NAMES: dict[str, str] = {
    "bool": "true or false",
    "int": "an integer",
    "str": "a string",
}

_AGE_RE: re.Pattern[str] = re.compile(r"^\s*(\d+)\s*([smhdw])\s*$", re.IGNORECASE)
_AGE_UNITS: dict[str, str] = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}


def parse_age(value: str) -> timedelta:
    """
    Parse an age like ``"7d"`` or ``"24h"`` into a :py:class:`datetime.timedelta`.
    Units are ``s``, ``m``, ``h``, ``d`` and ``w``.

    Raises:
        ValueError: ``value`` is not an age we understand

    """
    match = _AGE_RE.match(value)
    if not match:
        msg = f'invalid age "{value}" (expected e.g. 30m, 24h, 7d)'
        raise ValueError(msg)
    amount, unit = match.groups()
    return timedelta(**{_AGE_UNITS[unit.lower()]: int(amount)})


def default_log_file() -> str:
    return f"./logs/ldap-test-{datetime.now().strftime('%Y-%m-%d-%H-%M-%S')}.log"


@dataclass
class Config:
    """
    Everything a run needs to know.  Build one with :py:meth:`from_file`,
    apply command line overrides with :py:meth:`update`, then call
    :py:meth:`validate`.
    """

    # LDAP connection
    host: str = "localhost"
    port: int = 389
    bind_dn: str = ""
    bind_password: str = ""
    base_dn: str = ""
    use_tls: bool = False
    start_tls: bool = False
    timeout: int = 30  #: seconds

    # TLS
    tls_ca_file: str = ""
    tls_cert_file: str = ""
    tls_key_file: str = ""
    insecure_skip_verify: bool = False

    # Test settings
    test_prefix: str = "ldap-test"
    #: Accepted for compatibility; scenarios always run sequentially
    concurrent: int = 1
    test_suite: str = "all"
    dry_run: bool = False
    page_size: int = 10

    # Logging
    log_level: str = "info"
    log_file: str = field(default_factory=default_log_file)
    verbose: bool = False

    # Cleanup
    cleanup: bool = False
    cleanup_on_success: bool = False
    list_test_data: bool = False
    cleanup_older_than: str = ""

    # Reporting
    report_format: str = "console"

    # Loop mode
    loop: bool = False
    loop_count: int = 0  #: 0 means run until interrupted
    loop_delay: int = 0  #: seconds between iterations

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}

    @classmethod
    def _check_value(cls, name: str, kind: str, value: Any) -> Any:
        """
        Make sure ``value`` suits the field ``name``, whose annotation is
        ``kind``.  Numbers are accepted for string settings (YAML reads an
        unquoted ``12345`` password as an int); nothing else is converted.

        Raises:
            ConfigError: ``value`` has the wrong type

        """
        if kind == "bool":
            ok = isinstance(value, bool)
        elif kind == "int":
            ok = isinstance(value, int) and not isinstance(value, bool)
        else:
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                value = str(value)
            ok = isinstance(value, str)
        if not ok:
            msg = f"{name} must be {_TYPE_NAMES[kind]}, not {type(value).__name__} ({value!r})"
            raise ConfigError(msg)
        return value

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        """
        Build a :py:class:`Config` from ``data``, using our defaults for
        anything missing or empty.

        Raises:
            ConfigError: ``data`` has keys we don't know, or values of the
                wrong type

        """
        unknown = sorted(set(map(str, data)) - cls.field_names())
        if unknown:
            msg = f"unknown configuration keys: {', '.join(unknown)}"
            raise ConfigError(msg)
        kinds = {f.name: str(f.type) for f in fields(cls)}
        settings = {
            name: cls._check_value(name, kinds[name], value)
            for name, value in data.items()
            if value is not None
        }
        return cls(**settings)

    @classmethod
    def from_file(cls, path: str | Path) -> Config:
        """
        Load a YAML configuration file.  If the file does not exist, return
        the default configuration.

        Args:
            path: the path to the YAML file

        Raises:
            ConfigError: the file could not be read or parsed

        """
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            with path.open(encoding="utf-8") as fd:
                data = yaml.safe_load(fd)
        except (OSError, yaml.YAMLError) as exc:
            msg = f"failed to load config file {path}: {exc}"
            raise ConfigError(msg) from exc
        if data is None:
            return cls()
        if not isinstance(data, dict):
            msg = f"config file {path} must contain a mapping"
            raise ConfigError(msg)
        return cls.from_dict(data)

    def update(self, **overrides: Any) -> Config:
        """
        Overwrite our settings with every override that is not ``None``.
        ``verbose=True`` also sets the log level to ``trace``.

        Raises:
            ConfigError: an override names a setting we don't have

        Returns:
            ``self``, for chaining.

        """
        known = self.field_names()
        for name, value in overrides.items():
            if value is None:
                continue
            if name not in known:
                msg = f"unknown configuration key: {name}"
                raise ConfigError(msg)
            setattr(self, name, value)
        if self.verbose:
            self.log_level = "trace"
        return self

    @property
    def uri(self) -> str:
        scheme = "ldaps" if self.use_tls else "ldap"
        return f"{scheme}://{self.host}:{self.port}"

    @property
    def suites(self) -> list[str]:
        """
        The suites selected by :py:attr:`test_suite`, in the order they must
        run.  ``test_suite`` may be ``all``, a single suite name, or a comma
        separated list of names.
        """
        wanted = {name.strip().lower() for name in self.test_suite.split(",")}
        if "all" in wanted:
            return list(SUITE_ORDER)
        return [name for name in SUITE_ORDER if name in wanted]

    @property
    def retention_age(self) -> timedelta | None:
        if not self.cleanup_older_than:
            return None
        return parse_age(self.cleanup_older_than)

    def validate(self) -> None:  # noqa: PLR0912
        """
        Check that we make sense.

        Raises:
            ConfigError: something is missing or out of range

        """
        if not self.host:
            msg = "host is required"
            raise ConfigError(msg)
        if not 0 < self.port <= 65535:  # noqa: PLR2004
            msg = "port must be between 1 and 65535"
            raise ConfigError(msg)
        if not self.bind_dn:
            msg = "bind DN is required"
            raise ConfigError(msg)
        if not self.bind_password:
            msg = "bind password is required"
            raise ConfigError(msg)
        if not self.base_dn:
            msg = "base DN is required"
            raise ConfigError(msg)
        if self.use_tls and self.start_tls:
            msg = "cannot use both TLS and StartTLS"
            raise ConfigError(msg)
        if self.timeout < 0:
            msg = "timeout must not be negative"
            raise ConfigError(msg)
        if self.log_level.lower() not in LEVELS:
            msg = (
                f"invalid log level: {self.log_level} "
                "(must be error, warn, info, debug, or trace)"
            )
            raise ConfigError(msg)
        names = [name.strip().lower() for name in self.test_suite.split(",")]
        for name in names:
            if name != "all" and name not in SUITE_ORDER:
                msg = f"invalid test suite: {name}"
                raise ConfigError(msg)
        if self.report_format not in REPORT_FORMATS:
            msg = (
                f"invalid report format: {self.report_format} "
                "(must be console, json, or xml)"
            )
            raise ConfigError(msg)
        if self.concurrent < 1:
            msg = "concurrent must be at least 1"
            raise ConfigError(msg)
        if self.page_size < 1:
            msg = "page size must be at least 1"
            raise ConfigError(msg)
        if self.loop_count < 0:
            msg = "loop count must not be negative"
            raise ConfigError(msg)
        if self.loop_delay < 0:
            msg = "loop delay must not be negative"
            raise ConfigError(msg)
        if self.cleanup_older_than:
            try:
                parse_age(self.cleanup_older_than)
            except ValueError as exc:
                raise ConfigError(str(exc)) from exc
