from __future__ import annotations

import argparse
import sys
from typing import Any, Sequence

from . import __version__
from .config import REPORT_FORMATS, SUITE_ORDER, Config
from .exceptions import ConfigError, SetupError
from .logging import configure_logging, get_logger
from .runner import Runner

logger = get_logger("cli")


def _flag(parser: argparse.ArgumentParser, *names: str, help: str) -> None:  # noqa: A002
    # default=None so that an absent flag leaves the YAML value alone
    parser.add_argument(*names, action="store_true", default=None, help=help)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ldap-conformance",
        description=(
            "Exercise an LDAP server with bind, add, search, compare, modify, "
            "modify DN, delete and abandon operations and report how it behaved."
        ),
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-c",
        "--config",
        default="config.yaml",
        help="YAML configuration file (default: %(default)s)",
    )

    server = parser.add_argument_group("server")
    server.add_argument("--host", help="LDAP server hostname")
    server.add_argument("--port", type=int, help="LDAP server port")
    server.add_argument("--bind-dn", help="DN to bind as")
    server.add_argument("--bind-password", help="password for --bind-dn")
    server.add_argument("--base-dn", help="base DN under which to create test data")
    _flag(server, "--use-tls", help="connect with LDAPS")
    _flag(server, "--start-tls", help="upgrade the connection with StartTLS")
    server.add_argument("--timeout", type=int, help="connection timeout in seconds")

    tls = parser.add_argument_group("TLS")
    tls.add_argument("--tls-ca-file", help="PEM file of CA certificates to trust")
    tls.add_argument("--tls-cert-file", help="PEM client certificate")
    tls.add_argument("--tls-key-file", help="PEM private key for --tls-cert-file")
    _flag(tls, "--insecure-skip-verify", help="do not verify the server certificate")

    tests = parser.add_argument_group("tests")
    tests.add_argument(
        "--test-suite",
        help=(
            "suites to run: all, or a comma separated list of "
            f"{', '.join(SUITE_ORDER)}"
        ),
    )
    tests.add_argument("--test-prefix", help="prefix for test root names")
    tests.add_argument("--page-size", type=int, help="page size for the paged search test")
    _flag(tests, "--dry-run", help="connect but do not create anything or run tests")

    cleanup = parser.add_argument_group("cleanup")
    _flag(cleanup, "--cleanup", help="remove test data after the run")
    _flag(
        cleanup,
        "--cleanup-on-success",
        help="remove test data after the run only if every test passed",
    )
    _flag(cleanup, "--list-test-data", help="list test data left by earlier runs and exit")
    cleanup.add_argument(
        "--cleanup-older-than",
        metavar="AGE",
        help="remove test data older than AGE (e.g. 24h, 7d) and exit",
    )

    output = parser.add_argument_group("output")
    output.add_argument("--report-format", choices=REPORT_FORMATS, help="report format")
    output.add_argument(
        "--log-level", help="log level: error, warn, info, debug or trace"
    )
    output.add_argument("--log-file", help="log file path")
    _flag(output, "-v", "--verbose", help="log at trace level")

    loop = parser.add_argument_group("loop mode")
    _flag(loop, "--loop", help="run the suites repeatedly")
    loop.add_argument(
        "--loop-count", type=int, help="number of iterations (0 runs until interrupted)"
    )
    loop.add_argument("--loop-delay", type=int, help="seconds to wait between iterations")
    return parser


def load_config(args: argparse.Namespace) -> Config:
    """
    Load the configuration file named by ``--config`` and apply the command
    line overrides that were given.

    Raises:
        ConfigError: the configuration is unreadable or invalid

    """
    overrides: dict[str, Any] = {
        name: value for name, value in vars(args).items() if name != "config"
    }
    config = Config.from_file(args.config).update(**overrides)
    config.validate()
    return config


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_config(args)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1
    configure_logging(config.log_level, log_file=config.log_file)
    logger.info(
        "cli.start version=%s uri=%s base=%s suites=%s",
        __version__,
        config.uri,
        config.base_dn,
        ",".join(config.suites),
    )
    runner = Runner(config)
    try:
        if config.list_test_data:
            return runner.list_test_data()
        if config.cleanup_older_than:
            return runner.cleanup_older_than()
        return runner.run()
    except SetupError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
