"""acmelib command-line entry point.

Usage::

    acmelib -c config.yaml --validate-only
    acmelib -c config.yaml issue -d example.com -d www.example.com --type http-01
    acmelib -c config.yaml issue -d '*.example.com' --type dns-01 --out-dir /etc/ssl/example
    acmelib -c config.yaml revoke --cert /etc/ssl/example/cert.pem --reason 4
    python -m acmelib -c config.yaml issue -d example.com
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from acmelib.core.types import ChallengeType, RevocationReason

log = logging.getLogger(__name__)


def _get_version() -> str:
    from acmelib import __version__  # noqa: PLC0415

    return __version__


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="acmelib",
        description="acmelib: obtain and revoke certificates from an ACME CA",
    )
    parser.add_argument(
        "-c",
        "--config",
        required=True,
        metavar="PATH",
        help="Path to the configuration file (YAML or JSON).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug output (full tracebacks, verbose logging).",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        default=False,
        help="Validate the configuration file and exit.",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # issue
    issue_parser = subparsers.add_parser("issue", help="Obtain a certificate")
    issue_parser.add_argument(
        "-d",
        "--domain",
        dest="domains",
        action="append",
        required=True,
        metavar="NAME",
        help="Domain to include (repeatable; the first becomes the CN).",
    )
    issue_parser.add_argument(
        "--type",
        dest="challenge_type",
        default=ChallengeType.HTTP_01.value,
        choices=[t.value for t in ChallengeType],
        help="Challenge type to satisfy (default: http-01).",
    )
    issue_parser.add_argument("--email", default=None, help="Account contact email.")
    issue_parser.add_argument(
        "--out-dir",
        default=".",
        metavar="DIR",
        help="Directory for cert.pem, chain.pem, fullchain.pem and privkey.pem.",
    )

    # revoke
    revoke_parser = subparsers.add_parser("revoke", help="Revoke a certificate")
    revoke_parser.add_argument("--cert", required=True, metavar="PATH", help="PEM certificate.")
    revoke_parser.add_argument(
        "--reason",
        type=int,
        default=int(RevocationReason.UNSPECIFIED),
        help="RFC 5280 reason code (default: 0, unspecified).",
    )

    return parser


def _print_error(message: str) -> None:
    """Print a user-facing error to stderr."""
    print(f"acmelib: error: {message}", file=sys.stderr)  # noqa: T201


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.  Parses arguments, loads config, runs a command."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    # -- resolve config path ---
    config_path = Path(args.config)
    if not config_path.is_file():
        _print_error(f"configuration file not found: {config_path}")
        sys.exit(1)

    # -- bootstrap logging early (basic stderr until config is loaded) ---
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    # -- load & validate config ---
    try:
        from acmelib.config import AcmelibConfig, ConfigValidationError  # noqa: PLC0415

        config = AcmelibConfig(config_file=str(config_path))
    except ConfigValidationError as exc:
        _print_error(str(exc))
        sys.exit(1)
    except Exception as exc:
        if args.debug:
            raise
        _print_error(f"failed to load configuration: {exc}")
        sys.exit(1)

    # -- replace bootstrap logging with structured logging ---
    from acmelib.logging import configure_logging  # noqa: PLC0415

    configure_logging(config.settings.logging)
    if args.debug:
        logging.getLogger("acmelib").setLevel(logging.DEBUG)

    if args.validate_only:
        _print_settings_summary(config)
        sys.exit(0)

    # -- dispatch subcommand ---
    command = args.command

    if command == "issue":
        from acmelib.cli.commands.issue import run_issue  # noqa: PLC0415

        sys.exit(run_issue(config, args))
    elif command == "revoke":
        from acmelib.cli.commands.revoke import run_revoke  # noqa: PLC0415

        sys.exit(run_revoke(config, args))
    else:
        parser.print_help(sys.stderr)
        sys.exit(2)


def _print_settings_summary(config) -> None:  # noqa: ANN001
    """Print a short summary of the loaded configuration."""
    s = config.settings
    lines = [
        f"Configuration OK: {config.data.get('_source', '?')}",
        f"  CA directory : {s.ca.directory_url}",
        f"  Account      : {s.account.email or '(no contact)'}",
        f"  Key file     : {s.account.key_file or '(ephemeral)'}",
        f"  Challenges   : {', '.join(s.challenges.enabled)}",
        f"  Polling      : {s.order.poll_base_seconds}s..{s.order.poll_max_seconds}s, "
        f"ceiling {s.order.poll_timeout_seconds}s",
    ]
    print("\n".join(lines))  # noqa: T201


if __name__ == "__main__":
    main()
