"""``revoke`` subcommand."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from acmelib.core.errors import AcmeError

log = logging.getLogger(__name__)


def run_revoke(config, args) -> int:  # noqa: ANN001
    """Handle the revoke subcommand; returns the process exit code."""
    from acmelib.app import create_engine  # noqa: PLC0415

    cert_path = Path(args.cert)
    try:
        pem = cert_path.read_bytes()
    except OSError as exc:
        print(f"acmelib: cannot read {cert_path}: {exc}", file=sys.stderr)  # noqa: T201
        return 1

    engine = create_engine(config.settings)
    try:
        engine.revoke(pem, reason_code=args.reason)
    except AcmeError as exc:
        if args.debug:
            raise
        print(f"acmelib: revocation failed: {exc}", file=sys.stderr)  # noqa: T201
        return 1

    print(f"Revoked {cert_path}")  # noqa: T201
    return 0
