"""``issue`` subcommand: obtain a certificate and write it to disk."""

from __future__ import annotations

import logging
import os
import sys
import threading
from pathlib import Path

from acmelib.core.errors import AcmeError
from acmelib.core.types import ChallengeType

log = logging.getLogger(__name__)

_PRIVKEY_MODE = 0o600


class _DnsRecordAnnouncer:
    """Prints DNS-01 records as they are queued, for manual publication."""

    def __init__(self, store, interval: float = 0.5) -> None:  # noqa: ANN001
        self._store = store
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._run,
            name="dns01-announcer",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self._interval + 1)

    def _run(self) -> None:
        from acmelib.challenge.dns01 import record_name  # noqa: PLC0415

        while not self._stop_event.is_set():
            record = self._store.next_ready()
            if record is None:
                self._stop_event.wait(timeout=self._interval)
                continue
            print(  # noqa: T201
                f"Publish TXT {record_name(record.domain)} \"{record.content}\"",
                file=sys.stderr,
            )


def _write_bundle(bundle, out_dir: Path) -> None:  # noqa: ANN001
    out_dir.mkdir(parents=True, exist_ok=True)
    (out_dir / "cert.pem").write_text(bundle.certificate, encoding="ascii")
    (out_dir / "chain.pem").write_text("".join(bundle.chain), encoding="ascii")
    (out_dir / "fullchain.pem").write_text(bundle.fullchain, encoding="ascii")

    key_path = out_dir / "privkey.pem"
    fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, _PRIVKEY_MODE)
    with os.fdopen(fd, "w", encoding="ascii") as fh:
        fh.write(bundle.private_key)


def run_issue(config, args) -> int:  # noqa: ANN001
    """Handle the issue subcommand; returns the process exit code."""
    from acmelib.app import create_engine  # noqa: PLC0415
    from acmelib.challenge.responder import ResponderThread, create_responder_app  # noqa: PLC0415

    settings = config.settings
    engine = create_engine(settings)
    challenge_type = args.challenge_type

    responder = None
    announcer = None
    responder_cfg = settings.challenges.http01.responder
    if challenge_type == ChallengeType.HTTP_01 and responder_cfg.enabled:
        responder = ResponderThread(
            create_responder_app(engine.registry),
            responder_cfg.bind,
            responder_cfg.port,
        )
        responder.start()
    elif challenge_type == ChallengeType.DNS_01 and engine.registry.is_enabled(challenge_type):
        announcer = _DnsRecordAnnouncer(engine.registry.get_store(challenge_type))
        announcer.start()

    try:
        bundle = engine.issue(args.domains, challenge_type, contact_email=args.email)
    except (AcmeError, ValueError) as exc:
        if args.debug:
            raise
        print(f"acmelib: issuance failed: {exc}", file=sys.stderr)  # noqa: T201
        return 1
    finally:
        if announcer is not None:
            announcer.stop()
        if responder is not None:
            responder.stop()

    out_dir = Path(args.out_dir)
    _write_bundle(bundle, out_dir)
    print(f"Certificate for {', '.join(bundle.domains)} written to {out_dir}")  # noqa: T201
    return 0
