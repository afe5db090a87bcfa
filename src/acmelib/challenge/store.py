"""Concurrency-safe registry of published challenge proofs.

One :class:`ChallengeStore` exists per challenge type.  Providers
record every proof they publish here; the HTTP-01 responder answers
probes from it and an external DNS publisher drains DNS-01 records via
:meth:`ChallengeStore.next_ready`.

Records live until :meth:`cleanup` or :meth:`clear_all` removes them;
nothing expires implicitly.

Usage::

    store = ChallengeStore("dns-01", queue_size=100)
    store.present("example.com", token, txt_value)
    record = store.next_ready()      # None when nothing is queued
"""

from __future__ import annotations

import itertools
import json
import logging
import queue
import threading
from dataclasses import replace

from acmelib.core.errors import ProviderError, ProviderErrorKind
from acmelib.models.challenge import ChallengeRecord

log = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100


class ChallengeStore:
    """Records published proofs and queues them for delivery.

    Parameters
    ----------
    challenge_type:
        The challenge type every record in this store carries.
    queue_size:
        Capacity of the delivery queue.  When the queue is full new
        records are still stored but their notification is dropped.

    """

    def __init__(
        self,
        challenge_type: str,
        *,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self.challenge_type = challenge_type
        self._lock = threading.Lock()
        # insertion id -> record; queued entries carry the id they were stored under
        self._records: dict[int, ChallengeRecord] = {}
        self._ids = itertools.count(1)
        self._queue: queue.Queue[tuple[int, ChallengeRecord]] = queue.Queue(maxsize=queue_size)

    # -- mutation -----------------------------------------------------------

    def present(
        self,
        domain: str,
        token: str,
        proof: str,
        *,
        exclusive: bool = False,
    ) -> bool:
        """Store a proof for *domain*.

        Returns ``True`` when a record was inserted and ``False`` when an
        identical (domain, proof) record already existed.

        Parameters
        ----------
        exclusive:
            When set, refuse a proof that differs from an unverified
            record already held for *domain*.

        Raises
        ------
        ProviderError
            ``kind=CONFLICT`` when *exclusive* is set and a different
            unresolved proof exists for *domain*.

        """
        with self._lock:
            for rec in self._records.values():
                if rec.domain != domain:
                    continue
                if rec.content == proof:
                    log.debug(
                        "%s proof for %s already present",
                        self.challenge_type,
                        domain,
                    )
                    return False
                if exclusive and not rec.verified:
                    msg = f"A different {self.challenge_type} proof is still published for {domain}"
                    raise ProviderError(
                        msg,
                        kind=ProviderErrorKind.CONFLICT,
                        domain=domain,
                        challenge_type=self.challenge_type,
                    )

            record = ChallengeRecord(
                type=self.challenge_type,
                domain=domain,
                token=token,
                content=proof,
            )
            record_id = next(self._ids)
            self._records[record_id] = record

        try:
            self._queue.put_nowait((record_id, record))
        except queue.Full:
            log.warning(
                "Challenge queue for %s is full, dropping notification for %s",
                self.challenge_type,
                domain,
            )
        log.info("Presented %s challenge for %s", self.challenge_type, domain)
        return True

    def cleanup(self, domain: str, token: str, proof: str) -> int:
        """Remove the record(s) matching *domain* and *proof*.

        An empty *token* matches any token.  Removing an absent record
        is not an error.

        Returns
        -------
        int
            The number of records removed.

        """
        with self._lock:
            stale = [
                record_id
                for record_id, r in self._records.items()
                if r.domain == domain and r.content == proof and (not token or r.token == token)
            ]
            for record_id in stale:
                del self._records[record_id]
            removed = len(stale)

        if removed:
            log.info("Cleaned up %s challenge for %s", self.challenge_type, domain)
        return removed

    def mark_verified(self, domain: str, content: str) -> bool:
        """Flag the matching record as validated by the CA."""
        with self._lock:
            for record_id, rec in self._records.items():
                if rec.domain == domain and rec.content == content:
                    self._records[record_id] = replace(rec, verified=True)
                    return True
        return False

    def clear_all(self) -> int:
        """Drop every record and drain the delivery queue."""
        with self._lock:
            count = len(self._records)
            self._records.clear()
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
        log.info("Cleared %d %s challenge(s)", count, self.challenge_type)
        return count

    # -- queries ------------------------------------------------------------

    def exists(self, domain: str, content: str) -> bool:
        with self._lock:
            return any(r.domain == domain and r.content == content for r in self._records.values())

    def records_for(self, domain: str) -> list[ChallengeRecord]:
        with self._lock:
            return [r for r in self._records.values() if r.domain == domain]

    def find_by_token(self, token: str) -> ChallengeRecord | None:
        with self._lock:
            for rec in self._records.values():
                if rec.token == token:
                    return rec
        return None

    def next_ready(self) -> ChallengeRecord | None:
        """Pop the next queued record without blocking.

        Records removed since they were queued are skipped, including a
        record re-presented after cleanup: only the notification of the
        insertion still stored is delivered.  ``None`` means nothing is
        waiting; callers should try again later.
        """
        while True:
            try:
                record_id, record = self._queue.get_nowait()
            except queue.Empty:
                return None
            with self._lock:
                current = self._records.get(record_id)
            if current is not None:
                return current
            log.debug("Skipping queued %s record for %s (cleaned up)", self.challenge_type, record.domain)

    def snapshot(self) -> bytes:
        """Serialise the current records as a JSON array."""
        with self._lock:
            data = [r.to_dict() for r in self._records.values()]
        return json.dumps(data).encode("utf-8")

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
