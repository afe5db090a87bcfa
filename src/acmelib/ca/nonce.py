"""Client-side replay-nonce pool (RFC 8555 §7.2).

Every signed request needs a fresh nonce.  The CA hands one out in the
``Replay-Nonce`` header of each response; the pool keeps those and
falls back to a ``HEAD newNonce`` request when it runs dry.  A nonce is
handed out at most once.

Usage::

    pool = NoncePool(fetch=client.new_nonce)
    nonce = pool.get()
    pool.add(response.headers.get("Replay-Nonce"))
"""

from __future__ import annotations

import collections
import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

log = logging.getLogger(__name__)

# Keep only the freshest nonces; the CA expires old ones anyway
_MAX_POOLED = 32


class NoncePool:
    """Thread-safe store of unused replay nonces.

    Parameters
    ----------
    fetch:
        Callable returning a fresh nonce from the CA.

    """

    def __init__(self, fetch: Callable[[], str]) -> None:
        self._fetch = fetch
        self._lock = threading.Lock()
        self._nonces: collections.deque[str] = collections.deque(maxlen=_MAX_POOLED)

    def add(self, nonce: str | None) -> None:
        """Remember a nonce harvested from a response header."""
        if not nonce:
            return
        with self._lock:
            self._nonces.append(nonce)

    def get(self) -> str:
        """Pop a pooled nonce, fetching a new one if none is pooled."""
        with self._lock:
            if self._nonces:
                return self._nonces.pop()
        log.debug("Nonce pool empty, fetching a fresh nonce")
        return self._fetch()

    def clear(self) -> None:
        with self._lock:
            self._nonces.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._nonces)
