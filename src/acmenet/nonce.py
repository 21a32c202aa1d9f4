"""Replay nonce store shared by the connections of one session."""
import logging
import threading
from typing import Optional

from acmenet.errors import redact_nonce

logger = logging.getLogger(__name__)


class NonceStore:
    """Holds at most one current anti-replay nonce.

    Nonces are single use, so signing code must take them with `pop`,
    which reads and invalidates the value under the same lock. Two
    connections racing for the nonce never both receive it; the loser
    sees ``None`` and has to fetch a fresh one.

    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._nonce: Optional[bytes] = None

    def get(self) -> Optional[bytes]:
        """Current nonce, or ``None`` if none has been fetched yet."""
        with self._lock:
            return self._nonce

    def set(self, nonce: bytes) -> None:
        """Replace the current nonce."""
        with self._lock:
            logger.debug('Storing nonce: %s', redact_nonce(nonce))
            self._nonce = nonce

    def clear(self) -> None:
        """Forget the current nonce, forcing the next request to refetch."""
        with self._lock:
            self._nonce = None

    def pop(self) -> Optional[bytes]:
        """Take the current nonce, leaving the store empty."""
        with self._lock:
            nonce, self._nonce = self._nonce, None
            return nonce

    def __bool__(self) -> bool:
        with self._lock:
            return self._nonce is not None
