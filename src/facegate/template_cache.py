"""
In-memory cache of decrypted templates.

Decrypting every stored template for every recognition attempt is the most
expensive step of matching. ``TemplateCache`` keeps the decrypted gallery as
an immutable ``CacheSnapshot`` for a bounded time.

Freshness contract:

* ``get()`` returns the snapshot only while it is younger than the validity
  window; otherwise ``None``, and the caller rebuilds it from the encrypted
  store and calls ``set()``.
* ``invalidate()`` must be called right after any enrollment, deletion or
  template update. A stale cache causes false negatives (new identities not
  recognised) or false positives (deleted identities still matchable).
* Refresh is all-or-nothing: the snapshot reference is swapped, never edited,
  so a concurrent reader always sees one consistent gallery.
"""

import threading
import time
from typing import Callable, List, Optional, Tuple
import structlog

from .constants import CACHE_VALIDITY_SECONDS
from .data_models import CacheSnapshot, IdentityId

logger = structlog.get_logger(__name__)

Loader = Callable[[], List[Tuple[IdentityId, object]]]


class TemplateCache:
    """
    Time-bounded holder of a single decrypted ``CacheSnapshot``.

    Parameters
    ----------
    validity_seconds : float, default=CACHE_VALIDITY_SECONDS
        How long a snapshot stays valid after ``set()``.
    clock : callable, default=time.monotonic
        Source of the current time in seconds.

    Examples
    --------
    >>> cache = TemplateCache(validity_seconds=300)
    >>> cache.get() is None
    True
    >>> cache.set(snapshot)
    >>> cache.get() is snapshot
    True
    """

    def __init__(
        self,
        validity_seconds: float = CACHE_VALIDITY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if validity_seconds <= 0:
            raise ValueError("validity_seconds must be positive")

        self.validity_seconds = validity_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._state: Optional[Tuple[CacheSnapshot, float]] = None

    def get(self) -> Optional[CacheSnapshot]:
        """
        Return the current snapshot if it is still fresh.

        Returns
        -------
        CacheSnapshot or None
            ``None`` when empty, invalidated or expired.
        """
        state = self._state
        if state is None:
            return None

        snapshot, stored_at = state
        if self._clock() - stored_at < self.validity_seconds:
            logger.debug("Using cached templates", n_templates=len(snapshot))
            return snapshot

        return None

    def set(self, snapshot: CacheSnapshot) -> None:
        """Replace the current snapshot and restart the validity window."""
        if not isinstance(snapshot, CacheSnapshot):
            raise TypeError("TemplateCache.set() expects a CacheSnapshot")

        with self._lock:
            self._state = (snapshot, self._clock())

        logger.debug("Cached decrypted templates", n_templates=len(snapshot))

    def invalidate(self) -> None:
        """Discard the current snapshot unconditionally."""
        with self._lock:
            self._state = None

        logger.debug("Template cache invalidated")

    def is_valid(self) -> bool:
        return self.get() is not None

    def age_seconds(self) -> Optional[float]:
        """Seconds since the snapshot was stored, or ``None`` when empty."""
        state = self._state
        if state is None:
            return None
        return self._clock() - state[1]

    def get_or_load(self, loader: Loader) -> CacheSnapshot:
        """
        Return the fresh snapshot, rebuilding it with ``loader`` if needed.

        Parameters
        ----------
        loader : callable
            Returns every ``(identity_id, embedding)`` pair, typically
            ``TemplateStore.load_all``. Errors propagate unchanged and leave
            the cache empty.

        Returns
        -------
        CacheSnapshot
            The fresh or newly built snapshot.
        """
        snapshot = self.get()
        if snapshot is not None:
            return snapshot

        started = time.perf_counter()
        snapshot = CacheSnapshot.from_pairs(loader())
        self.set(snapshot)

        logger.info(
            "Template cache rebuilt",
            n_templates=len(snapshot),
            n_identities=len(snapshot.identity_ids),
            load_time_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return snapshot
