"""Time-bounded cache for Palette Color Lookup Table Data."""
import logging
import threading
import time
from typing import Callable, Dict, Optional

from dicomweb_metadata.models import PaletteColorEntry


logger = logging.getLogger(__name__)

#: Maximum age of a cache entry in seconds (24 hours)
DEFAULT_MAX_AGE = 24 * 60 * 60.0


class PaletteColorCache:

    """Cache of palettes keyed by their Palette Color Lookup Table UID.

    Entries older than `max_age` are treated as absent and are evicted on
    the next lookup. The number of entries is not bounded otherwise; it
    grows with the number of distinct palettes encountered.

    Palettes that are absent are fetched at most once at a time per UID,
    regardless of how many threads request them (see `get_or_fetch`).

    Attributes
    ----------
    max_age: float
        Maximum age of an entry in seconds

    """

    def __init__(
        self,
        max_age: float = DEFAULT_MAX_AGE,
        clock: Callable[[], float] = time.time
    ) -> None:
        """Instantiate cache.

        Parameters
        ----------
        max_age: float, optional
            Maximum age of an entry in seconds
        clock: Callable[[], float], optional
            Function that returns the current time in seconds

        """
        self.max_age = max_age
        self._clock = clock
        self._entries: Dict[str, PaletteColorEntry] = {}
        self._count = 0
        self._lock = threading.Lock()
        self._fetch_locks: Dict[str, threading.Lock] = {}

    @staticmethod
    def is_valid_key(uid: Optional[str]) -> bool:
        """Whether `uid` can be used as key of an entry."""
        return isinstance(uid, str) and len(uid) > 0

    @property
    def count(self) -> int:
        """int: number of live entries"""
        return self._count

    def __len__(self) -> int:
        return self._count

    def __contains__(self, uid: object) -> bool:
        if not isinstance(uid, str):
            return False
        return self.get(uid) is not None

    def get(self, uid: str) -> Optional[PaletteColorEntry]:
        """Get an entry.

        Parameters
        ----------
        uid: str
            Palette Color Lookup Table UID

        Returns
        -------
        Union[dicomweb_metadata.models.PaletteColorEntry, None]
            entry or ``None`` in case there is no entry for `uid` or the
            entry has expired

        """
        with self._lock:
            entry = self._entries.get(uid)
            if entry is None:
                return None
            age = self._clock() - entry.created_at
            if age > self.max_age:
                logger.debug(f'evict expired palette "{uid}"')
                del self._entries[uid]
                self._count -= 1
                return None
            return entry

    def put(self, entry: PaletteColorEntry) -> None:
        """Store an entry, replacing a previous entry with the same UID.

        Entries without a valid UID are ignored.

        Parameters
        ----------
        entry: dicomweb_metadata.models.PaletteColorEntry
            entry

        """
        if not self.is_valid_key(entry.uid):
            return
        with self._lock:
            if entry.uid not in self._entries:
                self._count += 1
            entry.created_at = self._clock()
            self._entries[entry.uid] = entry

    def _get_fetch_lock(self, uid: str) -> threading.Lock:
        with self._lock:
            if uid not in self._fetch_locks:
                self._fetch_locks[uid] = threading.Lock()
            return self._fetch_locks[uid]

    def get_or_fetch(
        self,
        uid: str,
        fetch: Callable[[], PaletteColorEntry]
    ) -> PaletteColorEntry:
        """Get an entry, fetching and storing it in case it is absent.

        Concurrent callers that request the same absent UID wait for a
        single call of `fetch` and then get its result from the cache.

        Parameters
        ----------
        uid: str
            Palette Color Lookup Table UID
        fetch: Callable[[], dicomweb_metadata.models.PaletteColorEntry]
            Function that fetches the palette

        Returns
        -------
        dicomweb_metadata.models.PaletteColorEntry
            entry

        Raises
        ------
        ValueError
            When `uid` is not a valid key

        Note
        ----
        Errors raised by `fetch` are propagated and nothing is stored, so
        the next caller fetches the palette again.

        """
        if not self.is_valid_key(uid):
            raise ValueError(f'Invalid palette UID: {uid!r}')
        entry = self.get(uid)
        if entry is not None:
            logger.debug(f'palette "{uid}" found in cache')
            return entry
        with self._get_fetch_lock(uid):
            entry = self.get(uid)
            if entry is not None:
                logger.debug(f'palette "{uid}" found in cache (after lock)')
                return entry
            logger.debug(f'fetch palette "{uid}"')
            entry = fetch()
            self.put(entry)
        return entry

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._entries.clear()
            self._count = 0


#: Process-wide cache used when no cache is passed explicitly
default_palette_cache = PaletteColorCache()
