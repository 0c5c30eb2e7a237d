"""A simple in-process cache."""
import threading
import time
from collections import namedtuple

from hostedopenid.store.interface import DEFAULT_TTL, DiscoveryCache

__all__ = ['MemoryCache', 'CacheEntry']

CacheEntry = namedtuple('CacheEntry', ['value', 'expires'])


class MemoryCache(DiscoveryCache):
    """In-process memory cache.

    Use for single long-running processes.  Entries are shared between
    threads.
    """

    def __init__(self, clock=time.time):
        """
        @param clock: function returning the current time in seconds
        """
        self.clock = clock
        self._entries = {}
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._entries)

    def get(self, key):
        now = self.clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires <= now:
                del self._entries[key]
                return None
            return entry.value

    def put(self, key, value, ttl=DEFAULT_TTL):
        entry = CacheEntry(value, self.clock() + ttl)
        with self._lock:
            self._entries[key] = entry

    def evict(self, key):
        with self._lock:
            return self._entries.pop(key, None) is not None

    def cleanup(self):
        """Remove expired entries.

        @return: the number of entries removed
        @rtype: int
        """
        now = self.clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)
