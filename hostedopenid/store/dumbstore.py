"""
This module contains a C{L{DiscoveryCache}} implementation which never
stores anything.
"""

from hostedopenid.store.interface import DEFAULT_TTL, DiscoveryCache


class DumbCache(DiscoveryCache):
    """
    This is a cache for use when caching is not wanted.  Every lookup
    misses, so every discovery fetches its documents again.
    """

    def get(self, key):
        """
        This implementation always returns C{None}.
        """
        return None

    def put(self, key, value, ttl=DEFAULT_TTL):
        """
        This implementation does nothing.
        """
        pass

    def evict(self, key):
        """
        This implementation always returns C{False}.
        """
        return False
