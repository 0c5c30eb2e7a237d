"""
This module contains the definition of the C{L{DiscoveryCache}}
interface.
"""

__all__ = ['DiscoveryCache', 'DEFAULT_TTL']

DEFAULT_TTL = 3600


class DiscoveryCache(object):
    """
    This is the interface for the caches used by hosted discovery.

    A cache is a pure optimization.  Discovery produces the same results
    with any implementation, including one that never stores anything,
    so implementations are free to drop entries at any time.  Entries
    must not be returned after their time to live has passed; a caller
    can not tell an expired entry from a missing one.

    Implementations used by concurrent discovery calls must tolerate
    concurrent C{get} and C{put}.  The last C{put} for a key wins.

    @sort: get, put, evict
    """

    def get(self, key):
        """
        Return the value stored under the key.


        @param key: The cache key.

        @type key: C{str}


        @return: The stored value, or C{None} if there is no entry for
            the key or the entry has expired.
        """
        raise NotImplementedError

    def put(self, key, value, ttl=DEFAULT_TTL):
        """
        Store a value under the key, replacing any previous entry.


        @param key: The cache key.

        @type key: C{str}


        @param value: The value to store.  Discovery stores only text
            and bytes.


        @param ttl: The number of seconds the entry stays valid.

        @type ttl: C{int}


        @return: C{None}
        """
        raise NotImplementedError

    def evict(self, key):
        """
        Remove the entry for the key, if there is one.


        @return: Whether an entry was removed, if the implementation
            can tell.

        @rtype: C{bool}
        """
        raise NotImplementedError
