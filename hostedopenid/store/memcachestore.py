"""
This module contains a C{L{DiscoveryCache}} backed by memcached.
"""
import hashlib
import logging

from hostedopenid.store.interface import DEFAULT_TTL, DiscoveryCache

__all__ = ['MemcacheCache']

_LOGGER = logging.getLogger(__name__)

# memcached rejects longer keys
MAX_KEY_LENGTH = 250


def _isSafeKey(key):
    return len(key) <= MAX_KEY_LENGTH and all(32 < ord(c) < 127 for c in key)


class MemcacheCache(DiscoveryCache):
    """
    A cache over a memcached client.

    Any client with the C{get(key)}, C{set(key, value, expire)} and
    C{delete(key)} methods works, for example the clients of the
    C{python-memcached} and C{pymemcache} packages.  The client is
    shared, so the cache is safe to use from several threads as long as
    the client is.

    Keys memcached would reject, because they are too long or contain
    whitespace or control characters, are replaced by their SHA-1
    digest.
    """

    def __init__(self, client):
        """
        @param client: memcached client
        """
        self.client = client

    def _key(self, key):
        if _isSafeKey(key):
            return key
        return hashlib.sha1(key.encode('utf-8')).hexdigest()

    def get(self, key):
        return self.client.get(self._key(key))

    def put(self, key, value, ttl=DEFAULT_TTL):
        if not self.client.set(self._key(key), value, ttl):
            _LOGGER.debug('Memcached refused to store %s', key)

    def evict(self, key):
        return bool(self.client.delete(self._key(key)))
