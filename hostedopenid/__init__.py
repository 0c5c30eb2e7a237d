"""
This package implements signed OpenID discovery for hosted domains.

A hosted domain delegates its identity services to a provider. The
provider publishes a host-meta document pointing to the domain's XRDS,
and signs every XRDS it serves.  For the discovery entry point see the
C{L{hostedopenid.consumer.hosted}} module.
"""

__version__ = '1.0.0'

version_info = tuple(int(part) for part in __version__.split('.'))
