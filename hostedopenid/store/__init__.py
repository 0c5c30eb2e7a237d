"""
This package contains the caches discovery can use to avoid repeated
fetches of host-meta and XRDS documents.
"""
