# -*- test-case-name: hostedopenid.test.test_hosted -*-
"""Signed OpenID discovery for hosted domains.

A hosted domain is discovered through its provider: the provider's
host-meta document names the XRDS of the domain, and every XRDS it
serves carries an XML Simple Sign signature.  A document is used only
when its signature verifies, its certificate chains to a trusted root
and the signer is the authority for the document.

Sample usage::

    discovery = HostedDiscovery(['/etc/ssl/certs'], cache=MemoryCache())
    claimed_id, endpoints = discovery.discover('example.com')

Identifiers that can not be discovered this way, for whatever reason,
are handed to the generic discovery in
C{L{hostedopenid.consumer.discover}}.  Callers which must not accept
unsigned results use L{HostedDiscovery.resolve} and reject
L{FALLBACK}.
"""
import logging
import re
from collections import namedtuple
from urllib.parse import quote_plus

from hostedopenid import fetchers, trust
from hostedopenid.consumer import discover as generic
from hostedopenid.oidutil import Symbol, force_text
from hostedopenid.simplesign import SimpleSignVerifier, VerificationError
from hostedopenid.store.dumbstore import DumbCache
from hostedopenid.yadis.xrds import XRDSError, nsTag, parseServices

__all__ = [
    'HostedDiscovery',
    'Resolved',
    'FALLBACK',
    'DiscoveryError',
    'HTTPFailure',
    'MissingHeaderError',
    'SignerMismatchError',
    'MissingElementError',
]

_LOGGER = logging.getLogger(__name__)

HOST_META_TEMPLATE = 'https://www.google.com/accounts/o8/.well-known/host-meta?hd=%s'
DESCRIBED_BY_TYPE = 'http://www.iana.org/assignments/relation/describedby'
HOSTED_ID = 'hosted-id.google.com'
GOOGLE_OPENID_NS = 'http://namespace.google.com/openid/xmlns'
URI_TEMPLATE_TAGS = (nsTag(GOOGLE_OPENID_NS, 'URITemplate'),
                     nsTag(generic.OPENID_1_0_NS, 'URITemplate'))
NEXT_AUTHORITY_TAGS = (nsTag(GOOGLE_OPENID_NS, 'NextAuthority'),
                       nsTag(generic.OPENID_1_0_NS, 'NextAuthority'))
USER_URI_VAR = '{%uri}'
CACHE_EXPIRY = 3600
CACHE_PREFIX = '_gapps_openid_'

SUCCESS_STATUSES = (200, 206)

# Identifiers with a path are claimed IDs, everything else is a domain.
CLAIMED_ID_RE = re.compile(r'^.*://(.*?)/.*')
LINK_RE = re.compile(r'<([^>]*)>\s*((?:;[^;,]*)*)')
LINK_LINE_RE = re.compile(r'^\s*Link:\s*(.*)$', re.IGNORECASE | re.MULTILINE)
REL_RE = re.compile(r';\s*rel\s*=\s*(?:"([^"]*)"|([^\s;,]*))', re.IGNORECASE)


class DiscoveryError(Exception):
    """A step of signed discovery failed."""


class HTTPFailure(DiscoveryError):
    """A document could not be fetched."""


class MissingHeaderError(DiscoveryError):
    """A required Link or Signature header is missing."""


class SignerMismatchError(DiscoveryError):
    """The document is signed by someone else than its authority."""


class MissingElementError(DiscoveryError):
    """The XRDS lacks the elements needed for user discovery."""


# Failures which send an identifier to generic discovery.
FALLBACK_ERRORS = (DiscoveryError, VerificationError, XRDSError, trust.CertificateError,
                   fetchers.HTTPFetchingError, generic.DiscoveryFailure)

Resolved = namedtuple('Resolved', ['identifier', 'endpoints'])

FALLBACK = Symbol('FALLBACK')


def parseLinks(value):
    """Return the (URL, rel) pairs of a Link header value.

    rel is C{None} when the link has no rel parameter.
    """
    links = []
    for match in LINK_RE.finditer(value):
        url, params = match.groups()
        rel_match = REL_RE.search(params)
        if rel_match is None:
            rel = None
        else:
            rel = rel_match.group(1) if rel_match.group(1) is not None else rel_match.group(2)
        links.append((url.strip(), rel))
    return links


def _isDescribedBy(rel):
    return rel is None or 'describedby' in rel.lower().split()


def _describedByURL(values):
    """Return the first described-by link URL of the Link values."""
    for value in values:
        for url, rel in parseLinks(value):
            if url and _isDescribedBy(rel):
                return url
    return None


class HostedDiscovery(object):
    """Discovery for hosted domains with signed XRDS documents.

    Instances hold no per-call state and may be shared between threads,
    provided the cache tolerates concurrent use.  The instance itself is
    a discovery function, so it can be given to a consumer as its
    discovery strategy.

    @ivar verifier: checks XRDS signatures
    @type verifier: L{hostedopenid.simplesign.SimpleSignVerifier}

    @ivar cache: cache for host-meta results and site XRDS documents
    @type cache: L{hostedopenid.store.interface.DiscoveryCache}

    @ivar fallback: generic discovery, called as
        C{fallback(identifier, fetcher)}
    """

    def __init__(self, trust_roots=None, cache=None, fallback=None,
                 host_meta_template=HOST_META_TEMPLATE, verifier=None):
        """
        @param trust_roots: trusted CA certificates, as a
            L{TrustRoots<hostedopenid.trust.TrustRoots>} or an iterable
            of file and directory paths.  Defaults to the certifi bundle.
            Ignored when a verifier is given.

        @param cache: optional cache, nothing is cached by default

        @param fallback: generic discovery function, defaults to
            L{hostedopenid.consumer.discover.discover}

        @param host_meta_template: URL of the host-meta document, with
            C{%s} where the domain goes

        @raises hostedopenid.trust.ConfigurationError: if the trust
            roots can not be loaded
        """
        if verifier is None:
            verifier = SimpleSignVerifier(trust_roots)
        if cache is None:
            cache = DumbCache()
        if fallback is None:
            fallback = generic.discover

        self.verifier = verifier
        self.cache = cache
        self.fallback = fallback
        self.host_meta_template = host_meta_template

    @classmethod
    def fromLocations(cls, locations, cache=None, **kwargs):
        """Create an instance trusting the certificates found at the
        given file and directory paths."""
        return cls(trust.TrustRoots.fromLocations(locations), cache=cache, **kwargs)

    def discover(self, identifier, fetcher=None):
        """Discover the OpenID endpoints of a domain or claimed ID.

        Falls back to generic discovery whenever signed discovery does
        not succeed.

        @param identifier: domain name of a hosted domain, or a claimed ID
        @type identifier: str

        @param fetcher: HTTP fetcher, defaults to the library's default

        @return: (identifier, endpoints)
        @rtype: (str, [L{OpenIDServiceEndpoint<hostedopenid.consumer.discover.OpenIDServiceEndpoint>}])

        @raises Exception: whatever the fallback discovery raises
        """
        result = self.resolve(identifier, fetcher)
        if result is FALLBACK:
            return self.fallback(identifier, fetcher)
        return result.identifier, result.endpoints

    __call__ = discover

    def resolve(self, identifier, fetcher=None):
        """Run signed discovery only.

        @return: L{Resolved} on success, L{FALLBACK} if the identifier
            could not be discovered with signed documents
        """
        if fetcher is None:
            fetcher = fetchers.getDefaultFetcher()
        if not isinstance(fetcher, fetchers.ExceptionWrappingFetcher):
            fetcher = fetchers.ExceptionWrappingFetcher(fetcher)

        try:
            return self._resolve(identifier, fetcher)
        except FALLBACK_ERRORS as why:
            _LOGGER.warning('Signed discovery failed for %s, falling back to generic discovery: %s',
                            identifier, why)
            return FALLBACK

    def _resolve(self, identifier, fetcher):
        match = CLAIMED_ID_RE.match(identifier)
        if match:
            return self.discoverUser(match.group(1), identifier, fetcher)
        return self.discoverSite(identifier, fetcher)

    def discoverSite(self, domain, fetcher):
        """Site discovery: the OpenID services of the domain's XRDS.

        @rtype: L{Resolved}
        @raises DiscoveryError: and the other fallback errors
        """
        url = self.fetchHostMeta(domain, fetcher)
        services = self.fetchXRDSServices(domain, url, fetcher)
        return Resolved(url, generic.makeOpenIDEndpoints(domain, services))

    def discoverUser(self, domain, claimed_id, fetcher):
        """User discovery: the OpenID services of the claimed ID's XRDS,
        located through the site XRDS of its domain.

        @rtype: L{Resolved}
        @raises DiscoveryError: and the other fallback errors
        """
        site_url = self.fetchHostMeta(domain, fetcher)
        site_services = self.fetchXRDSServices(domain, site_url, fetcher)
        user_url, next_authority = self.getUserXRDSURL(site_services, claimed_id)
        # Per-user documents are not cached.
        services = self.fetchXRDSServices(next_authority, user_url, fetcher, use_cache=False)
        return Resolved(claimed_id, generic.makeOpenIDEndpoints(claimed_id, services))

    def fetchHostMeta(self, domain, fetcher):
        """Return the location of the domain's XRDS, from its host-meta.

        @raises HTTPFailure: if host-meta can not be fetched
        @raises MissingHeaderError: if host-meta has no usable link
        """
        cache_key = 'hostmeta:' + domain
        cached = self._getCache(cache_key)
        if cached is not None:
            return force_text(cached)

        host_meta_url = self.host_meta_template % (domain,)
        response = fetcher.fetch(host_meta_url)
        if response.status not in SUCCESS_STATUSES:
            raise HTTPFailure('Received %s when fetching %s' % (response.status, host_meta_url))

        url = self._findXRDSLink(response)
        if url is None:
            raise MissingHeaderError('No link found in host-meta for %s' % (domain,))

        self._putCache(cache_key, url)
        return url

    def _findXRDSLink(self, response):
        header = response.getHeader('Link')
        if header:
            url = _describedByURL([header])
            if url is not None:
                return url

        if not response.body:
            return None
        # Link lines are plain ASCII, undecodable bytes are replaced.
        body = response.body
        if isinstance(body, bytes):
            body = body.decode('utf-8', 'replace')
        return _describedByURL(LINK_LINE_RE.findall(body))

    def fetchXRDSServices(self, authority, url, fetcher, use_cache=True):
        """Fetch, verify and parse an XRDS document.

        @param authority: domain which must have signed the document
        @param url: location of the document
        @param use_cache: whether the verified document may be cached

        @return: services of the document
        @rtype: [L{ServiceDescriptor<hostedopenid.yadis.xrds.ServiceDescriptor>}]

        @raises DiscoveryError: and the other fallback errors
        """
        # Entries are only valid for the authority whose signature was checked.
        cache_key = 'xrds:%s:%s' % (authority.lower(), url)
        body = None
        if use_cache:
            body = self._getCache(cache_key)

        if body is None:
            response = fetcher.fetch(url)
            if response.status not in SUCCESS_STATUSES:
                raise HTTPFailure('Received %s when fetching %s' % (response.status, url))

            body = response.body
            signature = response.getHeader('Signature')
            if not signature:
                raise MissingHeaderError('Missing signature header for %s' % (url,))

            signed_by = self.verifier.verify(body, signature)
            if signed_by != authority.lower() and signed_by != HOSTED_ID:
                raise SignerMismatchError('Signature from %s not valid for %s' % (signed_by, authority))

            # Signature valid and signed by trusted root by this point.
            if use_cache:
                self._putCache(cache_key, body)

        return parseServices(body)

    def getUserXRDSURL(self, services, claimed_id):
        """Find the user XRDS location in the site services.

        @return: (URL of the user XRDS, authority for it)
        @rtype: (str, str)

        @raises MissingElementError: if the site XRDS does not describe
            where user documents are
        """
        for service in services:
            if not service.matchTypes([DESCRIBED_BY_TYPE]):
                continue

            template = service.getElementText(*URI_TEMPLATE_TAGS)
            if template is None:
                raise MissingElementError('No URI template in the site XRDS')
            authority = service.getElementText(*NEXT_AUTHORITY_TAGS)
            if authority is None:
                raise MissingElementError('No next authority in the site XRDS')

            url = template.replace(USER_URI_VAR, quote_plus(claimed_id, safe=''))
            return url, authority

        raise MissingElementError('No %s service in the site XRDS' % (DESCRIBED_BY_TYPE,))

    def _getCache(self, key):
        value = self.cache.get(CACHE_PREFIX + key)
        if value is not None:
            _LOGGER.debug('Cache hit for %s', key)
        return value

    def _putCache(self, key, value):
        self.cache.put(CACHE_PREFIX + key, value, CACHE_EXPIRY)
