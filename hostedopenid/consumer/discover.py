# -*- test-case-name: hostedopenid.test.test_discover -*-
"""OpenID service endpoints and generic, unsigned discovery.

The generic discovery here is what hosted discovery falls back to.  It
fetches the identifier, follows the Yadis C{X-XRDS-Location} header
and reads the OpenID services of the resulting XRDS document.
"""
import logging
from urllib.parse import urlparse

from hostedopenid import fetchers
from hostedopenid.yadis.xrds import XRD_NS_2_0, XRDSError, nsTag, parseServices

__all__ = [
    'DiscoveryFailure',
    'OpenIDServiceEndpoint',
    'makeOpenIDEndpoints',
    'discover',
]

_LOGGER = logging.getLogger(__name__)

OPENID_1_0_NS = 'http://openid.net/xmlns/1.0'
OPENID_IDP_2_0_TYPE = 'http://specs.openid.net/auth/2.0/server'
OPENID_2_0_TYPE = 'http://specs.openid.net/auth/2.0/signon'
OPENID_1_1_TYPE = 'http://openid.net/signon/1.1'
OPENID_1_0_TYPE = 'http://openid.net/signon/1.0'

OPENID_1_0_MESSAGE_NS = 'http://openid.net/signon/1.0'
OPENID_2_0_MESSAGE_NS = 'http://specs.openid.net/auth/2.0'

YADIS_HEADER_NAME = 'X-XRDS-Location'
YADIS_CONTENT_TYPE = 'application/xrds+xml'
YADIS_ACCEPT_HEADER = 'text/html; q=0.3, application/xhtml+xml; q=0.5, %s' % (YADIS_CONTENT_TYPE,)


class DiscoveryFailure(Exception):
    """Raised when generic discovery does not find any document.

    @ivar http_response: the response that made discovery fail, if any
    """

    def __init__(self, message, http_response):
        Exception.__init__(self, message)
        self.http_response = http_response


class OpenIDServiceEndpoint(object):
    """Object representing an OpenID service endpoint.

    @ivar claimed_id: the identifier the endpoint was discovered for,
        C{None} for OP identifier endpoints.
    @ivar server_url: the OP endpoint URL
    @ivar type_uris: the service type URIs, which tell the supported
        protocol versions
    """

    # OpenID service type URIs, listed in order of preference.
    openid_type_uris = [
        OPENID_IDP_2_0_TYPE,

        OPENID_2_0_TYPE,
        OPENID_1_1_TYPE,
        OPENID_1_0_TYPE,
    ]

    def __init__(self):
        self.claimed_id = None
        self.server_url = None
        self.type_uris = []
        self.local_id = None

    def __repr__(self):
        return '<%s server_url=%r claimed_id=%r local_id=%r type_uris=%r>' % (
            self.__class__.__name__, self.server_url, self.claimed_id, self.local_id, self.type_uris)

    def __eq__(self, other):
        if not isinstance(other, OpenIDServiceEndpoint):
            return NotImplemented
        return self._key() == other._key()

    def __ne__(self, other):
        return not (self == other)

    def __hash__(self):
        return hash(self._key())

    def _key(self):
        return (self.claimed_id, self.server_url, tuple(self.type_uris), self.local_id)

    def preferredNamespace(self):
        if (OPENID_IDP_2_0_TYPE in self.type_uris or
                OPENID_2_0_TYPE in self.type_uris):
            return OPENID_2_0_MESSAGE_NS
        else:
            return OPENID_1_0_MESSAGE_NS

    def supportsType(self, type_uri):
        """Does this endpoint support this type?"""
        return ((type_uri in self.type_uris) or
                (type_uri == OPENID_2_0_TYPE and self.isOPIdentifier()))

    def compatibilityMode(self):
        return self.preferredNamespace() != OPENID_2_0_MESSAGE_NS

    def isOPIdentifier(self):
        return OPENID_IDP_2_0_TYPE in self.type_uris

    def parseService(self, subject, uri, type_uris, service_element):
        """Set the state of this object based on the contents of the
        service element."""
        self.type_uris = type_uris
        self.server_url = uri

        if not self.isOPIdentifier():
            self.local_id = findOPLocalIdentifier(service_element,
                                                  self.type_uris)
            self.claimed_id = subject

    def getLocalID(self):
        """Return the identifier that should be sent as the
        openid.identity parameter to the server."""
        return self.local_id or self.claimed_id

    @classmethod
    def fromServiceDescriptor(cls, subject, service):
        """Create endpoints for every URI of an XRDS service.

        @type service: L{hostedopenid.yadis.xrds.ServiceDescriptor}

        @return: the endpoints, empty if the service is not an OpenID
            service
        @rtype: [OpenIDServiceEndpoint]
        """
        if not service.matchTypes(cls.openid_type_uris):
            return []

        endpoints = []
        for uri in service.uris:
            if not uri:
                continue
            endpoint = cls()
            endpoint.parseService(subject, uri, list(service.type_uris), service.element)
            endpoints.append(endpoint)
        return endpoints


def findOPLocalIdentifier(service_element, type_uris):
    """Find the OP-Local Identifier for this xrd:Service element.

    This considers openid:Delegate to be a synonym for xrd:LocalID if
    both OpenID 1.X and OpenID 2.0 types are present. If only OpenID
    1.X is present, it returns the value of openid:Delegate. If only
    OpenID 2.0 is present, it returns the value of xrd:LocalID. If
    there is more than one LocalID tag and the values are different,
    it raises a DiscoveryFailure. This is also triggered when the
    xrd:LocalID and openid:Delegate tags are different.

    @raises DiscoveryFailure: on conflicting local identifiers

    @returns: The OP-Local Identifier for this service element, if one
        is present, or None otherwise.
    @rtype: str or NoneType
    """
    # Build the list of tags that could contain the OP-Local Identifier
    local_id_tags = []
    if (OPENID_1_1_TYPE in type_uris or
            OPENID_1_0_TYPE in type_uris):
        local_id_tags.append(nsTag(OPENID_1_0_NS, 'Delegate'))

    if OPENID_2_0_TYPE in type_uris:
        local_id_tags.append(nsTag(XRD_NS_2_0, 'LocalID'))

    # Walk through all the matching tags and make sure that they all
    # have the same value
    local_id = None
    for local_id_tag in local_id_tags:
        for local_id_element in service_element.findall(local_id_tag):
            if local_id is None:
                local_id = local_id_element.text
            elif local_id != local_id_element.text:
                message = 'More than one %r tag found in one service element' % (local_id_tag,)
                raise DiscoveryFailure(message, None)

    return local_id


def makeOpenIDEndpoints(subject, services):
    """Build the endpoints of all OpenID services, in service order.

    @param subject: identifier the endpoints are bound to
    @type subject: str

    @type services: Iterable[L{hostedopenid.yadis.xrds.ServiceDescriptor}]

    @rtype: [OpenIDServiceEndpoint]
    """
    endpoints = []
    for service in services:
        endpoints.extend(OpenIDServiceEndpoint.fromServiceDescriptor(subject, service))
    return endpoints


def discover(uri, fetcher=None):
    """Discover OpenID services for an identifier without any signature
    checks.

    @param uri: identifier, an URL or a bare host name
    @type uri: str

    @param fetcher: HTTP fetcher, defaults to the library's default
    @type fetcher: L{hostedopenid.fetchers.HTTPFetcher}

    @return: (claimed_id, services)
    @rtype: (str, [OpenIDServiceEndpoint])

    @raises DiscoveryFailure: when no XRDS document is found
    """
    if fetcher is None:
        fetcher = fetchers.getDefaultFetcher()

    parsed = urlparse(uri)
    if parsed.scheme and parsed.netloc:
        if parsed.scheme not in ('http', 'https'):
            raise DiscoveryFailure('URI scheme is not HTTP or HTTPS', None)
    else:
        uri = 'http://' + uri

    response = fetcher.fetch(uri, headers={'Accept': YADIS_ACCEPT_HEADER})
    if response.status not in (200, 206):
        raise DiscoveryFailure(
            'HTTP Response status from identity URL host is not 200. '
            'Got status %r' % (response.status,), response)
    claimed_id = response.final_url or uri

    xrds_location = response.getHeader(YADIS_HEADER_NAME)
    if xrds_location:
        _LOGGER.debug('Following %s header of %s to %s', YADIS_HEADER_NAME, claimed_id, xrds_location)
        response = fetcher.fetch(xrds_location, headers={'Accept': YADIS_CONTENT_TYPE})
        if response.status not in (200, 206):
            raise DiscoveryFailure(
                'HTTP Response status from Yadis host is not 200. '
                'Got status %r' % (response.status,), response)

    try:
        services = parseServices(response.body)
    except XRDSError as why:
        raise DiscoveryFailure('No XRDS document found for %s: %s' % (claimed_id, why), response)

    return claimed_id, makeOpenIDEndpoints(claimed_id, services)
