"""Service extraction from XRDS documents.

Only the pieces discovery needs are implemented: parsing, the services
of the final XRD, their types, URIs and extension elements.
"""
from lxml import etree

from hostedopenid.oidutil import force_bytes

__all__ = [
    'XRDSError',
    'parseXRDS',
    'nsTag',
    'ServiceDescriptor',
    'iterServices',
    'parseServices',
    'XRDS_NS',
    'XRD_NS_2_0',
]

XRDS_NS = 'xri://$xrds'
XRD_NS_2_0 = 'xri://$xrd*($v*2.0)'


class XRDSError(Exception):
    """An error with the XRDS document."""

    # The exception that triggered this exception
    reason = None


def nsTag(ns, t):
    return '{%s}%s' % (ns, t)


root_tag = nsTag(XRDS_NS, 'XRDS')
xrd_tag = nsTag(XRD_NS_2_0, 'XRD')
service_tag = nsTag(XRD_NS_2_0, 'Service')
uri_tag = nsTag(XRD_NS_2_0, 'URI')
type_tag = nsTag(XRD_NS_2_0, 'Type')


def _createParser():
    # Entities and external DTDs stay unresolved, so documents can not
    # read local files or reach the network.
    return etree.XMLParser(resolve_entities=False, no_network=True, load_dtd=False)


def parseXRDS(text):
    """Parse the given text as an XRDS document.

    @type text: bytes or str
    @return: ElementTree containing an XRDS document
    @raises XRDSError: When there is a parse error or the document does
        not contain an XRDS.
    """
    try:
        element = etree.fromstring(force_bytes(text), _createParser())
    except (ValueError, etree.XMLSyntaxError) as why:
        exc = XRDSError('Error parsing document as XML')
        exc.reason = why
        raise exc

    if element is None or element.tag != root_tag:
        raise XRDSError('Not an XRDS document')
    return etree.ElementTree(element)


def getYadisXRD(xrd_tree):
    """Return the XRD element that should contain the Yadis services"""
    xrd = None

    # for the side-effect of assigning the last one in the list to the
    # xrd variable
    for xrd in xrd_tree.findall(xrd_tag):
        pass

    # There were no elements found, or else xrd would be set to the
    # last one
    if xrd is None:
        raise XRDSError('No XRD present in tree')

    return xrd


def getPriority(element):
    """Get the priority of this name, defaulting to infinity.

    Elements without a parseable priority sort after every element
    which has one.
    """
    try:
        return int(element.get('priority'))
    except (TypeError, ValueError):
        return float('inf')


def prioSort(elements):
    """Sort a list of elements that have priority attributes.

    The sort is stable, so elements with the same priority keep
    document order.
    """
    return sorted(elements, key=getPriority)


class ServiceDescriptor(object):
    """One xrd:Service element.

    @ivar element: the xrd:Service element
    @ivar type_uris: the xrd:Type values, in document order
    @ivar uris: the xrd:URI values, most preferred first
    """

    def __init__(self, element):
        self.element = element
        self.type_uris = [(t.text or '').strip() for t in element.findall(type_tag)]
        self.uris = [(u.text or '').strip() for u in prioSort(element.findall(uri_tag))]

    def __repr__(self):
        return '<%s types=%r>' % (self.__class__.__name__, self.type_uris)

    def matchTypes(self, type_uris):
        """Return the type URIs of this service that are also in the
        given list."""
        return [uri for uri in self.type_uris if uri in type_uris]

    def getElements(self, tag):
        """Return child elements with the given qualified tag."""
        return self.element.findall(tag)

    def getElementText(self, *tags):
        """Return the stripped text of the first element with any of the
        given tags, or None when there is no such element."""
        for tag in tags:
            for element in self.element.findall(tag):
                if element.text and element.text.strip():
                    return element.text.strip()
        return None


def iterServices(xrd_tree):
    """Return an iterable over the ServiceDescriptors in the XRD.

    Services are ordered by priority, services of equal priority in
    document order.
    """
    xrd = getYadisXRD(xrd_tree.getroot())
    return (ServiceDescriptor(service) for service in prioSort(xrd.findall(service_tag)))


def parseServices(text):
    """Parse an XRDS document and return its ServiceDescriptors.

    @raises XRDSError: if the text is not an XRDS document
    """
    return list(iterServices(parseXRDS(text)))
