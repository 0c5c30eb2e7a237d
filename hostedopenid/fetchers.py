# -*- test-case-name: hostedopenid.test.test_fetchers -*-
"""HTTP access for discovery.

Discovery only reads documents, so a fetcher performs GET requests and
nothing else.  Whatever the library behind it, a fetcher returns an
L{HTTPResponse}; HTTP error statuses are part of the response, only
network and protocol failures raise.
"""
import sys
from urllib.error import HTTPError
from urllib.request import Request, urlopen

import hostedopenid

__all__ = ['getDefaultFetcher', 'setDefaultFetcher', 'createHTTPFetcher', 'HTTPResponse', 'HTTPFetcher',
           'HTTPFetchingError', 'ExceptionWrappingFetcher', 'RequestsFetcher', 'Urllib2Fetcher']

# requests is an optional dependency
try:
    import requests
except ImportError:
    requests = None

USER_AGENT = 'python-hostedopenid/%s (%s)' % (hostedopenid.__version__, sys.platform)
# Host-meta and XRDS documents are small, larger bodies are cut.
MAX_RESPONSE_KB = 1024


def createHTTPFetcher(timeout=None):
    """Create a fetcher with the best available HTTP library.

    C{requests} is used when installed, C{urllib} otherwise.

    @param timeout: seconds to wait for the server
    @rtype: HTTPFetcher
    """
    if requests is not None:
        return RequestsFetcher(timeout=timeout)
    return Urllib2Fetcher(timeout=timeout)


# The process-wide fetcher, created on first use.
_default_fetcher = None


def getDefaultFetcher():
    """Return the fetcher discovery uses when none is given.

    @rtype: HTTPFetcher
    """
    if _default_fetcher is None:
        setDefaultFetcher(createHTTPFetcher())
    return _default_fetcher


def setDefaultFetcher(fetcher, wrap_exceptions=True):
    """Replace the default fetcher.

    @param fetcher: the new default, C{None} to go back to
        L{createHTTPFetcher} on next use
    @type fetcher: HTTPFetcher

    @param wrap_exceptions: whether exceptions of the fetcher are
        turned into L{HTTPFetchingError}
    @type wrap_exceptions: bool
    """
    global _default_fetcher
    if fetcher is not None and wrap_exceptions:
        fetcher = ExceptionWrappingFetcher(fetcher)
    _default_fetcher = fetcher


class HTTPResponse(object):
    """A response as seen by discovery.

    @ivar final_url: URL of the response, after redirects
    @ivar status: HTTP status code
    @ivar headers: response headers, a mapping
    @type body: bytes
    """

    def __init__(self, final_url=None, status=None, headers=None, body=None):
        self.final_url = final_url
        self.status = status
        self.headers = headers
        self.body = body

    def __repr__(self):
        return '<%s %s from %s>' % (self.__class__.__name__, self.status, self.final_url)

    def getHeader(self, name, default=None):
        """Return the value of a header, names are case-insensitive."""
        if not self.headers:
            return default
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return default


class HTTPFetcher(object):
    """Interface of the objects which fetch documents for discovery."""

    def fetch(self, url, headers=None):
        """GET a document, following redirects.

        @param headers: extra request headers
        @type headers: Dict[str, str]

        @return: the response, whatever its status
        @rtype: L{HTTPResponse}

        @raise Exception: on network or protocol failures, the exception
            type depends on the implementation
        """
        raise NotImplementedError


class HTTPFetchingError(Exception):
    """A fetcher failed with an exception.

    @ivar why: the original exception
    """

    def __init__(self, why=None):
        Exception.__init__(self, why)
        self.why = why


class ExceptionWrappingFetcher(HTTPFetcher):
    """Fetcher which raises only L{HTTPFetchingError}.

    @ivar fetcher: the wrapped fetcher
    """

    def __init__(self, fetcher):
        self.fetcher = fetcher

    def fetch(self, url, headers=None):
        try:
            return self.fetcher.fetch(url, headers=headers)
        except HTTPFetchingError:
            raise
        except Exception as why:
            raise HTTPFetchingError(why=why)


def _requestHeaders(headers, library):
    headers = dict(headers or {})
    headers.setdefault('User-Agent', '%s %s' % (USER_AGENT, library))
    return headers


class Urllib2Fetcher(HTTPFetcher):
    """Fetcher on top of C{urllib}, for installations without requests."""

    # Replaceable in tests
    urlopen = staticmethod(urlopen)

    def __init__(self, timeout=None):
        """@param timeout: seconds to wait for the server"""
        self.timeout = timeout

    def fetch(self, url, headers=None):
        if not url.startswith(('http://', 'https://')):
            raise ValueError('Bad URL scheme: %r' % (url,))

        request = Request(url, headers=_requestHeaders(headers, 'Python-urllib'))
        kwargs = {}
        if self.timeout is not None:
            kwargs['timeout'] = self.timeout
        try:
            response = self.urlopen(request, **kwargs)
        except HTTPError as error:
            # Error statuses are responses too.
            response = error
        try:
            return HTTPResponse(response.geturl(), getattr(response, 'code', 200), dict(response.info().items()),
                                response.read(MAX_RESPONSE_KB * 1024))
        finally:
            response.close()


class RequestsFetcher(HTTPFetcher):
    """Fetcher on top of C{requests}."""

    def __init__(self, timeout=None):
        """@param timeout: seconds to wait for the server, passed to requests"""
        if requests is None:
            raise RuntimeError('Cannot find requests library')
        self.timeout = timeout

    def fetch(self, url, headers=None):
        """@raises requests.RequestException: on network failures"""
        response = requests.get(url, headers=_requestHeaders(headers, 'python-requests'), timeout=self.timeout)
        return HTTPResponse(response.url, response.status_code, response.headers,
                            response.content[:MAX_RESPONSE_KB * 1024])
