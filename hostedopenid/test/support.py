"""Test utilities: certificates, signed XRDS documents and fetchers."""
import datetime
import functools

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import NameOID

from hostedopenid.fetchers import HTTPResponse
from hostedopenid.oidutil import toBase64
from hostedopenid.simplesign import C14N_RAW_OCTETS, SIGN_RSA_SHA1

ONE_DAY = datetime.timedelta(days=1)


@functools.lru_cache(maxsize=None)
def makeKey(name):
    """Return an RSA key, one per name for the whole test run."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def makeCertificate(common_name, key, issuer=None, issuer_key=None, ca=False,
                    not_before=None, not_after=None, with_constraints=True, path_length=None,
                    key_usage=None):
    """Create a certificate for the key.

    Without an issuer the certificate is self-signed.  Without a common
    name the subject holds only an organization.
    key_usage is an x509.KeyUsage extension value, see L{keyUsage}.
    """
    now = datetime.datetime.now(datetime.timezone.utc)
    if not_before is None:
        not_before = now - ONE_DAY
    if not_after is None:
        not_after = now + 30 * ONE_DAY

    if common_name is None:
        subject = x509.Name([x509.NameAttribute(NameOID.ORGANIZATION_NAME, 'Example')])
    else:
        subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    if issuer is None:
        issuer_name = subject
        issuer_key = key
    else:
        issuer_name = issuer.subject

    builder = x509.CertificateBuilder().subject_name(
        subject
    ).issuer_name(
        issuer_name
    ).public_key(
        key.public_key()
    ).serial_number(
        x509.random_serial_number()
    ).not_valid_before(
        not_before
    ).not_valid_after(
        not_after
    )
    if with_constraints:
        builder = builder.add_extension(x509.BasicConstraints(ca=ca, path_length=path_length), critical=True)
    if key_usage is not None:
        builder = builder.add_extension(key_usage, critical=True)
    return builder.sign(issuer_key, hashes.SHA256())


def keyUsage(**flags):
    """Return a KeyUsage with only the given flags set."""
    names = ['digital_signature', 'content_commitment', 'key_encipherment', 'data_encipherment',
             'key_agreement', 'key_cert_sign', 'crl_sign', 'encipher_only', 'decipher_only']
    return x509.KeyUsage(**{name: flags.get(name, False) for name in names})


class PKI(object):
    """A root CA, an intermediate CA and signing certificates below them."""

    def __init__(self, name='Test'):
        self.root_key = makeKey(name + ' root')
        self.root = makeCertificate('%s Root CA' % name, self.root_key, ca=True)
        self.intermediate_key = makeKey(name + ' intermediate')
        self.intermediate = makeCertificate('%s Intermediate CA' % name, self.intermediate_key,
                                            issuer=self.root, issuer_key=self.root_key, ca=True)

    def signer(self, common_name, **kwargs):
        """Return (key, certificate) issued by the intermediate CA."""
        key = makeKey('signer')
        cert = makeCertificate(common_name, key, issuer=self.intermediate,
                               issuer_key=self.intermediate_key, **kwargs)
        return key, cert


def pem(cert):
    return cert.public_bytes(serialization.Encoding.PEM)


def der(cert):
    return cert.public_bytes(serialization.Encoding.DER)


SIGNATURE_TEMPLATE = """\
  <ds:Signature xmlns:ds="http://www.w3.org/2000/09/xmldsig#">
    <ds:SignedInfo>
      <ds:CanonicalizationMethod Algorithm="%(c14n)s"/>
      <ds:SignatureMethod Algorithm="%(algorithm)s"/>
    </ds:SignedInfo>
    <ds:KeyInfo>
      <ds:X509Data>
%(certificates)s
      </ds:X509Data>
    </ds:KeyInfo>
  </ds:Signature>
"""

XRDS_TEMPLATE = """\
<?xml version="1.0" encoding="UTF-8"?>
<xrds:XRDS xmlns:xrds="xri://$xrds" xmlns="xri://$xrd*($v*2.0)">
  <XRD>
%(services)s
  </XRD>
%(signature)s</xrds:XRDS>
"""

OP_SERVICE = """\
    <Service priority="0">
      <Type>http://specs.openid.net/auth/2.0/server</Type>
      <URI>%s</URI>
    </Service>"""

SIGNON_SERVICE = """\
    <Service priority="0">
      <Type>http://specs.openid.net/auth/2.0/signon</Type>
      <URI>%s</URI>
    </Service>"""

DESCRIBED_BY_SERVICE = """\
    <Service priority="0" xmlns:openid="http://namespace.google.com/openid/xmlns">
      <Type>http://www.iana.org/assignments/relation/describedby</Type>
      <openid:URITemplate>%s</openid:URITemplate>
      <openid:NextAuthority>%s</openid:NextAuthority>
    </Service>"""


def makeXRDS(services, certificates=(), c14n=C14N_RAW_OCTETS, algorithm=SIGN_RSA_SHA1):
    """Return an XRDS document with a signature block for the certificates."""
    if certificates:
        cert_elements = '\n'.join(
            '        <ds:X509Certificate>%s</ds:X509Certificate>' % toBase64(der(cert))
            for cert in certificates)
        signature = SIGNATURE_TEMPLATE % {'c14n': c14n, 'algorithm': algorithm,
                                          'certificates': cert_elements}
    else:
        signature = ''
    text = XRDS_TEMPLATE % {'services': '\n'.join(services), 'signature': signature}
    return text.encode('utf-8')


def sign(document, key):
    """Return the base64 RSA-SHA1 signature of the raw document."""
    return toBase64(key.sign(document, padding.PKCS1v15(), hashes.SHA1()))


def signedXRDS(pki, signer_name, services, **kwargs):
    """Return (document, signature) signed by a certificate for signer_name."""
    key, cert = pki.signer(signer_name)
    document = makeXRDS(services, [cert, pki.intermediate], **kwargs)
    return document, sign(document, key)


class MockFetcher(object):
    """Fetcher serving canned responses.

    Unknown URLs get a 404.  Every fetched URL is logged in fetchlog.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.fetchlog = []

    def add(self, url, body=b'', status=200, headers=None):
        self.responses[url] = HTTPResponse(url, status, headers or {}, body)

    def fetch(self, url, headers=None):
        self.fetchlog.append(url)
        response = self.responses.get(url)
        if response is None:
            return HTTPResponse(url, 404, {'Content-Type': 'text/plain'}, b'Not found')
        if isinstance(response, Exception):
            raise response
        return response
