"""Verification of XRDS documents signed with XML Simple Sign.

Only the Simple Sign profile is supported: the signature is computed
over the raw octets of the document with RSA-SHA1, and the signing
certificate chain travels in the document's C{ds:KeyInfo}.  The
document is never canonicalized.
"""
import logging

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import NameOID
from lxml import etree

from hostedopenid import trust
from hostedopenid.oidutil import force_bytes, fromBase64

__all__ = [
    'SimpleSignVerifier',
    'VerificationError',
    'MalformedXMLError',
    'UnsupportedAlgorithmError',
    'MissingCertificateError',
    'MalformedCertificateError',
    'SignatureMismatchError',
    'UntrustedChainError',
    'MissingCommonNameError',
]

_LOGGER = logging.getLogger(__name__)

C14N_RAW_OCTETS = 'http://docs.oasis-open.org/xri/xrd/2009/01#canonicalize-raw-octets'
SIGN_RSA_SHA1 = 'http://www.w3.org/2000/09/xmldsig#rsa-sha1'
NS_DSIG = 'http://www.w3.org/2000/09/xmldsig#'
NS_XRDS = 'xri://$xrds'

NAMESPACES = {'ds': NS_DSIG, 'xrds': NS_XRDS}


class VerificationError(Exception):
    """The document signature could not be verified."""


class MalformedXMLError(VerificationError):
    """The signed document is not well-formed XML."""


class UnsupportedAlgorithmError(VerificationError):
    """The signature uses an algorithm other than the Simple Sign ones."""


class MissingCertificateError(VerificationError):
    """No signing certificate is present in the document."""


class MalformedCertificateError(VerificationError):
    """A certificate in the document can not be parsed."""


class SignatureMismatchError(VerificationError):
    """The signature does not match the document."""


class UntrustedChainError(VerificationError):
    """The signing certificate does not chain to a trusted root."""


class MissingCommonNameError(VerificationError):
    """The signing certificate has no subject common name."""


def _parseDocument(document):
    parser = etree.XMLParser(resolve_entities=False, no_network=True, load_dtd=False)
    try:
        root = etree.fromstring(document, parser)
    except (ValueError, etree.XMLSyntaxError) as why:
        raise MalformedXMLError('Unable to parse signed document: %s' % (why,))
    if root is None:
        raise MalformedXMLError('Signed document is empty')
    return root


def _firstValue(root, path):
    values = root.xpath(path, namespaces=NAMESPACES)
    if not values:
        return None
    return values[0]


def _checkAlgorithms(root):
    c14n = _firstValue(root, '//ds:SignedInfo/ds:CanonicalizationMethod/@Algorithm')
    algorithm = _firstValue(root, '//ds:SignedInfo/ds:SignatureMethod/@Algorithm')
    if c14n != C14N_RAW_OCTETS:
        raise UnsupportedAlgorithmError('Unsupported canonicalization algorithm %s' % (c14n,))
    if algorithm != SIGN_RSA_SHA1:
        raise UnsupportedAlgorithmError('Unsupported signature algorithm %s' % (algorithm,))


def _parseCertificates(root):
    """Return the certificates of the signature, signing one first."""
    nodes = root.xpath('//ds:Signature/ds:KeyInfo/ds:X509Data/ds:X509Certificate',
                       namespaces=NAMESPACES)
    if not nodes:
        raise MissingCertificateError('No certificate found in signature')

    certificates = []
    for node in nodes:
        try:
            der = fromBase64(node.text or '')
            certificates.append(x509.load_der_x509_certificate(der))
        except ValueError as why:
            raise MalformedCertificateError('Unable to parse certificate: %s' % (why,))
    return certificates


def _commonName(certificate):
    attributes = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attributes:
        raise MissingCommonNameError('Signing certificate has no common name')
    return attributes[0].value.lower()


class SimpleSignVerifier(object):
    """Verifies XRDS documents signed with XML Simple Sign.

    @ivar trust_roots: the certificates signing chains must lead to
    @type trust_roots: L{hostedopenid.trust.TrustRoots}
    """

    def __init__(self, trust_roots=None):
        """
        @param trust_roots: trusted CA certificates, a
            L{TrustRoots<hostedopenid.trust.TrustRoots>} instance or an
            iterable of file and directory paths.  Defaults to the
            certifi CA bundle.

        @raises hostedopenid.trust.ConfigurationError: if the trust
            roots can not be loaded
        """
        if trust_roots is None:
            trust_roots = trust.TrustRoots.default()
        elif not isinstance(trust_roots, trust.TrustRoots):
            trust_roots = trust.TrustRoots.fromLocations(trust_roots)
        self.trust_roots = trust_roots

    def verify(self, document, signature_value):
        """Verify the signature of a document and the trust chain of its
        signing certificate.

        @param document: the document exactly as received
        @type document: bytes

        @param signature_value: base64 encoded signature of the document
        @type signature_value: str

        @return: the lowercased common name of the signing certificate
        @rtype: str

        @raises VerificationError: if the document can not be verified
        """
        document = force_bytes(document)
        root = _parseDocument(document)
        _checkAlgorithms(root)
        certificates = _parseCertificates(root)
        signer = certificates[0]

        public_key = signer.public_key()
        if not isinstance(public_key, rsa.RSAPublicKey):
            raise UnsupportedAlgorithmError('Signing key is not an RSA key')

        try:
            signature = fromBase64(signature_value)
        except ValueError as why:
            raise SignatureMismatchError('Unable to decode signature: %s' % (why,))

        try:
            public_key.verify(signature, document, padding.PKCS1v15(), hashes.SHA1())
        except InvalidSignature:
            raise SignatureMismatchError('Signature verification failed.')

        if not trust.validateChain(signer, certificates[1:], self.trust_roots):
            raise UntrustedChainError('Can not verify trust chain.')

        signed_by = _commonName(signer)
        _LOGGER.debug('Signature verified, signed by %s', signed_by)
        return signed_by
