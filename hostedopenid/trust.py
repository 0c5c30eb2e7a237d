"""Certificate chain validation against a configured set of trusted roots.

The trust root set is loaded once, from files, directories or
certificates already in memory, and never changes afterwards.  Chains
are validated for any purpose; revocation is not checked.
"""
import datetime
import logging
import os

import certifi
from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes

__all__ = ['TrustRoots', 'validateChain', 'loadCertificate', 'CertificateError',
           'ConfigurationError']

_LOGGER = logging.getLogger(__name__)

MAX_CHAIN_DEPTH = 10

PEM_MARKER = b'-----BEGIN CERTIFICATE-----'


class ConfigurationError(Exception):
    """The trust roots could not be loaded."""


class CertificateError(ValueError):
    """Certificate data could not be parsed."""


def loadCertificate(data):
    """Return a certificate object for PEM or DER encoded data.

    Certificate objects are returned unchanged.

    @raises CertificateError: if the data is not a certificate
    """
    if isinstance(data, x509.Certificate):
        return data
    if isinstance(data, str):
        data = data.encode('ascii')
    try:
        if PEM_MARKER in data:
            return x509.load_pem_x509_certificate(data)
        return x509.load_der_x509_certificate(data)
    except (ValueError, TypeError) as why:
        raise CertificateError('Unable to parse certificate: %s' % (why,))


def _loadCertificates(data):
    """Load every certificate held by the data, PEM bundles included."""
    if PEM_MARKER in data:
        try:
            return x509.load_pem_x509_certificates(data)
        except ValueError as why:
            raise CertificateError('Unable to parse certificate bundle: %s' % (why,))
    return [loadCertificate(data)]


def _fingerprint(cert):
    return cert.fingerprint(hashes.SHA256())


class TrustRoots(object):
    """An immutable set of trusted CA certificates.

    @ivar certificates: the trusted certificates, in load order
    @type certificates: Tuple[x509.Certificate]
    """

    def __init__(self, certificates):
        try:
            certificates = tuple(loadCertificate(c) for c in certificates)
        except CertificateError as why:
            raise ConfigurationError('Invalid trusted certificate: %s' % (why,))
        if not certificates:
            raise ConfigurationError('No trusted certificates configured')

        self._certificates = certificates
        self._fingerprints = frozenset(_fingerprint(c) for c in certificates)
        by_subject = {}
        for cert in certificates:
            by_subject.setdefault(cert.subject, []).append(cert)
        self._by_subject = by_subject

    @property
    def certificates(self):
        return self._certificates

    def __len__(self):
        return len(self._certificates)

    def __contains__(self, cert):
        return _fingerprint(cert) in self._fingerprints

    def __repr__(self):
        return '<%s with %d certificates>' % (self.__class__.__name__, len(self))

    @classmethod
    def fromLocations(cls, locations):
        """Load trusted certificates from files and directories.

        Files may hold a single PEM or DER certificate, or a bundle of PEM
        certificates.  Every regular file in a directory is tried; files
        that do not hold certificates are skipped.

        @param locations: file and directory paths
        @type locations: Iterable[str]

        @raises ConfigurationError: if a location can not be read or
            nothing could be loaded from it.
        """
        if isinstance(locations, (str, bytes, os.PathLike)):
            locations = [locations]

        certificates = []
        for location in locations:
            if os.path.isdir(location):
                certificates.extend(cls._loadDirectory(location))
            else:
                certificates.extend(cls._loadFile(location))
        return cls(certificates)

    @classmethod
    def default(cls):
        """Load the Mozilla CA bundle distributed by certifi."""
        return cls.fromLocations([certifi.where()])

    @staticmethod
    def _read(path):
        try:
            with open(path, 'rb') as cert_file:
                return cert_file.read()
        except OSError as why:
            raise ConfigurationError('Unable to read trust root %s: %s' % (path, why))

    @classmethod
    def _loadFile(cls, path):
        try:
            return _loadCertificates(cls._read(path))
        except CertificateError as why:
            raise ConfigurationError('Invalid trust root %s: %s' % (path, why))

    @classmethod
    def _loadDirectory(cls, path):
        certificates = []
        for name in sorted(os.listdir(path)):
            filename = os.path.join(path, name)
            if not os.path.isfile(filename):
                continue
            try:
                certificates.extend(_loadCertificates(cls._read(filename)))
            except CertificateError:
                _LOGGER.debug('Skipping %s, no certificate found', filename)
        if not certificates:
            raise ConfigurationError('No certificates found in %s' % (path,))
        return certificates

    def findIssuers(self, cert):
        """Return the trusted certificates which issued cert."""
        return [issuer for issuer in self._by_subject.get(cert.issuer, ())
                if _isIssuedBy(cert, issuer)]


def _isIssuedBy(cert, issuer):
    try:
        cert.verify_directly_issued_by(issuer)
    except (ValueError, TypeError, InvalidSignature, UnsupportedAlgorithm):
        return False
    return True


def _isCurrent(cert, now):
    return cert.not_valid_before_utc <= now <= cert.not_valid_after_utc


def _canIssue(issuer, below):
    """Decide whether issuer may sign a certificate which has C{below}
    CA certificates under it in the chain."""
    try:
        constraints = issuer.extensions.get_extension_for_class(x509.BasicConstraints).value
    except x509.ExtensionNotFound:
        # Version 1 certificates predate extensions.
        return issuer.version == x509.Version.v1
    if not constraints.ca:
        return False
    if constraints.path_length is not None and below > constraints.path_length:
        _LOGGER.debug('Path length constraint of %s exceeded', issuer.subject.rfc4514_string())
        return False

    try:
        usage = issuer.extensions.get_extension_for_class(x509.KeyUsage).value
    except x509.ExtensionNotFound:
        return True
    return usage.key_cert_sign


def validateChain(leaf, untrusted, trust_roots, now=None):
    """Decide whether the leaf certificate chains up to a trusted root.

    Every issuer in the chain, the trusted one included, must be a CA
    allowed to sign certificates (keyCertSign when a key usage is
    declared) and must respect its path length constraint.

    @param leaf: the certificate to validate
    @type leaf: bytes or x509.Certificate

    @param untrusted: intermediate certificates presented with the leaf,
        used only as chain material
    @type untrusted: Iterable[bytes or x509.Certificate]

    @type trust_roots: L{TrustRoots}

    @param now: time of the validation, defaults to the current time
    @type now: datetime.datetime

    @return: whether the chain is trusted
    @rtype: bool

    @raises CertificateError: if a certificate can not be parsed
    """
    if now is None:
        now = datetime.datetime.now(datetime.timezone.utc)

    cert = loadCertificate(leaf)
    pool = [loadCertificate(c) for c in untrusted]

    # Number of CA certificates between the current certificate's issuer and the leaf.
    below = 0
    for _ in range(MAX_CHAIN_DEPTH):
        if not _isCurrent(cert, now):
            _LOGGER.debug('Certificate %s is outside its validity period', cert.subject.rfc4514_string())
            return False

        if cert in trust_roots:
            return True

        for anchor in trust_roots.findIssuers(cert):
            if _isCurrent(anchor, now) and _canIssue(anchor, below):
                return True

        for candidate in pool:
            if candidate.subject == cert.issuer and _canIssue(candidate, below) and _isIssuedBy(cert, candidate):
                pool.remove(candidate)
                cert = candidate
                below += 1
                break
        else:
            _LOGGER.debug('No issuer found for %s', cert.subject.rfc4514_string())
            return False

    _LOGGER.debug('Certificate chain is longer than %d', MAX_CHAIN_DEPTH)
    return False
