"""Test `hostedopenid.trust` module."""
import datetime
import os
import shutil
import tempfile
import unittest

from testfixtures import LogCapture

from hostedopenid import trust
from hostedopenid.test.support import ONE_DAY, PKI, der, keyUsage, makeCertificate, makeKey, pem


class TestLoadCertificate(unittest.TestCase):
    """Test `loadCertificate` function."""

    def setUp(self):
        self.pki = PKI()

    def test_pem(self):
        self.assertEqual(trust.loadCertificate(pem(self.pki.root)), self.pki.root)

    def test_pem_text(self):
        self.assertEqual(trust.loadCertificate(pem(self.pki.root).decode('ascii')), self.pki.root)

    def test_der(self):
        self.assertEqual(trust.loadCertificate(der(self.pki.root)), self.pki.root)

    def test_certificate(self):
        self.assertIs(trust.loadCertificate(self.pki.root), self.pki.root)

    def test_invalid(self):
        with self.assertRaisesRegex(trust.CertificateError, 'Unable to parse certificate'):
            trust.loadCertificate(b'not a certificate')


class TestTrustRoots(unittest.TestCase):
    """Test `TrustRoots` class."""

    def setUp(self):
        self.pki = PKI()
        self.other = PKI('Other')
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def write(self, name, data):
        path = os.path.join(self.tmpdir, name)
        with open(path, 'wb') as cert_file:
            cert_file.write(data)
        return path

    def test_certificates(self):
        roots = trust.TrustRoots([self.pki.root, der(self.other.root)])
        self.assertEqual(len(roots), 2)
        self.assertIn(self.pki.root, roots)
        self.assertIn(self.other.root, roots)
        self.assertNotIn(self.pki.intermediate, roots)

    def test_empty(self):
        with self.assertRaisesRegex(trust.ConfigurationError, 'No trusted certificates'):
            trust.TrustRoots([])

    def test_invalid_certificate(self):
        with self.assertRaisesRegex(trust.ConfigurationError, 'Invalid trusted certificate'):
            trust.TrustRoots([b'garbage'])

    def test_bundle_file(self):
        path = self.write('bundle.pem', pem(self.pki.root) + pem(self.other.root))
        roots = trust.TrustRoots.fromLocations([path])
        self.assertEqual(roots.certificates, (self.pki.root, self.other.root))

    def test_single_path(self):
        path = self.write('root.der', der(self.pki.root))
        roots = trust.TrustRoots.fromLocations(path)
        self.assertEqual(roots.certificates, (self.pki.root, ))

    def test_directory(self):
        self.write('a.pem', pem(self.pki.root))
        self.write('b.crt', der(self.other.root))
        self.write('README', b'This is not a certificate.')
        with LogCapture('hostedopenid.trust') as logbook:
            roots = trust.TrustRoots.fromLocations([self.tmpdir])
        self.assertEqual(roots.certificates, (self.pki.root, self.other.root))
        logbook.check(('hostedopenid.trust', 'DEBUG',
                       'Skipping %s, no certificate found' % os.path.join(self.tmpdir, 'README')))

    def test_empty_directory(self):
        with self.assertRaisesRegex(trust.ConfigurationError, 'No certificates found'):
            trust.TrustRoots.fromLocations([self.tmpdir])

    def test_missing_file(self):
        with self.assertRaisesRegex(trust.ConfigurationError, 'Unable to read trust root'):
            trust.TrustRoots.fromLocations([os.path.join(self.tmpdir, 'missing.pem')])

    def test_invalid_file(self):
        path = self.write('invalid.pem', b'garbage')
        with self.assertRaisesRegex(trust.ConfigurationError, 'Invalid trust root'):
            trust.TrustRoots.fromLocations([path])

    def test_default(self):
        roots = trust.TrustRoots.default()
        self.assertGreater(len(roots), 0)
        self.assertNotIn(self.pki.root, roots)


class TestValidateChain(unittest.TestCase):
    """Test `validateChain` function."""

    def setUp(self):
        self.pki = PKI()
        self.roots = trust.TrustRoots([self.pki.root])
        self.key, self.leaf = self.pki.signer('example.com')

    def test_chain(self):
        self.assertTrue(trust.validateChain(self.leaf, [self.pki.intermediate], self.roots))

    def test_chain_bytes(self):
        self.assertTrue(trust.validateChain(der(self.leaf), [pem(self.pki.intermediate)], self.roots))

    def test_missing_intermediate(self):
        self.assertFalse(trust.validateChain(self.leaf, [], self.roots))

    def test_trusted_intermediate(self):
        roots = trust.TrustRoots([self.pki.intermediate])
        self.assertTrue(trust.validateChain(self.leaf, [], roots))

    def test_trusted_leaf(self):
        roots = trust.TrustRoots([self.leaf])
        self.assertTrue(trust.validateChain(self.leaf, [], roots))

    def test_untrusted_root(self):
        other = PKI('Other')
        roots = trust.TrustRoots([other.root])
        self.assertFalse(trust.validateChain(self.leaf, [self.pki.intermediate], roots))

    def test_root_in_untrusted(self):
        # The presented root is only chain material.
        other = PKI('Other')
        roots = trust.TrustRoots([other.root])
        self.assertFalse(trust.validateChain(self.leaf, [self.pki.intermediate, self.pki.root], roots))

    def test_forged_intermediate(self):
        # Same name as the real intermediate, different key.
        forged = makeCertificate('Test Intermediate CA', makeKey('forged'), issuer=self.pki.root,
                                 issuer_key=makeKey('forged root'), ca=True)
        self.assertFalse(trust.validateChain(self.leaf, [forged], self.roots))

    def test_intermediate_not_ca(self):
        key, not_ca = self.pki.signer('not-a-ca.example.com')
        leaf = makeCertificate('victim.example.com', makeKey('victim'), issuer=not_ca, issuer_key=key)
        self.assertFalse(trust.validateChain(leaf, [not_ca, self.pki.intermediate], self.roots))

    def test_expired_leaf(self):
        now = datetime.datetime.now(datetime.timezone.utc)
        _, leaf = self.pki.signer('example.com', not_before=now - 10 * ONE_DAY, not_after=now - ONE_DAY)
        with LogCapture('hostedopenid.trust') as logbook:
            self.assertFalse(trust.validateChain(leaf, [self.pki.intermediate], self.roots))
        self.assertIn('outside its validity period', logbook.records[0].getMessage())

    def test_not_yet_valid(self):
        now = datetime.datetime.now(datetime.timezone.utc)
        self.assertFalse(trust.validateChain(self.leaf, [self.pki.intermediate], self.roots,
                                             now=now - 10 * ONE_DAY))

    def test_expired_root(self):
        now = datetime.datetime.now(datetime.timezone.utc)
        root_key = makeKey('Test root')
        root = makeCertificate('Old Root CA', root_key, ca=True,
                               not_before=now - 10 * ONE_DAY, not_after=now - ONE_DAY)
        leaf = makeCertificate('example.com', makeKey('signer'), issuer=root, issuer_key=root_key)
        self.assertFalse(trust.validateChain(leaf, [], trust.TrustRoots([root])))

    def test_invalid_certificate(self):
        with self.assertRaises(trust.CertificateError):
            trust.validateChain(b'garbage', [], self.roots)
        with self.assertRaises(trust.CertificateError):
            trust.validateChain(self.leaf, [b'garbage'], self.roots)

    def test_max_depth(self):
        # Build a chain longer than allowed below the trusted root.
        issuer, issuer_key = self.pki.root, self.pki.root_key
        chain = []
        for i in range(trust.MAX_CHAIN_DEPTH + 1):
            key = makeKey('depth %d' % i)
            cert = makeCertificate('CA %d' % i, key, issuer=issuer, issuer_key=issuer_key, ca=True)
            chain.append(cert)
            issuer, issuer_key = cert, key
        leaf = makeCertificate('example.com', makeKey('signer'), issuer=issuer, issuer_key=issuer_key)
        self.assertFalse(trust.validateChain(leaf, chain, self.roots))
        self.assertTrue(trust.validateChain(leaf, chain[-2:], trust.TrustRoots([chain[-3]])))

    def test_intermediate_without_constraints(self):
        key = makeKey('unconstrained')
        unconstrained = makeCertificate('Unconstrained CA', key, issuer=self.pki.root,
                                        issuer_key=self.pki.root_key, with_constraints=False)
        leaf = makeCertificate('example.com', makeKey('signer'), issuer=unconstrained, issuer_key=key)
        self.assertFalse(trust.validateChain(leaf, [unconstrained], self.roots))

    def _intermediate(self, name, issuer=None, issuer_key=None, **kwargs):
        if issuer is None:
            issuer, issuer_key = self.pki.root, self.pki.root_key
        key = makeKey(name)
        return key, makeCertificate(name, key, issuer=issuer, issuer_key=issuer_key, ca=True, **kwargs)

    def test_intermediate_without_key_cert_sign(self):
        key, intermediate = self._intermediate('No Cert Sign CA', key_usage=keyUsage(digital_signature=True))
        leaf = makeCertificate('example.com', makeKey('signer'), issuer=intermediate, issuer_key=key)
        self.assertFalse(trust.validateChain(leaf, [intermediate], self.roots))

    def test_intermediate_with_key_cert_sign(self):
        key, intermediate = self._intermediate('Cert Sign CA', key_usage=keyUsage(key_cert_sign=True, crl_sign=True))
        leaf = makeCertificate('example.com', makeKey('signer'), issuer=intermediate, issuer_key=key)
        self.assertTrue(trust.validateChain(leaf, [intermediate], self.roots))

    def test_anchor_without_key_cert_sign(self):
        key, intermediate = self._intermediate('No Cert Sign CA', key_usage=keyUsage(digital_signature=True))
        leaf = makeCertificate('example.com', makeKey('signer'), issuer=intermediate, issuer_key=key)
        self.assertFalse(trust.validateChain(leaf, [], trust.TrustRoots([intermediate])))

    def test_path_length(self):
        # The first CA may not have any CA below it.
        first_key, first = self._intermediate('First CA', path_length=0)
        second_key, second = self._intermediate('Second CA', issuer=first, issuer_key=first_key)
        leaf = makeCertificate('example.com', makeKey('signer'), issuer=second, issuer_key=second_key)
        with LogCapture('hostedopenid.trust') as logbook:
            self.assertFalse(trust.validateChain(leaf, [second, first], self.roots))
        self.assertIn(('hostedopenid.trust', 'DEBUG', 'Path length constraint of CN=First CA exceeded'),
                      [(r.name, r.levelname, r.getMessage()) for r in logbook.records])

    def test_path_length_respected(self):
        key, intermediate = self._intermediate('Zero Length CA', path_length=0)
        leaf = makeCertificate('example.com', makeKey('signer'), issuer=intermediate, issuer_key=key)
        self.assertTrue(trust.validateChain(leaf, [intermediate], self.roots))

    def test_root_path_length(self):
        root_key = makeKey('Short root')
        root = makeCertificate('Short Root CA', root_key, ca=True, path_length=0)
        key, intermediate = self._intermediate('Intermediate CA', issuer=root, issuer_key=root_key)
        leaf = makeCertificate('example.com', makeKey('signer'), issuer=intermediate, issuer_key=key)
        roots = trust.TrustRoots([root])
        self.assertFalse(trust.validateChain(leaf, [intermediate], roots))
        self.assertTrue(trust.validateChain(intermediate, [], roots))
