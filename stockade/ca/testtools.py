# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Testing utilities for ``stockade.ca``.
"""

from datetime import datetime, timezone

from cryptography import x509

from twisted.trial.unittest import SynchronousTestCase
from zope.interface.verify import verifyObject

from ._errors import AlreadyExists, NotFound
from ._request import RequestParameters, build_request
from ._signing import sign
from ._store import IStore

# Big enough to be supported, small enough to keep key generation quick.
TEST_KEY_SIZE = 2048

BEGIN = datetime(2026, 10, 17, 12, 0, 0, tzinfo=timezone.utc)


def assert_has_extension(test, bundle, extension_class, value):
    """
    Assert that the extension of the given class in the certificate has the
    given value.

    :param TestCase test: The current test.
    :param Bundle bundle: Bundle whose certificate we should inspect.
    :param extension_class: The ``cryptography.x509`` extension class.
    :param value: The expected extension value.

    :raises AssertionError: If the extension is not found or has the wrong
        value.
    """
    try:
        extension = bundle.certificate.extensions.get_extension_for_class(
            extension_class)
    except x509.ExtensionNotFound:
        test.fail("Couldn't find extension {}.".format(
            extension_class.__name__))
    test.assertEqual(extension.value, value)


def make_request(**kwargs):
    """
    Build a ``Request`` with a small key.

    :param kwargs: ``RequestParameters`` fields.
    """
    kwargs.setdefault("private_key_size", TEST_KEY_SIZE)
    return build_request(RequestParameters(**kwargs))


def make_root(name=u"root", max_path_length=-1, **kwargs):
    """
    Sign a root certificate authority bundle, with ``name`` as its common
    name unless another is given.
    """
    kwargs.setdefault("common_name", name)
    begin = kwargs.pop("begin", BEGIN)
    return sign(
        make_request(name=name, is_ca=True, max_path_length=max_path_length,
                     **kwargs),
        begin=begin)


def make_intermediate(signer, name=u"intermediate", max_path_length=-1,
                      **kwargs):
    """
    Sign an intermediate certificate authority bundle, with ``name`` as
    its common name unless another is given.
    """
    kwargs.setdefault("common_name", name)
    return sign(
        make_request(name=name, is_ca=True, max_path_length=max_path_length,
                     **kwargs),
        signer, begin=BEGIN)


def make_leaf(signer, name=u"server", **kwargs):
    """
    Sign a server or, with ``is_client_certificate=True``, client bundle.
    """
    return sign(make_request(name=name, **kwargs), signer, begin=BEGIN)


def same_certificate(test, expected, actual):
    """
    Assert two bundles hold equivalent certificates and the same key.
    """
    test.assertEqual(
        (expected.certificate, expected.serial_number,
         expected.certificate.subject, expected.certificate.issuer,
         expected.certificate.not_valid_before_utc,
         expected.certificate.not_valid_after_utc,
         list(expected.chain), True),
        (actual.certificate, actual.serial_number,
         actual.certificate.subject, actual.certificate.issuer,
         actual.certificate.not_valid_before_utc,
         actual.certificate.not_valid_after_utc,
         list(actual.chain),
         expected.private_key.private_numbers() ==
         actual.private_key.private_numbers()),
    )


def make_istore_tests(store_factory):
    """
    Build a ``TestCase`` for verifying that an implementation of ``IStore``
    adheres to that interface.

    :param store_factory: A callable taking the test case and returning a new
        empty ``IStore`` provider.
    """
    class IStoreTests(SynchronousTestCase):
        """
        Tests for ``IStore`` implementations.
        """
        def setUp(self):
            super(IStoreTests, self).setUp()
            self.store = store_factory(self)
            self.store.ensure_root()
            self.root = make_root(u"root", max_path_length=1)
            self.intermediate = make_intermediate(
                self.root, u"int", max_path_length=0)
            self.server = make_leaf(self.intermediate, u"server")

        def test_interface(self):
            """
            The store provides ``IStore``.
            """
            self.assertTrue(verifyObject(IStore, self.store))

        def test_missing(self):
            """
            ``exists`` is false for a name that was never saved.
            """
            self.assertFalse(self.store.exists(u"root"))

        def test_load_missing(self):
            """
            ``load`` raises ``NotFound`` for a name that was never saved.
            """
            error = self.assertRaises(NotFound, self.store.load, u"root")
            self.assertEqual(u"root", error.name)

        def test_exists_after_save(self):
            """
            ``exists`` is true for a saved name.
            """
            self.store.save(self.root, u"root")
            self.assertTrue(self.store.exists(u"root"))

        def test_round_trip_root(self):
            """
            A saved root bundle loads with the same certificate, key and an
            empty chain.
            """
            self.store.save(self.root, u"root")
            same_certificate(self, self.root, self.store.load(u"root"))

        def test_round_trip_leaf(self):
            """
            A saved leaf bundle loads with its chain, root first.
            """
            self.store.save(self.server, u"server")
            loaded = self.store.load(u"server")
            same_certificate(self, self.server, loaded)
            self.assertEqual(
                [self.root.certificate, self.intermediate.certificate],
                list(loaded.chain))

        def test_save_existing(self):
            """
            ``save`` raises ``AlreadyExists`` for a saved name and keeps the
            stored bundle.
            """
            self.store.save(self.root, u"root")
            other = make_root(u"root")
            error = self.assertRaises(
                AlreadyExists, self.store.save, other, u"root")
            self.assertEqual(
                (u"root", self.root.serial_number),
                (error.name, self.store.load(u"root").serial_number))

        def test_overwrite(self):
            """
            ``save`` with ``overwrite`` replaces the stored bundle.
            """
            self.store.save(self.root, u"root")
            other = make_root(u"root")
            self.store.save(other, u"root", overwrite=True)
            same_certificate(self, other, self.store.load(u"root"))

        def test_overwrite_leaf_with_root(self):
            """
            Overwriting a chained bundle with a root leaves no chain behind.
            """
            self.store.save(self.server, u"name")
            self.store.save(self.root, u"name", overwrite=True)
            self.assertEqual([], list(self.store.load(u"name").chain))

        def test_describe(self):
            """
            ``describe`` returns text.
            """
            self.assertIsInstance(self.store.describe(), str)

    return IStoreTests
