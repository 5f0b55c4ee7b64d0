# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
The in-memory form of an issued credential: a certificate, the private key
it certifies and the certificates of the authorities above it.
"""

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from pyrsistent import PClass, field, pvector_field

from ._errors import CorruptData


def basic_constraints(certificate):
    """
    Find the ``BasicConstraints`` extension of a certificate.

    :param x509.Certificate certificate: The certificate to inspect.

    :return: The ``x509.BasicConstraints`` value, or ``None`` if the
        certificate has no such extension.
    """
    try:
        extension = certificate.extensions.get_extension_for_class(
            x509.BasicConstraints)
    except x509.ExtensionNotFound:
        return None
    return extension.value


def is_certificate_authority(certificate):
    """
    :return: ``True`` if ``certificate`` may be used to sign other
        certificates.
    """
    constraints = basic_constraints(certificate)
    return constraints is not None and constraints.ca


def common_name(name):
    """
    :param x509.Name name: A subject or issuer name.

    :return: The first common name in ``name``, or ``u""`` if there is none.
    """
    attributes = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attributes:
        return u""
    return attributes[0].value


def _public_key_bytes(public_key):
    return public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def public_key_matches(certificate, private_key):
    """
    :return: ``True`` if the public key certified by ``certificate`` is the
        public half of ``private_key``.
    """
    return (_public_key_bytes(certificate.public_key()) ==
            _public_key_bytes(private_key.public_key()))


def _chain_invariant(bundle):
    certificate = bundle.certificate
    if not bundle.chain:
        return (certificate.issuer == certificate.subject,
                "A bundle without a chain must hold a self-signed "
                "certificate.")
    return (certificate.issuer == bundle.chain[-1].subject,
            "The last certificate in the chain must be the issuer of the "
            "bundle's certificate.")


class Bundle(PClass):
    """
    A certificate together with its private key and ancestor chain.

    :ivar x509.Certificate certificate: The certificate.
    :ivar rsa.RSAPrivateKey private_key: The private key whose public half is
        certified by ``certificate``.
    :ivar PVector chain: The certificates of every authority above
        ``certificate``, root first, not including ``certificate`` itself.
        Empty for a self-signed root.
    """
    certificate = field(type=x509.Certificate, mandatory=True)
    private_key = field(type=rsa.RSAPrivateKey, mandatory=True)
    chain = pvector_field(x509.Certificate)

    __invariant__ = _chain_invariant

    @property
    def common_name(self):
        return common_name(self.certificate.subject)

    @property
    def serial_number(self):
        return self.certificate.serial_number

    @property
    def is_ca(self):
        return is_certificate_authority(self.certificate)

    @property
    def is_self_signed(self):
        return not self.chain

    @property
    def path_length(self):
        """
        The path length constraint of a CA certificate, or ``None`` if the
        certificate is not a CA or its path length is unconstrained.
        """
        constraints = basic_constraints(self.certificate)
        if constraints is None or not constraints.ca:
            return None
        return constraints.path_length

    def matches_key(self):
        """
        :return: ``True`` if ``private_key`` belongs to ``certificate``.
        """
        return public_key_matches(self.certificate, self.private_key)


def dump_private_key(private_key):
    """
    Encode a private key as unencrypted PKCS#8 PEM.
    """
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def dump_certificate(certificate):
    """
    Encode a certificate as PEM.
    """
    return certificate.public_bytes(serialization.Encoding.PEM)


def dump_chain(chain):
    """
    Encode a sequence of certificates as concatenated PEM blocks, in order.
    """
    return b"".join(dump_certificate(certificate) for certificate in chain)


def load_private_key(data, name=None):
    """
    Decode a PEM encoded RSA private key.

    :param bytes data: The PEM data.
    :param unicode name: The logical name of the bundle, for error reports.

    :raise CorruptData: If ``data`` is not an unencrypted RSA private key.
    :return: The ``rsa.RSAPrivateKey``.
    """
    try:
        private_key = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CorruptData(
            u"Private key could not be decoded: {}".format(e), name)
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise CorruptData(u"Private key is not an RSA key.", name)
    return private_key


def load_certificate(data, name=None):
    """
    Decode a single PEM encoded certificate.

    :raise CorruptData: If ``data`` is not a PEM certificate.
    :return: The ``x509.Certificate``.
    """
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError as e:
        raise CorruptData(
            u"Certificate could not be decoded: {}".format(e), name)


def load_chain(data, name=None):
    """
    Decode concatenated PEM encoded certificates.

    :param bytes data: Zero or more PEM certificate blocks.

    :raise CorruptData: If any block cannot be decoded.
    :return: A ``list`` of ``x509.Certificate`` in file order.
    """
    if not data.strip():
        return []
    try:
        return x509.load_pem_x509_certificates(data)
    except ValueError as e:
        raise CorruptData(
            u"Certificate chain could not be decoded: {}".format(e), name)
