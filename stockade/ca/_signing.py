# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Key generation and certificate signing.

There are three kinds of certificate:

1. Certificate authorities, self-signed roots or intermediates signed by
   another authority. ``BasicConstraints`` marks them as CAs, carrying the
   requested path length constraint, and their key usage is limited to
   signing certificates and CRLs.
2. Server certificates, with ``serverAuth`` extended key usage and the
   server's DNS names and IP addresses as subject alternative names.
3. Client certificates, with ``clientAuth`` extended key usage. Unless they
   are restricted to client use they may also authenticate servers.

Every request is checked against its signer before a key is generated, so a
rejected request never costs a key generation.
"""

import re
from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from ._bundle import Bundle, basic_constraints, common_name
from ._errors import (
    InvalidRequest, NotACertificateAuthority, PathLengthExceeded,
)
from ._logging import SIGN
from ._request import LATEST_NOT_AFTER, maximum_validity_days

PUBLIC_EXPONENT = 65537

_HOSTNAME = re.compile(r"^[A-Za-z0-9*]([A-Za-z0-9.*-]*[A-Za-z0-9])?$")


def generate_private_key(size):
    """
    Create a new RSA private key.

    :param int size: The key size in bits.
    """
    return rsa.generate_private_key(
        public_exponent=PUBLIC_EXPONENT, key_size=size)


def check_signer(request, signer):
    """
    Check that ``signer`` may sign the certificate ``request`` describes.

    :param Request request: The request to be signed.
    :param Bundle signer: The signing bundle, or ``None`` to self-sign.

    :raise InvalidRequest: If there is no signer and the request is not for
        a certificate authority.
    :raise NotACertificateAuthority: If ``signer`` is not a CA.
    :raise PathLengthExceeded: If the request is for a CA and the signer's
        path length constraint leaves no room for it, or for a path length
        that is not strictly below the signer's.
    """
    template = request.template
    if signer is None:
        if not template.is_ca:
            raise InvalidRequest(
                u"Only a certificate authority can be self-signed.",
                name=request.name, field=u"parent_name", value=None)
        return

    constraints = basic_constraints(signer.certificate)
    if constraints is None or not constraints.ca:
        raise NotACertificateAuthority(
            u"Signer {!r} is not a certificate authority.".format(
                signer.common_name),
            request.name, u"parent_name")

    if not template.is_ca or constraints.path_length is None:
        return
    budget = constraints.path_length
    requested = request.max_path_length
    if budget == 0:
        raise PathLengthExceeded(
            u"Signer {!r} may not sign certificate authorities.".format(
                signer.common_name),
            request.name, budget=budget, requested=requested)
    if requested == -1 or requested >= budget:
        raise PathLengthExceeded(
            u"Requested path length {} must be less than the signer's "
            u"path length {}.".format(requested, budget),
            request.name, budget=budget, requested=requested)


def _subject(template):
    attributes = [
        x509.NameAttribute(NameOID.COMMON_NAME, template.common_name),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, template.organization),
    ]
    if template.organizational_unit:
        attributes.append(x509.NameAttribute(
            NameOID.ORGANIZATIONAL_UNIT_NAME, template.organizational_unit))
    return x509.Name(attributes)


def _key_usage(digital_signature=False, key_encipherment=False,
               key_cert_sign=False, crl_sign=False):
    return x509.KeyUsage(
        digital_signature=digital_signature,
        content_commitment=False,
        key_encipherment=key_encipherment,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=key_cert_sign,
        crl_sign=crl_sign,
        encipher_only=False,
        decipher_only=False,
    )


def _subject_alternative_names(template):
    names = [x509.DNSName(name) for name in template.dns_names]
    names.extend(x509.IPAddress(address)
                 for address in template.ip_addresses)
    names.extend(x509.RFC822Name(address)
                 for address in template.email_addresses)
    if (not names and not template.is_client_certificate and
            _HOSTNAME.match(template.common_name)):
        # Servers are validated against their subjectAltName, so a server
        # named only by its common name gets that name as a DNS entry.
        names.append(x509.DNSName(template.common_name))
    return names


def certificate_extensions(request):
    """
    Choose the extensions for the certificate ``request`` describes.

    :param Request request: The validated request.

    :return: A ``list`` of ``(extension, critical)`` pairs.
    """
    template = request.template
    if template.is_ca:
        if request.max_path_length == -1:
            path_length = None
        else:
            path_length = request.max_path_length
        return [
            (x509.BasicConstraints(ca=True, path_length=path_length), True),
            (_key_usage(key_cert_sign=True, crl_sign=True), True),
        ]

    extensions = [
        (x509.BasicConstraints(ca=False, path_length=None), True),
        (_key_usage(digital_signature=True, key_encipherment=True), True),
    ]
    if template.is_client_certificate:
        usages = [ExtendedKeyUsageOID.CLIENT_AUTH]
        if not template.client_only:
            usages.append(ExtendedKeyUsageOID.SERVER_AUTH)
    else:
        usages = [ExtendedKeyUsageOID.SERVER_AUTH]
    extensions.append((x509.ExtendedKeyUsage(usages), False))
    alternative_names = _subject_alternative_names(template)
    if alternative_names:
        extensions.append(
            (x509.SubjectAlternativeName(alternative_names), False))
    return extensions


def sign_certificate(private_key, subject, issuer, issuer_key, serial,
                     validity_days, extensions, begin=None):
    """
    Build and sign a certificate for the public half of ``private_key``.

    :param private_key: The key pair being certified.
    :param x509.Name subject: The subject of the certificate.
    :param x509.Name issuer: The subject of the signing certificate, equal to
        ``subject`` when self-signing.
    :param issuer_key: The private key the certificate is signed with.
    :param int serial: The certificate serial number.
    :param int validity_days: The number of days from ``begin`` after which
        the certificate expires.
    :param extensions: A sequence of ``(extension, critical)`` pairs.
    :param datetime begin: The time from which the certificate is valid.
        Defaults to the current time.

    :return: The signed ``x509.Certificate``.
    """
    if begin is None:
        begin = datetime.now(timezone.utc)
    expire = begin + timedelta(days=validity_days)
    public_key = private_key.public_key()
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(public_key)
        .serial_number(serial)
        .not_valid_before(begin)
        .not_valid_after(expire)
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(public_key),
            critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(
                issuer_key.public_key()),
            critical=False)
    )
    for extension, critical in extensions:
        builder = builder.add_extension(extension, critical=critical)
    return builder.sign(private_key=issuer_key, algorithm=hashes.SHA256())


def sign(request, signer=None, begin=None):
    """
    Generate a key pair and certificate for ``request``.

    :param Request request: The validated request.
    :param Bundle signer: The bundle of the authority that signs the new
        certificate, or ``None`` to create a self-signed root.
    :param datetime begin: The time from which the certificate is valid.
        Defaults to the current time.

    :raise InvalidRequest: If a certificate that is not a CA would be
        self-signed, or if its validity would end after
        ``LATEST_NOT_AFTER``.
    :raise NotACertificateAuthority: If ``signer`` cannot sign.
    :raise PathLengthExceeded: If ``signer``'s path length constraint
        forbids the new certificate.

    :return: The new ``Bundle``.
    """
    check_signer(request, signer)
    if request.validity_days > maximum_validity_days(begin):
        raise InvalidRequest(
            u"Validity must end by {}.".format(LATEST_NOT_AFTER.date()),
            name=request.name, field=u"validity_days",
            value=request.validity_days)
    with SIGN(name=request.name, is_ca=request.template.is_ca,
              max_path_length=request.max_path_length,
              private_key_size=request.private_key_size) as action:
        private_key = generate_private_key(request.private_key_size)
        subject = _subject(request.template)
        if signer is None:
            issuer, issuer_key, chain = subject, private_key, []
        else:
            issuer = signer.certificate.subject
            issuer_key = signer.private_key
            chain = signer.chain.append(signer.certificate)
        certificate = sign_certificate(
            private_key, subject, issuer, issuer_key,
            x509.random_serial_number(), request.validity_days,
            certificate_extensions(request), begin=begin)
        action.add_success_fields(
            issuer=common_name(issuer), serial=certificate.serial_number)
        return Bundle(
            certificate=certificate, private_key=private_key, chain=chain)
