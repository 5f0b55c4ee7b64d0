# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Translation of user supplied parameters into validated signing requests.

Nothing here touches the filesystem or generates keys, so every rule can be
checked before any material is created.
"""

import re
from datetime import datetime, timezone
from ipaddress import ip_address

from pyrsistent import PClass, field, pvector_field

from ._errors import InvalidRequest

SUPPORTED_KEY_SIZES = (2048, 3072, 4096)

DEFAULT_CA_NAME = u"Stockade Certificate Authority"
DEFAULT_ORGANIZATION = u"Stockade"
DEFAULT_CA_VALIDITY_DAYS = 3650
DEFAULT_LEAF_VALIDITY_DAYS = 365
DEFAULT_MAX_PATH_LENGTH = -1
DEFAULT_PRIVATE_KEY_SIZE = 4096

# Upper bound on the length of a subject attribute, in UTF-8 bytes.
MAXIMUM_ATTRIBUTE_LENGTH = 64

# The latest notAfter an X.509 GeneralizedTime can represent.
LATEST_NOT_AFTER = datetime(9999, 12, 31, 23, 59, 59, tzinfo=timezone.utc)

KEY_SUFFIX = u".key"
CERTIFICATE_SUFFIX = u".crt"
CHAIN_SUFFIX = u".chain.pem"

_SEPARATORS = (u"/", u"\\", u"\x00")
_WHITESPACE = re.compile(r"\s+", re.UNICODE)
_DISALLOWED = re.compile(r"[^A-Za-z0-9._@-]")


def validate_name(name, field_name=u"name"):
    """
    Check that ``name`` can be used as a logical bundle name.

    :param unicode name: The candidate name.

    :raise InvalidRequest: If ``name`` is empty, ``.`` or ``..``, or
        contains a path separator.
    :return: ``name``, unmodified.
    """
    if not name or name in (u".", u".."):
        raise InvalidRequest(
            u"Name must not be empty, '.' or '..'.", field=field_name,
            value=name)
    for separator in _SEPARATORS:
        if separator in name:
            raise InvalidRequest(
                u"Name must not contain path separators.", name=name,
                field=field_name, value=name)
    return name


def derive_name(name, common_name, field_name=u"name"):
    """
    Derive the logical bundle name, which is also the stem of its filenames.

    The explicit ``name`` is used if there is one, otherwise the common
    name. Runs of whitespace become a single ``_`` and any other character
    that is awkward in a filename is replaced by ``_``.

    :param unicode name: The explicitly requested name, or ``None``.
    :param unicode common_name: The certificate's common name.
    :param unicode field_name: The request field blamed for a bad name.

    :raise InvalidRequest: If the result is not a usable name.
    :return: The sanitized ``unicode`` name.
    """
    candidate = name if name else common_name
    if candidate is None:
        candidate = u""
    for separator in _SEPARATORS:
        if separator in candidate:
            raise InvalidRequest(
                u"Name must not contain path separators.", name=candidate,
                field=field_name, value=candidate)
    candidate = _WHITESPACE.sub(u"_", candidate.strip())
    candidate = _DISALLOWED.sub(u"_", candidate)
    return validate_name(candidate, field_name)


def artifact_filenames(name):
    """
    :param unicode name: A logical bundle name.

    :return: A ``tuple`` of the private key, certificate and chain
        filenames for ``name``.
    """
    return (name + KEY_SUFFIX, name + CERTIFICATE_SUFFIX, name + CHAIN_SUFFIX)


def _template_invariant(template):
    return (not (template.is_ca and template.is_client_certificate),
            "A certificate authority cannot be a client certificate.")


class CertificateTemplate(PClass):
    """
    The identity and purpose of a certificate to be issued.

    :ivar unicode common_name: The subject common name.
    :ivar unicode organization: The subject organization.
    :ivar unicode organizational_unit: The subject organizational unit, or
        ``None``.
    :ivar bool is_ca: Whether the certificate may sign other certificates.
    :ivar bool is_client_certificate: Whether the certificate authenticates
        TLS clients.
    :ivar bool client_only: Whether a client certificate is denied server
        authentication.
    :ivar PVector dns_names: DNS subject alternative names.
    :ivar PVector ip_addresses: IP subject alternative names, as
        ``ipaddress`` objects.
    :ivar PVector email_addresses: RFC 822 subject alternative names.
    """
    common_name = field(type=str, mandatory=True)
    organization = field(type=str, mandatory=True,
                         initial=DEFAULT_ORGANIZATION)
    organizational_unit = field(type=(str, type(None)), initial=None)
    is_ca = field(type=bool, mandatory=True, initial=False)
    is_client_certificate = field(type=bool, mandatory=True, initial=False)
    client_only = field(type=bool, mandatory=True, initial=False)
    dns_names = pvector_field(str)
    ip_addresses = pvector_field(object)
    email_addresses = pvector_field(str)

    __invariant__ = _template_invariant


class Request(PClass):
    """
    A validated request to issue a bundle.

    :ivar unicode name: The logical name the bundle will be stored under.
    :ivar CertificateTemplate template: What the certificate should say.
    :ivar int private_key_size: The RSA key size in bits.
    :ivar int validity_days: How long the certificate is valid for.
    :ivar int max_path_length: The path length constraint of a CA
        certificate; ``-1`` leaves it unconstrained.
    :ivar unicode parent_name: The logical name of the signing bundle, or
        ``None`` for a self-signed root.
    """
    name = field(type=str, mandatory=True)
    template = field(type=CertificateTemplate, mandatory=True)
    private_key_size = field(
        type=int, mandatory=True,
        invariant=lambda size: (size in SUPPORTED_KEY_SIZES,
                                "Unsupported private key size."))
    validity_days = field(
        type=int, mandatory=True,
        invariant=lambda days: (days >= 1, "Validity must be at least 1."))
    max_path_length = field(
        type=int, mandatory=True, initial=DEFAULT_MAX_PATH_LENGTH,
        invariant=lambda length: (length >= -1,
                                  "Path length must be -1 or more."))
    parent_name = field(type=(str, type(None)), initial=None)


class RequestParameters(PClass):
    """
    Unvalidated issuance parameters, as collected by a front end.

    Fields left as ``None`` take the defaults appropriate to the kind of
    certificate being requested.
    """
    name = field(type=(str, type(None)), initial=None)
    common_name = field(type=(str, type(None)), initial=None)
    organization = field(type=(str, type(None)), initial=None)
    organizational_unit = field(type=(str, type(None)), initial=None)
    validity_days = field(type=(int, type(None)), initial=None)
    max_path_length = field(type=int, initial=DEFAULT_MAX_PATH_LENGTH)
    private_key_size = field(type=int, initial=DEFAULT_PRIVATE_KEY_SIZE)
    is_ca = field(type=bool, initial=False)
    is_client_certificate = field(type=bool, initial=False)
    client_only = field(type=bool, initial=False)
    dns_names = pvector_field(str)
    ip_addresses = pvector_field(str)
    email_addresses = pvector_field(str)
    parent_name = field(type=(str, type(None)), initial=None)


def _parse_ip_addresses(addresses, name):
    parsed = []
    for address in addresses:
        try:
            parsed.append(ip_address(address))
        except ValueError:
            raise InvalidRequest(
                u"Not an IP address.", name=name, field=u"ip_addresses",
                value=address)
    return parsed


def _check_attribute_length(value, name, field_name):
    if value is not None and (
            len(value.encode("utf-8")) > MAXIMUM_ATTRIBUTE_LENGTH):
        raise InvalidRequest(
            u"Must be at most {} bytes long.".format(
                MAXIMUM_ATTRIBUTE_LENGTH),
            name=name, field=field_name, value=value)


def _check_ascii(values, name, field_name):
    # Internationalized names must be given in their ASCII (A-label) form.
    for value in values:
        try:
            value.encode("ascii")
        except UnicodeEncodeError:
            raise InvalidRequest(
                u"Must be ASCII.", name=name, field=field_name, value=value)


def maximum_validity_days(begin=None):
    """
    :param datetime begin: The start of the validity period, now if
        ``None``.

    :return: The longest validity in days that ends no later than
        ``LATEST_NOT_AFTER``.
    """
    if begin is None:
        begin = datetime.now(timezone.utc)
    return (LATEST_NOT_AFTER - begin).days


def build_request(parameters):
    """
    Validate issuance parameters and turn them into a ``Request``.

    :param RequestParameters parameters: The parameters to check.

    :raise InvalidRequest: If any parameter is missing, out of range or
        contradicts another.
    :return: The ``Request``.
    """
    common_name = parameters.common_name
    if not common_name:
        if parameters.is_ca:
            common_name = DEFAULT_CA_NAME
        else:
            common_name = parameters.name
    name = derive_name(parameters.name, common_name)
    if not common_name or not common_name.strip():
        raise InvalidRequest(
            u"Common name must not be empty.", name=name,
            field=u"common_name", value=common_name)
    _check_attribute_length(common_name, name, u"common_name")
    _check_attribute_length(parameters.organization, name, u"organization")
    _check_attribute_length(
        parameters.organizational_unit, name, u"organizational_unit")

    if parameters.private_key_size not in SUPPORTED_KEY_SIZES:
        raise InvalidRequest(
            u"Private key size must be one of {}.".format(
                u", ".join(str(size) for size in SUPPORTED_KEY_SIZES)),
            name=name, field=u"private_key_size",
            value=parameters.private_key_size)

    validity_days = parameters.validity_days
    if validity_days is None:
        if parameters.is_ca:
            validity_days = DEFAULT_CA_VALIDITY_DAYS
        else:
            validity_days = DEFAULT_LEAF_VALIDITY_DAYS
    if validity_days < 1:
        raise InvalidRequest(
            u"Validity must be at least one day.", name=name,
            field=u"validity_days", value=validity_days)
    if validity_days > maximum_validity_days():
        raise InvalidRequest(
            u"Validity must end by {}.".format(LATEST_NOT_AFTER.date()),
            name=name, field=u"validity_days", value=validity_days)

    if parameters.max_path_length < -1:
        raise InvalidRequest(
            u"Maximum path length must be -1 (unconstrained) or more.",
            name=name, field=u"max_path_length",
            value=parameters.max_path_length)

    if parameters.is_ca and parameters.is_client_certificate:
        raise InvalidRequest(
            u"A certificate authority cannot be a client certificate.",
            name=name, field=u"is_client_certificate", value=True)

    if parameters.client_only and not parameters.is_client_certificate:
        raise InvalidRequest(
            u"Only client certificates can be restricted to client "
            u"authentication.", name=name, field=u"client_only", value=True)

    parent_name = parameters.parent_name
    if parent_name is not None:
        parent_name = derive_name(parent_name, None, u"parent_name")

    ip_addresses = _parse_ip_addresses(parameters.ip_addresses, name)
    _check_ascii(parameters.dns_names, name, u"dns_names")
    _check_ascii(parameters.email_addresses, name, u"email_addresses")

    template = CertificateTemplate(
        common_name=common_name,
        organization=parameters.organization or DEFAULT_ORGANIZATION,
        organizational_unit=parameters.organizational_unit or None,
        is_ca=parameters.is_ca,
        is_client_certificate=parameters.is_client_certificate,
        client_only=parameters.client_only,
        dns_names=parameters.dns_names,
        ip_addresses=ip_addresses,
        email_addresses=parameters.email_addresses,
    )
    return Request(
        name=name,
        template=template,
        private_key_size=parameters.private_key_size,
        validity_days=validity_days,
        max_path_length=parameters.max_path_length,
        parent_name=parent_name,
    )
