# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Issuance of a single bundle: validate the request, find the signer, sign and
store, reporting one of a fixed set of outcomes.
"""

import os

from constantly import Names, NamedConstant
from pyrsistent import PClass, field
from twisted.python.filepath import FilePath

from ._bundle import Bundle
from ._errors import (
    AlreadyExists, CorruptData, InvalidRequest, KeyMismatch,
    NotACertificateAuthority, NotFound, PathLengthExceeded, PKIError,
    WriteFailure,
)
from ._logging import ISSUE, ISSUANCE_REJECTED
from ._request import RequestParameters, build_request
from ._signing import sign
from ._store import IStore, LocalStore

PKI_ROOT_ENVIRONMENT_VARIABLE = "STOCKADE_PKI_ROOT"


def default_pki_root():
    """
    :return: The ``FilePath`` used as the PKI root when none is configured.
    """
    return FilePath(os.path.expanduser(u"~")).descendant(
        [u".stockade", u"pki"])


def resolve_pki_root(pki_root=None, environ=None):
    """
    Decide where bundles are stored.

    :param pki_root: An explicitly configured path, or ``None``.
    :param environ: A mapping of environment variables. Defaults to
        ``os.environ``.

    :return: The PKI root ``FilePath``: ``pki_root`` if given, otherwise
        ``$STOCKADE_PKI_ROOT`` if set, otherwise ``~/.stockade/pki``.
    """
    if environ is None:
        environ = os.environ
    if not pki_root:
        pki_root = environ.get(PKI_ROOT_ENVIRONMENT_VARIABLE)
    if not pki_root:
        return default_pki_root()
    return FilePath(os.path.abspath(os.path.expanduser(pki_root)))


class Outcomes(Names):
    """
    The possible results of an issuance.
    """
    # A new bundle was stored.
    CREATED = NamedConstant()
    # A bundle of that name exists and overwriting was not requested.
    ALREADY_EXISTS = NamedConstant()
    # The request, or the signer it names, was unusable.
    VALIDATION_FAILED = NamedConstant()
    # The store could not be written.
    IO_FAILED = NamedConstant()


_OUTCOMES_BY_ERROR = [
    (AlreadyExists, Outcomes.ALREADY_EXISTS),
    (WriteFailure, Outcomes.IO_FAILED),
    ((InvalidRequest, NotFound, CorruptData, KeyMismatch,
      NotACertificateAuthority, PathLengthExceeded),
     Outcomes.VALIDATION_FAILED),
]


def outcome_for_error(error):
    """
    :param PKIError error: An error raised during issuance.

    :return: The ``Outcomes`` constant reported for ``error``.
    """
    for error_types, outcome in _OUTCOMES_BY_ERROR:
        if isinstance(error, error_types):
            return outcome
    return Outcomes.VALIDATION_FAILED


class PKIConfiguration(PClass):
    """
    Everything an issuance needs to know besides the request itself.

    :ivar store: The ``IStore`` provider bundles are loaded from and saved
        to.
    :ivar bool overwrite: Whether an existing bundle of the requested name
        is replaced.
    """
    store = field(
        mandatory=True,
        invariant=lambda store: (IStore.providedBy(store),
                                 "store must provide IStore"))
    overwrite = field(type=bool, mandatory=True, initial=False)

    @classmethod
    def local(cls, pki_root=None, overwrite=False, environ=None):
        """
        Create a configuration backed by a ``LocalStore``.

        :param pki_root: The store directory, or ``None`` to use the
            environment or the default location.
        :param bool overwrite: See ``PKIConfiguration.overwrite``.
        :param environ: See ``resolve_pki_root``.
        """
        return cls(store=LocalStore(resolve_pki_root(pki_root, environ)),
                   overwrite=overwrite)


class IssuanceResult(PClass):
    """
    What happened when a bundle was issued.

    :ivar NamedConstant outcome: One of ``Outcomes``.
    :ivar unicode name: The logical name of the requested bundle, if known.
    :ivar Bundle bundle: The stored bundle, when ``outcome`` is ``CREATED``.
    :ivar PKIError error: Why nothing was stored, otherwise.
    """
    outcome = field(
        mandatory=True,
        invariant=lambda outcome: (outcome in Outcomes.iterconstants(),
                                   "Not a valid outcome"))
    name = field(type=(str, type(None)), initial=None)
    bundle = field(type=(Bundle, type(None)), initial=None)
    error = field(type=(PKIError, type(None)), initial=None)

    @property
    def succeeded(self):
        return self.outcome is Outcomes.CREATED


def _issue(configuration, request, begin):
    store = configuration.store
    store.ensure_root()
    if not configuration.overwrite and store.exists(request.name):
        raise AlreadyExists(
            u"Bundle already exists in {}.".format(store.describe()),
            request.name)
    signer = None
    if request.parent_name is not None:
        signer = store.load(request.parent_name)
    bundle = sign(request, signer, begin=begin)
    store.save(bundle, request.name, overwrite=configuration.overwrite)
    return bundle


def issue(configuration, parameters, begin=None):
    """
    Issue and store one bundle.

    No file belonging to the requested name is created or changed unless
    the outcome is ``Outcomes.CREATED``.

    :param PKIConfiguration configuration: Where and how to store bundles.
    :param RequestParameters parameters: What to issue.
    :param datetime begin: The time from which the certificate is valid.
        Defaults to the current time.

    :return: An ``IssuanceResult``.
    """
    with ISSUE(name=parameters.name or parameters.common_name or u"",
               parent_name=parameters.parent_name) as action:
        name = None
        try:
            request = build_request(parameters)
            name = request.name
            bundle = _issue(configuration, request, begin)
        except PKIError as e:
            outcome = outcome_for_error(e)
            ISSUANCE_REJECTED(
                name=name or e.name or u"", outcome=outcome,
                reason=str(e)).write()
            action.add_success_fields(outcome=outcome)
            return IssuanceResult(outcome=outcome, name=name, error=e)
        action.add_success_fields(outcome=Outcomes.CREATED)
        return IssuanceResult(
            outcome=Outcomes.CREATED, name=name, bundle=bundle)


def create_ca(configuration, name=None, common_name=None, organization=None,
              validity_days=None, max_path_length=-1,
              private_key_size=4096, begin=None):
    """
    Issue a self-signed root certificate authority.
    """
    return issue(configuration, RequestParameters(
        name=name, common_name=common_name, organization=organization,
        validity_days=validity_days, max_path_length=max_path_length,
        private_key_size=private_key_size, is_ca=True,
    ), begin=begin)


def create_intermediate(configuration, parent_name, name=None,
                        common_name=None, organization=None,
                        validity_days=None, max_path_length=-1,
                        private_key_size=4096, begin=None):
    """
    Issue an intermediate certificate authority signed by the bundle stored
    as ``parent_name``.
    """
    return issue(configuration, RequestParameters(
        name=name, common_name=common_name, organization=organization,
        validity_days=validity_days, max_path_length=max_path_length,
        private_key_size=private_key_size, is_ca=True,
        parent_name=parent_name,
    ), begin=begin)


def create_server(configuration, parent_name, name=None, common_name=None,
                  organization=None, dns_names=(), ip_addresses=(),
                  validity_days=None, private_key_size=4096, begin=None):
    """
    Issue a server certificate signed by the bundle stored as
    ``parent_name``.
    """
    return issue(configuration, RequestParameters(
        name=name, common_name=common_name, organization=organization,
        validity_days=validity_days, private_key_size=private_key_size,
        dns_names=dns_names, ip_addresses=ip_addresses,
        parent_name=parent_name,
    ), begin=begin)


def create_client(configuration, parent_name, name=None, common_name=None,
                  organization=None, email_addresses=(), client_only=False,
                  validity_days=None, private_key_size=4096, begin=None):
    """
    Issue a client certificate signed by the bundle stored as
    ``parent_name``.
    """
    return issue(configuration, RequestParameters(
        name=name, common_name=common_name, organization=organization,
        validity_days=validity_days, private_key_size=private_key_size,
        is_client_certificate=True, client_only=client_only,
        email_addresses=email_addresses, parent_name=parent_name,
    ), begin=begin)
