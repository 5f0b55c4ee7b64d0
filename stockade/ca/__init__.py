# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
A local certificate authority.
"""

__all__ = [
    "Bundle", "IStore", "LocalStore", "MemoryStore",
    "CertificateTemplate", "Request", "RequestParameters", "build_request",
    "derive_name", "artifact_filenames", "SUPPORTED_KEY_SIZES",
    "DEFAULT_CA_NAME", "DEFAULT_ORGANIZATION", "sign",
    "PKIConfiguration", "IssuanceResult", "Outcomes", "issue", "create_ca",
    "create_intermediate", "create_server", "create_client",
    "resolve_pki_root",
    "PKIError", "InvalidRequest", "NotFound", "CorruptData", "KeyMismatch",
    "NotACertificateAuthority", "PathLengthExceeded", "AlreadyExists",
    "WriteFailure",
]

from ._bundle import Bundle
from ._errors import (
    PKIError, InvalidRequest, NotFound, CorruptData, KeyMismatch,
    NotACertificateAuthority, PathLengthExceeded, AlreadyExists,
    WriteFailure,
)
from ._request import (
    CertificateTemplate, Request, RequestParameters, build_request,
    derive_name, artifact_filenames, SUPPORTED_KEY_SIZES, DEFAULT_CA_NAME,
    DEFAULT_ORGANIZATION,
)
from ._signing import sign
from ._store import IStore, LocalStore, MemoryStore
from ._issuance import (
    PKIConfiguration, IssuanceResult, Outcomes, issue, create_ca,
    create_intermediate, create_server, create_client, resolve_pki_root,
)
