# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Errors raised by the certificate authority.

Every error carries the logical name of the bundle it concerns and, where
one is to blame, the request field responsible, so that callers can branch
on the exception type rather than on message text.
"""


class PKIError(Exception):
    """
    Base class for all certificate authority errors.

    :ivar unicode name: The logical name of the bundle concerned, or
        ``None`` if no name was known when the error was detected.
    :ivar unicode field: The request field at fault, or ``None``.
    """
    def __init__(self, message, name=None, field=None):
        super(PKIError, self).__init__(message)
        self.message = message
        self.name = name
        self.field = field

    def __str__(self):
        error = self.message
        if self.field is not None:
            error = u"{} ({})".format(error, self.field)
        if self.name is not None:
            error = u"{}: {}".format(self.name, error)
        return error


class InvalidRequest(PKIError):
    """
    A request was malformed or contradictory.

    :ivar value: The offending value of ``field``.
    """
    def __init__(self, message, name=None, field=None, value=None):
        super(InvalidRequest, self).__init__(message, name, field)
        self.value = value


class NotFound(PKIError):
    """
    No bundle is stored under the given name.
    """


class CorruptData(PKIError):
    """
    Stored key, certificate or chain data could not be decoded.
    """


class KeyMismatch(PKIError):
    """
    A stored private key does not belong to the stored certificate.
    """


class NotACertificateAuthority(PKIError):
    """
    A certificate without ``BasicConstraints`` CA status was used to sign.
    """


class PathLengthExceeded(PKIError):
    """
    Issuing a CA certificate would exceed the signer's path length budget.

    :ivar int budget: The signer's path length constraint.
    :ivar int requested: The path length requested for the new CA, ``-1``
        meaning unconstrained.
    """
    def __init__(self, message, name=None, budget=None, requested=None):
        super(PathLengthExceeded, self).__init__(
            message, name, u"max_path_length")
        self.budget = budget
        self.requested = requested


class AlreadyExists(PKIError):
    """
    A bundle is already stored under the given name and overwriting was not
    requested.
    """


class WriteFailure(PKIError):
    """
    Bundle files could not be written.

    :ivar unicode path: The file or directory that could not be written.
    :ivar unicode reason: The operating system's description of the error.
    """
    def __init__(self, message, name=None, path=None, reason=None):
        super(WriteFailure, self).__init__(message, name)
        self.path = path
        self.reason = reason

    def __str__(self):
        error = super(WriteFailure, self).__str__()
        if self.reason:
            error = error + u" " + self.reason
        if self.path:
            error = error + u" " + self.path
        return error
