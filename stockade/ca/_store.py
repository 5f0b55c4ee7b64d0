# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Persistent storage for certificate bundles.

A bundle stored under the logical name ``<name>`` consists of:

* ``<name>.key``: the PKCS#8 PEM private key, readable only by its owner.
* ``<name>.crt``: the PEM certificate.
* ``<name>.chain.pem``: the PEM certificates of the authorities above it,
  root first. Absent for a self-signed root.
"""

import errno
import os
from binascii import hexlify

from pyrsistent import PClass, field, pmap_field
from twisted.python.filepath import FilePath
from zope.interface import Interface, implementer

from ._bundle import (
    Bundle, dump_certificate, dump_chain, dump_private_key, load_certificate,
    load_chain, load_private_key,
)
from ._errors import (
    AlreadyExists, CorruptData, KeyMismatch, NotFound, WriteFailure,
)
from ._logging import LOAD, SAVE
from ._request import artifact_filenames, validate_name

KEY_MODE = 0o600
CERTIFICATE_MODE = 0o644


class IStore(Interface):
    """
    A repository of certificate bundles keyed by logical name.
    """
    def exists(name):
        """
        :param unicode name: A logical bundle name.

        :return: ``True`` if every file the bundle needs is present and
            non-empty.
        """

    def load(name):
        """
        :param unicode name: A logical bundle name.

        :raise NotFound: If no bundle is stored under ``name``.
        :raise CorruptData: If the stored data cannot be decoded.
        :raise KeyMismatch: If the stored key does not belong to the stored
            certificate.

        :return: The stored ``Bundle``.
        """

    def save(bundle, name, overwrite=False):
        """
        Store a bundle.

        Either every file for ``name`` is replaced or, on failure, none is.

        :param Bundle bundle: The bundle to store.
        :param unicode name: A logical bundle name.
        :param bool overwrite: Replace an existing bundle of the same name.

        :raise AlreadyExists: If ``name`` exists and ``overwrite`` is false.
        :raise WriteFailure: If the bundle could not be written.
        """

    def describe():
        """
        :return: A ``unicode`` description of where bundles are kept, for
            logging and messages.
        """

    def ensure_root():
        """
        Prepare the store to receive bundles.

        :raise WriteFailure: If the store cannot be written to.
        """


def _assemble(name, key_data, certificate_data, chain_data):
    """
    Decode and cross-check the stored parts of a bundle.

    :raise CorruptData: If any part cannot be decoded or the chain does not
        lead to the certificate.
    :raise KeyMismatch: If the key does not belong to the certificate.
    """
    private_key = load_private_key(key_data, name)
    certificate = load_certificate(certificate_data, name)
    chain = load_chain(chain_data, name)
    if chain:
        if certificate.issuer != chain[-1].subject:
            raise CorruptData(
                u"Certificate chain does not end at the certificate's "
                u"issuer.", name)
    elif certificate.issuer != certificate.subject:
        raise CorruptData(
            u"Certificate chain is missing for a certificate that is not "
            u"self-signed.", name)
    bundle = Bundle(
        certificate=certificate, private_key=private_key, chain=chain)
    if not bundle.matches_key():
        raise KeyMismatch(
            u"Private key does not match the certificate's public key.",
            name)
    return bundle


def _write_temporary(path, content, mode):
    """
    Write ``content`` to a new uniquely named sibling of ``path``.

    :param FilePath path: The file that will eventually be replaced.
    :param bytes content: The data to write.
    :param int mode: The permissions the new file is created with.

    :return: The ``FilePath`` of the temporary file.
    """
    temporary = path.sibling(u".{}.{}.tmp".format(
        path.basename(), hexlify(os.urandom(6)).decode("ascii")))
    original_umask = os.umask(0)
    try:
        descriptor = os.open(
            temporary.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
    finally:
        os.umask(original_umask)
    try:
        with os.fdopen(descriptor, "wb") as temporary_file:
            temporary_file.write(content)
            temporary_file.flush()
            os.fsync(temporary_file.fileno())
    except (IOError, OSError):
        _discard([temporary])
        raise
    return temporary


def _discard(paths):
    for path in paths:
        try:
            path.remove()
        except OSError as e:
            if e.errno != errno.ENOENT:
                raise


def _backup_path(path):
    return path.sibling(u".{}.{}.bak".format(
        path.basename(), hexlify(os.urandom(6)).decode("ascii")))


def _replace_all(replacements, obsolete):
    """
    Move temporary files over their targets, restoring the previous targets
    if any move fails.

    :param replacements: A sequence of ``(temporary, target)`` ``FilePath``
        pairs.
    :param obsolete: ``FilePath``s to delete once every target is in place.
    """
    backups = []
    replaced = []
    try:
        for target in [target for _, target in replacements] + list(obsolete):
            if target.exists():
                backup = _backup_path(target)
                os.link(target.path, backup.path)
                backups.append((backup, target))
        for temporary, target in replacements:
            os.replace(temporary.path, target.path)
            replaced.append(target)
        _discard(obsolete)
    except OSError:
        restored = set()
        for backup, target in backups:
            os.replace(backup.path, target.path)
            restored.add(target.path)
        _discard(target for target in replaced
                 if target.path not in restored)
        _discard(temporary for temporary, _ in replacements)
        raise
    _discard(backup for backup, _ in backups)


@implementer(IStore)
class LocalStore(object):
    """
    An ``IStore`` keeping bundles as PEM files in one directory.

    :ivar FilePath root: The directory containing the bundle files.
    """
    def __init__(self, root):
        """
        :param root: The store directory, as a ``FilePath`` or a path
            string.
        """
        if not isinstance(root, FilePath):
            root = FilePath(root)
        self.root = root

    def __repr__(self):
        return "<LocalStore {}>".format(self.root.path)

    def describe(self):
        return self.root.path

    def ensure_root(self):
        """
        Create the store directory if it does not already exist.

        :raise WriteFailure: If the directory cannot be created or the path
            exists but is not a directory.
        """
        if self.root.isdir():
            return
        if self.root.exists():
            raise WriteFailure(
                u"PKI root is not a directory.", path=self.root.path)
        try:
            self.root.makedirs()
        except OSError as e:
            raise WriteFailure(
                u"Unable to create PKI root.", path=self.root.path,
                reason=e.strerror)

    def _paths(self, name):
        return [self.root.child(filename)
                for filename in artifact_filenames(validate_name(name))]

    def _read(self, path, name):
        try:
            return path.getContent()
        except (IOError, OSError) as e:
            if e.errno == errno.ENOENT:
                raise NotFound(
                    u"No such file {}".format(path.path), name)
            raise CorruptData(
                u"Unable to read {}: {}".format(path.path, e.strerror), name)

    def exists(self, name):
        key_path, certificate_path, chain_path = self._paths(name)
        for path in (key_path, certificate_path):
            if not path.isfile() or path.getsize() == 0:
                return False
        if chain_path.isfile() and chain_path.getsize() > 0:
            return True
        # A missing chain is only complete for a self-signed root.
        try:
            certificate = load_certificate(certificate_path.getContent())
        except (CorruptData, IOError, OSError):
            return True
        return certificate.issuer == certificate.subject

    def load(self, name):
        key_path, certificate_path, chain_path = self._paths(name)
        with LOAD(name=name, path=self.root.path):
            key_data = self._read(key_path, name)
            certificate_data = self._read(certificate_path, name)
            if chain_path.exists():
                chain_data = self._read(chain_path, name)
            else:
                chain_data = b""
            return _assemble(name, key_data, certificate_data, chain_data)

    def save(self, bundle, name, overwrite=False):
        key_path, certificate_path, chain_path = self._paths(name)
        with SAVE(name=name, path=self.root.path, overwrite=overwrite):
            if not overwrite and any(
                    path.exists()
                    for path in (key_path, certificate_path, chain_path)):
                raise AlreadyExists(
                    u"Bundle already exists in {}.".format(self.root.path),
                    name)
            contents = [
                (key_path, dump_private_key(bundle.private_key), KEY_MODE),
                (certificate_path, dump_certificate(bundle.certificate),
                 CERTIFICATE_MODE),
            ]
            if bundle.chain:
                contents.append(
                    (chain_path, dump_chain(bundle.chain), CERTIFICATE_MODE))
            written = []
            try:
                for path, content, mode in contents:
                    written.append(
                        (_write_temporary(path, content, mode), path))
            except (IOError, OSError) as e:
                _discard(temporary for temporary, _ in written)
                raise WriteFailure(
                    u"Unable to write bundle files.", name,
                    path=getattr(e, "filename", None) or self.root.path,
                    reason=e.strerror)
            obsolete = [] if bundle.chain else [chain_path]
            try:
                _replace_all(written, obsolete)
            except OSError as e:
                raise WriteFailure(
                    u"Unable to move bundle files into place.", name,
                    path=e.filename or self.root.path, reason=e.strerror)


class _StoredBundle(PClass):
    """
    The encoded parts of a bundle held by ``MemoryStore``.
    """
    key = field(type=bytes, mandatory=True)
    certificate = field(type=bytes, mandatory=True)
    chain = field(type=bytes, mandatory=True)


class _MemoryState(PClass):
    bundles = pmap_field(str, _StoredBundle)


@implementer(IStore)
class MemoryStore(object):
    """
    An ``IStore`` that keeps encoded bundles in memory.

    Bundles are held in their PEM form, so loading them goes through the
    same decoding and checks as ``LocalStore``.
    """
    def __init__(self):
        self._state = _MemoryState()

    def __repr__(self):
        return "<MemoryStore {}>".format(sorted(self._state.bundles))

    def describe(self):
        return u"memory"

    def ensure_root(self):
        pass

    def exists(self, name):
        return validate_name(name) in self._state.bundles

    def load(self, name):
        with LOAD(name=name, path=self.describe()):
            try:
                stored = self._state.bundles[validate_name(name)]
            except KeyError:
                raise NotFound(u"No such bundle.", name)
            return _assemble(
                name, stored.key, stored.certificate, stored.chain)

    def save(self, bundle, name, overwrite=False):
        with SAVE(name=name, path=self.describe(), overwrite=overwrite):
            if not overwrite and self.exists(name):
                raise AlreadyExists(u"Bundle already exists.", name)
            stored = _StoredBundle(
                key=dump_private_key(bundle.private_key),
                certificate=dump_certificate(bundle.certificate),
                chain=dump_chain(bundle.chain),
            )
            self._state = self._state.transform(
                ["bundles", validate_name(name)], stored)

    def corrupt(self, name, **parts):
        """
        Replace some of the stored bytes of a bundle.

        :param unicode name: The name of an existing bundle.
        :param parts: New values for any of ``key``, ``certificate`` and
            ``chain``.
        """
        self._state = self._state.transform(
            ["bundles", name], lambda stored: stored.set(**parts))
