# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
The command-line certificate authority tool.
"""

import os
import sys

import textwrap

from twisted.internet.defer import maybeDeferred, succeed
from twisted.python.usage import Options, UsageError

from zope.interface import implementer

from ..common.script import (stockade_standard_options, ICommandLineScript,
                             StockadeScriptRunner)

from ._issuance import (
    PKIConfiguration, create_ca, create_client, create_intermediate,
    create_server,
)
from ._request import (
    DEFAULT_CA_NAME, DEFAULT_CA_VALIDITY_DAYS, DEFAULT_LEAF_VALIDITY_DAYS,
    DEFAULT_MAX_PATH_LENGTH, DEFAULT_PRIVATE_KEY_SIZE, artifact_filenames,
)

DEFAULT_INTERMEDIATE_NAME = u"Stockade Intermediate Certificate Authority"


class PrettyOptions(Options):
    """
    Base class with improved output formatting for help text over
    ``twisted.python.usage.Options``. Includes ``self.helptext`` attribute
    in the wrapped help output of a CLI. Use ``self.helptext`` in place of
    ``self.longdesc``.
    """
    def __str__(self):
        base = super(PrettyOptions, self).__str__()
        helptext = self.helptext if getattr(self, "helptext", None) else ""
        helptext_list = helptext.splitlines()
        description_list = []
        for line in helptext_list:
            description_list.append('\n'.join(textwrap.wrap(line, 80)).strip())
        description = '\n'.join(description_list)
        return base + description

    def getSynopsis(self):
        """
        Modified from ``twisted.python.usage.Options.getSynopsis``.

        Does not include the parent synopsis if inside a subcommand, so that

        stockade-ca create-ca --help

        prints ``Usage: stockade-ca create-ca [options]`` rather than
        ``Usage: stockade-ca <command> [options] create-ca [options]``.
        """
        if self.parent is None:
            default = "Usage: %s%s" % (os.path.basename(sys.argv[0]),
                                       (self.longOpt and " [options]") or '')
        else:
            default = '%s' % ((self.longOpt and "[options]") or '')
        synopsis = getattr(self, "synopsis", default)

        synopsis = synopsis.rstrip()

        if self.parent is not None:
            commandName = getattr(
                self.parent, "command_name", os.path.basename(sys.argv[0]))
            synopsis = "Usage: %s %s" % (
                commandName, ' '.join((self.parent.subCommand, synopsis)))

        return synopsis

    def getUsage(self, width=None):
        base = super(PrettyOptions, self).getUsage(width)
        usage = base
        if self.subCommand is not None:
            subUsage = (
                "Run stockade-ca "
                + self.subCommand +
                " --help for command usage and help."
            )
            usage = usage + "\n\n" + subUsage + "\n\n"
        return usage


def _split_list(value):
    return [item.strip() for item in value.split(u",") if item.strip()]


class _IssueOptions(PrettyOptions):
    """
    Options shared by every command that issues a certificate.

    Subclasses implement ``issue``, which is given a ``PKIConfiguration``
    and returns an ``IssuanceResult``.
    """
    optFlags = [
        ['overwrite', None,
         'Replace an existing certificate and key of the same name.'],
    ]

    optParameters = [
        ['pki-root', None, None,
         'Directory in which the PKI resides. Defaults to '
         '$STOCKADE_PKI_ROOT, or ~/.stockade/pki.'],
        ['private-key-size', None, DEFAULT_PRIVATE_KEY_SIZE,
         'Size in bits of the generated RSA private key.', int],
    ]

    def configuration(self):
        """
        :return: The ``PKIConfiguration`` selected by these options.
        """
        return PKIConfiguration.local(
            self["pki-root"], overwrite=bool(self["overwrite"]))

    def run(self):
        """
        Issue the certificate and report the files written.

        :raise SystemExit: If no certificate was created.
        """
        configuration = self.configuration()
        result = self.issue(configuration)
        if not result.succeeded:
            raise SystemExit(u"Error: {error}".format(error=result.error))
        key_filename, certificate_filename, chain_filename = (
            artifact_filenames(result.name))
        written = [certificate_filename, key_filename]
        if result.bundle.chain:
            written.append(chain_filename)
        self._sys_module.stdout.write(
            u"Created {files} in {root}.\n".format(
                files=u", ".join(written),
                root=configuration.store.describe()))
        return succeed(None)


@stockade_standard_options
class CreateCAOptions(_IssueOptions):
    """
    Command line options for ``stockade-ca create-ca``.
    """

    helptext = """Create a new root certificate authority.

    Creates a private/public key pair and self-signs the public key to
    produce a new root certificate. The key, certificate and an empty chain
    are stored in the PKI root. Other stockade-ca commands can then create
    certificates signed by this authority by naming it with --ca-name.
    """

    synopsis = "[options]"

    optParameters = [
        ['ca-file', None, None,
         'Name within the PKI root under which to store the new CA. '
         'Derived from --ca-name if omitted.'],
        ['ca-name', None, DEFAULT_CA_NAME, 'Common name of the CA.'],
        ['organization', None, None, 'Organization name of the CA.'],
        ['expire-limit', None, DEFAULT_CA_VALIDITY_DAYS,
         'Expiration limit in days.', int],
        ['max-path-len', None, DEFAULT_MAX_PATH_LENGTH,
         'Maximum number of intermediate CAs below this one; -1 for no '
         'limit.', int],
    ]

    def issue(self, configuration):
        return create_ca(
            configuration, name=self["ca-file"],
            common_name=self["ca-name"],
            organization=self["organization"],
            validity_days=self["expire-limit"],
            max_path_length=self["max-path-len"],
            private_key_size=self["private-key-size"])


@stockade_standard_options
class CreateIntermediateOptions(_IssueOptions):
    """
    Command line options for ``stockade-ca create-intermediate``.
    """

    helptext = """Create a new intermediate certificate authority.

    Creates a certificate authority signed by a previously created
    authority (see stockade-ca create-ca), named with --ca-name. The
    intermediate's --max-path-len must be smaller than the signing
    authority's, and may only be -1 if the signer's is unconstrained.
    """

    synopsis = "--ca-name <signer> [options]"

    optParameters = [
        ['ca-name', None, None,
         'Name within the PKI root of the signing CA, sanitized the same '
         'way as the name it was created with.'],
        ['intermediate-file', None, None,
         'Name within the PKI root under which to store the intermediate. '
         'Derived from --intermediate-name if omitted.'],
        ['intermediate-name', None, DEFAULT_INTERMEDIATE_NAME,
         'Common name of the intermediate CA.'],
        ['organization', None, None, 'Organization name of the CA.'],
        ['expire-limit', None, DEFAULT_CA_VALIDITY_DAYS,
         'Expiration limit in days.', int],
        ['max-path-len', None, DEFAULT_MAX_PATH_LENGTH,
         'Maximum number of intermediate CAs below this one; -1 for no '
         'limit.', int],
    ]

    def postOptions(self):
        if not self["ca-name"]:
            raise UsageError(u"--ca-name is required.")

    def issue(self, configuration):
        return create_intermediate(
            configuration, self["ca-name"],
            name=self["intermediate-file"],
            common_name=self["intermediate-name"],
            organization=self["organization"],
            validity_days=self["expire-limit"],
            max_path_length=self["max-path-len"],
            private_key_size=self["private-key-size"])


@stockade_standard_options
class CreateServerOptions(_IssueOptions):
    """
    Command line options for ``stockade-ca create-server``.
    """

    helptext = """Create a new server certificate.

    Creates a certificate for TLS server authentication signed by the
    authority named with --ca-name. The DNS names and IP addresses the
    server is reached by are recorded as subject alternative names; if none
    are given the common name is used as the DNS name.
    """

    synopsis = "--ca-name <signer> --server-file <name> [options]"

    optParameters = [
        ['ca-name', None, None,
         'Name within the PKI root of the signing CA, sanitized the same '
         'way as the name it was created with.'],
        ['server-file', None, None,
         'Name within the PKI root under which to store the certificate. '
         'Derived from --server-name if omitted.'],
        ['server-name', None, None,
         'Common name of the server. Defaults to --server-file.'],
        ['organization', None, None, 'Organization name of the server.'],
        ['expire-limit', None, DEFAULT_LEAF_VALIDITY_DAYS,
         'Expiration limit in days.', int],
    ]

    def opt_dns(self, names):
        """
        Comma separated DNS names of the server. May be repeated.
        """
        self.setdefault("dns", []).extend(_split_list(names))

    def opt_ip(self, addresses):
        """
        Comma separated IP addresses of the server. May be repeated.
        """
        self.setdefault("ip", []).extend(_split_list(addresses))

    def postOptions(self):
        self.setdefault("dns", [])
        self.setdefault("ip", [])
        if not self["ca-name"]:
            raise UsageError(u"--ca-name is required.")

    def issue(self, configuration):
        return create_server(
            configuration, self["ca-name"],
            name=self["server-file"],
            common_name=self["server-name"],
            organization=self["organization"],
            dns_names=self["dns"], ip_addresses=self["ip"],
            validity_days=self["expire-limit"],
            private_key_size=self["private-key-size"])


@stockade_standard_options
class CreateClientOptions(_IssueOptions):
    """
    Command line options for ``stockade-ca create-client``.
    """

    helptext = """Create a new client certificate.

    Creates a certificate for TLS client authentication signed by the
    authority named with --ca-name. Client certificates may also be used by
    servers unless --client-only is given.
    """

    synopsis = "--ca-name <signer> --client-file <name> [options]"

    optFlags = [
        ['client-only', None,
         'Do not allow the certificate to authenticate servers.'],
    ]

    optParameters = [
        ['ca-name', None, None,
         'Name within the PKI root of the signing CA, sanitized the same '
         'way as the name it was created with.'],
        ['client-file', None, None,
         'Name within the PKI root under which to store the certificate. '
         'Derived from --client-name if omitted.'],
        ['client-name', None, None,
         'Common name of the client. Defaults to --client-file.'],
        ['organization', None, None, 'Organization name of the client.'],
        ['expire-limit', None, DEFAULT_LEAF_VALIDITY_DAYS,
         'Expiration limit in days.', int],
    ]

    def opt_email(self, addresses):
        """
        Comma separated email addresses of the client. May be repeated.
        """
        self.setdefault("email", []).extend(_split_list(addresses))

    def postOptions(self):
        self.setdefault("email", [])
        if not self["ca-name"]:
            raise UsageError(u"--ca-name is required.")

    def issue(self, configuration):
        return create_client(
            configuration, self["ca-name"],
            name=self["client-file"],
            common_name=self["client-name"],
            organization=self["organization"],
            email_addresses=self["email"],
            client_only=bool(self["client-only"]),
            validity_days=self["expire-limit"],
            private_key_size=self["private-key-size"])


@stockade_standard_options
class CAOptions(PrettyOptions):
    """
    Command line options for ``stockade-ca``.
    """
    helptext = """stockade-ca is used to create TLS certificates.

    It maintains a local hierarchy of certificate authorities and the
    server and client certificates they sign.
    """
    synopsis = "Usage: stockade-ca <command> [options]"

    subCommands = [
        ["create-ca", None, CreateCAOptions,
         "Create a root certificate authority."],
        ["create-intermediate", None, CreateIntermediateOptions,
         "Create an intermediate certificate authority."],
        ["create-server", None, CreateServerOptions,
         "Create a server certificate."],
        ["create-client", None, CreateClientOptions,
         "Create a client certificate."],
        ]

    def postOptions(self):
        sub_options = getattr(self, "subOptions", None)
        if sub_options is not None:
            sub_options._sys_module = self._sys_module


@implementer(ICommandLineScript)
class CAScript(object):
    """
    Command-line script for ``stockade-ca``.
    """
    def main(self, reactor, options):
        if options.subCommand is not None:
            return maybeDeferred(options.subOptions.run)
        else:
            return options.opt_help()


def stockade_ca_main():
    return StockadeScriptRunner(
        CAScript(), CAOptions(), logging=True).main()
