# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""Helpers for stockade shell commands."""

import sys

from eliot import FileDestination, add_destinations, remove_destination

from twisted.internet import task, reactor as global_reactor
from twisted.internet.defer import maybeDeferred
from twisted.python import usage
from twisted.python.filepath import FilePath
from twisted.python.log import err

from zope.interface import Interface

from .. import __version__


__all__ = [
    'stockade_standard_options',
    'ICommandLineScript',
    'StockadeScriptRunner',
]


def stockade_standard_options(cls):
    """Add various standard command line options to stockade commands.

    :param type cls: The `class` to decorate.
    :return: The decorated `class`.
    """
    original_init = cls.__init__

    def __init__(self, *args, **kwargs):
        """Set the default verbosity to `0`

        Calls the original ``cls.__init__`` method finally.

        :param sys_module: An optional ``sys`` like module for use in
            testing. Defaults to ``sys``.
        """
        self._sys_module = kwargs.pop('sys_module', sys)
        self['verbosity'] = 0
        self['logfile'] = None
        original_init(self, *args, **kwargs)
    cls.__init__ = __init__

    def opt_version(self):
        """Print the program's version and exit."""
        self._sys_module.stdout.write(__version__ + u'\n')
        raise SystemExit(0)
    cls.opt_version = opt_version

    def opt_verbose(self):
        """Turn on verbose logging."""
        self['verbosity'] += 1
    cls.opt_verbose = opt_verbose
    cls.opt_v = opt_verbose

    def opt_logfile(self, logfile_path):
        """
        Write structured logs to a file. Nothing is logged by default. The
        logfile directory is created if it does not already exist.
        """
        logfile = FilePath(logfile_path)
        logfile_directory = logfile.parent()
        if not logfile_directory.exists():
            logfile_directory.makedirs()
        self['logfile'] = logfile
    cls.opt_logfile = opt_logfile

    return cls


class ICommandLineScript(Interface):
    """A script which can be run by ``StockadeScriptRunner``."""
    def main(reactor, options):
        """
        :param reactor: A Twisted reactor.
        :param dict options: A dictionary of configuration options.
        :return: A ``Deferred`` which fires when the script has completed.
        """


class StockadeScriptRunner(object):
    """An API for running standard stockade scripts.

    :ivar ICommandLineScript script: See ``script`` of ``__init__``.
    :ivar _react: A reference to ``task.react`` which can be overridden for
        testing purposes.
    """
    _react = staticmethod(task.react)

    def __init__(self, script, options, logging=True,
                 reactor=None, sys_module=None):
        """
        :param ICommandLineScript script: The script object to be run.
        :param usage.Options options: An option parser object.
        :param logging: If ``True``, send Eliot messages to the file given
            with ``--logfile``; otherwise don't log.
        :param reactor: Optional reactor to override default one.
        :param sys_module: An optional ``sys`` like module for use in
            testing. Defaults to ``sys``.
        """
        self.script = script
        self.options = options
        self.logging = logging
        if reactor is None:
            reactor = global_reactor
        self._reactor = reactor

        if sys_module is None:
            sys_module = sys
        self.sys_module = sys_module

    def _parse_options(self, arguments):
        """Parse the options defined in the script's options class.

        ``UsageError``s are caught and printed to `stderr` and the script then
        exits.

        :param list arguments: The command line arguments to be parsed.
        :return: A ``dict`` of configuration options.
        """
        try:
            self.options.parseOptions(arguments)
        except usage.UsageError as e:
            self.sys_module.stderr.write(str(self.options))
            self.sys_module.stderr.write(u'ERROR: {}\n'.format(e))
            raise SystemExit(1)
        return self.options

    def _start_logging(self, options):
        """
        Add an Eliot destination for the configured log file, if any.

        A ``--logfile`` given to a subcommand is used when the top level
        options have none.

        :return: A no-argument callable which stops logging.
        """
        logfile = options.get('logfile')
        sub_options = getattr(options, 'subOptions', None)
        if logfile is None and sub_options is not None:
            logfile = sub_options.get('logfile')
        if not self.logging or logfile is None:
            return lambda: None
        log_file = logfile.open('a')
        destination = FileDestination(file=log_file)
        add_destinations(destination)

        def stop():
            remove_destination(destination)
            log_file.close()
        return stop

    def main(self):
        """Parse arguments and run the script's main function via ``react``."""
        # If e.g. --version is called this may throw a SystemExit, so we
        # always do this first before any side-effecty code is run:
        options = self._parse_options(self.sys_module.argv[1:])

        stop_logging = self._start_logging(options)

        def run_and_log(reactor):
            d = maybeDeferred(self.script.main, reactor, options)

            def got_error(failure):
                if not failure.check(SystemExit):
                    err(failure)
                return failure
            d.addErrback(got_error)
            return d
        try:
            self._react(run_and_log, [], _reactor=self._reactor)
        finally:
            stop_logging()
