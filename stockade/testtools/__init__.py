# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Various utilities to help with unit and functional testing.
"""

import io
import os
import sys
from functools import wraps
from unittest import skipIf

from zope.interface.verify import verifyObject

from twisted.python.failure import Failure
from twisted.python.filepath import FilePath, Permissions
from twisted.trial.unittest import SynchronousTestCase, SkipTest

from .. import __version__
from ..common.script import StockadeScriptRunner, ICommandLineScript


__all__ = [
    'help_problems', 'fake_react', 'FakeSysModule', 'ScriptTestsMixin',
    'StandardOptionsTestsMixin', 'make_script_test',
    'make_standard_options_test', 'not_root', 'skip_on_broken_permissions',
]


def help_problems(command_name, help_text):
    """Identify and return a list of help text problems.

    :param unicode command_name: The name of the command which should appear in
        the help text.
    :param unicode help_text: The full help text to be inspected.
    :return: A list of problems found with the supplied ``help_text``.
    :rtype: list
    """
    problems = []
    expected_start = u'Usage: {command}'.format(command=command_name)
    if not help_text.startswith(expected_start):
        problems.append(
            'Does not begin with {expected}. Found {actual} instead'.format(
                expected=repr(expected_start),
                actual=repr(help_text[:len(expected_start)])
            )
        )
    return problems


def fake_react(main, argv, _reactor=None):
    """
    Run ``main`` the way ``task.react`` does, without a real reactor.

    :raise SystemExit: With status 0 if the ``Deferred`` returned by ``main``
        fired successfully, 1 otherwise.
    """
    results = []
    main(_reactor).addBoth(results.append)
    if isinstance(results[0], Failure):
        raise SystemExit(1)
    raise SystemExit(0)


class FakeSysModule(object):
    """A ``sys`` like substitute.

    For use in testing the handling of `argv`, `stdout` and `stderr` by command
    line scripts.

    :ivar list argv: See ``__init__``
    :ivar stdout: A :py:class:`io.StringIO` object representing standard
        output.
    :ivar stderr: A :py:class:`io.StringIO` object representing standard
        error.
    """
    def __init__(self, argv=None):
        """Initialise the fake sys module.

        :param list argv: The arguments list which should be exposed as
            ``sys.argv``.
        """
        if argv is None:
            argv = []
        self.argv = argv
        self.stdout = io.StringIO()
        self.stderr = io.StringIO()


class ScriptTestsMixin(object):
    """Common tests for scripts that can be run via ``StockadeScriptRunner``

    :ivar ICommandLineScript script: The script class under test.
    :ivar usage.Options options: The options parser class to use in the test.
    :ivar text command_name: The name of the command represented by ``script``.
    """

    script = None
    options = None
    command_name = None

    def test_interface(self):
        """
        A script that is meant to be run by ``StockadeScriptRunner`` must
        implement ``ICommandLineScript``.
        """
        self.assertTrue(verifyObject(ICommandLineScript, self.script()))

    def test_incorrect_arguments(self):
        """
        ``StockadeScriptRunner.main`` exits with status 1 and prints help to
        `stderr` if supplied with unexpected arguments.
        """
        sys_module = FakeSysModule(
            argv=[self.command_name, u'--unexpected_argument'])
        script = StockadeScriptRunner(
            reactor=None, script=self.script(), options=self.options(),
            sys_module=sys_module)
        error = self.assertRaises(SystemExit, script.main)
        error_text = sys_module.stderr.getvalue()
        self.assertEqual(
            (1, []),
            (error.code, help_problems(self.command_name, error_text))
        )


def make_script_test(script, options, command_name):
    """
    Return a ``TestCase`` applying ``ScriptTestsMixin`` to a script.

    :param script: The ``ICommandLineScript`` class under test.
    :param options: The ``usage.Options`` class of the script.
    :param unicode command_name: The command the script is installed as.
    """
    class ScriptTests(ScriptTestsMixin, SynchronousTestCase):
        pass
    ScriptTests.script = script
    ScriptTests.options = options
    ScriptTests.command_name = command_name
    return ScriptTests


class StandardOptionsTestsMixin(object):
    """Tests for classes decorated with ``stockade_standard_options``.

    Tests for the standard options that should be available on every stockade
    command.

    :ivar usage.Options options: The ``usage.Options`` class under test.
    """
    options = None

    def test_sys_module_default(self):
        """
        ``stockade_standard_options`` adds a ``_sys_module`` attribute which is
        ``sys`` by default.
        """
        self.assertIs(sys, self.options()._sys_module)

    def test_sys_module_override(self):
        """
        ``stockade_standard_options`` adds a ``sys_module`` argument to the
        initialiser which is assigned to ``_sys_module``.
        """
        fake_sys_module = FakeSysModule()
        self.assertIs(
            fake_sys_module,
            self.options(sys_module=fake_sys_module)._sys_module
        )

    def test_version(self):
        """
        Stockade commands have a `--version` option which prints the current
        version string to stdout and causes the command to exit with status
        `0`.
        """
        sys = FakeSysModule()
        error = self.assertRaises(
            SystemExit,
            self.options(sys_module=sys).parseOptions,
            ['--version']
        )
        self.assertEqual(
            (__version__ + '\n', 0),
            (sys.stdout.getvalue(), error.code)
        )

    def test_verbosity_default(self):
        """
        Stockade commands have `verbosity` of `0` by default.
        """
        options = self.options()
        self.assertEqual(0, options['verbosity'])

    def test_verbosity_option(self):
        """
        Stockade commands have a `--verbose` option which increments the
        configured verbosity by `1`.
        """
        options = self.options()
        # The command may otherwise give a UsageError because of missing
        # arguments or options.
        self.patch(options, "parseArgs", lambda: None)
        self.patch(options, "postOptions", lambda: None)
        options.parseOptions(['--verbose'])
        self.assertEqual(1, options['verbosity'])

    def test_verbosity_option_short(self):
        """
        Stockade commands have a `-v` option which increments the configured
        verbosity by 1.
        """
        options = self.options()
        self.patch(options, "parseArgs", lambda: None)
        self.patch(options, "postOptions", lambda: None)
        options.parseOptions(['-v'])
        self.assertEqual(1, options['verbosity'])

    def test_verbosity_multiple(self):
        """
        `--verbose` can be supplied multiple times to increase the verbosity.
        """
        options = self.options()
        self.patch(options, "parseArgs", lambda: None)
        self.patch(options, "postOptions", lambda: None)
        options.parseOptions(['-v', '--verbose'])
        self.assertEqual(2, options['verbosity'])

    def test_logfile_default(self):
        """
        `--logfile` is optional and if omitted nothing is logged.
        """
        options = self.options()
        self.patch(options, "parseArgs", lambda: None)
        self.patch(options, "postOptions", lambda: None)
        options.parseOptions([])
        self.assertIs(None, options['logfile'])

    def test_logfile_override(self):
        """
        If `--logfile` is supplied, its value is stored as a ``FilePath`` and
        its parent directory is created.
        """
        options = self.options()
        self.patch(options, "parseArgs", lambda: None)
        self.patch(options, "postOptions", lambda: None)
        expected_path = FilePath(self.mktemp()).child(u"stockade.log")
        options.parseOptions(['--logfile={}'.format(expected_path.path)])
        self.assertEqual(
            (expected_path, True),
            (options['logfile'], expected_path.parent().isdir())
        )


def make_standard_options_test(options):
    """
    Return a ``TestCase`` applying ``StandardOptionsTestsMixin`` to an
    options class.

    :param options: A ``usage.Options`` class decorated with
        ``stockade_standard_options``.
    """
    class StandardOptionsTests(StandardOptionsTestsMixin,
                               SynchronousTestCase):
        pass
    StandardOptionsTests.options = options
    return StandardOptionsTests


# The root user can read and write files regardless of their permissions.
not_root = skipIf(os.getuid() == 0, "Must not be run as root.")


def skip_on_broken_permissions(test_method):
    """
    Skips the wrapped test when the temporary directory is on a
    filesystem with broken permissions.

    Virtualbox's shared folder (as used for :file:`/vagrant`) doesn't entirely
    respect changing permissions. For example, this test detects running on a
    shared folder by the fact that all permissions can't be removed from a
    file.

    :param callable test_method: Test method to wrap.
    :return: The wrapped method.
    :raise SkipTest: when the temporary directory is on a filesystem with
        broken permissions.
    """
    @wraps(test_method)
    def wrapper(case, *args, **kwargs):
        test_file = FilePath(case.mktemp())
        test_file.touch()
        test_file.chmod(0o000)
        permissions = test_file.getPermissions()
        test_file.chmod(0o777)
        if permissions != Permissions(0o000):
            raise SkipTest(
                "Can't run test on filesystem with broken permissions.")
        return test_method(case, *args, **kwargs)
    return wrapper
