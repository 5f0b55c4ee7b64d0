# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""Tests for :module:`stockade.common.script`."""

import json
import sys

from eliot import Message

from twisted.internet import task
from twisted.internet.defer import fail, succeed
from twisted.python import usage
from twisted.python.filepath import FilePath
from twisted.trial.unittest import SynchronousTestCase

from ..script import stockade_standard_options, StockadeScriptRunner
from ...testtools import (
    help_problems, fake_react, FakeSysModule, StandardOptionsTestsMixin,
)


class StockadeScriptRunnerInitTests(SynchronousTestCase):
    """Tests for :py:meth:`StockadeScriptRunner.__init__`."""

    def test_sys_default(self):
        """
        `StockadeScriptRunner.sys` is `sys` by default.
        """
        self.assertIs(
            sys,
            StockadeScriptRunner(
                script=None, options=None).sys_module
        )

    def test_sys_override(self):
        """
        `StockadeScriptRunner.sys` can be overridden in the constructor.
        """
        dummySys = object()
        self.assertIs(
            dummySys,
            StockadeScriptRunner(script=None, options=None,
                                 sys_module=dummySys).sys_module
        )

    def test_react(self):
        """
        `StockadeScriptRunner._react` is ``task.react`` by default
        """
        self.assertIs(
            task.react,
            StockadeScriptRunner(script=None, options=None)._react
        )


class StockadeScriptRunnerParseOptionsTests(SynchronousTestCase):
    """Tests for :py:meth:`StockadeScriptRunner._parse_options`."""

    def test_parse_options(self):
        """
        ``StockadeScriptRunner._parse_options`` accepts a list of arguments,
        passes them to the `parseOptions` method of its ``options`` attribute
        and returns the populated options instance.
        """
        class OptionsSpy(usage.Options):
            def parseOptions(self, arguments):
                self.parseOptionsArguments = arguments

        expectedArguments = [object(), object()]
        runner = StockadeScriptRunner(script=None, options=OptionsSpy())
        options = runner._parse_options(expectedArguments)
        self.assertEqual(expectedArguments, options.parseOptionsArguments)

    def test_parse_options_usage_error(self):
        """
        `StockadeScriptRunner._parse_options` catches `usage.UsageError`
        exceptions and writes the help text and an error message to `stderr`
        before exiting with status 1.
        """
        expectedMessage = u'foo bar baz'
        expectedCommandName = u'test_command'

        class FakeOptions(usage.Options):
            synopsis = u'Usage: %s [options]' % (expectedCommandName,)

            def parseOptions(self, arguments):
                raise usage.UsageError(expectedMessage)

        fake_sys = FakeSysModule()

        runner = StockadeScriptRunner(script=None, options=FakeOptions(),
                                      sys_module=fake_sys)
        error = self.assertRaises(SystemExit, runner._parse_options, [])
        expectedErrorMessage = u'ERROR: %s\n' % (expectedMessage,)
        errorText = fake_sys.stderr.getvalue()
        self.assertEqual(
            (1, [], expectedErrorMessage),
            (error.code,
             help_problems(u'test_command', errorText),
             errorText[-len(expectedErrorMessage):])
        )


@stockade_standard_options
class TestOptions(usage.Options):
    """An unmodified ``usage.Options`` subclass for use in testing."""


class StockadeScriptRunnerMainTests(SynchronousTestCase):
    """Tests for :py:meth:`StockadeScriptRunner.main`."""

    def make_runner(self, script, options, argv, logging=True):
        runner = StockadeScriptRunner(
            script, options, reactor=object(),
            sys_module=FakeSysModule(argv=argv), logging=logging)
        runner._react = fake_react
        return runner

    def test_main_uses_sysargv(self):
        """
        ``StockadeScriptRunner.main`` uses ``self.sys_module.argv``.
        """
        class SpyOptions(usage.Options):
            def opt_hello(self, value):
                self.value = value

        class SpyScript(object):
            def main(self, reactor, arguments):
                self.reactor = reactor
                self.arguments = arguments
                return succeed(None)

        script = SpyScript()
        runner = self.make_runner(
            script, SpyOptions(), [u"stockade", u"--hello", u"world"])
        error = self.assertRaises(SystemExit, runner.main)
        self.assertEqual(
            (0, u"world", runner._reactor),
            (error.code, script.arguments.value, script.reactor))

    def test_failure(self):
        """
        A script whose ``Deferred`` fails makes ``main`` exit with status 1.
        """
        class FailingScript(object):
            def main(self, reactor, arguments):
                return fail(SystemExit(u"Error: failed"))

        runner = self.make_runner(FailingScript(), TestOptions(), [u"x"])
        error = self.assertRaises(SystemExit, runner.main)
        self.assertEqual(1, error.code)

    def test_logfile(self):
        """
        With ``--logfile`` Eliot messages written while the script runs are
        appended to that file as JSON.
        """
        logfile = FilePath(self.mktemp())

        class Script(object):
            def main(self, reactor, arguments):
                Message.log(message_type=u"stockade:test", value=1)
                return succeed(None)

        runner = self.make_runner(
            Script(), TestOptions(),
            [u"x", u"--logfile", logfile.path])
        self.assertRaises(SystemExit, runner.main)
        messages = [json.loads(line)
                    for line in logfile.getContent().splitlines()]
        self.assertIn(
            (u"stockade:test", 1),
            [(message.get(u"message_type"), message.get(u"value"))
             for message in messages])

    def test_subcommand_logfile(self):
        """
        A ``--logfile`` given after a subcommand is used too.
        """
        logfile = FilePath(self.mktemp())

        class ParentOptions(usage.Options):
            subCommands = [["sub", None, TestOptions, "A subcommand."]]

        class Script(object):
            def main(self, reactor, arguments):
                Message.log(message_type=u"stockade:test", value=2)
                return succeed(None)

        runner = self.make_runner(
            Script(), ParentOptions(),
            [u"x", u"sub", u"--logfile", logfile.path])
        self.assertRaises(SystemExit, runner.main)
        messages = [json.loads(line)
                    for line in logfile.getContent().splitlines()]
        self.assertIn(
            (u"stockade:test", 2),
            [(message.get(u"message_type"), message.get(u"value"))
             for message in messages])

    def test_disabled_logging(self):
        """
        If ``logging`` is set to ``False``, ``StockadeScriptRunner.main``
        does not write to the log file.
        """
        logfile = FilePath(self.mktemp())

        class Script(object):
            def main(self, reactor, arguments):
                Message.log(message_type=u"stockade:test")
                return succeed(None)

        runner = self.make_runner(
            Script(), TestOptions(), [u"x", u"--logfile", logfile.path],
            logging=False)
        self.assertRaises(SystemExit, runner.main)
        self.assertFalse(logfile.exists())


class StockadeStandardOptionsTests(StandardOptionsTestsMixin,
                                   SynchronousTestCase):
    """Tests for ``stockade_standard_options``

    Using a decorating an unmodified ``usage.Options`` subclass.
    """
    options = TestOptions
