"""
Execution engine tests (lifecycle, short-circuits, reporting).

Scope
- Validate hook order, nearest-only vs. traversed persistent hooks, and hook failures.
- Validate help/version short-circuits and the non-runnable fallback to help.
- Validate error reporting: prefix, suggestions, usage, silencing, flag-error transform.
- Validate the built-in help command, group checks, contexts, initializers/finalizers.

Conventions
- Test method names follow CamelCase per project convention.
- Output is captured through set_out/set_err on the root.
- Global switches are changed through arbor.config.override only.
"""

from __future__ import annotations

import contextvars
import io
import unittest
from unittest import TestCase

from arbor import (
    Command,
    execution,
    flags,
    invoke,
    minimum_n_args,
    on_finalize,
    on_initialize,
    override,
)
from arbor.faults import (
    CommandDefinitionError,
    CommandException,
    PositionalArgsError,
    RequiredFlagsError,
    UnknownCommandError,
    UnknownFlagError,
)


def noop(command, args):
    pass


class Capture(TestCase):
    """Base fixture: a root with captured streams."""

    def setUp(self):
        flags.reset_command_line()
        self.out, self.err = io.StringIO(), io.StringIO()
        self.events = []

    def tearDown(self):
        flags.reset_command_line()

    def capture(self, root):
        root.set_out(self.out)
        root.set_err(self.err)
        return root

    def recorder(self, label):
        def hook(command, args):
            self.events.append((label, list(args)))

        return hook


class TestLifecycle(Capture):
    """Hook order and failures."""

    def setUp(self):
        super().setUp()
        self.root = self.capture(Command(
            "root",
            persistent_pre_run=self.recorder("root:persistent_pre_run"),
            persistent_post_run=self.recorder("root:persistent_post_run"),
        ))
        self.child = Command(
            "child",
            aliases=["kid"],
            persistent_pre_run=self.recorder("child:persistent_pre_run"),
            pre_run=self.recorder("child:pre_run"),
            run=self.recorder("child:run"),
            post_run=self.recorder("child:post_run"),
        )
        self.root.add(self.child)

    def testNearestPersistentHooksOnly(self):
        executed = self.root.execute_c(["child", "a"])
        self.assertIs(executed, self.child)
        self.assertEqual(self.events, [
            ("child:persistent_pre_run", ["a"]),
            ("child:pre_run", ["a"]),
            ("child:run", ["a"]),
            ("child:post_run", ["a"]),
            ("root:persistent_post_run", ["a"]),
        ])

    def testTraversedPersistentHooks(self):
        self.child.persistent_post_run = self.recorder("child:persistent_post_run")
        with override(traverse_run_hooks=True):
            self.root.execute_c(["child"])
        self.assertEqual([label for label, _ in self.events], [
            "root:persistent_pre_run",
            "child:persistent_pre_run",
            "child:pre_run",
            "child:run",
            "child:post_run",
            "child:persistent_post_run",
            "root:persistent_post_run",
        ])

    def testAliasIsRecordedAsCalledAs(self):
        executed = self.root.execute_c(["kid"])
        self.assertEqual(executed.called_as(), "kid")

    def testRootCalledAsDefaultsToItsName(self):
        self.root.run = noop
        executed = self.root.execute_c([])
        self.assertEqual(executed.called_as(), "root")

    def testHookFailureStopsPipeline(self):
        def refuse(command, args):
            raise CommandException("not today")

        self.child.pre_run = refuse
        with self.assertRaises(CommandException):
            self.root.execute_c(["child"])
        self.assertEqual([label for label, _ in self.events], ["child:persistent_pre_run"])
        self.assertEqual(self.err.getvalue(), "Error: not today\n")

    def testPositionalValidationRunsBeforeHooks(self):
        self.child.args = minimum_n_args(2)
        with self.assertRaises(PositionalArgsError):
            self.root.execute_c(["child", "one"])
        self.assertEqual(self.events, [])

    def testStringArgumentsAreSplitLikeAShell(self):
        self.root.execute_c("child 'a b' c")
        self.assertIn(("child:run", ["a b", "c"]), self.events)

    def testSetArgsIsUsedByExecute(self):
        self.root.set_args(["child", "x"])
        self.root.execute()
        self.assertIn(("child:run", ["x"]), self.events)

    def testExecutingFromAChildStartsAtTheRoot(self):
        self.child.execute_c(["child", "y"])
        self.assertIn(("child:run", ["y"]), self.events)

    def testDisabledFlagParsingPassesRawArgs(self):
        self.child.disable_flag_parsing = True
        self.root.execute_c(["child", "--x", "y"])
        self.assertIn(("child:run", ["--x", "y"]), self.events)

    def testContextIsVisibleToHooks(self):
        request_id = contextvars.ContextVar("request_id", default="none")
        seen = []
        self.child.run = lambda command, args: seen.append(request_id.get())
        context = contextvars.copy_context()
        context.run(request_id.set, "abc")
        self.root.execute_context(context, ["child"])
        self.assertEqual(seen, ["abc"])
        self.assertEqual(request_id.get(), "none")

    def testInitializersAndFinalizers(self):
        def initialize():
            self.events.append(("initialize", []))

        def finalize():
            self.events.append(("finalize", []))

        on_initialize(initialize)
        on_finalize(finalize)
        self.addCleanup(execution.initializers.remove, initialize)
        self.addCleanup(execution.finalizers.remove, finalize)

        def explode(command, args):
            raise CommandException("boom")

        self.child.run = explode
        with self.assertRaises(CommandException):
            self.root.execute_c(["child"])
        labels = [label for label, _ in self.events]
        self.assertEqual(labels[0], "initialize")
        self.assertEqual(labels[-1], "finalize")


class TestShortCircuits(Capture):
    """Help and version."""

    def testHelpFlagSkipsValidation(self):
        root = self.capture(Command("root"))
        child = Command("child", short="Child short", run=self.recorder("run"))
        child.flags.add_string("foo")
        child.mark_flag_required("foo")
        root.add(child)
        executed = root.execute_c(["child", "--help"])
        self.assertIs(executed, child)
        self.assertEqual(self.events, [])
        self.assertTrue(self.out.getvalue().startswith("Child short\n\nUsage:\n  root child [flags]\n"))
        self.assertEqual(self.err.getvalue(), "")

    def testShortHelpFlag(self):
        root = self.capture(Command("root", run=self.recorder("run")))
        root.execute_c(["-h"])
        self.assertEqual(self.events, [])
        self.assertIn("-h, --help   help for root", self.out.getvalue())

    def testNonRunnableCommandShowsHelp(self):
        root = self.capture(Command("root"))
        root.add(Command("child", short="Child short", run=noop))
        self.assertIs(root.execute_c([]), root)
        self.assertTrue(self.out.getvalue().startswith("Usage:\n  root [command]\n"))

    def testVersionFlag(self):
        root = self.capture(Command("root", version="1.2.3", run=self.recorder("run")))
        root.execute_c(["--version"])
        self.assertEqual(self.out.getvalue(), "root version 1.2.3\n")
        self.assertEqual(self.events, [])

    def testVersionShorthandAndTemplate(self):
        root = self.capture(Command("root", version="1.2.3", run=noop))
        root.set_version_template("{command.name}/{command.version}\n")
        root.execute_c(["-v"])
        self.assertEqual(self.out.getvalue(), "root/1.2.3\n")

    def testVersionShorthandIsNotStolen(self):
        root = self.capture(Command("root", version="1.2.3", run=self.recorder("run")))
        root.flags.add_bool("verbose", "v")
        root.execute_c(["-v"])
        self.assertEqual(self.out.getvalue(), "")
        self.assertTrue(root.flags.get_bool("verbose"))
        self.assertEqual(root.flags.lookup("version").shorthand, "")

    def testUserDeclaredHelpFlagIsKept(self):
        root = self.capture(Command("root", run=self.recorder("run")))
        mine = root.persistent_flags.add_bool("help", usage="my help")
        child = Command("child", run=noop)
        root.add(child)
        root.execute_c(["child"])
        self.assertIs(child.flags.lookup("help"), mine)


class TestReporting(Capture):
    """Errors printed before they are re-raised."""

    def setUp(self):
        super().setUp()
        self.root = self.capture(Command("root"))
        self.child = Command("child", run=noop)
        self.root.add(self.child)

    def testUnknownCommand(self):
        with self.assertRaises(UnknownCommandError) as context:
            self.root.execute_c(["chidl"])
        self.assertIs(context.exception.command, self.root)
        self.assertEqual(
            self.err.getvalue(),
            'Error: unknown command "chidl" for "root"\n\nDid you mean this?\n\tchild\n\n'
            "Run 'root --help' for usage.\n",
        )

    def testRequiredFlagReportsErrorAndUsage(self):
        self.child.flags.add_string("foo")
        self.child.mark_flag_required("foo")
        with self.assertRaises(RequiredFlagsError):
            self.root.execute_c(["child"])
        self.assertEqual(self.err.getvalue(), 'Error: required flag(s) "foo" not set\n')
        self.assertTrue(self.out.getvalue().startswith("Usage:\n  root child [flags]\n"))

    def testSilencing(self):
        self.root.silence_errors = True
        self.child.silence_usage = True
        with self.assertRaises(UnknownFlagError):
            self.root.execute_c(["child", "--bogus"])
        self.assertEqual(self.err.getvalue(), "")
        self.assertEqual(self.out.getvalue(), "")

    def testFlagErrorFunc(self):
        self.root.set_flag_error_func(lambda command, error: CommandException(f"{error} (see --help)"))
        with self.assertRaises(CommandException) as context:
            self.root.execute_c(["child", "--bogus"])
        self.assertEqual(str(context.exception), "unknown flag: --bogus (see --help)")
        self.assertTrue(self.err.getvalue().startswith("Error: unknown flag: --bogus (see --help)\n"))

    def testCustomErrorPrefix(self):
        self.root.set_error_prefix("oops:")
        with self.assertRaises(UnknownFlagError):
            self.root.execute_c(["child", "--bogus"])
        self.assertTrue(self.err.getvalue().startswith("oops: unknown flag: --bogus\n"))

    def testDeprecationNotices(self):
        self.child.deprecated = "use other"
        self.child.flags.add_string("old")
        self.child.flags.mark_deprecated("old", "use --new")
        self.root.execute_c(["child", "--old", "x"])
        self.assertIn('Command "child" is deprecated, use other\n', self.out.getvalue())
        self.assertIn("Flag --old has been deprecated, use --new\n", self.out.getvalue())

    def testUndeclaredGroupIsADefinitionError(self):
        self.child.group_id = "missing"
        with self.assertRaises(CommandDefinitionError) as context:
            self.root.execute_c(["child"])
        self.assertEqual(
            str(context.exception),
            "group id 'missing' is not defined for subcommand 'root child'",
        )
        self.assertEqual(self.err.getvalue(), "")

    def testParseFailureCarriesTheExecutedCommand(self):
        with self.assertRaises(UnknownFlagError) as context:
            self.root.execute_c(["child", "--bogus"])
        self.assertIs(context.exception.command, self.child)
        self.assertEqual(str(context.exception), "unknown flag: --bogus")
        self.assertTrue(self.err.getvalue().startswith("Error: unknown flag: --bogus\n"))

    def testHookFaultKeepsItsOwnCommand(self):
        def fail(command, args):
            raise CommandException("refused", command=self.root, hint="try later")

        self.child.run = fail
        with self.assertRaises(CommandException) as context:
            self.root.execute_c(["child"])
        self.assertIs(context.exception.command, self.root)
        self.assertEqual(context.exception.options["hint"], "try later")

    def testOtherHookErrorsPropagateUnreported(self):
        def fail(command, args):
            raise ValueError("not a command fault")

        self.child.run = fail
        with self.assertRaises(ValueError):
            invoke(self.root, ["child"])
        self.assertEqual(self.err.getvalue(), "")
        self.assertEqual(self.out.getvalue(), "")

    def testInvokeExitsOnFailure(self):
        with self.assertRaises(SystemExit) as context:
            invoke(self.root, ["chidl"])
        self.assertEqual(context.exception.code, 1)


class TestHelpCommand(Capture):
    """The injected "help [command]" command."""

    def setUp(self):
        super().setUp()
        self.root = self.capture(Command("root"))
        self.child = Command("child", short="Child short", run=noop)
        self.root.add(self.child)

    def testHelpForASubcommand(self):
        self.root.execute_c(["help", "child"])
        self.assertTrue(self.out.getvalue().startswith("Child short\n\nUsage:\n  root child [flags]\n"))

    def testUnknownHelpTopic(self):
        self.root.execute_c(["help", "bogus", "topic"])
        self.assertTrue(self.out.getvalue().startswith("Unknown help topic [`bogus` `topic`]\nUsage:\n"))

    def testHelpCommandIsInjectedOnce(self):
        self.root.execute_c(["child"])
        self.root.execute_c(["child"])
        names = [command.name for command in self.root.commands()]
        self.assertEqual(names.count("help"), 1)
        self.assertIs(self.root.help_command.parent, self.root)
        self.assertFalse(self.root.help_command.is_available_command())

    def testUserHelpCommandIsRespected(self):
        mine = Command("help", run=self.recorder("mine"))
        self.root.add(mine)
        self.root.execute_c(["help"])
        self.assertEqual(self.events, [("mine", [])])
        self.assertIsNone(self.root.help_command)

    def testLeafRootGetsNoHelpCommand(self):
        root = self.capture(Command("root", run=noop))
        root.execute_c([])
        self.assertEqual(root.children, [])


class TestTraverseExecution(Capture):
    """Execution with traverse_children on the root."""

    def testParentLocalFlagsBeforeSubcommand(self):
        root = self.capture(Command("root", traverse_children=True))
        root.flags.add_string("profile")
        child = Command("child", run=self.recorder("run"))
        root.add(child)
        root.execute_c(["--profile", "dev", "child", "arg"])
        self.assertEqual(root.flags.get("profile"), "dev")
        self.assertEqual(self.events, [("run", ["arg"])])


if __name__ == "__main__":
    unittest.main()
