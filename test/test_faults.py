"""
Fault tests (codes, options, trigger, rich rendering).

Scope
- Validate that faults carry their message, options and stable codes.
- Validate trigger() and __replace__ (options merged, originals untouched).
- Validate rich rendering of errors and warnings, with and without colors.

Conventions
- Test method names follow CamelCase per project convention.
- Rendering goes to an in-memory rich Console without a color system.
"""

from __future__ import annotations

import io
import sys
import unittest
from unittest import TestCase, mock

from rich.console import Console

from arbor import Command
from arbor.faults import (
    CommandException,
    DeprecatedFlagWarning,
    FaultCode,
    FlagParseError,
    HelpRequested,
    RequiredFlagsError,
    UnknownFlagError,
    trigger,
)


def render(renderable):
    console = Console(file=io.StringIO(), width=120, color_system=None)
    console.print(renderable)
    return console.file.getvalue()


class TestFaults(TestCase):
    """Messages, options and codes."""

    def testMessageAndOptions(self):
        root = Command("root")
        error = RequiredFlagsError('required flag(s) "a" not set', command=root)
        self.assertEqual(str(error), 'required flag(s) "a" not set')
        self.assertIs(error.command, root)
        self.assertEqual(error.code, FaultCode.REQUIRED_FLAGS)
        self.assertIsInstance(error, CommandException)

    def testCommandDefaultsToNone(self):
        self.assertIsNone(CommandException("plain").command)

    def testOptionsAreReadOnly(self):
        error = CommandException("plain", hint="x")
        with self.assertRaises(TypeError):
            error.options["hint"] = "y"

    def testHierarchy(self):
        self.assertTrue(issubclass(UnknownFlagError, FlagParseError))
        self.assertTrue(issubclass(DeprecatedFlagWarning, Warning))
        self.assertFalse(issubclass(HelpRequested, CommandException))

    def testNormalize(self):
        self.assertEqual(FaultCode.UNKNOWN_FLAG.normalize(), "11202")
        main = sys.modules["__main__"]
        with mock.patch.object(main, "__codes__", {FaultCode.UNKNOWN_FLAG: "E-FLAG"}, create=True):
            self.assertEqual(FaultCode.UNKNOWN_FLAG.normalize(), "E-FLAG")


class TestTrigger(TestCase):
    """trigger() and __replace__."""

    def testTriggerMergesOptions(self):
        root = Command("root")
        original = UnknownFlagError("unknown flag: --x", hint="see --help")
        with self.assertRaises(UnknownFlagError) as context:
            trigger(original, command=root)
        self.assertIs(context.exception.command, root)
        self.assertEqual(context.exception.options["hint"], "see --help")
        self.assertIsNone(original.command)

    def testTriggerRequiresReplace(self):
        with self.assertRaises(TypeError):
            trigger(ValueError("nope"))

    def testReplaceRejectsPositionals(self):
        with self.assertRaises(AssertionError):
            CommandException("x").__replace__("positional")


class TestRendering(TestCase):
    """rich output of faults."""

    def setUp(self):
        self.root = Command("root")

    def testErrorRendering(self):
        output = render(UnknownFlagError("unknown flag: --x", command=self.root, hint="see --help"))
        self.assertIn("[ root | 11202 | Unknown Flag ]", output)
        self.assertIn("unknown flag: --x", output)
        self.assertIn("→ see --help", output)

    def testWarningRendering(self):
        output = render(DeprecatedFlagWarning("Flag --old has been deprecated", command=self.root))
        self.assertIn("[ root | 12102 | Deprecated Flag ]", output)
        self.assertIn("Flag --old has been deprecated", output)

    def testPlainRendering(self):
        output = render(CommandException("plain", command=self.root, colorful=False))
        self.assertIn("Command Error", output)
        self.assertNotIn("→", output)


if __name__ == "__main__":
    unittest.main()
