"""
Settings and logging setup tests.

Scope
- Validate defaults, update() validation and override() restoration.
- Validate initial values taken from the host's __main__.__arbor__ mapping.
- Validate configure_logging(): level selection and a single rich handler.

Conventions
- Test method names follow CamelCase per project convention.
"""

from __future__ import annotations

import logging
import os
import sys
import unittest
from unittest import TestCase, mock

from rich.logging import RichHandler

from arbor import Settings, configure_logging, override, settings


class TestSettings(TestCase):
    """Switches and their overrides."""

    def testDefaults(self):
        defaults = Settings()
        self.assertEqual(defaults.snapshot(), {
            "case_insensitive": False,
            "prefix_matching": False,
            "command_sorting": True,
            "traverse_run_hooks": False,
        })

    def testUpdateRejectsUnknownNames(self):
        with self.assertRaises(TypeError):
            Settings().update(colour=True)

    def testOverrideRestores(self):
        before = settings.snapshot()
        with override(prefix_matching=True) as live:
            self.assertIs(live, settings)
            self.assertTrue(settings.prefix_matching)
        self.assertEqual(settings.snapshot(), before)

    def testOverrideRestoresOnError(self):
        before = settings.snapshot()
        with self.assertRaises(RuntimeError):
            with override(case_insensitive=True, command_sorting=False):
                raise RuntimeError("boom")
        self.assertEqual(settings.snapshot(), before)

    def testFromMain(self):
        main = sys.modules["__main__"]
        with mock.patch.object(main, "__arbor__", {"prefix_matching": True}, create=True):
            self.assertTrue(Settings.from_main().prefix_matching)

    def testRepr(self):
        self.assertTrue(repr(Settings()).startswith("Settings(case_insensitive=False"))


class TestLogging(TestCase):
    """configure_logging()."""

    def setUp(self):
        logger = logging.getLogger("arbor")
        handlers, level = list(logger.handlers), logger.level

        def restore():
            logger.handlers[:] = handlers
            logger.setLevel(level)

        self.addCleanup(restore)

    def testSingleRichHandler(self):
        configure_logging("debug")
        logger = configure_logging("info")
        rich_handlers = [handler for handler in logger.handlers if isinstance(handler, RichHandler)]
        self.assertEqual(len(rich_handlers), 1)
        self.assertEqual(logger.level, logging.INFO)
        self.assertEqual(logger.name, "arbor")

    def testLevelFromEnvironment(self):
        with mock.patch.dict(os.environ, {"ARBOR_LOG_LEVEL": "error"}):
            logger = configure_logging()
        self.assertEqual(logger.level, logging.ERROR)

    def testDefaultLevel(self):
        with mock.patch.dict(os.environ, clear=True):
            logger = configure_logging()
        self.assertEqual(logger.level, logging.WARNING)


if __name__ == "__main__":
    unittest.main()
