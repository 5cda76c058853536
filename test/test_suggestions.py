"""
Suggestion tests ("did you mean" for mistyped subcommands).

Scope
- Validate the restricted Damerau-Levenshtein distance.
- Validate candidate selection: edit distance, prefix, explicit suggest_for entries.
- Validate the rendered block, its minimum-distance knob and its opt-out.

Conventions
- Test method names follow CamelCase per project convention.
"""

from __future__ import annotations

import unittest
from unittest import TestCase

from arbor import Command, override
from arbor.suggestions import distance, find_suggestions, suggestions_for


def noop(command, args):
    pass


class TestDistance(TestCase):
    """Optimal string alignment distance."""

    def testDistances(self):
        cases = [
            ("", "", 0),
            ("", "abc", 3),
            ("abc", "abc", 0),
            ("tiems", "times", 1),
            ("time", "times", 1),
            ("kitten", "sitting", 3),
            ("ca", "abc", 3),
        ]
        for source, target, expected in cases:
            with self.subTest(source=source, target=target):
                self.assertEqual(distance(source, target), expected)

    def testIgnoreCase(self):
        self.assertEqual(distance("Times", "times"), 1)
        self.assertEqual(distance("Times", "times", ignore_case=True), 0)


class TestSuggestionsFor(TestCase):
    """Candidate selection among the children of a command."""

    def setUp(self):
        self.root = Command("root")
        self.times = Command("times", suggest_for=["counts"], run=noop)
        self.root.add(self.times)

    def testSuggestions(self):
        cases = [
            ("time", ["times"]),
            ("tiems", ["times"]),
            ("tims", ["times"]),
            ("timeS", ["times"]),
            ("t", ["times"]),
            ("counts", ["times"]),
            ("foo", []),
        ]
        for typed, expected in cases:
            with self.subTest(typed=typed):
                self.assertEqual(suggestions_for(self.root, typed), expected)

    def testExplicitAndCloseMatchAreBothListed(self):
        self.times.suggest_for = ["tim"]
        self.assertEqual(suggestions_for(self.root, "tim"), ["times", "times"])

    def testSuggestionsFollowTheSortedListing(self):
        root = Command("root")
        root.add(Command("time", run=noop), Command("tima", run=noop))
        self.assertEqual(suggestions_for(root, "tim"), ["tima", "time"])
        with override(command_sorting=False):
            unsorted = Command("root")
            unsorted.add(Command("time", run=noop), Command("tima", run=noop))
            self.assertEqual(suggestions_for(unsorted, "tim"), ["time", "tima"])

    def testMinimumDistanceIsConfigurable(self):
        self.assertEqual(suggestions_for(self.root, "tumis"), ["times"])
        self.root.suggestions_minimum_distance = 1
        self.assertEqual(suggestions_for(self.root, "tumis"), [])

    def testUnavailableChildrenAreNotSuggested(self):
        self.times.hidden = True
        self.assertEqual(suggestions_for(self.root, "time"), [])


class TestFindSuggestions(TestCase):
    """Rendered suggestion block."""

    def setUp(self):
        self.root = Command("root")
        self.root.add(Command("times", run=noop))

    def testBlockListsEverySuggestion(self):
        self.assertEqual(find_suggestions(self.root, "tiems"), "\n\nDid you mean this?\n\ttimes\n")

    def testNoSuggestionsGiveEmptyBlock(self):
        self.assertEqual(find_suggestions(self.root, "foo"), "")

    def testDisabledSuggestions(self):
        self.root.disable_suggestions = True
        self.assertEqual(find_suggestions(self.root, "tiems"), "")


if __name__ == "__main__":
    unittest.main()
