"""
Arbor "did you mean" suggestions.

Overview
- distance(a, b): restricted Damerau-Levenshtein (optimal string alignment) distance.
  Insertions, deletions, substitutions and adjacent transpositions cost 1 each; no
  substring is edited more than once.
- suggestions_for(command, typed): names of available children of command that are
  close to what the user typed, in declaration order.
  • within command.suggestions_minimum_distance edits (2 when unset), ignoring case;
  • or whose lowercased name starts with the lowercased input;
  • plus once more for each suggest_for entry equal to the input, ignoring case.
  Duplicates are kept on purpose: a child matched twice is listed twice.
- find_suggestions(command, typed): the block appended to "unknown command" errors.

Example
    >>> distance("tiems", "times")
    1
    >>> find_suggestions(root, "tiems")
    '\\n\\nDid you mean this?\\n\\ttimes\\n'
"""
import logging

logger = logging.getLogger(__name__)

DEFAULT_MINIMUM_DISTANCE = 2


def distance(source, target, /, *, ignore_case=False):
    if ignore_case:
        source, target = source.lower(), target.lower()
    rows, columns = len(source) + 1, len(target) + 1
    table = [[0] * columns for _ in range(rows)]
    for i in range(rows):
        table[i][0] = i
    for j in range(columns):
        table[0][j] = j
    for i in range(1, rows):
        for j in range(1, columns):
            cost = 0 if source[i - 1] == target[j - 1] else 1
            table[i][j] = min(
                table[i - 1][j] + 1,
                table[i][j - 1] + 1,
                table[i - 1][j - 1] + cost,
            )
            if i > 1 and j > 1 and source[i - 1] == target[j - 2] and source[i - 2] == target[j - 1]:
                table[i][j] = min(table[i][j], table[i - 2][j - 2] + cost)
    return table[-1][-1]


def suggestions_for(command, typed, /):
    minimum = command.suggestions_minimum_distance
    if minimum <= 0:
        minimum = DEFAULT_MINIMUM_DISTANCE
    lowered = typed.lower()
    suggestions = []
    for child in command.commands():
        if not child.is_available_command():
            continue
        close = distance(typed, child.name, ignore_case=True) <= minimum
        if close or child.name.lower().startswith(lowered):
            suggestions.append(child.name)
        for explicit in child.suggest_for:
            if explicit.lower() == lowered:
                suggestions.append(child.name)
    logger.debug("suggestions for %r under %r: %s", typed, command.name, suggestions)
    return suggestions


def find_suggestions(command, typed, /):
    if command.disable_suggestions:
        return ""
    if not (suggestions := suggestions_for(command, typed)):
        return ""
    return "\n\nDid you mean this?\n" + "".join(f"\t{suggestion}\n" for suggestion in suggestions)


__all__ = (
    "distance",
    "suggestions_for",
    "find_suggestions",
)
