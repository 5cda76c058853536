"""
Arbor command resolution: map an argument vector onto the command tree.

Strategies
- find(root, args)
  Strip flag tokens at each level (using that level's merged flags), match the first
  remaining token against the children, and descend with that token removed. Flags are
  parsed only once, by the command that is finally executed.
- traverse(root, args)
  Walk the vector left to right, collecting flag tokens. When a plain token names a
  child, the collected flags are parsed by the current command before descending, so
  every level may own local flags placed before its subcommand.

Matching (find_next)
- Exact name or alias first (ignoring case under settings.case_insensitive); the token
  becomes the child's called-as name.
- With settings.prefix_matching, a child whose name or alias starts with the token is a
  candidate; exactly one candidate matches (called-as becomes the matched name or alias),
  several candidates match nothing and descent stops silently.

Flag stripping rules
- "--" ends stripping; later tokens are never candidates.
- "--name" without "=" whose flag takes a value swallows the next token; so does a
  two-character "-x" whose shorthand takes a value. Unknown flags are assumed to take one.
- Other tokens not starting with "-" are candidates.

Example
    >>> strip_flags(["-ib", "echo", "-sfoo", "baz"], root)
    ['echo', 'baz']
"""
import logging

from . import arguments
from .config import settings
from .faults import *

logger = logging.getLogger(__name__)


def _has_no_opt_def_val(name, flagset):
    flag = flagset.lookup(name)
    return flag is not None and bool(flag.no_opt_def_val)


def _short_has_no_opt_def_val(name, flagset):
    if not name:
        return False
    flag = flagset.shorthand_lookup(name[:1])
    return flag is not None and bool(flag.no_opt_def_val)


def _takes_long_value(token, flagset):
    return token.startswith("--") and "=" not in token and not _has_no_opt_def_val(token[2:], flagset)


def _takes_short_value(token, flagset):
    return (
        token.startswith("-") and "=" not in token and len(token) == 2
        and not _short_has_no_opt_def_val(token[1:], flagset)
    )


def is_flag_arg(token, /):
    return (len(token) >= 3 and token[:2] == "--") or (len(token) >= 2 and token[0] == "-" and token[1] != "-")


def strip_flags(args, command, /):
    """Return the tokens of args that are neither flags nor flag values."""
    if not args:
        return list(args)
    command.merge_persistent_flags()
    flagset = command.flags
    remaining = list(args)
    candidates = []
    while remaining:
        token, remaining = remaining[0], remaining[1:]
        if token == "--":
            break
        if _takes_long_value(token, flagset) or _takes_short_value(token, flagset):
            if len(remaining) <= 1:
                break
            remaining = remaining[1:]
        elif token and not token.startswith("-"):
            candidates.append(token)
    return candidates


def args_minus_first_x(command, args, x, /):
    """Remove the first non-flag occurrence of x from args."""
    if not args:
        return list(args)
    command.merge_persistent_flags()
    flagset = command.flags
    position = 0
    while position < len(args):
        token = args[position]
        if token == "--":
            break
        if _takes_long_value(token, flagset) or _takes_short_value(token, flagset):
            position += 2
            continue
        if not token.startswith("-") and token == x:
            return [*args[:position], *args[position + 1:]]
        position += 1
    return list(args)


def _names_match(name, token):
    if settings.case_insensitive:
        return name.casefold() == token.casefold()
    return name == token


def _prefix_of(child, token):
    for candidate in (child.name, *child.aliases):
        if candidate.startswith(token):
            return candidate
    return None


def find_next(command, token, /):
    """Return the child of command selected by token, or None."""
    matches = []
    for child in command.commands():
        if _names_match(child.name, token) or child.has_alias(token):
            child.set_called_as(token)
            return child
        if settings.prefix_matching and (matched := _prefix_of(child, token)) is not None:
            matches.append((child, matched))
    if len(matches) == 1:
        child, matched = matches[0]
        child.set_called_as(matched)
        return child
    if matches:
        logger.debug("ambiguous prefix %r under %r: %s", token, command.name, [child.name for child, _ in matches])
    return None


def find(root, args, /):
    """
    Resolve args against the tree below root by stripping flags.

    returns (command, residual args). Raises UnknownCommandError when the resolved
    command declares no args validator and rejects its leftovers (see legacy_args).
    """
    command, remaining = root, list(args)
    while True:
        stripped = strip_flags(remaining, command)
        if not stripped:
            break
        token = stripped[0]
        if (child := find_next(command, token)) is None:
            break
        logger.debug("resolved %r to %r", token, child.command_path)
        remaining = args_minus_first_x(command, remaining, token)
        command = child
    if command.args is None:
        arguments.legacy_args(command, strip_flags(remaining, command))
    return command, remaining


def traverse(root, args, /):
    """
    Resolve args against the tree below root, parsing flags at each level.

    returns (command, residual args). Flag errors of intermediate levels propagate.
    """
    command, remaining = root, list(args)
    while True:
        collected = []
        in_flag = False
        for index, token in enumerate(remaining):
            if token.startswith("--") and "=" not in token:
                in_flag = not _has_no_opt_def_val(token[2:], command.flags)
                collected.append(token)
                continue
            if _takes_short_value(token, command.flags):
                in_flag = True
                collected.append(token)
                continue
            if in_flag:
                in_flag = False
                collected.append(token)
                continue
            if is_flag_arg(token):
                collected.append(token)
                continue
            if (child := find_next(command, token)) is None:
                return command, remaining
            command.parse_flags(collected)
            logger.debug("traversed %r to %r", token, child.command_path)
            command, remaining = child, remaining[index + 1:]
            break
        else:
            return command, remaining


__all__ = (
    "is_flag_arg",
    "strip_flags",
    "args_minus_first_x",
    "find_next",
    "find",
    "traverse",
)
