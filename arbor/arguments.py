r"""
Arbor positional-argument validators.

Overview
- A validator is a callable (command, args) that returns nothing when the positional
  arguments are acceptable and raises otherwise. Assign one to Command.args.
- Plain validators
  • arbitrary_args: accept anything (the default for commands that declare args=None
    once resolution is over).
  • no_args: reject any positional ('unknown command "x" for "root sub"').
  • only_valid_args: every positional must be one of command.valid_args (a description
    after a tab is ignored); the error carries "did you mean" suggestions.
  • legacy_args: what resolution applies when a command declares no validator. A leaf
    accepts anything; a root with children rejects leftovers as unknown commands.
- Factories (return a named validator)
  • minimum_n_args(n), maximum_n_args(n), exact_args(n), range_args(low, high)
  • match_all(*validators), exact_valid_args(n)

Quick example:
    >>> tool = Command("tool <src> <dst>", args=exact_args(2), run=copy_files)
    >>> tool.args
    <function exact_args(2)>
"""
from .faults import *
from .suggestions import find_suggestions
from .utils import *


def legacy_args(command, args, /):
    if not command.has_sub_commands():
        return
    if not command.has_parent() and args:
        raise UnknownCommandError(
            f"unknown command {quote(args[0])} for {quote(command.command_path)}"
            f"{find_suggestions(command, args[0])}",
            command=command,
        )


def arbitrary_args(command, args, /):
    pass


def no_args(command, args, /):
    if args:
        raise UnknownCommandError(
            f"unknown command {quote(args[0])} for {quote(command.command_path)}",
            command=command,
        )


def only_valid_args(command, args, /):
    if not command.valid_args:
        return
    valid = [candidate.split("\t", 1)[0] for candidate in command.valid_args]
    for argument in args:
        if argument not in valid:
            raise PositionalArgsError(
                f"invalid argument {quote(argument)} for {quote(command.command_path)}"
                f"{find_suggestions(command, args[0])}",
                command=command,
            )


def minimum_n_args(n, /):
    @rename(f"minimum_n_args({n})")
    def validator(command, args, /):
        if len(args) < n:
            raise PositionalArgsError(f"requires at least {n} arg(s), only received {len(args)}", command=command)

    return validator


def maximum_n_args(n, /):
    @rename(f"maximum_n_args({n})")
    def validator(command, args, /):
        if len(args) > n:
            raise PositionalArgsError(f"accepts at most {n} arg(s), received {len(args)}", command=command)

    return validator


def exact_args(n, /):
    @rename(f"exact_args({n})")
    def validator(command, args, /):
        if len(args) != n:
            raise PositionalArgsError(f"accepts {n} arg(s), received {len(args)}", command=command)

    return validator


def range_args(low, high, /):
    @rename(f"range_args({low}, {high})")
    def validator(command, args, /):
        if not low <= len(args) <= high:
            raise PositionalArgsError(
                f"accepts between {low} and {high} arg(s), received {len(args)}",
                command=command,
            )

    return validator


def match_all(*validators):
    """Run every validator in order; the first failure wins."""

    @rename("match_all")
    def validator(command, args, /):
        for check in validators:
            check(command, args)

    return validator


def exact_valid_args(n, /):
    return rename(match_all(exact_args(n), only_valid_args), f"exact_valid_args({n})")


def validate_args(command, args, /):
    (command.args or arbitrary_args)(command, args)


__all__ = (
    "legacy_args",
    "arbitrary_args",
    "no_args",
    "only_valid_args",
    "minimum_n_args",
    "maximum_n_args",
    "exact_args",
    "range_args",
    "match_all",
    "exact_valid_args",
    "validate_args",
)
