"""
Arbor faults (errors and warnings) and rendering.

Scope
- FaultCode: canonical, stable numeric identifiers for every user-facing issue.
  Codes are grouped by domain to keep copy consistent and searches predictable.
- CommandException / CommandWarning: base types that carry message + options and
  know how to render themselves through rich.
- CommandDefinitionError: programmer errors (self-parenting, undeclared groups,
  redefined flags). These are never reported as user errors; they abort loudly.
- HelpRequested: internal signal used to short-circuit into help rendering.

UX goals
- Messages stay close to what shell users already know from other CLIs
  ("unknown flag: --x", "required flag(s) "a" not set").
- Every fault has a short title and an optional hint for the rich rendering.
- Styling is configurable via __styles__ in __main__.

Integration
- The resolver, the flag set and the execution engine raise these faults.
- The execution engine prints "<error prefix> <message>" for the outermost
  failure and re-raises; rich rendering is available for hosts that prefer it
  (console.print(fault)).
"""
from abc import ABC
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Group
from rich.text import Text


class FaultCode(IntEnum):
    """
    canonical fault codes used across the framework (stable identifiers).

    grouping (by high-level domain)
    - resolution (111xx)
      • UNKNOWN_COMMAND
    - flag parsing (112xx)
      • BAD_FLAG_SYNTAX, UNKNOWN_FLAG, UNKNOWN_SHORTHAND, FLAG_NEEDS_ARGUMENT,
        INVALID_FLAG_ARGUMENT, FLAG_NOT_FOUND
    - validation (113xx)
      • INVALID_POSITIONALS, REQUIRED_FLAGS, FLAG_GROUP_VIOLATION, COMPLETION_FAILURE
    - warnings (121xx)
      • DEPRECATED_COMMAND, DEPRECATED_FLAG

    rationale
    - codes are discoverable (searchable in logs and docs) and normalized to a string
      via normalize() so hosts can remap them if desired.
    """
    # --- resolution errors (111xx) ---
    UNKNOWN_COMMAND             = 11101

    # --- flag parsing errors (112xx) ---
    BAD_FLAG_SYNTAX             = 11201
    UNKNOWN_FLAG                = 11202
    UNKNOWN_SHORTHAND           = 11203
    FLAG_NEEDS_ARGUMENT         = 11204
    INVALID_FLAG_ARGUMENT       = 11205
    FLAG_NOT_FOUND              = 11206

    # --- validation errors (113xx) ---
    INVALID_POSITIONALS         = 11301
    REQUIRED_FLAGS              = 11302
    FLAG_GROUP_VIOLATION        = 11303
    COMPLETION_FAILURE          = 11304

    # --- warnings (121xx) ---
    DEPRECATED_COMMAND          = 12101
    DEPRECATED_FLAG             = 12102

    def normalize(self):
        """
        return a host-normalized string for this code.

        the host application can provide a __codes__ mapping in __main__
        to override numeric ids with friendlier labels. when no mapping
        is present, the numeric value is returned as a string.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


def _render(fault, palette, title_style, message_style):
    main = __import__("__main__")
    styles = defaultdict(str, palette | getattr(main, "__styles__", {}))
    colorful = fault.options.get("colorful", True)

    def text(fragment, style=""):
        if not fragment:
            return Text("")
        if not colorful:
            return Text(str(fragment))
        if isinstance(fragment, Text):
            return fragment
        return Text(str(fragment), styles[style])

    command = fault.options.get("command")
    prog = getattr(main, "__prog__", command.root.display_name if command is not None else "")

    header = Text.assemble(
        "[ ",
        text(prog, "prog-name"),
        " | ",
        text(fault.code.normalize(), "code"),
        " | ",
        text(fault.title.title(), title_style),
        " ]"
    )
    renders = [header, text(fault.message, message_style)]
    if hint := fault.options.get("hint"):
        renders.append(Text.assemble(text(" → ", "hint-arrow"), text(hint, "hint")))
    return Group(*renders)


class CommandException(Exception):
    """
    base type for recoverable, user-facing faults.

    options
    - command: the command the fault is about (used for the program name).
    - hint: one short, actionable sentence.
    - colorful: whether rich rendering applies styles (default True).
    """
    code = FaultCode.UNKNOWN_COMMAND
    title = "command error"

    def __init__(self, message, /, **options):
        assert isinstance(message, str)
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    def __str__(self):
        return self.message

    @property
    def command(self):
        return self.options.get("command")

    def __rich__(self):
        return _render(self, {
            # header parts
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #00E5FF",  # neon cyan fault code
            "error-title": "bold #FF4DA6",  # friendly pinky title

            # body
            "error-message": "#C8C8D0",  # soft light gray message
            "hint-arrow": "#9CE19C dim",  # gentle green arrow
            "hint": "italic #9CE19C",  # gentle green hint text
        }, "error-title", "error-message")

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class UnknownCommandError(CommandException):
    code = FaultCode.UNKNOWN_COMMAND
    title = "unknown command"


class FlagParseError(CommandException):
    code = FaultCode.BAD_FLAG_SYNTAX
    title = "flag parsing"


class BadFlagSyntaxError(FlagParseError):
    code = FaultCode.BAD_FLAG_SYNTAX
    title = "bad flag syntax"


class UnknownFlagError(FlagParseError):
    code = FaultCode.UNKNOWN_FLAG
    title = "unknown flag"


class UnknownShorthandError(FlagParseError):
    code = FaultCode.UNKNOWN_SHORTHAND
    title = "unknown shorthand"


class MissingFlagValueError(FlagParseError):
    code = FaultCode.FLAG_NEEDS_ARGUMENT
    title = "flag needs an argument"


class InvalidFlagValueError(FlagParseError):
    code = FaultCode.INVALID_FLAG_ARGUMENT
    title = "invalid flag argument"


class FlagNotFoundError(CommandException):
    code = FaultCode.FLAG_NOT_FOUND
    title = "no such flag"


class PositionalArgsError(CommandException):
    code = FaultCode.INVALID_POSITIONALS
    title = "invalid arguments"


class RequiredFlagsError(CommandException):
    code = FaultCode.REQUIRED_FLAGS
    title = "required flags"


class FlagGroupError(CommandException):
    code = FaultCode.FLAG_GROUP_VIOLATION
    title = "flag group"


class CompletionError(CommandException):
    code = FaultCode.COMPLETION_FAILURE
    title = "completion"


class CommandWarning(ABC, Warning):
    """
    base type for notices that never change control flow (deprecations).

    the execution engine prints str(warning) on the command's output (stderr unless redirected).
    """
    code = FaultCode.DEPRECATED_COMMAND
    title = "warning"

    def __init__(self, message, /, **options):
        assert isinstance(message, str)
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    def __str__(self):
        return self.message

    def __rich__(self):
        return _render(self, {
            # header parts
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #FFB400",  # amber fault code for warnings
            "warning-title": "bold #FFC2E0",  # softer pinky title for warnings

            # body
            "warning-message": "#D6D6DE",  # slightly lighter gray body
            "hint-arrow": "#B8EFAF dim",  # softer green arrow
            "hint": "italic #B8EFAF",  # softer green hint text
        }, "warning-title", "warning-message")


class DeprecatedCommandWarning(CommandWarning):
    code = FaultCode.DEPRECATED_COMMAND
    title = "deprecated command"


class DeprecatedFlagWarning(CommandWarning):
    code = FaultCode.DEPRECATED_FLAG
    title = "deprecated flag"


class CommandDefinitionError(Exception):
    """
    a static configuration defect of the command tree.

    raised for self-parenting, cycles, undeclared group ids, redefined flags and
    shorthand clashes. the execution engine never catches it.
    """


class HelpRequested(Exception):
    """signal raised when help must be rendered instead of running a command."""

    def __init__(self, message="help requested", /):
        super().__init__(message)


def trigger(fault, /, **options):
    """
    surface a fault with the given runtime options.

    contract
    - fault must provide a __replace__ method (see base classes).
    - options are merged into the fault via __replace__(**options) before raising.
    - the raised fault hides the internal frame that built it (raise ... from None).

    typical options
    - command, hint, colorful.
    """
    if not callable(getattr(fault, "__replace__", None)):
        raise TypeError("trigger() argument must have a __replace__ method")
    raise fault.__replace__(**options) from None


__all__ = (
    "FaultCode",
    "CommandException",
    "UnknownCommandError",
    "FlagParseError",
    "BadFlagSyntaxError",
    "UnknownFlagError",
    "UnknownShorthandError",
    "MissingFlagValueError",
    "InvalidFlagValueError",
    "FlagNotFoundError",
    "PositionalArgsError",
    "RequiredFlagsError",
    "FlagGroupError",
    "CompletionError",
    "CommandWarning",
    "DeprecatedCommandWarning",
    "DeprecatedFlagWarning",
    "CommandDefinitionError",
    "HelpRequested",
    "trigger",
)
