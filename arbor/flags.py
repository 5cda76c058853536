"""
Arbor flag sets: typed, POSIX/GNU-style flag declaration and parsing.

Scope
- Flag: one declared flag (name, optional one-letter shorthand, usage, typed value,
  default text, no-option default, annotations, hidden/deprecated state, changed bit).
- FlagSet: an ordered registry of flags with lookup, shorthand lookup, merging
  (add_flag_set), annotations, name normalization, parsing and a usage listing.
- command_line: the process-wide default set, folded into every root command's
  persistent flags when flags are merged.

Parsing rules
- "--name=value", "--name value" and "--name" (the latter only when the flag has a
  no-option default, e.g. booleans and counters).
- "-x value", "-xvalue", "-x=value", and grouped shorthands "-abc" (every letter
  but the last must be value-less; the last may consume the rest or the next token).
- "--" stops flag parsing; remaining tokens are positional and args_len_at_dash
  records how many positionals preceded it.
- A lone "-" and any token not starting with "-" are positional.
- Unknown "--help"/"-h" raise HelpRequested so callers can fall back to help.
- allow_unknown_flags skips unknown flags (and a following value token that does
  not itself look like a flag) instead of failing.

Messages
- "unknown flag: --x", "unknown shorthand flag: 'x' in -xyz",
  "flag needs an argument: --x" / "flag needs an argument: 'x' in -x",
  "invalid argument "v" for "-i, --int" flag: parsing "v": invalid syntax",
  "bad flag syntax: ---x".
"""
import csv
import logging
import re
import sys

from .faults import *
from .utils import quote

logger = logging.getLogger(__name__)

# Annotation keys understood by the command layer. The values match the keys used by
# cobra-based tools so that annotated flag sets stay interchangeable.
REQUIRED_ANNOTATION = "cobra_annotation_bash_completion_one_required_flag"
FILENAME_EXT_ANNOTATION = "cobra_annotation_bash_completion_filename_extensions"
SUBDIRS_IN_DIR_ANNOTATION = "cobra_annotation_bash_completion_subdirs_in_dir"
SET_BY_FRAMEWORK_ANNOTATION = "cobra_annotation_flag_set_by_cobra"
DISPLAY_NAME_ANNOTATION = "cobra_annotation_command_display_name"

_TRUE = frozenset(("1", "t", "T", "TRUE", "true", "True"))
_FALSE = frozenset(("0", "f", "F", "FALSE", "false", "False"))


def _syntax(text):
    return ValueError(f"parsing {quote(text)}: invalid syntax")


class Value:
    """
    Typed flag value.

    Subclasses implement set(text) (raising ValueError on bad input), get() and
    __str__ (the canonical text form also used for the default in usages).
    """
    typename = ""
    zero = ""
    repeatable = False

    def set(self, text):
        raise NotImplementedError

    def get(self):
        raise NotImplementedError


class BoolValue(Value):
    typename = "bool"
    zero = "false"

    def __init__(self, default=False):
        self._value = bool(default)

    def set(self, text):
        if text in _TRUE:
            self._value = True
        elif text in _FALSE:
            self._value = False
        else:
            raise _syntax(text)

    def get(self):
        return self._value

    def __str__(self):
        return "true" if self._value else "false"


class StringValue(Value):
    typename = "string"

    def __init__(self, default=""):
        self._value = str(default)

    def set(self, text):
        self._value = text

    def get(self):
        return self._value

    def __str__(self):
        return self._value


class IntValue(Value):
    typename = "int"
    zero = "0"

    def __init__(self, default=0):
        self._value = int(default)

    def set(self, text):
        try:
            self._value = int(text, 0)
        except ValueError:
            raise _syntax(text) from None

    def get(self):
        return self._value

    def __str__(self):
        return str(self._value)


class FloatValue(Value):
    typename = "float"
    zero = "0"

    def __init__(self, default=0.0):
        self._value = float(default)

    def set(self, text):
        try:
            self._value = float(text)
        except ValueError:
            raise _syntax(text) from None

    def get(self):
        return self._value

    def __str__(self):
        return format(self._value, "g")


class StringsValue(Value):
    """Comma-separated (CSV) list; the first set() replaces the default, later ones append."""
    typename = "strings"
    zero = "[]"
    repeatable = True

    def __init__(self, default=()):
        self._value = list(default)
        self._changed = False

    def set(self, text):
        values = next(csv.reader([text]), []) if text else []
        if self._changed:
            self._value.extend(values)
        else:
            self._value = values
            self._changed = True

    def get(self):
        return list(self._value)

    def __str__(self):
        return "[%s]" % ",".join(self._value)


class CountValue(Value):
    """Counter incremented by every bare occurrence ("-vvv" counts 3)."""
    typename = "count"
    zero = "0"

    def __init__(self, default=0):
        self._value = int(default)

    def set(self, text):
        if text == "+1":
            self._value += 1
            return
        try:
            self._value = int(text, 0)
        except ValueError:
            raise _syntax(text) from None

    def get(self):
        return self._value

    def __str__(self):
        return str(self._value)


class Flag:
    """
    A declared flag.

    Flags are shared by identity between the sets of a command tree: merging persistent
    flags adds the very same object to descendant sets, which is how shadowing is told
    apart from inheritance.
    """

    def __init__(self, name, value, usage="", /, *, shorthand="", no_opt_def_val=""):
        self.name = name
        self.shorthand = shorthand
        self.usage = usage
        self.value = value
        self.default = str(value)
        self.no_opt_def_val = no_opt_def_val
        self.changed = False
        self.hidden = False
        self.deprecated = ""
        self.shorthand_deprecated = ""
        self.annotations = {}

    @property
    def typename(self):
        return self.value.typename

    def __repr__(self):
        short = f" -{self.shorthand}" if self.shorthand else ""
        return f"<Flag --{self.name}{short} {self.typename}={self.value}>"


def unquote_usage(flag, /):
    """
    Extract a back-quoted name from the usage text, or derive one from the value type.

    returns (varname, usage). "a `file` to read" gives ("file", "a file to read");
    booleans get an empty varname.
    """
    if match := re.search(r"`([^`]*)`", flag.usage):
        name = match.group(1)
        return name, flag.usage[:match.start()] + name + flag.usage[match.end():]
    name = "" if flag.typename in ("bool", "count") else flag.typename
    return name, flag.usage


def _strip_unknown_value(arguments):
    if not arguments or arguments[0].startswith("-"):
        return arguments
    return arguments[1:]


class FlagSet:
    """
    An ordered set of flags.

    Iteration yields flags sorted by name when sort_flags is true (the default),
    otherwise in declaration order.
    """

    def __init__(self, name="", /):
        self.name = name
        self.sort_flags = True
        self.allow_unknown_flags = False
        self.notices = []
        self._formal = {}
        self._shorthands = {}
        self._normalize = None
        self._args = []
        self._args_len_at_dash = -1
        self._parsed = False

    def __repr__(self):
        return f"<FlagSet {self.name!r} ({len(self._formal)} flags)>"

    def __iter__(self):
        flags = list(self._formal.values())
        if self.sort_flags:
            flags.sort(key=lambda flag: flag.name)
        return iter(flags)

    def __len__(self):
        return len(self._formal)

    def __contains__(self, name):
        return self.lookup(name) is not None

    # --- normalization ---

    @property
    def normalize_func(self):
        return self._normalize

    def set_normalize_func(self, func, /):
        """
        Install func(flagset, name) -> name and re-key the flags already declared.

        Flags whose normalized name differs are renamed in place.
        """
        self._normalize = func
        for key, flag in list(self._formal.items()):
            normal = self._normal(flag.name)
            if normal == key:
                continue
            flag.name = normal
            del self._formal[key]
            self._formal[normal] = flag

    def _normal(self, name):
        return self._normalize(self, name) if self._normalize else name

    # --- declaration ---

    def add_flag(self, flag, /):
        name = self._normal(flag.name)
        if name in self._formal:
            raise CommandDefinitionError(f"{self.name} flag redefined: {flag.name}")
        if flag.shorthand:
            if len(flag.shorthand) > 1:
                raise CommandDefinitionError(
                    f"{quote(flag.shorthand)} shorthand is more than one ASCII character"
                )
            if (used := self._shorthands.get(flag.shorthand)) is not None:
                raise CommandDefinitionError(
                    f"unable to redefine {quote(flag.shorthand)} shorthand in {quote(self.name)} "
                    f"flagset: it's already used for {quote(used.name)} flag"
                )
            self._shorthands[flag.shorthand] = flag
        flag.name = name
        self._formal[name] = flag
        return flag

    def add_flag_set(self, other, /):
        """Add every flag of other whose name is not declared here yet."""
        if other is None:
            return
        for flag in other:
            if self.lookup(flag.name) is None:
                self.add_flag(flag)

    def _declare(self, name, shorthand, value, usage, no_opt_def_val=""):
        return self.add_flag(Flag(name, value, usage, shorthand=shorthand, no_opt_def_val=no_opt_def_val))

    def add_bool(self, name, shorthand="", /, default=False, usage=""):
        return self._declare(name, shorthand, BoolValue(default), usage, "true")

    def add_string(self, name, shorthand="", /, default="", usage=""):
        return self._declare(name, shorthand, StringValue(default), usage)

    def add_int(self, name, shorthand="", /, default=0, usage=""):
        return self._declare(name, shorthand, IntValue(default), usage)

    def add_float(self, name, shorthand="", /, default=0.0, usage=""):
        return self._declare(name, shorthand, FloatValue(default), usage)

    def add_strings(self, name, shorthand="", /, default=(), usage=""):
        return self._declare(name, shorthand, StringsValue(default), usage)

    def add_count(self, name, shorthand="", /, usage=""):
        return self._declare(name, shorthand, CountValue(), usage, "+1")

    # --- lookup ---

    def lookup(self, name, /):
        return self._formal.get(self._normal(name))

    def shorthand_lookup(self, name, /):
        if not name:
            return None
        if len(name) > 1:
            raise ValueError(f"can not look up shorthand which is more than one ASCII character: {quote(name)}")
        return self._shorthands.get(name)

    def _require(self, name, message):
        if (flag := self.lookup(name)) is None:
            raise FlagNotFoundError(message)
        return flag

    def get(self, name, /):
        return self._require(name, f"flag accessed but not defined: {name}").value.get()

    def get_bool(self, name, /):
        flag = self._require(name, f"flag accessed but not defined: {name}")
        if flag.typename != "bool":
            raise TypeError(f"trying to get bool value of flag of type {flag.typename}")
        return flag.value.get()

    def changed(self, name, /):
        flag = self.lookup(name)
        return flag is not None and flag.changed

    def has_flags(self):
        return len(self._formal) > 0

    def has_available_flags(self):
        return any(not flag.hidden for flag in self._formal.values())

    # --- metadata ---

    def set_annotation(self, name, key, values, /):
        flag = self._require(name, f"no such flag -{name}")
        flag.annotations[key] = list(values)

    def mark_deprecated(self, name, message, /):
        flag = self._require(name, f"flag {quote(name)} does not exist")
        if not message:
            raise ValueError(f"deprecated message for flag {quote(name)} must be set")
        flag.deprecated = message
        flag.hidden = True

    def mark_shorthand_deprecated(self, name, message, /):
        flag = self._require(name, f"flag {quote(name)} does not exist")
        if not message:
            raise ValueError(f"deprecated message for flag {quote(name)} must be set")
        flag.shorthand_deprecated = message

    def mark_hidden(self, name, /):
        self._require(name, f"flag {quote(name)} does not exist").hidden = True

    # --- parsing ---

    @property
    def parsed(self):
        return self._parsed

    @property
    def args_len_at_dash(self):
        return self._args_len_at_dash

    def args(self):
        return list(self._args)

    def set(self, name, text, /):
        flag = self._require(name, f"no such flag -{name}")
        try:
            flag.value.set(text)
        except ValueError as error:
            if flag.shorthand and not flag.shorthand_deprecated:
                display = f"-{flag.shorthand}, --{flag.name}"
            else:
                display = f"--{flag.name}"
            raise InvalidFlagValueError(
                f"invalid argument {quote(text)} for {quote(display)} flag: {error}"
            ) from None
        flag.changed = True
        if flag.deprecated:
            self.notices.append(DeprecatedFlagWarning(f"Flag --{flag.name} has been deprecated, {flag.deprecated}"))

    def parse(self, arguments, /):
        """
        Parse arguments, setting the flags they mention.

        Positionals are available from args() afterwards. Changed bits accumulate
        across calls.
        """
        self._parsed = True
        self._args = []
        self._args_len_at_dash = -1
        self.notices = []
        arguments = list(arguments)
        while arguments:
            token, arguments = arguments[0], arguments[1:]
            if len(token) < 2 or token[0] != "-":
                self._args.append(token)
            elif token[1] == "-":
                if len(token) == 2:
                    self._args_len_at_dash = len(self._args)
                    self._args.extend(arguments)
                    break
                arguments = self._parse_long(token, arguments)
            else:
                arguments = self._parse_short(token, arguments)
        logger.debug("flag set %r parsed, positionals: %r", self.name, self._args)

    def _parse_long(self, token, arguments):
        name = token[2:]
        if not name or name[0] in "-=":
            raise BadFlagSyntaxError(f"bad flag syntax: {token}")
        name, assigned, value = name.partition("=")
        flag = self.lookup(name)
        if flag is None:
            if name == "help":
                raise HelpRequested()
            if self.allow_unknown_flags:
                return arguments if assigned else _strip_unknown_value(arguments)
            raise UnknownFlagError(f"unknown flag: --{name}")
        if assigned:
            pass
        elif flag.no_opt_def_val:
            value = flag.no_opt_def_val
        elif arguments:
            value, arguments = arguments[0], arguments[1:]
        else:
            raise MissingFlagValueError(f"flag needs an argument: {token}")
        self.set(flag.name, value)
        return arguments

    def _parse_short(self, token, arguments):
        shorthands = token[1:]
        while shorthands:
            shorthands, arguments = self._parse_single_short(shorthands, arguments)
        return arguments

    def _parse_single_short(self, shorthands, arguments):
        letter, rest = shorthands[0], shorthands[1:]
        flag = self._shorthands.get(letter)
        if flag is None:
            if letter == "h":
                raise HelpRequested()
            if self.allow_unknown_flags:
                if len(shorthands) > 2 and shorthands[1] == "=":
                    return "", arguments
                return rest, _strip_unknown_value(arguments)
            raise UnknownShorthandError(f"unknown shorthand flag: '{letter}' in -{shorthands}")
        if len(shorthands) > 2 and shorthands[1] == "=":
            value, rest = shorthands[2:], ""
        elif flag.no_opt_def_val:
            value = flag.no_opt_def_val
        elif len(shorthands) > 1:
            value, rest = shorthands[1:], ""
        elif arguments:
            value, arguments = arguments[0], arguments[1:]
        else:
            raise MissingFlagValueError(f"flag needs an argument: '{letter}' in -{shorthands}")
        if flag.shorthand_deprecated:
            self.notices.append(DeprecatedFlagWarning(
                f"Flag shorthand -{flag.shorthand} has been deprecated, {flag.shorthand_deprecated}"
            ))
        self.set(flag.name, value)
        return rest, arguments

    # --- usage ---

    def flag_usages(self):
        """
        Render the aligned usage listing of the visible flags, one line per flag.

        Example
              --help            help for c
          -n, --name string     who to greet (default "world")
        """
        rows = []
        for flag in self:
            if flag.hidden:
                continue
            if flag.shorthand and not flag.shorthand_deprecated:
                left = f"  -{flag.shorthand}, --{flag.name}"
            else:
                left = f"      --{flag.name}"
            varname, usage = unquote_usage(flag)
            if varname:
                left += " " + varname
            if flag.no_opt_def_val:
                match flag.typename:
                    case "string":
                        left += f'[="{flag.no_opt_def_val}"]'
                    case "bool" if flag.no_opt_def_val != "true":
                        left += f"[={flag.no_opt_def_val}]"
                    case "count" if flag.no_opt_def_val != "+1":
                        left += f"[={flag.no_opt_def_val}]"
                    case "bool" | "count":
                        pass
                    case _:
                        left += f"[={flag.no_opt_def_val}]"
            if flag.default != flag.value.zero:
                if flag.typename == "string":
                    usage += f" (default {quote(flag.default)})"
                else:
                    usage += f" (default {flag.default})"
            if flag.deprecated:
                usage += f" (DEPRECATED: {flag.deprecated})"
            rows.append((left, usage))
        width = max((len(left) for left, _ in rows), default=0)
        return "".join(f"{left.ljust(width)}   {usage}\n" for left, usage in rows)


command_line = FlagSet(sys.argv[0] if sys.argv else "")


def reset_command_line():
    """Replace the process-wide default flag set with an empty one (used by tests)."""
    global command_line
    command_line = FlagSet(sys.argv[0] if sys.argv else "")
    return command_line


__all__ = (
    "REQUIRED_ANNOTATION",
    "FILENAME_EXT_ANNOTATION",
    "SUBDIRS_IN_DIR_ANNOTATION",
    "SET_BY_FRAMEWORK_ANNOTATION",
    "DISPLAY_NAME_ANNOTATION",
    "Value",
    "BoolValue",
    "StringValue",
    "IntValue",
    "FloatValue",
    "StringsValue",
    "CountValue",
    "Flag",
    "FlagSet",
    "unquote_usage",
    "reset_command_line",
)
