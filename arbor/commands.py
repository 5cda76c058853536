"""
Arbor command layer: declare, compose and inspect command trees.

What this module provides
- Command: one node of a CLI command tree.
  • Identity: "use" line (the name is its first word), aliases, display-name override.
  • Tree: weak parent back-reference, ordered children, sorted listings, groups.
  • Flags: own and persistent sets plus derived local/inherited views (see arbor.scope).
  • Hooks: persistent_pre_run, pre_run, run, post_run, persistent_post_run; each a
    callable (command, args) that returns nothing or raises.
  • Output: out/err/input streams inherited from the parent, redirectable per node.
  • Help/usage/version/flag-error functions, overridable per subtree.
- Factories
  • command(...): build a Command from a run function (decorator or call form).
  • Command.command(...): same, attaching the result as a child.

Quick start
    from arbor import Command, command, exact_args

    root = Command("app", short="Demo application", version="1.0.0")
    root.persistent_flags.add_bool("verbose", "v", usage="chatty output")

    @root.command("greet <name>", args=exact_args(1))
    def greet(command, args):
        "Say hello"
        command.println(f"hello {args[0]}")

    if __name__ == "__main__":
        root.execute()

Design notes
- Children are owned by their parent; a command has at most one parent and cannot be
  added below itself or below one of its descendants.
- Nothing is cached across tree edits: merged and derived flag sets are recomputed on
  every use.
- Execution lives in arbor.execution; resolution in arbor.resolver.
"""
import builtins
import inspect
import io
import logging
import sys
import weakref
from collections import namedtuple

from . import completions, groups, help, resolver, suggestions
from .arguments import validate_args
from .completions import CompletionOptions
from .faults import *
from .flags import (
    DISPLAY_NAME_ANNOTATION,
    FILENAME_EXT_ANNOTATION,
    SET_BY_FRAMEWORK_ANNOTATION,
    SUBDIRS_IN_DIR_ANNOTATION,
)
from .config import settings
from .scope import FlagScope
from .utils import *

logger = logging.getLogger(__name__)

MINIMUM_USAGE_PADDING = 25
MINIMUM_COMMAND_PATH_PADDING = 11
MINIMUM_NAME_PADDING = 11

Group = namedtuple("Group", "id title")


def _names_match(name, token):
    if settings.case_insensitive:
        return name.casefold() == token.casefold()
    return name == token


class Command:
    """
    A node of the command tree.

    All constructor fields are keyword-only (the use line may be positional) and remain
    plain, writable attributes afterwards.
    """

    children = mirror("children")

    def __init__(
            self,
            use="",
            /,
            *,
            # ── Identity ────────────────────────────────────────────────────────────
            aliases=(),
            suggest_for=(),
            short="",
            long="",
            example="",
            group_id="",
            annotations=None,
            version="",
            deprecated="",
            hidden=False,
            # ── Positionals ─────────────────────────────────────────────────────────
            args=None,
            valid_args=(),
            arg_aliases=(),
            valid_args_function=None,
            # ── Hooks ───────────────────────────────────────────────────────────────
            persistent_pre_run=None,
            pre_run=None,
            run=None,
            post_run=None,
            persistent_post_run=None,
            # ── Behaviour ───────────────────────────────────────────────────────────
            silence_errors=False,
            silence_usage=False,
            disable_flag_parsing=False,
            disable_flags_in_use_line=False,
            disable_suggestions=False,
            suggestions_minimum_distance=0,
            traverse_children=False,
            allow_unknown_flags=False,
            completion_options=Unset,
            context=None,
    ):
        if not isinstance(use, str):
            raise TypeError(f"Command() argument 'use' must be a string, not {type(use).__name__}")
        self.use = use
        self.aliases = list(aliases)
        self.suggest_for = list(suggest_for)
        self.short = short
        self.long = long
        self.example = example
        self.group_id = group_id
        self.annotations = dict(annotations or {})
        self.version = version
        self.deprecated = deprecated
        self.hidden = hidden
        self.args = args
        self.valid_args = list(valid_args)
        self.arg_aliases = list(arg_aliases)
        self.valid_args_function = valid_args_function
        self.persistent_pre_run = persistent_pre_run
        self.pre_run = pre_run
        self.run = run
        self.post_run = post_run
        self.persistent_post_run = persistent_post_run
        self.silence_errors = silence_errors
        self.silence_usage = silence_usage
        self.disable_flag_parsing = disable_flag_parsing
        self.disable_flags_in_use_line = disable_flags_in_use_line
        self.disable_suggestions = disable_suggestions
        self.suggestions_minimum_distance = suggestions_minimum_distance
        self.traverse_children = traverse_children
        self.allow_unknown_flags = allow_unknown_flags
        self.completion_options = coalesce(completion_options, CompletionOptions())
        self.context = context

        self._parent = None
        self._children = []
        self._sorted = False
        self._max_use = 0
        self._max_command_path = 0
        self._max_name = 0
        self._called_as = ""
        self._called = False
        self._groups = []
        self._help_command = None
        self._help_command_group_id = ""
        self._completion_command_group_id = ""
        self._help_func = None
        self._usage_func = None
        self._flag_error_func = None
        self._version_template = None
        self._error_prefix = None
        self._normalize = None
        self._args = None
        self._out = None
        self._err = None
        self._in = None
        self._scope = FlagScope(self)

    def __repr__(self):
        return f"<{type(self).__name__} {self.command_path!r}>"

    def __rich_repr__(self):
        yield "use", self.use
        yield "short", self.short, ""
        yield "aliases", self.aliases, []
        yield "children", [child.name for child in self._children], []

    # --- identity ---

    @property
    def name(self):
        return self.use.split(" ", 1)[0]

    @property
    def display_name(self):
        return self.annotations.get(DISPLAY_NAME_ANNOTATION) or self.name

    @property
    def command_path(self):
        if (parent := self.parent) is not None:
            return f"{parent.command_path} {self.name}"
        return self.display_name

    def name_and_aliases(self):
        return ", ".join([self.name, *self.aliases])

    def has_alias(self, token, /):
        return any(_names_match(alias, token) for alias in self.aliases)

    def called_as(self):
        """The name or alias this command was invoked through, or "" when it was not invoked."""
        return self._called_as if self._called else ""

    def set_called_as(self, name, /):
        self._called_as = name

    def mark_called(self):
        self._called = True
        if not self._called_as:
            self._called_as = self.name

    def has_example(self):
        return len(self.example) > 0

    def runnable(self):
        return self.run is not None

    # --- tree ---

    @property
    def parent(self):
        return self._parent() if self._parent is not None else None

    @property
    def root(self):
        command = self
        while (parent := command.parent) is not None:
            command = parent
        return command

    def has_parent(self):
        return self.parent is not None

    def visit_parents(self, visit, /):
        """Call visit(ancestor) for every ancestor, nearest first."""
        parent = self.parent
        while parent is not None:
            visit(parent)
            parent = parent.parent

    def _lineage(self):
        command = self
        while command is not None:
            yield command
            command = command.parent

    def add(self, *children):
        """
        Attach children below this command.

        Raises CommandDefinitionError when a child is this command, already belongs to
        another parent, or is an ancestor of this command.
        """
        for child in children:
            if not isinstance(child, Command):
                raise TypeError(f"add() arguments must be commands, not {type(child).__name__}")
            if child is self:
                raise CommandDefinitionError("command can't be a child of itself")
            if (parent := child.parent) is not None and parent is not self:
                raise CommandDefinitionError(
                    f"command {quote(child.name)} already belongs to {quote(parent.command_path)}"
                )
            if any(ancestor is child for ancestor in self._lineage()):
                raise CommandDefinitionError(
                    f"adding {quote(child.name)} below {quote(self.command_path)} would create a cycle"
                )
            child._parent = weakref.ref(self)
            self._max_use = max(self._max_use, len(child.use))
            self._max_command_path = max(self._max_command_path, len(child.command_path))
            self._max_name = max(self._max_name, len(child.name))
            if self._normalize is not None:
                child.set_global_normalization_func(self._normalize)
            self._children.append(child)
            self._sorted = False
            logger.debug("attached %r below %r", child.name, self.command_path)

    def remove_command(self, *victims):
        survivors = []
        for child in self._children:
            if any(child is victim for victim in victims):
                child._parent = None
            else:
                survivors.append(child)
        self._children = survivors
        self._max_use = max((len(child.use) for child in survivors), default=0)
        self._max_command_path = max((len(child.command_path) for child in survivors), default=0)
        self._max_name = max((len(child.name) for child in survivors), default=0)

    def reset_commands(self):
        """Detach every child and forget the help command so the tree can be rebuilt."""
        for child in self._children:
            child._parent = None
        self._children = []
        self._help_command = None
        self._max_use = self._max_command_path = self._max_name = 0

    def fix_parents(self):
        """Re-point the parent reference of every descendant at its current owner."""
        for child in self._children:
            child._parent = weakref.ref(self)
            child.fix_parents()

    def commands(self):
        """Children, sorted by name when settings.command_sorting is on."""
        if settings.command_sorting and not self._sorted:
            self._children.sort(key=lambda child: child.name)
            self._sorted = True
        return list(self._children)

    def has_sub_commands(self):
        return len(self._children) > 0

    def has_available_sub_commands(self):
        return any(child.is_available_command() for child in self._children)

    def is_available_command(self):
        if self.deprecated or self.hidden:
            return False
        if (parent := self.parent) is not None and parent._help_command is self:
            return False
        return self.runnable() or self.has_available_sub_commands()

    def is_additional_help_topic_command(self):
        if self.runnable() or self.deprecated or self.hidden:
            return False
        return all(child.is_additional_help_topic_command() for child in self._children)

    def has_help_sub_commands(self):
        return any(child.is_additional_help_topic_command() for child in self._children)

    # --- padding ---

    def use_padding(self):
        if (parent := self.parent) is None or MINIMUM_USAGE_PADDING > parent._max_use:
            return MINIMUM_USAGE_PADDING
        return parent._max_use

    def command_path_padding(self):
        if (parent := self.parent) is None or MINIMUM_COMMAND_PATH_PADDING > parent._max_command_path:
            return MINIMUM_COMMAND_PATH_PADDING
        return parent._max_command_path

    def name_padding(self):
        if (parent := self.parent) is None or MINIMUM_NAME_PADDING > parent._max_name:
            return MINIMUM_NAME_PADDING
        return parent._max_name

    def use_line(self):
        use = self.use.replace(self.name, self.display_name, 1)
        line = f"{self.parent.command_path} {use}" if self.has_parent() else use
        if self.disable_flags_in_use_line:
            return line
        if self.has_available_flags() and "[flags]" not in line:
            line += " [flags]"
        return line

    # --- command groups ---

    def add_group(self, *groups):
        for group in groups:
            if not isinstance(group, Group):
                group = Group(*group)
            self._groups.append(group)

    def groups(self):
        return list(self._groups)

    def contains_group(self, group_id, /):
        return any(group.id == group_id for group in self._groups)

    def all_child_commands_have_group(self):
        for child in self._children:
            if (child.is_available_command() or child is self._help_command) and not child.group_id:
                return False
        return True

    def set_help_command_group_id(self, group_id, /):
        if self._help_command is not None:
            self._help_command.group_id = group_id
        self._help_command_group_id = group_id

    @property
    def help_command_group_id(self):
        return self._help_command_group_id

    def set_completion_command_group_id(self, group_id, /):
        self.root._completion_command_group_id = group_id

    @property
    def completion_command_group_id(self):
        return self.root._completion_command_group_id

    # --- flags ---

    @property
    def flags(self):
        return self._scope.flags

    @property
    def persistent_flags(self):
        return self._scope.persistent_flags

    def local_flags(self):
        return self._scope.local_flags()

    non_inherited_flags = local_flags

    def inherited_flags(self):
        return self._scope.inherited_flags()

    def local_non_persistent_flags(self):
        return self._scope.local_non_persistent_flags()

    def merge_persistent_flags(self):
        self._scope.merge()

    def lookup_flag(self, name, /):
        return self._scope.lookup(name)

    def parse_flags(self, arguments, /):
        self._scope.parse(arguments)

    def reset_flags(self):
        self._scope.reset()

    def has_flags(self):
        return self.flags.has_flags()

    def has_persistent_flags(self):
        return self.persistent_flags.has_flags()

    def has_local_flags(self):
        return self.local_flags().has_flags()

    def has_inherited_flags(self):
        return self.inherited_flags().has_flags()

    def has_available_flags(self):
        return self.flags.has_available_flags()

    def has_available_persistent_flags(self):
        return self.persistent_flags.has_available_flags()

    def has_available_local_flags(self):
        return self.local_flags().has_available_flags()

    def has_available_inherited_flags(self):
        return self.inherited_flags().has_available_flags()

    def args_len_at_dash(self):
        return self.flags.args_len_at_dash

    @property
    def global_normalization_func(self):
        return self._normalize

    def set_global_normalization_func(self, func, /):
        """Install func(flagset, name) -> name on every flag set of this subtree."""
        self._scope.set_normalize_func(func)
        self._normalize = func
        for child in self._children:
            child.set_global_normalization_func(func)

    def mark_flag_required(self, name, /):
        self._scope.mark_required(name)

    def mark_persistent_flag_required(self, name, /):
        self._scope.mark_required(name, persistent=True)

    def mark_flag_filename(self, name, /, *extensions):
        self.flags.set_annotation(name, FILENAME_EXT_ANNOTATION, extensions)

    def mark_persistent_flag_filename(self, name, /, *extensions):
        self.persistent_flags.set_annotation(name, FILENAME_EXT_ANNOTATION, extensions)

    def mark_flag_dirname(self, name, /):
        self.flags.set_annotation(name, SUBDIRS_IN_DIR_ANNOTATION, [])

    def mark_persistent_flag_dirname(self, name, /):
        self.persistent_flags.set_annotation(name, SUBDIRS_IN_DIR_ANNOTATION, [])

    def mark_flags_required_together(self, *names):
        groups.mark_flags_required_together(self, *names)

    def mark_flags_one_required(self, *names):
        groups.mark_flags_one_required(self, *names)

    def mark_flags_mutually_exclusive(self, *names):
        groups.mark_flags_mutually_exclusive(self, *names)

    def validate_required_flags(self):
        self._scope.validate_required_flags()

    def validate_flag_groups(self):
        groups.validate_flag_groups(self)

    def validate_args(self, args, /):
        validate_args(self, args)

    def register_flag_completion_func(self, name, func, /):
        completions.register_flag_completion_func(self, name, func)

    def get_flag_completion_func(self, name, /):
        return completions.get_flag_completion_func(self, name)

    def init_default_help_flag(self):
        """Declare -h/--help unless a "help" flag is already visible to this command."""
        self.merge_persistent_flags()
        if self.flags.lookup("help") is None:
            self.flags.add_bool("help", "h", usage=f"help for {self.display_name or 'this command'}")
            self.flags.set_annotation("help", SET_BY_FRAMEWORK_ANNOTATION, ["true"])

    def init_default_version_flag(self):
        """Declare --version (with -v when free) on commands that carry a version."""
        if not self.version:
            return
        self.merge_persistent_flags()
        if self.flags.lookup("version") is None:
            shorthand = "v" if self.flags.shorthand_lookup("v") is None else ""
            self.flags.add_bool("version", shorthand, usage=f"version for {self.name or 'this command'}")
            self.flags.set_annotation("version", SET_BY_FRAMEWORK_ANNOTATION, ["true"])

    def debug_flags(self):
        """Log which flags every command of this subtree declares (L: local, P: persistent)."""
        logger.info("debug_flags called on %s", self.name)

        def describe(command):
            if command.has_flags() or command.has_persistent_flags():
                logger.info("%s", command.name)
            for flag in command.flags:
                kind = "LP" if command.persistent_flags.lookup(flag.name) is not None else "L"
                logger.info("  -%s, --%s [%s]  %s  [%s]", flag.shorthand, flag.name, flag.default, flag.value, kind)
            for flag in command.persistent_flags:
                if command.flags.lookup(flag.name) is None:
                    logger.info("  -%s, --%s [%s]  %s  [P]", flag.shorthand, flag.name, flag.default, flag.value)
            for child in command.commands():
                describe(child)

        describe(self)

    # --- resolution ---

    def find(self, args, /):
        return resolver.find(self, args)

    def traverse(self, args, /):
        return resolver.traverse(self, args)

    def suggestions_for(self, typed, /):
        return suggestions.suggestions_for(self, typed)

    # --- output ---

    def _stream(self, attribute):
        for command in self._lineage():
            if (stream := getattr(command, attribute)) is not None:
                return stream
        return None

    def set_out(self, stream, /):
        self._out = stream

    def set_err(self, stream, /):
        self._err = stream

    def set_in(self, stream, /):
        self._in = stream

    @property
    def out(self):
        stream = self._stream("_out")
        return stream if stream is not None else sys.stdout

    @property
    def err(self):
        stream = self._stream("_err")
        return stream if stream is not None else sys.stderr

    @property
    def input(self):
        stream = self._stream("_in")
        return stream if stream is not None else sys.stdin

    def out_or_stderr(self):
        stream = self._stream("_out")
        return stream if stream is not None else sys.stderr

    def print(self, text, /):
        self.out_or_stderr().write(str(text))

    def println(self, text="", /):
        self.print(f"{text}\n")

    def print_err(self, text, /):
        self.err.write(str(text))

    def print_errln(self, text="", /):
        self.print_err(f"{text}\n")

    # --- help, usage, version, errors ---

    def _inherited(self, attribute):
        for command in self._lineage():
            if (value := getattr(command, attribute)) is not None:
                return value
        return None

    def set_help_func(self, func, /):
        self._help_func = func

    def help_func(self):
        return self._inherited("_help_func") or help.default_help_func

    def help(self):
        self.help_func()(self, [])

    def set_usage_func(self, func, /):
        self._usage_func = func

    def usage_func(self):
        return self._inherited("_usage_func") or help.default_usage_func

    def usage(self):
        self.usage_func()(self)

    def usage_string(self):
        """Render the usage block into a string instead of the output stream."""
        buffer = io.StringIO()
        out, err = self._out, self._err
        self._out = self._err = buffer
        try:
            self.usage()
        finally:
            self._out, self._err = out, err
        return buffer.getvalue()

    def set_flag_error_func(self, func, /):
        """Install func(command, error) -> error, applied to flag parsing errors of this subtree."""
        self._flag_error_func = func

    def flag_error_func(self):
        return self._inherited("_flag_error_func") or (lambda command, error: error)

    def set_version_template(self, template, /):
        self._version_template = template

    def version_template(self):
        return self._inherited("_version_template") or help.DEFAULT_VERSION_TEMPLATE

    def set_error_prefix(self, prefix, /):
        self._error_prefix = prefix

    def error_prefix(self):
        return self._inherited("_error_prefix") or "Error:"

    @property
    def help_command(self):
        return self._help_command

    def set_help_command(self, command, /):
        self._help_command = command

    # --- execution ---

    def set_args(self, args, /):
        """Arguments used instead of sys.argv[1:] (a string is split like a shell would)."""
        self._args = args

    def execute_c(self, args=None, /):
        """Resolve and run from the root; returns the executed command. See arbor.execution."""
        from .execution import execute_c

        root = self.root
        return execute_c(root, args if args is not None else root._args)

    def execute(self, args=None, /):
        self.execute_c(args)

    def execute_context(self, context, args=None, /):
        self.context = context
        return self.execute_c(args)

    # --- declaration helpers ---

    def command(self, use=Unset, /, **fields):
        """
        Build a child command from a run function.

        Forms
        - @parent.command  /  @parent.command("use", **fields)
        - parent.command(function, **fields)
        """
        if builtins.callable(use):
            child = command(use, **fields)
            self.add(child)
            return child

        @rename("command")
        def wrapper(function, /):
            child = command(use, **fields)(function)
            self.add(child)
            return child

        return wrapper


def _from_function(function, use, fields):
    if not builtins.callable(function):
        raise TypeError("@command() must be applied to a callable")
    if use is Unset:
        use = function.__name__.strip("_").replace("_", "-")
    if doc := inspect.getdoc(function):
        summary, _, rest = doc.partition("\n")
        fields.setdefault("short", summary.strip())
        if rest.strip():
            fields.setdefault("long", doc)
    return Command(use, run=function, **fields)


def command(use=Unset, /, **fields):
    """
    Create a Command from a run function, or return a decorator that does.

    Forms
    - @command  /  @command("serve [port]", short=..., args=...)
    - command(function, **fields)

    The use line defaults to the function name (underscores become dashes); the first
    docstring line becomes the short help and a longer docstring the long help.
    """
    if builtins.callable(use):
        return _from_function(use, Unset, dict(fields))

    @rename("command")
    def wrapper(function, /):
        return _from_function(function, use, dict(fields))

    return wrapper


__all__ = (
    "MINIMUM_USAGE_PADDING",
    "MINIMUM_COMMAND_PATH_PADDING",
    "MINIMUM_NAME_PADDING",
    "Group",
    "Command",
    "command",
)
