"""
Arbor shell completion: the request protocol and the completion command.

Protocol
- A shell script runs "<program> __complete <args...> <partial>" (or __completeNoDesc).
  The hidden request command prints one candidate per line ("value<TAB>description"),
  then ":<directive>" and, on stderr, "Completion ended with directive: <names>".
- The request command only exists while it is being resolved: it is attached before
  resolution and removed again unless the request actually targets it.

Sources of candidates (first applicable wins, as shells expect)
- "--help"/"--version" already given: nothing.
- a flag value: filename-extension or directory annotations, then the function
  registered for the flag (register_flag_completion_func).
- a flag name ("-", "--ver"): required flags first, then every visible flag that is
  not set yet (list-valued flags may repeat).
- positionals: subcommand names with their short help, required flags, valid_args
  (falling back to arg_aliases), then valid_args_function.

Completion command
- "completion" with one subcommand per shell (bash, zsh, fish, powershell). Script text
  comes from generators registered with register_generator(shell, generate); generate
  receives (root, stream, include_descriptions).
- CompletionOptions on the root disable or hide it and control descriptions.
"""
import logging
import threading
from enum import IntFlag

from . import resolver
from .arguments import minimum_n_args, no_args
from .faults import *
from .flags import (
    FILENAME_EXT_ANNOTATION,
    REQUIRED_ANNOTATION,
    SET_BY_FRAMEWORK_ANNOTATION,
    SUBDIRS_IN_DIR_ANNOTATION,
)
from .groups import enforce_flag_groups_for_completion

logger = logging.getLogger(__name__)

REQUEST_COMMAND = "__complete"
REQUEST_NO_DESC_COMMAND = "__completeNoDesc"
COMPLETION_COMMAND = "completion"
NO_DESCRIPTIONS_FLAG = "no-descriptions"
SHELLS = ("bash", "zsh", "fish", "powershell")


class ShellCompDirective(IntFlag):
    """
    Bit set telling the shell what to do with the candidates.

    The integer value is what the request command prints after the colon.
    """
    DEFAULT = 0
    ERROR = 1
    NO_SPACE = 2
    NO_FILE_COMP = 4
    FILTER_FILE_EXT = 8
    FILTER_DIRS = 16
    KEEP_ORDER = 32

    def describe(self):
        if int(self) >= 64:
            return f"ERROR: unexpected ShellCompDirective value: {int(self)}"
        labels = [label for member, label in _LABELS if self & member]
        return ", ".join(labels or ["ShellCompDirectiveDefault"])


_LABELS = (
    (ShellCompDirective.ERROR, "ShellCompDirectiveError"),
    (ShellCompDirective.NO_SPACE, "ShellCompDirectiveNoSpace"),
    (ShellCompDirective.NO_FILE_COMP, "ShellCompDirectiveNoFileComp"),
    (ShellCompDirective.FILTER_FILE_EXT, "ShellCompDirectiveFilterFileExt"),
    (ShellCompDirective.FILTER_DIRS, "ShellCompDirectiveFilterDirs"),
    (ShellCompDirective.KEEP_ORDER, "ShellCompDirectiveKeepOrder"),
)


class CompletionOptions:
    """Switches for the default completion command, read from the root command."""
    __slots__ = ("disable_default_cmd", "disable_no_desc_flag", "disable_descriptions", "hidden_default_cmd")

    def __init__(
            self,
            *,
            disable_default_cmd=False,
            disable_no_desc_flag=False,
            disable_descriptions=False,
            hidden_default_cmd=False,
    ):
        self.disable_default_cmd = disable_default_cmd
        self.disable_no_desc_flag = disable_no_desc_flag
        self.disable_descriptions = disable_descriptions
        self.hidden_default_cmd = hidden_default_cmd

    def __repr__(self):
        fields = ", ".join(f"{name}={getattr(self, name)!r}" for name in self.__slots__)
        return f"{type(self).__name__}({fields})"


# Flag value completion functions, keyed by flag object.
_functions = {}
_lock = threading.Lock()

generators = {}


def register_generator(shell, generate, /):
    """Register generate(root, stream, include_descriptions) as the script writer for shell."""
    generators[shell] = generate


def no_file_completions(command, args, to_complete, /):
    return [], ShellCompDirective.NO_FILE_COMP


def fixed_completions(choices, directive=ShellCompDirective.DEFAULT, /):
    choices = list(choices)

    def complete(command, args, to_complete, /):
        return list(choices), directive

    return complete


def register_flag_completion_func(command, name, func, /):
    if (flag := command.lookup_flag(name)) is None:
        raise FlagNotFoundError(f"register_flag_completion_func: flag '{name}' does not exist", command=command)
    with _lock:
        if flag in _functions:
            raise CompletionError(f"register_flag_completion_func: flag '{name}' already registered", command=command)
        _functions[flag] = func


def get_flag_completion_func(command, name, /):
    if (flag := command.lookup_flag(name)) is None:
        return None
    with _lock:
        return _functions.get(flag)


def _listing(args):
    return "[%s]" % " ".join(args)


def _flag_name_completions(flag, to_complete):
    if flag.hidden or flag.deprecated:
        return []
    completions = []
    if (name := "--" + flag.name).startswith(to_complete):
        completions.append(f"{name}\t{flag.usage}")
    if flag.shorthand and (short := "-" + flag.shorthand).startswith(to_complete):
        completions.append(f"{short}\t{flag.usage}")
    return completions


def _required_flag_completions(command, to_complete):
    completions = []
    for flagset in (command.inherited_flags(), command.local_flags()):
        for flag in flagset:
            if REQUIRED_ANNOTATION in flag.annotations and not flag.changed:
                completions.extend(_flag_name_completions(flag, to_complete))
    return completions


def _find_flag(command, name):
    if len(name) == 1:
        if (short := command.flags.shorthand_lookup(name)) is None:
            short = command.inherited_flags().shorthand_lookup(name)
        if short is None:
            return None
        name = short.name
    return command.lookup_flag(name)


def _check_flag_completion(command, args, last):
    """
    Decide whether the word being completed is a flag value.

    returns (flag, args, last, unsupported) where flag is None unless a value is being
    completed and unsupported names a flag the command does not know.
    """
    if command.disable_flag_parsing:
        return None, args, last, ""
    name, trimmed, original, assigned = "", args, last, False
    if last.startswith("-"):
        if (index := last.find("=")) < 0:
            return None, args, last, ""
        name = last[2:index] if last[:index].startswith("--") else last[index - 1:index]
        last, assigned = last[index + 1:], True
    if not name and args:
        previous = args[-1]
        if resolver.is_flag_arg(previous) and "=" not in previous:
            name = previous[2:] if previous.startswith("--") else previous[-1:]
            trimmed = args[:-1]
    if not name:
        return None, trimmed, last, ""
    if (flag := _find_flag(command, name)) is None:
        return None, args, original, name
    if not assigned and flag.no_opt_def_val:
        return None, args, last, ""
    return flag, trimmed, last, ""


def _help_or_version_present(command):
    for name in ("version", "help"):
        flag = command.flags.lookup(name)
        if flag is not None and flag.annotations.get(SET_BY_FRAMEWORK_ANNOTATION) and flag.changed:
            return True
    return False


def get_completions(request, args, /):
    """
    Compute the candidates for the last element of args.

    returns (command, completions, directive); raises CompletionError when no command
    matches or the flags on the line cannot be parsed.
    """
    to_complete, trimmed = args[-1], args[:-1]
    root = request.root
    try:
        if root.traverse_children:
            final, final_args = resolver.traverse(root, trimmed)
        else:
            if len(root.children) == 1:
                root.remove_command(request)
            final, final_args = resolver.find(root, trimmed)
    except (CommandException, HelpRequested):
        raise CompletionError(f"unable to find a command for arguments: {_listing(trimmed)}", command=request) from None
    final.context = request.context

    if not final.disable_flag_parsing:
        final.init_default_help_flag()
        final.init_default_version_flag()

    flag, final_args, to_complete, unsupported = _check_flag_completion(final, final_args, to_complete)

    # An argument after "--" counts as a positional; a trailing "--" reveals whether
    # the words so far already ended flag parsing.
    try:
        final.parse_flags([*final_args, "--"])
    except (CommandException, HelpRequested) as error:
        logger.debug("ignored while counting positionals: %s", error)
    counted = len(final.flags.args())
    try:
        final.parse_flags(final_args)
    except (CommandException, HelpRequested) as error:
        raise CompletionError(
            f"Error while parsing flags from args {_listing(final_args)}: {error}",
            command=final,
        ) from None
    flag_completion = counted <= len(final.flags.args())

    if unsupported and flag_completion:
        raise CompletionError(f"Subcommand '{final.name}' does not support flag '{unsupported}'", command=final)

    if _help_or_version_present(final):
        return final, [], ShellCompDirective.NO_FILE_COMP

    if not final.disable_flag_parsing:
        final_args = final.flags.args()

    if flag is not None and flag_completion:
        if extensions := flag.annotations.get(FILENAME_EXT_ANNOTATION):
            return final, list(extensions), ShellCompDirective.FILTER_FILE_EXT
        if (directories := flag.annotations.get(SUBDIRS_IN_DIR_ANNOTATION)) is not None:
            return final, list(directories) if len(directories) == 1 else [], ShellCompDirective.FILTER_DIRS

    completions = []
    directive = ShellCompDirective.DEFAULT
    enforce_flag_groups_for_completion(final)

    if flag is None and to_complete.startswith("-") and "=" not in to_complete and flag_completion:
        if not (completions := _required_flag_completions(final, to_complete)):
            for flagset in (final.inherited_flags(), final.local_flags()):
                for candidate in flagset:
                    if not candidate.changed or candidate.value.repeatable:
                        completions.extend(_flag_name_completions(candidate, to_complete))
        directive = ShellCompDirective.NO_FILE_COMP
        if len(completions) == 1 and completions[0].endswith("="):
            directive = ShellCompDirective.NO_SPACE
        if not final.disable_flag_parsing:
            return final, completions, directive
    elif flag is None:
        local_set = False
        if not final.root.traverse_children:
            local_only = final.local_non_persistent_flags()
            local_set = any(
                local_only.lookup(candidate.name) is not None and candidate.changed
                for candidate in final.local_flags()
            )
        if not final_args and not local_set:
            for child in final.commands():
                if child.is_available_command() or child is final.help_command:
                    if child.name.startswith(to_complete):
                        completions.append(f"{child.name}\t{child.short}")
                    directive = ShellCompDirective.NO_FILE_COMP
        completions.extend(_required_flag_completions(final, to_complete))
        if final.valid_args:
            if not final_args:
                completions.extend(value for value in final.valid_args if value.startswith(to_complete))
                directive = ShellCompDirective.NO_FILE_COMP
                if not completions:
                    completions.extend(alias for alias in final.arg_aliases if alias.startswith(to_complete))
            return final, completions, directive

    if flag is not None and flag_completion:
        with _lock:
            complete = _functions.get(flag)
    else:
        complete = final.valid_args_function
    if complete is not None:
        extra, directive = complete(final, final_args, to_complete)
        completions.extend(extra)
    return final, completions, ShellCompDirective(directive)


def _serve_request(command, args):
    try:
        final, completions, directive = get_completions(command, args)
    except CompletionError as error:
        final = error.command or command
        logger.debug("completion failed: %s", error)
        final.err.write(f"[Error] {error}\n")
        completions, directive = [], ShellCompDirective.DEFAULT
    describe = command.called_as() != REQUEST_NO_DESC_COMMAND
    out = final.out
    for completion in completions:
        if not describe:
            completion = completion.split("\t", 1)[0]
        out.write(completion.split("\n", 1)[0].strip() + "\n")
    out.write(f":{int(directive)}\n")
    final.err.write(f"Completion ended with directive: {directive.describe()}\n")


def init_complete_cmd(root, args, /):
    """Attach the hidden request command, keeping it only when args actually target it."""
    from .commands import Command

    request = Command(
        f"{REQUEST_COMMAND} [command-line]",
        aliases=[REQUEST_NO_DESC_COMMAND],
        short="Request shell completion choices for the specified command-line",
        long=(
            f"{REQUEST_COMMAND} is a special command that is used by the shell completion logic\n"
            "to request completion choices for the specified command-line."
        ),
        args=minimum_n_args(1),
        hidden=True,
        disable_flag_parsing=True,
        disable_flags_in_use_line=True,
        run=_serve_request,
    )
    root.add(request)
    try:
        found, _ = resolver.find(root, args)
    except CommandException as error:
        logger.debug("not a completion request: %s", error)
        found = None
    if found is None or found.name != REQUEST_COMMAND:
        root.remove_command(request)
        return None
    logger.debug("completion request attached to %r", root.name)
    return request


def _generate_script(command, args):
    shell = command.name
    describe = not command.root.completion_options.disable_descriptions
    if command.flags.lookup(NO_DESCRIPTIONS_FLAG) is not None and command.flags.get(NO_DESCRIPTIONS_FLAG):
        describe = False
    if (generate := generators.get(shell)) is None:
        raise CompletionError(f"no completion script generator is registered for {shell}", command=command)
    generate(command.root, command.out, describe)


def init_default_completion_cmd(root, /):
    """Add the "completion" command unless disabled, the root is a leaf or one already exists."""
    from .commands import Command

    options = root.completion_options
    if options.disable_default_cmd or not root.has_sub_commands():
        return
    for child in root.commands():
        if child.name == COMPLETION_COMMAND or child.has_alias(COMPLETION_COMMAND):
            return
    completion = Command(
        COMPLETION_COMMAND,
        short="Generate the autocompletion script for the specified shell",
        long=(
            f"Generate the autocompletion script for {root.name} for the specified shell.\n"
            "See each sub-command's help for details on how to use the generated script.\n"
        ),
        args=no_args,
        valid_args_function=no_file_completions,
        hidden=options.hidden_default_cmd,
        group_id=root.completion_command_group_id,
    )
    root.add(completion)
    descriptions_flag = not options.disable_no_desc_flag and not options.disable_descriptions
    for shell in SHELLS:
        script = Command(
            shell,
            short=f"Generate the autocompletion script for {shell}",
            args=no_args,
            disable_flags_in_use_line=True,
            valid_args_function=no_file_completions,
            run=_generate_script,
        )
        if descriptions_flag:
            script.flags.add_bool(NO_DESCRIPTIONS_FLAG, usage="disable completion descriptions")
        completion.add(script)
    logger.debug("completion command added to %r", root.name)


__all__ = (
    "REQUEST_COMMAND",
    "REQUEST_NO_DESC_COMMAND",
    "ShellCompDirective",
    "CompletionOptions",
    "generators",
    "register_generator",
    "no_file_completions",
    "fixed_completions",
    "register_flag_completion_func",
    "get_flag_completion_func",
    "get_completions",
    "init_complete_cmd",
    "init_default_completion_cmd",
)
