"""
Arbor execution engine: from an argument vector to hooks that run.

Pipeline (execute_c, always on the root)
1. Prepare the tree: default context, parent references, the "help" and "completion"
   commands, group declarations (an undeclared group id raises CommandDefinitionError).
2. Attach the hidden completion request command when the arguments ask for it.
3. Resolve: traverse when the root sets traverse_children, find otherwise.
4. Run the resolved command (execute); HelpRequested ends in its help function.

Per-command lifecycle (execute)
- deprecation notice, default -h/--help and --version flags, flag parsing
- --help → help; --version → version template; not runnable → help
- initializers (on_initialize), then positional validation, then the hooks:
    persistent_pre_run (nearest ancestor that defines one, or every one from the root
    down under settings.traverse_run_hooks), pre_run, required flags, flag groups, run,
    post_run, persistent_post_run (nearest, or every one from the command up)
- finalizers (on_finalize) run whatever happens once initializers did.

Hooks and context
- A hook is a callable (command, args). It reports failure by raising; the first
  failure stops the pipeline.
- Hooks run inside command.context (a contextvars.Context), which the root hands down
  to the executed command when it has none of its own.

Error reporting
- Failures are printed once ("Error: <message>" plus the usage block, unless silenced)
  and then re-raised to the caller. CommandDefinitionError is never reported: it is a
  defect of the program, not of the command line.
"""
import contextvars
import logging
import shlex
import sys
from collections.abc import Iterable

from . import resolver
from .commands import Command
from .completions import ShellCompDirective, init_complete_cmd, init_default_completion_cmd
from .config import settings
from .faults import *
from .help import render_version
from .utils import *

logger = logging.getLogger(__name__)

initializers = []
finalizers = []


def on_initialize(*functions):
    """Register functions called (without arguments) before each command's hooks."""
    initializers.extend(functions)


def on_finalize(*functions):
    """Register functions called (without arguments) after each command's hooks."""
    finalizers.extend(functions)


def check_command_groups(command, /):
    for child in command.commands():
        if child.group_id and not command.contains_group(child.group_id):
            raise CommandDefinitionError(
                f"group id '{child.group_id}' is not defined for subcommand '{child.command_path}'"
            )
        check_command_groups(child)


def _run_help_topic(command, args):
    root = command.root
    try:
        target, _ = resolver.find(root, args)
    except CommandException as error:
        logger.debug("help topic lookup failed: %s", error)
        target = None
    if target is None:
        command.print("Unknown help topic %s\n" % ("[%s]" % " ".join(f"`{arg}`" for arg in args)))
        root.usage()
        return
    target.init_default_help_flag()
    target.init_default_version_flag()
    target.help()


def _complete_help_topic(command, args, to_complete):
    try:
        target, _ = resolver.find(command.root, args)
    except CommandException as error:
        logger.debug("no help topic completions: %s", error)
        return [], ShellCompDirective.NO_FILE_COMP
    candidates = []
    for child in target.commands():
        if (child.is_available_command() or child is target.help_command) and child.name.startswith(to_complete):
            candidates.append(f"{child.name}\t{child.short}")
    return candidates, ShellCompDirective.NO_FILE_COMP


def init_default_help_cmd(root, /):
    """Add the "help [command]" command to a root with children, unless one exists."""
    if not root.has_sub_commands():
        return
    for child in root.children:
        if child is root.help_command:
            continue
        if child.name == "help" or child.has_alias("help"):
            return
    if (helper := root.help_command) is None:
        helper = Command(
            "help [command]",
            short="Help about any command",
            long=(
                "Help provides help for any command in the application.\n"
                f"Simply type {root.display_name} help [path to command] for full details."
            ),
            valid_args_function=_complete_help_topic,
            run=_run_help_topic,
            group_id=root.help_command_group_id,
        )
        root.set_help_command(helper)
    root.remove_command(helper)
    root.add(helper)


def _hook(command, hook, args):
    if hook is not None:
        command.context.run(hook, command, args)


def _lineage(command):
    while command is not None:
        yield command
        command = command.parent


def _persistent(command, attribute, args, *, downwards):
    chain = list(_lineage(command))
    if settings.traverse_run_hooks:
        for owner in reversed(chain) if downwards else chain:
            _hook(command, getattr(owner, attribute), args)
        return
    for owner in chain:
        if (hook := getattr(owner, attribute)) is not None:
            _hook(command, hook, args)
            return


def _switch(command, name):
    try:
        return command.flags.get_bool(name)
    except TypeError as error:
        command.println(f"{quote(name)} flag declared as non-bool. Please correct your code")
        raise CommandDefinitionError(str(error)) from None


def execute(command, args, /):
    """
    Run the lifecycle of an already resolved command.

    Raises HelpRequested when help must be shown instead, and any CommandException (or
    exception of a hook) that stops the pipeline.
    """
    if command.deprecated:
        notice = DeprecatedCommandWarning(f"Command {quote(command.name)} is deprecated, {command.deprecated}")
        command.println(notice)

    command.init_default_help_flag()
    command.init_default_version_flag()

    try:
        command.parse_flags(args)
    except HelpRequested:
        raise
    except CommandException as error:
        raise command.flag_error_func()(command, error) from None

    if _switch(command, "help"):
        raise HelpRequested()
    if command.version and _switch(command, "version"):
        render_version(command)
        return

    if not command.runnable():
        raise HelpRequested()

    for initialize in initializers:
        initialize()
    try:
        positionals = args if command.disable_flag_parsing else command.flags.args()
        command.validate_args(positionals)

        _persistent(command, "persistent_pre_run", positionals, downwards=True)
        _hook(command, command.pre_run, positionals)

        command.validate_required_flags()
        command.validate_flag_groups()

        _hook(command, command.run, positionals)
        _hook(command, command.post_run, positionals)
        _persistent(command, "persistent_post_run", positionals, downwards=False)
    finally:
        for finalize in finalizers:
            finalize()


def _tokens(prompt):
    if isinstance(prompt, str):
        return shlex.split(prompt)
    if isinstance(prompt, Iterable):
        tokens = list(prompt)
        if not all(isinstance(token, str) for token in tokens):
            raise TypeError("arguments must be a string or an iterable of strings")
        return tokens
    raise TypeError("arguments must be a string or an iterable of strings")


def execute_c(command, args=None, /):
    """
    Resolve args against the tree of command and run the result.

    Parameters
    - command: any node; the whole tree is prepared and resolution starts at its root.
    - args: a string (split like a shell would), an iterable of strings or None for
      sys.argv[1:].

    returns the executed command.

    Failures
    - CommandException: printed (unless silenced) and re-raised; a fault raised
      without a command is re-raised carrying the executed one.
    - anything else a hook raises propagates unchanged and unprinted; invoke()
      does not turn it into an exit either.
    """
    root = command.root
    if root.context is None:
        root.context = contextvars.copy_context()
    root.fix_parents()

    init_default_help_cmd(root)
    init_default_completion_cmd(root)
    check_command_groups(root)

    args = sys.argv[1:] if args is None else _tokens(args)
    request = init_complete_cmd(root, args)
    try:
        return _resolve_and_execute(root, args)
    finally:
        if request is not None:
            root.remove_command(request)


def _resolve_and_execute(root, args):
    try:
        if root.traverse_children:
            target, remaining = resolver.traverse(root, args)
        else:
            target, remaining = resolver.find(root, args)
    except (CommandException, HelpRequested) as error:
        reporter = getattr(error, "command", None) or root
        if not reporter.silence_errors:
            reporter.print_errln(f"{reporter.error_prefix()} {error}")
            reporter.print_err(f"Run '{reporter.command_path} --help' for usage.\n")
        raise

    target.mark_called()
    if target.context is None:
        target.context = root.context
    logger.debug("executing %r with %r", target.command_path, remaining)

    try:
        execute(target, remaining)
    except HelpRequested:
        target.help_func()(target, args)
        return target
    except CommandException as error:
        if not target.silence_errors and not root.silence_errors:
            root.print_errln(f"{target.error_prefix()} {error}")
        if not target.silence_usage and not root.silence_usage:
            root.println(target.usage_string())
        if error.command is None:
            trigger(error, command=target)
        raise
    return target


def invoke(command, prompt=Unset, /):
    """
    Convenience runner for scripts: execute and turn a reported failure into an exit.

    Parameters
    - command: any node of the tree.
    - prompt: Unset for sys.argv[1:], a string, or an iterable of strings.

    Raises SystemExit(1) when the command line was rejected or a hook raised a
    CommandException; the failure was already printed.
    """
    try:
        execute_c(command, None if prompt is Unset else prompt)
    except CommandException as error:
        logger.debug("exiting after %s", type(error).__name__)
        raise SystemExit(1) from None


__all__ = (
    "initializers",
    "finalizers",
    "on_initialize",
    "on_finalize",
    "check_command_groups",
    "init_default_help_cmd",
    "execute",
    "execute_c",
    "invoke",
)
