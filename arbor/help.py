"""
Arbor help, usage and version rendering (rich-based).

Layout
- help: the long description (or the short one), a blank line, then the usage block
  when the command is runnable or has subcommands.
- usage block, in order:
  • "Usage:" with the use line and/or "<path> [command]"
  • "Aliases:", "Examples:"
  • "Available Commands:" or one section per declared Group plus
    "Additional Commands:" for ungrouped children
  • "Flags:" (local flags) and "Global Flags:" (inherited flags)
  • "Additional help topics:"
  • 'Use "<path> [command] --help" for more information about a command.'
- version: the command's version template formatted with command=<the command>;
  the default reads "<display name> version <version>".

Styling
- Sections are rich Text with a small palette; a __styles__ mapping in __main__
  overrides any entry. Styles only show up on terminals: redirected streams
  (files, io.StringIO) receive plain text.

Integration
- Commands call default_help_func / default_usage_func unless a help or usage
  function was installed on them or an ancestor (set_help_func, set_usage_func).
"""
from collections import defaultdict

from rich.console import Console
from rich.text import Text

DEFAULT_VERSION_TEMPLATE = "{command.display_name} version {command.version}\n"


def _styles():
    return defaultdict(str, {
        # === Sections ===
        "section": "bold #FFFFFF",  # white headings
        "description": "#A3A3A3",  # neutral gray description
        "usage-line": "bold #36C5F0",  # sky-blue signature

        # === Children ===
        "command-name": "bold #00E6FF",  # cyan subcommands
        "command-short": "#9CA3AF",  # muted gray summaries

        # === Flags / examples ===
        "flag-usages": "#D1D5DB",
        "example": "#E5E7EB",

        # === Footer ===
        "hint": "#737373",  # dim footer gray
    } | getattr(__import__("__main__"), "__styles__", {}))


def console_for(stream, /):
    return Console(file=stream, soft_wrap=True, highlight=False, markup=False, emoji=False)


def usage_renderable(command, /):
    styles = _styles()
    text = Text()

    def section(title):
        text.append("\n\n").append(title, styles["section"])

    def listing(children, accept):
        for child in children:
            if accept(child) and (child.is_available_command() or child.name == "help"):
                text.append("\n  ")
                text.append(child.name.ljust(child.name_padding()), styles["command-name"])
                text.append(" ").append(child.short, styles["command-short"])

    text.append("Usage:", styles["section"])
    if command.runnable():
        text.append("\n  ").append(command.use_line(), styles["usage-line"])
    if command.has_available_sub_commands():
        text.append("\n  ").append(f"{command.command_path} [command]", styles["usage-line"])
    if command.aliases:
        section("Aliases:")
        text.append("\n  " + command.name_and_aliases())
    if command.has_example():
        section("Examples:")
        text.append("\n").append(command.example, styles["example"])
    if command.has_available_sub_commands():
        children = command.commands()
        if not (groups := command.groups()):
            section("Available Commands:")
            listing(children, lambda child: True)
        else:
            for group in groups:
                section(group.title)
                listing(children, lambda child, id=group.id: child.group_id == id)
            if not command.all_child_commands_have_group():
                section("Additional Commands:")
                listing(children, lambda child: not child.group_id)
    if command.has_available_local_flags():
        section("Flags:")
        text.append("\n").append(command.local_flags().flag_usages().rstrip(), styles["flag-usages"])
    if command.has_available_inherited_flags():
        section("Global Flags:")
        text.append("\n").append(command.inherited_flags().flag_usages().rstrip(), styles["flag-usages"])
    if command.has_help_sub_commands():
        section("Additional help topics:")
        for child in command.commands():
            if child.is_additional_help_topic_command():
                text.append("\n  ")
                text.append(child.command_path.ljust(child.command_path_padding()), styles["command-name"])
                text.append(" ").append(child.short, styles["command-short"])
    if command.has_available_sub_commands():
        text.append("\n\n").append(
            f'Use "{command.command_path} [command] --help" for more information about a command.',
            styles["hint"],
        )
    return text.append("\n")


def help_renderable(command, /):
    styles = _styles()
    text = Text()
    if description := (command.long or command.short):
        text.append(description.rstrip(), styles["description"]).append("\n\n")
    if command.runnable() or command.has_sub_commands():
        text.append_text(usage_renderable(command))
    return text


def default_help_func(command, args, /):
    command.merge_persistent_flags()
    console_for(command.out).print(help_renderable(command), end="")


def default_usage_func(command, /):
    console_for(command.out_or_stderr()).print(usage_renderable(command), end="")


def render_version(command, /):
    command.out.write(command.version_template().format(command=command))


__all__ = (
    "DEFAULT_VERSION_TEMPLATE",
    "console_for",
    "usage_renderable",
    "help_renderable",
    "default_help_func",
    "default_usage_func",
    "render_version",
)
