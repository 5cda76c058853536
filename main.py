from rich.pretty import pprint

__arbor__ = {"prefix_matching": True}

from arbor import *  # NOQA: E-402


root = Command("greeter", short="A tiny demo of arbor command trees", version="0.1.0")
root.persistent_flags.add_bool("debug", "d", usage="log what the framework does")


def setup(command, args):
    if command.flags.get("debug"):
        configure_logging("DEBUG")


root.persistent_pre_run = setup


@root.command("hello [name]", aliases=["hi"], args=maximum_n_args(1))
def hello(command, args):
    """Say hello to someone."""
    greeting = command.flags.get("greeting")
    command.println(f"{greeting}, {args[0] if args else 'world'}!")


hello.flags.add_string("greeting", "g", default="Hello", usage="the `word` to greet with")


@root.command
def tree(command, args):
    """Show the command tree."""
    pprint(command.root)


if __name__ == '__main__':
    invoke(root)
