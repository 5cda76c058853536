"""
Arbor process-wide switches and logging setup.

Scope
- Settings: the four switches read during resolution and execution.
  • case_insensitive: command names and aliases match ignoring case.
  • prefix_matching: a unique name/alias prefix selects a subcommand.
  • command_sorting: children are listed sorted by name.
  • traverse_run_hooks: persistent hooks of every ancestor run, not only the nearest one.
- settings: the live instance consulted by the resolver and the execution engine.
- override(**changes): temporarily change switches (restored on exit, also on error).
- configure_logging(level=None): opt-in rich log handler for the "arbor" logger.

Integration
- A host application may define a __arbor__ mapping in __main__; its entries
  become the initial values of settings (e.g. __arbor__ = {"prefix_matching": True}).
- ARBOR_LOG_LEVEL selects the level used by configure_logging() when no level is given.

Lifecycle
- The switches are plain attributes: set them once at startup, or scope changes with
  override() in tests so suites stay independent of each other.
"""
import contextlib
import logging
import os

from rich.logging import RichHandler

logger = logging.getLogger(__name__)


class Settings:
    """
    Switches consulted at resolution and execution time.

    Attributes default to strict behavior: exact, case-sensitive matching,
    sorted children and nearest-only persistent hooks.
    """
    __slots__ = ("case_insensitive", "prefix_matching", "command_sorting", "traverse_run_hooks")

    def __init__(
            self,
            *,
            case_insensitive=False,
            prefix_matching=False,
            command_sorting=True,
            traverse_run_hooks=False,
    ):
        self.case_insensitive = case_insensitive
        self.prefix_matching = prefix_matching
        self.command_sorting = command_sorting
        self.traverse_run_hooks = traverse_run_hooks

    @classmethod
    def from_main(cls):
        """Build settings from the host's __main__.__arbor__ mapping, if any."""
        return cls(**getattr(__import__("__main__"), "__arbor__", {}))

    def snapshot(self):
        return {name: getattr(self, name) for name in self.__slots__}

    def update(self, **changes):
        for name, value in changes.items():
            if name not in self.__slots__:
                raise TypeError(f"unknown setting {name!r}")
            setattr(self, name, bool(value))

    def __repr__(self):
        return "%s(%s)" % (type(self).__name__, ", ".join(f"{k}={v!r}" for k, v in self.snapshot().items()))


settings = Settings.from_main()


@contextlib.contextmanager
def override(**changes):
    """
    Temporarily change settings.

    Example
        with override(prefix_matching=True):
            root.execute(["ch"])
    """
    previous = settings.snapshot()
    settings.update(**changes)
    logger.debug("settings overridden: %r", settings)
    try:
        yield settings
    finally:
        settings.update(**previous)


def configure_logging(level=None, /):
    """
    Attach a rich handler to the "arbor" logger.

    The level comes from the argument, then ARBOR_LOG_LEVEL, then WARNING. Calling this
    more than once replaces the handler instead of stacking another one.
    """
    level = level or os.environ.get("ARBOR_LOG_LEVEL", "WARNING")
    root = logging.getLogger("arbor")
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    root.addHandler(RichHandler(show_path=False, markup=False))
    root.setLevel(level.upper() if isinstance(level, str) else level)
    return root


__all__ = (
    "Settings",
    "settings",
    "override",
    "configure_logging",
)
